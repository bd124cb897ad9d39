"""HMAC-based stateless session tokens with TTL.

Token format: ``{user_id}:{expires_unix}:{hex_hmac}``

The session secret is the HMAC key, so rotating it instantly invalidates
every outstanding browser session; no server-side session store is needed.
"""

import hashlib
import hmac
import time

__all__ = ["create_session_token", "verify_session_token"]


def create_session_token(secret: str, user_id: str, ttl_hours: int = 24) -> str:
    """Issue a session token for *user_id* that expires after *ttl_hours*."""
    expires = int(time.time()) + ttl_hours * 3600
    payload = f"{user_id}:{expires}"
    return f"{payload}:{_sign(secret, payload)}"


def verify_session_token(token: str, secret: str) -> str | None:
    """Return the user id of a valid, unexpired token, else None."""
    parts = token.rsplit(":", 2)
    if len(parts) != 3:
        return None

    user_id, expires_str, sig = parts
    if not user_id:
        return None
    try:
        expires = int(expires_str)
    except ValueError:
        return None

    if time.time() > expires:
        return None

    expected = _sign(secret, f"{user_id}:{expires_str}")
    if not hmac.compare_digest(sig.encode(), expected.encode()):
        return None
    return user_id


def _sign(key: str, message: str) -> str:
    return hmac.new(key.encode(), message.encode(), hashlib.sha256).hexdigest()
