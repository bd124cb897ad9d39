# OAuth2 token and code storage.
# Created: 2026-10-12
#
# The store is the only shared mutable state in the authorization layer.
# Code consumption and refresh-token rotation run their checks and their
# write under one lock so a code or refresh token can be spent exactly once,
# even when a flaky native client retries concurrently.
#
# Tokens are optionally mirrored to a JSON file so refresh tokens survive
# restarts. Authorization codes stay in memory (10 minute TTL).

from __future__ import annotations

import json
import logging
import threading
from collections.abc import Callable
from datetime import datetime
from pathlib import Path
from typing import Protocol

from projectflow.api.oauth2.models import AuthorizationCode, OAuthToken, TokenKind, utcnow
from projectflow.errors import InvalidGrant

logger = logging.getLogger(__name__)


class TokenStore(Protocol):
    """Capability interface the authorization server depends on."""

    def store_code(self, code: AuthorizationCode) -> None: ...

    def consume_code(
        self, code: str, validate: Callable[[AuthorizationCode], None]
    ) -> AuthorizationCode: ...

    def store_token(self, token: OAuthToken) -> None: ...

    def get_token(self, token_id: str) -> OAuthToken | None: ...

    def consume_refresh_token(
        self, token_id: str, validate: Callable[[OAuthToken], None]
    ) -> OAuthToken: ...

    def revoke_token(self, token_id: str) -> bool: ...

    def revoke_grant(self, grant_id: str) -> int: ...

    def delete_tokens(self, predicate: Callable[[OAuthToken], bool]) -> int: ...

    def purge_codes(self, now: datetime | None = None) -> int: ...


class OAuthStorage:
    """In-memory token store with optional JSON-file persistence."""

    def __init__(self, persist_path: Path | None = None):
        self._codes: dict[str, AuthorizationCode] = {}
        self._tokens: dict[str, OAuthToken] = {}
        self._lock = threading.RLock()
        self._persist_path = persist_path
        self._load_tokens()

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def _load_tokens(self) -> None:
        path = self._persist_path
        if path is None or not path.exists():
            return
        try:
            data = json.loads(path.read_text())
            for entry in data:
                token = OAuthToken.from_dict(entry)
                self._tokens[token.token_id] = token
            logger.debug("Loaded %d OAuth tokens from %s", len(self._tokens), path)
        except (json.JSONDecodeError, OSError, KeyError, ValueError) as exc:
            logger.warning("Failed to load OAuth tokens from %s: %s", path, exc)

    def _save_tokens(self) -> None:
        path = self._persist_path
        if path is None:
            return
        path.parent.mkdir(parents=True, exist_ok=True)
        data = [token.to_dict() for token in self._tokens.values()]
        path.write_text(json.dumps(data, indent=2))
        try:
            path.chmod(0o600)
        except OSError:
            logger.debug("Could not restrict permissions on %s", path)

    # ------------------------------------------------------------------
    # Authorization codes
    # ------------------------------------------------------------------

    def store_code(self, code: AuthorizationCode) -> None:
        with self._lock:
            self._codes[code.code] = code

    def get_code(self, code: str) -> AuthorizationCode | None:
        with self._lock:
            return self._codes.get(code)

    def consume_code(
        self, code: str, validate: Callable[[AuthorizationCode], None]
    ) -> AuthorizationCode:
        """Atomically check and spend an authorization code.

        ``validate`` runs under the store lock and raises to reject the code;
        a rejected code stays unconsumed. Unknown or already-consumed codes
        raise InvalidGrant.
        """
        with self._lock:
            auth_code = self._codes.get(code)
            if auth_code is None:
                raise InvalidGrant("Invalid or expired authorization code")
            if auth_code.consumed:
                raise InvalidGrant("Authorization code has already been used")
            validate(auth_code)
            auth_code.consumed = True
            return auth_code

    def purge_codes(self, now: datetime | None = None) -> int:
        """Drop expired or consumed codes. Returns count removed."""
        now = now or utcnow()
        with self._lock:
            stale = [k for k, v in self._codes.items() if v.consumed or v.is_expired(now)]
            for k in stale:
                del self._codes[k]
            return len(stale)

    # ------------------------------------------------------------------
    # Tokens
    # ------------------------------------------------------------------

    def store_token(self, token: OAuthToken) -> None:
        with self._lock:
            self._tokens[token.token_id] = token
            self._save_tokens()

    def store_tokens(self, *tokens: OAuthToken) -> None:
        with self._lock:
            for token in tokens:
                self._tokens[token.token_id] = token
            self._save_tokens()

    def get_token(self, token_id: str) -> OAuthToken | None:
        with self._lock:
            return self._tokens.get(token_id)

    def consume_refresh_token(
        self, token_id: str, validate: Callable[[OAuthToken], None]
    ) -> OAuthToken:
        """Atomically check a refresh token and revoke it for rotation."""
        with self._lock:
            token = self._tokens.get(token_id)
            if token is None or token.kind is not TokenKind.REFRESH:
                raise InvalidGrant("Invalid refresh token")
            if token.revoked:
                raise InvalidGrant("Refresh token has been revoked")
            validate(token)
            token.revoked = True
            self._save_tokens()
            return token

    def revoke_token(self, token_id: str) -> bool:
        with self._lock:
            token = self._tokens.get(token_id)
            if token is None or token.revoked:
                return False
            token.revoked = True
            self._save_tokens()
            return True

    def revoke_grant(self, grant_id: str) -> int:
        """Revoke every live token minted under ``grant_id``."""
        with self._lock:
            count = 0
            for token in self._tokens.values():
                if token.grant_id == grant_id and not token.revoked:
                    token.revoked = True
                    count += 1
            if count:
                self._save_tokens()
            return count

    def delete_tokens(self, predicate: Callable[[OAuthToken], bool]) -> int:
        """Delete every token matching ``predicate`` in one locked pass."""
        with self._lock:
            doomed = [k for k, v in self._tokens.items() if predicate(v)]
            for k in doomed:
                del self._tokens[k]
            if doomed:
                self._save_tokens()
            return len(doomed)

    def count_tokens(self) -> int:
        with self._lock:
            return len(self._tokens)
