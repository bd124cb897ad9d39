"""JWT access-token signing and verification.

Access tokens are HS256 JWTs carrying::

    {
        "iss": "<issuer>",
        "sub": "<user id>",
        "aud": "<protected resource URL>",
        "exp": 1738800000,
        "iat": 1738796400,
        "jti": "<token row id>",
        "scope": "projects:read tasks:read",
        "client_id": "mcp-client-...",
        "role": "authenticated",
        "email": "optional"
    }

``role`` mirrors the claim the identity provider puts on its own session JWTs,
so row-level policies keyed on it accept both kinds of token.

Verification never mutates the store. When a store is supplied, a token whose
row is revoked, or has already been purged, fails with RevokedToken.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta

import jwt

from projectflow.api.oauth2.models import utcnow
from projectflow.api.oauth2.storage import TokenStore
from projectflow.errors import AudienceMismatch, ExpiredToken, InvalidToken, RevokedToken

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TokenClaims:
    """Verified claims of an access token."""

    sub: str
    aud: str
    exp: int
    email: str | None = None
    scope: str = ""
    client_id: str | None = None
    jti: str | None = None

    @property
    def scopes(self) -> frozenset[str]:
        return frozenset(self.scope.split())


class TokenSigner:
    """Mints signed access tokens."""

    def __init__(self, secret: str, issuer: str, algorithm: str = "HS256"):
        self._secret = secret
        self.issuer = issuer
        self.algorithm = algorithm

    def sign(
        self,
        user_id: str,
        audience: str,
        *,
        client_id: str,
        scope: str,
        expires_in: timedelta,
        email: str | None = None,
        token_id: str | None = None,
        now: datetime | None = None,
    ) -> tuple[str, str, datetime]:
        """Return ``(jwt, jti, expires_at)``."""
        now = now or utcnow()
        expires_at = now + expires_in
        jti = token_id or uuid.uuid4().hex
        claims = {
            "iss": self.issuer,
            "sub": user_id,
            "aud": audience,
            "iat": int(now.timestamp()),
            "exp": int(expires_at.timestamp()),
            "jti": jti,
            "scope": scope,
            "client_id": client_id,
            "role": "authenticated",
        }
        if email:
            claims["email"] = email
        token = jwt.encode(claims, self._secret, algorithm=self.algorithm)
        return token, jti, expires_at


class TokenVerifier:
    """Validates bearer access tokens against a required audience."""

    def __init__(
        self,
        secret: str,
        issuer: str | None = None,
        algorithm: str = "HS256",
        store: TokenStore | None = None,
        leeway: int = 0,
    ):
        self._secret = secret
        self.issuer = issuer
        self.algorithm = algorithm
        self.store = store
        self.leeway = leeway

    def verify(self, access_token: str, required_audience: str) -> TokenClaims:
        """Verify signature, expiry and audience; optionally check revocation.

        Raises:
            InvalidToken: malformed token or bad signature
            ExpiredToken: ``now > exp``
            AudienceMismatch: ``aud`` is not ``required_audience``
            RevokedToken: the store marks the token revoked (or no longer has it)
        """
        payload = self._decode(access_token, required_audience)

        jti = payload.get("jti")
        if self.store is not None:
            row = self.store.get_token(jti) if jti else None
            if row is None or row.revoked:
                raise RevokedToken("Token has been revoked")

        return TokenClaims(
            sub=payload["sub"],
            aud=payload["aud"],
            exp=payload["exp"],
            email=payload.get("email"),
            scope=payload.get("scope", ""),
            client_id=payload.get("client_id"),
            jti=jti,
        )

    def _decode(self, access_token: str, audience: str | list[str]) -> dict:
        options = {"require": ["exp", "sub", "aud"]}
        try:
            return jwt.decode(
                access_token,
                self._secret,
                algorithms=[self.algorithm],
                audience=audience,
                issuer=self.issuer,
                leeway=self.leeway,
                options=options,
            )
        except jwt.ExpiredSignatureError as exc:
            raise ExpiredToken("Token has expired") from exc
        except jwt.InvalidAudienceError as exc:
            raise AudienceMismatch("Token audience does not match this resource") from exc
        except jwt.InvalidTokenError as exc:
            raise InvalidToken(f"Invalid token: {exc}") from exc

    def peek_token_id(self, token: str) -> str | None:
        """Return the ``jti`` of a correctly signed token, ignoring exp and aud.

        Used by revocation, which must accept tokens that are already expired
        or were minted for another resource.
        """
        try:
            payload = jwt.decode(
                token,
                self._secret,
                algorithms=[self.algorithm],
                options={"verify_exp": False, "verify_aud": False, "verify_iss": False},
            )
        except jwt.InvalidTokenError:
            return None
        return payload.get("jti")


class DevTokenVerifier(TokenVerifier):
    """Accepts identity-provider style JWTs for same-origin development.

    These tokens have no row in the token store and may carry the provider's
    generic ``authenticated`` audience. Only wired in when development tokens
    are explicitly enabled for a development deployment.

    OAuth access tokens share the signing secret, so anything carrying our
    ``jti`` or ``client_id`` is refused here and left to TokenVerifier, which
    checks revocation.
    """

    PROVIDER_AUDIENCE = "authenticated"

    def __init__(self, secret: str, algorithm: str = "HS256"):
        super().__init__(secret, issuer=None, algorithm=algorithm, store=None)

    def verify(self, access_token: str, required_audience: str) -> TokenClaims:
        payload = self._decode(access_token, [required_audience, self.PROVIDER_AUDIENCE])
        if payload.get("role") != "authenticated":
            raise InvalidToken("Development token is missing the authenticated role")
        if "jti" in payload or "client_id" in payload:
            raise InvalidToken("OAuth access tokens are not development tokens")
        return TokenClaims(
            sub=payload["sub"],
            aud=payload["aud"],
            exp=payload["exp"],
            email=payload.get("email"),
            scope=payload.get("scope", ""),
        )
