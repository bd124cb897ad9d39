# OAuth2 data models.
# Created: 2026-10-12

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum

# Fixed scope vocabulary advertised in discovery metadata.
SUPPORTED_SCOPES: tuple[str, ...] = (
    "projects:read",
    "projects:write",
    "tasks:read",
    "tasks:write",
    "sessions:read",
    "sessions:write",
)

GRANT_TYPES: tuple[str, ...] = ("authorization_code", "refresh_token")
CODE_CHALLENGE_METHOD = "S256"


def utcnow() -> datetime:
    return datetime.now(UTC)


def parse_scope(scope: str | None) -> list[str]:
    """Split a space-delimited scope string, dropping duplicates but keeping order."""
    if not scope:
        return []
    return list(dict.fromkeys(scope.split()))


class TokenKind(str, Enum):
    ACCESS = "access"
    REFRESH = "refresh"


@dataclass
class OAuthClient:
    """Registered public client. Never has a secret."""

    client_id: str
    client_name: str = ""
    redirect_uris: list[str] = field(default_factory=list)
    client_id_issued_at: int = 0
    token_endpoint_auth_method: str = "none"


@dataclass
class AuthorizationCode:
    """Short-lived, single-use authorization code bound to a PKCE challenge."""

    code: str
    user_id: str
    client_id: str
    redirect_uri: str
    code_challenge: str
    scope: str
    audience: str
    expires_at: datetime
    code_challenge_method: str = CODE_CHALLENGE_METHOD
    email: str | None = None
    consumed: bool = False

    def is_expired(self, now: datetime | None = None) -> bool:
        return (now or utcnow()) > self.expires_at


@dataclass
class OAuthToken:
    """One issued token row (access or refresh).

    ``token_id`` is the JWT ``jti`` for access tokens and the SHA-256 of the
    opaque value for refresh tokens; plaintext refresh tokens are never stored.
    """

    token_id: str
    kind: TokenKind
    user_id: str
    client_id: str
    audience: str
    scope: str
    grant_id: str
    expires_at: datetime
    issued_at: datetime = field(default_factory=utcnow)
    revoked: bool = False
    email: str | None = None

    def is_expired(self, now: datetime | None = None) -> bool:
        return (now or utcnow()) > self.expires_at

    def to_dict(self) -> dict:
        return {
            "token_id": self.token_id,
            "kind": self.kind.value,
            "user_id": self.user_id,
            "client_id": self.client_id,
            "audience": self.audience,
            "scope": self.scope,
            "grant_id": self.grant_id,
            "expires_at": self.expires_at.isoformat(),
            "issued_at": self.issued_at.isoformat(),
            "revoked": self.revoked,
            "email": self.email,
        }

    @classmethod
    def from_dict(cls, data: dict) -> OAuthToken:
        return cls(
            token_id=data["token_id"],
            kind=TokenKind(data["kind"]),
            user_id=data["user_id"],
            client_id=data["client_id"],
            audience=data["audience"],
            scope=data.get("scope", ""),
            grant_id=data["grant_id"],
            expires_at=datetime.fromisoformat(data["expires_at"]),
            issued_at=datetime.fromisoformat(data["issued_at"]),
            revoked=data.get("revoked", False),
            email=data.get("email"),
        )


@dataclass(frozen=True)
class AuthenticatedUser:
    """Result of session or bearer authentication. Never persisted."""

    id: str
    email: str | None = None
    username: str | None = None
    scopes: frozenset[str] = frozenset(SUPPORTED_SCOPES)
    auth_method: str = "session"
