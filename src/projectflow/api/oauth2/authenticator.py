# Request authentication for protected routes.
# Created: 2026-10-12
#
# Strategies are tried in a fixed order and the first one that yields a user
# wins:
#
#   1. SessionCookieStrategy  - first-party browser session
#   2. BearerTokenStrategy    - OAuth access token in the Authorization header
#   3. DevJWTStrategy         - identity-provider JWT, development only
#
# A strategy that fails (bad cookie, bad token) returns None so the next one
# still gets its turn. Missing credentials are never an error here.

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Protocol

from fastapi import Request

from projectflow.api.oauth2.models import AuthenticatedUser
from projectflow.api.oauth2.tokens import DevTokenVerifier, TokenVerifier
from projectflow.errors import InvalidToken

if TYPE_CHECKING:
    from collections.abc import Callable

    from projectflow.security.sessions import SignedCookieSessionProvider

logger = logging.getLogger(__name__)


def extract_bearer_token(request: Request) -> str | None:
    header = request.headers.get("Authorization", "")
    scheme, _, value = header.partition(" ")
    if scheme.lower() != "bearer":
        return None
    return value.strip() or None


class AuthStrategy(Protocol):
    name: str

    def resolve(self, request: Request) -> AuthenticatedUser | None: ...


class SessionCookieStrategy:
    name = "session"

    def __init__(self, sessions: SignedCookieSessionProvider):
        self.sessions = sessions

    def resolve(self, request: Request) -> AuthenticatedUser | None:
        return self.sessions.resolve(request)


class BearerTokenStrategy:
    name = "bearer"

    def __init__(self, verifier: Callable[[], TokenVerifier], audience: Callable[[], str]):
        # Both are resolved per request so a misconfigured deployment still
        # boots and reports ConfigurationError on use.
        self._verifier = verifier
        self._audience = audience

    def resolve(self, request: Request) -> AuthenticatedUser | None:
        token = extract_bearer_token(request)
        if token is None:
            return None
        try:
            claims = self._verifier().verify(token, self._audience())
        except InvalidToken as exc:
            logger.debug("Bearer token rejected (%s): %s", type(exc).__name__, exc.message)
            return None
        return AuthenticatedUser(
            id=claims.sub,
            email=claims.email,
            scopes=claims.scopes,
            auth_method=self.name,
        )


class DevJWTStrategy(BearerTokenStrategy):
    """Accepts identity-provider session JWTs for same-origin testing."""

    name = "dev_jwt"

    def __init__(self, verifier: Callable[[], DevTokenVerifier], audience: Callable[[], str]):
        super().__init__(verifier, audience)

    def resolve(self, request: Request) -> AuthenticatedUser | None:
        user = super().resolve(request)
        if user is None:
            return None
        logger.warning("Request authenticated with a development token for user %s", user.id)
        # Identity-provider tokens carry no OAuth scopes; they act as the user.
        return AuthenticatedUser(id=user.id, email=user.email, auth_method=self.name)


class RequestAuthenticator:
    """Entry point used by every protected route."""

    def __init__(self, strategies: list[AuthStrategy]):
        self.strategies = list(strategies)

    def authenticate(self, request: Request) -> AuthenticatedUser | None:
        for strategy in self.strategies:
            user = strategy.resolve(request)
            if user is not None:
                return user
        return None
