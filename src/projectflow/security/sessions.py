# Browser sessions backed by signed cookies.
# Created: 2026-10-12
#
# Login itself happens at the identity provider; once it has set the session
# cookie, this module turns the cookie back into a user.

from __future__ import annotations

import logging
import threading
from typing import Protocol

from fastapi import Request

from projectflow.api.oauth2.models import AuthenticatedUser
from projectflow.errors import ConfigurationError
from projectflow.security.session_tokens import create_session_token, verify_session_token

logger = logging.getLogger(__name__)


class UserDirectory(Protocol):
    """Looks up a user's profile by id."""

    def get_user(self, user_id: str) -> AuthenticatedUser | None: ...


class InMemoryUserDirectory:
    """Process-local user directory, seeded by the embedding application."""

    def __init__(self, users: list[AuthenticatedUser] | None = None):
        self._users: dict[str, AuthenticatedUser] = {}
        self._lock = threading.Lock()
        for user in users or []:
            self.add(user)

    def add(self, user: AuthenticatedUser) -> None:
        with self._lock:
            self._users[user.id] = user

    def get_user(self, user_id: str) -> AuthenticatedUser | None:
        with self._lock:
            return self._users.get(user_id)


class SignedCookieSessionProvider:
    """Resolves the session cookie to a user through a UserDirectory."""

    def __init__(
        self,
        secret: str | None,
        users: UserDirectory,
        cookie_name: str = "projectflow_session",
        ttl_hours: int = 24,
    ):
        self._secret = secret
        self.users = users
        self.cookie_name = cookie_name
        self.ttl_hours = ttl_hours

    def resolve(self, request: Request) -> AuthenticatedUser | None:
        token = request.cookies.get(self.cookie_name)
        if not token or not self._secret:
            return None

        user_id = verify_session_token(token, self._secret)
        if user_id is None:
            logger.debug("Rejected invalid or expired session cookie")
            return None

        user = self.users.get_user(user_id)
        if user is None:
            logger.debug("Session cookie names unknown user %s", user_id)
        return user

    def create_token(self, user_id: str) -> str:
        if not self._secret:
            raise ConfigurationError("No session secret configured")
        return create_session_token(self._secret, user_id, self.ttl_hours)
