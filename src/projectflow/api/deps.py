# Shared FastAPI dependencies for the API layer.
# Created: 2026-10-12

from __future__ import annotations

from fastapi import Request

from projectflow.api.oauth2.models import AuthenticatedUser
from projectflow.errors import InsufficientScope, UnauthorizedError


def get_current_user(request: Request) -> AuthenticatedUser | None:
    """Authenticate the request once and cache the result on ``request.state``."""
    if not hasattr(request.state, "user"):
        request.state.user = request.app.state.authenticator.authenticate(request)
    return request.state.user


def require_user(request: Request) -> AuthenticatedUser:
    """FastAPI dependency for protected routes; raises a bare 401 otherwise."""
    user = get_current_user(request)
    if user is None:
        raise UnauthorizedError("Authentication required")
    return user


def require_scope(*scopes: str):
    """FastAPI dependency that checks the caller's scopes.

    Usage::

        @router.post("/gates/run", dependencies=[Depends(require_scope("tasks:write"))])
        async def run_gate(...): ...

    The caller must hold at least one of ``scopes``. Session users hold every
    scope; bearer users hold what their token grants.
    """

    async def _check(request: Request) -> None:
        user = require_user(request)
        if not user.scopes & set(scopes):
            raise InsufficientScope(f"Requires scope: {' or '.join(sorted(scopes))}")

    return _check
