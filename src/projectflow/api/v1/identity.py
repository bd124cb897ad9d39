# Identity router: who is calling.
# Created: 2026-10-12

from __future__ import annotations

from fastapi import APIRouter, Depends

from projectflow.api.deps import require_user
from projectflow.api.oauth2.models import AuthenticatedUser
from projectflow.api.v1.schemas.common import UserResponse

router = APIRouter(tags=["Identity"])


@router.get("/me", response_model=UserResponse)
async def get_me(user: AuthenticatedUser = Depends(require_user)):
    """Return the authenticated caller, via session cookie or bearer token."""
    return UserResponse(
        id=user.id,
        email=user.email,
        username=user.username,
        auth_method=user.auth_method,
        scopes=sorted(user.scopes),
    )
