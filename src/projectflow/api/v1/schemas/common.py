# Common API response schemas.
# Created: 2026-10-12

from __future__ import annotations

from pydantic import BaseModel


class APIResponse(BaseModel):
    """Base response wrapper."""

    model_config = {"from_attributes": True}


class UserResponse(APIResponse):
    """The authenticated caller."""

    id: str
    email: str | None = None
    username: str | None = None
    auth_method: str
    scopes: list[str]


class CleanupResponse(APIResponse):
    success: bool = True
    message: str
    deletedCount: int
    timestamp: str


class GateRunRequest(BaseModel):
    gate_id: str
    project_id: str | None = None


class GateRunResponse(APIResponse):
    gate_id: str
    status: str
    detail: str | None = None
