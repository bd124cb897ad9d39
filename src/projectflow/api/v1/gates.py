# Gates router: authorization precondition for running project gates.
# Created: 2026-10-12
#
# Executing the gate's commands belongs to the injected GateRunner; this
# router only decides whether the caller may ask for it.

from __future__ import annotations

import logging
from typing import Protocol

from fastapi import APIRouter, Depends, Request

from projectflow.api.deps import require_scope, require_user
from projectflow.api.oauth2.models import AuthenticatedUser
from projectflow.api.v1.schemas.common import GateRunRequest, GateRunResponse

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Gates"])


class GateRunner(Protocol):
    def run(
        self, user_id: str, gate_id: str, project_id: str | None = None
    ) -> GateRunResponse: ...


class NullGateRunner:
    """Default runner for deployments without a gate backend."""

    def run(self, user_id: str, gate_id: str, project_id: str | None = None) -> GateRunResponse:
        return GateRunResponse(
            gate_id=gate_id, status="skipped", detail="No gate runner configured"
        )


@router.post(
    "/gates/run",
    response_model=GateRunResponse,
    dependencies=[Depends(require_scope("tasks:write"))],
)
async def run_gate(
    body: GateRunRequest,
    request: Request,
    user: AuthenticatedUser = Depends(require_user),
):
    logger.info("User %s (%s) running gate %s", user.id, user.auth_method, body.gate_id)
    runner: GateRunner = request.app.state.gate_runner
    return runner.run(user.id, body.gate_id, body.project_id)
