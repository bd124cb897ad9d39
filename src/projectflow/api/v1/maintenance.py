# Maintenance router: scheduled token cleanup.
# Created: 2026-10-12

from __future__ import annotations

import hmac
import logging

from fastapi import APIRouter, Request

from projectflow.api.oauth2.authenticator import extract_bearer_token
from projectflow.api.oauth2.models import utcnow
from projectflow.api.v1.schemas.common import CleanupResponse
from projectflow.errors import UnauthorizedError

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Maintenance"])


def _check_cron_secret(request: Request) -> None:
    secret = request.app.state.settings.cron_secret
    if not secret:
        return
    presented = extract_bearer_token(request) or ""
    if not hmac.compare_digest(presented.encode(), secret.encode()):
        logger.warning("Rejected cleanup call with a bad cron secret")
        raise UnauthorizedError("Invalid cron secret")


@router.get("/cron/cleanup-tokens", response_model=CleanupResponse)
@router.post("/cron/cleanup-tokens", response_model=CleanupResponse)
# Older schedulers still call the refresh-tokens path.
@router.get("/cron/refresh-tokens", response_model=CleanupResponse)
@router.post("/cron/refresh-tokens", response_model=CleanupResponse)
async def cleanup_tokens(request: Request):
    """Delete expired and revoked tokens. Called by an external scheduler."""
    _check_cron_secret(request)
    deleted = request.app.state.janitor.cleanup()
    return CleanupResponse(
        message=f"Cleaned up {deleted} expired tokens",
        deletedCount=deleted,
        timestamp=utcnow().isoformat(),
    )
