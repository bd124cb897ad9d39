# Development token router.
# Created: 2026-10-12
#
# Mints identity-provider style JWTs for the signed-in browser user so the MCP
# endpoint can be exercised from the same origin. Refuses to do anything
# outside a development deployment with dev tokens enabled.

from __future__ import annotations

import logging
from datetime import timedelta

import jwt
from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from projectflow.api.deps import require_user
from projectflow.api.oauth2.models import utcnow

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Development"])

DEV_TOKEN_TTL = timedelta(hours=1)


@router.get("/mcp/token")
async def mint_dev_token(request: Request):
    settings = request.app.state.settings
    if not settings.dev_tokens_active:
        return JSONResponse(
            status_code=403,
            content={"error": "Development tokens are disabled in this environment"},
        )
    user = require_user(request)

    now = utcnow()
    claims = {
        "sub": user.id,
        "role": "authenticated",
        "aud": settings.resource_url,
        "iat": int(now.timestamp()),
        "exp": int((now + DEV_TOKEN_TTL).timestamp()),
    }
    if user.email:
        claims["email"] = user.email
    token = jwt.encode(claims, settings.require_jwt_secret(), algorithm=settings.jwt_algorithm)

    logger.warning("Minted development token for user %s", user.id)
    return {
        "access_token": token,
        "token_type": "Bearer",
        "expires_in": int(DEV_TOKEN_TTL.total_seconds()),
        "resource": settings.resource_url,
    }
