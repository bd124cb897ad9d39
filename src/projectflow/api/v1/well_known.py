# Discovery router: RFC 8414 and RFC 9728 metadata.
# Created: 2026-10-12

from __future__ import annotations

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from projectflow.api.oauth2.metadata import (
    authorization_server_metadata,
    protected_resource_metadata,
)

router = APIRouter(tags=["Discovery"])

_CACHE_HEADERS = {"Cache-Control": "public, max-age=3600"}


@router.get("/.well-known/oauth-authorization-server")
async def oauth_authorization_server(request: Request):
    return JSONResponse(
        authorization_server_metadata(request.app.state.settings), headers=_CACHE_HEADERS
    )


@router.get("/.well-known/oauth-protected-resource")
@router.get("/.well-known/oauth-protected-resource/api/mcp")
@router.get("/api/mcp/.well-known/oauth-protected-resource")
async def oauth_protected_resource(request: Request):
    """Protected-resource metadata, also served at the MCP-path-scoped locations."""
    return JSONResponse(
        protected_resource_metadata(request.app.state.settings), headers=_CACHE_HEADERS
    )
