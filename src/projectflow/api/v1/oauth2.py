# OAuth2 router: register, authorize, token, revoke, callback.
# Created: 2026-10-12
#
# Mounted at the site root; discovery metadata advertises these paths.

from __future__ import annotations

import html
import logging
from dataclasses import asdict
from urllib.parse import urlencode

from fastapi import APIRouter, Request
from fastapi.responses import HTMLResponse, JSONResponse
from pydantic import ValidationError as SchemaError

from projectflow.api.deps import get_current_user
from projectflow.api.handlers import NO_STORE
from projectflow.api.oauth2.authenticator import extract_bearer_token
from projectflow.api.oauth2.models import GRANT_TYPES, SUPPORTED_SCOPES, utcnow
from projectflow.api.oauth2.redirects import native_callback
from projectflow.api.oauth2.registration import registration_response
from projectflow.api.oauth2.server import ApprovedRequest, AuthorizationRequest
from projectflow.api.v1.schemas.oauth2 import (
    RegistrationResponse,
    RevokeRequest,
    TokenInfo,
    TokenRequest,
    TokenResponse,
    TokenTestResponse,
)
from projectflow.errors import UnauthorizedError, UnsupportedGrantType, ValidationError

logger = logging.getLogger(__name__)

router = APIRouter(tags=["OAuth2"])

_CONSENT_HTML = """<!DOCTYPE html>
<html><head><title>ProjectFlow Authorization</title>
<style>
body {{ font-family: system-ui; max-width: 480px; margin: 40px auto; padding: 20px; }}
.btn {{ padding: 10px 24px; border: none; border-radius: 6px; cursor: pointer; font-size: 16px; }}
.allow {{ background: #2563eb; color: white; }} .allow:hover {{ background: #1d4ed8; }}
.deny {{ background: #e5e7eb; color: #374151; margin-left: 12px; }}
.scopes {{ background: #f3f4f6; padding: 12px; border-radius: 8px; margin: 16px 0; }}
.scope {{ display: inline-block; background: #dbeafe; padding: 4px 8px;
  border-radius: 4px; margin: 2px; font-size: 14px; }}
</style></head><body>
<h2>Authorize {client_name}</h2>
<p>Signed in as {user}. This application wants to access your ProjectFlow data.</p>
<div class="scopes"><strong>Requested permissions:</strong><br>{scope_badges}</div>
<form method="POST" action="/oauth/authorize/consent">
{hidden_fields}
<button type="submit" name="action" value="allow" class="btn allow">Allow</button>
<button type="submit" name="action" value="deny" class="btn deny">Deny</button>
</form></body></html>"""

_AUTHORIZE_PARAMS = (
    "client_id",
    "redirect_uri",
    "response_type",
    "code_challenge",
    "code_challenge_method",
    "scope",
    "state",
    "resource",
)


def _authorization_request(params) -> AuthorizationRequest:
    values = {name: str(params.get(name) or "") for name in _AUTHORIZE_PARAMS}
    values["response_type"] = values["response_type"] or "code"
    return AuthorizationRequest(**values)


def _render_consent(approved: ApprovedRequest, req: AuthorizationRequest, user) -> HTMLResponse:
    fields = {name: getattr(req, name) for name in _AUTHORIZE_PARAMS}
    fields["scope"] = approved.scope
    hidden = "\n".join(
        f'<input type="hidden" name="{name}" value="{html.escape(value)}">'
        for name, value in fields.items()
    )
    badges = " ".join(
        f'<span class="scope">{html.escape(s)}</span>' for s in approved.scope.split()
    )
    page = _CONSENT_HTML.format(
        client_name=html.escape(approved.client.client_name or approved.client.client_id),
        user=html.escape(user.email or user.username or user.id),
        scope_badges=badges,
        hidden_fields=hidden,
    )
    return HTMLResponse(page, headers={"Cache-Control": "no-store"})


async def _read_params(request: Request) -> dict:
    """Token and revoke endpoints accept form-encoded (standard) or JSON bodies."""
    content_type = request.headers.get("content-type", "")
    if content_type.startswith("application/json"):
        try:
            data = await request.json()
        except ValueError as exc:
            raise ValidationError("Request body is not valid JSON") from exc
        if not isinstance(data, dict):
            raise ValidationError("Request body must be a JSON object")
        return data
    form = await request.form()
    return {key: str(value) for key, value in form.items()}


def _parse(schema, data: dict):
    try:
        return schema.model_validate(data)
    except SchemaError as exc:
        first = exc.errors()[0]
        field = ".".join(str(p) for p in first["loc"]) or None
        raise ValidationError(first["msg"], field=field) from exc


# ---------------------------------------------------------------------------
# Registration
# ---------------------------------------------------------------------------


@router.post("/oauth/register", status_code=201, response_model=RegistrationResponse)
async def register_client(request: Request):
    """Dynamic client registration. Never fails."""
    try:
        body = await request.json()
    except ValueError:
        logger.debug("Registration body was not JSON; registering with defaults")
        body = {}
    client = request.app.state.oauth_server.clients.register(body)
    return JSONResponse(status_code=201, content=registration_response(client))


@router.get("/oauth/register")
async def registration_info(request: Request):
    issuer = request.app.state.settings.issuer
    return {
        "message": "POST client metadata here to register a public OAuth client",
        "registration_endpoint": f"{issuer}/oauth/register",
        "grant_types_supported": list(GRANT_TYPES),
        "token_endpoint_auth_methods_supported": ["none"],
        "scopes_supported": list(SUPPORTED_SCOPES),
    }


# ---------------------------------------------------------------------------
# Authorize
# ---------------------------------------------------------------------------


@router.get("/oauth/authorize")
async def authorize(request: Request):
    """Start or complete the authorization code flow."""
    server = request.app.state.oauth_server
    req = _authorization_request(request.query_params)
    user = get_current_user(request)

    result = server.validate_authorization(req, user, return_to=str(request.url))
    if not isinstance(result, ApprovedRequest):
        return result.to_response()

    if request.app.state.settings.require_consent:
        return _render_consent(result, req, user)
    return server.issue_code(result, user).to_response()


@router.post("/oauth/authorize/consent")
async def authorize_consent(request: Request):
    """Process consent form submission."""
    server = request.app.state.oauth_server
    form = await request.form()
    req = _authorization_request(form)
    user = get_current_user(request)

    return_to = f"{request.url_for('authorize')}?{urlencode(asdict(req))}"
    result = server.validate_authorization(req, user, return_to=return_to)
    if not isinstance(result, ApprovedRequest):
        return result.to_response()

    if form.get("action") != "allow":
        logger.info("User %s denied client %s", user.id, req.client_id)
        return server.deny(result).to_response()
    return server.issue_code(result, user).to_response()


# ---------------------------------------------------------------------------
# Token endpoint
# ---------------------------------------------------------------------------


@router.post("/oauth/token", response_model=TokenResponse)
async def token_exchange(request: Request):
    """Exchange authorization code or refresh token for access token."""
    body = _parse(TokenRequest, await _read_params(request))
    server = request.app.state.oauth_server

    if not body.grant_type:
        raise ValidationError("grant_type is required", field="grant_type")

    if body.grant_type == "authorization_code":
        for field in ("code", "code_verifier"):
            if not getattr(body, field):
                raise ValidationError(f"{field} is required", field=field)
        result = server.exchange(
            code=body.code,
            code_verifier=body.code_verifier,
            redirect_uri=body.redirect_uri,
            client_id=body.client_id,
        )
    elif body.grant_type == "refresh_token":
        if not body.refresh_token:
            raise ValidationError("refresh_token is required", field="refresh_token")
        result = server.refresh(body.refresh_token, client_id=body.client_id, scope=body.scope)
    else:
        raise UnsupportedGrantType(body.grant_type)

    token = TokenResponse.model_validate(result)
    return JSONResponse(content=token.model_dump(exclude_none=True), headers=NO_STORE)


@router.post("/oauth/revoke")
async def revoke_token(request: Request):
    """Revoke an access or refresh token. Always 200 (RFC 7009)."""
    body = _parse(RevokeRequest, await _read_params(request))
    revoked = request.app.state.oauth_server.revoke(body.token or "")
    return {"revoked": revoked}


# ---------------------------------------------------------------------------
# Native client bridge and diagnostics
# ---------------------------------------------------------------------------


@router.get("/oauth/callback")
async def oauth_callback(request: Request):
    """Forward authorization results to the native client's deep link."""
    params = request.query_params
    try:
        result = native_callback(
            request.app.state.settings.native_callback_url,
            code=params.get("code"),
            error=params.get("error"),
            error_description=params.get("error_description"),
            state=params.get("state"),
        )
    except Exception:
        logger.exception("OAuth callback processing failed")
        return JSONResponse(
            status_code=500,
            content={
                "error": "server_error",
                "error_description": "Callback processing failed",
            },
        )
    return result.to_response()


@router.get("/oauth/test", response_model=TokenTestResponse)
async def token_test(request: Request):
    """Describe the caller's bearer token."""
    token = extract_bearer_token(request)
    if token is None:
        raise UnauthorizedError("Bearer token required")

    server = request.app.state.oauth_server
    claims = server.verifier.verify(token, request.app.state.settings.resource_url)
    row = server.storage.get_token(claims.jti)
    if row is None:
        raise UnauthorizedError("Token row vanished")

    now = utcnow()
    return TokenTestResponse(
        user_id=claims.sub,
        token_info=TokenInfo(
            client_id=row.client_id,
            scope=row.scope,
            expires_at=row.expires_at.isoformat(),
            issued_at=row.issued_at.isoformat(),
            revoked=row.revoked,
            expires_in_seconds=max(0, int((row.expires_at - now).total_seconds())),
        ),
    )
