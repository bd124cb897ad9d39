# OAuth2 schemas.
# Created: 2026-10-12

from __future__ import annotations

from pydantic import BaseModel, ConfigDict


class TokenRequest(BaseModel):
    """Token exchange or refresh request (form-encoded or JSON)."""

    model_config = ConfigDict(extra="ignore")

    grant_type: str | None = None
    code: str | None = None
    code_verifier: str | None = None
    client_id: str | None = None
    redirect_uri: str | None = None
    refresh_token: str | None = None
    scope: str | None = None


class TokenResponse(BaseModel):
    """OAuth2 token response."""

    access_token: str
    refresh_token: str | None = None
    token_type: str = "Bearer"
    expires_in: int
    scope: str


class RevokeRequest(BaseModel):
    """Token revocation request (RFC 7009)."""

    model_config = ConfigDict(extra="ignore")

    token: str | None = None
    token_type_hint: str | None = None


class RegistrationResponse(BaseModel):
    """RFC 7591 client information response."""

    client_id: str
    client_id_issued_at: int
    grant_types: list[str]
    response_types: list[str]
    redirect_uris: list[str]
    token_endpoint_auth_method: str = "none"
    client_name: str | None = None


class TokenInfo(BaseModel):
    client_id: str
    scope: str
    expires_at: str
    issued_at: str
    revoked: bool
    expires_in_seconds: int


class TokenTestResponse(BaseModel):
    """Debug view of the caller's bearer token."""

    valid: bool = True
    user_id: str
    token_info: TokenInfo
