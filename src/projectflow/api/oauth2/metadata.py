# Discovery documents (RFC 8414 and RFC 9728).
# Created: 2026-10-12

from __future__ import annotations

from projectflow.api.oauth2.models import CODE_CHALLENGE_METHOD, GRANT_TYPES, SUPPORTED_SCOPES
from projectflow.config import Settings


def authorization_server_metadata(settings: Settings) -> dict:
    """RFC 8414 document. Raises ConfigurationError without a base URL."""
    issuer = settings.issuer
    return {
        "issuer": issuer,
        "authorization_endpoint": f"{issuer}/oauth/authorize",
        "token_endpoint": f"{issuer}/oauth/token",
        "revocation_endpoint": f"{issuer}/oauth/revoke",
        "registration_endpoint": f"{issuer}/oauth/register",
        "response_types_supported": ["code"],
        "grant_types_supported": list(GRANT_TYPES),
        "code_challenge_methods_supported": [CODE_CHALLENGE_METHOD],
        "scopes_supported": list(SUPPORTED_SCOPES),
        "token_endpoint_auth_methods_supported": ["none"],
        "revocation_endpoint_auth_methods_supported": ["none"],
    }


def protected_resource_metadata(settings: Settings) -> dict:
    """RFC 9728 document for the MCP resource."""
    issuer = settings.issuer
    return {
        "resource": settings.resource_url,
        "authorization_servers": [issuer],
        "scopes_supported": list(SUPPORTED_SCOPES),
        "bearer_methods_supported": ["header"],
        "resource_documentation": f"{issuer}/docs",
    }
