# Error taxonomy for the authorization layer.
# Created: 2026-10-12
#
# Every error carries an HTTP status and an OAuth-style error code so the
# handlers in projectflow.api.handlers can render it without a lookup table.
# Token-class errors (InvalidToken and subclasses) are distinct internally
# for logging only; at the resource boundary they all become a bare 401.

from __future__ import annotations


class ProjectFlowError(Exception):
    """Base class for all domain errors."""

    status_code: int = 500
    error: str = "server_error"

    def __init__(self, message: str = "", *, field: str | None = None):
        super().__init__(message)
        self.message = message
        self.field = field


class ConfigurationError(ProjectFlowError):
    """Deployment misconfiguration (missing base URL, missing secret)."""

    status_code = 500
    error = "server_error"


class ValidationError(ProjectFlowError):
    """Malformed caller input. ``field`` names the offending parameter."""

    status_code = 400
    error = "invalid_request"


class UnauthorizedError(ProjectFlowError):
    """Missing or invalid credential."""

    status_code = 401
    error = "unauthorized"


class ServerError(ProjectFlowError):
    """Unexpected internal fault."""

    status_code = 500
    error = "server_error"


class OAuthError(ProjectFlowError):
    """Token-endpoint error rendered as ``{error, error_description}``."""

    status_code = 400

    def __init__(self, error: str, message: str = ""):
        super().__init__(message)
        self.error = error


class InvalidGrant(OAuthError):
    """Unknown, expired, consumed or mismatched code or refresh token."""

    def __init__(self, message: str = "Invalid grant"):
        super().__init__("invalid_grant", message)


class UnsupportedGrantType(OAuthError):
    def __init__(self, grant_type: str):
        super().__init__(
            "unsupported_grant_type", f"Grant type '{grant_type}' is not supported"
        )


class InvalidToken(ProjectFlowError):
    """Bearer token failed signature or structural checks."""

    status_code = 401
    error = "invalid_token"


class ExpiredToken(InvalidToken):
    pass


class RevokedToken(InvalidToken):
    pass


class AudienceMismatch(InvalidToken):
    pass


class InsufficientScope(OAuthError):
    """Authenticated caller lacks every scope a route accepts."""

    status_code = 403

    def __init__(self, message: str = "Insufficient scope"):
        super().__init__("insufficient_scope", message)
