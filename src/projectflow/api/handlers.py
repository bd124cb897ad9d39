# Exception handlers and correlation-id middleware.
# Created: 2026-10-12
#
# Token-class failures are deliberately indistinguishable to the caller:
# expiry, bad signature, revocation and audience mismatch all render the same
# 401 body. The distinction survives only in the logs.

from __future__ import annotations

import logging
import uuid

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from projectflow.errors import (
    ConfigurationError,
    InvalidToken,
    OAuthError,
    ProjectFlowError,
    UnauthorizedError,
    ValidationError,
)
from projectflow.logging_setup import correlation_id_var

logger = logging.getLogger(__name__)

CORRELATION_HEADER = "X-Correlation-ID"
NO_STORE = {"Cache-Control": "no-store", "Pragma": "no-cache"}


def _correlation_id(request: Request) -> str:
    return getattr(request.state, "correlation_id", None) or correlation_id_var.get()


def unauthorized_response(request: Request) -> JSONResponse:
    """Bare 401 with a pointer to the protected-resource metadata."""
    headers = {}
    settings = getattr(request.app.state, "settings", None)
    if settings is not None and settings.base_url:
        headers["WWW-Authenticate"] = (
            f'Bearer resource_metadata="{settings.resource_metadata_url}"'
        )
    return JSONResponse(status_code=401, content={"error": "Unauthorized"}, headers=headers)


def server_error_response(request: Request) -> JSONResponse:
    return JSONResponse(
        status_code=500,
        content={
            "error": "server_error",
            "error_description": "Internal server error",
            "correlation_id": _correlation_id(request),
        },
    )


async def _oauth_error(request: Request, exc: OAuthError) -> JSONResponse:
    logger.info("%s %s -> %s: %s", request.method, request.url.path, exc.error, exc.message)
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.error, "error_description": exc.message},
        headers=NO_STORE,
    )


async def _validation_error(request: Request, exc: ValidationError) -> JSONResponse:
    description = exc.message
    if exc.field and exc.field not in description:
        description = f"{exc.field}: {description}"
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.error, "error_description": description},
        headers=NO_STORE,
    )


async def _unauthorized(request: Request, exc: ProjectFlowError) -> JSONResponse:
    logger.info("Unauthorized %s %s (%s)", request.method, request.url.path, type(exc).__name__)
    return unauthorized_response(request)


async def _configuration_error(request: Request, exc: ConfigurationError) -> JSONResponse:
    logger.error("Configuration error on %s: %s", request.url.path, exc.message)
    return server_error_response(request)


async def _domain_error(request: Request, exc: ProjectFlowError) -> JSONResponse:
    logger.error("Unhandled %s on %s: %s", type(exc).__name__, request.url.path, exc.message)
    return server_error_response(request)


async def _unexpected_error(request: Request, exc: Exception) -> JSONResponse:
    logger.exception(
        "Unexpected error on %s %s [%s]", request.method, request.url.path, _correlation_id(request)
    )
    return server_error_response(request)


async def correlation_middleware(request: Request, call_next):
    correlation_id = request.headers.get(CORRELATION_HEADER) or uuid.uuid4().hex
    request.state.correlation_id = correlation_id
    reset = correlation_id_var.set(correlation_id)
    try:
        response = await call_next(request)
    finally:
        correlation_id_var.reset(reset)
    response.headers[CORRELATION_HEADER] = correlation_id
    return response


def install_error_handlers(app: FastAPI) -> None:
    """Register the exception handlers and correlation middleware on *app*."""
    app.add_exception_handler(OAuthError, _oauth_error)
    app.add_exception_handler(ValidationError, _validation_error)
    app.add_exception_handler(InvalidToken, _unauthorized)
    app.add_exception_handler(UnauthorizedError, _unauthorized)
    app.add_exception_handler(ConfigurationError, _configuration_error)
    app.add_exception_handler(ProjectFlowError, _domain_error)
    app.add_exception_handler(Exception, _unexpected_error)
    app.middleware("http")(correlation_middleware)
