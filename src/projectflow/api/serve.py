"""FastAPI application factory and server entry point for ``projectflow serve``.

``create_api_app`` wires the authorization server, request authenticator and
token janitor onto ``app.state``; routers and dependencies read them from there
so tests can build isolated apps with their own storage and users.
"""

from __future__ import annotations

import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from projectflow import __version__
from projectflow.api.handlers import install_error_handlers
from projectflow.api.oauth2.authenticator import (
    BearerTokenStrategy,
    DevJWTStrategy,
    RequestAuthenticator,
    SessionCookieStrategy,
)
from projectflow.api.oauth2.janitor import TokenJanitor
from projectflow.api.oauth2.server import AuthorizationServer
from projectflow.api.oauth2.storage import TokenStore
from projectflow.api.oauth2.tokens import DevTokenVerifier
from projectflow.api.v1 import mount_routers
from projectflow.api.v1.gates import GateRunner, NullGateRunner
from projectflow.config import Settings, get_settings
from projectflow.security.sessions import (
    InMemoryUserDirectory,
    SignedCookieSessionProvider,
    UserDirectory,
)

logger = logging.getLogger(__name__)


def build_authenticator(
    settings: Settings,
    server: AuthorizationServer,
    sessions: SignedCookieSessionProvider,
) -> RequestAuthenticator:
    """Session cookie first, then OAuth bearer, then (development only) IdP JWTs."""
    strategies = [
        SessionCookieStrategy(sessions),
        BearerTokenStrategy(lambda: server.verifier, lambda: settings.resource_url),
    ]
    if settings.dev_tokens_active:
        logger.warning("Development JWT authentication is enabled")
        strategies.append(
            DevJWTStrategy(
                lambda: DevTokenVerifier(settings.require_jwt_secret(), settings.jwt_algorithm),
                lambda: settings.resource_url,
            )
        )
    return RequestAuthenticator(strategies)


def create_api_app(
    settings: Settings | None = None,
    *,
    storage: TokenStore | None = None,
    users: UserDirectory | None = None,
    gate_runner: GateRunner | None = None,
) -> FastAPI:
    """Build the FastAPI application."""
    settings = settings or get_settings()

    app = FastAPI(
        title="ProjectFlow API",
        description="OAuth 2.1 authorization server and MCP resource API.",
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
    )

    server = AuthorizationServer(settings, storage=storage)
    sessions = SignedCookieSessionProvider(
        settings.effective_session_secret,
        users if users is not None else InMemoryUserDirectory(),
        cookie_name=settings.session_cookie_name,
        ttl_hours=settings.session_ttl_hours,
    )

    app.state.settings = settings
    app.state.oauth_server = server
    app.state.session_provider = sessions
    app.state.authenticator = build_authenticator(settings, server, sessions)
    app.state.janitor = TokenJanitor(server.storage)
    app.state.gate_runner = gate_runner or NullGateRunner()

    if settings.cors_allowed_origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=settings.cors_allowed_origins,
            allow_credentials=True,
            allow_methods=["GET", "POST", "OPTIONS"],
            allow_headers=["Authorization", "Content-Type", "X-Correlation-ID"],
        )

    install_error_handlers(app)
    mount_routers(app)
    return app


def run_api_server(host: str = "127.0.0.1", port: int = 8000, dev: bool = False) -> None:
    """Start the API server with uvicorn."""
    import uvicorn

    settings = get_settings()
    logger.info(
        "ProjectFlow API listening on http://%s:%d (issuer %s)", host, port, settings.base_url
    )

    if dev:
        uvicorn.run(
            "projectflow.api.serve:create_api_app",
            factory=True,
            host=host,
            port=port,
            reload=True,
            log_level="debug",
        )
    else:
        uvicorn.run(create_api_app(settings), host=host, port=port, log_config=None)
