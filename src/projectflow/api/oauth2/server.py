# OAuth 2.1 authorization server with PKCE.
# Created: 2026-10-12
#
# Authorization code flow for public clients (RFC 6749 + RFC 7636, S256 only).
# Authorize steps return Redirect/JsonError values; token-endpoint failures
# raise OAuthError subclasses that the API handlers render.

from __future__ import annotations

import base64
import hashlib
import hmac
import logging
import re
import secrets
import uuid
from dataclasses import dataclass
from datetime import timedelta

from projectflow.api.oauth2.models import (
    CODE_CHALLENGE_METHOD,
    SUPPORTED_SCOPES,
    AuthenticatedUser,
    AuthorizationCode,
    OAuthClient,
    OAuthToken,
    TokenKind,
    parse_scope,
    utcnow,
)
from projectflow.api.oauth2.redirects import (
    AuthorizeResult,
    JsonError,
    Redirect,
    build_redirect_url,
    error_redirect,
    is_valid_redirect_uri,
)
from projectflow.api.oauth2.registration import ClientRegistry
from projectflow.api.oauth2.storage import OAuthStorage, TokenStore
from projectflow.api.oauth2.tokens import TokenSigner, TokenVerifier
from projectflow.config import Settings
from projectflow.errors import InvalidGrant, OAuthError

logger = logging.getLogger(__name__)

# RFC 7636 4.2: 43-128 characters of the unreserved set.
CODE_CHALLENGE_RE = re.compile(r"[A-Za-z0-9._~-]{43,128}")


def compute_s256_challenge(code_verifier: str) -> str:
    """BASE64URL(SHA256(verifier)) without padding."""
    digest = hashlib.sha256(code_verifier.encode()).digest()
    return base64.urlsafe_b64encode(digest).rstrip(b"=").decode("ascii")


def hash_refresh_token(refresh_token: str) -> str:
    return hashlib.sha256(refresh_token.encode()).hexdigest()


@dataclass(frozen=True)
class AuthorizationRequest:
    """Raw query parameters of an authorize call."""

    client_id: str = ""
    redirect_uri: str = ""
    response_type: str = "code"
    code_challenge: str = ""
    code_challenge_method: str = ""
    scope: str = ""
    state: str = ""
    resource: str = ""


@dataclass(frozen=True)
class ApprovedRequest:
    """An authorize request that passed every check and may be issued a code."""

    client: OAuthClient
    redirect_uri: str
    code_challenge: str
    scope: str
    audience: str
    state: str = ""


class AuthorizationServer:
    """OAuth2 authorization server with PKCE."""

    def __init__(
        self,
        settings: Settings,
        storage: TokenStore | None = None,
        clients: ClientRegistry | None = None,
    ):
        self.settings = settings
        self.storage = storage if storage is not None else OAuthStorage(settings.token_store_path)
        self.clients = clients or ClientRegistry()
        self._signer: TokenSigner | None = None
        self._verifier: TokenVerifier | None = None

    @property
    def access_token_ttl(self) -> timedelta:
        return timedelta(seconds=self.settings.access_token_ttl_seconds)

    @property
    def refresh_token_ttl(self) -> timedelta:
        return timedelta(days=self.settings.refresh_token_ttl_days)

    @property
    def code_ttl(self) -> timedelta:
        return timedelta(minutes=self.settings.code_ttl_minutes)

    @property
    def signer(self) -> TokenSigner:
        if self._signer is None:
            self._signer = TokenSigner(
                self.settings.require_jwt_secret(),
                issuer=self.settings.issuer,
                algorithm=self.settings.jwt_algorithm,
            )
        return self._signer

    @property
    def verifier(self) -> TokenVerifier:
        if self._verifier is None:
            self._verifier = TokenVerifier(
                self.settings.require_jwt_secret(),
                issuer=self.settings.issuer,
                algorithm=self.settings.jwt_algorithm,
                store=self.storage,
            )
        return self._verifier

    # ------------------------------------------------------------------
    # Authorize
    # ------------------------------------------------------------------

    def validate_authorization(
        self,
        req: AuthorizationRequest,
        user: AuthenticatedUser | None,
        return_to: str,
    ) -> AuthorizeResult | ApprovedRequest:
        """Run the authorize checks in order.

        Returns an ApprovedRequest when a code may be issued, otherwise the
        redirect (or, lacking a trustworthy redirect target, the JSON error)
        that ends the attempt.
        """
        if not is_valid_redirect_uri(req.redirect_uri):
            return JsonError("invalid_request", "redirect_uri is missing or invalid")

        if user is None:
            login = build_redirect_url(self.settings.login_path, {"redirect": return_to})
            return Redirect(login)

        def fail(error: str, description: str) -> Redirect:
            logger.info("Authorize rejected for client %s: %s", req.client_id or "-", error)
            return error_redirect(req.redirect_uri, error, description, req.state)

        client = self.clients.get(req.client_id)
        if client is None:
            return fail("invalid_client", "Unknown client_id")

        if client.redirect_uris and req.redirect_uri not in client.redirect_uris:
            # Never redirect to an unregistered target (RFC 6749 4.1.2.1).
            return JsonError("invalid_request", "redirect_uri is not registered for this client")

        if req.response_type != "code":
            return fail("unsupported_response_type", "Only response_type=code is supported")

        if not req.code_challenge:
            return fail("invalid_request", "code_challenge is required")
        if not CODE_CHALLENGE_RE.fullmatch(req.code_challenge):
            return fail("invalid_request", "code_challenge must be 43-128 unreserved characters")
        if req.code_challenge_method != CODE_CHALLENGE_METHOD:
            return fail("invalid_request", "code_challenge_method must be S256")

        requested = parse_scope(req.scope) or list(SUPPORTED_SCOPES)
        unknown = [s for s in requested if s not in SUPPORTED_SCOPES]
        if unknown:
            return fail("invalid_scope", f"Unsupported scope: {' '.join(unknown)}")

        audience = self.settings.resource_url
        if req.resource and req.resource.rstrip("/") != audience:
            return fail("invalid_target", "resource does not match this server's MCP resource")

        return ApprovedRequest(
            client=client,
            redirect_uri=req.redirect_uri,
            code_challenge=req.code_challenge,
            scope=" ".join(requested),
            audience=audience,
            state=req.state,
        )

    def issue_code(self, approved: ApprovedRequest, user: AuthenticatedUser) -> Redirect:
        """Mint a single-use code and redirect back to the client."""
        code = secrets.token_urlsafe(32)
        self.storage.store_code(
            AuthorizationCode(
                code=code,
                user_id=user.id,
                client_id=approved.client.client_id,
                redirect_uri=approved.redirect_uri,
                code_challenge=approved.code_challenge,
                scope=approved.scope,
                audience=approved.audience,
                expires_at=utcnow() + self.code_ttl,
                email=user.email,
            )
        )
        logger.info(
            "Issued authorization code %s... to client %s for user %s",
            code[:8],
            approved.client.client_id,
            user.id,
        )
        return Redirect(
            build_redirect_url(approved.redirect_uri, {"code": code, "state": approved.state or None})
        )

    def deny(self, approved: ApprovedRequest) -> Redirect:
        return error_redirect(
            approved.redirect_uri,
            "access_denied",
            "The user denied the authorization request",
            approved.state,
        )

    # ------------------------------------------------------------------
    # Token endpoint
    # ------------------------------------------------------------------

    def _issue_pair(
        self,
        signer: TokenSigner,
        *,
        user_id: str,
        client_id: str,
        audience: str,
        scope: str,
        email: str | None,
        grant_id: str,
    ) -> dict:
        now = utcnow()
        access_token, jti, access_expires = signer.sign(
            user_id,
            audience,
            client_id=client_id,
            scope=scope,
            expires_in=self.access_token_ttl,
            email=email,
            now=now,
        )
        refresh_token = secrets.token_urlsafe(48)

        common = dict(
            user_id=user_id,
            client_id=client_id,
            audience=audience,
            scope=scope,
            grant_id=grant_id,
            issued_at=now,
            email=email,
        )
        self.storage.store_tokens(
            OAuthToken(token_id=jti, kind=TokenKind.ACCESS, expires_at=access_expires, **common),
            OAuthToken(
                token_id=hash_refresh_token(refresh_token),
                kind=TokenKind.REFRESH,
                expires_at=now + self.refresh_token_ttl,
                **common,
            ),
        )
        return {
            "access_token": access_token,
            "refresh_token": refresh_token,
            "token_type": "Bearer",
            "expires_in": int(self.access_token_ttl.total_seconds()),
            "scope": scope,
        }

    def exchange(
        self,
        code: str,
        code_verifier: str,
        redirect_uri: str | None = None,
        client_id: str | None = None,
    ) -> dict:
        """Exchange an authorization code + verifier for tokens.

        Raises InvalidGrant. A rejected attempt does not spend the code.
        """
        # Fail before touching the store so a bad signer config cannot burn a code.
        signer = self.signer

        def check(auth_code: AuthorizationCode) -> None:
            if auth_code.is_expired():
                raise InvalidGrant("Authorization code has expired")
            if client_id and client_id != auth_code.client_id:
                raise InvalidGrant("client_id does not match the authorization code")
            if redirect_uri != auth_code.redirect_uri:
                raise InvalidGrant("redirect_uri does not match the authorization request")
            if not hmac.compare_digest(
                compute_s256_challenge(code_verifier).encode(), auth_code.code_challenge.encode()
            ):
                raise InvalidGrant("PKCE verification failed")

        auth_code = self.storage.consume_code(code, check)

        result = self._issue_pair(
            signer,
            user_id=auth_code.user_id,
            client_id=auth_code.client_id,
            audience=auth_code.audience,
            scope=auth_code.scope,
            email=auth_code.email,
            grant_id=uuid.uuid4().hex,
        )
        logger.info(
            "Exchanged code %s... for tokens (client %s, user %s)",
            code[:8],
            auth_code.client_id,
            auth_code.user_id,
        )
        return result

    def refresh(
        self,
        refresh_token: str,
        client_id: str | None = None,
        scope: str | None = None,
    ) -> dict:
        """Rotate a refresh token and issue a fresh access token.

        ``scope`` may narrow, never widen, the original grant.
        """
        signer = self.signer
        narrowed = parse_scope(scope)

        def check(token: OAuthToken) -> None:
            if token.is_expired():
                raise InvalidGrant("Refresh token has expired")
            if client_id and client_id != token.client_id:
                raise InvalidGrant("client_id does not match the refresh token")
            if narrowed and not set(narrowed) <= set(token.scope.split()):
                raise OAuthError("invalid_scope", "Requested scope exceeds the original grant")

        old = self.storage.consume_refresh_token(hash_refresh_token(refresh_token), check)

        result = self._issue_pair(
            signer,
            user_id=old.user_id,
            client_id=old.client_id,
            audience=old.audience,
            scope=" ".join(narrowed) if narrowed else old.scope,
            email=old.email,
            grant_id=old.grant_id,
        )
        logger.info("Rotated refresh token for client %s, user %s", old.client_id, old.user_id)
        return result

    def revoke(self, token: str) -> bool:
        """Revoke an access or refresh token. Unknown tokens are not an error.

        Revoking a refresh token revokes every token of its grant.
        """
        if not token:
            return False

        jti = self.verifier.peek_token_id(token)
        if jti is not None:
            revoked = self.storage.revoke_token(jti)
            logger.info("Revoked access token %s... (%s)", jti[:8], "ok" if revoked else "noop")
            return revoked

        row = self.storage.get_token(hash_refresh_token(token))
        if row is None or row.kind is not TokenKind.REFRESH:
            return False
        count = self.storage.revoke_grant(row.grant_id)
        logger.info("Revoked grant %s... (%d tokens)", row.grant_id[:8], count)
        return count > 0
