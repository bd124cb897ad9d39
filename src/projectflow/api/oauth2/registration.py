# Dynamic client registration (RFC 7591).
# Created: 2026-10-12
#
# All clients are public and PKCE-only, so registration never fails and
# nothing is persisted: the registry only remembers clients for the life of
# the process so authorize can check their redirect URIs.

from __future__ import annotations

import logging
import re
import threading
import time

from projectflow.api.oauth2.models import GRANT_TYPES, OAuthClient

logger = logging.getLogger(__name__)

CLIENT_ID_PREFIX = "mcp-client-"
_CLIENT_ID_RE = re.compile(rf"^{CLIENT_ID_PREFIX}\d+$")


class ClientRegistry:
    """Ephemeral registry of dynamically registered clients."""

    def __init__(self):
        self._clients: dict[str, OAuthClient] = {}
        self._lock = threading.Lock()
        self._last_stamp = 0

    def _next_client_id(self) -> str:
        # Millisecond timestamps, bumped when two calls land in the same ms.
        with self._lock:
            stamp = max(time.time_ns() // 1_000_000, self._last_stamp + 1)
            self._last_stamp = stamp
        return f"{CLIENT_ID_PREFIX}{stamp}"

    def register(self, metadata: object) -> OAuthClient:
        """Register a client from a (possibly malformed) JSON body."""
        body = metadata if isinstance(metadata, dict) else {}

        redirect_uris = body.get("redirect_uris")
        if not isinstance(redirect_uris, list):
            redirect_uris = []
        redirect_uris = [uri for uri in redirect_uris if isinstance(uri, str)]

        client_name = body.get("client_name")
        client = OAuthClient(
            client_id=self._next_client_id(),
            client_name=client_name if isinstance(client_name, str) else "",
            redirect_uris=redirect_uris,
            client_id_issued_at=int(time.time()),
        )
        with self._lock:
            self._clients[client.client_id] = client

        logger.info(
            "Registered client %s (%d redirect URIs)", client.client_id, len(redirect_uris)
        )
        return client

    def get(self, client_id: str) -> OAuthClient | None:
        """Look up a client.

        Ids this process did not issue are still accepted when well-formed,
        since registrations do not survive restarts or cross instances.
        """
        with self._lock:
            client = self._clients.get(client_id)
        if client is not None:
            return client
        if _CLIENT_ID_RE.match(client_id or ""):
            return OAuthClient(client_id=client_id)
        return None


def registration_response(client: OAuthClient) -> dict:
    response = {
        "client_id": client.client_id,
        "client_id_issued_at": client.client_id_issued_at,
        "grant_types": list(GRANT_TYPES),
        "response_types": ["code"],
        "redirect_uris": client.redirect_uris,
        "token_endpoint_auth_method": client.token_endpoint_auth_method,
    }
    if client.client_name:
        response["client_name"] = client.client_name
    return response
