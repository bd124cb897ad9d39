# Tests for the OAuth2 HTTP endpoints.
# Created: 2026-10-12

import re
from urllib.parse import parse_qs, urlsplit

import pytest
from conftest import (
    NATIVE_REDIRECT,
    REDIRECT_URI,
    RESOURCE,
    SESSION_SECRET,
    make_pkce_pair,
    make_settings,
)
from fastapi.testclient import TestClient

from projectflow.api.serve import create_api_app
from projectflow.security.session_tokens import create_session_token


def _query(url: str) -> dict:
    return {k: v[0] for k, v in parse_qs(urlsplit(url).query).items()}


def _register(client, redirect_uri=REDIRECT_URI) -> str:
    resp = client.post("/oauth/register", json={"redirect_uris": [redirect_uri]})
    assert resp.status_code == 201
    return resp.json()["client_id"]


def _authorize_params(client_id, challenge, redirect_uri=REDIRECT_URI, **extra):
    params = {
        "client_id": client_id,
        "redirect_uri": redirect_uri,
        "response_type": "code",
        "code_challenge": challenge,
        "code_challenge_method": "S256",
        "scope": "projects:read tasks:write",
        "state": "xyz",
    }
    params.update(extra)
    return params


def _get_code(client, client_id, challenge, redirect_uri=REDIRECT_URI) -> str:
    params = _authorize_params(client_id, challenge, redirect_uri)
    resp = client.get("/oauth/authorize", params=params)
    assert resp.status_code == 302
    location = resp.headers["location"]
    assert location.startswith(redirect_uri)
    return _query(location)["code"]


@pytest.fixture
def tokens(client, login):
    login()
    client_id = _register(client)
    verifier, challenge = make_pkce_pair()
    code = _get_code(client, client_id, challenge)
    resp = client.post(
        "/oauth/token",
        data={
            "grant_type": "authorization_code",
            "code": code,
            "code_verifier": verifier,
            "redirect_uri": REDIRECT_URI,
            "client_id": client_id,
        },
    )
    assert resp.status_code == 200
    client.cookies.clear()
    return resp.json()


# ===================== Registration =====================


class TestRegister:
    def test_register_returns_public_client(self, client):
        resp = client.post(
            "/oauth/register",
            json={"redirect_uris": [REDIRECT_URI], "client_name": "Tool"},
        )
        assert resp.status_code == 201
        data = resp.json()
        assert re.fullmatch(r"mcp-client-\d+", data["client_id"])
        assert data["token_endpoint_auth_method"] == "none"
        assert data["redirect_uris"] == [REDIRECT_URI]
        assert data["client_name"] == "Tool"
        assert isinstance(data["client_id_issued_at"], int)
        assert "client_secret" not in data

    def test_client_ids_unique(self, client):
        ids = {client.post("/oauth/register", json={}).json()["client_id"] for _ in range(20)}
        assert len(ids) == 20

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"content": b"not json", "headers": {"content-type": "application/json"}},
            {"content": b""},
            {"json": ["a", "list"]},
            {"json": {"redirect_uris": "https://not-a-list"}},
        ],
    )
    def test_malformed_body_still_registers(self, client, kwargs):
        resp = client.post("/oauth/register", **kwargs)
        assert resp.status_code == 201
        assert resp.json()["redirect_uris"] == []

    def test_registration_info(self, client):
        resp = client.get("/oauth/register")
        assert resp.status_code == 200
        assert resp.json()["registration_endpoint"].endswith("/oauth/register")


# ===================== Authorize =====================


class TestAuthorizeEndpoint:
    def test_redirects_with_code_and_state(self, client, login):
        login()
        client_id = _register(client)
        _, challenge = make_pkce_pair()
        resp = client.get("/oauth/authorize", params=_authorize_params(client_id, challenge))
        assert resp.status_code == 302
        params = _query(resp.headers["location"])
        assert params["state"] == "xyz"
        assert params["code"]

    def test_anonymous_user_sent_to_login(self, client):
        client_id = _register(client)
        _, challenge = make_pkce_pair()
        resp = client.get("/oauth/authorize", params=_authorize_params(client_id, challenge))
        assert resp.status_code == 302
        location = resp.headers["location"]
        assert location.startswith("/auth/login?")
        assert "/oauth/authorize?" in _query(location)["redirect"]

    def test_missing_redirect_uri_is_json(self, client, login):
        login()
        resp = client.get("/oauth/authorize", params={"client_id": "mcp-client-1"})
        assert resp.status_code == 400
        assert resp.json()["error"] == "invalid_request"

    def test_bad_method_redirects_with_error(self, client, login):
        login()
        client_id = _register(client)
        _, challenge = make_pkce_pair()
        params = _authorize_params(client_id, challenge, code_challenge_method="plain")
        resp = client.get("/oauth/authorize", params=params)
        assert resp.status_code == 302
        query = _query(resp.headers["location"])
        assert query["error"] == "invalid_request"
        assert query["state"] == "xyz"
        assert "code" not in query

    def test_native_client_gets_deep_link(self, client, login):
        login()
        client_id = _register(client, NATIVE_REDIRECT)
        _, challenge = make_pkce_pair()
        code = _get_code(client, client_id, challenge, NATIVE_REDIRECT)
        assert code


class TestConsent:
    @pytest.fixture
    def consent_client(self, storage, users):
        app = create_api_app(make_settings(require_consent=True), storage=storage, users=users)
        return TestClient(app, base_url="https://flow.example", follow_redirects=False)

    @pytest.fixture
    def consent_login(self, consent_client):
        token = create_session_token(SESSION_SECRET, "user-alice")
        consent_client.cookies.set("projectflow_session", token)

    def test_consent_page_rendered(self, consent_client, consent_login):
        client_id = _register(consent_client)
        _, challenge = make_pkce_pair()
        resp = consent_client.get(
            "/oauth/authorize",
            params=_authorize_params(client_id, challenge, state='"><script>'),
        )
        assert resp.status_code == 200
        assert "text/html" in resp.headers["content-type"]
        assert "tasks:write" in resp.text
        assert "<script>" not in resp.text

    def test_allow_issues_code(self, consent_client, consent_login):
        client_id = _register(consent_client)
        _, challenge = make_pkce_pair()
        form = _authorize_params(client_id, challenge, action="allow")
        resp = consent_client.post("/oauth/authorize/consent", data=form)
        assert resp.status_code == 302
        assert "code" in _query(resp.headers["location"])

    def test_deny_redirects_access_denied_to_deep_link(self, consent_client, consent_login):
        client_id = _register(consent_client, NATIVE_REDIRECT)
        _, challenge = make_pkce_pair()
        form = _authorize_params(client_id, challenge, NATIVE_REDIRECT, action="deny")
        resp = consent_client.post("/oauth/authorize/consent", data=form)
        assert resp.status_code == 302
        location = resp.headers["location"]
        assert location.startswith(NATIVE_REDIRECT + "?")
        query = _query(location)
        assert query["error"] == "access_denied"
        assert query["state"] == "xyz"
        assert "code" not in query

    def test_consent_without_session_bounces_to_login(self, consent_client):
        client_id = _register(consent_client)
        _, challenge = make_pkce_pair()
        form = _authorize_params(client_id, challenge, action="allow")
        resp = consent_client.post("/oauth/authorize/consent", data=form)
        assert resp.status_code == 302
        assert resp.headers["location"].startswith("/auth/login?")


# ===================== Token endpoint =====================


class TestTokenEndpoint:
    def test_exchange_form_encoded(self, tokens):
        assert tokens["token_type"] == "Bearer"
        assert tokens["expires_in"] == 3600
        assert tokens["access_token"]
        assert tokens["refresh_token"]

    def test_exchange_json(self, client, login):
        login()
        client_id = _register(client)
        verifier, challenge = make_pkce_pair()
        code = _get_code(client, client_id, challenge)
        resp = client.post(
            "/oauth/token",
            json={
                "grant_type": "authorization_code",
                "code": code,
                "code_verifier": verifier,
                "redirect_uri": REDIRECT_URI,
            },
        )
        assert resp.status_code == 200
        assert resp.headers["cache-control"] == "no-store"

    def test_second_exchange_is_invalid_grant(self, client, login):
        login()
        client_id = _register(client)
        verifier, challenge = make_pkce_pair()
        code = _get_code(client, client_id, challenge)
        form = {
            "grant_type": "authorization_code",
            "code": code,
            "code_verifier": verifier,
            "redirect_uri": REDIRECT_URI,
        }
        assert client.post("/oauth/token", data=form).status_code == 200
        resp = client.post("/oauth/token", data=form)
        assert resp.status_code == 400
        assert resp.json()["error"] == "invalid_grant"

    def test_wrong_verifier(self, client, login):
        login()
        client_id = _register(client)
        _, challenge = make_pkce_pair()
        code = _get_code(client, client_id, challenge)
        resp = client.post(
            "/oauth/token",
            data={
                "grant_type": "authorization_code",
                "code": code,
                "code_verifier": "wrong",
                "redirect_uri": REDIRECT_URI,
            },
        )
        assert resp.status_code == 400
        assert resp.json()["error"] == "invalid_grant"

    def test_missing_verifier_names_field(self, client):
        resp = client.post("/oauth/token", data={"grant_type": "authorization_code", "code": "c"})
        assert resp.status_code == 400
        body = resp.json()
        assert body["error"] == "invalid_request"
        assert "code_verifier" in body["error_description"]

    def test_missing_grant_type(self, client):
        resp = client.post("/oauth/token", data={})
        assert resp.status_code == 400
        assert "grant_type" in resp.json()["error_description"]

    def test_unsupported_grant_type(self, client):
        resp = client.post("/oauth/token", data={"grant_type": "client_credentials"})
        assert resp.status_code == 400
        assert resp.json()["error"] == "unsupported_grant_type"

    def test_invalid_json_body(self, client):
        resp = client.post(
            "/oauth/token", content=b"{", headers={"content-type": "application/json"}
        )
        assert resp.status_code == 400
        assert resp.json()["error"] == "invalid_request"

    def test_refresh(self, client, tokens):
        resp = client.post(
            "/oauth/token",
            data={"grant_type": "refresh_token", "refresh_token": tokens["refresh_token"]},
        )
        assert resp.status_code == 200
        rotated = resp.json()
        assert rotated["refresh_token"] != tokens["refresh_token"]

        replay = client.post(
            "/oauth/token",
            data={"grant_type": "refresh_token", "refresh_token": tokens["refresh_token"]},
        )
        assert replay.status_code == 400
        assert replay.json()["error"] == "invalid_grant"

    def test_refresh_requires_token(self, client):
        resp = client.post("/oauth/token", data={"grant_type": "refresh_token"})
        assert resp.status_code == 400
        assert resp.json()["error"] == "invalid_request"


class TestRevokeEndpoint:
    def test_revoke_access_token_then_resource_rejects(self, client, tokens):
        headers = {"Authorization": f"Bearer {tokens['access_token']}"}
        assert client.get("/api/v1/me", headers=headers).status_code == 200

        resp = client.post("/oauth/revoke", data={"token": tokens["access_token"]})
        assert resp.status_code == 200

        resp = client.get("/api/v1/me", headers=headers)
        assert resp.status_code == 401
        assert resp.json() == {"error": "Unauthorized"}

    def test_revoke_twice_and_unknown_are_200(self, client, tokens):
        for token in (tokens["refresh_token"], tokens["refresh_token"], "unknown", ""):
            assert client.post("/oauth/revoke", data={"token": token}).status_code == 200

    def test_revoke_json_body(self, client, tokens):
        resp = client.post("/oauth/revoke", json={"token": tokens["refresh_token"]})
        assert resp.status_code == 200
        assert resp.json() == {"revoked": True}


# ===================== Callback bridge =====================


class TestCallback:
    def test_code_forwarded_to_deep_link(self, client):
        resp = client.get("/oauth/callback", params={"code": "abc", "state": "s1"})
        assert resp.status_code == 302
        location = resp.headers["location"]
        assert location.startswith(NATIVE_REDIRECT + "?")
        assert _query(location) == {"code": "abc", "state": "s1"}

    def test_error_forwarded_verbatim(self, client):
        state = "opaque state/with+chars"
        resp = client.get(
            "/oauth/callback",
            params={"error": "access_denied", "error_description": "User said no", "state": state},
        )
        query = _query(resp.headers["location"])
        assert query["error"] == "access_denied"
        assert query["error_description"] == "User said no"
        assert query["state"] == state
        assert "code" not in query

    def test_missing_code(self, client):
        resp = client.get("/oauth/callback")
        assert resp.status_code == 302
        assert _query(resp.headers["location"])["error"] == "invalid_request"

    def test_internal_failure_is_json_500(self, client, monkeypatch):
        import projectflow.api.v1.oauth2 as mod

        def boom(*args, **kwargs):
            raise RuntimeError("kaput")

        monkeypatch.setattr(mod, "native_callback", boom)
        resp = client.get("/oauth/callback", params={"code": "abc"})
        assert resp.status_code == 500
        assert resp.json() == {
            "error": "server_error",
            "error_description": "Callback processing failed",
        }


# ===================== Token debug =====================


class TestTokenTest:
    def test_describes_token(self, client, tokens):
        resp = client.get(
            "/oauth/test", headers={"Authorization": f"Bearer {tokens['access_token']}"}
        )
        assert resp.status_code == 200
        data = resp.json()
        assert data["valid"] is True
        assert data["user_id"] == "user-alice"
        assert data["token_info"]["scope"] == "projects:read tasks:write"
        assert data["token_info"]["revoked"] is False
        assert 0 < data["token_info"]["expires_in_seconds"] <= 3600

    def test_requires_bearer(self, client):
        resp = client.get("/oauth/test")
        assert resp.status_code == 401
        assert resp.json() == {"error": "Unauthorized"}


# ===================== End to end =====================


class TestEndToEnd:
    def test_register_authorize_exchange_access(self, client, login):
        client_id = _register(client)
        assert re.fullmatch(r"mcp-client-\d+", client_id)

        login("user-alice")
        verifier, challenge = make_pkce_pair()
        code = _get_code(client, client_id, challenge)
        client.cookies.clear()

        token_resp = client.post(
            "/oauth/token",
            data={
                "grant_type": "authorization_code",
                "code": code,
                "code_verifier": verifier,
                "redirect_uri": REDIRECT_URI,
                "client_id": client_id,
            },
        )
        access_token = token_resp.json()["access_token"]

        me = client.get("/api/v1/me", headers={"Authorization": f"Bearer {access_token}"})
        assert me.status_code == 200
        assert me.json()["id"] == "user-alice"
        assert me.json()["auth_method"] == "bearer"

    def test_login_bounce_preserves_authorize_url(self, client, login):
        client_id = _register(client)
        _, challenge = make_pkce_pair()
        params = _authorize_params(client_id, challenge, resource=RESOURCE)
        resp = client.get("/oauth/authorize", params=params)
        bounce = _query(resp.headers["location"])["redirect"]
        assert _query(bounce) == params

        login()
        resp = client.get(bounce)
        assert resp.status_code == 302
        assert "code" in _query(resp.headers["location"])

