"""
Tests for the AAD service HTTP host.
"""

from urllib.parse import parse_qs, urlsplit

import httpx
import pytest
import respx
from fastapi.testclient import TestClient

from shared.test_helpers import create_id_token, create_id_token_claims, create_token_response
from service_aad.app.main import STATE_COOKIE, create_app, safe_return_path

TOKEN_URL = "https://login.microsoftonline.com/tenant-1/oauth2/v2.0/token"
JWKS_URL = "https://login.microsoftonline.com/tenant-1/discovery/v2.0/keys"


@pytest.fixture
def client(aad_settings):
    """Create test client."""
    app = create_app(aad_settings)
    return TestClient(app)


@pytest.fixture
def disabled_client(settings_factory):
    return TestClient(create_app(settings_factory(enabled=False)))


def _start_sign_in(client, return_to="/dashboard"):
    response = client.get("/auth/aad/init", params={"return_to": return_to}, follow_redirects=False)
    assert response.status_code == 302
    location = response.headers["location"]
    state = parse_qs(urlsplit(location).query)["state"][0]
    return location, state


class TestServiceRoutes:
    """Informational endpoints."""

    def test_root_endpoint(self, client):
        response = client.get("/")
        assert response.status_code == 200
        data = response.json()
        assert data["service"] == "aad"
        assert data["version"] == "1.0.0"
        assert data["provider"]["key"] == "aad"
        assert data["provider"]["name"] == "Microsoft"
        assert data["provider"]["enabled"] is True

    def test_health_check(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        data = response.json()
        assert data["service"] == "aad"
        assert data["status"] == "ok"
        assert data["dependencies"] == {"aad": "enabled"}

    def test_request_id_header(self, client):
        response = client.get("/", headers={"X-Request-ID": "req-123"})
        assert response.headers["X-Request-ID"] == "req-123"


class TestInitRoute:
    """Authorization redirect endpoint."""

    def test_redirects_to_authority(self, client):
        location, state = _start_sign_in(client)

        parts = urlsplit(location)
        query = parse_qs(parts.query)
        assert f"{parts.scheme}://{parts.netloc}{parts.path}" == (
            "https://login.microsoftonline.com/tenant-1/oauth2/v2.0/authorize"
        )
        assert query["redirect_uri"] == ["http://testserver/auth/aad/callback"]
        assert query["client_id"] == ["client-id"]
        assert client.cookies.get(STATE_COOKIE) == state

    def test_disabled_provider(self, disabled_client):
        response = disabled_client.get("/auth/aad/init", follow_redirects=False)

        assert response.status_code == 500
        assert response.json()["code"] == "CONFIGURATION_ERROR"


class TestCallbackRoute:
    """Callback endpoint."""

    def test_sign_in(self, client, signing_key):
        _, state = _start_sign_in(client)
        id_token = create_id_token(signing_key, create_id_token_claims())

        with respx.mock(assert_all_called=True) as router:
            token_route = router.post(TOKEN_URL).mock(
                return_value=httpx.Response(200, json=create_token_response(id_token))
            )
            router.get(JWKS_URL).mock(return_value=httpx.Response(200, json=signing_key.jwks()))

            response = client.get("/auth/aad/callback", params={"code": "auth-code", "state": state})

        assert response.status_code == 200
        data = response.json()
        assert data["authenticated"] is True
        assert data["redirect_to"] == "/dashboard"
        assert data["identity"] == {
            "provider_login": "john.doe@example.com",
            "login": "subject-1@aad",
            "name": "John Doe",
            "email": "john.doe@example.com",
            "groups": None,
        }
        form = parse_qs(token_route.calls.last.request.content.decode("utf-8"))
        assert form["redirect_uri"] == ["http://testserver/auth/aad/callback"]

    def test_state_mismatch(self, client):
        _start_sign_in(client)

        with respx.mock(assert_all_called=False) as router:
            response = client.get("/auth/aad/callback", params={"code": "auth-code", "state": "forged"})

        assert response.status_code == 401
        assert response.json()["code"] == "AUTHENTICATION_ERROR"
        assert response.json()["message"] == "Authentication failed"
        assert router.calls.call_count == 0

    def test_missing_state_cookie(self, client):
        response = client.get("/auth/aad/callback", params={"code": "auth-code", "state": "whatever"})

        assert response.status_code == 401

    def test_failure_does_not_leak_details(self, client, signing_key):
        _, state = _start_sign_in(client)

        with respx.mock(assert_all_called=True) as router:
            router.post(TOKEN_URL).mock(return_value=httpx.Response(400, json={
                "error": "invalid_grant",
                "error_description": "AADSTS70008: expired",
            }))

            response = client.get("/auth/aad/callback", params={"code": "auth-code", "state": state})

        assert response.status_code == 401
        assert response.json()["details"] == {}
        assert "AADSTS" not in response.text


class TestSafeReturnPath:
    """Post-login redirect target sanitizing."""

    @pytest.mark.parametrize("value,expected", [
        ("/dashboard", "/dashboard"),
        ("/projects?id=1", "/projects?id=1"),
        (None, "/"),
        ("", "/"),
        ("https://evil.example.com", "/"),
        ("//evil.example.com", "/"),
        ("/\\evil.example.com", "/"),
    ])
    def test_safe_return_path(self, value, expected):
        assert safe_return_path(value) == expected
