"""
Shared fixtures for the AAD service tests.
"""

import secrets
from typing import Dict, List, Optional

import pytest
from prometheus_client import CollectorRegistry

from shared.config import AadSettings
from shared.errors import ProtocolError
from shared.metrics import MetricsCollector
from shared.test_helpers import generate_signing_key
from service_aad.app.endpoints.resolver import resolve_endpoints
from service_aad.app.jwks.client import reset_jwks_clients


@pytest.fixture(autouse=True)
def isolated_jwks_clients():
    """Every test starts with an empty JWKS client registry."""
    reset_jwks_clients()
    yield
    reset_jwks_clients()


@pytest.fixture(scope="session")
def signing_key():
    """RSA signing key shared by the whole session."""
    return generate_signing_key("test-key-1")


@pytest.fixture
def settings_factory():
    """Build AadSettings for an enabled single-tenant app."""

    def factory(**overrides) -> AadSettings:
        values = {
            "enabled": True,
            "client_id": "client-id",
            "client_secret": "client-secret",
            "tenant_id": "tenant-1",
        }
        values.update(overrides)
        return AadSettings(**values)

    return factory


@pytest.fixture
def aad_settings(settings_factory):
    return settings_factory()


@pytest.fixture
def endpoints(aad_settings):
    return resolve_endpoints(aad_settings)


@pytest.fixture
def registry():
    return CollectorRegistry()


@pytest.fixture
def metrics(registry):
    """Metrics collector bound to a private registry."""
    return MetricsCollector("aad", registry=registry)


class FakeInitContext:
    """In-memory InitContext."""

    def __init__(self, callback_url: str = "https://host.example.com/oauth2/callback/aad"):
        self.callback_url = callback_url
        self.states: List[str] = []
        self.redirects: List[str] = []

    def generate_csrf_state(self) -> str:
        state = secrets.token_urlsafe(16)
        self.states.append(state)
        return state

    def redirect_to(self, url: str) -> None:
        self.redirects.append(url)


class FakeCallbackContext:
    """In-memory CallbackContext recording what the flow asked of the host."""

    def __init__(
        self,
        params: Optional[Dict[str, str]] = None,
        callback_url: str = "https://host.example.com/oauth2/callback/aad",
        csrf_valid: bool = True,
    ):
        self.params = {"code": "auth-code", "state": "state-1"} if params is None else params
        self.callback_url = callback_url
        self.csrf_valid = csrf_valid
        self.authenticated = []
        self.redirected_to_requested_page = False

    def verify_csrf_state(self) -> None:
        if not self.csrf_valid:
            raise ProtocolError("CSRF state mismatch")

    def get_request_parameter(self, name: str) -> Optional[str]:
        return self.params.get(name)

    def authenticate(self, identity) -> None:
        self.authenticated.append(identity)

    def redirect_to_requested_page(self) -> None:
        self.redirected_to_requested_page = True


@pytest.fixture
def init_context():
    return FakeInitContext()


@pytest.fixture
def callback_context_factory():
    return FakeCallbackContext


@pytest.fixture
def init_context_factory():
    return FakeInitContext
