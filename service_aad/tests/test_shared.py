"""
Tests for the shared logging, error and metrics helpers.
"""

from prometheus_client import CollectorRegistry

from shared.errors import (
    AuthenticationError,
    ConfigurationError,
    EnrichmentError,
    ProtocolError,
    TokenExchangeError,
    TokenValidationError,
)
from shared.logging import REDACTED, redact_sensitive_values
from shared.metrics import MetricsCollector, get_metrics_collector


class TestRedaction:
    """Secrets never reach the log output."""

    def test_sensitive_keys_are_masked(self):
        event = redact_sensitive_values(None, "info", {
            "event": "Token exchange succeeded",
            "access_token": "eyJ...",
            "Client_Secret": "hunter2",
            "code": "auth-code",
            "grant": "authorization_code",
        })

        assert event["access_token"] == REDACTED
        assert event["Client_Secret"] == REDACTED
        assert event["code"] == REDACTED
        assert event["grant"] == "authorization_code"

    def test_missing_values_stay_none(self):
        assert redact_sensitive_values(None, "info", {"id_token": None})["id_token"] is None


class TestErrors:
    """Error taxonomy."""

    def test_status_codes(self):
        assert ConfigurationError().status_code == 500
        assert ProtocolError().status_code == 401
        assert TokenExchangeError().status_code == 401
        assert EnrichmentError().status_code == 502
        assert AuthenticationError().status_code == 401

    def test_protocol_subclasses(self):
        assert isinstance(TokenExchangeError(), ProtocolError)
        assert TokenValidationError().code == "TOKEN_VALIDATION_ERROR"

    def test_to_response(self):
        response = AuthenticationError().to_response(request_id="req-1")

        assert response.model_dump() == {
            "request_id": "req-1",
            "code": "AUTHENTICATION_ERROR",
            "message": "Authentication failed",
            "details": {},
        }


class TestMetricsCollector:
    """Prometheus metrics."""

    def test_private_registry(self):
        registry = CollectorRegistry()
        metrics = MetricsCollector("aad", registry=registry)

        metrics.record_http_request("GET", "/health", 200, 0.01)
        metrics.record_group_fetch("ok", 3)
        metrics.record_jwks_refresh("ok", 0.2)

        assert registry.get_sample_value(
            "http_requests_total", {"method": "GET", "endpoint": "/health", "status_code": "200"}
        ) == 1
        assert registry.get_sample_value("group_fetch_pages_sum") == 3
        assert registry.get_sample_value("jwks_refresh_duration_seconds_count") == 1

    def test_default_registry_collector_is_shared(self):
        assert get_metrics_collector("aad") is get_metrics_collector("aad")
