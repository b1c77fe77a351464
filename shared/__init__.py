"""
Shared utilities for the AAD authentication service.

This package aggregates common building blocks consumed by the service:

- config: Service and provider configuration via pydantic-settings
- logging: Structured logging with correlation context and redaction
- metrics: Prometheus metrics helpers
- errors: Canonical error types and responses
- base_service: FastAPI application scaffolding
- test_helpers: RSA key and signed-token factories for tests

Do not import from service_* packages into shared/.
"""
