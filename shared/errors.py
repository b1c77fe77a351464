"""
Shared error handling for the AAD authentication service.

Error taxonomy:

- ConfigurationError: missing or invalid settings. Fatal, never retried.
- ProtocolError: the authority rejected or returned something unusable
  (token endpoint errors, validation failures). Fatal to the request.
- EnrichmentError: best-effort group sync failed. Logged, never fatal.
- AuthenticationError: the single generic failure reported to the host.
"""

from typing import Dict, Any, Optional
from pydantic import BaseModel, Field


class ErrorResponse(BaseModel):
    """Standard error response format."""

    request_id: Optional[str] = None
    code: str
    message: str
    details: Dict[str, Any] = Field(default_factory=dict)


class IdentityProviderException(Exception):
    """Base exception for the identity provider adapter."""

    status_code = 400

    def __init__(self, code: str, message: str, details: Optional[Dict[str, Any]] = None):
        self.code = code
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_response(self, request_id: Optional[str] = None) -> ErrorResponse:
        """Convert to error response."""
        return ErrorResponse(
            request_id=request_id,
            code=self.code,
            message=self.message,
            details=self.details
        )


class ConfigurationError(IdentityProviderException):
    """Missing or invalid provider settings."""

    status_code = 500

    def __init__(self, message: str = "Invalid configuration", details: Optional[Dict[str, Any]] = None):
        super().__init__("CONFIGURATION_ERROR", message, details)


class ProtocolError(IdentityProviderException):
    """OAuth2/OIDC protocol failures."""

    status_code = 401

    def __init__(self, message: str = "Protocol error", details: Optional[Dict[str, Any]] = None,
                 code: str = "PROTOCOL_ERROR"):
        super().__init__(code, message, details)


class TokenExchangeError(ProtocolError):
    """The token endpoint returned an error or an unusable response."""

    def __init__(self, message: str = "Token exchange failed", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, details, code="TOKEN_EXCHANGE_ERROR")


class TokenValidationError(ProtocolError):
    """ID token signature or claims verification failed."""

    def __init__(self, message: str = "Token validation failed", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, details, code="TOKEN_VALIDATION_ERROR")


class EnrichmentError(IdentityProviderException):
    """Group sync could not complete."""

    status_code = 502

    def __init__(self, message: str = "Group enrichment failed", details: Optional[Dict[str, Any]] = None):
        super().__init__("ENRICHMENT_ERROR", message, details)


class AuthenticationError(IdentityProviderException):
    """Authentication-related errors."""

    status_code = 401

    def __init__(self, message: str = "Authentication failed", details: Optional[Dict[str, Any]] = None):
        super().__init__("AUTHENTICATION_ERROR", message, details)
