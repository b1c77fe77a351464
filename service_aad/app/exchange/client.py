"""
Token endpoint client: authorization-code and client-credentials grants.
"""

from typing import Dict, Any, Optional, Sequence

import httpx
from pydantic import BaseModel, ValidationError

from shared.config import AadSettings
from shared.errors import ConfigurationError, TokenExchangeError
from shared.logging import get_logger
from ..endpoints.resolver import EndpointSet


class TokenSet(BaseModel):
    """Tokens returned by the token endpoint."""
    access_token: str
    id_token: Optional[str] = None
    refresh_token: Optional[str] = None
    token_type: str = "Bearer"
    expires_in: Optional[int] = None
    scope: Optional[str] = None


class TokenExchangeClient:
    """Performs token requests authenticated with client-secret-basic.

    Requests are never retried: authorization codes are single-use and a
    failed client-credentials exchange is handled by the caller.
    """

    def __init__(self, settings: AadSettings, endpoints: EndpointSet):
        if not settings.has_credentials():
            raise ConfigurationError("Client ID and client secret must be configured")

        self.settings = settings
        self.endpoints = endpoints
        self.logger = get_logger("aad.exchange")

    async def exchange_code(self, code: str, redirect_uri: str, scopes: Sequence[str]) -> TokenSet:
        """Redeem an authorization code for an ID token and access token."""
        token_set = await self._request_token(
            {
                "grant_type": "authorization_code",
                "code": code,
                "redirect_uri": redirect_uri,
                "scope": " ".join(scopes),
            },
            grant="authorization_code",
        )

        if not token_set.id_token:
            raise TokenExchangeError("Token response did not include an ID token")

        return token_set

    async def acquire_client_credentials_token(self) -> TokenSet:
        """Obtain an application token scoped to the directory API."""
        return await self._request_token(
            {
                "grant_type": "client_credentials",
                "scope": self.endpoints.graph_default_scope,
            },
            grant="client_credentials",
        )

    async def _request_token(self, data: Dict[str, str], grant: str) -> TokenSet:
        try:
            async with httpx.AsyncClient(timeout=self.settings.http_timeout) as client:
                response = await client.post(
                    self.endpoints.token_url,
                    data=data,
                    auth=(self.settings.client_id, self.settings.secret()),
                    headers={"Accept": "application/json"},
                )
        except httpx.HTTPError as e:
            self.logger.error("Token endpoint unreachable", grant=grant, error=str(e),
                              error_type=type(e).__name__)
            raise TokenExchangeError(
                "Token endpoint unavailable",
                details={"grant": grant, "http_error": str(e)}
            ) from e

        if not response.is_success:
            error = self._parse_error(response)
            self.logger.error(
                "Issue getting authentication token",
                grant=grant,
                status_code=response.status_code,
                error=error.get("error"),
                error_description=error.get("error_description"),
                correlation_id=error.get("correlation_id")
            )
            raise TokenExchangeError(
                f"Token endpoint returned HTTP {response.status_code}",
                details={"grant": grant, **error}
            )

        try:
            token_set = TokenSet.model_validate(response.json())
        except (ValueError, ValidationError) as e:
            self.logger.error("Unparsable token response", grant=grant, error=str(e))
            raise TokenExchangeError(
                "Unparsable token response",
                details={"grant": grant}
            ) from e

        self.logger.info(
            "Token exchange succeeded",
            grant=grant,
            expires_in=token_set.expires_in,
            has_id_token=token_set.id_token is not None,
            has_refresh_token=token_set.refresh_token is not None
        )
        return token_set

    @staticmethod
    def _parse_error(response: httpx.Response) -> Dict[str, Any]:
        """Extract the RFC 6749 error fields from an error response."""
        try:
            body = response.json()
        except ValueError:
            return {"error": "invalid_response"}

        if not isinstance(body, dict):
            return {"error": "invalid_response"}

        return {
            key: body[key]
            for key in ("error", "error_description", "error_codes", "correlation_id")
            if key in body
        }
