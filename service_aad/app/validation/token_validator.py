"""
ID token validation for the AAD authentication flow.
"""

from typing import Dict, Any, List, Optional, Union

import httpx
from jose import jwk, jwt
from jose.exceptions import JOSEError, JWTError
from pydantic import BaseModel, ConfigDict, ValidationError

from shared.config import AadSettings
from shared.errors import ProtocolError, TokenValidationError
from shared.logging import get_logger
from shared.metrics import MetricsCollector, get_metrics_collector
from ..endpoints.resolver import EndpointSet
from ..jwks.client import JWKSClient, get_jwks_client

# AAD signs ID tokens with RS256; any other header alg is refused before key lookup.
EXPECTED_ALGORITHM = "RS256"

REQUIRED_CLAIMS = ("iss", "iat", "nbf", "exp", "sub", "tid")
NAME_CLAIMS = ("name", "preferred_username")


class ClaimsSet(BaseModel):
    """Verified ID token claims."""

    model_config = ConfigDict(frozen=True, extra="allow")

    iss: str
    aud: Union[str, List[str]]
    sub: str
    tid: str
    iat: int
    nbf: int
    exp: int
    oid: Optional[str] = None
    preferred_username: Optional[str] = None
    email: Optional[str] = None
    name: Optional[str] = None


class TokenVerificationResponse(BaseModel):
    """Outcome of an ID token verification."""
    valid: bool
    claims: Optional[ClaimsSet] = None
    error: Optional[str] = None


class TokenValidator:
    """Verifies ID token signatures and claims against the tenant's JWKS."""

    def __init__(
        self,
        settings: AadSettings,
        endpoints: EndpointSet,
        jwks_client: Optional[JWKSClient] = None,
        metrics: Optional[MetricsCollector] = None,
    ):
        self.settings = settings
        self.endpoints = endpoints
        self.metrics = metrics or get_metrics_collector("aad")
        self.jwks_client = jwks_client or get_jwks_client(
            endpoints.jwks_url,
            cache_ttl=settings.jwks_cache_ttl,
            http_timeout=settings.http_timeout,
            metrics=self.metrics,
        )
        self.logger = get_logger("aad.validator")

    async def validate(self, id_token: str, access_token: Optional[str] = None) -> TokenVerificationResponse:
        """Verify an ID token, never raising for an invalid token."""
        try:
            claims = await self._verify(id_token, access_token)
        except (JOSEError, ProtocolError, httpx.HTTPError) as e:
            self.metrics.record_token_validation("invalid")
            self.logger.warning("Token verification failed", error=str(e), error_type=type(e).__name__)
            return TokenVerificationResponse(valid=False, error=str(e))

        self.metrics.record_token_validation("valid")
        self.logger.info(
            "Token verified successfully",
            sub=claims.sub,
            tid=claims.tid
        )
        return TokenVerificationResponse(valid=True, claims=claims)

    async def extract_claims(self, id_token: str, access_token: Optional[str] = None) -> ClaimsSet:
        """Return verified claims or raise TokenValidationError."""
        response = await self.validate(id_token, access_token)

        if not response.valid:
            raise TokenValidationError(
                f"Invalid ID token: {response.error}",
                details={"token_error": response.error}
            )

        return response.claims

    async def _verify(self, id_token: str, access_token: Optional[str]) -> ClaimsSet:
        header = jwt.get_unverified_header(id_token)

        algorithm = header.get("alg")
        if algorithm != EXPECTED_ALGORITHM:
            raise TokenValidationError(
                f"Unexpected signing algorithm: {algorithm}",
                details={"alg": algorithm}
            )

        kid = header.get("kid")
        if not isinstance(kid, str) or not kid:
            raise TokenValidationError("Token missing key ID")

        key_data = await self.jwks_client.get_signing_key(kid)
        if not key_data:
            raise TokenValidationError(f"Key not found: {kid}", details={"kid": kid})

        if key_data.get("kty") != "RSA":
            raise TokenValidationError("Signing key is not an RSA key", details={"kid": kid})

        try:
            rsa_key = jwk.construct(key_data, algorithm=EXPECTED_ALGORITHM)
        except (TypeError, ValueError) as e:
            raise TokenValidationError("Malformed signing key", details={"kid": kid}) from e

        payload = jwt.decode(
            id_token,
            rsa_key,
            algorithms=[EXPECTED_ALGORITHM],
            audience=self.settings.client_id,
            access_token=access_token,
            options={
                "verify_aud": True,
                "verify_iat": True,
                "verify_exp": True,
                "verify_nbf": True,
                "verify_iss": False,
                "require_aud": True,
                "require_iat": True,
                "require_exp": True,
                "require_nbf": True,
                "require_iss": True,
                "require_sub": True,
                "leeway": self.settings.clock_skew_seconds,
            },
        )

        self._verify_required_claims(payload)
        self._verify_issuer(payload)
        try:
            return ClaimsSet(**payload)
        except ValidationError as e:
            raise JWTError(f"Malformed token claims: {e.error_count()} invalid field(s)") from e

    @staticmethod
    def _verify_required_claims(payload: Dict[str, Any]) -> None:
        missing = [claim for claim in REQUIRED_CLAIMS if payload.get(claim) in (None, "")]
        if missing:
            raise JWTError(f"Token missing required claims: {', '.join(missing)}")
        if not any(payload.get(claim) for claim in NAME_CLAIMS):
            raise JWTError("Token missing both 'name' and 'preferred_username' claims")

    def _verify_issuer(self, payload: Dict[str, Any]) -> None:
        # Multi-tenant apps accept any tenant, but the issuer must still
        # match the tenant the token claims to come from.
        if self.settings.multi_tenant or not self.settings.tenant_id:
            tenant_id = payload["tid"]
        else:
            tenant_id = self.settings.tenant_id
            if payload["tid"] != tenant_id:
                raise JWTError("Token issued for a different tenant")

        expected_issuer = self.endpoints.issuer_for(tenant_id)
        if payload.get("iss") != expected_issuer:
            raise JWTError(f"Invalid issuer: {payload.get('iss')}")
