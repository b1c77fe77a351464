"""
Azure AD sign-in flow: authorization redirect and callback handling.
"""

import asyncio
from dataclasses import dataclass
from enum import Enum
from typing import Callable, FrozenSet, List, Optional, Tuple
from urllib.parse import quote, urlencode, urlsplit

from shared.config import AadSettings
from shared.errors import AuthenticationError, ConfigurationError, ProtocolError, TokenExchangeError
from shared.logging import get_logger, set_user_context
from shared.metrics import MetricsCollector, get_metrics_collector
from ..endpoints.resolver import EndpointSet, resolve_endpoints
from ..exchange.client import TokenExchangeClient, TokenSet
from ..groups.fetcher import GroupMembershipFetcher
from ..identity.resolver import PROVIDER_KEY, Identity, LoginStrategy, resolve_identity
from ..jwks.client import JWKSClient, get_jwks_client
from ..validation.token_validator import ClaimsSet, TokenValidator
from .context import CallbackContext, InitContext

BASE_SCOPES = ("openid", "profile", "email")
DELEGATED_GROUP_SCOPES = ("User.Read", "GroupMember.Read.All")


class InitState(str, Enum):
    START = "start"
    REDIRECT_ISSUED = "redirect_issued"


class CallbackState(str, Enum):
    RECEIVED = "received"
    TOKEN_EXCHANGED = "token_exchanged"
    VALIDATED = "validated"
    GROUPS_RESOLVED = "groups_resolved"
    IDENTITY_EMITTED = "identity_emitted"
    FAILED = "failed"


def _require_absolute_url(url: str, label: str) -> None:
    parsed = urlsplit(url or "")
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise ConfigurationError(f"Malformed {label}", details={"url": url})


@dataclass(frozen=True)
class AuthorizationRequest:
    """OAuth2 authorization request sent through the browser."""

    endpoint: str
    client_id: str
    redirect_uri: str
    scopes: Tuple[str, ...]
    state: str
    response_type: str = "code"
    response_mode: str = "query"

    def to_url(self) -> str:
        """Serialize as the redirect URL; raises ConfigurationError on bad URLs."""
        _require_absolute_url(self.endpoint, "authorization endpoint")
        _require_absolute_url(self.redirect_uri, "callback URL")

        query = urlencode(
            {
                "client_id": self.client_id,
                "response_type": self.response_type,
                "response_mode": self.response_mode,
                "redirect_uri": self.redirect_uri,
                "scope": " ".join(self.scopes),
                "state": self.state,
            },
            quote_via=quote,
        )
        return f"{self.endpoint}?{query}"


@dataclass(frozen=True)
class Display:
    """Login button appearance."""
    icon_path: str = "/static/authaad/ms-symbol.svg"
    background_color: str = "#2F2F2F"


class AadIdentityProvider:
    """OpenID Connect identity provider backed by Azure AD.

    Stateless between ``init`` and ``callback``: everything needed to finish
    the sign-in comes from the settings and the callback request.
    """

    key = PROVIDER_KEY
    name = "Microsoft"
    display = Display()

    def __init__(
        self,
        settings: AadSettings,
        metrics: Optional[MetricsCollector] = None,
        jwks_client_factory: Callable[..., JWKSClient] = get_jwks_client,
    ):
        self.settings = settings
        self.metrics = metrics or get_metrics_collector("aad")
        self.jwks_client_factory = jwks_client_factory
        self.logger = get_logger("aad.flow")

    def is_enabled(self) -> bool:
        return (
            self.settings.enabled
            and self.settings.has_credentials()
            and LoginStrategy.is_recognized(self.settings.login_strategy)
        )

    def allows_users_to_sign_up(self) -> bool:
        return self.settings.allow_users_to_sign_up

    def scopes(self) -> Tuple[str, ...]:
        """Scopes requested from the user."""
        if self.settings.enable_group_sync and not self.settings.enable_client_credential:
            return BASE_SCOPES + DELEGATED_GROUP_SCOPES
        return BASE_SCOPES

    def build_authorization_request(self, callback_url: str, state: str) -> AuthorizationRequest:
        endpoints = resolve_endpoints(self.settings)
        return AuthorizationRequest(
            endpoint=endpoints.authorization_url,
            client_id=self.settings.client_id or "",
            redirect_uri=callback_url,
            scopes=self.scopes(),
            state=state,
        )

    def init(self, context: InitContext) -> str:
        """Redirect the browser to the authorization endpoint."""
        if not self.is_enabled():
            raise ConfigurationError("Azure AD authentication is not enabled or not fully configured")

        self.logger.debug("Authorization request started", flow_state=InitState.START.value)
        state = context.generate_csrf_state()
        try:
            url = self.build_authorization_request(context.callback_url, state).to_url()
        except ConfigurationError as e:
            self.logger.error("Cannot build authorization request", error=e.message, details=e.details)
            raise

        context.redirect_to(url)
        self.logger.info("Authorization redirect issued", flow_state=InitState.REDIRECT_ISSUED.value)
        return url

    async def callback(self, context: CallbackContext) -> Identity:
        """Complete the sign-in and hand the identity to the host.

        Any failure is reported as a single AuthenticationError; the host's
        ``authenticate`` is only called once every mandatory step succeeded.
        """
        trace: List[CallbackState] = [CallbackState.RECEIVED]
        self.logger.info("Authentication callback received")

        try:
            identity = await self._run_callback(context, trace)
        except asyncio.CancelledError:
            self.logger.warning("Authentication callback cancelled", flow_state=trace[-1].value)
            self._record_failure(trace, "cancelled")
            raise
        except Exception as e:
            self.logger.error(
                "Authentication failed",
                flow_state=trace[-1].value,
                error=str(e),
                error_type=type(e).__name__,
                details=getattr(e, "details", None)
            )
            self._record_failure(trace, "failed")
            raise AuthenticationError() from e

        self.metrics.record_callback("success")
        return identity

    async def _run_callback(self, context: CallbackContext, trace: List[CallbackState]) -> Identity:
        context.verify_csrf_state()

        if not self.is_enabled():
            raise ConfigurationError("Azure AD authentication is not enabled or not fully configured")
        strategy = LoginStrategy.parse(self.settings.login_strategy)

        authority_error = context.get_request_parameter("error")
        if authority_error:
            raise ProtocolError(
                "Authority returned an error",
                details={
                    "error": authority_error,
                    "error_description": context.get_request_parameter("error_description"),
                }
            )

        code = context.get_request_parameter("code")
        if not code:
            raise ProtocolError("Callback request has no authorization code")

        endpoints = resolve_endpoints(self.settings)
        exchange = TokenExchangeClient(self.settings, endpoints)

        token_set = await exchange.exchange_code(code, context.callback_url, self.scopes())
        self._advance(trace, CallbackState.TOKEN_EXCHANGED)

        validator = TokenValidator(
            self.settings,
            endpoints,
            jwks_client=self._jwks_client(endpoints),
            metrics=self.metrics,
        )
        claims = await validator.extract_claims(token_set.id_token, token_set.access_token)
        set_user_context(user_id=claims.sub, tenant_id=claims.tid)
        self._advance(trace, CallbackState.VALIDATED)

        groups = await self._resolve_groups(exchange, endpoints, claims, token_set)
        self._advance(trace, CallbackState.GROUPS_RESOLVED)

        identity = resolve_identity(claims, strategy, groups, provider_key=self.key)
        context.authenticate(identity)
        # The session is already established; a failed redirect must not undo it
        try:
            context.redirect_to_requested_page()
        except Exception as e:
            self.logger.warning("Redirect after sign-in failed", error=str(e), error_type=type(e).__name__)
        self._advance(trace, CallbackState.IDENTITY_EMITTED)
        return identity

    async def _resolve_groups(
        self,
        exchange: TokenExchangeClient,
        endpoints: EndpointSet,
        claims: ClaimsSet,
        token_set: TokenSet,
    ) -> Optional[FrozenSet[str]]:
        """Best-effort group sync; never raises for directory failures."""
        if not self.settings.enable_group_sync:
            return None

        if not claims.oid:
            self.logger.warning("ID token has no object id; skipping group sync", sub=claims.sub)
            return frozenset()

        access_token = await self._directory_access_token(exchange, token_set)
        if not access_token:
            self.logger.warning("No access token available for the directory API; skipping group sync")
            return frozenset()

        fetcher = GroupMembershipFetcher(
            endpoints,
            http_timeout=self.settings.http_timeout,
            metrics=self.metrics,
        )
        return await fetcher.fetch_groups(access_token, claims.oid)

    async def _directory_access_token(self, exchange: TokenExchangeClient, token_set: TokenSet) -> Optional[str]:
        """Application token when client-credential mode is on, else the user's token."""
        if not self.settings.enable_client_credential:
            return token_set.access_token

        try:
            service_tokens = await exchange.acquire_client_credentials_token()
        except TokenExchangeError as e:
            self.logger.warning(
                "Client credential exchange failed; falling back to the user access token",
                error=e.message,
                details=e.details
            )
            return token_set.access_token

        return service_tokens.access_token

    def _jwks_client(self, endpoints: EndpointSet) -> JWKSClient:
        return self.jwks_client_factory(
            endpoints.jwks_url,
            cache_ttl=self.settings.jwks_cache_ttl,
            http_timeout=self.settings.http_timeout,
            metrics=self.metrics,
        )

    def _advance(self, trace: List[CallbackState], state: CallbackState) -> None:
        trace.append(state)
        self.logger.debug("Callback state transition", flow_state=state.value)

    def _record_failure(self, trace: List[CallbackState], outcome: str) -> None:
        trace.append(CallbackState.FAILED)
        self.metrics.record_callback(outcome)
