"""
Reference host for the Azure AD identity provider.
"""

import secrets
from typing import Optional

from fastapi import Request
from fastapi.responses import JSONResponse, RedirectResponse

from shared.base_service import BaseService
from shared.config import AadSettings, get_aad_settings
from shared.errors import ProtocolError
from .flow.controller import AadIdentityProvider
from .identity.resolver import Identity

STATE_COOKIE = "aad_state"
RETURN_TO_COOKIE = "aad_return_to"
# Cookies only need to survive the round trip to the authority
FLOW_COOKIE_MAX_AGE = 600


def safe_return_path(value: Optional[str]) -> str:
    """Only same-site absolute paths are honoured as post-login targets."""
    if not value or not value.startswith("/") or value.startswith("//") or "\\" in value:
        return "/"
    return value


class RequestInitContext:
    """InitContext backed by the inbound ``init`` request."""

    def __init__(self, request: Request):
        self.request = request
        self.state: Optional[str] = None
        self.redirect_url: Optional[str] = None

    @property
    def callback_url(self) -> str:
        return str(self.request.url_for("aad_callback"))

    def generate_csrf_state(self) -> str:
        self.state = secrets.token_urlsafe(32)
        return self.state

    def redirect_to(self, url: str) -> None:
        self.redirect_url = url


class RequestCallbackContext:
    """CallbackContext backed by the inbound ``callback`` request."""

    def __init__(self, request: Request):
        self.request = request
        self.identity: Optional[Identity] = None
        self.redirect_target: Optional[str] = None

    @property
    def callback_url(self) -> str:
        return str(self.request.url_for("aad_callback"))

    def verify_csrf_state(self) -> None:
        expected = self.request.cookies.get(STATE_COOKIE)
        returned = self.request.query_params.get("state")
        if not expected or not returned or not secrets.compare_digest(expected, returned):
            raise ProtocolError("CSRF state mismatch", code="CSRF_STATE_MISMATCH")

    def get_request_parameter(self, name: str) -> Optional[str]:
        return self.request.query_params.get(name)

    def authenticate(self, identity: Identity) -> None:
        self.identity = identity

    def redirect_to_requested_page(self) -> None:
        self.redirect_target = safe_return_path(self.request.cookies.get(RETURN_TO_COOKIE))


class AadService(BaseService):
    """Azure AD sign-in service."""

    def __init__(self, settings: Optional[AadSettings] = None):
        super().__init__("aad", 8020)
        self.settings = settings or get_aad_settings()
        self.provider = AadIdentityProvider(self.settings, metrics=self.metrics)
        self._setup_aad_routes()

    def _setup_aad_routes(self):
        """Set up sign-in routes."""

        @self.app.get("/")
        async def root():
            """Root endpoint."""
            return {
                "service": "aad",
                "message": "Azure AD identity provider",
                "version": "1.0.0",
                "provider": {
                    "key": self.provider.key,
                    "name": self.provider.name,
                    "icon_path": self.provider.display.icon_path,
                    "background_color": self.provider.display.background_color,
                    "enabled": self.provider.is_enabled(),
                    "allows_users_to_sign_up": self.provider.allows_users_to_sign_up(),
                }
            }

        @self.app.get("/auth/aad/init")
        async def init(request: Request, return_to: Optional[str] = None):
            """Start the sign-in: redirect to the authority."""
            context = RequestInitContext(request)
            url = self.provider.init(context)

            response = RedirectResponse(url, status_code=302)
            self._set_flow_cookie(request, response, STATE_COOKIE, context.state)
            self._set_flow_cookie(request, response, RETURN_TO_COOKIE, safe_return_path(return_to))
            return response

        @self.app.get("/auth/aad/callback", name="aad_callback")
        async def callback(request: Request):
            """Finish the sign-in and return the authenticated identity."""
            context = RequestCallbackContext(request)
            identity = await self.provider.callback(context)

            response = JSONResponse({
                "authenticated": True,
                "identity": identity.to_dict(),
                "redirect_to": context.redirect_target or "/",
            })
            response.delete_cookie(STATE_COOKIE)
            response.delete_cookie(RETURN_TO_COOKIE)
            return response

    @staticmethod
    def _set_flow_cookie(request: Request, response, name: str, value: str) -> None:
        response.set_cookie(
            name,
            value,
            max_age=FLOW_COOKIE_MAX_AGE,
            httponly=True,
            samesite="lax",
            secure=request.url.scheme == "https",
        )

    async def _check_dependencies(self):
        return {"aad": "enabled" if self.provider.is_enabled() else "disabled"}


def create_app(settings: Optional[AadSettings] = None):
    """Create FastAPI application."""
    service = AadService(settings)
    return service.app


if __name__ == "__main__":
    service = AadService()
    service.run()
