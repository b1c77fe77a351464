"""
Interfaces the host application provides to the authentication flow.
"""

from typing import Optional, Protocol

from ..identity.resolver import Identity


class InitContext(Protocol):
    """Host side of the ``init`` step."""

    @property
    def callback_url(self) -> str:
        """Absolute URL the authority redirects back to."""

    def generate_csrf_state(self) -> str:
        """Create and remember a fresh anti-forgery state token."""

    def redirect_to(self, url: str) -> None:
        """Send the browser to ``url``."""


class CallbackContext(Protocol):
    """Host side of the ``callback`` step."""

    @property
    def callback_url(self) -> str:
        """Redirect URI used in the matching ``init`` step."""

    def verify_csrf_state(self) -> None:
        """Raise if the returned state does not match the remembered one."""

    def get_request_parameter(self, name: str) -> Optional[str]:
        """Query parameter of the inbound callback request."""

    def authenticate(self, identity: Identity) -> None:
        """Establish the host session for ``identity``."""

    def redirect_to_requested_page(self) -> None:
        """Send the browser back to the page that started the sign-in."""
