"""
Identity assembly from verified claims and group memberships.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, FrozenSet, Iterable, Optional

from shared.errors import ConfigurationError, ProtocolError
from ..validation.token_validator import ClaimsSet

PROVIDER_KEY = "aad"
NO_NAME_PROVIDED = "No name provided"


class LoginStrategy(str, Enum):
    """How the host-local login is derived from the token claims."""
    UNIQUE = "unique"
    PROVIDER_ID = "provider-id"

    @classmethod
    def parse(cls, value: Optional[str]) -> "LoginStrategy":
        """Parse a configured strategy; unknown or missing values are fatal."""
        if value is None or not value.strip():
            raise ConfigurationError("Login strategy is not configured")

        normalized = value.strip()
        strategy = _LEGACY_LABELS.get(normalized)
        if strategy is not None:
            return strategy
        try:
            return cls(normalized.lower())
        except ValueError:
            raise ConfigurationError(
                f"Login strategy not found: {value}",
                details={"login_strategy": value}
            ) from None

    @classmethod
    def is_recognized(cls, value: Optional[str]) -> bool:
        try:
            cls.parse(value)
        except ConfigurationError:
            return False
        return True


# Labels used by older configuration screens
_LEGACY_LABELS = {
    "Unique": LoginStrategy.UNIQUE,
    "Same as Azure AD login": LoginStrategy.PROVIDER_ID,
}


@dataclass(frozen=True)
class Identity:
    """Canonical user identity handed to the host.

    ``groups`` is None when group sync is disabled, so the host leaves the
    user's memberships alone; an empty set means the user belongs to no
    group (or the directory could not be read).
    """

    provider_login: str
    login: str
    name: str
    email: Optional[str]
    groups: Optional[FrozenSet[str]] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "provider_login": self.provider_login,
            "login": self.login,
            "name": self.name,
            "email": self.email,
            "groups": sorted(self.groups) if self.groups is not None else None,
        }


def _claim(claims: ClaimsSet, name: str) -> Optional[str]:
    value = getattr(claims, name, None)
    if isinstance(value, str) and value:
        return value
    return None


def generate_login(claims: ClaimsSet, strategy: LoginStrategy, provider_key: str = PROVIDER_KEY) -> str:
    """Derive the host login for ``strategy``."""
    if strategy is LoginStrategy.UNIQUE:
        return f"{claims.sub}@{provider_key}"

    if strategy is LoginStrategy.PROVIDER_ID:
        username = _claim(claims, "preferred_username")
        if username is None:
            raise ProtocolError("ID token has no preferred_username claim")
        return username

    raise ConfigurationError(f"Login strategy not found: {strategy}")


def resolve_display_name(claims: ClaimsSet) -> str:
    """name, then preferred_username, then a fixed placeholder."""
    return _claim(claims, "name") or _claim(claims, "preferred_username") or NO_NAME_PROVIDED


def resolve_email(claims: ClaimsSet) -> Optional[str]:
    """email, falling back to preferred_username."""
    return _claim(claims, "email") or _claim(claims, "preferred_username")


def resolve_provider_login(claims: ClaimsSet) -> str:
    """The user's directory login: preferred_username, else email, else subject."""
    return _claim(claims, "preferred_username") or _claim(claims, "email") or claims.sub


def resolve_identity(
    claims: ClaimsSet,
    strategy: LoginStrategy,
    groups: Optional[Iterable[str]] = None,
    provider_key: str = PROVIDER_KEY,
) -> Identity:
    """Build the Identity for a verified claim set."""
    return Identity(
        provider_login=resolve_provider_login(claims),
        login=generate_login(claims, strategy, provider_key),
        name=resolve_display_name(claims),
        email=resolve_email(claims),
        groups=frozenset(groups) if groups is not None else None,
    )
