"""
Endpoint resolution for Azure AD national clouds.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional

from shared.config import AadSettings
from shared.logging import get_logger

COMMON_TENANT = "common"
GRAPH_API_VERSION = "v1.0"

logger = get_logger("aad.endpoints")


class DirectoryLocation(str, Enum):
    """Azure cloud (region) hosting the directory."""
    GLOBAL = "global"
    US_GOV = "us_gov"
    GERMANY = "germany"
    CHINA = "china"


@dataclass(frozen=True)
class CloudHosts:
    """Login and directory-API hosts of one cloud."""
    login_host: str
    graph_host: str


CLOUD_HOSTS: Dict[DirectoryLocation, CloudHosts] = {
    DirectoryLocation.GLOBAL: CloudHosts(
        login_host="https://login.microsoftonline.com",
        graph_host="https://graph.microsoft.com",
    ),
    DirectoryLocation.US_GOV: CloudHosts(
        login_host="https://login.microsoftonline.us",
        graph_host="https://graph.microsoft.us",
    ),
    DirectoryLocation.GERMANY: CloudHosts(
        login_host="https://login.microsoftonline.de",
        graph_host="https://graph.microsoft.de",
    ),
    DirectoryLocation.CHINA: CloudHosts(
        login_host="https://login.chinacloudapi.cn",
        graph_host="https://microsoftgraph.chinacloudapi.cn",
    ),
}

_LOCATION_ALIASES: Dict[str, DirectoryLocation] = {
    "azure ad (global)": DirectoryLocation.GLOBAL,
    "azure ad (us gov)": DirectoryLocation.US_GOV,
    "azure ad (germany)": DirectoryLocation.GERMANY,
    "azure ad (china)": DirectoryLocation.CHINA,
    "usgov": DirectoryLocation.US_GOV,
    "de": DirectoryLocation.GERMANY,
    "cn": DirectoryLocation.CHINA,
}


@dataclass(frozen=True)
class EndpointSet:
    """URLs of the authority and directory API for one configuration."""

    location: DirectoryLocation
    login_host: str
    graph_host: str
    tenant_segment: str
    authorization_url: str
    token_url: str
    jwks_url: str
    graph_url: str

    @property
    def graph_default_scope(self) -> str:
        """Scope requested by the client-credentials grant."""
        return f"{self.graph_host}/.default"

    def issuer_for(self, tenant_id: str) -> str:
        """Expected ``iss`` claim of a v2.0 ID token issued for ``tenant_id``."""
        return f"{self.login_host}/{tenant_id}/v2.0"

    def membership_url(self, object_id: str) -> str:
        """Transitive group membership of a directory user."""
        return f"{self.graph_url}/users/{object_id}/transitiveMemberOf"


def parse_directory_location(value: Optional[str]) -> DirectoryLocation:
    """Map a configured region value to a DirectoryLocation.

    Unset or unknown values fall back to the global cloud.
    """
    if not value:
        return DirectoryLocation.GLOBAL

    normalized = value.strip().lower().replace("-", "_")
    try:
        return DirectoryLocation(normalized)
    except ValueError:
        pass

    location = _LOCATION_ALIASES.get(value.strip().lower())
    if location is None:
        logger.warning(
            "Unknown directory location, using global endpoints",
            directory_location=value
        )
        return DirectoryLocation.GLOBAL
    return location


def tenant_segment(settings: AadSettings) -> str:
    """Tenant path segment: ``common`` for multi-tenant apps."""
    if settings.multi_tenant or not settings.tenant_id:
        return COMMON_TENANT
    return settings.tenant_id


def resolve_endpoints(settings: AadSettings) -> EndpointSet:
    """Compute the endpoint set for the configured cloud and tenant."""
    location = parse_directory_location(settings.directory_location)
    hosts = CLOUD_HOSTS[location]
    segment = tenant_segment(settings)
    authority = f"{hosts.login_host}/{segment}"

    return EndpointSet(
        location=location,
        login_host=hosts.login_host,
        graph_host=hosts.graph_host,
        tenant_segment=segment,
        authorization_url=f"{authority}/oauth2/v2.0/authorize",
        token_url=f"{authority}/oauth2/v2.0/token",
        jwks_url=f"{authority}/discovery/v2.0/keys",
        graph_url=f"{hosts.graph_host}/{GRAPH_API_VERSION}",
    )
