"""
Directory group membership fetcher (Microsoft Graph).
"""

import time
from typing import Dict, FrozenSet, List, Optional, Set

import httpx
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from shared.errors import EnrichmentError
from shared.logging import get_logger
from shared.metrics import MetricsCollector, get_metrics_collector
from ..endpoints.resolver import EndpointSet

GROUP_ODATA_TYPE = "#microsoft.graph.group"

# Graph caps $top at 999 for membership queries
MAX_PAGE_SIZE = 999
MAX_PAGES = 500


class DirectoryObject(BaseModel):
    """One entry of a membership page."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    odata_type: Optional[str] = Field(default=None, alias="@odata.type")
    id: Optional[str] = None
    display_name: Optional[str] = Field(default=None, alias="displayName")

    @property
    def is_group(self) -> bool:
        return self.odata_type == GROUP_ODATA_TYPE


class GroupPage(BaseModel):
    """One page of a directory membership response."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    value: List[DirectoryObject]
    next_link: Optional[str] = Field(default=None, alias="@odata.nextLink")

    def group_names(self) -> Set[str]:
        """Display names of the group objects on this page."""
        return {
            item.display_name
            for item in self.value
            if item.is_group and item.display_name is not None
        }


class GroupMembershipFetcher:
    """Collects the display names of every group a user belongs to.

    The whole membership is fetched or nothing is: a failure on any page
    discards the names gathered from earlier pages.
    """

    def __init__(
        self,
        endpoints: EndpointSet,
        http_timeout: float = 10.0,
        page_size: int = MAX_PAGE_SIZE,
        max_pages: int = MAX_PAGES,
        metrics: Optional[MetricsCollector] = None,
    ):
        self.endpoints = endpoints
        self.http_timeout = http_timeout
        self.page_size = min(page_size, MAX_PAGE_SIZE)
        self.max_pages = max_pages
        self.metrics = metrics or get_metrics_collector("aad")
        self.logger = get_logger("aad.groups")

    async def fetch_groups(self, access_token: str, object_id: str) -> FrozenSet[str]:
        """Return the user's group names, or an empty set if the fetch fails."""
        start_time = time.time()
        try:
            groups, pages = await self.fetch_all_pages(access_token, object_id)
        except EnrichmentError as e:
            self.metrics.record_group_fetch("error", e.details.get("pages", 0))
            self.logger.error(
                "Group membership request failed",
                object_id=object_id,
                error=e.message,
                details=e.details
            )
            return frozenset()

        self.metrics.record_group_fetch("ok", pages)
        if not groups:
            self.logger.warning(
                "Group list was empty. Check the application's directory permissions.",
                object_id=object_id
            )
        else:
            self.logger.info(
                "Group membership fetched",
                object_id=object_id,
                groups_count=len(groups),
                pages=pages,
                duration_ms=round((time.time() - start_time) * 1000, 2)
            )
        return groups

    async def fetch_all_pages(self, access_token: str, object_id: str):
        """Follow the membership pages to the end.

        Returns ``(group_names, pages_requested)``; raises EnrichmentError on
        any HTTP or parse failure.
        """
        url = self.endpoints.membership_url(object_id)
        params: Optional[Dict[str, str]] = {
            "$select": "id,displayName",
            "$top": str(self.page_size),
        }
        headers = {
            "Authorization": f"Bearer {access_token}",
            "Accept": "application/json",
        }
        groups: Set[str] = set()
        pages = 0

        async with httpx.AsyncClient(timeout=self.http_timeout) as client:
            while url:
                if pages >= self.max_pages:
                    raise EnrichmentError(
                        "Membership pagination exceeded the page limit",
                        details={"pages": pages}
                    )

                page = await self._fetch_page(client, url, params, headers, pages)
                pages += 1
                groups.update(page.group_names())

                # The service owns the next-page query; follow it verbatim.
                url = page.next_link
                params = None

        return frozenset(groups), pages

    async def _fetch_page(
        self,
        client: httpx.AsyncClient,
        url: str,
        params: Optional[Dict[str, str]],
        headers: Dict[str, str],
        pages: int,
    ) -> GroupPage:
        try:
            response = await client.get(url, params=params, headers=headers)
        except httpx.HTTPError as e:
            raise EnrichmentError(
                "Directory API unavailable",
                details={"pages": pages, "http_error": str(e)}
            ) from e

        if not response.is_success:
            raise EnrichmentError(
                f"Directory API returned HTTP {response.status_code}",
                details={"pages": pages, **self._parse_error(response)}
            )

        try:
            return GroupPage.model_validate(response.json())
        except (ValueError, ValidationError) as e:
            raise EnrichmentError(
                "Unparsable directory response",
                details={"pages": pages}
            ) from e

    @staticmethod
    def _parse_error(response: httpx.Response) -> Dict[str, str]:
        """Graph error bodies look like {"error": {"code": ..., "message": ...}}."""
        try:
            body = response.json()
        except ValueError:
            return {}
        error = body.get("error") if isinstance(body, dict) else None
        if not isinstance(error, dict):
            return {}
        return {
            "error_code": str(error.get("code", "")),
            "error_message": str(error.get("message", "")),
        }
