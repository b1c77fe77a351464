"""
JWKS client for the Azure AD signing keys.
"""

import asyncio
import time
from typing import Dict, Any, Optional

import httpx

from shared.errors import ProtocolError
from shared.logging import get_logger
from shared.metrics import MetricsCollector, get_metrics_collector


class JWKSClient:
    """Client for fetching and caching the authority's JWKS.

    One instance is shared by every validation against the same JWKS URL.
    Refreshes are serialized by a lock: concurrent callers that find the
    cache stale wait for the in-flight refresh and reuse its result.
    """

    def __init__(
        self,
        jwks_url: str,
        cache_ttl: int = 3600,
        http_timeout: float = 10.0,
        metrics: Optional[MetricsCollector] = None,
    ):
        self.jwks_url = jwks_url
        self.cache_ttl = cache_ttl
        self.http_timeout = http_timeout
        self.logger = get_logger("aad.jwks")
        self.metrics = metrics or get_metrics_collector("aad")

        self._jwks_cache: Optional[Dict[str, Any]] = None
        self._cache_timestamp: float = 0
        self._generation = 0
        self._lock = asyncio.Lock()

    def _is_fresh(self) -> bool:
        return (
            self._jwks_cache is not None
            and time.monotonic() - self._cache_timestamp < self.cache_ttl
        )

    async def get_jwks(self, force: bool = False) -> Dict[str, Any]:
        """Get the JWKS from cache, fetching it when stale or forced."""
        if not force and self._is_fresh():
            return self._jwks_cache

        generation = self._generation
        async with self._lock:
            # Another caller refreshed while we waited for the lock
            if self._generation != generation and self._jwks_cache is not None:
                return self._jwks_cache
            if not force and self._is_fresh():
                return self._jwks_cache

            start_time = time.monotonic()
            try:
                jwks_data = await self._fetch_jwks()
            except (httpx.HTTPError, ProtocolError) as e:
                self.metrics.record_jwks_refresh("error")
                self.logger.error("Failed to fetch JWKS", jwks_url=self.jwks_url, error=str(e))
                if self._jwks_cache is not None:
                    self.logger.warning("Using stale JWKS cache due to fetch failure")
                    return self._jwks_cache
                raise

            self._jwks_cache = jwks_data
            self._cache_timestamp = time.monotonic()
            self._generation += 1
            self.metrics.record_jwks_refresh("ok", time.monotonic() - start_time)

            self.logger.info(
                "JWKS refreshed successfully",
                jwks_url=self.jwks_url,
                keys_count=len(jwks_data["keys"])
            )
            return self._jwks_cache

    async def _fetch_jwks(self) -> Dict[str, Any]:
        async with httpx.AsyncClient(timeout=self.http_timeout) as client:
            response = await client.get(self.jwks_url)
            response.raise_for_status()
            try:
                payload = response.json()
            except ValueError as e:
                raise ProtocolError("JWKS response is not valid JSON") from e

        if not isinstance(payload, dict) or not isinstance(payload.get("keys"), list):
            raise ProtocolError("JWKS response missing 'keys' array")
        return payload

    async def get_signing_key(self, kid: str) -> Optional[Dict[str, Any]]:
        """Get a signing key by key ID, refreshing once if it is unknown."""
        key = self._find_key(await self.get_jwks(), kid)
        if key is not None:
            return key

        # Key might be rotated; refresh once more eagerly.
        self.logger.info("Signing key not in cached JWKS, refreshing", kid=kid)
        key = self._find_key(await self.get_jwks(force=True), kid)
        if key is None:
            self.logger.warning("Key not found", kid=kid)
        return key

    @staticmethod
    def _find_key(jwks: Dict[str, Any], kid: str) -> Optional[Dict[str, Any]]:
        for key in jwks.get("keys", []):
            if isinstance(key, dict) and key.get("kid") == kid:
                return key
        return None

    def clear_cache(self):
        """Clear the cached key set."""
        self._jwks_cache = None
        self._cache_timestamp = 0
        self.logger.info("JWKS cache cleared")


_clients: Dict[str, JWKSClient] = {}


def get_jwks_client(
    jwks_url: str,
    cache_ttl: int = 3600,
    http_timeout: float = 10.0,
    metrics: Optional[MetricsCollector] = None,
) -> JWKSClient:
    """Return the process-wide JWKS client for ``jwks_url``.

    Clients are keyed by URL only. The first call for a URL fixes its
    ``cache_ttl``, ``http_timeout`` and ``metrics``; later calls get that
    client back and their own values are ignored.
    """
    client = _clients.get(jwks_url)
    if client is None:
        client = JWKSClient(jwks_url, cache_ttl=cache_ttl, http_timeout=http_timeout, metrics=metrics)
        _clients[jwks_url] = client
    return client


def reset_jwks_clients() -> None:
    """Drop every shared JWKS client and its cache."""
    _clients.clear()
