"""Cache invalidation for pages and file URLs."""

import logging
from collections.abc import Sequence
from typing import Protocol

import httpx

from ..config import get_settings

logger = logging.getLogger(__name__)


class CachePurger(Protocol):
    async def invalidate(self, key: str) -> None: ...

    async def purge_urls(self, urls: Sequence[str]) -> None: ...


class NullCachePurger:
    """Purger used when no CDN is configured."""

    async def invalidate(self, key: str) -> None:
        logger.debug("cache.invalidate_skipped", extra={"key": key})

    async def purge_urls(self, urls: Sequence[str]) -> None:
        logger.debug("cache.purge_skipped", extra={"count": len(urls)})


class HttpCachePurger:
    """Sends HTTP PURGE requests to a CDN/proxy front end."""

    def __init__(self, endpoint: str, timeout: float = 5.0):
        self.endpoint = endpoint.rstrip("/")
        self.timeout = timeout

    async def invalidate(self, key: str) -> None:
        await self._purge([f"{self.endpoint}/{key.lstrip('/')}"])

    async def purge_urls(self, urls: Sequence[str]) -> None:
        if urls:
            await self._purge(urls)

    async def _purge(self, urls: Sequence[str]) -> None:
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            for url in urls:
                response = await client.request("PURGE", url)
                response.raise_for_status()
                logger.info(
                    "cache.purged", extra={"url": url, "status": response.status_code}
                )


def get_cache_purger() -> CachePurger:
    settings = get_settings()
    if settings.cdn_purge_endpoint:
        return HttpCachePurger(
            settings.cdn_purge_endpoint, timeout=settings.cdn_purge_timeout_seconds
        )
    return NullCachePurger()
