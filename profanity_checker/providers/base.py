"""
Common contract for subtitle providers.

Every provider answers two questions: can it serve this kind of title, and
which subtitles does it have for a request. ``search`` never raises: a
provider outage, bad credentials or a timeout is logged and turns into an
empty result so the other providers are unaffected.
"""

import logging
from abc import ABC, abstractmethod
from typing import Awaitable, Callable

import httpx

from profanity_checker.cache import CacheProtocol
from profanity_checker.config import Settings
from profanity_checker.models import ContentType, SearchRequest, SubtitleCandidate

logger = logging.getLogger(__name__)


class SubtitleProvider(ABC):
    """
    Base class for subtitle providers.

    Subclasses implement ``supports`` and ``_search``; provider-specific
    field names stay inside the subclass and only SubtitleCandidate leaves it.

    Attributes:
        name: Provider name, also the prefix of candidate ids and cache keys
        cache: Shared cache for search results and downloaded content
        config: Settings with credentials and timeouts
    """

    name = "base"

    def __init__(self, cache: CacheProtocol, config: Settings | None = None):
        self.cache = cache
        self.config = config or Settings()

    @abstractmethod
    def supports(self, content_type: ContentType) -> bool:
        """Whether this provider can serve the given content type."""

    @abstractmethod
    async def _search(self, request: SearchRequest) -> list[SubtitleCandidate]:
        """Provider-specific search; may raise on any failure."""

    async def search(self, request: SearchRequest) -> list[SubtitleCandidate]:
        """
        Search for subtitles, absorbing every failure.

        Args:
            request: What to search for

        Returns:
            Candidates from this provider, empty on any failure
        """
        try:
            return await self._search(request)
        except httpx.TimeoutException:
            logger.error(f"{self.name}: search timed out")
        except httpx.HTTPStatusError as e:
            logger.error(f"{self.name}: search failed with status {e.response.status_code}")
        except Exception as e:
            logger.error(f"{self.name}: search failed: {e}")
        return []

    def _client(self, timeout: float | None = None) -> httpx.AsyncClient:
        """HTTP client with the hard timeout every provider call must carry."""
        return httpx.AsyncClient(
            timeout=timeout or self.config.provider_timeout,
            headers={"User-Agent": self.config.user_agent},
            follow_redirects=True,
        )

    def _cache_key(self, *parts: object) -> str:
        return ":".join([self.name, *(str(part) for part in parts)])

    async def _cached_content(self, key: str, fetch: Callable[[], Awaitable[str]]) -> str:
        """
        Return downloaded subtitle content from cache, fetching it on a miss.

        Args:
            key: Provider-prefixed cache key
            fetch: Coroutine factory that downloads the raw content

        Returns:
            Raw subtitle text
        """
        cached = await self.cache.get(key)
        if cached is not None:
            logger.debug(f"{self.name}: content cache hit for {key}")
            return cached

        content = await fetch()
        await self.cache.set(key, content, self.config.content_cache_ttl)
        return content
