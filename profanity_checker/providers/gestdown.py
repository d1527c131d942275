"""
Gestdown provider (Addic7ed mirror API).

TV episodes only. The show is resolved by name first, then the episode's
subtitles are listed for a full language name.
"""

import logging
from functools import partial
from urllib.parse import quote

from profanity_checker.errors import ProviderError
from profanity_checker.models import ContentType, SearchRequest, SubtitleCandidate
from profanity_checker.providers.base import SubtitleProvider
from profanity_checker.utils import sanitize_for_log

logger = logging.getLogger(__name__)

API_BASE = "https://api.gestdown.info"

# Gestdown wants language names, not ISO codes
LANGUAGE_NAMES: dict[str, str] = {
    "en": "english",
    "fr": "french",
    "es": "spanish",
    "de": "german",
    "it": "italian",
    "pt": "portuguese",
    "nl": "dutch",
    "pl": "polish",
    "sv": "swedish",
    "no": "norwegian",
    "da": "danish",
    "fi": "finnish",
}


class GestdownProvider(SubtitleProvider):
    """Provider for api.gestdown.info (TV episodes only)."""

    name = "gestdown"

    def supports(self, content_type: ContentType) -> bool:
        return content_type == ContentType.tvshow

    async def _search(self, request: SearchRequest) -> list[SubtitleCandidate]:
        if not request.is_episode:
            return []

        show_id = await self.find_show(request.title)
        if not show_id:
            logger.warning(f"Show not found on Addic7ed: {sanitize_for_log(request.title)!r}")
            return []

        language = LANGUAGE_NAMES.get(request.language, request.language)
        url = f"{API_BASE}/subtitles/get/{show_id}/{request.season}/{request.episode}/{language}"
        logger.info(f"Fetching subtitles: {url}")

        async with self._client() as client:
            response = await client.get(url, headers={"Accept": "application/json"})

        if response.status_code != 200:
            logger.warning(f"Subtitle fetch failed: {response.status_code}")
            return []

        payload = response.json()
        subtitles = payload.get("matchingSubtitles") or payload.get("subtitles") or []
        logger.info(f"Found {len(subtitles)} subtitles")

        return [
            SubtitleCandidate(
                id=f"gestdown-{sub['subtitleId']}",
                provider=self.name,
                language=request.language,
                release=sub.get("version") or "unknown",
                download_count=sub.get("downloadCount") or 0,
                hearing_impaired=bool(sub.get("hearingImpaired")),
                download=partial(self.download_subtitle, sub["subtitleId"]),
            )
            for sub in subtitles
            if sub.get("completed")
        ]

    async def find_show(self, title: str) -> str | None:
        """
        Resolve a show title to Gestdown's unique id.

        Args:
            title: Show title as displayed

        Returns:
            The first matching show id, or None
        """
        cache_key = self._cache_key("show", title.lower())
        cached = await self.cache.get(cache_key)
        if cached:
            return cached

        url = f"{API_BASE}/shows/search/{quote(title, safe='')}"
        logger.info(f"Searching show: {url}")

        async with self._client() as client:
            response = await client.get(url, headers={"Accept": "application/json"})

        if response.status_code != 200:
            return None

        shows = response.json().get("shows") or []
        if not shows:
            return None

        show = shows[0]
        logger.info(f"Found show: {show.get('name')!r} ({show['uniqueId']})")

        await self.cache.set(cache_key, show["uniqueId"], self.config.show_lookup_ttl)
        return show["uniqueId"]

    async def download_subtitle(self, subtitle_id: str) -> str:
        """
        Download one subtitle as text.

        Raises:
            ProviderError: If the download fails
        """
        return await self._cached_content(
            self._cache_key("content", subtitle_id),
            partial(self._fetch_subtitle, subtitle_id),
        )

    async def _fetch_subtitle(self, subtitle_id: str) -> str:
        url = f"{API_BASE}/subtitles/download/{subtitle_id}"
        logger.info(f"Downloading: {url}")

        async with self._client() as client:
            response = await client.get(url)

        if response.status_code != 200:
            raise ProviderError(self.name, f"Download failed: {response.status_code}")

        content = response.text
        logger.info(f"Downloaded subtitle: {len(content)} chars")
        return content
