"""
SubDL provider.

SubDL searches by TMDB id and serves every subtitle as a ZIP archive from a
separate download host. It does not report download counts, so its
candidates all rank equally within the provider.
"""

import io
import logging
import zipfile
from functools import partial

import httpx

from profanity_checker.errors import ProviderError, SubtitleArchiveError
from profanity_checker.models import ContentType, SearchRequest, SubtitleCandidate
from profanity_checker.providers.base import SubtitleProvider
from profanity_checker.utils import mask_secret

logger = logging.getLogger(__name__)

API_BASE = "https://api.subdl.com/api/v1"
DL_BASE = "https://dl.subdl.com"


def extract_first_srt(data: bytes) -> tuple[str, str]:
    """
    Pull the first SRT entry out of a ZIP archive.

    Args:
        data: Archive bytes

    Returns:
        Tuple of (entry name, decoded content)

    Raises:
        SubtitleArchiveError: If the archive holds no .srt file or is not a ZIP
    """
    try:
        with zipfile.ZipFile(io.BytesIO(data)) as archive:
            for info in archive.infolist():
                if info.is_dir() or not info.filename.lower().endswith(".srt"):
                    continue
                content = archive.read(info).decode("utf-8", errors="replace")
                return info.filename, content
    except zipfile.BadZipFile as e:
        raise SubtitleArchiveError(SubDLProvider.name, f"Invalid ZIP archive: {e}") from e

    raise SubtitleArchiveError(SubDLProvider.name, "No SRT file found in ZIP archive")


class SubDLProvider(SubtitleProvider):
    """Provider for api.subdl.com (movies and episodes)."""

    name = "subdl"

    def supports(self, content_type: ContentType) -> bool:
        return True

    async def _search(self, request: SearchRequest) -> list[SubtitleCandidate]:
        api_key = self.config.subdl_api_key
        if not api_key:
            logger.warning("SUBDL_API_KEY not configured, skipping")
            return []

        params: dict[str, str | int] = {
            "api_key": api_key,
            "tmdb_id": request.tmdb_id,
            "languages": request.language.upper(),
            "subs_per_page": self.config.subdl_page_size,
            "type": "tv" if request.content_type == ContentType.tvshow else "movie",
        }
        if request.content_type == ContentType.tvshow and request.season is not None:
            params["season_number"] = request.season
            if request.episode is not None:
                params["episode_number"] = request.episode

        url = httpx.URL(f"{API_BASE}/subtitles", params=params)
        logger.info(f"Searching: {mask_secret(str(url), api_key)}")

        async with self._client() as client:
            response = await client.get(url)

        if response.status_code != 200:
            logger.error(f"Search failed: {response.status_code}")
            return []

        payload = response.json()
        if not payload.get("status") or not payload.get("subtitles"):
            logger.warning("No subtitles in response")
            return []

        subtitles = payload["subtitles"]
        logger.info(f"Found {len(subtitles)} subtitles")

        return [
            SubtitleCandidate(
                id=f"subdl-{index}-{sub['url']}",
                provider=self.name,
                language=(sub.get("language") or request.language).lower(),
                release=sub.get("release_name") or sub.get("name") or "unknown",
                download_count=0,
                hearing_impaired=bool(sub.get("hi")),
                download=partial(self.download_subtitle, sub["url"]),
            )
            for index, sub in enumerate(subtitles)
            if sub.get("url")
        ]

    async def download_subtitle(self, subtitle_url: str) -> str:
        """
        Download a subtitle archive and return the SRT inside it.

        Args:
            subtitle_url: Path of the archive on the download host

        Returns:
            Raw SRT content

        Raises:
            ProviderError: If the download fails
            SubtitleArchiveError: If the archive contains no SRT
        """
        return await self._cached_content(
            self._cache_key("content", subtitle_url),
            partial(self._fetch_archive, subtitle_url),
        )

    async def _fetch_archive(self, subtitle_url: str) -> str:
        url = f"{DL_BASE}{subtitle_url}"
        logger.info(f"Downloading ZIP: {url}")

        async with self._client(timeout=self.config.archive_timeout) as client:
            response = await client.get(url)

        if response.status_code != 200:
            raise ProviderError(self.name, f"Download failed: {response.status_code}")

        entry_name, content = extract_first_srt(response.content)
        logger.info(f"Extracted SRT: {len(content)} chars from {entry_name}")
        return content
