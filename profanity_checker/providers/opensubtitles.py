"""
OpenSubtitles.com REST API provider.

Search is keyed by TMDB id and ordered by download count. Downloads are a
three step dance: an optional login for a bearer token (higher per-account
quota), a download-link request, then fetching the file from that link.
"""

import logging
from functools import partial
from typing import Any

import httpx

from profanity_checker.errors import ProviderError
from profanity_checker.models import ContentType, SearchRequest, SubtitleCandidate
from profanity_checker.providers.base import SubtitleProvider

logger = logging.getLogger(__name__)

API_BASE = "https://api.opensubtitles.com/api/v1"

# Tokens are valid for 24 hours; refresh a little early
TOKEN_TTL = 23 * 3600


def _map_result(item: dict[str, Any]) -> dict[str, Any]:
    """Flatten one ``data`` entry of the search response."""
    attrs = item.get("attributes") or {}
    return {
        "language": attrs.get("language"),
        "download_count": attrs.get("download_count") or 0,
        "hearing_impaired": bool(attrs.get("hearing_impaired")),
        "release": attrs.get("release"),
        "files": [
            {"file_id": f.get("file_id"), "file_name": f.get("file_name")}
            for f in attrs.get("files") or []
        ],
    }


class OpenSubtitlesProvider(SubtitleProvider):
    """Provider for api.opensubtitles.com (movies and episodes)."""

    name = "opensubtitles"

    def supports(self, content_type: ContentType) -> bool:
        return True

    def _headers(self) -> dict[str, str]:
        return {
            "Api-Key": self.config.opensubtitles_api_key or "",
            "Content-Type": "application/json",
            "Accept": "application/json",
            "User-Agent": self.config.user_agent,
        }

    async def _search(self, request: SearchRequest) -> list[SubtitleCandidate]:
        if not self.config.opensubtitles_api_key:
            logger.warning("OPENSUBTITLES_API_KEY not configured, skipping")
            return []

        results = await self._search_subtitles(request)

        candidates = []
        for result in results:
            if not result["files"]:
                continue
            first_file = result["files"][0]
            candidates.append(
                SubtitleCandidate(
                    id=f"os-{first_file['file_id']}",
                    provider=self.name,
                    language=result["language"] or request.language,
                    release=result["release"] or first_file["file_name"] or "unknown",
                    download_count=result["download_count"],
                    hearing_impaired=result["hearing_impaired"],
                    download=partial(self.download_subtitle, first_file["file_id"]),
                )
            )
        return candidates

    async def _search_subtitles(self, request: SearchRequest) -> list[dict[str, Any]]:
        """Query /subtitles, with the flattened rows cached per request."""
        cache_key = self._cache_key(
            "search",
            request.tmdb_id,
            request.content_type.value,
            request.language,
            request.episode_tag,
        )
        cached = await self.cache.get(cache_key)
        if cached is not None:
            return cached

        params: dict[str, str | int] = {
            "languages": request.language,
            "order_by": "download_count",
        }
        if request.content_type == ContentType.tvshow:
            params["type"] = "episode"
            params["parent_tmdb_id"] = request.tmdb_id
            if request.season is not None:
                params["season_number"] = request.season
            if request.episode is not None:
                params["episode_number"] = request.episode
        else:
            params["type"] = "movie"
            params["tmdb_id"] = request.tmdb_id

        async with self._client() as client:
            response = await client.get(f"{API_BASE}/subtitles", params=params, headers=self._headers())
        response.raise_for_status()

        results = [_map_result(item) for item in response.json().get("data") or []]
        logger.info(f"Found {len(results)} subtitles")

        await self.cache.set(cache_key, results, self.config.search_cache_ttl)
        return results

    async def _login(self, client: httpx.AsyncClient) -> str | None:
        """
        Get a bearer token for the configured account.

        Any failure returns None and the download proceeds unauthenticated.
        """
        username = self.config.opensubtitles_username
        password = self.config.opensubtitles_password
        if not username or not password:
            return None

        cache_key = self._cache_key("token", username)
        cached = await self.cache.get(cache_key)
        if cached is not None:
            return cached

        try:
            response = await client.post(
                f"{API_BASE}/login",
                json={"username": username, "password": password},
                headers=self._headers(),
            )
            if response.status_code != 200:
                logger.warning(f"Login failed with status {response.status_code}, downloading without token")
                return None
            token = response.json().get("token")
        except (httpx.HTTPError, ValueError) as e:
            logger.warning(f"Login failed, downloading without token: {e}")
            return None

        if token:
            await self.cache.set(cache_key, token, TOKEN_TTL)
        return token

    async def download_subtitle(self, file_id: int) -> str:
        """
        Download one subtitle file as SRT text.

        Args:
            file_id: OpenSubtitles file id

        Returns:
            Raw SRT content

        Raises:
            ProviderError: If the link request or file fetch fails
        """
        return await self._cached_content(
            self._cache_key("content", file_id),
            partial(self._fetch_subtitle, file_id),
        )

    async def _fetch_subtitle(self, file_id: int) -> str:
        async with self._client() as client:
            headers = self._headers()
            token = await self._login(client)
            if token:
                headers["Authorization"] = f"Bearer {token}"

            link_response = await client.post(
                f"{API_BASE}/download",
                json={"file_id": file_id, "sub_format": "srt"},
                headers=headers,
            )
            if link_response.status_code != 200:
                raise ProviderError(
                    self.name,
                    f"Failed to get download link: {link_response.status_code} - {link_response.text[:200]}",
                )

            link = link_response.json().get("link")
            if not link:
                raise ProviderError(self.name, "Download response did not include a link")

            file_response = await client.get(link)
            if file_response.status_code != 200:
                raise ProviderError(self.name, f"Failed to download subtitle file: {file_response.status_code}")

        content = file_response.text
        logger.info(f"Downloaded subtitle {file_id}: {len(content)} chars")
        return content
