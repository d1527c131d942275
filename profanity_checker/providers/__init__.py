"""
Subtitle provider registry and fan-out search.

All applicable providers are queried concurrently and allowed to settle
independently; one slow or broken provider never cancels the others. The
merged list is interleaved round-robin across providers so download
attempts are spread over sources instead of exhausting one provider's
quota before another is tried.
"""

import asyncio
import logging
from typing import Iterable

from profanity_checker.cache import CacheProtocol
from profanity_checker.config import Settings
from profanity_checker.models import SearchRequest, SubtitleCandidate
from profanity_checker.providers.base import SubtitleProvider
from profanity_checker.providers.gestdown import GestdownProvider
from profanity_checker.providers.opensubtitles import OpenSubtitlesProvider
from profanity_checker.providers.subdl import SubDLProvider
from profanity_checker.utils import sanitize_for_log

__all__ = [
    "GestdownProvider",
    "OpenSubtitlesProvider",
    "ProviderRegistry",
    "SubDLProvider",
    "SubtitleProvider",
    "default_providers",
    "interleave_by_provider",
]

logger = logging.getLogger(__name__)


def default_providers(cache: CacheProtocol, config: Settings | None = None) -> list[SubtitleProvider]:
    """Build the standard providers in registration (interleave) order."""
    return [
        OpenSubtitlesProvider(cache, config),
        SubDLProvider(cache, config),
        GestdownProvider(cache, config),
    ]


def interleave_by_provider(candidates: Iterable[SubtitleCandidate]) -> list[SubtitleCandidate]:
    """
    Merge candidates round-robin across providers.

    Candidates are grouped by provider in order of first appearance and each
    group is sorted by download count, highest first (stable, so ties keep
    the provider's own order). Each round then takes the next candidate
    from every group that still has one.

    Examples:
        Groups A=[10, 5], B=[8], C=[20, 1] merge to A10, B8, C20, A5, C1.
    """
    groups: dict[str, list[SubtitleCandidate]] = {}
    for candidate in candidates:
        groups.setdefault(candidate.provider, []).append(candidate)

    for group in groups.values():
        group.sort(key=lambda c: c.download_count, reverse=True)

    merged: list[SubtitleCandidate] = []
    rounds = max((len(group) for group in groups.values()), default=0)
    for index in range(rounds):
        for group in groups.values():
            if index < len(group):
                merged.append(group[index])
    return merged


class ProviderRegistry:
    """
    Fan-out coordinator over a fixed, ordered set of providers.

    Registration order decides which provider goes first in every round of
    the interleave; there is no separate priority ranking.
    """

    def __init__(self, providers: Iterable[SubtitleProvider]):
        self.providers = list(providers)

    def applicable(self, request: SearchRequest) -> list[SubtitleProvider]:
        return [p for p in self.providers if p.supports(request.content_type)]

    async def search_all(self, request: SearchRequest) -> list[SubtitleCandidate]:
        """
        Search every applicable provider concurrently and merge the results.

        Args:
            request: What to search for

        Returns:
            Interleaved candidates; empty if every provider came back empty
        """
        applicable = self.applicable(request)
        logger.info(
            f"Searching {len(applicable)} providers for {sanitize_for_log(request.title)!r} "
            f"({request.content_type.value}) tmdb_id={request.tmdb_id} "
            f"season={request.season} episode={request.episode}: {[p.name for p in applicable]}"
        )

        results = await asyncio.gather(
            *(provider.search(request) for provider in applicable),
            return_exceptions=True,
        )

        candidates: list[SubtitleCandidate] = []
        for provider, result in zip(applicable, results):
            if isinstance(result, BaseException):
                logger.error(f"{provider.name}: failed - {result!r}")
                continue
            logger.info(f"{provider.name}: {len(result)} candidates")
            candidates.extend(result)

        merged = interleave_by_provider(candidates)
        logger.info(f"Total: {len(merged)} candidates from {len(applicable)} providers")
        return merged
