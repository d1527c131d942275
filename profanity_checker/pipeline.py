"""
Transcript acquisition and analysis pipeline.

One run walks SEARCHING -> DOWNLOADING/PARSING -> CLASSIFYING ->
CATEGORIZING -> COMPLETE, and any step may end the run with a
PipelineError. Provider failures never end a run by themselves: they only
show up as "no subtitles" (nothing found anywhere) or "no usable
subtitles" (found, but nothing downloadable and readable within the
attempt cap).

Downloads are strictly sequential. Only one transcript is needed and some
providers throttle downloads per account, so the first acceptable
candidate wins and the rest are never touched.
"""

import asyncio
import logging
from enum import IntEnum
from typing import AsyncIterator, Callable, Sequence

from profanity_checker.cache import CacheProtocol, analysis_cache_key
from profanity_checker.classifier import ClassificationService
from profanity_checker.config import Settings
from profanity_checker.errors import (
    InvalidRequestError,
    NoSubtitlesFoundError,
    NoUsableSubtitlesError,
    PipelineError,
    PipelineTimeoutError,
)
from profanity_checker.models import (
    AnalysisResult,
    Feature,
    ProgressEvent,
    SearchRequest,
    SubtitleCandidate,
)
from profanity_checker.parser import parse_srt
from profanity_checker.providers import ProviderRegistry
from profanity_checker.rating import calculate_rating, categorize
from profanity_checker.utils import format_title_label, sanitize_for_log

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[ProgressEvent], object]


class PipelineStep(IntEnum):
    """Numeric steps reported to progress observers."""

    SEARCHING = 0
    DOWNLOADING = 1
    PARSING = 2
    CLASSIFYING = 3
    CATEGORIZING = 4


STEP_MESSAGES: dict[PipelineStep, str] = {
    PipelineStep.SEARCHING: "Searching for subtitles across multiple sources",
    PipelineStep.DOWNLOADING: "Downloading subtitle file",
    PipelineStep.PARSING: "Parsing subtitle content",
    PipelineStep.CLASSIFYING: "AI analyzing for profanity",
    PipelineStep.CATEGORIZING: "Categorizing results",
}


def build_search_request(
    feature: Feature,
    season: int | None = None,
    episode: int | None = None,
    language: str = "en",
) -> SearchRequest:
    """
    Validate a caller's feature and turn it into a provider search request.

    Raises:
        InvalidRequestError: If the feature has no TMDB id
    """
    if not feature.tmdb_id:
        raise InvalidRequestError()

    return SearchRequest(
        tmdb_id=feature.tmdb_id,
        content_type=feature.type,
        title=feature.title,
        language=language,
        imdb_id=feature.imdb_id,
        year=feature.year,
        season=season,
        episode=episode,
    )


class AnalysisPipeline:
    """
    Drives one analysis from provider search to cached result.

    Collaborators are injected so tests can swap in fakes for the provider
    registry, the classifier and the cache.
    """

    def __init__(
        self,
        registry: ProviderRegistry,
        classifier: ClassificationService,
        cache: CacheProtocol,
        config: Settings | None = None,
    ):
        self.registry = registry
        self.classifier = classifier
        self.cache = cache
        self.config = config or Settings()
        # Streamed runs keep going after the consumer disconnects
        self._background: set[asyncio.Task] = set()

    async def get_cached(self, request: SearchRequest) -> AnalysisResult | None:
        """Return a previously stored analysis for this request, if any."""
        if not self.config.cache_enabled:
            return None
        cached = await self.cache.get(analysis_cache_key(request))
        if cached is None:
            return None
        return AnalysisResult.model_validate(cached)

    async def run(
        self,
        request: SearchRequest,
        feature: Feature | None = None,
        progress: ProgressCallback | None = None,
    ) -> AnalysisResult:
        """
        Analyze one title.

        Args:
            request: Provider search request
            feature: Caller metadata echoed in the result; derived from the
                request when omitted
            progress: Optional observer called with a ProgressEvent per step

        Returns:
            The analysis, freshly computed or from cache

        Raises:
            NoSubtitlesFoundError: No provider had any candidate
            NoUsableSubtitlesError: No candidate produced a usable transcript
            ClassificationError: The classification service failed
        """
        cached = await self.get_cached(request)
        if cached is not None:
            logger.info("Analysis cache HIT, returning cached result")
            return cached

        feature = feature or Feature(
            type=request.content_type,
            title=request.title,
            tmdb_id=request.tmdb_id,
            imdb_id=request.imdb_id,
            year=request.year,
        )

        self._notify(progress, PipelineStep.SEARCHING)
        candidates = await self.registry.search_all(request)
        if not candidates:
            logger.warning("No subtitles found from any provider")
            raise NoSubtitlesFoundError()

        logger.info(f"{len(candidates)} candidates from providers, trying downloads")
        self._notify(progress, PipelineStep.DOWNLOADING)
        transcript, attempts = await self.acquire_transcript(candidates, progress)

        if len(transcript) < self.config.min_transcript_chars:
            logger.warning(f"Transcript too short for analysis ({len(transcript)} chars)")
            raise NoUsableSubtitlesError(attempts)

        self._notify(progress, PipelineStep.CLASSIFYING)
        title_label = format_title_label(request.title, request.season, request.episode)
        logger.info(
            f"Sending {len(transcript)} chars to classifier for {sanitize_for_log(title_label)!r}"
        )
        classification = await self.classifier.classify(transcript, title_label)

        self._notify(progress, PipelineStep.CATEGORIZING)
        categories = categorize(classification.words)
        rating, score = calculate_rating(categories)

        updates = {}
        if request.season is not None:
            updates["season"] = request.season
        if request.episode is not None:
            updates["episode"] = request.episode

        result = AnalysisResult(
            feature=feature.model_copy(update=updates),
            categories=categories,
            total_profanities=sum(c.total_count for c in categories),
            rating=rating,
            rating_score=score,
            summary=classification.summary,
            subtitles_used=attempts,
        )
        logger.info(
            f"Analysis complete: total={result.total_profanities} categories={len(categories)} "
            f"rating={rating.value} score={score} attempts={attempts}"
        )

        if self.config.cache_enabled:
            await self.cache.set(analysis_cache_key(request), result.to_cache(), self.config.analysis_cache_ttl)
        return result

    async def acquire_transcript(
        self,
        candidates: Sequence[SubtitleCandidate],
        progress: ProgressCallback | None = None,
    ) -> tuple[str, int]:
        """
        Download and parse candidates in order until one is long enough.

        At most ``max_download_attempts`` candidates are tried. A failed
        download and a too-short transcript both count as a failed attempt.

        Args:
            candidates: Merged, ranked candidates
            progress: Optional progress observer

        Returns:
            Tuple of (transcript text, number of candidates attempted)

        Raises:
            NoUsableSubtitlesError: If every attempt failed
        """
        max_attempts = min(len(candidates), self.config.max_download_attempts)
        attempts = 0

        for index, candidate in enumerate(candidates[:max_attempts], start=1):
            attempts += 1
            logger.info(
                f"Trying candidate {index}/{max_attempts} from {candidate.provider}: "
                f"id={candidate.id} release={candidate.release!r} "
                f"download_count={candidate.download_count}"
            )

            try:
                raw_content = await candidate.download()
            except Exception as e:
                logger.warning(
                    f"Candidate {index} ({candidate.provider}) download failed: {e}, trying next"
                )
                continue

            self._notify(progress, PipelineStep.PARSING)
            parsed = parse_srt(raw_content)

            if len(parsed) >= self.config.min_candidate_chars:
                logger.info(f"Candidate {index} accepted ({candidate.provider}): {len(parsed)} chars")
                return parsed, attempts
            logger.warning(f"Candidate {index} too short ({len(parsed)} chars), trying next")

        logger.warning(f"No usable subtitle content after {attempts} attempts")
        raise NoUsableSubtitlesError(attempts)

    async def stream(
        self,
        request: SearchRequest,
        feature: Feature | None = None,
        timeout: float | None = None,
    ) -> AsyncIterator[ProgressEvent]:
        """
        Run the pipeline and yield its progress events as they happen.

        The last event is always ``complete`` (with the result) or ``error``.
        If the consumer stops iterating, the run still finishes in the
        background so its result reaches the cache.

        Args:
            request: Provider search request
            feature: Caller metadata echoed in the result
            timeout: Wall-clock budget in seconds, None for no limit
        """
        queue: asyncio.Queue[ProgressEvent | None] = asyncio.Queue()

        async def produce() -> None:
            try:
                result = await asyncio.wait_for(
                    self.run(request, feature, progress=queue.put_nowait), timeout
                )
                queue.put_nowait(ProgressEvent(step="complete", result=result))
            except asyncio.TimeoutError:
                logger.error(f"Pipeline exceeded {timeout}s budget")
                queue.put_nowait(ProgressEvent(step="error", error=PipelineTimeoutError().message))
            except PipelineError as e:
                queue.put_nowait(ProgressEvent(step="error", error=e.message))
            except Exception as e:
                logger.exception(f"Unhandled error: {e}")
                queue.put_nowait(ProgressEvent(step="error", error=f"Analysis failed: {e}"))
            finally:
                queue.put_nowait(None)

        task = asyncio.create_task(produce())
        self._background.add(task)
        task.add_done_callback(self._background.discard)

        while True:
            event = await queue.get()
            if event is None:
                break
            yield event

    def _notify(self, progress: ProgressCallback | None, step: PipelineStep) -> None:
        """Send a progress event; a gone or failing observer is ignored."""
        if progress is None:
            return
        try:
            progress(ProgressEvent(step=int(step), message=STEP_MESSAGES[step]))
        except Exception as e:
            logger.debug(f"Progress observer dropped step {int(step)}: {e}")
