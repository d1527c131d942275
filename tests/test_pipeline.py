"""Tests for the transcript acquisition and analysis pipeline."""

import asyncio
from unittest.mock import AsyncMock

import pytest

from profanity_checker.cache import analysis_cache_key
from profanity_checker.errors import (
    ClassificationError,
    InvalidRequestError,
    NoSubtitlesFoundError,
    NoUsableSubtitlesError,
    ProviderError,
)
from profanity_checker.models import ContentType, Feature, Rating
from profanity_checker.pipeline import STEP_MESSAGES, PipelineStep, build_search_request

SHORT_SRT = "1\n00:00:01,000 --> 00:00:02,000\nToo short.\n"


def srt_of_length(chars: int) -> str:
    """An SRT whose parsed text is exactly the given number of characters."""
    return f"1\n00:00:01,000 --> 00:00:02,000\n{'x' * chars}\n"


class TestBuildSearchRequest:
    """Tests for request validation."""

    def test_missing_tmdb_id(self):
        """A feature without a TMDB id is rejected before any search."""
        with pytest.raises(InvalidRequestError):
            build_search_request(Feature(type=ContentType.movie, title="Heat"))

    def test_episode(self):
        """Season and episode are carried into the search request."""
        feature = Feature(type=ContentType.tvshow, title="Lost", tmdb_id=4607, imdb_id="tt0411008")

        request = build_search_request(feature, season=2, episode=5, language="en")

        assert request.tmdb_id == 4607
        assert request.imdb_id == "tt0411008"
        assert request.is_episode
        assert request.episode_tag == "s2e5"


class TestPipelineSuccess:
    """Tests for successful runs."""

    @pytest.mark.asyncio
    async def test_falls_back_until_usable_candidate(
        self, provider_factory, candidate_factory, pipeline_factory, classifier, movie_request
    ):
        """Failed and short candidates are skipped and counted as attempts."""
        first = candidate_factory("A", 10, error=ProviderError("A", "quota exceeded"))
        second = candidate_factory("B", 9, content=SHORT_SRT)
        third = candidate_factory("A", 5, content=srt_of_length(120))
        fourth = candidate_factory("B", 1)
        pipeline = pipeline_factory(
            provider_factory("A", [first, third]),
            provider_factory("B", [second, fourth]),
        )

        result = await pipeline.run(movie_request)

        assert result.subtitles_used == 3
        first.download.assert_awaited_once()
        second.download.assert_awaited_once()
        third.download.assert_awaited_once()
        fourth.download.assert_not_awaited()

        transcript, title = classifier.classify.await_args.args
        assert transcript == "x" * 120
        assert title == "The Matrix"

    @pytest.mark.asyncio
    async def test_result_shape(self, provider_factory, candidate_factory, pipeline_factory, episode_request):
        """The result carries categories, rating and the enriched feature."""
        feature = Feature(id="tt0903747", type=ContentType.tvshow, title="Breaking Bad", tmdb_id=1396)
        pipeline = pipeline_factory(provider_factory("A", [candidate_factory("A", 1)]))

        result = await pipeline.run(episode_request, feature)

        assert result.feature.season == 1
        assert result.feature.episode == 3
        assert result.feature.id == "tt0903747"
        assert result.total_profanities == 4
        assert [c.name for c in result.categories] == [
            "Religious/Profane",
            "General Profanity",
            "Insults",
        ]
        assert result.rating == Rating.mild
        # hell x2 mild, damn x1 moderate, idiot x1 mild: (2 + 2 + 1) / 4 * 4 = 5
        assert result.rating_score == 5
        assert result.summary == "Mild language throughout."
        assert result.subtitles_used == 1

    @pytest.mark.asyncio
    async def test_episode_label_sent_to_classifier(
        self, provider_factory, candidate_factory, pipeline_factory, classifier, episode_request
    ):
        """Episodes are classified under a title label with season and episode."""
        pipeline = pipeline_factory(provider_factory("A", [candidate_factory("A", 1)]))

        await pipeline.run(episode_request)

        assert classifier.classify.await_args.args[1] == "Breaking Bad S1E3"

    @pytest.mark.asyncio
    async def test_second_run_is_served_from_cache(
        self, provider_factory, candidate_factory, pipeline_factory, classifier, movie_request
    ):
        """An identical request within the TTL does not touch providers or the classifier."""
        provider = provider_factory("A", [candidate_factory("A", 1)])
        pipeline = pipeline_factory(provider)

        first = await pipeline.run(movie_request)
        second = await pipeline.run(movie_request)

        assert provider.calls == 1
        assert classifier.classify.await_count == 1
        assert second.to_cache() == first.to_cache()

    @pytest.mark.asyncio
    async def test_result_is_stored_under_analysis_key(
        self, provider_factory, candidate_factory, pipeline_factory, memory_cache, movie_request
    ):
        """The cached value is the camelCase wire form."""
        pipeline = pipeline_factory(provider_factory("A", [candidate_factory("A", 1)]))

        result = await pipeline.run(movie_request)

        cached = await memory_cache.get(analysis_cache_key(movie_request))
        assert cached == result.to_cache()
        assert "totalProfanities" in cached
        assert "ratingScore" in cached

    @pytest.mark.asyncio
    async def test_cache_disabled(self, provider_factory, candidate_factory, pipeline_factory, movie_request):
        """With caching off every run searches again."""
        provider = provider_factory("A", [candidate_factory("A", 1)])
        pipeline = pipeline_factory(provider, cache_enabled=False)

        await pipeline.run(movie_request)
        await pipeline.run(movie_request)

        assert provider.calls == 2

    @pytest.mark.asyncio
    async def test_clean_transcript(
        self, provider_factory, candidate_factory, pipeline_factory, classifier, classification, movie_request
    ):
        """No flagged words rates Clean with score 0."""
        classification.words = []
        pipeline = pipeline_factory(provider_factory("A", [candidate_factory("A", 1)]))

        result = await pipeline.run(movie_request)

        assert result.rating == Rating.clean
        assert result.rating_score == 0
        assert result.categories == []


class TestPipelineErrors:
    """Tests for the terminal error kinds."""

    @pytest.mark.asyncio
    async def test_no_candidates(self, provider_factory, pipeline_factory, classifier, movie_request):
        """Every provider empty ends the run before any download or classification."""
        pipeline = pipeline_factory(provider_factory("A"), provider_factory("B"))

        with pytest.raises(NoSubtitlesFoundError) as exc_info:
            await pipeline.run(movie_request)

        assert exc_info.value.status_code == 404
        classifier.classify.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_all_providers_fail(self, provider_factory, pipeline_factory, movie_request):
        """Provider outages look the same as no results."""
        pipeline = pipeline_factory(
            provider_factory("A", error=RuntimeError("down")),
            provider_factory("B", error=ValueError("bad json")),
        )

        with pytest.raises(NoSubtitlesFoundError):
            await pipeline.run(movie_request)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("available", [2, 5, 8])
    async def test_attempts_are_capped(
        self, available, provider_factory, candidate_factory, pipeline_factory, classifier, movie_request
    ):
        """Exactly min(candidates, cap) downloads happen before giving up."""
        candidates = [
            candidate_factory("A", 100 - i, error=ProviderError("A", "gone"), candidate_id=f"a{i}")
            for i in range(available)
        ]
        pipeline = pipeline_factory(provider_factory("A", candidates))

        with pytest.raises(NoUsableSubtitlesError) as exc_info:
            await pipeline.run(movie_request)

        expected = min(available, 5)
        assert exc_info.value.attempts == expected
        assert exc_info.value.status_code == 422
        assert sum(c.download.await_count for c in candidates) == expected
        classifier.classify.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_short_candidates_count_as_failures(
        self, provider_factory, candidate_factory, pipeline_factory, movie_request
    ):
        """A transcript one character under the gate is rejected."""
        candidates = [
            candidate_factory("A", 2, content=srt_of_length(99)),
            candidate_factory("A", 1, content=""),
        ]
        pipeline = pipeline_factory(provider_factory("A", candidates))

        with pytest.raises(NoUsableSubtitlesError) as exc_info:
            await pipeline.run(movie_request)

        assert exc_info.value.attempts == 2

    @pytest.mark.asyncio
    async def test_boundary_length_is_accepted(
        self, provider_factory, candidate_factory, pipeline_factory, movie_request
    ):
        """A transcript exactly at the gate is accepted."""
        pipeline = pipeline_factory(provider_factory("A", [candidate_factory("A", 1, content=srt_of_length(100))]))

        result = await pipeline.run(movie_request)

        assert result.subtitles_used == 1

    @pytest.mark.asyncio
    async def test_final_length_gate(self, provider_factory, candidate_factory, pipeline_factory, movie_request):
        """The classification gate applies even when the per-candidate gate is lower."""
        pipeline = pipeline_factory(
            provider_factory("A", [candidate_factory("A", 1, content=srt_of_length(30))]),
            min_candidate_chars=10,
        )

        with pytest.raises(NoUsableSubtitlesError) as exc_info:
            await pipeline.run(movie_request)

        assert exc_info.value.attempts == 1

    @pytest.mark.asyncio
    async def test_classification_failure_propagates(
        self, provider_factory, candidate_factory, pipeline_factory, classifier, memory_cache, movie_request
    ):
        """A classification error ends the run and nothing is cached."""
        classifier.classify.side_effect = ClassificationError("Gemini API failed: 500")
        pipeline = pipeline_factory(provider_factory("A", [candidate_factory("A", 1)]))

        with pytest.raises(ClassificationError) as exc_info:
            await pipeline.run(movie_request)

        assert exc_info.value.status_code == 502
        assert exc_info.value.message.startswith("AI analysis failed: ")
        assert await memory_cache.get(analysis_cache_key(movie_request)) is None


class TestProgressEvents:
    """Tests for progress reporting."""

    @pytest.mark.asyncio
    async def test_step_sequence(self, provider_factory, candidate_factory, pipeline_factory, movie_request):
        """Steps are reported in order, with a parse step per successful download."""
        candidates = [
            candidate_factory("A", 3, error=ProviderError("A", "gone")),
            candidate_factory("A", 2, content=SHORT_SRT),
            candidate_factory("A", 1),
        ]
        pipeline = pipeline_factory(provider_factory("A", candidates))
        events = []

        await pipeline.run(movie_request, progress=events.append)

        assert [e.step for e in events] == [0, 1, 2, 2, 3, 4]
        assert events[0].message == STEP_MESSAGES[PipelineStep.SEARCHING]
        assert events[-1].message == "Categorizing results"

    @pytest.mark.asyncio
    async def test_failing_observer_does_not_stop_the_run(
        self, provider_factory, candidate_factory, pipeline_factory, movie_request
    ):
        """An observer that raises is ignored."""
        pipeline = pipeline_factory(provider_factory("A", [candidate_factory("A", 1)]))

        def observer(event):
            raise ConnectionResetError("client went away")

        result = await pipeline.run(movie_request, progress=observer)

        assert result.subtitles_used == 1


class TestStream:
    """Tests for the streamed run."""

    @pytest.mark.asyncio
    async def test_ends_with_complete(self, provider_factory, candidate_factory, pipeline_factory, movie_request):
        """Progress events are followed by the result."""
        pipeline = pipeline_factory(provider_factory("A", [candidate_factory("A", 1)]))

        events = [event async for event in pipeline.stream(movie_request)]

        assert [e.step for e in events] == [0, 1, 2, 3, 4, "complete"]
        assert events[-1].result is not None
        assert events[-1].to_dict()["result"]["subtitlesUsed"] == 1

    @pytest.mark.asyncio
    async def test_ends_with_error(self, provider_factory, pipeline_factory, movie_request):
        """Pipeline errors become the final error event."""
        pipeline = pipeline_factory(provider_factory("A"))

        events = [event async for event in pipeline.stream(movie_request)]

        assert [e.step for e in events] == [0, "error"]
        assert events[-1].error == "No subtitles found for this title."

    @pytest.mark.asyncio
    async def test_unexpected_error(self, provider_factory, candidate_factory, pipeline_factory, classifier, movie_request):
        """Unexpected exceptions are reported with their reason."""
        classifier.classify.side_effect = KeyError("boom")
        pipeline = pipeline_factory(provider_factory("A", [candidate_factory("A", 1)]))

        events = [event async for event in pipeline.stream(movie_request)]

        assert events[-1].step == "error"
        assert events[-1].error.startswith("Analysis failed: ")

    @pytest.mark.asyncio
    async def test_timeout(self, provider_factory, candidate_factory, pipeline_factory, classifier, movie_request):
        """Exceeding the time budget ends the stream with a timeout error."""

        async def slow_classify(text, title):
            await asyncio.sleep(10)

        classifier.classify = AsyncMock(side_effect=slow_classify)
        pipeline = pipeline_factory(provider_factory("A", [candidate_factory("A", 1)]))

        events = [event async for event in pipeline.stream(movie_request, timeout=0.05)]

        assert events[-1].step == "error"
        assert events[-1].error == "Analysis timed out. Please try again later."

    @pytest.mark.asyncio
    async def test_run_finishes_after_consumer_leaves(
        self, provider_factory, candidate_factory, pipeline_factory, memory_cache, movie_request
    ):
        """Stopping iteration early still lets the result reach the cache."""
        pipeline = pipeline_factory(provider_factory("A", [candidate_factory("A", 1)]))

        stream = pipeline.stream(movie_request)
        first = await stream.__anext__()
        await stream.aclose()
        assert first.step == 0

        for _ in range(50):
            if not pipeline._background:
                break
            await asyncio.sleep(0.01)

        assert await memory_cache.get(analysis_cache_key(movie_request)) is not None
