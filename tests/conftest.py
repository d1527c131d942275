"""Shared pytest fixtures for the analysis pipeline and HTTP tests."""

from unittest.mock import AsyncMock, patch

import pytest
from fastapi.testclient import TestClient

from profanity_checker.cache import MemoryCache
from profanity_checker.config import Settings
from profanity_checker.models import (
    ClassificationResult,
    ContentType,
    ProfanityWord,
    SearchRequest,
    Severity,
    SubtitleCandidate,
)
from profanity_checker.pipeline import AnalysisPipeline
from profanity_checker.providers import ProviderRegistry, SubtitleProvider

DIALOGUE = [
    "<i>Where the hell have you been?</i>",
    "I was out looking for the damn keys.",
    "{\\an8}You lost them again, you idiot?",
    "Don't start with me tonight, seriously.",
    "<b>Fine.</b> Let's just go before we are late.",
]


def make_srt(lines=DIALOGUE) -> str:
    """Build a numbered SRT file, one cue per line."""
    blocks = []
    for index, line in enumerate(lines, start=1):
        blocks.append(f"{index}\n00:00:{index:02d},000 --> 00:00:{index:02d},900\n{line}\n")
    return "\n".join(blocks)


class StaticProvider(SubtitleProvider):
    """Provider double with canned candidates and a search counter."""

    def __init__(self, name, candidates=(), error=None, content_types=(ContentType.movie, ContentType.tvshow)):
        super().__init__(MemoryCache(maxsize=10), Settings(_env_file=None))
        self.name = name
        self.candidates = list(candidates)
        self.error = error
        self.content_types = content_types
        self.calls = 0

    def supports(self, content_type):
        return content_type in self.content_types

    async def _search(self, request):
        self.calls += 1
        if self.error is not None:
            raise self.error
        return list(self.candidates)


@pytest.fixture
def config():
    """Settings with every credential filled in and no .env file."""
    return Settings(
        _env_file=None,
        opensubtitles_api_key="os-key",
        subdl_api_key="subdl-key",
        gemini_api_key="gemini-key",
    )


@pytest.fixture
def memory_cache():
    return MemoryCache(maxsize=100)


@pytest.fixture
def movie_request():
    return SearchRequest(tmdb_id=603, content_type=ContentType.movie, title="The Matrix", year=1999)


@pytest.fixture
def episode_request():
    return SearchRequest(
        tmdb_id=1396, content_type=ContentType.tvshow, title="Breaking Bad", season=1, episode=3
    )


@pytest.fixture
def candidate_factory():
    """Build candidates whose download returns content or raises."""

    def factory(provider, download_count=0, content=None, error=None, candidate_id=None):
        if error is not None:
            download = AsyncMock(side_effect=error)
        else:
            download = AsyncMock(return_value=make_srt() if content is None else content)
        return SubtitleCandidate(
            id=candidate_id or f"{provider}-{download_count}",
            provider=provider,
            language="en",
            release=f"{provider}.release.{download_count}",
            download=download,
            download_count=download_count,
        )

    return factory


@pytest.fixture
def provider_factory():
    return StaticProvider


@pytest.fixture
def classification():
    return ClassificationResult(
        words=[
            ProfanityWord(word="hell", count=2, category="Religious/Profane", severity=Severity.mild),
            ProfanityWord(word="damn", count=1, category="General Profanity", severity=Severity.mild),
            ProfanityWord(word="idiot", count=1, category="Insults", severity=Severity.mild),
        ],
        summary="Mild language throughout.",
    )


@pytest.fixture
def classifier(classification):
    """Classification service double."""
    service = AsyncMock()
    service.classify = AsyncMock(return_value=classification)
    return service


@pytest.fixture
def pipeline_factory(config, memory_cache, classifier):
    """Build a pipeline over the given providers with shared fakes."""

    def factory(*providers, **overrides):
        pipeline_config = config.model_copy(update=overrides) if overrides else config
        return AnalysisPipeline(
            ProviderRegistry(providers),
            classifier,
            memory_cache,
            pipeline_config,
        )

    return factory


@pytest.fixture
def client():
    """FastAPI TestClient with rate limiting disabled."""
    from profanity_checker import main

    with patch.object(main.limiter, "enabled", False):
        yield TestClient(main.app)
