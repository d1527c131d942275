"""
Domain models for the profanity analysis pipeline.

Request/candidate types are plain dataclasses that only live for one
pipeline run. Anything that crosses the HTTP boundary or lands in the
cache is a pydantic model so it can be serialized and validated back.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Awaitable, Callable

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class ContentType(str, Enum):
    """Kind of title being analyzed."""

    movie = "movie"
    tvshow = "tvshow"


class Severity(str, Enum):
    """Severity class of a profanity category."""

    mild = "mild"
    moderate = "moderate"
    strong = "strong"


class Rating(str, Enum):
    """Overall profanity rating label."""

    clean = "Clean"
    mild = "Mild"
    moderate = "Moderate"
    heavy = "Heavy"
    extreme = "Extreme"


@dataclass(frozen=True)
class SearchRequest:
    """
    Input handed to every subtitle provider.

    Attributes:
        tmdb_id: Canonical TMDB id of the movie or show
        content_type: movie or tvshow
        title: Display title, used by providers that search by name
        language: ISO 639-1 language code
        imdb_id: Optional IMDb cross-reference id (tt-prefixed)
        year: Optional release year
        season: Season number for episodes
        episode: Episode number for episodes
    """

    tmdb_id: int
    content_type: ContentType
    title: str
    language: str = "en"
    imdb_id: str | None = None
    year: int | None = None
    season: int | None = None
    episode: int | None = None

    @property
    def is_episode(self) -> bool:
        return (
            self.content_type == ContentType.tvshow
            and self.season is not None
            and self.episode is not None
        )

    @property
    def episode_tag(self) -> str:
        """Season/episode part of cache keys, e.g. "s1e3", or "se" for movies."""
        season = "" if self.season is None else self.season
        episode = "" if self.episode is None else self.episode
        return f"s{season}e{episode}"


@dataclass(frozen=True)
class SubtitleCandidate:
    """
    A subtitle a provider can deliver, not yet downloaded.

    The download callable returns the raw subtitle text. It is safe to call
    more than once (providers cache the content), but the pipeline calls it
    at most once per run.
    """

    id: str
    provider: str
    language: str
    release: str
    download: Callable[[], Awaitable[str]] = field(compare=False, repr=False)
    download_count: int = 0
    hearing_impaired: bool = False


class Feature(BaseModel):
    """Title metadata as sent by the caller and echoed in the result."""

    id: str | None = None
    type: ContentType
    title: str = Field(..., min_length=1)
    original_title: str | None = None
    year: int | None = None
    imdb_id: str | None = None
    tmdb_id: int | None = None
    poster_url: str | None = None
    overview: str | None = None
    season: int | None = None
    episode: int | None = None
    episode_title: str | None = None

    model_config = ConfigDict(extra="allow")


class ProfanityWord(BaseModel):
    """A single flagged word with its occurrence count."""

    word: str
    count: int
    category: str
    severity: Severity = Severity.moderate


class ProfanityCategory(BaseModel):
    """Aggregate of all flagged words that share a category."""

    name: str
    words: list[ProfanityWord]
    total_count: int
    severity: Severity
    icon: str

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


def utcnow_iso() -> str:
    """Return the current UTC time as an ISO 8601 string."""
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


class AnalysisResult(BaseModel):
    """
    Final output of a successful pipeline run.

    Serialized with camelCase keys (``totalProfanities``, ``ratingScore``...)
    to keep the wire format the frontend already consumes.
    """

    feature: Feature
    categories: list[ProfanityCategory]
    total_profanities: int
    rating: Rating
    rating_score: int
    summary: str
    analyzed_at: str = Field(default_factory=utcnow_iso)
    subtitles_used: int = 0

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_cache(self) -> dict[str, Any]:
        """JSON-compatible representation stored in the cache."""
        return self.model_dump(mode="json", by_alias=True)


@dataclass
class ClassificationResult:
    """Flat output of the classification service for a whole transcript."""

    words: list[ProfanityWord]
    summary: str


@dataclass
class ProgressEvent:
    """
    One record of the progress stream.

    ``step`` is the numeric pipeline step, or "complete" / "error" for the
    terminal event.
    """

    step: int | str
    message: str | None = None
    result: AnalysisResult | None = None
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"step": self.step}
        if self.message is not None:
            data["message"] = self.message
        if self.result is not None:
            data["result"] = self.result.to_cache()
        if self.error is not None:
            data["error"] = self.error
        return data
