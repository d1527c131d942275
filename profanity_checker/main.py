"""
FastAPI application for profanity analysis.

Exposes one analysis endpoint that either streams pipeline progress as
server-sent events or answers with the final result as JSON.
"""

import asyncio
import json
import logging
import time
from contextlib import asynccontextmanager
from typing import AsyncIterator

import structlog
from fastapi import FastAPI, Query, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.responses import StreamingResponse
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

# Rate limiting
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from profanity_checker import __version__
from profanity_checker.cache import RedisCache, create_cache
from profanity_checker.classifier import GeminiClassifier
from profanity_checker.config import settings
from profanity_checker.errors import PipelineError, PipelineTimeoutError
from profanity_checker.models import AnalysisResult, Feature, SearchRequest
from profanity_checker.pipeline import AnalysisPipeline, build_search_request
from profanity_checker.providers import ProviderRegistry, default_providers
from profanity_checker.utils import format_title_label, sanitize_for_log

# Configure logging with request ID context
structlog.configure(
    processors=[
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.dev.ConsoleRenderer(),
    ],
    wrapper_class=structlog.make_filtering_bound_logger(
        logging.getLevelName(settings.log_level.upper())
    ),
    context_class=dict,
    logger_factory=structlog.PrintLoggerFactory(),
    cache_logger_on_first_use=True,
)
logger = structlog.get_logger()


def get_remote_address_proxied(request: Request) -> str:
    """Get client address, considering X-Forwarded-For header."""
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else "unknown"


# Initialize rate limiter with proxy support
limiter = Limiter(key_func=get_remote_address_proxied, enabled=settings.rate_limit_enabled)
rate_limit_exception_handler = _rate_limit_exceeded_handler


def analyze_rate_limit() -> str:
    """Per-IP limit for analysis requests, read on every request."""
    return f"{settings.rate_limit_per_minute}/minute"


# Track app startup time for uptime calculation
_app_start_time = time.time()


# ============================================================================
# Pipeline wiring
# ============================================================================

cache = create_cache(settings)
registry = ProviderRegistry(default_providers(cache, settings))
classifier = GeminiClassifier(settings)
pipeline = AnalysisPipeline(registry, classifier, cache, settings)


# ============================================================================
# Lifespan Context Manager
# ============================================================================


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage application lifespan events."""
    logger.info("=" * 60)
    logger.info("Profanity Checker Starting")
    logger.info("=" * 60)
    logger.info("Subtitle providers:")
    for provider in registry.providers:
        logger.info(f"  - {provider.name}")
    logger.info(f"  - Max download attempts: {settings.max_download_attempts}")
    logger.info(f"  - Pipeline timeout: {settings.pipeline_timeout}s")
    logger.info(f"Classifier model: {settings.gemini_model}")
    logger.info("Security features:")
    logger.info(f"  - Rate Limiting: {'enabled' if settings.rate_limit_enabled else 'disabled'}")
    logger.info(f"  - Rate Limit: {settings.rate_limit_per_minute}/minute")
    logger.info(f"  - Security Headers: {'enabled' if settings.enable_security_headers else 'disabled'}")
    logger.info("Cache settings:")
    logger.info(f"  - Caching: {'enabled' if settings.cache_enabled else 'disabled'}")
    logger.info(f"  - Backend: {'redis' if settings.redis_url else 'memory'}")
    logger.info(f"  - Analysis TTL: {settings.analysis_cache_ttl}s")
    logger.info("=" * 60)

    if isinstance(cache, RedisCache):
        await cache.connect()

    yield

    if isinstance(cache, RedisCache):
        await cache.disconnect()


# Create FastAPI app
app = FastAPI(
    title="Profanity Checker",
    description="Analyze movie and TV episode subtitles for profanity",
    version=__version__,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)


# ============================================================================
# Middleware Configuration
# ============================================================================


def configure_middleware():
    """Configure middleware based on settings."""
    from fastapi.middleware.cors import CORSMiddleware

    from profanity_checker.middleware import RequestIdMiddleware, SecurityHeadersMiddleware

    # Add CORS middleware first (runs first in chain)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )
    logger.info("CORS middleware enabled")

    app.add_middleware(RequestIdMiddleware)
    logger.info("Request ID middleware enabled")

    if settings.enable_security_headers:
        app.add_middleware(SecurityHeadersMiddleware)
        logger.info("Security headers middleware enabled")

    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, rate_limit_exception_handler)
    if settings.rate_limit_enabled:
        logger.info(f"Rate limiting enabled: {settings.rate_limit_per_minute} requests/minute")


# Configure middleware on import
configure_middleware()


# ============================================================================
# Pydantic Models
# ============================================================================


class AnalyzeRequest(BaseModel):
    """Request body for an analysis."""

    feature: Feature = Field(..., description="Movie or show metadata; tmdb_id is required")
    season: int | None = Field(None, ge=0, description="Season number for TV episodes")
    episode: int | None = Field(None, ge=0, description="Episode number for TV episodes")

    model_config = {
        "json_schema_extra": {
            "example": {
                "feature": {"id": "tt0903747", "type": "tvshow", "title": "Breaking Bad", "tmdb_id": 1396},
                "season": 1,
                "episode": 3,
            }
        }
    }


class AnalyzeResponse(BaseModel):
    """Non-streamed analysis response."""

    result: AnalysisResult
    from_cache: bool = Field(..., description="Whether the result was served from cache")

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ErrorResponse(BaseModel):
    """Error response model."""

    error: str = Field(..., description="Error type")
    message: str = Field(..., description="Human-readable error message")
    detail: str | None = Field(None, description="Additional error details")


class HealthResponse(BaseModel):
    """Response model for enhanced health check."""

    status: str = Field(..., description="Service status")
    service: str = Field(..., description="Service name")
    version: str = Field(..., description="Service version")
    timestamp: float = Field(..., description="Current Unix timestamp")
    uptime_seconds: float = Field(..., description="Service uptime in seconds")
    cache: dict = Field(default_factory=dict, description="Cache statistics")
    providers: dict = Field(default_factory=dict, description="Which credentials are configured")
    rate_limiting: dict = Field(default_factory=dict, description="Rate limiting status")


# ============================================================================
# Exception Handlers
# ============================================================================


def _json_response(model: BaseModel, status_code: int = 200) -> Response:
    return Response(
        content=model.model_dump_json(by_alias=True),
        status_code=status_code,
        media_type="application/json",
    )


@app.exception_handler(PipelineError)
async def pipeline_error_handler(request: Request, exc: PipelineError):
    """Map terminal pipeline errors to their HTTP status."""
    if exc.status_code >= 500:
        logger.error(f"Analysis failed ({exc.error}): {exc.message}")
    else:
        logger.warning(f"Analysis rejected ({exc.error}): {exc.message}")

    error_response = ErrorResponse(error=exc.error, message=exc.message)
    return _json_response(error_response, exc.status_code)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """
    Handle Pydantic validation errors with detailed feedback.

    Includes specific field and error information to help developers
    understand what went wrong with their request.
    """
    errors = exc.errors()
    logger.warning(f"Validation error: {errors}")

    error_details = []
    for error in errors:
        loc = " -> ".join(str(x) for x in error["loc"])
        error_details.append(f"{loc}: {error['msg']}")

    error_response = ErrorResponse(
        error="validation_error",
        message="Invalid request parameters",
        detail="; ".join(error_details),
    )
    return _json_response(error_response, 400)


# ============================================================================
# API Endpoints
# ============================================================================


async def _event_stream(request: SearchRequest, feature: Feature) -> AsyncIterator[str]:
    async for event in pipeline.stream(request, feature, timeout=settings.pipeline_timeout):
        yield f"data: {json.dumps(event.to_dict())}\n\n"


@app.post(
    "/api/analyze",
    response_model=None,
    responses={
        200: {"description": "Analysis result, or an event stream of progress"},
        400: {"model": ErrorResponse, "description": "Missing tmdb_id or invalid body"},
        404: {"model": ErrorResponse, "description": "No subtitles found"},
        422: {"model": ErrorResponse, "description": "No usable subtitles"},
        429: {"model": ErrorResponse, "description": "Too many requests"},
        502: {"model": ErrorResponse, "description": "Classification service failed"},
        504: {"model": ErrorResponse, "description": "Analysis timed out"},
    },
    summary="Analyze a movie or episode for profanity",
)
@limiter.limit(analyze_rate_limit)
async def analyze(
    request: Request,
    body: AnalyzeRequest,
    stream: bool = Query(True, description="Stream progress as server-sent events"),
) -> Response:
    """
    Analyze the subtitles of a movie or TV episode for profanity.

    Subtitles are searched on every configured provider at once, then
    downloaded one candidate at a time until a usable transcript is found.
    The transcript is classified and the flagged words are folded into
    categories and a 0-100 rating.

    **Streaming (default):** the response is `text/event-stream`, one
    `data: {...}` event per step (`step` 0-4 with a `message`), then a final
    event with `step: "complete"` and the `result`, or `step: "error"`.

    **Non-streaming (`stream=false`):** `{"result": ..., "fromCache": false}`
    or an error status.

    Cached results are returned as JSON with `fromCache: true` in both modes.

    **Example:**
    ```bash
    curl -N -X POST "http://localhost:8000/api/analyze" \\
      -H "Content-Type: application/json" \\
      -d '{"feature": {"type": "movie", "title": "The Matrix", "tmdb_id": 603}}'
    ```
    """
    search_request = build_search_request(
        body.feature, body.season, body.episode, settings.default_language
    )
    label = format_title_label(search_request.title, search_request.season, search_request.episode)
    logger.info(
        f"Analyze request: {sanitize_for_log(label)!r} ({search_request.content_type.value}) "
        f"tmdb_id={search_request.tmdb_id} stream={stream}"
    )

    cached = await pipeline.get_cached(search_request)
    if cached is not None:
        logger.info(f"Cache hit for {sanitize_for_log(label)!r}")
        return _json_response(AnalyzeResponse(result=cached, from_cache=True))

    if stream:
        return StreamingResponse(
            _event_stream(search_request, body.feature),
            media_type="text/event-stream",
            headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
        )

    try:
        result = await asyncio.wait_for(
            pipeline.run(search_request, body.feature), settings.pipeline_timeout
        )
    except asyncio.TimeoutError as e:
        raise PipelineTimeoutError() from e

    return _json_response(AnalyzeResponse(result=result, from_cache=False))


@app.get("/", summary="Simple health check")
async def root() -> dict[str, str]:
    """Simple health check endpoint."""
    return {"status": "healthy", "service": "profanity-checker", "version": __version__}


@app.get("/health", response_model=HealthResponse, summary="Enhanced health check")
async def health() -> HealthResponse:
    """
    Enhanced health check with service metrics.

    Returns service status, uptime, cache statistics and which upstream
    credentials are configured. Key material is never included.
    """
    cache_stats = await cache.get_stats() if settings.cache_enabled else {"enabled": False}
    providers = {
        "opensubtitles": bool(settings.opensubtitles_api_key),
        "opensubtitles_login": bool(settings.opensubtitles_username and settings.opensubtitles_password),
        "subdl": bool(settings.subdl_api_key),
        "gestdown": True,
        "gemini": bool(settings.gemini_api_key),
    }

    # Without a classifier no analysis can succeed
    overall_status = "healthy" if providers["gemini"] else "degraded"

    return HealthResponse(
        status=overall_status,
        service="profanity-checker",
        version=__version__,
        timestamp=time.time(),
        uptime_seconds=time.time() - _app_start_time,
        cache=cache_stats,
        providers=providers,
        rate_limiting={
            "enabled": settings.rate_limit_enabled,
            "per_minute": settings.rate_limit_per_minute,
        },
    )


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host=settings.host, port=settings.port)
