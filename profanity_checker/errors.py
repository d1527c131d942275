"""
Error taxonomy for the analysis pipeline.

PipelineError subclasses are terminal: they stop the run and are reported
to the caller with an HTTP-equivalent status. ProviderError never leaves
the pipeline; a failing provider only shows up indirectly as
NoSubtitlesFoundError or NoUsableSubtitlesError.
"""


class PipelineError(Exception):
    """Base class for errors that end a pipeline run."""

    error = "analysis_failed"
    status_code = 500
    default_message = "Analysis failed."

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class InvalidRequestError(PipelineError):
    """Missing or malformed request; rejected before any network call."""

    error = "invalid_request"
    status_code = 400
    default_message = "Feature with tmdb_id is required"


class NoSubtitlesFoundError(PipelineError):
    """No provider returned a single candidate."""

    error = "no_subtitles"
    status_code = 404
    default_message = "No subtitles found for this title."


class NoUsableSubtitlesError(PipelineError):
    """Candidates existed but none produced an acceptable transcript."""

    error = "no_usable_subtitles"
    status_code = 422
    default_message = "Could not download usable subtitles. Please try again later."

    def __init__(self, attempts: int, message: str | None = None):
        self.attempts = attempts
        super().__init__(message)


class ClassificationError(PipelineError):
    """The classification service could not be reached or refused the request."""

    error = "classification_failed"
    status_code = 502

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"AI analysis failed: {reason}")


class PipelineTimeoutError(PipelineError):
    """The caller's wall-clock budget ran out."""

    error = "timeout"
    status_code = 504
    default_message = "Analysis timed out. Please try again later."


class ProviderError(Exception):
    """A single provider failed to search or download."""

    def __init__(self, provider: str, message: str):
        self.provider = provider
        super().__init__(f"{provider}: {message}")


class SubtitleArchiveError(ProviderError):
    """A downloaded archive does not contain a subtitle file."""
