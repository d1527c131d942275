"""
Configuration module for profanity-checker.

Uses pydantic-settings to load configuration from environment variables.
Provider credentials and pipeline limits can be tuned without code changes.
"""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings with environment variable support.

    The env_prefix is "PROFANITY_" but populate_by_name=True allows the
    aliases below as well. Credentials use the provider's conventional
    variable names so existing .env files keep working.

    Environment Variables:
        HOST / PORT / LOG_LEVEL: Server binding and verbosity
        OPENSUBTITLES_API_KEY: OpenSubtitles REST API key (provider skipped if unset)
        OPENSUBTITLES_USERNAME / OPENSUBTITLES_PASSWORD: Optional login used
            at download time for a higher per-account quota
        SUBDL_API_KEY: SubDL API key (provider skipped if unset)
        GEMINI_API_KEY: Key for the text-classification model
        PROFANITY_MAX_DOWNLOAD_ATTEMPTS: Candidates tried per request (default: 5)
        PROFANITY_REDIS_URL: Use Redis instead of the in-process cache
    """

    # ========== Server Configuration ==========

    host: str = Field(default="0.0.0.0", alias="HOST")
    port: int = Field(default=8000, alias="PORT")
    log_level: str = Field(default="info", alias="LOG_LEVEL")

    # ========== Subtitle Providers ==========

    opensubtitles_api_key: str | None = Field(default=None, alias="OPENSUBTITLES_API_KEY")
    opensubtitles_username: str | None = Field(default=None, alias="OPENSUBTITLES_USERNAME")
    opensubtitles_password: str | None = Field(default=None, alias="OPENSUBTITLES_PASSWORD")
    subdl_api_key: str | None = Field(default=None, alias="SUBDL_API_KEY")

    # Hard timeout for every provider call; archive downloads are larger
    provider_timeout: float = 10.0
    archive_timeout: float = 15.0
    user_agent: str = "ProfanityChecker v1.0"
    subdl_page_size: int = 30

    # ========== Classification ==========

    gemini_api_key: str | None = Field(default=None, alias="GEMINI_API_KEY")
    gemini_model: str = "gemini-2.5-flash"
    classification_timeout: float = 60.0
    classification_chunk_size: int = Field(default=50000, gt=0)

    # ========== Pipeline ==========

    max_download_attempts: int = 5
    min_candidate_chars: int = 100  # per-candidate acceptance gate
    min_transcript_chars: int = 50  # final gate before classification
    default_language: str = "en"
    # Wall-clock budget enforced by the HTTP layer, not by the pipeline
    pipeline_timeout: float = 120.0

    # ========== Caching Settings ==========

    cache_enabled: bool = True
    cache_maxsize: int = 1000
    analysis_cache_ttl: int = 86400  # 24 hours in seconds
    search_cache_ttl: int = 3600
    show_lookup_ttl: int = 86400
    content_cache_ttl: int = 86400
    redis_url: str | None = None

    # ========== Security Settings ==========

    rate_limit_enabled: bool = True
    rate_limit_per_minute: int = 10
    enable_security_headers: bool = True

    model_config = SettingsConfigDict(
        env_prefix="PROFANITY_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )


# Global settings instance - loaded at startup with environment variables
settings = Settings()
