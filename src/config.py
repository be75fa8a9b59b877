from __future__ import annotations

from functools import lru_cache

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings validated via Pydantic.

    Values are loaded from environment variables and/or a .env file. Read
    once at process start; components receive what they need through their
    constructors.
    """

    # API Keys. An empty key selects the fallback-only adapter for that stage.
    assemblyai_api_key: str = ""
    anthropic_api_key: str = ""
    openai_api_key: str = ""

    # Supabase. Empty values select in-memory storage (local development).
    supabase_url: str = ""
    supabase_key: str = ""
    media_bucket: str = "videos"
    projects_table: str = "projects"
    runs_table: str = "pipeline_runs"

    # Models
    analysis_provider: str = "anthropic"
    llm_model: str = "claude-sonnet-4-20250514"
    openai_model: str = "gpt-4.1-mini"
    speech_model: str = "universal"

    # Retry and timeouts
    retry_max_attempts: int = 3
    retry_initial_delay_seconds: float = 5.0
    retry_backoff: str = "linear"
    retry_max_delay_seconds: float = 60.0
    transcription_timeout_seconds: float = 600.0
    transcription_poll_interval_seconds: float = 3.0
    analysis_timeout_seconds: float = 120.0
    signed_url_ttl_seconds: int = 3600

    segment_grouping: str = "word"

    # App config
    api_host: str = "0.0.0.0"
    api_port: int = 8000
    log_level: str = "INFO"

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "extra": "ignore"}


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return a cached Settings instance.

    Gracefully handles missing .env files (e.g. in CI/testing) by falling
    back to environment variables and defaults.
    """
    try:
        return Settings()
    except Exception:
        # If .env is missing or unreadable, build settings from env vars only.
        return Settings(_env_file=None)  # type: ignore[call-arg]


settings = get_settings()
