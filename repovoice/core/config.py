"""
Application configuration using Pydantic Settings.
Loads from environment variables with sensible defaults.
"""

from functools import lru_cache
from typing import Literal

from pydantic import Field, RedisDsn
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = "RepoVoice Backend"
    app_version: str = "1.0.0"
    debug: bool = False
    environment: Literal["development", "staging", "production", "test"] = "development"

    # API
    api_v1_prefix: str = "/api/v1"
    cors_origins: list[str] = ["http://localhost:3000"]

    # Database - Individual settings (recommended)
    postgres_host: str = "localhost"
    postgres_port: int = 5432
    postgres_database: str = "repovoice"
    postgres_user: str = "postgres"
    postgres_password: str = "postgres"

    # Database pool settings
    database_pool_size: int = 20
    database_max_overflow: int = 10
    # Celery workers run each task in its own event loop, pooled
    # connections cannot be shared across loops
    database_null_pool: bool = False
    database_url_override: str = ""

    @property
    def database_url(self) -> str:
        """Build database URL from individual components."""
        if self.database_url_override:
            return self.database_url_override
        return f"postgresql+asyncpg://{self.postgres_user}:{self.postgres_password}@{self.postgres_host}:{self.postgres_port}/{self.postgres_database}"

    # Redis
    redis_url: RedisDsn = Field(default="redis://localhost:6379/0")
    redis_evolution_score_ttl: int = 300  # 5 minutes

    # Celery
    celery_broker_url: str = "redis://localhost:6379/1"
    celery_result_backend: str = "redis://localhost:6379/1"

    # Gemini (tone-shift classification)
    google_api_key: str = ""
    google_model_fast: str = "gemini-1.5-flash-latest"
    tone_classifier: Literal["heuristic", "gemini"] = "heuristic"

    # LLM Settings
    llm_temperature: float = 0.0
    llm_max_tokens: int = 32
    llm_timeout: int = 30
    llm_max_retries: int = 3

    # Authentication
    jwt_secret_key: str = "your-secret-key-change-in-production"
    jwt_algorithm: str = "HS256"

    # Learning engine - gates
    # "memory" is process-local: tests and single-process runs only
    learning_gate_backend: Literal["memory", "redis"] = "redis"
    learning_rate_limit_ms: int = 5 * 60 * 1000
    learning_batch_window_ms: int = 5 * 60 * 1000
    # Slack added to a deferred follow-up so it lands after the cooldown started by the batch opener
    learning_follow_up_grace_ms: int = 5000

    # Learning engine - pattern thresholds
    learning_min_edits_for_major_changes: int = 5
    learning_min_edits_for_pattern_detection: int = 3
    learning_min_edits_for_banned_phrases: int = 2
    learning_min_edits_for_common_phrases: int = 3
    learning_sentence_length_min_delta: float = 1.0
    learning_min_emojis_added: int = 3

    # Learning engine - windows and bounds
    learning_recent_edits_limit: int = 20
    learning_max_edit_metadata_per_user: int = 50
    learning_adjustment_percentage: float = 0.15
    learning_sentence_length_min: float = 5
    learning_sentence_length_max: float = 50
    learning_max_phrases: int = 20
    profile_max_versions: int = 10
    profile_update_max_retries: int = 3
    profile_update_retry_base_ms: int = 100

    # Learning queue
    learning_queue_name: str = "learning"
    learning_max_attempts: int = 3
    learning_backoff_delay_ms: int = 1000  # 1s, 2s, 4s
    learning_worker_concurrency: int = 5
    learning_jobs_per_second: int = 10

    # Logging
    log_level: str = "INFO"
    log_format: Literal["json", "console"] = "console"

    # Sentry (Error Tracking)
    sentry_dsn: str = ""
    sentry_environment: str = "development"
    sentry_traces_sample_rate: float = 0.1


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


settings = get_settings()
