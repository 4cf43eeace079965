# ABOUTME: Configuration settings for the Keeper turn orchestration core using Pydantic Settings.
# ABOUTME: Loads environment variables and provides type-safe access to buffer sizes, retries and executors.

from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application configuration loaded from environment variables"""

    # OpenAI API Configuration
    openai_api_key: str | None = Field(
        default=None,
        description="OpenAI API key used by the LLM-backed stage collaborators"
    )
    openai_model: str = Field(
        default="gpt-4o",
        description="OpenAI model to use for stage collaborators"
    )

    # Redis Configuration
    redis_url: str = Field(
        default="redis://localhost:6379",
        description="Redis connection URL for turns, checkpoints and session state"
    )

    # Turn Execution
    turn_executor: Literal["asyncio", "rq"] = Field(
        default="asyncio",
        description="Where background pipeline executions run"
    )
    rq_turn_queue: str = Field(
        default="turns",
        description="RQ queue name used when turn_executor is 'rq'"
    )
    rq_worker_timeout: int = Field(
        default=300,
        description="RQ job timeout in seconds for one pipeline execution"
    )
    turn_stale_after_seconds: int = Field(
        default=300,
        description="A turn processing longer than this is surfaced as failed"
    )
    turn_record_ttl_seconds: int | None = Field(
        default=None,
        description="Optional expiry for turn records (None keeps them forever)"
    )

    # Session State Bounds
    action_outcome_buffer_size: int = Field(
        default=10,
        description="Maximum action outcomes retained in temporary state"
    )
    visited_location_history_size: int = Field(
        default=3,
        description="Maximum previously visited locations retained"
    )
    default_short_action_cap: int = Field(
        default=3,
        description="Short actions allowed per location when the location sets no cap"
    )

    # Checkpoints
    auto_checkpoint_retention: int = Field(
        default=10,
        description="Auto checkpoints kept per session; older ones are pruned"
    )

    # Progression Monitor
    max_simulated_chain: int = Field(
        default=5,
        description="Maximum internally generated turns chained without player input"
    )
    progression_check_interval_seconds: float = Field(
        default=30.0,
        description="Delay between periodic progression checks"
    )

    # LLM Reliability
    max_parse_attempts: int = Field(
        default=3,
        description="Attempts per collaborator call when structured output is malformed"
    )
    llm_retry_attempts: int = Field(
        default=5,
        description="Number of retry attempts for LLM API calls"
    )
    llm_retry_backoff_seconds: str = Field(
        default="2,5,10",
        description="Backoff intervals for LLM retries (comma-separated)"
    )
    llm_timeout_seconds: float = Field(
        default=30.0,
        description="Per-request timeout for LLM calls"
    )

    # Application Settings
    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR)"
    )
    log_dir: str = Field(
        default="logs",
        description="Directory for rotated log files"
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="KEEPER_",
        case_sensitive=False,
        extra="ignore"
    )

    @property
    def llm_retry_backoff_list(self) -> list[int]:
        """Parse comma-separated backoff intervals into list of integers"""
        return [int(x.strip()) for x in self.llm_retry_backoff_seconds.split(",")]


# Singleton settings instance - lazy initialization to allow import without .env
_settings: Settings | None = None


def get_settings() -> Settings:
    """Get or create the singleton settings instance"""
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings
