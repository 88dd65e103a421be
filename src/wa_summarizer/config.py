"""Configuration management for wa-summarizer."""

from functools import lru_cache
from typing import Annotated

from pydantic import Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from wa_summarizer.constants import (
    DEBOUNCE_SECONDS,
    DEFAULT_ALLOWED_PACKAGES,
    DEFAULT_GEMINI_MODEL,
    GEMINI_API_BASE,
    MAX_OBSERVATION_TEXT_LENGTH,
    SENDER_SEARCH_DEPTH,
    SUMMARIZE_TIMEOUT_SECONDS,
)


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Gemini (build-time default; a runtime key in the store takes precedence)
    gemini_api_key: SecretStr | None = Field(
        default=None, description="Gemini API key used when no runtime key is stored"
    )
    gemini_model: str = Field(default=DEFAULT_GEMINI_MODEL, description="Gemini model name")
    gemini_api_base: str = Field(default=GEMINI_API_BASE, description="Gemini REST base URL")
    summarize_timeout: float = Field(
        default=SUMMARIZE_TIMEOUT_SECONDS, gt=0, description="Gemini request timeout (seconds)"
    )

    # Scheduling
    debounce_seconds: float = Field(
        default=DEBOUNCE_SECONDS, gt=0, description="Quiet period before summarizing"
    )
    summary_max_messages: int | None = Field(
        default=None, ge=1, description="Only summarize the most recent N messages"
    )

    # Capture
    allowed_packages: Annotated[
        list[str],
        Field(
            default_factory=lambda: list(DEFAULT_ALLOWED_PACKAGES),
            description="Package ids whose events are captured",
        ),
    ]
    max_observation_text_length: int = Field(
        default=MAX_OBSERVATION_TEXT_LENGTH,
        ge=1,
        description="Accessibility text at or above this length is ignored",
    )
    sender_search_depth: int = Field(
        default=SENDER_SEARCH_DEPTH, ge=0, description="Ancestors inspected for sender labels"
    )
    dedup_max_keys: int | None = Field(
        default=None, ge=1, description="LRU bound for dedup keys (unbounded when unset)"
    )

    # Storage
    data_dir: str = Field(default="data", description="Directory for the durable store")

    # Application
    environment: str = Field(default="production", description="Environment name")
    log_level: str = Field(default="INFO", description="Logging level")
    log_to_file: bool = Field(default=False, description="Also write JSON logs to a file")
    log_file_path: str = Field(default="logs/wa_summarizer.log", description="Log file path")
    log_file_max_bytes: int = Field(default=10 * 1024 * 1024, description="Rotate at this size")
    log_file_backup_count: int = Field(default=5, description="Rotated files to keep")

    @field_validator("gemini_api_key", mode="before")
    @classmethod
    def blank_key_is_missing(cls, v: object) -> object:
        """An empty build-time key means no key at all."""
        if isinstance(v, str) and not v.strip():
            return None
        return v

    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.environment.lower() == "development"

    @property
    def gemini_endpoint(self) -> str:
        """Get the full generateContent URL for the configured model."""
        return f"{self.gemini_api_base.rstrip('/')}/models/{self.gemini_model}:generateContent"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
