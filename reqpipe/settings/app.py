"""Client settings powered by Pydantic BaseSettings."""

from typing import Any

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from reqpipe.http.constants import DEFAULT_BACKOFF_MULTIPLIER, DEFAULT_RETRY_DELAY_MS
from reqpipe.http.models import RequestConfig, RetryPolicy
from reqpipe.observability.logging import configure_logging


class ClientSettings(BaseSettings):
    """Environment configuration for a default client.

    Every field reads ``REQPIPE_<FIELD>`` (e.g. ``REQPIPE_BASE_URL``).
    """

    model_config = SettingsConfigDict(
        env_prefix="REQPIPE_",
        case_sensitive=False,
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    base_url: str | None = None
    timeout_ms: float | None = Field(default=None, ge=0)
    retry_attempts: int = Field(default=0, ge=0)
    retry_delay_ms: float = Field(default=DEFAULT_RETRY_DELAY_MS, ge=0)
    retry_backoff: bool = False
    retry_backoff_multiplier: float = Field(default=DEFAULT_BACKOFF_MULTIPLIER, gt=0)
    retry_max_delay_ms: float | None = Field(default=None, ge=0)
    log_level: str = "INFO"
    log_json: bool = True

    def to_request_config(self) -> RequestConfig:
        """Build the base RequestConfig described by these settings."""
        fields: dict[str, Any] = {}
        if self.base_url:
            fields["base_url"] = self.base_url
        if self.timeout_ms is not None:
            fields["timeout_ms"] = self.timeout_ms
        if self.retry_attempts:
            fields["retry"] = RetryPolicy(
                attempts=self.retry_attempts,
                delay_ms=self.retry_delay_ms,
                backoff=self.retry_backoff,
                backoff_multiplier=self.retry_backoff_multiplier,
                max_delay_ms=self.retry_max_delay_ms,
            )
        return RequestConfig(**fields)

    def apply_logging(self) -> None:
        """Configure structured logging from ``log_level`` and ``log_json``."""
        configure_logging(level=self.log_level, json_format=self.log_json)


def get_settings() -> ClientSettings:
    """Get a settings instance."""
    return ClientSettings()
