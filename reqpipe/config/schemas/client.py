"""Client configuration file schema."""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, HttpUrl

from reqpipe.http.constants import (
    DEFAULT_ADAPTER,
    DEFAULT_BACKOFF_MULTIPLIER,
    DEFAULT_FILE_FIELD_NAME,
    DEFAULT_RETRY_DELAY_MS,
)
from reqpipe.http.models import FormType, RequestConfig, ResponseType, RetryPolicy


class RetryConfig(BaseModel):
    """Retry section of a client configuration file."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    attempts: int = Field(default=0, ge=0)
    delay_ms: float = Field(default=DEFAULT_RETRY_DELAY_MS, ge=0)
    backoff: bool = False
    backoff_multiplier: float = Field(default=DEFAULT_BACKOFF_MULTIPLIER, gt=0)
    max_delay_ms: float | None = Field(default=None, ge=0)
    retryable_status_codes: list[int] | None = None

    def to_policy(self) -> RetryPolicy:
        """Convert to the runtime RetryPolicy."""
        codes = self.retryable_status_codes
        return RetryPolicy(
            attempts=self.attempts,
            delay_ms=self.delay_ms,
            backoff=self.backoff,
            backoff_multiplier=self.backoff_multiplier,
            max_delay_ms=self.max_delay_ms,
            retryable_status_codes=tuple(codes) if codes is not None else None,
        )


class ClientConfigFile(BaseModel):
    """Top-level structure of a client configuration YAML file.

    Only plain-data fields are accepted here; callables such as parsers or
    custom adapters are attached in code.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    base_url: HttpUrl | None = None
    timeout_ms: float | None = Field(default=None, ge=0)
    headers: dict[str, str] = Field(default_factory=dict)
    search_params: dict[str, Any] = Field(default_factory=dict)
    adapter: str = DEFAULT_ADAPTER
    response_type: ResponseType = ResponseType.JSON
    form_type: FormType | None = None
    file_field_name: str = DEFAULT_FILE_FIELD_NAME
    follow_redirects: bool | None = None
    retry: RetryConfig | None = None

    def to_request_config(self) -> RequestConfig:
        """Build the base RequestConfig described by this file.

        Returns:
            RequestConfig with only the keys present in the file set
            explicitly, so merging it never overwrites with defaults.
        """
        fields: dict[str, Any] = {}
        for name in self.model_fields_set:
            value = getattr(self, name)
            if name == "retry":
                value = value.to_policy() if value is not None else None
            elif name == "base_url":
                value = str(value) if value is not None else None
            elif name == "search_params":
                value = value or None
            fields[name] = value
        return RequestConfig(**fields)
