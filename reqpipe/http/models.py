"""Data models for the HTTP request pipeline."""

from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass
from enum import Enum
from typing import Annotated, Any

import httpx
from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

from reqpipe.http.constants import (
    DEFAULT_ADAPTER,
    DEFAULT_BACKOFF_MULTIPLIER,
    DEFAULT_FILE_FIELD_NAME,
    DEFAULT_RETRY_DELAY_MS,
    HTTP_STATUS_OK_MAX,
    HTTP_STATUS_OK_MIN,
)
from reqpipe.http.merge import deep_merge
from reqpipe.http.signal import CancelSignal


class ResponseType(str, Enum):
    """How a successful response body is parsed when no custom parser is set.

    - JSON: Decode as JSON (empty body yields None)
    - TEXT: Decode as text
    - BYTES: Raw bytes
    - DOCUMENT: XML/HTML markup, returned as text
    """

    JSON = "json"
    TEXT = "text"
    BYTES = "bytes"
    DOCUMENT = "document"


class FormType(str, Enum):
    """Encoding used for mapping bodies instead of JSON."""

    FORM_DATA = "form-data"
    URLENCODED = "urlencoded"


@dataclass(frozen=True)
class UploadProgress:
    """Progress report for request body uploads.

    Attributes:
        loaded: Bytes sent so far.
        total: Total bytes to send.
        percentage: Rounded completion percentage.
    """

    loaded: int
    total: int
    percentage: int


class RetryPolicy(BaseModel):
    """Configuration for retry behavior.

    Delay before retry ``i`` (0-indexed) is ``delay_ms`` (or ``delay_ms(i)``
    when callable), multiplied by ``backoff_multiplier ** i`` when backoff is
    enabled, and capped at ``max_delay_ms``.
    """

    model_config = ConfigDict(frozen=True, extra="forbid", arbitrary_types_allowed=True)

    attempts: Annotated[int, Field(ge=0, description="Retries after the first try")] = 0
    delay_ms: float | Callable[[int], float] = DEFAULT_RETRY_DELAY_MS
    backoff: bool = False
    backoff_multiplier: Annotated[float, Field(gt=0)] = DEFAULT_BACKOFF_MULTIPLIER
    max_delay_ms: float | None = Field(default=None, ge=0)
    retry_condition: Callable[[Exception], bool] | None = Field(
        default=None, description="Custom predicate with final say on retries"
    )
    retryable_status_codes: tuple[int, ...] | None = None

    @property
    def total_attempts(self) -> int:
        """Get the maximum number of dispatch attempts."""
        return self.attempts + 1


def _validate_headers(value: Any) -> Any:
    if value is None or isinstance(value, httpx.Headers | Mapping):
        return value
    if isinstance(value, Sequence) and not isinstance(value, str | bytes):
        for item in value:
            if not (isinstance(item, Sequence) and len(item) == 2):
                msg = "header lists must contain (name, value) pairs"
                raise ValueError(msg)
        return [tuple(item) for item in value]
    msg = f"unsupported headers container: {type(value).__name__}"
    raise ValueError(msg)


class RequestConfig(BaseModel):
    """Logical description of one request.

    Instances are immutable; interceptors derive new configs with
    ``with_updates`` and the client derives per-call configs with ``merge``.
    Fields not interpreted by the pipeline go in ``extensions`` and are
    forwarded to the transport untouched.
    """

    model_config = ConfigDict(
        frozen=True,
        extra="forbid",
        arbitrary_types_allowed=True,
        populate_by_name=True,
    )

    method: str = "GET"
    url: str | httpx.URL | None = None
    base_url: str | httpx.URL | None = None
    headers: Any = Field(default=None, description="Mapping, list of pairs or httpx.Headers")
    data: Any = Field(default=None, validation_alias=AliasChoices("data", "body"))
    search_params: Any = Field(default=None, description="httpx.QueryParams or mapping")
    timeout_ms: float | None = Field(default=None, ge=0, description="None or 0 disables")
    retry: RetryPolicy | None = None
    signal: CancelSignal | None = None
    adapter: Any = DEFAULT_ADAPTER
    response_type: ResponseType = ResponseType.JSON
    response_parser: Callable[..., Any] | None = None
    form_type: FormType | None = None
    file_field_name: str = DEFAULT_FILE_FIELD_NAME
    on_upload_progress: Callable[[UploadProgress], Any] | None = None
    follow_redirects: bool | None = Field(default=None, description="None uses the client default")
    extensions: dict[str, Any] = Field(default_factory=dict)

    @field_validator("method")
    @classmethod
    def normalize_method(cls, v: str) -> str:
        """Upper-case the HTTP method."""
        if not v:
            msg = "method must not be empty"
            raise ValueError(msg)
        return v.upper()

    @field_validator("headers")
    @classmethod
    def validate_headers(cls, v: Any) -> Any:
        """Accept only the supported header containers."""
        return _validate_headers(v)

    def explicit_fields(self) -> dict[str, Any]:
        """Get the fields that were set explicitly, without defaults."""
        return {name: getattr(self, name) for name in self.model_fields_set}

    def merge(self, overrides: "Mapping[str, Any] | RequestConfig | None") -> "RequestConfig":
        """Return a new config with ``overrides`` deep-merged over this one.

        Args:
            overrides: Per-call fields; None values are ignored.

        Returns:
            New RequestConfig. Neither input is modified.

        Raises:
            pydantic.ValidationError: If the merged fields are invalid.
        """
        if overrides is None:
            return self
        if isinstance(overrides, RequestConfig):
            source = overrides.explicit_fields()
        else:
            source = dict(overrides)
            if "body" in source:
                source.setdefault("data", source.pop("body"))
        return RequestConfig.model_validate(deep_merge(self.explicit_fields(), source))

    def with_updates(self, **changes: Any) -> "RequestConfig":
        """Return a validated copy with the given fields replaced."""
        return RequestConfig.model_validate({**self.explicit_fields(), **changes})


class ResponseConfig(BaseModel):
    """A received response plus the request config that produced it."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    status: int
    status_text: str = ""
    headers: httpx.Headers = Field(default_factory=httpx.Headers)
    url: str = ""
    data: Any = None
    request_config: RequestConfig
    raw: httpx.Response | None = None

    @property
    def ok(self) -> bool:
        """Check if the status is 2xx."""
        return HTTP_STATUS_OK_MIN <= self.status < HTTP_STATUS_OK_MAX

    @classmethod
    def from_response(
        cls,
        response: httpx.Response,
        request_config: RequestConfig,
        data: Any = None,
    ) -> "ResponseConfig":
        """Build a ResponseConfig from a transport response.

        Args:
            response: Response returned by the transport.
            request_config: Config of the attempt.
            data: Parsed body.

        Returns:
            ResponseConfig instance.
        """
        try:
            url = str(response.url)
        except RuntimeError:
            # Responses built by hand have no request attached.
            url = ""
        return cls(
            status=response.status_code,
            status_text=response.reason_phrase,
            headers=response.headers,
            url=url,
            data=data,
            request_config=request_config,
            raw=response,
        )

    def with_updates(self, **changes: Any) -> "ResponseConfig":
        """Return a copy with the given fields replaced."""
        return self.model_copy(update=changes)
