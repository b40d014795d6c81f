"""Error types for the HTTP request pipeline."""

from __future__ import annotations

from enum import Enum
from typing import TYPE_CHECKING, Any


if TYPE_CHECKING:
    from reqpipe.http.models import RequestConfig, ResponseConfig


class HttpClientErrorCode(str, Enum):
    """Classification of client errors for retry decisions and reporting.

    - BAD_CONFIG: Malformed adapter selection or pipeline contract violation
    - BAD_CONFIG_VALUE: Missing or invalid configuration value
    - INVALID_URL: URL construction or parsing failed
    - TIMEDOUT: Attempt aborted by the internal timeout
    - CANCELED: Attempt aborted by the caller's signal
    - NETWORK: Transport failure not caused by an abort
    - BAD_REQUEST: HTTP 4xx, or the request body could not be built
    - BAD_RESPONSE: Other non-2xx status, or the response could not be parsed
    """

    BAD_CONFIG = "HTTPCLIENT_ERR_BAD_CONFIG"
    BAD_CONFIG_VALUE = "HTTPCLIENT_ERR_BAD_CONFIG_VALUE"
    INVALID_URL = "HTTPCLIENT_ERR_INVALID_URL"
    TIMEDOUT = "HTTPCLIENT_ERR_TIMEDOUT"
    CANCELED = "HTTPCLIENT_ERR_CANCELED"
    NETWORK = "HTTPCLIENT_ERR_NETWORK"
    BAD_REQUEST = "HTTPCLIENT_ERR_BAD_REQUEST"
    BAD_RESPONSE = "HTTPCLIENT_ERR_BAD_RESPONSE"


class HttpClientError(Exception):
    """Base exception for every failure surfaced by the client.

    Carries a stable code plus, where available, the request config that
    produced it and the response that was received.
    """

    def __init__(
        self,
        message: str,
        code: HttpClientErrorCode,
        request_config: RequestConfig | None = None,
        response: ResponseConfig | None = None,
    ) -> None:
        """Initialize the client error.

        Args:
            message: Human-readable error message.
            code: Stable error classification.
            request_config: Request config of the failing call.
            response: Response received before the failure, if any.
        """
        super().__init__(message)
        self.message = message
        self.code = code
        self.request_config = request_config
        self.response = response

    @property
    def status(self) -> int:
        """HTTP status of the attached response, or 0 without one."""
        if self.response is None:
            return 0
        return self.response.status

    @property
    def is_cancellation(self) -> bool:
        """Check if the error was caused by the caller's signal."""
        return self.code == HttpClientErrorCode.CANCELED

    def to_dict(self) -> dict[str, Any]:
        """Convert error to dictionary for logging/serialization.

        Returns:
            Dictionary representation of the error.
        """
        return {
            "code": self.code.value,
            "message": self.message,
            "status": self.status,
            "method": self.request_config.method if self.request_config else None,
        }

    def __repr__(self) -> str:
        return f"HttpClientError(code={self.code.value}, message={self.message!r})"


class ParseError(Exception):
    """Raised by a response parser when the body cannot be decoded."""

    def __init__(self, message: str, content_type: str | None = None) -> None:
        """Initialize the parse error.

        Args:
            message: Human-readable error message.
            content_type: Content-Type of the response being parsed.
        """
        super().__init__(message)
        self.message = message
        self.content_type = content_type


class BodySerializationError(ValueError):
    """Raised when a request body cannot be turned into a transport payload."""
