"""Async HTTP request pipeline.

This module provides a promise-style HTTP client with:
- Request and response interceptor chains with stable, ejectable ids
- Per-attempt cancellation composed from a timeout and a caller signal
- Configurable retry policy with exponential backoff
- Pluggable transports (adapters) and response parsers
- A FIFO request lock for pausing new requests
- Header redaction and metrics collection for observability
"""

from reqpipe.http.cancellation import (
    AbortReason,
    CancellationComposer,
    CancelState,
    CancelStateTransitionError,
)
from reqpipe.http.client import HttpClient, create_client
from reqpipe.http.constants import (
    CONTENT_TYPE_JSON,
    CONTENT_TYPE_TEXT,
    CONTENT_TYPE_URLENCODED,
    DEFAULT_ADAPTER,
    DEFAULT_FILE_FIELD_NAME,
)
from reqpipe.http.dispatcher import Dispatcher
from reqpipe.http.errors import (
    BodySerializationError,
    HttpClientError,
    HttpClientErrorCode,
    ParseError,
)
from reqpipe.http.interceptors import (
    Interceptor,
    InterceptorManager,
    Interceptors,
    run_request_chain,
    run_response_chain,
)
from reqpipe.http.lock import LockClearedError, RequestLock
from reqpipe.http.metrics import ClientMetrics
from reqpipe.http.models import (
    FormType,
    RequestConfig,
    ResponseConfig,
    ResponseType,
    RetryPolicy,
    UploadProgress,
)
from reqpipe.http.parsers import parse_bytes, parse_json, parse_rest_response, parse_text
from reqpipe.http.redact import redact_headers, redact_url_credentials
from reqpipe.http.retry import RetryController, compute_delay_ms, should_retry
from reqpipe.http.signal import CancelSignal
from reqpipe.http.transport import HttpxTransport, Transport, TransportRequest


__all__ = [
    # Client
    "HttpClient",
    "create_client",
    # Interceptors
    "Interceptor",
    "InterceptorManager",
    "Interceptors",
    "run_request_chain",
    "run_response_chain",
    # Cancellation
    "AbortReason",
    "CancelSignal",
    "CancelState",
    "CancelStateTransitionError",
    "CancellationComposer",
    # Dispatch
    "Dispatcher",
    "HttpxTransport",
    "Transport",
    "TransportRequest",
    # Retry
    "RetryController",
    "compute_delay_ms",
    "should_retry",
    # Lock
    "LockClearedError",
    "RequestLock",
    # Models
    "FormType",
    "RequestConfig",
    "ResponseConfig",
    "ResponseType",
    "RetryPolicy",
    "UploadProgress",
    # Errors
    "BodySerializationError",
    "HttpClientError",
    "HttpClientErrorCode",
    "ParseError",
    # Parsers
    "parse_bytes",
    "parse_json",
    "parse_rest_response",
    "parse_text",
    # Constants
    "CONTENT_TYPE_JSON",
    "CONTENT_TYPE_TEXT",
    "CONTENT_TYPE_URLENCODED",
    "DEFAULT_ADAPTER",
    "DEFAULT_FILE_FIELD_NAME",
    # Metrics
    "ClientMetrics",
    # Redaction
    "redact_headers",
    "redact_url_credentials",
]
