"""Single-attempt dispatcher.

Turns a resolved RequestConfig into one transport call, composes the
cancellation sources for that call, and maps every outcome onto a
ResponseConfig or a typed HttpClientError.
"""

import asyncio
import inspect
import time
from collections.abc import Awaitable, Mapping
from typing import Any, TypeVar

import httpx
import structlog

from reqpipe.http.body import normalize_body
from reqpipe.http.cancellation import AbortReason, CancellationComposer
from reqpipe.http.constants import (
    CONTENT_TYPE_HEADER,
    HTTP_STATUS_BAD_REQUEST,
    HTTP_STATUS_SERVER_ERROR_MIN,
)
from reqpipe.http.errors import BodySerializationError, HttpClientError, HttpClientErrorCode
from reqpipe.http.headers import header_items, with_default_header
from reqpipe.http.metrics import ClientMetrics
from reqpipe.http.models import RequestConfig, ResponseConfig
from reqpipe.http.parsers import ResponseParser, get_parser, parse_diagnostic
from reqpipe.http.redact import redact_headers, redact_url_credentials
from reqpipe.http.signal import CancelSignal
from reqpipe.http.transport import (
    Transport,
    TransportRequest,
    resolve_transport,
    supports_upload_progress,
)
from reqpipe.http.url import apply_search_params, resolve_url


logger = structlog.get_logger()

R = TypeVar("R")


class _AttemptAborted(Exception):
    """Internal marker: the effective signal fired before the work finished."""


async def _race(awaitable: Awaitable[R], signal: CancelSignal | None) -> R:
    """Await ``awaitable`` unless ``signal`` fires first.

    Raises:
        _AttemptAborted: If the signal won; the work is cancelled.
    """
    task = asyncio.ensure_future(awaitable)
    if signal is None:
        return await task

    waiter = asyncio.ensure_future(signal.wait())
    try:
        done, _ = await asyncio.wait({task, waiter}, return_when=asyncio.FIRST_COMPLETED)
    except asyncio.CancelledError:
        task.cancel()
        raise
    finally:
        waiter.cancel()

    if task in done:
        return task.result()

    task.cancel()
    await asyncio.wait({task})
    raise _AttemptAborted


async def _call_transport(transport: Transport, request: TransportRequest) -> Any:
    result = transport(request)
    if inspect.isawaitable(result):
        return await result
    return result


async def _call_parser(parser: ResponseParser, response: httpx.Response) -> Any:
    result = parser(response)
    if inspect.isawaitable(result):
        return await result
    return result


class Dispatcher:
    """Performs exactly one network attempt per ``dispatch`` call."""

    def __init__(self, transports: Mapping[str, Transport]) -> None:
        """Initialize the dispatcher.

        Args:
            transports: Built-in transports by adapter name.
        """
        self._transports = dict(transports)
        self._metrics = ClientMetrics.get_instance()
        self._log = logger.bind(component="http_client")

    async def dispatch(self, config: RequestConfig) -> ResponseConfig:
        """Run one attempt.

        Args:
            config: Fully resolved request config.

        Returns:
            ResponseConfig with parsed data.

        Raises:
            HttpClientError: For every failure, classified by cause.
        """
        try:
            return await self._dispatch(config)
        except HttpClientError as exc:
            self._metrics.record_failure(exc.code)
            self._log.info("dispatch_failed", **exc.to_dict())
            raise

    async def _dispatch(self, config: RequestConfig) -> ResponseConfig:
        if config.signal is not None and config.signal.aborted:
            raise HttpClientError(
                "Request canceled", HttpClientErrorCode.CANCELED, config
            )

        transport = resolve_transport(config, self._transports)
        url = apply_search_params(resolve_url(config), config.search_params)

        try:
            body = normalize_body(config.data, config.form_type, config.file_field_name)
        except BodySerializationError as exc:
            raise HttpClientError(
                str(exc), HttpClientErrorCode.BAD_REQUEST, config
            ) from exc

        headers = config.headers
        if body.content_type is not None:
            headers = with_default_header(headers, CONTENT_TYPE_HEADER, body.content_type)

        progress = config.on_upload_progress
        if progress is not None and not supports_upload_progress(transport):
            self._log.warning("upload_progress_unsupported", adapter=repr(config.adapter))
            progress = None

        log = self._log.bind(method=config.method, url=redact_url_credentials(str(url)))
        log.debug("dispatch_start", headers=redact_headers(headers), timeout_ms=config.timeout_ms)

        with CancellationComposer(config.timeout_ms, config.signal) as cancellation:
            request = TransportRequest(
                method=config.method,
                url=url,
                headers=httpx.Headers(header_items(headers)),
                content=body.content,
                files=body.files,
                form=body.form,
                extensions=dict(config.extensions),
                signal=cancellation.signal,
                on_upload_progress=progress,
                follow_redirects=config.follow_redirects,
            )

            start_ns = time.perf_counter_ns()
            response = await self._send(transport, request, config, cancellation)
            await self._read_body(response, config, cancellation)
            duration_ms = (time.perf_counter_ns() - start_ns) / 1_000_000
            self._metrics.record_attempt(response.status_code, duration_ms)

            if not response.is_success:
                raise self._status_error(response, config)

            parser = get_parser(config)
            try:
                data = await _race(_call_parser(parser, response), cancellation.signal)
            except _AttemptAborted:
                raise self._abort_error(config, cancellation) from None
            except Exception as exc:  # noqa: BLE001
                raise HttpClientError(
                    f"Failed to parse response: {exc}",
                    HttpClientErrorCode.BAD_RESPONSE,
                    config,
                    ResponseConfig.from_response(response, config),
                ) from exc

        log.debug(
            "dispatch_complete",
            status_code=response.status_code,
            duration_ms=round(duration_ms, 2),
        )
        return ResponseConfig.from_response(response, config, data)

    async def _send(
        self,
        transport: Transport,
        request: TransportRequest,
        config: RequestConfig,
        cancellation: CancellationComposer,
    ) -> httpx.Response:
        try:
            response = await _race(_call_transport(transport, request), cancellation.signal)
        except _AttemptAborted:
            raise self._abort_error(config, cancellation) from None
        except HttpClientError:
            raise
        except Exception as exc:  # noqa: BLE001
            if cancellation.aborted:
                raise self._abort_error(config, cancellation) from exc
            if isinstance(exc, httpx.TimeoutException):
                raise HttpClientError(
                    f"Request timed out: {exc}", HttpClientErrorCode.TIMEDOUT, config
                ) from exc
            raise HttpClientError(
                f"Network error: {exc}", HttpClientErrorCode.NETWORK, config
            ) from exc

        if not isinstance(response, httpx.Response):
            raise HttpClientError(
                f"Unexpected transport result: {type(response).__name__}",
                HttpClientErrorCode.BAD_CONFIG,
                config,
            )
        return response

    async def _read_body(
        self,
        response: httpx.Response,
        config: RequestConfig,
        cancellation: CancellationComposer,
    ) -> None:
        try:
            await _race(response.aread(), cancellation.signal)
        except _AttemptAborted:
            raise self._abort_error(config, cancellation) from None
        except Exception as exc:  # noqa: BLE001
            if cancellation.aborted:
                raise self._abort_error(config, cancellation) from exc
            raise HttpClientError(
                f"Network error while reading response: {exc}",
                HttpClientErrorCode.NETWORK,
                config,
            ) from exc

    @staticmethod
    def _abort_error(
        config: RequestConfig,
        cancellation: CancellationComposer,
    ) -> HttpClientError:
        if cancellation.reason == AbortReason.TIMEOUT:
            return HttpClientError(
                f"Request timed out after {config.timeout_ms:g}ms",
                HttpClientErrorCode.TIMEDOUT,
                config,
            )
        return HttpClientError("Request canceled", HttpClientErrorCode.CANCELED, config)

    @staticmethod
    def _status_error(response: httpx.Response, config: RequestConfig) -> HttpClientError:
        status = response.status_code
        if HTTP_STATUS_BAD_REQUEST <= status < HTTP_STATUS_SERVER_ERROR_MIN:
            code = HttpClientErrorCode.BAD_REQUEST
        else:
            code = HttpClientErrorCode.BAD_RESPONSE
        return HttpClientError(
            f"Request failed with status {status}",
            code,
            config,
            ResponseConfig.from_response(response, config, parse_diagnostic(response)),
        )
