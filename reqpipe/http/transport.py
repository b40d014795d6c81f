"""Transport primitives (adapters) used by the dispatcher.

A transport performs the network send for one attempt and returns an
``httpx.Response`` whose body has been read. Transports may inspect
``request.signal`` but do not have to: the dispatcher races every transport
call against the effective signal and abandons it on abort.
"""

import inspect
from collections.abc import AsyncIterator, Awaitable, Callable, Mapping
from dataclasses import dataclass, field
from typing import Any, Protocol

import httpx

from reqpipe.http.constants import UPLOAD_CHUNK_SIZE
from reqpipe.http.errors import HttpClientError, HttpClientErrorCode
from reqpipe.http.models import RequestConfig, UploadProgress
from reqpipe.http.signal import CancelSignal


ProgressCallback = Callable[[UploadProgress], Any]


@dataclass(frozen=True)
class TransportRequest:
    """Everything a transport needs to send one attempt."""

    method: str
    url: httpx.URL
    headers: httpx.Headers
    content: bytes | str | None = None
    files: list[tuple[str, Any]] | None = None
    form: dict[str, str] | None = None
    extensions: dict[str, Any] = field(default_factory=dict)
    signal: CancelSignal | None = None
    on_upload_progress: ProgressCallback | None = None
    follow_redirects: bool | None = None


class Transport(Protocol):
    """Network send primitive.

    Implementations may set ``supports_upload_progress = True`` to receive
    ``on_upload_progress`` callbacks; otherwise the dispatcher drops them.
    """

    def __call__(self, request: TransportRequest) -> Awaitable[httpx.Response]: ...


def _has_body(request: TransportRequest) -> bool:
    return bool(request.content or request.files or request.form)


def supports_upload_progress(transport: Transport) -> bool:
    """Check the transport's upload-progress capability flag."""
    return bool(getattr(transport, "supports_upload_progress", False))


async def _progress_stream(
    payload: bytes,
    callback: ProgressCallback,
) -> AsyncIterator[bytes]:
    """Yield ``payload`` in chunks, reporting progress after each one."""
    total = len(payload)
    for offset in range(0, total, UPLOAD_CHUNK_SIZE):
        chunk = payload[offset : offset + UPLOAD_CHUNK_SIZE]
        yield chunk
        loaded = offset + len(chunk)
        result = callback(
            UploadProgress(
                loaded=loaded,
                total=total,
                percentage=round(loaded * 100 / total),
            )
        )
        if inspect.isawaitable(result):
            await result


class HttpxTransport:
    """Built-in ``"httpx"`` adapter backed by ``httpx.AsyncClient``."""

    supports_upload_progress = True

    def __init__(self, client: httpx.AsyncClient) -> None:
        """Initialize the transport.

        Args:
            client: Shared async client; its lifecycle is owned by the caller.
        """
        self._client = client

    async def __call__(self, request: TransportRequest) -> httpx.Response:
        """Send the request and read the full response body."""
        outgoing = self._client.build_request(
            request.method,
            request.url,
            headers=request.headers,
            content=request.content,
            data=request.form,
            files=request.files,
            extensions=request.extensions or None,
        )
        if request.on_upload_progress is not None and _has_body(request):
            payload = await outgoing.aread()
            headers = httpx.Headers(outgoing.headers)
            headers.pop("Transfer-Encoding", None)
            headers["Content-Length"] = str(len(payload))
            outgoing = httpx.Request(
                outgoing.method,
                outgoing.url,
                headers=headers,
                content=_progress_stream(payload, request.on_upload_progress),
                extensions=outgoing.extensions,
            )

        if request.follow_redirects is None:
            return await self._client.send(outgoing)
        return await self._client.send(outgoing, follow_redirects=request.follow_redirects)


def resolve_transport(
    config: RequestConfig,
    builtins: Mapping[str, Transport],
) -> Transport:
    """Select the transport named or supplied by ``config.adapter``.

    Args:
        config: Request config.
        builtins: Built-in transports by name.

    Returns:
        Transport callable.

    Raises:
        HttpClientError: BAD_CONFIG for unknown names or non-callables.
    """
    adapter = config.adapter
    if isinstance(adapter, str):
        transport = builtins.get(adapter)
        if transport is None:
            raise HttpClientError(
                f"Invalid adapter name: {adapter!r}",
                HttpClientErrorCode.BAD_CONFIG,
                config,
            )
        return transport
    if callable(adapter):
        return adapter
    raise HttpClientError(
        f"Invalid adapter: expected a name or a callable, got {type(adapter).__name__}",
        HttpClientErrorCode.BAD_CONFIG,
        config,
    )
