"""Async HTTP client with interceptors, retries and composed cancellation."""

import asyncio
import uuid
from collections.abc import Mapping
from types import TracebackType
from typing import TYPE_CHECKING, Any

import httpx
import structlog
from pydantic import ValidationError

from reqpipe.http.constants import DEFAULT_ADAPTER
from reqpipe.http.dispatcher import Dispatcher
from reqpipe.http.errors import HttpClientError, HttpClientErrorCode
from reqpipe.http.interceptors import Interceptors, run_request_chain, run_response_chain
from reqpipe.http.lock import RequestLock
from reqpipe.http.models import RequestConfig, ResponseConfig
from reqpipe.http.redact import redact_url_credentials
from reqpipe.http.retry import RetryController, Sleep
from reqpipe.http.transport import HttpxTransport, Transport
from reqpipe.observability.logging import request_context


if TYPE_CHECKING:
    from reqpipe.settings.app import ClientSettings

logger = structlog.get_logger()

ConfigLayer = RequestConfig | Mapping[str, Any] | None


class HttpClient:
    """Sends HTTP requests through a configurable pipeline.

    Each call runs: wait on the instance lock, merge the base config with
    per-call overrides, run request interceptors, dispatch with retries, and
    run response interceptors. Failures from the request interceptors
    surface directly; failures from dispatching are retried per the retry
    policy and then pass through the response interceptors' error handlers.

    Example:
        config = {"base_url": "https://api.example.com", "timeout_ms": 5000}
        async with HttpClient(config) as client:
            users = await client.get("/users")
            print(users.data)
    """

    def __init__(
        self,
        base_config: ConfigLayer = None,
        *,
        httpx_client: httpx.AsyncClient | None = None,
        transports: Mapping[str, Transport] | None = None,
        retry_sleep: Sleep = asyncio.sleep,
    ) -> None:
        """Initialize the client.

        Args:
            base_config: Defaults applied to every request.
            httpx_client: Client backing the built-in adapter; one is
                created (and closed by ``aclose``) when omitted.
            transports: Extra named transports selectable via ``adapter``.
            retry_sleep: Coroutine used to wait between retries.
        """
        self._base_config = self._merge_layers((base_config,), RequestConfig())
        self._owns_httpx_client = httpx_client is None
        self._httpx_client = httpx_client or httpx.AsyncClient(timeout=None, follow_redirects=True)

        builtins: dict[str, Transport] = {DEFAULT_ADAPTER: HttpxTransport(self._httpx_client)}
        builtins.update(transports or {})
        self._dispatcher = Dispatcher(builtins)
        self._retry = RetryController(sleep=retry_sleep)
        self._lock = RequestLock()
        self.interceptors = Interceptors()
        self._log = logger.bind(component="http_client")

    @classmethod
    def from_settings(cls, settings: "ClientSettings", **kwargs: Any) -> "HttpClient":
        """Create a client whose base config comes from settings.

        Args:
            settings: Environment-driven settings.
            **kwargs: Passed to the constructor.

        Returns:
            HttpClient instance.
        """
        return cls(settings.to_request_config(), **kwargs)

    @property
    def base_config(self) -> RequestConfig:
        """Get the base config."""
        return self._base_config

    def merge_base_config(self, config: ConfigLayer) -> None:
        """Merge fields into the base config for future requests.

        Args:
            config: Fields to merge.
        """
        self._base_config = self._merge_layers((config,), self._base_config)

    def lock(self) -> None:
        """Hold new requests until ``unlock()`` (e.g. during a token refresh)."""
        self._lock.lock()

    def unlock(self) -> None:
        """Release held requests in arrival order."""
        self._lock.unlock()

    @property
    def locked(self) -> bool:
        """Check if new requests are being held."""
        return self._lock.locked

    def clear_waiting(self) -> None:
        """Fail every held request with LockClearedError."""
        self._lock.clear()

    @staticmethod
    def _merge_layers(
        layers: tuple[ConfigLayer, ...],
        base: RequestConfig,
    ) -> RequestConfig:
        merged = base
        try:
            for layer in layers:
                merged = merged.merge(layer)
        except ValidationError as exc:
            raise HttpClientError(
                f"Invalid request config: {exc}",
                HttpClientErrorCode.BAD_CONFIG_VALUE,
                merged,
            ) from exc
        return merged

    async def request(self, config: ConfigLayer = None, /, **overrides: Any) -> ResponseConfig:
        """Send a request.

        Args:
            config: RequestConfig or mapping merged over the base config.
            **overrides: Individual fields merged last.

        Returns:
            ResponseConfig with parsed ``data``.

        Raises:
            HttpClientError: If the request fails and no interceptor recovers.
        """
        return await self._run((config, overrides))

    async def _run(self, layers: tuple[ConfigLayer, ...]) -> ResponseConfig:
        await self._lock.wait()
        merged = self._merge_layers(layers, self._base_config)

        with request_context(uuid.uuid4().hex[:12]):
            resolved = await run_request_chain(self.interceptors.request, merged)

            outcome: ResponseConfig | Exception
            try:
                outcome = await self._retry.run(
                    lambda: self._dispatcher.dispatch(resolved), resolved.retry
                )
            except Exception as exc:  # noqa: BLE001
                outcome = exc

            try:
                response = await run_response_chain(
                    self.interceptors.response, outcome, resolved
                )
            except Exception as exc:
                self._log.warning(
                    "request_failed",
                    method=resolved.method,
                    url=redact_url_credentials(str(resolved.url)),
                    error_type=type(exc).__name__,
                    error_code=exc.code.value if isinstance(exc, HttpClientError) else None,
                )
                raise

            self._log.info(
                "request_complete",
                method=resolved.method,
                url=redact_url_credentials(response.url),
                status_code=response.status,
            )
            return response

    async def get(
        self,
        url: str | httpx.URL,
        config: ConfigLayer = None,
        /,
        **overrides: Any,
    ) -> ResponseConfig:
        """Send a GET request."""
        return await self._run(({"method": "GET", "url": url}, config, overrides))

    async def delete(
        self,
        url: str | httpx.URL,
        config: ConfigLayer = None,
        /,
        **overrides: Any,
    ) -> ResponseConfig:
        """Send a DELETE request."""
        return await self._run(({"method": "DELETE", "url": url}, config, overrides))

    async def head(
        self,
        url: str | httpx.URL,
        config: ConfigLayer = None,
        /,
        **overrides: Any,
    ) -> ResponseConfig:
        """Send a HEAD request."""
        return await self._run(({"method": "HEAD", "url": url}, config, overrides))

    async def options(
        self,
        url: str | httpx.URL,
        config: ConfigLayer = None,
        /,
        **overrides: Any,
    ) -> ResponseConfig:
        """Send an OPTIONS request."""
        return await self._run(({"method": "OPTIONS", "url": url}, config, overrides))

    async def purge(
        self,
        url: str | httpx.URL,
        config: ConfigLayer = None,
        /,
        **overrides: Any,
    ) -> ResponseConfig:
        """Send a PURGE request."""
        return await self._run(({"method": "PURGE", "url": url}, config, overrides))

    async def link(
        self,
        url: str | httpx.URL,
        config: ConfigLayer = None,
        /,
        **overrides: Any,
    ) -> ResponseConfig:
        """Send a LINK request."""
        return await self._run(({"method": "LINK", "url": url}, config, overrides))

    async def unlink(
        self,
        url: str | httpx.URL,
        config: ConfigLayer = None,
        /,
        **overrides: Any,
    ) -> ResponseConfig:
        """Send an UNLINK request."""
        return await self._run(({"method": "UNLINK", "url": url}, config, overrides))

    async def post(
        self,
        url: str | httpx.URL,
        data: Any = None,
        config: ConfigLayer = None,
        /,
        **overrides: Any,
    ) -> ResponseConfig:
        """Send a POST request with an optional body."""
        return await self._run(({"method": "POST", "url": url, "data": data}, config, overrides))

    async def put(
        self,
        url: str | httpx.URL,
        data: Any = None,
        config: ConfigLayer = None,
        /,
        **overrides: Any,
    ) -> ResponseConfig:
        """Send a PUT request with an optional body."""
        return await self._run(({"method": "PUT", "url": url, "data": data}, config, overrides))

    async def patch(
        self,
        url: str | httpx.URL,
        data: Any = None,
        config: ConfigLayer = None,
        /,
        **overrides: Any,
    ) -> ResponseConfig:
        """Send a PATCH request with an optional body."""
        return await self._run(({"method": "PATCH", "url": url, "data": data}, config, overrides))

    async def aclose(self) -> None:
        """Close the httpx client if this instance created it."""
        if self._owns_httpx_client:
            await self._httpx_client.aclose()

    async def __aenter__(self) -> "HttpClient":
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.aclose()


def create_client(config: ConfigLayer = None, **kwargs: Any) -> HttpClient:
    """Create a client instance with its own config, interceptors and lock.

    Args:
        config: Base config.
        **kwargs: Passed to the HttpClient constructor.

    Returns:
        HttpClient instance.
    """
    return HttpClient(config, **kwargs)
