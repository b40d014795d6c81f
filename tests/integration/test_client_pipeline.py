"""Integration tests for the full client pipeline."""

import asyncio
import json
from collections.abc import AsyncIterator
from typing import Any
from unittest.mock import patch

import httpx
import pytest

from reqpipe.http import (
    CancelSignal,
    ClientMetrics,
    HttpClient,
    HttpClientError,
    HttpClientErrorCode,
    LockClearedError,
    RequestConfig,
    ResponseConfig,
    RetryPolicy,
    create_client,
)
from reqpipe.settings import ClientSettings
from tests.helpers.transports import (
    HangingTransport,
    ScriptedTransport,
    SleepRecorder,
    json_response,
)


class RecordingHandler:
    """httpx.MockTransport handler that records requests and replays statuses."""

    def __init__(self, statuses: list[int] | None = None, payload: Any = None) -> None:
        self.statuses = statuses or [200]
        self.payload = payload if payload is not None else {"ok": True}
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        status = self.statuses[min(len(self.requests), len(self.statuses)) - 1]
        return httpx.Response(status, json=self.payload)


@pytest.fixture
def handler() -> RecordingHandler:
    """Create a recording handler answering 200."""
    return RecordingHandler()


@pytest.fixture
async def client(handler: RecordingHandler) -> AsyncIterator[HttpClient]:
    """Create a client backed by httpx.MockTransport."""
    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as http:
        yield HttpClient(
            {"base_url": "https://api.example.com", "timeout_ms": 5000},
            httpx_client=http,
            retry_sleep=SleepRecorder(),
        )


class TestBasicRequests:
    """Tests for requests through the built-in adapter."""

    @pytest.mark.integration
    async def test_get_resolves_against_base_url(
        self, client: HttpClient, handler: RecordingHandler
    ) -> None:
        """Test that GET /users reaches base_url + path and parses JSON."""
        response = await client.get("/users")

        assert str(handler.requests[0].url) == "https://api.example.com/users"
        assert handler.requests[0].method == "GET"
        assert handler.requests[0].content == b""
        assert response.status == 200
        assert response.data == {"ok": True}

    @pytest.mark.integration
    async def test_post_sends_json_body(
        self, client: HttpClient, handler: RecordingHandler
    ) -> None:
        """Test that POST with an object body is JSON with a content type."""
        await client.post("/login", {"user": "ada", "password": "pw"})

        request = handler.requests[0]
        assert request.method == "POST"
        assert request.headers["content-type"] == "application/json"
        assert json.loads(request.content) == {"user": "ada", "password": "pw"}

    @pytest.mark.integration
    @pytest.mark.parametrize(
        ("method_name", "expected"),
        [
            ("delete", "DELETE"),
            ("head", "HEAD"),
            ("options", "OPTIONS"),
            ("purge", "PURGE"),
            ("link", "LINK"),
            ("unlink", "UNLINK"),
        ],
    )
    async def test_bodyless_shorthands(
        self,
        client: HttpClient,
        handler: RecordingHandler,
        method_name: str,
        expected: str,
    ) -> None:
        """Test that each shorthand sends its method without a body."""
        await getattr(client, method_name)("/items/1")

        assert handler.requests[0].method == expected
        assert handler.requests[0].content == b""

    @pytest.mark.integration
    async def test_put_and_patch_send_bodies(
        self, client: HttpClient, handler: RecordingHandler
    ) -> None:
        """Test that PUT and PATCH forward their body argument."""
        await client.put("/items/1", "raw text")
        await client.patch("/items/1", {"name": "new"})

        assert handler.requests[0].method == "PUT"
        assert handler.requests[0].content == b"raw text"
        assert handler.requests[0].headers["content-type"] == "text/plain"
        assert handler.requests[1].method == "PATCH"

    @pytest.mark.integration
    async def test_per_call_overrides(
        self, client: HttpClient, handler: RecordingHandler
    ) -> None:
        """Test that per-call config and keyword overrides are merged."""
        await client.get(
            "/search",
            {"search_params": {"q": "cats"}},
            headers={"X-Trace": "t1"},
        )

        request = handler.requests[0]
        assert request.url.params["q"] == "cats"
        assert request.headers["x-trace"] == "t1"

    @pytest.mark.integration
    async def test_request_accepts_full_config(
        self, client: HttpClient, handler: RecordingHandler
    ) -> None:
        """Test that request() accepts a RequestConfig."""
        response = await client.request(RequestConfig(method="DELETE", url="/users/9"))

        assert handler.requests[0].method == "DELETE"
        assert response.request_config.url == "/users/9"

    @pytest.mark.integration
    async def test_invalid_override_is_bad_config_value(self, client: HttpClient) -> None:
        """Test that invalid per-call config surfaces as BAD_CONFIG_VALUE."""
        with pytest.raises(HttpClientError) as exc_info:
            await client.get("/users", timeout_ms=-1)

        assert exc_info.value.code == HttpClientErrorCode.BAD_CONFIG_VALUE

    @pytest.mark.integration
    async def test_merge_base_config(
        self, client: HttpClient, handler: RecordingHandler
    ) -> None:
        """Test that base config updates apply to later requests."""
        client.merge_base_config({"headers": {"Authorization": "Bearer t"}})

        await client.get("/me")

        assert handler.requests[0].headers["authorization"] == "Bearer t"
        assert client.base_config.timeout_ms == 5000

    @pytest.mark.integration
    async def test_none_header_override_unsets_base_header(
        self, client: HttpClient, handler: RecordingHandler
    ) -> None:
        """Test that a None header override removes the base header."""
        client.merge_base_config({"headers": {"Authorization": "Bearer t", "X-App": "web"}})

        await client.get("/public", headers={"authorization": None})

        request = handler.requests[0]
        assert "authorization" not in request.headers
        assert request.headers["x-app"] == "web"


def _redirecting_handler(seen: list[httpx.Request]):
    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        if request.url.path == "/old":
            return httpx.Response(302, headers={"Location": "/new"})
        return httpx.Response(200, json={"path": request.url.path})

    return handler


class TestRedirects:
    """Tests for redirect handling."""

    @pytest.mark.integration
    async def test_owned_client_follows_redirects(self) -> None:
        """Test that the default httpx client follows a 302."""
        seen: list[httpx.Request] = []
        real_client = httpx.AsyncClient

        def with_mock_transport(**kwargs: Any) -> httpx.AsyncClient:
            return real_client(transport=httpx.MockTransport(_redirecting_handler(seen)), **kwargs)

        with patch("reqpipe.http.client.httpx.AsyncClient", side_effect=with_mock_transport):
            client = HttpClient({"base_url": "https://api.example.com"})

        async with client:
            response = await client.get("/old")

        assert response.status == 200
        assert response.data == {"path": "/new"}
        assert [r.url.path for r in seen] == ["/old", "/new"]

    @pytest.mark.integration
    async def test_follow_redirects_per_request(self) -> None:
        """Test that follow_redirects overrides the httpx client default."""
        seen: list[httpx.Request] = []
        transport = httpx.MockTransport(_redirecting_handler(seen))
        async with httpx.AsyncClient(transport=transport) as http:
            client = HttpClient({"base_url": "https://api.example.com"}, httpx_client=http)

            followed = await client.get("/old", follow_redirects=True)
            with pytest.raises(HttpClientError) as exc_info:
                await client.get("/old")

        assert followed.data == {"path": "/new"}
        assert exc_info.value.status == 302
        assert exc_info.value.code == HttpClientErrorCode.BAD_RESPONSE


class TestRetries:
    """Tests for retries through the client."""

    @pytest.mark.integration
    async def test_server_error_retried_with_backoff(self) -> None:
        """Test that a persistent 503 is attempted N+1 times with backoff."""
        transport = ScriptedTransport([json_response(503, {"error": "busy"})])
        sleep = SleepRecorder()
        client = HttpClient(
            {"base_url": "https://api.example.com", "adapter": transport},
            retry_sleep=sleep,
        )

        with pytest.raises(HttpClientError) as exc_info:
            await client.get(
                "/x",
                retry=RetryPolicy(attempts=2, delay_ms=100, backoff=True, backoff_multiplier=2),
            )

        assert transport.call_count == 3
        assert sleep.delays == [0.1, 0.2]
        assert exc_info.value.code == HttpClientErrorCode.BAD_RESPONSE
        assert exc_info.value.status == 503
        assert ClientMetrics.get_instance().http_retry_total == 2
        await client.aclose()

    @pytest.mark.integration
    async def test_transient_failure_recovers(self) -> None:
        """Test that a network error followed by success returns the success."""
        transport = ScriptedTransport(
            [httpx.ConnectError("reset"), json_response(200, {"id": 1})]
        )
        client = create_client(
            {"base_url": "https://api.example.com", "adapter": transport},
            retry_sleep=SleepRecorder(),
        )

        response = await client.get("/x", retry={"attempts": 3, "delay_ms": 10})

        assert response.data == {"id": 1}
        assert transport.call_count == 2
        await client.aclose()

    @pytest.mark.integration
    async def test_each_attempt_gets_its_own_timeout(self) -> None:
        """Test that timed-out attempts are retried with a fresh timer."""
        hanging = HangingTransport()
        client = HttpClient(
            {"base_url": "https://api.example.com"},
            transports={"hang": hanging},
            retry_sleep=SleepRecorder(),
        )

        with pytest.raises(HttpClientError) as exc_info:
            await client.get(
                "/slow",
                adapter="hang",
                timeout_ms=10,
                retry=RetryPolicy(attempts=1, delay_ms=0),
            )

        assert exc_info.value.code == HttpClientErrorCode.TIMEDOUT
        assert len(hanging.requests) == 2
        await client.aclose()


class TestCancellation:
    """Tests for caller cancellation vs timeout through the client."""

    @pytest.mark.integration
    async def test_user_cancel_before_timeout_is_canceled(self) -> None:
        """Test that a caller abort is reported as CANCELED and not retried."""
        hanging = HangingTransport()
        client = HttpClient(
            {"base_url": "https://api.example.com", "adapter": "hang"},
            transports={"hang": hanging},
            retry_sleep=SleepRecorder(),
        )
        signal = CancelSignal()

        task = asyncio.ensure_future(
            client.get("/slow", timeout_ms=1000, signal=signal, retry={"attempts": 3})
        )
        await asyncio.wait_for(hanging.started.wait(), timeout=1)
        signal.abort()

        with pytest.raises(HttpClientError) as exc_info:
            await task

        assert exc_info.value.code == HttpClientErrorCode.CANCELED
        assert len(hanging.requests) == 1
        assert hanging.cancelled is True
        await client.aclose()

    @pytest.mark.integration
    async def test_timeout_before_user_cancel_is_timedout(self) -> None:
        """Test that an expired timer is reported as TIMEDOUT."""
        hanging = HangingTransport()
        client = HttpClient(
            {"base_url": "https://api.example.com", "adapter": "hang"},
            transports={"hang": hanging},
        )
        signal = CancelSignal()

        with pytest.raises(HttpClientError) as exc_info:
            await client.get("/slow", timeout_ms=10, signal=signal)
        signal.abort()

        assert exc_info.value.code == HttpClientErrorCode.TIMEDOUT
        assert signal.listener_count == 0
        await client.aclose()


class TestInterceptorPipeline:
    """Tests for interceptors around dispatch."""

    @pytest.mark.integration
    async def test_request_interceptor_adds_header(
        self, client: HttpClient, handler: RecordingHandler
    ) -> None:
        """Test that request interceptors shape the dispatched request."""
        client.interceptors.request.use(
            lambda config: config.merge({"headers": {"Authorization": "Bearer abc"}})
        )

        await client.get("/me")

        assert handler.requests[0].headers["authorization"] == "Bearer abc"

    @pytest.mark.integration
    async def test_response_interceptor_transforms_data(self, client: HttpClient) -> None:
        """Test that response interceptors see and replace the response."""
        client.interceptors.response.use(
            lambda response: response.with_updates(data={"wrapped": response.data})
        )

        response = await client.get("/users")

        assert response.data == {"wrapped": {"ok": True}}

    @pytest.mark.integration
    async def test_request_chain_failure_bypasses_dispatch(
        self, client: HttpClient, handler: RecordingHandler
    ) -> None:
        """Test that request-chain errors skip dispatch and response handlers."""
        seen: list[Exception] = []

        def fail(config: RequestConfig) -> RequestConfig:
            raise RuntimeError("no credentials")

        client.interceptors.request.use(fail)
        client.interceptors.response.use(on_rejected=lambda exc: seen.append(exc))

        with pytest.raises(RuntimeError, match="no credentials"):
            await client.get("/me")

        assert handler.requests == []
        assert seen == []

    @pytest.mark.integration
    async def test_response_error_handler_recovers_by_reissuing(self) -> None:
        """Test the token-refresh pattern: a 401 handler re-sends the request."""
        transport = ScriptedTransport([json_response(401, {}), json_response(200, {"id": 1})])
        client = HttpClient({"base_url": "https://api.example.com", "adapter": transport})

        async def refresh(error: Exception) -> ResponseConfig | None:
            if isinstance(error, HttpClientError) and error.status == 401:
                return await client.request(
                    error.request_config,
                    headers={"Authorization": "Bearer refreshed"},
                )
            return None

        client.interceptors.response.use(on_rejected=refresh)

        response = await client.get("/me")

        assert response.data == {"id": 1}
        assert transport.requests[1].headers["authorization"] == "Bearer refreshed"
        await client.aclose()

    @pytest.mark.integration
    async def test_eject_during_flight(
        self, client: HttpClient, handler: RecordingHandler
    ) -> None:
        """Test that ejecting a response interceptor mid-flight skips it."""
        calls: list[str] = []

        def first(response: ResponseConfig) -> ResponseConfig:
            calls.append("first")
            client.interceptors.response.eject(second_id)
            return response

        def second(response: ResponseConfig) -> ResponseConfig:
            calls.append("second")
            return response

        client.interceptors.response.use(first)
        second_id = client.interceptors.response.use(second)

        await client.get("/users")
        await client.get("/users")

        assert calls == ["first", "first"]

    @pytest.mark.integration
    async def test_clients_are_independent(self) -> None:
        """Test that interceptors registered on one client do not leak."""
        first = create_client({"base_url": "https://a.example.com"})
        second = create_client({"base_url": "https://b.example.com"})

        first.interceptors.request.use(lambda config: config)

        assert len(first.interceptors.request) == 1
        assert len(second.interceptors.request) == 0
        assert second.base_config.base_url == "https://b.example.com"
        await first.aclose()
        await second.aclose()


class TestRequestLock:
    """Tests for pausing requests with the client lock."""

    @pytest.mark.integration
    async def test_locked_requests_wait_and_release_in_order(
        self, client: HttpClient, handler: RecordingHandler
    ) -> None:
        """Test that requests issued while locked run after unlock, FIFO."""
        client.lock()
        tasks = [asyncio.ensure_future(client.get(f"/items/{i}")) for i in range(3)]
        await asyncio.sleep(0.01)

        assert client.locked is True
        assert handler.requests == []

        client.unlock()
        await asyncio.gather(*tasks)

        assert [r.url.path for r in handler.requests] == ["/items/0", "/items/1", "/items/2"]

    @pytest.mark.integration
    async def test_clear_waiting_rejects_held_requests(self, client: HttpClient) -> None:
        """Test that held requests fail when the lock is cleared."""
        client.lock()
        task = asyncio.ensure_future(client.get("/items"))
        await asyncio.sleep(0)

        client.clear_waiting()

        with pytest.raises(LockClearedError):
            await task


class TestClientLifecycle:
    """Tests for construction and cleanup."""

    @pytest.mark.integration
    async def test_from_settings(self) -> None:
        """Test building a client from settings."""
        settings = ClientSettings(base_url="https://api.example.com", timeout_ms=750)

        client = HttpClient.from_settings(settings)

        assert client.base_config.base_url == "https://api.example.com"
        assert client.base_config.timeout_ms == 750
        await client.aclose()

    @pytest.mark.integration
    async def test_external_httpx_client_not_closed(self, handler: RecordingHandler) -> None:
        """Test that aclose() leaves caller-owned httpx clients open."""
        http = httpx.AsyncClient(transport=httpx.MockTransport(handler))

        async with HttpClient(httpx_client=http):
            pass

        assert http.is_closed is False
        await http.aclose()

    @pytest.mark.integration
    def test_invalid_base_config_is_bad_config_value(self) -> None:
        """Test that an unknown base config field surfaces as BAD_CONFIG_VALUE."""
        with pytest.raises(HttpClientError) as exc_info:
            HttpClient({"redirect": "follow"})

        assert exc_info.value.code == HttpClientErrorCode.BAD_CONFIG_VALUE
