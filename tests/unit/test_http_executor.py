"""Unit tests for the request executor.

Tests response classification, retry policy and streaming.
"""

from __future__ import annotations

import json
import time

import httpx
import pytest
import respx

from box_platform_sdk.config import RetryConfig
from box_platform_sdk.core.http_executor import RequestExecutor, next_retry_delay_ms
from box_platform_sdk.errors import (
    AuthExpiredError,
    NetworkError,
    RateLimitError,
    ResponseError,
    RetriesExhaustedError,
    ServerError,
)
from box_platform_sdk.models import APIResponse, RetryOptions

URL = "https://api.box.com/2.0/folders/0"


class TestExecute:
    """Tests for single-shot responses."""

    async def test_success_returns_parsed_body(
        self, executor: RequestExecutor, respx_mock: respx.MockRouter
    ) -> None:
        respx_mock.get(URL).mock(
            return_value=httpx.Response(200, json={"id": "0"}, headers={"X-Thing": "1"})
        )

        response = await executor.execute("GET", URL)

        assert response.status_code == 200
        assert response.body == {"id": "0"}
        assert response.headers["x-thing"] == "1"
        assert response.method == "GET"

    async def test_passes_request_options(
        self, executor: RequestExecutor, respx_mock: respx.MockRouter
    ) -> None:
        route = respx_mock.post(URL, params={"fields": "name"}).mock(
            return_value=httpx.Response(201, json={})
        )

        await executor.execute(
            "POST",
            URL,
            params={"fields": "name"},
            json={"name": "folder"},
            headers={"Authorization": "Bearer t"},
        )

        request = route.calls.last.request
        assert request.headers["Authorization"] == "Bearer t"
        assert json.loads(request.content) == {"name": "folder"}

    async def test_redirect_returned_as_is(
        self, executor: RequestExecutor, respx_mock: respx.MockRouter
    ) -> None:
        respx_mock.get(URL).mock(
            return_value=httpx.Response(302, headers={"Location": "https://dl.boxcloud.com/x"})
        )

        response = await executor.execute("GET", URL)

        assert response.status_code == 302
        assert response.headers["location"] == "https://dl.boxcloud.com/x"

    async def test_not_found_is_not_retried(
        self, executor: RequestExecutor, respx_mock: respx.MockRouter
    ) -> None:
        route = respx_mock.get(URL).mock(
            return_value=httpx.Response(404, json={"code": "not_found", "request_id": "r1"})
        )

        with pytest.raises(ResponseError) as exc_info:
            await executor.execute("GET", URL)

        assert exc_info.value.status_code == 404
        assert exc_info.value.request_id == "r1"
        assert route.call_count == 1

    async def test_unauthorized_is_auth_expired(
        self, executor: RequestExecutor, respx_mock: respx.MockRouter
    ) -> None:
        route = respx_mock.get(URL).mock(return_value=httpx.Response(401))

        with pytest.raises(AuthExpiredError):
            await executor.execute("GET", URL)

        assert route.call_count == 1

    async def test_insufficient_storage_is_not_retried(
        self, executor: RequestExecutor, respx_mock: respx.MockRouter
    ) -> None:
        route = respx_mock.get(URL).mock(return_value=httpx.Response(507))

        with pytest.raises(ServerError):
            await executor.execute("GET", URL)

        assert route.call_count == 1


class TestRetries:
    """Tests for the retry policy."""

    async def test_server_errors_retried_until_success(
        self, executor: RequestExecutor, respx_mock: respx.MockRouter
    ) -> None:
        route = respx_mock.get(URL).mock(
            side_effect=[
                httpx.Response(503),
                httpx.Response(500),
                httpx.Response(200, json={"ok": True}),
            ]
        )

        response = await executor.execute("GET", URL)

        assert response.body == {"ok": True}
        assert route.call_count == 3

    async def test_custom_strategy_controls_delays(
        self, executor: RequestExecutor, respx_mock: respx.MockRouter
    ) -> None:
        route = respx_mock.get(URL).mock(return_value=httpx.Response(500))
        delays = [10, 20, None]
        seen: list[RetryOptions] = []

        def strategy(options: RetryOptions) -> float | None:
            seen.append(options)
            return delays[options.num_retry_attempts - 1]

        started = time.monotonic()
        with pytest.raises(RetriesExhaustedError) as exc_info:
            await executor.execute("GET", URL, retry_strategy=strategy)
        elapsed_ms = (time.monotonic() - started) * 1000

        assert route.call_count == 3
        assert elapsed_ms >= 30
        assert exc_info.value.num_retry_attempts == 2
        assert isinstance(exc_info.value.last_error, ServerError)
        assert [o.num_retry_attempts for o in seen] == [1, 2, 3]
        assert seen[1].total_elapsed_time_ms >= 10

    async def test_custom_strategy_delays_until_success(
        self, executor: RequestExecutor, respx_mock: respx.MockRouter
    ) -> None:
        route = respx_mock.get(URL).mock(
            side_effect=[
                httpx.Response(500),
                httpx.Response(503),
                httpx.Response(200, json={"ok": True}),
            ]
        )
        delays = [10, 20, None]

        started = time.monotonic()
        response = await executor.execute(
            "GET", URL, retry_strategy=lambda o: delays[o.num_retry_attempts - 1]
        )
        elapsed_ms = (time.monotonic() - started) * 1000

        assert response.status_code == 200
        assert response.body == {"ok": True}
        assert route.call_count == 3
        assert elapsed_ms >= 30

    async def test_strategy_returning_exception_raises_it(
        self, executor: RequestExecutor, respx_mock: respx.MockRouter
    ) -> None:
        respx_mock.get(URL).mock(return_value=httpx.Response(503))
        custom = RuntimeError("give up")

        with pytest.raises(RuntimeError, match="give up") as exc_info:
            await executor.execute("GET", URL, retry_strategy=lambda _: custom)

        assert isinstance(exc_info.value.__cause__, ServerError)

    async def test_retries_exhausted_after_max(
        self, executor: RequestExecutor, respx_mock: respx.MockRouter
    ) -> None:
        route = respx_mock.get(URL).mock(return_value=httpx.Response(502))

        with pytest.raises(RetriesExhaustedError) as exc_info:
            await executor.execute("GET", URL, num_max_retries=2)

        assert route.call_count == 3
        assert exc_info.value.num_retry_attempts == 2
        assert exc_info.value.status_code == 502

    async def test_no_retries_raises_original_error(
        self, executor: RequestExecutor, respx_mock: respx.MockRouter
    ) -> None:
        respx_mock.get(URL).mock(return_value=httpx.Response(503))

        with pytest.raises(ServerError):
            await executor.execute("GET", URL, num_max_retries=0)

    async def test_rate_limit_retry_after_header(
        self, executor: RequestExecutor, respx_mock: respx.MockRouter
    ) -> None:
        route = respx_mock.get(URL).mock(
            side_effect=[
                httpx.Response(429, headers={"Retry-After": "0"}),
                httpx.Response(200, json={}),
            ]
        )

        await executor.execute("GET", URL)

        assert route.call_count == 2

    async def test_network_errors_are_retried(
        self, executor: RequestExecutor, respx_mock: respx.MockRouter
    ) -> None:
        route = respx_mock.get(URL).mock(
            side_effect=[httpx.ConnectError("refused"), httpx.Response(200, json={})]
        )

        await executor.execute("GET", URL)

        assert route.call_count == 2

    async def test_network_error_without_retries(
        self, executor: RequestExecutor, respx_mock: respx.MockRouter
    ) -> None:
        respx_mock.get(URL).mock(side_effect=httpx.ConnectError("refused"))

        with pytest.raises(NetworkError):
            await executor.execute("GET", URL, num_max_retries=0)

    async def test_multipart_uploads_never_retried(
        self, executor: RequestExecutor, respx_mock: respx.MockRouter
    ) -> None:
        route = respx_mock.post(URL).mock(return_value=httpx.Response(500))

        with pytest.raises(ServerError):
            await executor.execute("POST", URL, files={"file": ("a.txt", b"data")})

        assert route.call_count == 1


class TestExecuteStream:
    async def test_returns_unread_response(
        self, executor: RequestExecutor, respx_mock: respx.MockRouter
    ) -> None:
        respx_mock.get(URL).mock(return_value=httpx.Response(200, content=b"file contents"))

        response = await executor.execute_stream("GET", URL)
        try:
            chunks = [chunk async for chunk in response.aiter_bytes()]
        finally:
            await response.aclose()

        assert b"".join(chunks) == b"file contents"

    async def test_error_status_raises(
        self, executor: RequestExecutor, respx_mock: respx.MockRouter
    ) -> None:
        respx_mock.get(URL).mock(return_value=httpx.Response(404, json={"code": "not_found"}))

        with pytest.raises(ResponseError) as exc_info:
            await executor.execute_stream("GET", URL)

        assert exc_info.value.body == {"code": "not_found"}


class TestNextRetryDelay:
    def _error(self, status: int, **headers: str) -> ServerError | RateLimitError:
        response = APIResponse(status_code=status, headers=headers)
        return RateLimitError(response) if status == 429 else ServerError(response)

    def test_stops_past_max_retries(self) -> None:
        delay = next_retry_delay_ms(
            RetryConfig(),
            self._error(500),
            num_retry_attempts=6,
            num_max_retries=5,
            strategy=None,
            elapsed_ms=0,
        )

        assert delay is None

    def test_retry_after_overrides_backoff(self) -> None:
        delay = next_retry_delay_ms(
            RetryConfig(),
            self._error(429, **{"retry-after": "3"}),
            num_retry_attempts=1,
            num_max_retries=5,
            strategy=None,
            elapsed_ms=0,
        )

        assert delay == 3000

    def test_strategy_false_stops(self) -> None:
        delay = next_retry_delay_ms(
            RetryConfig(),
            self._error(500),
            num_retry_attempts=1,
            num_max_retries=5,
            strategy=lambda _: False,
            elapsed_ms=0,
        )

        assert delay is None
