"""Centralized HTTP execution for the Box Platform SDK.

Runs one logical HTTP operation: sends it, classifies the result and retries
transient failures according to the configured retry strategy.
"""

from __future__ import annotations

import asyncio
import time
from typing import TYPE_CHECKING, Any

import httpx

from ..errors import BoxSDKError, RateLimitError, RetriesExhaustedError
from ..models import APIResponse, RetryOptions
from ..telemetry import get_logger, trace_operation
from .errors import ErrorFactory, is_retryable_status

if TYPE_CHECKING:
    from ..config import RetryConfig, RetryStrategy


def calculate_retry_delay(retry_config: RetryConfig, num_retry_attempts: int) -> int:
    """Calculate retry delay with exponential backoff.

    Args:
        retry_config: Retry configuration.
        num_retry_attempts: Retry about to be made (1-indexed).

    Returns:
        Delay in milliseconds.
    """
    return retry_config.get_delay_ms(num_retry_attempts)


def next_retry_delay_ms(
    retry_config: RetryConfig,
    error: BoxSDKError,
    *,
    num_retry_attempts: int,
    num_max_retries: int,
    strategy: RetryStrategy | None,
    elapsed_ms: float,
) -> float | None:
    """Decide how long to wait before the next attempt.

    Args:
        retry_config: Retry configuration.
        error: Error raised by the failed attempt.
        num_retry_attempts: Retry about to be made (1-indexed).
        num_max_retries: Retry limit for this request.
        strategy: Optional custom retry strategy.
        elapsed_ms: Time spent on the request so far.

    Returns:
        Delay in milliseconds, or None to stop retrying.

    Raises:
        Exception: The exception a custom strategy returned instead of a delay.
    """
    if num_retry_attempts > num_max_retries:
        return None

    if strategy is not None:
        result = strategy(
            RetryOptions(
                num_max_retries=num_max_retries,
                retry_interval_ms=retry_config.retry_interval_ms,
                num_retry_attempts=num_retry_attempts,
                error=error,
                total_elapsed_time_ms=elapsed_ms,
            )
        )
        if isinstance(result, Exception):
            raise result from error
        if result is None or isinstance(result, bool):
            return None
        return float(result)

    if isinstance(error, RateLimitError) and error.retry_after is not None:
        return error.retry_after * 1000

    return calculate_retry_delay(retry_config, num_retry_attempts)


class RequestExecutor:
    """Asynchronous HTTP executor with retry and response classification."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        retry_config: RetryConfig,
    ) -> None:
        """Initialize the executor.

        Args:
            client: Async HTTP client.
            retry_config: Default retry configuration.
        """
        self._client = client
        self._retry_config = retry_config
        self._logger = get_logger()

    @property
    def http_client(self) -> httpx.AsyncClient:
        return self._client

    async def execute(
        self,
        method: str,
        url: str,
        *,
        retry_strategy: RetryStrategy | None = None,
        num_max_retries: int | None = None,
        **kwargs: Any,
    ) -> APIResponse:
        """Execute an HTTP request with retry logic.

        Args:
            method: HTTP method.
            url: Absolute request URL.
            retry_strategy: Overrides the configured retry strategy.
            num_max_retries: Overrides the configured retry limit.
            **kwargs: headers, params, json, data, files, content, timeout.

        Returns:
            The parsed response (2xx or 3xx).

        Raises:
            AuthExpiredError: On 401 or an invalid grant.
            ResponseError: On any other non-retryable error status.
            RetriesExhaustedError: When a retryable failure outlived the policy.
            NetworkError: On transport failure with retries disabled.
        """
        response = await self._execute(
            method,
            url,
            stream=False,
            retry_strategy=retry_strategy,
            num_max_retries=num_max_retries,
            **kwargs,
        )
        return APIResponse.from_httpx(response)

    async def execute_stream(
        self,
        method: str,
        url: str,
        *,
        retry_strategy: RetryStrategy | None = None,
        num_max_retries: int | None = None,
        **kwargs: Any,
    ) -> httpx.Response:
        """Execute an HTTP request, returning the response with its body unread.

        The caller owns the response and must close it (``aclose``) after
        consuming ``aiter_bytes``.
        """
        return await self._execute(
            method,
            url,
            stream=True,
            retry_strategy=retry_strategy,
            num_max_retries=num_max_retries,
            **kwargs,
        )

    async def _execute(
        self,
        method: str,
        url: str,
        *,
        stream: bool,
        retry_strategy: RetryStrategy | None,
        num_max_retries: int | None,
        **kwargs: Any,
    ) -> httpx.Response:
        strategy = retry_strategy or self._retry_config.retry_strategy
        max_retries = (
            self._retry_config.num_max_retries
            if num_max_retries is None
            else num_max_retries
        )
        # Multipart bodies cannot be replayed
        retryable = kwargs.get("files") is None
        request_kwargs = {k: v for k, v in kwargs.items() if v is not None}

        started = time.monotonic()
        num_retry_attempts = 0

        while True:
            result = await self._execute_single(
                method, url, num_retry_attempts, stream=stream, **request_kwargs
            )
            if isinstance(result, httpx.Response):
                return result

            error = result
            if not retryable:
                raise error

            num_retry_attempts += 1
            delay_ms = next_retry_delay_ms(
                self._retry_config,
                error,
                num_retry_attempts=num_retry_attempts,
                num_max_retries=max_retries,
                strategy=strategy,
                elapsed_ms=(time.monotonic() - started) * 1000,
            )
            if delay_ms is None:
                if num_retry_attempts == 1:
                    raise error
                raise RetriesExhaustedError(
                    error, num_retry_attempts=num_retry_attempts - 1
                )

            self._log_retry(method, url, num_retry_attempts, delay_ms, error)
            await asyncio.sleep(delay_ms / 1000)

    async def _execute_single(
        self,
        method: str,
        url: str,
        attempt: int,
        *,
        stream: bool,
        **kwargs: Any,
    ) -> httpx.Response | BoxSDKError:
        """Execute a single HTTP attempt.

        Returns:
            The response when it is usable, or the retryable error.

        Raises:
            ResponseError: On a non-retryable error status.
        """
        with trace_operation(
            "http_request",
            attributes={"http.method": method, "http.url": url, "attempt": attempt},
        ) as span:
            try:
                request = self._client.build_request(method, url, **kwargs)
                response = await self._client.send(request, stream=stream)
            except httpx.HTTPError as e:
                return ErrorFactory.from_exception(e)

            span.set_attribute("http.status_code", response.status_code)

            if response.status_code < 400:
                return response

            if stream:
                try:
                    await response.aread()
                finally:
                    await response.aclose()

            error = ErrorFactory.from_response(APIResponse.from_httpx(response))
            if is_retryable_status(response.status_code):
                return error
            raise error

    def _log_retry(
        self,
        method: str,
        url: str,
        attempt: int,
        delay_ms: float,
        error: BoxSDKError,
    ) -> None:
        """Log retry attempt."""
        self._logger.warning(
            "Request failed, retrying",
            method=method,
            url=url,
            attempt=attempt,
            delay_ms=delay_ms,
            error=error.code,
            status_code=error.status_code,
        )
