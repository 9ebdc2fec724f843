"""Centralized error factory for the Box Platform SDK.

Provides consistent classification of HTTP responses and transport
exceptions across the executor, token manager and batch demultiplexer.
"""

from __future__ import annotations

from http import HTTPStatus
from typing import Any

import httpx

from ..errors import (
    AuthExpiredError,
    BoxSDKError,
    ErrorCode,
    NetworkError,
    RateLimitError,
    ResponseError,
    ServerError,
    TimeoutError,
    UnexpectedResponseError,
)
from ..models import APIResponse

# Retried even though they are not 5xx
RETRYABLE_STATUS_CODES = frozenset({HTTPStatus.REQUEST_TIMEOUT, HTTPStatus.TOO_MANY_REQUESTS})


def is_retryable_status(status_code: int) -> bool:
    """Check if a status code indicates a temporary error.

    Args:
        status_code: HTTP status code.

    Returns:
        True for 408, 429 and any 5xx except 507 Insufficient Storage.
    """
    if status_code in RETRYABLE_STATUS_CODES:
        return True
    return 500 <= status_code <= 599 and status_code != HTTPStatus.INSUFFICIENT_STORAGE


class ErrorFactory:
    """Centralized error creation with consistent structure."""

    @staticmethod
    def from_response(response: APIResponse) -> ResponseError:
        """Create SDK error from a non-successful API response.

        Args:
            response: Parsed API response.

        Returns:
            Appropriate ResponseError subclass.
        """
        status = response.status_code
        body = response.body if isinstance(response.body, dict) else {}

        if body.get("error") == "invalid_grant":
            description = body.get("error_description")
            return AuthExpiredError(
                response,
                f"Auth Error: {description}" if description else None,
                code=ErrorCode.INVALID_GRANT,
            )

        if status == HTTPStatus.UNAUTHORIZED:
            return AuthExpiredError(response)

        if status == HTTPStatus.TOO_MANY_REQUESTS:
            return RateLimitError(response)

        if status >= 500:
            return ServerError(response)

        if status >= 400:
            return ResponseError(response)

        return UnexpectedResponseError(response)

    @staticmethod
    def from_status(
        status_code: int,
        headers: dict[str, str] | None,
        body: Any,
    ) -> ResponseError:
        """Create SDK error from the parts of a batch sub-response."""
        return ErrorFactory.from_response(
            APIResponse(
                status_code=status_code,
                headers={k.lower(): str(v) for k, v in (headers or {}).items()},
                body=body,
            )
        )

    @staticmethod
    def from_exception(exc: Exception) -> BoxSDKError:
        """Create SDK error from a transport exception.

        Args:
            exc: Original exception.

        Returns:
            Appropriate BoxSDKError subclass.
        """
        if isinstance(exc, BoxSDKError):
            return exc

        if isinstance(exc, httpx.TimeoutException):
            return TimeoutError(f"Request timed out: {exc}", cause=exc)

        if isinstance(exc, httpx.ConnectError):
            return NetworkError(f"Connection failed: {exc}", cause=exc)

        if isinstance(exc, httpx.HTTPError):
            return NetworkError(f"HTTP error: {exc}", cause=exc)

        return NetworkError(f"Unexpected error: {exc}", cause=exc)
