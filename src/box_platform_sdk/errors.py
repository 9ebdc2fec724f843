"""Error classes for the Box Platform SDK.

Implements a structured error hierarchy with error codes and the response
metadata (status, request id, parsed body) needed to react to failures.
"""

from __future__ import annotations

from enum import StrEnum
from http import HTTPStatus
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from .models import APIResponse


class ErrorCode(StrEnum):
    """Standardized error codes for the Box Platform SDK."""

    # Authentication errors (1xxx)
    AUTH_EXPIRED = "AUTH_1001"
    INVALID_GRANT = "AUTH_1002"

    # Validation errors (2xxx)
    RESPONSE_ERROR = "VAL_2001"
    INVALID_CONFIG = "VAL_2002"
    UNEXPECTED_RESPONSE = "VAL_2003"

    # Network errors (3xxx)
    NETWORK_ERROR = "NET_3001"
    TIMEOUT_ERROR = "NET_3002"
    RETRIES_EXHAUSTED = "NET_3003"

    # Rate limiting (4xxx)
    RATE_LIMITED = "RATE_4001"

    # Server errors (5xxx)
    SERVER_ERROR = "SRV_5001"


class BoxSDKError(Exception):
    """Base error for the Box Platform SDK with structured error information."""

    auth_expired: bool = False

    def __init__(
        self,
        message: str,
        code: ErrorCode | str,
        *,
        status_code: int | None = None,
        request_id: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code if isinstance(code, str) else code.value
        self.status_code = status_code
        self.request_id = request_id
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        """Convert error to dictionary for logging/serialization."""
        return {
            "error": self.message,
            "code": self.code,
            "status_code": self.status_code,
            "request_id": self.request_id,
            "auth_expired": self.auth_expired,
            "details": self.details,
        }

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(code={self.code!r}, message={self.message!r})"


def _format_response_message(message: str, response: APIResponse) -> str:
    status = response.status_code
    try:
        phrase = HTTPStatus(status).phrase
    except ValueError:
        phrase = "Unknown"

    request_id = f" | {response.request_id}" if response.request_id else ""

    api_message = ""
    body = response.body
    if isinstance(body, dict):
        if body.get("code"):
            api_message += f" {body['code']}"
        if body.get("message"):
            api_message += f" - {body['message']}"

    return f"{message} [{status} {phrase}{request_id}]{api_message}"


class ResponseError(BoxSDKError):
    """The API answered with a response that could not be used."""

    default_message = "API Response Error"
    default_code: ErrorCode = ErrorCode.RESPONSE_ERROR

    def __init__(
        self,
        response: APIResponse,
        message: str | None = None,
        *,
        code: ErrorCode | str | None = None,
    ) -> None:
        details: dict[str, Any] = {}
        if isinstance(response.body, dict):
            for key in ("error", "error_description", "code", "message"):
                if response.body.get(key) is not None:
                    details[key] = response.body[key]

        super().__init__(
            _format_response_message(message or self.default_message, response),
            code or self.default_code,
            status_code=response.status_code,
            request_id=response.request_id,
            details=details,
        )
        self.response = response

    @property
    def body(self) -> Any:
        return self.response.body


class AuthExpiredError(ResponseError):
    """Access token, refresh token or auth code is no longer usable."""

    default_message = "Expired Auth: Auth code or refresh token has expired"
    default_code = ErrorCode.AUTH_EXPIRED
    auth_expired = True


class UnexpectedResponseError(ResponseError):
    """The API returned a status the caller did not expect."""

    default_message = "Unexpected API Response"
    default_code = ErrorCode.UNEXPECTED_RESPONSE


class RateLimitError(ResponseError):
    """Rate limit exceeded."""

    default_message = "Rate limit exceeded"
    default_code = ErrorCode.RATE_LIMITED

    @property
    def retry_after(self) -> int | None:
        value = self.response.headers.get("retry-after")
        return int(value) if value and value.isdigit() else None


class ServerError(ResponseError):
    """Server-side error."""

    default_message = "Server error"
    default_code = ErrorCode.SERVER_ERROR


class NetworkError(BoxSDKError):
    """Network request failed before a response was received."""

    def __init__(
        self,
        message: str = "Network request failed",
        *,
        cause: Exception | None = None,
        code: ErrorCode = ErrorCode.NETWORK_ERROR,
    ) -> None:
        super().__init__(
            message,
            code,
            details={"cause": str(cause)} if cause else None,
        )
        self.__cause__ = cause


class TimeoutError(NetworkError):
    """Request timed out."""

    def __init__(
        self,
        message: str = "Request timed out",
        *,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(message, cause=cause, code=ErrorCode.TIMEOUT_ERROR)


class RetriesExhaustedError(BoxSDKError):
    """A retryable failure persisted past the retry policy."""

    def __init__(
        self,
        last_error: BoxSDKError,
        *,
        num_retry_attempts: int,
    ) -> None:
        super().__init__(
            f"Request failed after {num_retry_attempts} retries: {last_error.message}",
            ErrorCode.RETRIES_EXHAUSTED,
            status_code=last_error.status_code,
            request_id=last_error.request_id,
            details={"last_error": last_error.to_dict()},
        )
        self.last_error = last_error
        self.num_retry_attempts = num_retry_attempts
        self.max_retries_exceeded = True
        self.__cause__ = last_error


class InvalidConfigError(BoxSDKError):
    """SDK configuration is missing something an operation needs."""

    def __init__(
        self,
        message: str,
        *,
        field: str | None = None,
    ) -> None:
        super().__init__(
            message,
            ErrorCode.INVALID_CONFIG,
            details={"field": field} if field else None,
        )
