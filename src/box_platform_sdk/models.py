"""Pydantic models for the Box Platform SDK.

Uses Pydantic v2 with frozen models for immutability. Times kept in
milliseconds mirror the wire format persisted by token stores.
"""

from __future__ import annotations

import time
from typing import TYPE_CHECKING, Annotated, Any, Self

from pydantic import BaseModel, ConfigDict, Field

if TYPE_CHECKING:
    import httpx


def now_ms() -> float:
    """Current wall-clock time in milliseconds."""
    return time.time() * 1000


class TokenInfo(BaseModel):
    """All token information for a single identity.

    ``acquired_at_ms + access_token_ttl_ms`` is the absolute expiry instant.
    Grants such as client credentials or JWT bearer carry no refresh token.
    """

    model_config = ConfigDict(frozen=True, extra="ignore")

    access_token: str = Field(..., min_length=1)
    refresh_token: str | None = None
    acquired_at_ms: Annotated[int, Field(ge=0)]
    access_token_ttl_ms: Annotated[int, Field(ge=0)]
    restricted_to: list[dict[str, Any]] | None = None

    @property
    def expires_at_ms(self) -> int:
        return self.acquired_at_ms + self.access_token_ttl_ms

    @classmethod
    def from_grant_response(cls, body: dict[str, Any]) -> Self:
        """Create TokenInfo from a token endpoint response body."""
        return cls(
            access_token=body["access_token"],
            refresh_token=body.get("refresh_token"),
            # expires_in is sent in seconds; everything is kept in ms
            access_token_ttl_ms=int(body["expires_in"]) * 1000,
            acquired_at_ms=int(now_ms()),
            restricted_to=body.get("restricted_to"),
        )


class TokenRequestOptions(BaseModel):
    """Optional behavior for token grant and revoke requests."""

    model_config = ConfigDict(frozen=True)

    # Reflected in authentication notification emails sent on login
    ip: str | None = None


class ActorParams(BaseModel):
    """External actor for annotator tokens created via token exchange."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(..., min_length=1)
    name: str


class SharedLinkParams(BaseModel):
    """Shared link used to scope a token created via token exchange."""

    model_config = ConfigDict(frozen=True)

    url: str = Field(..., min_length=1)


class RetryOptions(BaseModel):
    """Input handed to a retry strategy after a failed attempt."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    num_max_retries: int
    retry_interval_ms: int
    num_retry_attempts: int
    error: Exception
    total_elapsed_time_ms: float


class APIResponse(BaseModel):
    """Subset of an HTTP response handed back to callers.

    ``body`` is parsed JSON when possible, raw bytes otherwise, and None
    for an empty body.
    """

    model_config = ConfigDict(frozen=True)

    status_code: int
    headers: dict[str, str] = Field(default_factory=dict)
    body: Any = None
    method: str | None = None
    url: str | None = None

    @property
    def request_id(self) -> str | None:
        if isinstance(self.body, dict):
            request_id = self.body.get("request_id")
            return str(request_id) if request_id is not None else None
        return None

    @property
    def is_success(self) -> bool:
        return 200 <= self.status_code < 300

    @classmethod
    def from_httpx(cls, response: httpx.Response) -> Self:
        """Build from a fully read httpx response."""
        body: Any = None
        if response.content:
            try:
                body = response.json()
            except ValueError:
                body = response.content

        return cls(
            status_code=response.status_code,
            headers={k.lower(): v for k, v in response.headers.items()},
            body=body,
            method=response.request.method,
            url=str(response.request.url),
        )


class LongPollInfo(BaseModel):
    """Realtime server descriptor returned by the long-poll discovery call."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    type: str = "realtime_server"
    url: str
    ttl: int | None = None
    max_retries: int = 10
    retry_timeout: float = 610


class EventPage(BaseModel):
    """A page of events starting at a stream position."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    entries: list[dict[str, Any]] = Field(default_factory=list)
    next_stream_position: str | int | None = None
    chunk_size: int | None = None


class EnterpriseStreamState(BaseModel):
    """Resumable position and filters of an enterprise event stream."""

    model_config = ConfigDict(frozen=True)

    stream_position: str | int | None = None
    start_date: str | None = None
    end_date: str | None = None
    event_type_filter: list[str] | None = None
