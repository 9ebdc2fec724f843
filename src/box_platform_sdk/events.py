"""Event streams over the Box events API.

``EventStream`` long-polls for user events, deduplicating the overlap the
API returns between consecutive pages. ``EnterpriseEventStream`` pages
through admin logs, optionally draining history and stopping.

Both are async iterators of event dicts and stop when ``close()`` is called.
"""

from __future__ import annotations

import asyncio
import contextlib
from abc import ABC, abstractmethod
from collections import OrderedDict
from datetime import UTC, datetime
from enum import StrEnum
from typing import TYPE_CHECKING, Any, AsyncIterator, Awaitable, Callable, Self, TypeVar
from urllib.parse import parse_qsl

from .errors import BoxSDKError, UnexpectedResponseError
from .models import EnterpriseStreamState
from .telemetry import get_logger

if TYPE_CHECKING:
    from .client import BoxClient
    from .models import EventPage, LongPollInfo

T = TypeVar("T")

ErrorCallback = Callable[[BoxSDKError], None]
StreamStateCallback = Callable[[EnterpriseStreamState], None]

ADMIN_LOGS_STREAM_TYPE = "admin_logs"


class EventStreamState(StrEnum):
    """Where a stream is in its polling loop."""

    IDLE = "idle"
    POLLING = "polling"
    FETCHING = "fetching"
    DELIVERING = "delivering"
    ERROR_BACKOFF = "error-backoff"
    TERMINATED = "terminated"


class DedupWindow:
    """Bounded set of recently seen event IDs; the oldest are evicted first."""

    def __init__(self, capacity: int) -> None:
        if capacity <= 0:
            msg = "capacity must be positive"
            raise ValueError(msg)
        self.capacity = capacity
        self._seen: OrderedDict[str, None] = OrderedDict()

    def __contains__(self, event_id: object) -> bool:
        return event_id in self._seen

    def __len__(self) -> int:
        return len(self._seen)

    def add(self, event_id: str) -> None:
        if event_id in self._seen:
            self._seen.move_to_end(event_id)
            return
        self._seen[event_id] = None
        while len(self._seen) > self.capacity:
            self._seen.popitem(last=False)


class _StreamClosed(Exception):
    """Raised inside a stream when close() interrupts a wait."""


class _PollingStream(ABC):
    """Close handling shared by the event streams."""

    def __init__(self, client: BoxClient, on_error: ErrorCallback | None) -> None:
        self._client = client
        self._on_error = on_error
        self._closed = asyncio.Event()
        self._state = EventStreamState.IDLE
        self._logger = get_logger()

    @property
    def state(self) -> EventStreamState:
        return self._state

    @property
    def closed(self) -> bool:
        return self._closed.is_set()

    def close(self) -> None:
        """Stop the stream; an in-flight request is abandoned."""
        self._closed.set()

    def __aiter__(self) -> AsyncIterator[dict[str, Any]]:
        return self._iterate()

    async def __aenter__(self) -> Self:
        return self

    async def __aexit__(self, *args: Any) -> None:
        self.close()

    @abstractmethod
    def _iterate(self) -> AsyncIterator[dict[str, Any]]:
        """Yield events until the stream is closed."""

    async def _until_closed(self, awaitable: Awaitable[T]) -> T:
        """Await unless the stream is closed first.

        Raises:
            _StreamClosed: If close() was called before the awaitable finished.
        """
        task = asyncio.ensure_future(awaitable)
        waiter = asyncio.ensure_future(self._closed.wait())
        try:
            done, _ = await asyncio.wait(
                {task, waiter}, return_when=asyncio.FIRST_COMPLETED
            )
        finally:
            waiter.cancel()
            if not task.done():
                task.cancel()

        if task in done:
            return task.result()
        raise _StreamClosed

    async def _sleep(self, seconds: float) -> None:
        """Sleep, waking early when the stream is closed."""
        with contextlib.suppress(asyncio.TimeoutError):
            await asyncio.wait_for(self._closed.wait(), timeout=seconds)

    def _report_error(self, error: BoxSDKError) -> None:
        if self._on_error is not None:
            self._on_error(error)
        else:
            self._logger.warning(
                "Event stream request failed",
                error=error.code,
                status_code=error.status_code,
            )


class EventStream(_PollingStream):
    """Stream of user events delivered through long polling.

    A page's events are delivered before the stream position moves past
    them. Duplicates within the dedup window are dropped; older duplicates
    across the window boundary can still come through.
    """

    def __init__(
        self,
        client: BoxClient,
        stream_position: str | int,
        *,
        retry_delay_ms: int | None = None,
        max_dedup_size: int | None = None,
        on_error: ErrorCallback | None = None,
    ) -> None:
        """Initialize the stream.

        Args:
            client: Client to make API calls with.
            stream_position: Position to start reading events from.
            retry_delay_ms: Wait after a failed request.
            max_dedup_size: Number of event IDs remembered for dedup.
            on_error: Called with recoverable errors; they are logged otherwise.
        """
        super().__init__(client, on_error)
        events_config = client.config.events
        self._stream_position = stream_position
        self._retry_delay_ms = (
            events_config.retry_delay_ms if retry_delay_ms is None else retry_delay_ms
        )
        self._dedup = DedupWindow(max_dedup_size or events_config.max_dedup_size)
        self._long_poll_info: LongPollInfo | None = None
        self._long_poll_retries = 0

    @property
    def stream_position(self) -> str | int:
        return self._stream_position

    async def _long_poll(self) -> str | None:
        """Wait for the realtime server to signal new events.

        Returns:
            The server message, e.g. "new_change" or "reconnect".
        """
        info = self._long_poll_info
        url, _, query = info.url.partition("?")
        params = dict(parse_qsl(query))
        params["stream_position"] = str(self._stream_position)

        self._long_poll_retries += 1
        response = await self._client.get(
            url,
            params=params,
            timeout=info.retry_timeout,
            num_max_retries=0,
        )
        if not response.is_success:
            raise UnexpectedResponseError(response)

        body = response.body if isinstance(response.body, dict) else {}
        return body.get("message")

    async def _next_page(self) -> EventPage | None:
        """Poll until there is a page to fetch, then fetch it.

        Returns:
            The page, or None when polling should start over.
        """
        if (
            self._long_poll_info is None
            or self._long_poll_retries > self._long_poll_info.max_retries
        ):
            self._long_poll_info = await self._client.get_long_poll_info()
            self._long_poll_retries = 0

        self._state = EventStreamState.POLLING
        message = await self._long_poll()
        if message == "reconnect":
            self._long_poll_info = None
            return None
        if message != "new_change":
            return None

        self._state = EventStreamState.FETCHING
        return await self._client.get_events(stream_position=self._stream_position)

    async def _iterate(self) -> AsyncIterator[dict[str, Any]]:
        try:
            while not self.closed:
                try:
                    page = await self._until_closed(self._next_page())
                except _StreamClosed:
                    break
                except BoxSDKError as e:
                    if e.auth_expired:
                        raise
                    self._report_error(e)
                    self._state = EventStreamState.ERROR_BACKOFF
                    self._long_poll_info = None
                    await self._sleep(self._retry_delay_ms / 1000)
                    self._state = EventStreamState.IDLE
                    continue

                if page is None or not page.entries or page.next_stream_position is None:
                    self._state = EventStreamState.IDLE
                    continue

                self._state = EventStreamState.DELIVERING
                for event in page.entries:
                    event_id = event.get("event_id")
                    if event_id is not None:
                        if event_id in self._dedup:
                            continue
                        self._dedup.add(event_id)
                    yield event

                self._stream_position = page.next_stream_position
                self._state = EventStreamState.IDLE
        finally:
            self._state = EventStreamState.TERMINATED


class EnterpriseEventStream(_PollingStream):
    """Stream of enterprise admin events.

    With a polling interval of 0 the stream ends once no more events are
    returned, which drains history between a start and end date.
    """

    def __init__(
        self,
        client: BoxClient,
        *,
        stream_position: str | int | None = None,
        start_date: str | None = None,
        end_date: str | None = None,
        event_type_filter: list[str] | None = None,
        polling_interval: float | None = None,
        chunk_size: int | None = None,
        on_stream_state: StreamStateCallback | None = None,
        on_error: ErrorCallback | None = None,
    ) -> None:
        """Initialize the stream.

        Args:
            client: Client to make API calls with.
            stream_position: Position to resume from; "0" starts at the
                oldest available event.
            start_date: Only events created after this ISO-8601 time.
            end_date: Only events created before this ISO-8601 time.
            event_type_filter: Only these event types.
            polling_interval: Seconds to wait when no events are returned;
                0 stops the stream instead.
            chunk_size: Maximum events per page.
            on_stream_state: Called with the new state after every page.
            on_error: Called with recoverable errors; they are logged otherwise.
        """
        super().__init__(client, on_error)
        events_config = client.config.events

        if start_date is None and stream_position is None:
            start_date = datetime.now(UTC).strftime("%Y-%m-%dT%H:%M:%S-00:00")

        self._stream_position = stream_position
        self._start_date = start_date
        self._end_date = end_date
        self._event_type_filter = event_type_filter
        self._polling_interval = (
            events_config.enterprise_polling_interval
            if polling_interval is None
            else polling_interval
        )
        self._chunk_size = chunk_size or events_config.enterprise_chunk_size
        self._on_stream_state = on_stream_state

    @property
    def stream_position(self) -> str | int | None:
        return self._stream_position

    def get_stream_state(self) -> EnterpriseStreamState:
        """Snapshot the state needed to resume the stream later."""
        return EnterpriseStreamState(
            stream_position=self._stream_position,
            start_date=self._start_date,
            end_date=self._end_date,
            event_type_filter=self._event_type_filter,
        )

    def set_stream_state(self, state: EnterpriseStreamState) -> None:
        """Resume from a state saved with get_stream_state."""
        self._stream_position = state.stream_position
        self._start_date = state.start_date
        self._end_date = state.end_date
        self._event_type_filter = state.event_type_filter

    def _build_params(self) -> dict[str, Any]:
        params: dict[str, Any] = {"stream_type": ADMIN_LOGS_STREAM_TYPE}
        if self._stream_position is not None:
            params["stream_position"] = self._stream_position
        if self._start_date:
            params["created_after"] = self._start_date
        if self._end_date:
            params["created_before"] = self._end_date
        if self._event_type_filter:
            params["event_type"] = ",".join(self._event_type_filter)
        if self._chunk_size:
            params["limit"] = self._chunk_size
        return params

    async def _iterate(self) -> AsyncIterator[dict[str, Any]]:
        try:
            while not self.closed:
                self._state = EventStreamState.FETCHING
                try:
                    page = await self._until_closed(
                        self._client.get_events(**self._build_params())
                    )
                except _StreamClosed:
                    break
                except BoxSDKError as e:
                    # Without polling there is no later attempt to recover with
                    if e.auth_expired or not self._polling_interval:
                        raise
                    self._report_error(e)
                    page = None

                if page is None or not page.entries:
                    if not self._polling_interval:
                        break
                    self._state = EventStreamState.IDLE
                    self._logger.debug(
                        "No enterprise events, waiting",
                        delay_s=self._polling_interval,
                    )
                    await self._sleep(self._polling_interval)
                    continue

                self._state = EventStreamState.DELIVERING
                for event in page.entries:
                    yield event

                # A page without events reports position 0; only full pages move it
                self._stream_position = page.next_stream_position
                if self._on_stream_state is not None:
                    self._on_stream_state(self.get_stream_state())
        finally:
            self._state = EventStreamState.TERMINATED
