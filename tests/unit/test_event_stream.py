"""Unit tests for the user and enterprise event streams."""

from __future__ import annotations

import asyncio
from collections.abc import AsyncGenerator
from typing import Any

import httpx
import pytest
import respx

from box_platform_sdk.client import BoxClient
from box_platform_sdk.config import BoxConfig
from box_platform_sdk.errors import AuthExpiredError, BoxSDKError, ResponseError, ServerError
from box_platform_sdk.events import (
    DedupWindow,
    EnterpriseEventStream,
    EventStream,
    EventStreamState,
    _PollingStream,
)
from box_platform_sdk.models import EnterpriseStreamState
from box_platform_sdk.sdk import BoxSDK

API_URL = "https://api.box.com/2.0"
EVENTS_URL = f"{API_URL}/events"
REALTIME_URL = "https://realtime.test/subscribe"

LONG_POLL_OPTIONS = {
    "chunk_size": 1,
    "entries": [
        {
            "type": "realtime_server",
            "url": f"{REALTIME_URL}?channel=abc",
            "ttl": 10,
            "max_retries": 10,
            "retry_timeout": 5,
        }
    ],
}


def events_page(*event_ids: str, position: int | str) -> dict[str, Any]:
    return {
        "entries": [{"event_id": event_id, "event_type": "ITEM_UPLOAD"} for event_id in event_ids],
        "next_stream_position": position,
        "chunk_size": len(event_ids),
    }


@pytest.fixture
async def client(base_config: BoxConfig) -> AsyncGenerator[BoxClient, None]:
    async with BoxSDK(base_config) as sdk:
        yield sdk.get_basic_client("access-token")


async def collect(stream: EventStream | EnterpriseEventStream, count: int) -> list[str]:
    """Read ``count`` event IDs, then close the stream."""
    seen: list[str] = []
    async for event in stream:
        seen.append(event["event_id"])
        if len(seen) == count:
            stream.close()
            break
    return seen


class TestDedupWindow:
    def test_evicts_oldest(self) -> None:
        window = DedupWindow(2)
        window.add("a")
        window.add("b")
        window.add("c")

        assert "a" not in window
        assert "b" in window
        assert "c" in window
        assert len(window) == 2

    def test_re_adding_refreshes_entry(self) -> None:
        window = DedupWindow(2)
        window.add("a")
        window.add("b")
        window.add("a")
        window.add("c")

        assert "a" in window
        assert "b" not in window

    def test_capacity_must_be_positive(self) -> None:
        with pytest.raises(ValueError):
            DedupWindow(0)


class TestPollingStreamBase:
    async def test_base_requires_iterate(self, client: BoxClient) -> None:
        with pytest.raises(TypeError, match="_iterate"):
            _PollingStream(client, None)  # type: ignore[abstract]


class TestEventStream:
    async def test_overlapping_pages_are_deduplicated(
        self, client: BoxClient, respx_mock: respx.MockRouter
    ) -> None:
        respx_mock.options(EVENTS_URL).mock(return_value=httpx.Response(200, json=LONG_POLL_OPTIONS))
        poll_route = respx_mock.get(REALTIME_URL).mock(
            return_value=httpx.Response(200, json={"message": "new_change"})
        )
        pages = iter(
            [
                events_page("e1", "e2", position=2),
                events_page("e2", "e3", position=3),
            ]
        )
        events_route = respx_mock.get(EVENTS_URL).mock(
            side_effect=lambda request: httpx.Response(
                200, json=next(pages, events_page(position=3))
            )
        )

        stream = EventStream(client, 1)
        seen = await asyncio.wait_for(collect(stream, 3), timeout=5)

        assert seen == ["e1", "e2", "e3"]
        positions = [call.request.url.params["stream_position"] for call in events_route.calls]
        assert positions[:2] == ["1", "2"]
        poll_params = poll_route.calls[0].request.url.params
        assert poll_params["channel"] == "abc"
        assert poll_params["stream_position"] == "1"

    async def test_reconnect_message_rediscovers_server(
        self, client: BoxClient, respx_mock: respx.MockRouter
    ) -> None:
        options_route = respx_mock.options(EVENTS_URL).mock(
            return_value=httpx.Response(200, json=LONG_POLL_OPTIONS)
        )
        respx_mock.get(REALTIME_URL).mock(
            side_effect=[
                httpx.Response(200, json={"message": "reconnect"}),
                httpx.Response(200, json={"message": "new_change"}),
            ]
        )
        respx_mock.get(EVENTS_URL).mock(
            return_value=httpx.Response(200, json=events_page("e1", position=2))
        )

        seen = await asyncio.wait_for(collect(EventStream(client, 1), 1), timeout=5)

        assert seen == ["e1"]
        assert options_route.call_count == 2

    async def test_recovers_from_errors(
        self, client: BoxClient, respx_mock: respx.MockRouter
    ) -> None:
        respx_mock.options(EVENTS_URL).mock(return_value=httpx.Response(200, json=LONG_POLL_OPTIONS))
        respx_mock.get(REALTIME_URL).mock(
            side_effect=[
                httpx.Response(503),
                httpx.Response(200, json={"message": "new_change"}),
            ]
        )
        respx_mock.get(EVENTS_URL).mock(
            return_value=httpx.Response(200, json=events_page("e1", position=2))
        )
        errors: list[BoxSDKError] = []

        stream = EventStream(client, 1, on_error=errors.append)
        seen = await asyncio.wait_for(collect(stream, 1), timeout=5)

        assert seen == ["e1"]
        assert len(errors) == 1
        assert isinstance(errors[0], ServerError)

    async def test_auth_expired_ends_stream(
        self, client: BoxClient, respx_mock: respx.MockRouter
    ) -> None:
        respx_mock.options(EVENTS_URL).mock(return_value=httpx.Response(401))

        stream = EventStream(client, 1)
        with pytest.raises(AuthExpiredError):
            async for _ in stream:
                pass

        assert stream.state == EventStreamState.TERMINATED

    async def test_close_interrupts_backoff(
        self, client: BoxClient, respx_mock: respx.MockRouter
    ) -> None:
        respx_mock.options(EVENTS_URL).mock(
            return_value=httpx.Response(400, json={"code": "bad_request"})
        )
        errors: list[BoxSDKError] = []

        def on_error(error: BoxSDKError) -> None:
            errors.append(error)
            stream.close()

        stream = EventStream(client, 1, retry_delay_ms=60_000, on_error=on_error)
        events = await asyncio.wait_for(collect(stream, 1), timeout=5)

        assert events == []
        assert isinstance(errors[0], ResponseError)
        assert stream.closed
        assert stream.state == EventStreamState.TERMINATED

    async def test_closed_stream_yields_nothing(self, client: BoxClient) -> None:
        stream = EventStream(client, 1)
        stream.close()

        assert [event async for event in stream] == []

    async def test_get_event_stream_starts_at_current_position(
        self, client: BoxClient, respx_mock: respx.MockRouter
    ) -> None:
        respx_mock.get(EVENTS_URL, params={"stream_position": "now"}).mock(
            return_value=httpx.Response(200, json=events_page(position=42))
        )

        stream = await client.get_event_stream()

        assert stream.stream_position == 42
        assert stream.state == EventStreamState.IDLE


class TestEnterpriseEventStream:
    async def test_drains_history_and_stops(
        self, client: BoxClient, respx_mock: respx.MockRouter
    ) -> None:
        route = respx_mock.get(EVENTS_URL).mock(
            side_effect=[
                httpx.Response(200, json=events_page("a1", "a2", position="p1")),
                httpx.Response(200, json=events_page(position=0)),
            ]
        )
        states: list[EnterpriseStreamState] = []

        stream = client.get_enterprise_event_stream(
            start_date="2024-01-01T00:00:00-08:00",
            end_date="2024-02-01T00:00:00-08:00",
            event_type_filter=["UPLOAD", "DELETE"],
            polling_interval=0,
            chunk_size=100,
            on_stream_state=states.append,
        )
        seen = [event["event_id"] async for event in stream]

        assert seen == ["a1", "a2"]
        first = route.calls[0].request.url.params
        assert first["stream_type"] == "admin_logs"
        assert first["created_after"] == "2024-01-01T00:00:00-08:00"
        assert first["created_before"] == "2024-02-01T00:00:00-08:00"
        assert first["event_type"] == "UPLOAD,DELETE"
        assert first["limit"] == "100"
        assert "stream_position" not in first
        assert route.calls[1].request.url.params["stream_position"] == "p1"
        assert [s.stream_position for s in states] == ["p1"]

    async def test_errors_raised_without_polling(
        self, client: BoxClient, respx_mock: respx.MockRouter
    ) -> None:
        respx_mock.get(EVENTS_URL).mock(return_value=httpx.Response(403))

        stream = EnterpriseEventStream(client, stream_position=0, polling_interval=0)
        with pytest.raises(ResponseError):
            async for _ in stream:
                pass

    async def test_polls_after_empty_page(
        self, client: BoxClient, respx_mock: respx.MockRouter
    ) -> None:
        respx_mock.get(EVENTS_URL).mock(
            side_effect=[
                httpx.Response(200, json=events_page(position=0)),
                httpx.Response(200, json=events_page("a1", position="p1")),
            ]
        )

        stream = EnterpriseEventStream(client, stream_position="p0", polling_interval=0.01)
        seen = await asyncio.wait_for(collect(stream, 1), timeout=5)

        assert seen == ["a1"]
        # Stopped mid-page, so a resumed stream reads that page again
        assert stream.stream_position == "p0"

    def test_stream_state_round_trip(self, client: BoxClient) -> None:
        stream = EnterpriseEventStream(client, start_date="2024-01-01T00:00:00Z")
        state = EnterpriseStreamState(
            stream_position="p9",
            start_date="2024-03-01T00:00:00Z",
            event_type_filter=["LOGIN"],
        )

        stream.set_stream_state(state)

        assert stream.get_stream_state() == state

    def test_default_start_date(self, client: BoxClient) -> None:
        stream = EnterpriseEventStream(client)

        assert stream.get_stream_state().start_date.endswith("-00:00")
