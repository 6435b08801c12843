"""Tests for the WebSocket broadcast manager."""

from __future__ import annotations

import asyncio
import json
from typing import Any
from unittest.mock import AsyncMock, Mock

import pytest

from aiseg_dashboard.api import AisegApiClientError
from aiseg_dashboard.const import (
    CATEGORY_CIRCUITS,
    CATEGORY_DEVICES,
    CATEGORY_REALTIME,
    CATEGORY_TOTALS,
)
from aiseg_dashboard.coordinator import AisegDataCoordinator
from aiseg_dashboard.models import CacheEntry
from aiseg_dashboard.websocket import (
    AisegBroadcastManager,
    encode_error_frame,
    encode_frame,
)

from .conftest import FakeClock, FakeSubscriber

LONG_INTERVALS = {
    CATEGORY_REALTIME: 3600.0,
    CATEGORY_TOTALS: 3600.0,
    CATEGORY_DEVICES: 3600.0,
}


@pytest.fixture
def mock_coordinator() -> Mock:
    """Fixture providing a coordinator with a two-category snapshot."""
    coordinator = Mock(spec=AisegDataCoordinator)
    coordinator.snapshot.return_value = [
        (CATEGORY_REALTIME, {"gen_kw": 1.0}, 1_000),
        (CATEGORY_TOTALS, {"solar": 2.0}, 2_000),
    ]
    coordinator.async_refresh = AsyncMock(return_value={"fresh": True})
    coordinator.async_get = AsyncMock(return_value=[{"id": "1", "kwh": 1.5}])
    coordinator.entry.return_value = CacheEntry(payload={"fresh": True}, fetched_at=5.0)
    return coordinator


@pytest.fixture
def manager(mock_coordinator: Mock, clock: FakeClock) -> AisegBroadcastManager:
    """Fixture providing a manager whose loops poll once and then sleep."""
    return AisegBroadcastManager(
        mock_coordinator, intervals=LONG_INTERVALS, settle_delay=0, clock=clock
    )


def decode(frames: list[str]) -> list[dict[str, Any]]:
    """Decode recorded text frames."""
    return [json.loads(frame) for frame in frames]


class TestFrames:
    """Tests for frame encoding."""

    def test_encode_frame(self) -> None:
        """Test the {type, data, ts} envelope."""
        assert json.loads(encode_frame("realtime", {"a": "電"}, 42)) == {
            "type": "realtime",
            "data": {"a": "電"},
            "ts": 42,
        }

    def test_encode_error_frame(self) -> None:
        """Test that the error text is present in data and at top level."""
        frame = json.loads(encode_error_frame("boom", 7))

        assert frame["type"] == "error"
        assert frame["data"] == {"message": "boom"}
        assert frame["message"] == "boom"
        assert frame["ts"] == 7


class TestSubscriptionLifecycle:
    """Tests for connect and disconnect."""

    @pytest.mark.asyncio
    async def test_connect_replays_snapshot_first(
        self, manager: AisegBroadcastManager
    ) -> None:
        """Test that a new subscriber first receives the cached data."""
        subscriber = FakeSubscriber()

        await manager.async_connect(subscriber)
        replay = decode(subscriber.frames)

        assert replay == [
            {"type": CATEGORY_REALTIME, "data": {"gen_kw": 1.0}, "ts": 1_000},
            {"type": CATEGORY_TOTALS, "data": {"solar": 2.0}, "ts": 2_000},
        ]
        await manager.async_shutdown()

    @pytest.mark.asyncio
    async def test_first_connect_starts_polling(
        self, manager: AisegBroadcastManager, mock_coordinator: Mock
    ) -> None:
        """Test that loops start with the first subscriber only."""
        assert not manager.running

        await manager.async_connect(FakeSubscriber())
        await manager.async_connect(FakeSubscriber())
        await asyncio.sleep(0)

        assert manager.running
        assert manager.subscriber_count == 2
        mock_coordinator.async_refresh.assert_awaited_once_with(CATEGORY_REALTIME)
        await manager.async_shutdown()

    @pytest.mark.asyncio
    async def test_realtime_poll_is_broadcast(
        self, manager: AisegBroadcastManager
    ) -> None:
        """Test that the immediate realtime poll reaches subscribers."""
        subscriber = FakeSubscriber()
        await manager.async_connect(subscriber)
        await asyncio.sleep(0)
        await asyncio.sleep(0)

        assert decode(subscriber.frames)[-1] == {
            "type": CATEGORY_REALTIME,
            "data": {"fresh": True},
            "ts": 5_000,
        }
        await manager.async_shutdown()

    @pytest.mark.asyncio
    async def test_last_disconnect_stops_polling(
        self, manager: AisegBroadcastManager
    ) -> None:
        """Test that loops stop once nobody is listening."""
        first = FakeSubscriber()
        second = FakeSubscriber()
        await manager.async_connect(first)
        await manager.async_connect(second)

        await manager.async_disconnect(first)
        assert manager.running

        await manager.async_disconnect(second)
        assert not manager.running
        assert manager.subscriber_count == 0

    @pytest.mark.asyncio
    async def test_reconnect_restarts_and_replays(
        self, manager: AisegBroadcastManager, mock_coordinator: Mock
    ) -> None:
        """Test that a later subscriber restarts polling and gets the snapshot."""
        first = FakeSubscriber()
        await manager.async_connect(first)
        await manager.async_disconnect(first)

        later = FakeSubscriber()
        await manager.async_connect(later)

        assert manager.running
        assert len(later.frames) == len(mock_coordinator.snapshot.return_value)
        await manager.async_shutdown()


class TestBroadcast:
    """Tests for async_broadcast and async_poll."""

    @pytest.mark.asyncio
    async def test_failing_subscriber_is_dropped(
        self, manager: AisegBroadcastManager
    ) -> None:
        """Test that one dead subscriber does not block the others."""
        healthy = FakeSubscriber()
        dead = FakeSubscriber()
        manager._subscribers.update({healthy, dead})
        dead.fail = True

        await manager.async_broadcast(CATEGORY_TOTALS, {"solar": 1}, 9)

        assert manager.subscriber_count == 1
        assert decode(healthy.frames) == [
            {"type": CATEGORY_TOTALS, "data": {"solar": 1}, "ts": 9}
        ]

    @pytest.mark.asyncio
    async def test_poll_failure_does_not_broadcast(
        self, manager: AisegBroadcastManager, mock_coordinator: Mock
    ) -> None:
        """Test that a failed refresh is logged and nothing is sent."""
        subscriber = FakeSubscriber()
        manager._subscribers.add(subscriber)
        mock_coordinator.async_refresh.side_effect = AisegApiClientError("down")

        await manager.async_poll(CATEGORY_TOTALS)

        assert subscriber.frames == []

    @pytest.mark.asyncio
    async def test_device_refresh_after_control(
        self, manager: AisegBroadcastManager, mock_coordinator: Mock
    ) -> None:
        """Test that a scheduled refresh re-reads and pushes devices."""
        subscriber = FakeSubscriber()
        manager._subscribers.add(subscriber)

        await manager.schedule_device_refresh()

        mock_coordinator.async_refresh.assert_awaited_once_with(CATEGORY_DEVICES)
        assert decode(subscriber.frames)[0]["type"] == CATEGORY_DEVICES

    @pytest.mark.asyncio
    async def test_shutdown_cancels_pending_refresh(
        self, mock_coordinator: Mock, clock: FakeClock
    ) -> None:
        """Test that shutdown cancels a refresh still waiting to run."""
        manager = AisegBroadcastManager(
            mock_coordinator, intervals=LONG_INTERVALS, settle_delay=3600, clock=clock
        )
        task = manager.schedule_device_refresh()

        await manager.async_shutdown()

        assert task.cancelled()
        mock_coordinator.async_refresh.assert_not_awaited()


class TestClientMessages:
    """Tests for frames received from subscribers."""

    @pytest.mark.asyncio
    async def test_load_circuits(
        self, manager: AisegBroadcastManager, clock: FakeClock
    ) -> None:
        """Test that loadCircuits answers the requester with circuit rows."""
        subscriber = FakeSubscriber()

        await manager.async_handle_message(subscriber, '{"action": "loadCircuits"}')

        assert decode(subscriber.frames) == [
            {
                "type": CATEGORY_CIRCUITS,
                "data": [{"id": "1", "kwh": 1.5}],
                "ts": int(clock() * 1000),
            }
        ]

    @pytest.mark.asyncio
    async def test_load_circuits_failure_sends_error(
        self, manager: AisegBroadcastManager, mock_coordinator: Mock
    ) -> None:
        """Test that a failed circuit load yields an error frame."""
        subscriber = FakeSubscriber()
        mock_coordinator.async_get.side_effect = AisegApiClientError("no circuits")

        await manager.async_handle_message(subscriber, '{"action": "loadCircuits"}')

        frame = decode(subscriber.frames)[0]
        assert frame["type"] == "error"
        assert frame["data"]["message"] == "no circuits"

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "text", ["not json", "[1]", '{"action": "reboot"}', "{}"]
    )
    async def test_other_frames_are_ignored(
        self, manager: AisegBroadcastManager, mock_coordinator: Mock, text: str
    ) -> None:
        """Test that malformed and unknown frames get no reply."""
        subscriber = FakeSubscriber()

        await manager.async_handle_message(subscriber, text)

        assert subscriber.frames == []
        mock_coordinator.async_get.assert_not_awaited()
