"""WebSocket broadcast manager for AiSEG2 live updates.

This module multiplexes any number of browser subscribers over the single
appliance connection. While at least one subscriber is connected, interval
loops poll realtime, totals and device status and push every update to all
subscribers.
"""

from __future__ import annotations

import asyncio
import contextlib
import json
import logging
import time
from typing import TYPE_CHECKING, Any, Protocol

import httpx

from .api import AisegApiClientError
from .const import (
    CACHE_TTLS,
    CATEGORY_CIRCUITS,
    CATEGORY_DEVICES,
    CATEGORY_REALTIME,
    CONTROL_SETTLE_DELAY,
    MESSAGE_TYPE_ERROR,
    PUSH_CATEGORIES,
    WS_ACTION_LOAD_CIRCUITS,
)

if TYPE_CHECKING:
    from collections.abc import Callable, Mapping

    from .coordinator import AisegDataCoordinator

_LOGGER = logging.getLogger(__name__)


class Subscriber(Protocol):
    """A connected push client."""

    async def send_text(self, data: str) -> None:
        """Send one text frame."""


def encode_frame(message_type: str, data: Any, ts: int) -> str:
    """Encode a push frame as {type, data, ts}."""
    return json.dumps({"type": message_type, "data": data, "ts": ts}, ensure_ascii=False)


def encode_error_frame(message: str, ts: int) -> str:
    """Encode an error frame; the message is repeated at top level."""
    return json.dumps(
        {
            "type": MESSAGE_TYPE_ERROR,
            "data": {"message": message},
            "message": message,
            "ts": ts,
        },
        ensure_ascii=False,
    )


class AisegBroadcastManager:
    """Manager for subscriber connections and the push polling loops.

    Loops run only while subscribers are connected: the first subscriber
    starts them and the last one to leave stops them. A control command
    schedules a one-shot device refresh that is tracked here and cancelled
    on shutdown.
    """

    def __init__(
        self,
        coordinator: AisegDataCoordinator,
        intervals: Mapping[str, float] | None = None,
        settle_delay: float = CONTROL_SETTLE_DELAY,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Initialize the broadcast manager.

        Args:
            coordinator: Cache coordinator used for every fetch.
            intervals: Poll interval per pushed category, in seconds.
            settle_delay: Delay before re-reading devices after a command.
            clock: Time source in epoch seconds.

        """
        self._coordinator = coordinator
        intervals = intervals or CACHE_TTLS
        self._intervals = {category: intervals[category] for category in PUSH_CATEGORIES}
        self._settle_delay = settle_delay
        self._clock = clock
        self._subscribers: set[Subscriber] = set()
        self._poll_tasks: dict[str, asyncio.Task[None]] = {}
        self._pending_refreshes: set[asyncio.Task[None]] = set()

    @property
    def running(self) -> bool:
        """Return True while the polling loops are active."""
        return bool(self._poll_tasks)

    @property
    def subscriber_count(self) -> int:
        """Return the number of connected subscribers."""
        return len(self._subscribers)

    def _now_ms(self) -> int:
        return int(self._clock() * 1000)

    async def async_connect(self, subscriber: Subscriber) -> None:
        """Register a subscriber, replay cached data to it and start polling."""
        self._subscribers.add(subscriber)
        _LOGGER.info("WS connected (%d clients)", len(self._subscribers))

        for category, payload, ts in self._coordinator.snapshot():
            try:
                await subscriber.send_text(encode_frame(category, payload, ts))
            except Exception:  # noqa: BLE001
                _LOGGER.debug("Snapshot replay to subscriber failed", exc_info=True)
                break

        self._start_polling()

    async def async_disconnect(self, subscriber: Subscriber) -> None:
        """Remove a subscriber and stop polling when none are left."""
        self._subscribers.discard(subscriber)
        _LOGGER.info("WS disconnected (%d clients)", len(self._subscribers))
        if not self._subscribers:
            self._stop_polling()

    def _start_polling(self) -> None:
        if self._poll_tasks:
            return

        _LOGGER.info("Starting live polling")
        for category, interval in self._intervals.items():
            self._poll_tasks[category] = asyncio.create_task(
                self._async_poll_loop(
                    category, interval, immediate=category == CATEGORY_REALTIME
                ),
                name=f"aiseg_poll_{category}",
            )

    def _stop_polling(self) -> None:
        if not self._poll_tasks:
            return

        for task in self._poll_tasks.values():
            task.cancel()
        self._poll_tasks = {}
        _LOGGER.info("Live polling stopped (no clients)")

    async def _async_poll_loop(
        self, category: str, interval: float, *, immediate: bool
    ) -> None:
        if not immediate:
            await asyncio.sleep(interval)
        while True:
            await self.async_poll(category)
            await asyncio.sleep(interval)

    async def async_poll(self, category: str) -> None:
        """Refresh one category and broadcast it; failures are only logged."""
        try:
            data = await self._coordinator.async_refresh(category)
        except (AisegApiClientError, httpx.HTTPError) as err:
            _LOGGER.error("%s poll failed: %s", category, err)
            return
        except Exception:
            _LOGGER.exception("Unexpected error polling %s", category)
            return

        ts = self._coordinator.entry(category).ts_ms
        await self.async_broadcast(category, data, ts)

    async def async_broadcast(self, message_type: str, data: Any, ts: int) -> None:
        """Send a frame to every subscriber, dropping those that fail."""
        frame = encode_frame(message_type, data, ts)
        for subscriber in list(self._subscribers):
            try:
                await subscriber.send_text(frame)
            except Exception:  # noqa: BLE001
                _LOGGER.debug("Dropping subscriber after failed send", exc_info=True)
                self._subscribers.discard(subscriber)

    async def async_handle_message(self, subscriber: Subscriber, text: str) -> None:
        """Handle a frame received from a subscriber.

        Event format: { action: "loadCircuits" }
        """
        try:
            message = json.loads(text)
        except ValueError:
            _LOGGER.debug("Ignoring malformed frame: %s", text[:200])
            return

        if not isinstance(message, dict):
            return
        if message.get("action") != WS_ACTION_LOAD_CIRCUITS:
            _LOGGER.debug("Ignoring unknown action: %s", message.get("action"))
            return

        try:
            data = await self._coordinator.async_get(CATEGORY_CIRCUITS)
        except (AisegApiClientError, httpx.HTTPError) as err:
            _LOGGER.error("Circuit load failed: %s", err)
            await subscriber.send_text(encode_error_frame(str(err), self._now_ms()))
            return

        await subscriber.send_text(encode_frame(CATEGORY_CIRCUITS, data, self._now_ms()))

    def schedule_device_refresh(self) -> asyncio.Task[None]:
        """Schedule one device refresh and broadcast after the settle delay."""

        async def refresh() -> None:
            await asyncio.sleep(self._settle_delay)
            await self.async_poll(CATEGORY_DEVICES)

        task = asyncio.create_task(refresh(), name="aiseg_device_refresh")
        self._pending_refreshes.add(task)
        task.add_done_callback(self._pending_refreshes.discard)
        return task

    async def async_shutdown(self) -> None:
        """Cancel every polling loop and pending refresh."""
        tasks = [*self._poll_tasks.values(), *self._pending_refreshes]
        self._poll_tasks = {}
        self._pending_refreshes.clear()
        self._subscribers.clear()

        for task in tasks:
            task.cancel()
        for task in tasks:
            with contextlib.suppress(asyncio.CancelledError):
                await task
