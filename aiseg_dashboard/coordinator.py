"""Cache coordinator for AiSEG2 data categories."""

from __future__ import annotations

import asyncio
import logging
import time
from typing import TYPE_CHECKING, Any

import httpx

from .api import AisegApiClientError
from .const import (
    CACHE_TTLS,
    CATEGORY_CIRCUITS,
    CATEGORY_DEVICES,
    CATEGORY_REALTIME,
    CATEGORY_TOTALS,
    SNAPSHOT_ORDER,
)
from .models import CacheEntry

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable, Mapping

    from .client import AisegClient
    from .models import Circuit
    from .nicknames import NicknameStore

_LOGGER = logging.getLogger(__name__)


class AisegDataCoordinator:
    """Owns the last known payload of every data category.

    Reads are served from cache while within their TTL and refreshed on
    demand once expired. Nothing is refreshed proactively here; periodic
    polling belongs to the broadcast manager.
    """

    def __init__(
        self,
        client: AisegClient,
        nicknames: NicknameStore,
        ttls: Mapping[str, float] | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Initialize the coordinator.

        Args:
            client: Appliance client.
            nicknames: Nickname store overlaid onto device payloads.
            ttls: Per-category lifetimes in seconds.
            clock: Time source in epoch seconds.

        """
        self.client = client
        self.nicknames = nicknames
        self._ttls = dict(ttls or CACHE_TTLS)
        self._clock = clock
        self._entries = {category: CacheEntry() for category in SNAPSHOT_ORDER}
        self._circuits: list[Circuit] | None = None

    def entry(self, category: str) -> CacheEntry:
        """Return the cache entry of a category."""
        return self._entries[category]

    @property
    def circuits(self) -> list[Circuit] | None:
        """Return the cached circuit identity list."""
        return self._circuits

    def _fetcher(self, category: str) -> Callable[[], Awaitable[Any]]:
        return {
            CATEGORY_REALTIME: self.client.async_get_realtime,
            CATEGORY_TOTALS: self.client.async_get_totals,
            CATEGORY_CIRCUITS: self._async_fetch_circuits,
            CATEGORY_DEVICES: self._async_fetch_devices,
        }[category]

    async def _async_fetch_devices(self) -> dict[str, Any]:
        return self.nicknames.apply(await self.client.async_get_devices())

    async def _async_fetch_circuits(self) -> list[dict[str, Any]]:
        if not self._circuits:
            self._circuits = await self.client.async_get_circuits()

        _LOGGER.info("Fetching kWh for %d circuits", len(self._circuits))
        kwh = await self.client.async_get_all_circuit_kwh(self._circuits)
        _LOGGER.info("Circuit kWh fetch complete")
        return [
            {"id": circuit.id, "name": circuit.name, "kwh": value}
            for circuit, value in zip(self._circuits, kwh, strict=True)
        ]

    async def async_refresh(self, category: str) -> Any:
        """Fetch a category from the appliance and store it.

        Raises:
            AisegApiClientError: If the appliance cannot be read.

        """
        payload = await self._fetcher(category)()
        self._entries[category].store(payload, self._clock())
        return payload

    async def async_get(self, category: str) -> Any:
        """Return a category, refreshing it first when its TTL has passed.

        When the refresh fails and an older payload exists, the older payload
        is returned. Without one, the error propagates.
        """
        entry = self._entries[category]
        if not entry.is_expired(self._ttls[category], self._clock()):
            return entry.payload

        try:
            return await self.async_refresh(category)
        except (AisegApiClientError, httpx.HTTPError) as err:
            if not entry.has_data:
                raise
            _LOGGER.warning(
                "Refreshing %s failed, serving data from %s: %s",
                category,
                entry.ts_ms,
                err,
            )
            return entry.payload

    def snapshot(self) -> list[tuple[str, Any, int]]:
        """Return (category, payload, ts_ms) for every filled category."""
        return [
            (category, entry.payload, entry.ts_ms)
            for category, entry in self._entries.items()
            if entry.has_data
        ]

    def reapply_nicknames(self) -> None:
        """Re-annotate the cached device payload after a nickname change."""
        entry = self._entries[CATEGORY_DEVICES]
        if entry.has_data:
            entry.payload = self.nicknames.apply(entry.payload)

    async def async_prewarm(self) -> None:
        """Load realtime and totals once at startup."""
        results = await asyncio.gather(
            self.async_refresh(CATEGORY_REALTIME),
            self.async_refresh(CATEGORY_TOTALS),
            return_exceptions=True,
        )
        failures = [result for result in results if isinstance(result, Exception)]
        for failure in failures:
            _LOGGER.warning("Initial fetch failed: %s", failure)
        if not failures:
            _LOGGER.info("Initial data loaded")
