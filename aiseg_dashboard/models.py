"""Data models for the AiSEG2 dashboard."""

from __future__ import annotations

from dataclasses import dataclass
from enum import IntEnum, StrEnum
from typing import Any


class UnknownControlActionError(ValueError):
    """Exception raised for a control action outside the supported set."""


@dataclass
class SessionToken:
    """Represents the appliance session token with its fetch timestamp."""

    value: str
    fetched_at: float

    def is_fresh(self, now: float, max_age: float) -> bool:
        """Return True while the token is younger than max_age seconds."""
        return now - self.fetched_at < max_age


@dataclass(frozen=True)
class DeviceDescriptor:
    """Static identity of a controllable unit.

    Attributes:
        node_id: Appliance node identifier.
        eoj: Endpoint object identifier within the node.
        device_type: Device type code (e.g. "0x33" for air conditioners).
        name: Default display name.

    """

    node_id: str
    eoj: str
    device_type: str
    name: str

    @property
    def key(self) -> str:
        """Return the nickname key for this device."""
        return f"{self.node_id}_{self.eoj}"

    def as_payload(self) -> dict[str, str]:
        """Return the identity dict the group endpoints expect."""
        return {"nodeId": self.node_id, "eoj": self.eoj, "type": self.device_type}


@dataclass(frozen=True)
class EnefarmDescriptor:
    """Static identity of the fuel-cell unit and its bath sub-unit."""

    unit: DeviceDescriptor
    bath: DeviceDescriptor
    bath_command: str
    generate_command: str


@dataclass(frozen=True)
class Circuit:
    """Represents a metered circuit."""

    id: str
    name: str


@dataclass
class CacheEntry:
    """Last known payload of one data category."""

    payload: Any = None
    fetched_at: float = 0.0

    @property
    def has_data(self) -> bool:
        """Return True once a payload has been stored."""
        return self.payload is not None

    def is_expired(self, ttl: float, now: float) -> bool:
        """Return True when the entry is older than ttl or was never filled."""
        if not self.has_data:
            return True
        return now - self.fetched_at > ttl

    def store(self, payload: Any, now: float) -> None:
        """Replace the payload and stamp it with now."""
        self.payload = payload
        self.fetched_at = now

    @property
    def ts_ms(self) -> int:
        """Return the fetch timestamp in epoch milliseconds."""
        return int(self.fetched_at * 1000)


class ControlAction(StrEnum):
    """Closed set of device control actions accepted from browsers."""

    TOGGLE_AC = "toggleAC"
    TOGGLE_FH = "toggleFH"
    TOGGLE_BATH = "toggleBath"
    TOGGLE_GENERATE = "toggleGenerate"
    SET_AC_MODE = "setACMode"
    SET_AC_TEMP = "setACTemp"
    SET_AC_FAN = "setACFan"
    SET_FH_LEVEL = "setFHLevel"


class ACSetting(IntEnum):
    """Setting type selector of the AC change endpoint."""

    MODE = 1
    TEMPERATURE = 2
    FAN = 3


@dataclass(frozen=True)
class ControlCommand:
    """A validated control request."""

    action: ControlAction
    node_id: str | None = None
    eoj: str | None = None
    state: str | None = None
    value: Any = None

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> ControlCommand:
        """Build a command from a browser request body.

        Raises:
            UnknownControlActionError: If the action is not supported.

        """
        raw_action = payload.get("action")
        try:
            action = ControlAction(raw_action)
        except ValueError as err:
            error_msg = f"unknown action: {raw_action!r}"
            raise UnknownControlActionError(error_msg) from err

        return cls(
            action=action,
            node_id=payload.get("nodeId"),
            eoj=payload.get("eoj"),
            state=payload.get("state"),
            value=payload.get("value"),
        )
