"""Local dashboard for the Panasonic AiSEG2 energy monitor."""

from .api import AisegApiAuthError, AisegApiClientError
from .client import AisegClient
from .config import Settings
from .coordinator import AisegDataCoordinator
from .websocket import AisegBroadcastManager

__all__ = [
    "AisegApiAuthError",
    "AisegApiClientError",
    "AisegBroadcastManager",
    "AisegClient",
    "AisegDataCoordinator",
    "Settings",
]
