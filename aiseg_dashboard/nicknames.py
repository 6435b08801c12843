"""Persisted device nicknames."""

from __future__ import annotations

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any

_LOGGER = logging.getLogger(__name__)


def nickname_key(node_id: str, eoj: str) -> str:
    """Return the mapping key of a device."""
    return f"{node_id}_{eoj}"


class NicknameStore:
    """Key to label mapping, rewritten as a whole file on every change."""

    def __init__(self, path: str | os.PathLike[str]) -> None:
        self._path = Path(path)
        self._names: dict[str, str] = self._load()

    @property
    def path(self) -> Path:
        """Return the backing file path."""
        return self._path

    def _load(self) -> dict[str, str]:
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return {}
        except (OSError, ValueError) as err:
            _LOGGER.warning("Ignoring unreadable nickname file %s: %s", self._path, err)
            return {}

        if not isinstance(data, dict):
            _LOGGER.warning("Ignoring nickname file %s: not an object", self._path)
            return {}
        return {str(key): str(value) for key, value in data.items()}

    def _save(self) -> None:
        directory = self._path.parent
        directory.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(
            dir=directory, prefix=f".{self._path.name}.", suffix=".tmp"
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                json.dump(self._names, handle, ensure_ascii=False, indent=2)
            os.replace(tmp_name, self._path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise

    def get_all(self) -> dict[str, str]:
        """Return a copy of the mapping."""
        return dict(self._names)

    def set(self, node_id: str, eoj: str, name: str | None) -> None:
        """Set or clear (blank name) the nickname of a device and persist."""
        key = nickname_key(node_id, eoj)
        label = (name or "").strip()
        if label:
            self._names[key] = label
        else:
            self._names.pop(key, None)
        self._save()
        _LOGGER.info("Nickname for %s %s", key, f"set to {label!r}" if label else "reset")

    def _annotate(self, device: dict[str, Any]) -> dict[str, Any]:
        annotated = {
            key: value for key, value in device.items() if key != "nickname"
        }
        label = self._names.get(nickname_key(device.get("nodeId"), device.get("eoj")))
        if label:
            annotated["nickname"] = label
        return annotated

    def apply(self, devices: dict[str, Any] | None) -> dict[str, Any] | None:
        """Return a copy of a devices payload with nicknames overlaid."""
        if devices is None:
            return None
        return {
            **devices,
            "acs": [self._annotate(device) for device in devices.get("acs") or []],
            "fhs": [self._annotate(device) for device in devices.get("fhs") or []],
        }
