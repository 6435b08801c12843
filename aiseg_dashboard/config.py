"""Runtime settings read from the environment."""

from __future__ import annotations

import os
from dataclasses import dataclass

from .const import DEFAULT_BASE_URL, DEFAULT_PASSWORD, DEFAULT_TIMEOUT, DEFAULT_USERNAME

DEFAULT_PORT = 3000
DEFAULT_HOST = "0.0.0.0"  # noqa: S104
DEFAULT_NICKNAMES_FILE = "nicknames.json"
DEFAULT_PUBLIC_DIR = "public"


def _env(name: str, default: str = "") -> str:
    value = os.getenv(name)
    return default if value is None or value == "" else value


def _env_int(name: str, default: int) -> int:
    try:
        return int(_env(name, str(default)))
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    try:
        return float(_env(name, str(default)))
    except ValueError:
        return default


def _env_bool(name: str, default: str = "1") -> bool:
    return _env(name, default).strip().lower() in ("1", "true", "yes", "y", "on")


@dataclass(frozen=True)
class Settings:
    """Dashboard settings.

    Attributes:
        base_url: Appliance base URL.
        username: Digest user name.
        password: Digest password.
        host: Listen address of the dashboard.
        port: Listen port of the dashboard.
        timeout: Upstream request timeout in seconds.
        nicknames_file: Path of the persisted nickname mapping.
        public_dir: Directory with the static browser UI.
        prewarm: Load realtime and totals once at startup.
        log_level: Root logging level name.

    """

    base_url: str = DEFAULT_BASE_URL
    username: str = DEFAULT_USERNAME
    password: str = DEFAULT_PASSWORD
    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT
    timeout: float = DEFAULT_TIMEOUT
    nicknames_file: str = DEFAULT_NICKNAMES_FILE
    public_dir: str = DEFAULT_PUBLIC_DIR
    prewarm: bool = True
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> Settings:
        """Build settings from AISEG_* and server environment variables."""
        return cls(
            base_url=_env("AISEG_HOST", DEFAULT_BASE_URL).rstrip("/"),
            username=_env("AISEG_USERNAME", DEFAULT_USERNAME),
            password=_env("AISEG_PASSWORD", DEFAULT_PASSWORD),
            host=_env("HOST", DEFAULT_HOST),
            port=_env_int("PORT", DEFAULT_PORT),
            timeout=_env_float("AISEG_TIMEOUT", DEFAULT_TIMEOUT),
            nicknames_file=_env("NICKNAMES_FILE", DEFAULT_NICKNAMES_FILE),
            public_dir=_env("PUBLIC_DIR", DEFAULT_PUBLIC_DIR),
            prewarm=_env_bool("AISEG_PREWARM", "1"),
            log_level=_env("LOG_LEVEL", "INFO").upper(),
        )
