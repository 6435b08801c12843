"""Run the dashboard server: python -m aiseg_dashboard."""

from __future__ import annotations

import logging
import socket

import uvicorn

from .config import Settings
from .server import create_app

_LOGGER = logging.getLogger(__name__)


def _lan_addresses() -> list[str]:
    try:
        infos = socket.getaddrinfo(socket.gethostname(), None, socket.AF_INET)
    except OSError:
        return []
    return sorted(
        {info[4][0] for info in infos if not info[4][0].startswith("127.")}
    )


def main() -> None:
    """Configure logging and serve the dashboard until interrupted."""
    settings = Settings.from_env()
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    _LOGGER.info("AiSEG2 Dashboard")
    _LOGGER.info("Local:   http://localhost:%d", settings.port)
    for address in _lan_addresses():
        _LOGGER.info("Network: http://%s:%d", address, settings.port)

    uvicorn.run(
        create_app(settings),
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    main()
