"""Main entry point: starts the redaction service with uvicorn."""

from __future__ import annotations

import logging
import socket

import uvicorn

from pageredact.config import config
from pageredact.structured_logging import setup_logging


def find_free_port() -> int:
    """Find an available TCP port."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        s.bind(("127.0.0.1", 0))
        return s.getsockname()[1]


def main():
    setup_logging()

    from pageredact.api.deps import load_detectors
    from pageredact.api.server import create_app

    detectors = load_detectors(config.detector_factory) if config.detector_factory else None
    app = create_app(detectors)

    port = config.port if config.port != 0 else find_free_port()
    log = logging.getLogger("pageredact")
    if detectors is None:
        log.warning("No detector factory configured; scans will find nothing")
    log.info(f"Starting on {config.host}:{port}")

    uvicorn.run(
        app,
        host=config.host,
        port=port,
        log_level=config.log_level.lower(),
        log_config=None,
    )


if __name__ == "__main__":
    main()
