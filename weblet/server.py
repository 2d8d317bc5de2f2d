"""Building a uvicorn server with sensible timeouts."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

import uvicorn
from starlette.types import ASGIApp

from .config import DEFAULT_HOST, DEFAULT_PORT

logger = logging.getLogger("weblet.server")

KEEP_ALIVE_TIMEOUT = 60
GRACEFUL_SHUTDOWN_TIMEOUT = 30


@dataclass
class ServerOptions:
    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT
    log_level: str = "info"


def build_server(app: ASGIApp, options: Optional[ServerOptions] = None) -> uvicorn.Server:
    """Return a :class:`uvicorn.Server` for ``app``, call ``run()`` on it to serve."""

    options = options or ServerOptions()
    if not 0 < options.port <= 65535:
        raise ValueError(f"Invalid port: {options.port}")

    logger.info("Serving on http://%s:%s", options.host, options.port)
    config = uvicorn.Config(
        app,
        host=options.host,
        port=options.port,
        log_level=options.log_level,
        timeout_keep_alive=KEEP_ALIVE_TIMEOUT,
        timeout_graceful_shutdown=GRACEFUL_SHUTDOWN_TIMEOUT,
    )
    return uvicorn.Server(config)


__all__ = ["ServerOptions", "build_server"]
