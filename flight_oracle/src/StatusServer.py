"""StatusServer: Read-only HTTP status endpoint for operators.

Endpoints:
    - ``GET /api``: service banner
    - ``GET /api/status``: pool, stream and submission counters

The endpoint only reads snapshots produced by the oracle; it has no influence
on provisioning or dispatch.
"""

from __future__ import annotations

import contextlib
import logging
from collections.abc import Callable, Iterator
from typing import Any

import uvicorn
from fastapi import FastAPI

logger = logging.getLogger(__name__)


def create_app(status_fn: Callable[[], dict[str, Any]]) -> FastAPI:
    """Create the FastAPI status application.

    :param status_fn: Callable returning the current status snapshot.
    :returns: Configured FastAPI app.
    """
    app = FastAPI(
        title="Flight Status Oracle",
        description="Off-chain oracle pool answering FlightSuretyApp status requests",
    )

    @app.get("/api")
    def api_root() -> dict[str, str]:
        return {"message": "Flight status oracle API"}

    @app.get("/api/status")
    def api_status() -> dict[str, Any]:
        return status_fn()

    return app


class _QuietServer(uvicorn.Server):
    """uvicorn server leaving signal handling to the oracle."""

    def install_signal_handlers(self) -> None:
        pass

    @contextlib.contextmanager
    def capture_signals(self) -> Iterator[None]:
        yield


class StatusServer:
    """Runs the status app with uvicorn inside the oracle's event loop.

    :ivar host: Bind address.
    :ivar port: Bind port.
    """

    def __init__(
        self,
        status_fn: Callable[[], dict[str, Any]],
        host: str = "127.0.0.1",
        port: int = 3000,
    ) -> None:
        """Initialize the status server.

        :param status_fn: Callable returning the current status snapshot.
        :param host: Bind address (default: 127.0.0.1).
        :param port: Bind port (default: 3000).
        """
        self.host = host
        self.port = port
        config = uvicorn.Config(
            create_app(status_fn),
            host=host,
            port=port,
            log_level="warning",
            lifespan="off",
        )
        self._server = _QuietServer(config)

    async def serve(self) -> None:
        """Serve until ``shutdown`` is called."""
        logger.info(f"Status endpoint listening on http://{self.host}:{self.port}/api/status")
        await self._server.serve()

    def shutdown(self) -> None:
        """Ask the server to exit its serve loop."""
        self._server.should_exit = True
