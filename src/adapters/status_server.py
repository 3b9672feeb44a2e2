"""HTTP status endpoint.

Serves the status snapshot on ``/`` and ``/health`` for container health
checks: 200 while healthy, 503 once polling has gone stale.
"""

from __future__ import annotations

import logging
from typing import Optional

from aiohttp import web

from core.status import StatusReporter

LOGGER = logging.getLogger(__name__)

REPORTER_KEY = web.AppKey("reporter", StatusReporter)


async def handle_health(request: web.Request) -> web.Response:
    """Return the status document."""
    reporter = request.app[REPORTER_KEY]
    snapshot = reporter.snapshot()
    status = 200 if snapshot["status"] == "ok" else 503
    return web.json_response(snapshot, status=status)


def create_app(reporter: StatusReporter) -> web.Application:
    """Create aiohttp application."""
    app = web.Application()
    app[REPORTER_KEY] = reporter
    app.router.add_get("/health", handle_health)
    app.router.add_get("/", handle_health)
    return app


class StatusServer:
    """Start/stop wrapper around an aiohttp AppRunner."""

    def __init__(self, reporter: StatusReporter, host: str, port: int) -> None:
        self._app = create_app(reporter)
        self._host = host
        self._port = port
        self._runner: Optional[web.AppRunner] = None

    async def start(self) -> None:
        self._runner = web.AppRunner(self._app)
        await self._runner.setup()
        site = web.TCPSite(self._runner, self._host, self._port)
        await site.start()
        LOGGER.info("Health check server running on http://%s:%s", self._host, self._port)

    async def stop(self) -> None:
        if self._runner is not None:
            await self._runner.cleanup()
            self._runner = None
