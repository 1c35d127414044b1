"""Health and metrics endpoints for the PhishGuard agent."""

from __future__ import annotations

import inspect
import logging
from typing import Awaitable, Callable, Union

from aiohttp import web

logger = logging.getLogger(__name__)

METRIC_PREFIX = "phishguard_"

StatusProvider = Callable[[], Union[dict, Awaitable[dict]]]


class HealthServer:
    """Serves `/healthz` (JSON status) and `/metrics` (numeric fields as text)."""

    def __init__(
        self,
        host: str,
        port: int,
        status_provider: StatusProvider,
        enabled: bool = True,
    ):
        self.host = host
        self.port = port
        self.status_provider = status_provider
        self.enabled = enabled
        self._runner: web.AppRunner | None = None
        self._site: web.TCPSite | None = None

    def build_app(self) -> web.Application:
        app = web.Application()
        app.router.add_get("/healthz", self._handle_health)
        app.router.add_get("/metrics", self._handle_metrics)
        return app

    async def start(self):
        """Start the health server."""
        if not self.enabled:
            logger.info("Health server disabled")
            return

        self._runner = web.AppRunner(self.build_app())
        await self._runner.setup()
        self._site = web.TCPSite(self._runner, self.host, self.port)
        await self._site.start()
        logger.info("Health server listening on %s:%s", self.host, self.port)

    async def stop(self):
        """Stop the health server."""
        if self._site:
            await self._site.stop()
        if self._runner:
            await self._runner.cleanup()
        self._runner = None
        self._site = None

    async def _collect(self) -> dict:
        try:
            payload = self.status_provider()
            if inspect.isawaitable(payload):
                payload = await payload
            return dict(payload or {})
        except Exception as exc:
            logger.warning("Health status provider failed: %s", exc)
            return {"status": "error", "message": str(exc)}

    async def _handle_health(self, request):  # noqa: ANN001
        payload = await self._collect()
        payload.setdefault("status", "ok")
        status = 503 if payload.get("status") == "error" else 200
        return web.json_response(payload, status=status)

    async def _handle_metrics(self, request):  # noqa: ANN001
        data = await self._collect()

        lines = []
        for key, value in data.items():
            metric_key = str(key).replace(".", "_").replace("-", "_")
            if isinstance(value, bool):
                lines.append(f"{METRIC_PREFIX}{metric_key} {int(value)}")
            elif isinstance(value, (int, float)):
                lines.append(f"{METRIC_PREFIX}{metric_key} {value}")
        if not lines:
            lines.append(f'{METRIC_PREFIX}status{{state="empty"}} 1')

        return web.Response(text="\n".join(lines) + "\n")
