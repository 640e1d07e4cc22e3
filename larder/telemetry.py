"""Fire-and-forget event sink.

``post`` never raises and never blocks the caller: the request is scheduled
on the running event loop and any failure is logged at DEBUG and dropped.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any

import httpx

logger = logging.getLogger("larder.telemetry")


class TelemetrySink:
    def __init__(self, url: str = "", client: httpx.AsyncClient | None = None, timeout: float = 5.0):
        self.url = url
        self.timeout = timeout
        self._client = client
        self._owns_client = client is None
        self._pending: set[asyncio.Task] = set()

    @property
    def enabled(self) -> bool:
        return bool(self.url)

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout)
        return self._client

    def post(self, event: str, payload: dict[str, Any] | None = None) -> None:
        if not self.enabled:
            return
        body = {
            "event": event,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "payload": payload or {},
        }
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.debug("No running event loop, dropping telemetry event %s", event)
            return
        task = loop.create_task(self._send(body))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _send(self, body: dict[str, Any]) -> None:
        try:
            response = await self._get_client().post(self.url, json=body)
            response.raise_for_status()
        except Exception as e:
            logger.debug("Telemetry event %s dropped: %s", body["event"], e, extra={"event": body["event"]})

    async def aclose(self) -> None:
        """Wait for in-flight posts, then close the client."""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None
