"""Anonymous usage events sent to a PostHog-compatible endpoint."""

import asyncio
from typing import Any

import httpx
import structlog

from repo_sync.config.settings import Settings
from repo_sync.version import __version__

logger = structlog.get_logger(__name__)


class Telemetry:
    """Fire-and-forget event capture.

    Events are posted in background tasks so callers never wait on the
    network, and a failed send is logged rather than raised.
    """

    def __init__(self, settings: Settings, client: httpx.AsyncClient | None = None) -> None:
        self._settings = settings
        self._client = client
        self._owns_client = client is None
        self._pending: set[asyncio.Task] = set()

    @property
    def enabled(self) -> bool:
        return not self._settings.telemetry_disabled and bool(self._settings.posthog_api_key)

    def capture(self, event: str, properties: dict[str, Any] | None = None) -> None:
        if not self.enabled:
            return

        payload = {
            "api_key": self._settings.posthog_api_key,
            "event": event,
            "distinct_id": self._settings.install_id,
            "properties": {**(properties or {}), "repo_sync_version": __version__},
        }
        task = asyncio.create_task(self._send(payload))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _send(self, payload: dict[str, Any]) -> None:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self._settings.http_timeout)
        url = f"{self._settings.posthog_host.rstrip('/')}/capture/"
        try:
            response = await self._client.post(url, json=payload)
            response.raise_for_status()
        except (httpx.HTTPError, httpx.InvalidURL) as exc:
            logger.debug("Failed to send telemetry event", event=payload["event"], error=str(exc))

    async def flush(self) -> None:
        """Wait for every event scheduled so far to be sent."""
        if self._pending:
            await asyncio.gather(*self._pending, return_exceptions=True)

    async def aclose(self) -> None:
        await self.flush()
        if self._owns_client and self._client is not None:
            await self._client.aclose()
