"""Cooperative cancellation tokens."""

import asyncio


class CancellationToken:
    """A one-shot signal telling in-flight work to stop.

    Holders poll ``cancelled`` or await ``wait()``; ``cancel()`` is
    idempotent and never blocks.
    """

    def __init__(self) -> None:
        self._event = asyncio.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    async def wait(self) -> None:
        await self._event.wait()

    def __repr__(self) -> str:
        return f"CancellationToken(cancelled={self.cancelled})"
