from __future__ import annotations

import asyncio
import contextlib
import logging
from datetime import datetime, timezone
from typing import AsyncIterator

from outbox.services.queue_store import QueueStore


log = logging.getLogger(__name__)

FOREGROUND_KEY = "lifecycle:foreground"


class ForegroundSignal:
    """
    "Is the interactive session visible" flag shared across processes.

    The interactive context writes it; the background worker polls it. It is
    eventually consistent: a mark older than `stale_after` seconds is read as
    background, so a session that died without clearing it cannot block sync.
    """

    def __init__(self, store: QueueStore, *, stale_after: float | None = 15 * 60):
        self.store = store
        self.stale_after = stale_after

    async def mark_foreground(self) -> None:
        await self.store.write_signal(FOREGROUND_KEY, {"foreground": True})

    async def mark_background(self) -> None:
        await self.store.write_signal(FOREGROUND_KEY, {"foreground": False})

    async def is_foreground(self, *, now: datetime | None = None) -> bool:
        found = await self.store.read_signal(FOREGROUND_KEY)
        if found is None:
            return False
        value, updated_at = found
        if not value.get("foreground"):
            return False

        if self.stale_after is not None:
            now = now or datetime.now(timezone.utc)
            age = (now - datetime.fromisoformat(updated_at)).total_seconds()
            if age > self.stale_after:
                log.warning("foreground mark is stale (%.0fs old); treating as background", age)
                return False
        return True

    @contextlib.asynccontextmanager
    async def session(self, *, heartbeat_seconds: float | None = None) -> AsyncIterator["ForegroundSignal"]:
        """Marks foreground for the duration of the block, refreshing the mark periodically."""
        if heartbeat_seconds is None and self.stale_after is not None:
            heartbeat_seconds = self.stale_after / 3

        await self.mark_foreground()
        beat = asyncio.create_task(self._heartbeat(heartbeat_seconds)) if heartbeat_seconds else None
        try:
            yield self
        finally:
            if beat is not None:
                beat.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await beat
            await self.mark_background()

    async def _heartbeat(self, interval: float) -> None:
        while True:
            await asyncio.sleep(interval)
            try:
                await self.mark_foreground()
            except Exception:
                log.exception("foreground heartbeat failed")
