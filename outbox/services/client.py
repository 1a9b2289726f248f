from __future__ import annotations

import contextlib
import json
import logging
from typing import Any, AsyncIterator, Generic, Mapping, TypeVar

from outbox.core.errors import ConfigurationError
from outbox.core.ids import gen_id, utc_now_iso
from outbox.queues.base import CycleSummary, QueueConfig, QueueEntry, SyncStatus
from outbox.services.context import SyncConfig, SyncContext
from outbox.services.lifecycle import ForegroundSignal
from outbox.services.orchestrator import SyncOrchestrator
from outbox.services.scheduler import ScheduleConstraints, SyncScheduler


log = logging.getLogger(__name__)

T = TypeVar("T")


def _checked_payload(payload: Mapping[str, Any]) -> dict[str, Any]:
    if not isinstance(payload, Mapping):
        raise TypeError(f"payload must be a mapping, got {type(payload).__name__}")
    out = dict(payload)
    bad = [k for k in out if not isinstance(k, str)]
    if bad:
        raise TypeError(f"payload keys must be strings, got {bad[:3]}")
    # Fail at enqueue time, not in a background worker hours later.
    json.dumps(out)
    return out


class QueueHandle(Generic[T]):
    """Typed enqueue for one registered queue."""

    def __init__(self, client: "OutboxClient", config: QueueConfig[T]):
        self.client = client
        self.config = config

    async def enqueue(self, model: T, *, server_id: str | None = None, path_suffix: str | None = None) -> str:
        return await self.client.enqueue_raw(
            self.config.queue_name,
            self.config.serialize(model),
            server_id=server_id,
            path_suffix=path_suffix,
        )


class OutboxClient:
    """
    Caller-facing operations. Usable from the interactive process; the
    background worker only ever goes through `run_background_sync`.
    """

    def __init__(self, ctx: SyncContext, *, scheduler: SyncScheduler | None = None):
        self.ctx = ctx
        self.scheduler = scheduler

    @classmethod
    async def open(cls, config: SyncConfig, *, scheduler: SyncScheduler | None = None, **context_kwargs: Any) -> "OutboxClient":
        ctx = SyncContext.create(config, **context_kwargs)
        await ctx.initialize()
        return cls(ctx, scheduler=scheduler)

    async def aclose(self) -> None:
        await self.ctx.aclose()

    @property
    def config(self) -> SyncConfig:
        return self.ctx.config

    # enqueue

    def handle(self, config: QueueConfig[T]) -> QueueHandle[T]:
        registered = self.config.registry.get(config.queue_name)
        if registered is not config:
            raise ConfigurationError(f"QueueConfig for {config.queue_name} is not the registered instance")
        return QueueHandle(self, config)

    async def enqueue(self, queue_name: str, model: Any, *, server_id: str | None = None, path_suffix: str | None = None) -> str:
        config = self.config.registry.get(queue_name)
        return await self.enqueue_raw(queue_name, config.serialize(model), server_id=server_id, path_suffix=path_suffix)

    async def enqueue_raw(
        self,
        queue_name: str,
        payload: Mapping[str, Any],
        *,
        server_id: str | None = None,
        path_suffix: str | None = None,
    ) -> str:
        self.config.registry.get(queue_name)

        entry = QueueEntry(
            local_id=gen_id("loc"),
            queue_name=queue_name,
            payload=_checked_payload(payload),
            created_at=utc_now_iso(),
            server_id=server_id,
            status=SyncStatus.PENDING,
            path_suffix=path_suffix,
        )
        await self.ctx.store.enqueue(entry)
        log.info("queued %s -> %s", entry.local_id, queue_name)
        return entry.local_id

    # sync

    async def trigger_sync_now(self) -> CycleSummary:
        # The caller is the foreground, so the foreground guard does not apply.
        log.info("manual sync triggered")
        return await SyncOrchestrator(self.ctx, respect_foreground=False).run()

    # inspection

    async def list_pending(self, queue_name: str) -> list[QueueEntry]:
        config = self.config.registry.get(queue_name)
        return await self.ctx.store.get_pending(queue_name, config.max_retries)

    async def list_all(self, queue_name: str) -> list[QueueEntry]:
        self.config.registry.get(queue_name)
        return await self.ctx.store.get_all(queue_name)

    async def remove(self, queue_name: str, local_id: str) -> None:
        self.config.registry.get(queue_name)
        await self.ctx.store.delete(queue_name, local_id)

    async def pending_count(self) -> int:
        return await self.ctx.store.pending_count(self.config.queue_names)

    async def clear_all(self) -> int:
        removed = await self.ctx.store.clear(self.config.queue_names)
        log.info("cleared %d queued entries", removed)
        return removed

    # lifecycle / scheduling

    def foreground(self) -> contextlib.AbstractAsyncContextManager[ForegroundSignal]:
        return self.ctx.foreground.session()

    async def start_scheduled_sync(self) -> None:
        scheduler = self._require_scheduler()
        await scheduler.register(
            self.config.worker_name,
            self.config.sync_interval,
            ScheduleConstraints(requires_network=True, requires_battery_not_low=self.config.min_battery_level > 0),
        )

    async def stop_scheduled_sync(self) -> None:
        await self._require_scheduler().cancel(self.config.worker_name)

    def _require_scheduler(self) -> SyncScheduler:
        if self.scheduler is None:
            raise ConfigurationError("No scheduler configured for this client")
        return self.scheduler


@contextlib.asynccontextmanager
async def open_client(config: SyncConfig, **kwargs: Any) -> AsyncIterator[OutboxClient]:
    client = await OutboxClient.open(config, **kwargs)
    try:
        yield client
    finally:
        await client.aclose()
