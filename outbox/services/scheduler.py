"""
Scheduler adapter.

Registrations live in the store, not in the beat schedule: beat runs in its
own process and only knows one fixed entry, `worker.tasks.dispatch_scheduled_syncs`,
which polls the store and sends `worker.tasks.run_sync_cycle` for every
active registration whose `next_run_at` has passed. Registering, changing the
interval or cancelling from any process therefore takes effect on the next poll.
"""
from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Protocol

from celery import Celery

from outbox.services.queue_store import QueueStore


log = logging.getLogger(__name__)

SYNC_TASK_NAME = "worker.tasks.run_sync_cycle"
DISPATCH_TASK_NAME = "worker.tasks.dispatch_scheduled_syncs"
SYNC_TASK_QUEUE = "outbox"
DEBUG_COUNTDOWN_SECONDS = 60
SCHEDULE_PREFIX = "schedule:"


@dataclass(frozen=True)
class ScheduleConstraints:
    requires_network: bool = True
    requires_battery_not_low: bool = False


def schedule_key(task_id: str) -> str:
    return f"{SCHEDULE_PREFIX}{task_id}"


class SyncScheduler(Protocol):
    async def register(self, task_id: str, interval: timedelta, constraints: ScheduleConstraints) -> None:
        ...

    async def cancel(self, task_id: str) -> None:
        ...


async def read_registration(store: QueueStore, task_id: str) -> dict[str, Any] | None:
    found = await store.read_signal(schedule_key(task_id))
    return found[0] if found else None


def _is_due(registration: dict[str, Any], now: datetime) -> bool:
    if not registration.get("active") or registration.get("one_off"):
        return False
    next_run_at = registration.get("next_run_at")
    if not next_run_at:
        return True
    return datetime.fromisoformat(next_run_at) <= now


class CeleryBeatScheduler:
    def __init__(self, celery: Celery, store: QueueStore, *, debug: bool = False):
        self.celery = celery
        self.store = store
        self.debug = debug

    async def register(self, task_id: str, interval: timedelta, constraints: ScheduleConstraints) -> None:
        """
        Replaces any earlier registration under the same id. A periodic
        registration is first due on the next dispatcher poll.
        """
        now = datetime.now(timezone.utc)

        if self.debug:
            # one-off run shortly after registration instead of a periodic entry
            debug_id = f"{task_id}_debug"
            await self._persist(debug_id, interval, constraints, next_run_at=now, one_off=True)
            self.celery.send_task(
                SYNC_TASK_NAME,
                args=[debug_id],
                kwargs={"constraints": asdict(constraints)},
                queue=SYNC_TASK_QUEUE,
                countdown=DEBUG_COUNTDOWN_SECONDS,
            )
            log.info("debug one-off sync task %s registered (in %ds)", debug_id, DEBUG_COUNTDOWN_SECONDS)
            return

        await self._persist(task_id, interval, constraints, next_run_at=now)
        log.info("periodic sync task %s registered (every %d min)", task_id, interval.total_seconds() // 60)

    async def cancel(self, task_id: str) -> None:
        for tid in (task_id, f"{task_id}_debug"):
            found = await read_registration(self.store, tid)
            if found is not None:
                await self.store.write_signal(schedule_key(tid), {**found, "active": False})
        log.info("sync task %s cancelled", task_id)

    async def dispatch_due(self, now: datetime | None = None) -> list[str]:
        """Send one sync task per due registration and advance its next run."""
        now = now or datetime.now(timezone.utc)
        sent: list[str] = []
        for key, registration in await self.store.list_signals(SCHEDULE_PREFIX):
            if not _is_due(registration, now):
                continue

            task_id = key[len(SCHEDULE_PREFIX):]
            interval = timedelta(seconds=int(registration.get("interval_seconds") or 0))
            self.celery.send_task(
                SYNC_TASK_NAME,
                args=[task_id],
                kwargs={"constraints": registration.get("constraints") or {}},
                queue=SYNC_TASK_QUEUE,
            )
            await self.store.write_signal(key, {**registration, "next_run_at": (now + interval).isoformat()})
            sent.append(task_id)

        if sent:
            log.info("dispatched %d scheduled sync task(s): %s", len(sent), ", ".join(sent))
        return sent

    async def _persist(
        self,
        task_id: str,
        interval: timedelta,
        constraints: ScheduleConstraints,
        *,
        next_run_at: datetime,
        one_off: bool = False,
    ) -> None:
        registration: dict[str, Any] = {
            "active": True,
            "interval_seconds": int(interval.total_seconds()),
            "constraints": asdict(constraints),
            "next_run_at": next_run_at.isoformat(),
        }
        if one_off:
            registration["one_off"] = True
        await self.store.write_signal(schedule_key(task_id), registration)
