import asyncio
import logging

from worker.celery_app import celery
from outbox.core.config import settings
from outbox.core.telemetry import setup_telemetry
from outbox.services.entry_point import load_config_factory, run_background_sync
from outbox.services.queue_store import QueueStore
from outbox.services.scheduler import CeleryBeatScheduler


log = logging.getLogger(__name__)

logging.basicConfig(level=settings.log_level)
setup_telemetry()


async def _run_sync_cycle(task_id: str, constraints: dict | None) -> bool:
    # Resolved here, inside the worker process, never passed in from the caller.
    factory = load_config_factory(settings.config_factory)
    return await run_background_sync(task_id, factory, constraints=constraints)


async def _dispatch_scheduled_syncs() -> list[str]:
    # The store location comes from the same factory the sync task uses.
    config = load_config_factory(settings.config_factory)()
    store = QueueStore(config.database_url)
    try:
        await store.initialize()
        return await CeleryBeatScheduler(celery, store).dispatch_due()
    finally:
        await store.dispose()


@celery.task(name="worker.tasks.dispatch_scheduled_syncs")
def dispatch_scheduled_syncs() -> list[str]:
    try:
        return asyncio.run(_dispatch_scheduled_syncs())
    except Exception:
        # Beat fires again on the next poll.
        log.exception("schedule dispatch failed")
        return []


@celery.task(name="worker.tasks.run_sync_cycle", bind=True, max_retries=5)
def run_sync_cycle(self, task_id: str, constraints: dict | None = None) -> bool:
    try:
        ok = asyncio.run(_run_sync_cycle(task_id, constraints))
    except Exception:
        log.exception("sync task %s: could not start", task_id)
        ok = False

    if not ok:
        # Task-level retry, outer to the per-entry retry policy.
        raise self.retry(countdown=settings.retry_countdown_seconds)
    return ok
