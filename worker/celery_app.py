from datetime import timedelta

from celery import Celery

from outbox.core.config import settings
from outbox.services.scheduler import DISPATCH_TASK_NAME, SYNC_TASK_NAME, SYNC_TASK_QUEUE

celery = Celery(
    "outbox-worker",
    broker=settings.broker_url,
    backend=settings.result_backend,
    include=["worker.tasks"],
)

celery.conf.update(
    task_acks_late=True,
    worker_prefetch_multiplier=1,
    task_default_queue="default",
    task_routes={
        SYNC_TASK_NAME: {"queue": SYNC_TASK_QUEUE},
        DISPATCH_TASK_NAME: {"queue": SYNC_TASK_QUEUE},
    },
    # Sync intervals come from registrations in the store; beat only polls for due ones.
    beat_schedule={
        "dispatch-scheduled-syncs": {
            "task": DISPATCH_TASK_NAME,
            "schedule": timedelta(seconds=settings.schedule_poll_seconds),
            "options": {"queue": SYNC_TASK_QUEUE},
        },
    },
)
