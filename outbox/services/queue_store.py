"""
Durable record store for queued entries.

Entries are keyed by (queue_name, local_id). A row exists only while the
mutation has not been confirmed delivered; the delivery engine deletes it on
success and otherwise rewrites the whole record.
"""
from __future__ import annotations

import logging
from typing import Any, Sequence

from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import IntegrityError

from outbox.core.db import make_engine, make_sessionmaker
from outbox.core.errors import DuplicateEntryError, EntryNotFoundError
from outbox.core.ids import utc_now_iso
from outbox.models.base import Base
from outbox.models.entry import OutboxEntry
from outbox.models.signal import LifecycleSignal
from outbox.queues.base import ELIGIBLE_STATUSES, QueueEntry


log = logging.getLogger(__name__)


def _row_to_entry(row: OutboxEntry) -> QueueEntry:
    return QueueEntry.from_record({
        "local_id": row.local_id,
        "queue_name": row.queue_name,
        "payload": row.payload,
        "server_id": row.server_id,
        "status": row.status,
        "created_at": row.created_at,
        "last_attempt_at": row.last_attempt_at,
        "error_message": row.error_message,
        "retry_count": row.retry_count,
        "path_suffix": row.path_suffix,
    })


def _mutable_fields(entry: QueueEntry) -> dict[str, Any]:
    record = entry.to_record()
    record.pop("queue_name")
    record.pop("local_id")
    return record


class QueueStore:
    def __init__(self, database_url: str):
        self.database_url = database_url
        self.engine = make_engine(database_url)
        self._session = make_sessionmaker(self.engine)

    async def initialize(self) -> None:
        # create_all checks for existing tables first, so every context may call this.
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def dispose(self) -> None:
        await self.engine.dispose()

    # entries

    async def enqueue(self, entry: QueueEntry) -> None:
        async with self._session() as db:
            db.add(OutboxEntry(queue_name=entry.queue_name, local_id=entry.local_id, **_mutable_fields(entry)))
            try:
                await db.commit()
            except IntegrityError as e:
                await db.rollback()
                raise DuplicateEntryError(
                    f"Entry already queued: queue={entry.queue_name} local_id={entry.local_id}"
                ) from e
        log.debug("queued %s -> %s", entry.local_id, entry.queue_name)

    async def get_all(self, queue_name: str) -> list[QueueEntry]:
        stmt = (
            select(OutboxEntry)
            .where(OutboxEntry.queue_name == queue_name)
            .order_by(OutboxEntry.created_at.asc(), OutboxEntry.local_id.asc())
        )
        async with self._session() as db:
            rows = (await db.execute(stmt)).scalars().all()
        return [_row_to_entry(r) for r in rows]

    async def get(self, queue_name: str, local_id: str) -> QueueEntry | None:
        async with self._session() as db:
            row = await db.get(OutboxEntry, (queue_name, local_id))
        return _row_to_entry(row) if row else None

    async def get_pending(self, queue_name: str, max_retries: int) -> list[QueueEntry]:
        # in_progress rows are left alone: the request may already have reached the server.
        stmt = (
            select(OutboxEntry)
            .where(
                OutboxEntry.queue_name == queue_name,
                OutboxEntry.status.in_([int(s) for s in ELIGIBLE_STATUSES]),
                OutboxEntry.retry_count < max_retries,
            )
            .order_by(OutboxEntry.created_at.asc(), OutboxEntry.local_id.asc())
        )
        async with self._session() as db:
            rows = (await db.execute(stmt)).scalars().all()
        return [_row_to_entry(r) for r in rows]

    async def update(self, entry: QueueEntry) -> None:
        async with self._session() as db:
            result = await db.execute(
                update(OutboxEntry)
                .where(OutboxEntry.queue_name == entry.queue_name, OutboxEntry.local_id == entry.local_id)
                .values(**_mutable_fields(entry))
            )
            if result.rowcount == 0:
                await db.rollback()
                raise EntryNotFoundError(f"No entry queue={entry.queue_name} local_id={entry.local_id}")
            await db.commit()

    async def delete(self, queue_name: str, local_id: str) -> None:
        async with self._session() as db:
            await db.execute(
                delete(OutboxEntry).where(OutboxEntry.queue_name == queue_name, OutboxEntry.local_id == local_id)
            )
            await db.commit()

    async def pending_count(self, queue_names: Sequence[str]) -> int:
        if not queue_names:
            return 0
        stmt = (
            select(func.count())
            .select_from(OutboxEntry)
            .where(
                OutboxEntry.queue_name.in_(list(queue_names)),
                OutboxEntry.status.in_([int(s) for s in ELIGIBLE_STATUSES]),
            )
        )
        async with self._session() as db:
            return int((await db.execute(stmt)).scalar_one())

    async def has_pending(self, queue_names: Sequence[str]) -> bool:
        return await self.pending_count(queue_names) > 0

    async def clear(self, queue_names: Sequence[str]) -> int:
        if not queue_names:
            return 0
        async with self._session() as db:
            result = await db.execute(delete(OutboxEntry).where(OutboxEntry.queue_name.in_(list(queue_names))))
            await db.commit()
        return int(result.rowcount or 0)

    # signals

    async def read_signal(self, key: str) -> tuple[dict[str, Any], str] | None:
        async with self._session() as db:
            row = await db.get(LifecycleSignal, key)
        if not row:
            return None
        return dict(row.value), row.updated_at

    async def write_signal(self, key: str, value: dict[str, Any]) -> None:
        async with self._session() as db:
            row = await db.get(LifecycleSignal, key)
            if row is None:
                db.add(LifecycleSignal(key=key, value=value, updated_at=utc_now_iso()))
            else:
                row.value = value
                row.updated_at = utc_now_iso()
            await db.commit()

    async def list_signals(self, prefix: str) -> list[tuple[str, dict[str, Any]]]:
        async with self._session() as db:
            rows = (await db.execute(
                select(LifecycleSignal)
                .where(LifecycleSignal.key.startswith(prefix, autoescape=True))
                .order_by(LifecycleSignal.key.asc())
            )).scalars().all()
        return [(row.key, dict(row.value)) for row in rows]
