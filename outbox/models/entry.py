from sqlalchemy import Index, Integer, String, Text
from sqlalchemy.types import JSON
from sqlalchemy.orm import Mapped, mapped_column

from outbox.models.base import Base


class OutboxEntry(Base):
    __tablename__ = "outbox_entries"
    __table_args__ = (
        Index("ix_outbox_entries_queue_status", "queue_name", "status"),
    )

    queue_name: Mapped[str] = mapped_column(String(64), primary_key=True)
    local_id: Mapped[str] = mapped_column(String(80), primary_key=True)

    payload: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    server_id: Mapped[str | None] = mapped_column(String(200), nullable=True)

    # SyncStatus ordinal: pending=0, in_progress=1, synced=2, failed=3, dead=4
    status: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    # ISO-8601 strings, stored verbatim so records round-trip exactly
    created_at: Mapped[str] = mapped_column(String(40), nullable=False)
    last_attempt_at: Mapped[str | None] = mapped_column(String(40), nullable=True)

    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    retry_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    path_suffix: Mapped[str | None] = mapped_column(String(500), nullable=True)
