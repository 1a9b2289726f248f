from sqlalchemy import String
from sqlalchemy.types import JSON
from sqlalchemy.orm import Mapped, mapped_column

from outbox.models.base import Base


class LifecycleSignal(Base):
    """Small JSON documents shared between execution contexts (foreground flag, schedules)."""

    __tablename__ = "outbox_signals"

    key: Mapped[str] = mapped_column(String(120), primary_key=True)
    value: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    updated_at: Mapped[str] = mapped_column(String(40), nullable=False)
