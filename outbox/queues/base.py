from __future__ import annotations

import dataclasses
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import IntEnum
from typing import Any, Callable, Generic, Literal, Mapping, TypeVar

from pydantic import BaseModel

from outbox.core.errors import ConfigurationError


T = TypeVar("T")

HttpMethod = Literal["GET", "POST", "PUT", "PATCH", "DELETE"]
HTTP_METHODS: tuple[str, ...] = ("GET", "POST", "PUT", "PATCH", "DELETE")

MAX_QUEUE_NAME_LENGTH = 64


class SyncStatus(IntEnum):
    # Ordinals are persisted; never reorder.
    PENDING = 0
    IN_PROGRESS = 1
    SYNCED = 2
    FAILED = 3
    DEAD = 4


ELIGIBLE_STATUSES = (SyncStatus.PENDING, SyncStatus.FAILED)


@dataclass(frozen=True)
class QueueEntry:
    """One locally originated mutation awaiting delivery."""

    local_id: str
    queue_name: str
    payload: dict[str, Any]
    created_at: str
    server_id: str | None = None
    status: SyncStatus = SyncStatus.PENDING
    last_attempt_at: str | None = None
    error_message: str | None = None
    retry_count: int = 0
    path_suffix: str | None = None

    def to_record(self) -> dict[str, Any]:
        return {
            "local_id": self.local_id,
            "queue_name": self.queue_name,
            "payload": dict(self.payload),
            "server_id": self.server_id,
            "status": int(self.status),
            "created_at": self.created_at,
            "last_attempt_at": self.last_attempt_at,
            "error_message": self.error_message,
            "retry_count": self.retry_count,
            "path_suffix": self.path_suffix,
        }

    @classmethod
    def from_record(cls, record: Mapping[str, Any]) -> "QueueEntry":
        return cls(
            local_id=str(record["local_id"]),
            queue_name=str(record["queue_name"]),
            payload=dict(record["payload"]),
            server_id=record.get("server_id"),
            status=SyncStatus(int(record["status"])),
            created_at=str(record["created_at"]),
            last_attempt_at=record.get("last_attempt_at"),
            error_message=record.get("error_message"),
            retry_count=int(record.get("retry_count") or 0),
            path_suffix=record.get("path_suffix"),
        )


@dataclass(frozen=True)
class DeliveryOutcome:
    local_id: str
    queue_name: str
    success: bool
    server_id: str | None = None
    error_message: str | None = None
    status_code: int = 0  # 0 when no response was received

    @classmethod
    def succeeded(cls, entry: QueueEntry, *, server_id: str | None, status_code: int) -> "DeliveryOutcome":
        return cls(local_id=entry.local_id, queue_name=entry.queue_name, success=True, server_id=server_id, status_code=status_code)

    @classmethod
    def failed(cls, entry: QueueEntry, *, error_message: str, status_code: int = 0) -> "DeliveryOutcome":
        return cls(local_id=entry.local_id, queue_name=entry.queue_name, success=False, error_message=error_message, status_code=status_code)


@dataclass(frozen=True)
class CycleSummary:
    outcomes: tuple[DeliveryOutcome, ...] = ()
    completed_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    # What the scheduler sees: False only for fatal cycles (no credential).
    ok: bool = True
    skipped: str | None = None  # name of the guard that short-circuited
    interrupted: bool = False
    error: str | None = None

    @property
    def success_count(self) -> int:
        return sum(1 for o in self.outcomes if o.success)

    @property
    def failure_count(self) -> int:
        return sum(1 for o in self.outcomes if not o.success)

    @property
    def all_succeeded(self) -> bool:
        return self.failure_count == 0

    @property
    def is_empty(self) -> bool:
        return not self.outcomes


def to_payload(model: Any) -> dict[str, Any]:
    """Default serializer: pydantic models, dataclasses and plain mappings."""
    if isinstance(model, BaseModel):
        return model.model_dump(mode="json")
    if dataclasses.is_dataclass(model) and not isinstance(model, type):
        return dataclasses.asdict(model)
    if isinstance(model, Mapping):
        return dict(model)
    raise TypeError(f"Cannot serialize {type(model).__name__} to a payload mapping")


@dataclass(frozen=True)
class QueueConfig(Generic[T]):
    """
    Static registration for one queue (one entity + one operation).

    `queue_name` keys the persisted entries: never rename it after a release,
    renaming orphans everything already queued under the old name.
    """

    queue_name: str
    endpoint: str
    method: HttpMethod
    serialize: Callable[[T], Mapping[str, Any]] = to_payload
    success_status_codes: frozenset[int] = frozenset({200, 201})
    max_retries: int = 3
    extract_server_id: Callable[[Mapping[str, Any]], str | None] | None = None
    build_path_suffix: Callable[[QueueEntry], str] | None = None
    on_success: Callable[[DeliveryOutcome], None] | None = None
    on_failure: Callable[[DeliveryOutcome], None] | None = None
    extra_headers: Mapping[str, str] | None = None

    def __post_init__(self) -> None:
        name = (self.queue_name or "").strip()
        if not name or name != self.queue_name:
            raise ConfigurationError(f"Invalid queue_name={self.queue_name!r}")
        if len(name) > MAX_QUEUE_NAME_LENGTH:
            raise ConfigurationError(f"queue_name longer than {MAX_QUEUE_NAME_LENGTH} chars: {name}")
        if self.method not in HTTP_METHODS:
            raise ConfigurationError(f"Unsupported method={self.method} for queue={name}")
        if self.max_retries < 1:
            raise ConfigurationError(f"max_retries must be >= 1 for queue={name}")
        # accept any iterable of ints at construction time
        object.__setattr__(self, "success_status_codes", frozenset(self.success_status_codes))

    def path_suffix_for(self, entry: QueueEntry) -> str:
        if self.build_path_suffix is not None:
            return self.build_path_suffix(entry)
        return entry.path_suffix or ""
