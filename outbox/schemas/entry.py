from typing import Any

from pydantic import BaseModel

from outbox.queues.base import CycleSummary, QueueEntry


class QueueEntryOut(BaseModel):
    local_id: str
    queue_name: str
    payload: dict[str, Any]
    server_id: str | None
    status: str
    created_at: str
    last_attempt_at: str | None
    error_message: str | None
    retry_count: int
    path_suffix: str | None

    @classmethod
    def from_entry(cls, e: QueueEntry) -> "QueueEntryOut":
        return cls(
            local_id=e.local_id,
            queue_name=e.queue_name,
            payload=e.payload,
            server_id=e.server_id,
            status=e.status.name.lower(),
            created_at=e.created_at,
            last_attempt_at=e.last_attempt_at,
            error_message=e.error_message,
            retry_count=e.retry_count,
            path_suffix=e.path_suffix,
        )


class DeliveryOutcomeOut(BaseModel):
    local_id: str
    queue_name: str
    success: bool
    server_id: str | None
    error_message: str | None
    status_code: int


class CycleSummaryOut(BaseModel):
    ok: bool
    skipped: str | None
    interrupted: bool
    error: str | None
    success_count: int
    failure_count: int
    completed_at: str
    outcomes: list[DeliveryOutcomeOut]

    @classmethod
    def from_summary(cls, s: CycleSummary) -> "CycleSummaryOut":
        return cls(
            ok=s.ok,
            skipped=s.skipped,
            interrupted=s.interrupted,
            error=s.error,
            success_count=s.success_count,
            failure_count=s.failure_count,
            completed_at=s.completed_at.isoformat(),
            outcomes=[
                DeliveryOutcomeOut(
                    local_id=o.local_id,
                    queue_name=o.queue_name,
                    success=o.success,
                    server_id=o.server_id,
                    error_message=o.error_message,
                    status_code=o.status_code,
                )
                for o in s.outcomes
            ],
        )


class PendingCountOut(BaseModel):
    pending: int


class ClearedOut(BaseModel):
    removed: int
