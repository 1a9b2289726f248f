"""
Delivery engine: drains one queue.

Per entry:  pending|failed -> in_progress (persisted) -> deleted on success,
            or failed / dead (retry_count + 1) on any error.

Entries are processed one at a time in creation order. Before each entry the
foreground signal is re-checked (when enabled) and the queue stops with
SyncInterrupted; outcomes already committed stand. An entry the caller
removed mid-cycle is skipped. Any other unexpected error stops the queue
with QueueAborted, again carrying the outcomes committed so far.
"""
from __future__ import annotations

import dataclasses
import logging
from typing import Any, Callable, Mapping

from outbox.core.errors import EntryNotFoundError, QueueAborted, ServerRejection, SyncInterrupted
from outbox.core.ids import utc_now_iso
from outbox.core.telemetry import get_tracer
from outbox.queues.base import DeliveryOutcome, QueueConfig, QueueEntry, SyncStatus
from outbox.services.context import SyncContext
from outbox.services.devices import show_sync_summary
from outbox.services.error_messages import user_message
from outbox.services.http_client import Transport


log = logging.getLogger(__name__)


def build_headers(ctx: SyncContext, queue: QueueConfig, token: str) -> dict[str, str]:
    # Later layers win: cycle defaults < app default headers < queue headers
    h = {"Content-Type": "application/json", "Authorization": token}
    h.update(dict(ctx.config.default_headers))
    if queue.extra_headers:
        h.update(dict(queue.extra_headers))
    return h


def extract_server_id(queue: QueueConfig, body: Any) -> str | None:
    if queue.extract_server_id is None or not isinstance(body, dict):
        return None
    server_id = queue.extract_server_id(body)
    return str(server_id) if server_id is not None else None


class DeliveryEngine:
    def __init__(
        self,
        ctx: SyncContext,
        queue: QueueConfig,
        transport: Transport,
        *,
        check_foreground: bool = True,
    ):
        self.ctx = ctx
        self.queue = queue
        self.transport = transport
        self.check_foreground = check_foreground and ctx.config.skip_sync_when_foreground

    async def run(self, token: str) -> list[DeliveryOutcome]:
        store = self.ctx.store
        entries = await store.get_pending(self.queue.queue_name, self.queue.max_retries)
        if not entries:
            log.debug("%s: nothing to sync", self.queue.queue_name)
            return []

        log.info("%s: syncing %d entr%s", self.queue.queue_name, len(entries), "y" if len(entries) == 1 else "ies")
        headers = build_headers(self.ctx, self.queue, token)

        outcomes: list[DeliveryOutcome] = []
        for entry in entries:
            if self.check_foreground and await self.ctx.foreground.is_foreground():
                raise SyncInterrupted(
                    f"App moved to foreground, aborting {self.queue.queue_name} sync",
                    outcomes=outcomes,
                )
            try:
                outcome = await self.deliver(entry, headers)
            except Exception as e:
                raise QueueAborted(
                    f"{self.queue.queue_name} stopped at {entry.local_id}: {type(e).__name__}",
                    outcomes=outcomes,
                ) from e
            if outcome is not None:
                outcomes.append(outcome)

        await self._notify(outcomes)
        return outcomes

    async def deliver(self, entry: QueueEntry, headers: Mapping[str, str]) -> DeliveryOutcome | None:
        """Returns None when the entry was removed by the caller while the cycle ran."""
        store = self.ctx.store
        queue = self.queue

        # Durable evidence of the attempt before anything leaves the process.
        entry = dataclasses.replace(entry, status=SyncStatus.IN_PROGRESS, last_attempt_at=utc_now_iso())
        try:
            await store.update(entry)
        except EntryNotFoundError:
            log.info("%s: %s removed by caller; skipping", queue.queue_name, entry.local_id)
            return None

        with get_tracer().start_as_current_span("outbox.deliver") as span:
            span.set_attribute("outbox.queue", queue.queue_name)
            span.set_attribute("outbox.local_id", entry.local_id)

            status_code = 0
            try:
                resp = await self.transport.request(
                    base_url=self.ctx.config.base_url,
                    endpoint=queue.endpoint,
                    path_suffix=queue.path_suffix_for(entry),
                    method=queue.method,
                    headers=headers,
                    body=entry.payload,
                    timeout=self.ctx.config.request_timeout,
                )
                status_code = resp.status_code
                span.set_attribute("http.status_code", status_code)
                if status_code not in queue.success_status_codes:
                    raise ServerRejection(status_code, resp.body)
            except Exception as e:
                # One entry's error never blocks the rest of the queue.
                log.warning(
                    "%s: %s failed (%s: %s)",
                    queue.queue_name, entry.local_id, type(e).__name__, e,
                )
                return await self._record_failure(entry, user_message(e), status_code)

        # Accepted by the server: from here on the entry must not be retried.
        await store.delete(queue.queue_name, entry.local_id)
        try:
            server_id = extract_server_id(queue, resp.body)
        except Exception:
            log.exception("%s: server id extraction failed for %s", queue.queue_name, entry.local_id)
            server_id = None

        outcome = DeliveryOutcome.succeeded(entry, server_id=server_id, status_code=status_code)
        log.info("%s: %s synced (status=%d server_id=%s)", queue.queue_name, entry.local_id, status_code, server_id)
        self._call_hook(queue.on_success, outcome)
        return outcome

    async def _record_failure(self, entry: QueueEntry, error_message: str, status_code: int) -> DeliveryOutcome | None:
        retry_count = entry.retry_count + 1
        dead = retry_count >= self.queue.max_retries
        try:
            await self.ctx.store.update(dataclasses.replace(
                entry,
                status=SyncStatus.DEAD if dead else SyncStatus.FAILED,
                retry_count=retry_count,
                error_message=error_message,
                last_attempt_at=utc_now_iso(),
            ))
        except EntryNotFoundError:
            log.info("%s: %s removed by caller during delivery; skipping", self.queue.queue_name, entry.local_id)
            return None
        if dead:
            log.warning("%s: %s dead-lettered after %d attempts", self.queue.queue_name, entry.local_id, retry_count)

        outcome = DeliveryOutcome.failed(entry, error_message=error_message, status_code=status_code)
        self._call_hook(self.queue.on_failure, outcome)
        return outcome

    def _call_hook(self, hook: Callable[[DeliveryOutcome], None] | None, outcome: DeliveryOutcome) -> None:
        if hook is None:
            return
        try:
            hook(outcome)
        except Exception:
            # The outcome is already persisted; a broken hook must not rewrite it.
            log.exception("%s: hook failed for %s", self.queue.queue_name, outcome.local_id)

    async def _notify(self, outcomes: list[DeliveryOutcome]) -> None:
        if not outcomes or not self.ctx.config.show_sync_notifications:
            return
        success_count = sum(1 for o in outcomes if o.success)
        try:
            await show_sync_summary(
                self.ctx.notifier,
                queue_name=self.queue.queue_name,
                success_count=success_count,
                failure_count=len(outcomes) - success_count,
            )
        except Exception:
            log.exception("%s: summary notification failed", self.queue.queue_name)
