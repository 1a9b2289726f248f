from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Callable

from outbox.core.errors import AuthenticationError, QueueAborted, SyncInterrupted
from outbox.core.telemetry import get_tracer
from outbox.queues.base import CycleSummary, DeliveryOutcome
from outbox.services.context import SyncContext
from outbox.services.delivery_engine import DeliveryEngine
from outbox.services.error_messages import user_message
from outbox.services.guards import build_guard_chain


log = logging.getLogger(__name__)


class SyncOrchestrator:
    """
    One `run()` is one cycle: guards, credential, then every queue in
    registration order through a DeliveryEngine sharing one transport.

    Only a missing credential makes the cycle fail (`ok=False`). Skips,
    interruptions and per-entry failures all report `ok=True` so the
    scheduler's own backoff never stacks on top of the per-entry retry policy.
    """

    def __init__(
        self,
        ctx: SyncContext,
        *,
        respect_foreground: bool = True,
        min_battery_level: int | None = None,
    ):
        self.ctx = ctx
        self.respect_foreground = respect_foreground
        self.min_battery_level = min_battery_level

    async def run(self) -> CycleSummary:
        with get_tracer().start_as_current_span("outbox.cycle") as span:
            summary = await self._run()
            span.set_attribute("outbox.ok", summary.ok)
            span.set_attribute("outbox.success_count", summary.success_count)
            span.set_attribute("outbox.failure_count", summary.failure_count)
            if summary.skipped:
                span.set_attribute("outbox.skipped", summary.skipped)
            return summary

    async def _run(self) -> CycleSummary:
        config = self.ctx.config
        log.info("sync cycle starting (%d queues)", len(config.registry))

        chain = build_guard_chain(
            self.ctx,
            respect_foreground=self.respect_foreground,
            min_battery_level=self.min_battery_level,
        )
        skip = await chain.run()
        if skip is not None:
            return CycleSummary(skipped=skip.guard)

        try:
            token = await self._acquire_token()
        except AuthenticationError as e:
            log.error("sync cycle aborted: %s", e)
            return CycleSummary(ok=False, error=user_message(e))

        self._call_hook("on_sync_start", config.on_sync_start)

        outcomes: list[DeliveryOutcome] = []
        interrupted = False
        transport = self.ctx.transport_factory()
        try:
            for queue in config.registry:
                engine = DeliveryEngine(self.ctx, queue, transport, check_foreground=self.respect_foreground)
                try:
                    outcomes.extend(await engine.run(token))
                except SyncInterrupted as e:
                    log.warning("sync interrupted: %s", e)
                    outcomes.extend(e.outcomes)
                    interrupted = True
                    break
                except QueueAborted as e:
                    log.exception("queue %s aborted after %d outcomes; continuing with next queue", queue.queue_name, len(e.outcomes))
                    outcomes.extend(e.outcomes)
                except Exception:
                    # One queue's failure (e.g. the store) never aborts its siblings.
                    log.exception("queue %s aborted; continuing with next queue", queue.queue_name)
        finally:
            await transport.aclose()

        summary = CycleSummary(
            outcomes=tuple(outcomes),
            completed_at=datetime.now(timezone.utc),
            interrupted=interrupted,
        )
        if interrupted:
            # No completion callback for a cycle that did not complete.
            log.info("sync cycle interrupted: %d synced, %d failed", summary.success_count, summary.failure_count)
            return summary

        self._call_hook("on_sync_complete", config.on_sync_complete, summary.success_count, summary.failure_count)
        log.info("sync cycle complete: %d synced, %d failed", summary.success_count, summary.failure_count)
        return summary

    async def _acquire_token(self) -> str:
        token = await self.ctx.config.token_provider()
        if not token:
            raise AuthenticationError("Could not obtain a valid auth token")
        return token

    def _call_hook(self, name: str, hook: Callable[..., Any] | None, *args: Any) -> None:
        if hook is None:
            return
        try:
            hook(*args)
        except Exception:
            # Deliveries are already committed; an app callback never fails the cycle.
            log.exception("%s hook failed", name)
