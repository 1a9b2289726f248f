"""
Background entry point.

Runs inside a freshly started worker process. Nothing from the registering
process is available here: the scheduler hands over a task id only, and the
configuration is rebuilt by a factory called in this process.
"""
from __future__ import annotations

import importlib
import logging
from typing import Any, Callable, Mapping

from outbox.core.errors import ConfigurationError
from outbox.services.context import SyncConfig, SyncContext
from outbox.services.orchestrator import SyncOrchestrator
from outbox.services.scheduler import ScheduleConstraints, read_registration


log = logging.getLogger(__name__)

# Threshold used when the schedule asks for "battery not low"
LOW_BATTERY_LEVEL = 15

ConfigFactory = Callable[[], SyncConfig]
ContextFactory = Callable[[SyncConfig], SyncContext]


def load_config_factory(path: str) -> ConfigFactory:
    """Resolve "package.module:function"."""
    module_name, _, attr = (path or "").partition(":")
    if not module_name or not attr:
        raise ConfigurationError(f"config_factory must look like 'package.module:function', got {path!r}")

    module = importlib.import_module(module_name)
    factory = getattr(module, attr, None)
    if not callable(factory):
        raise ConfigurationError(f"config_factory {path!r} is not callable")
    return factory


async def run_background_sync(
    task_id: str,
    config_factory: ConfigFactory,
    *,
    constraints: Mapping[str, Any] | None = None,
    context_factory: ContextFactory = SyncContext.create,
) -> bool:
    """
    Returns the scheduler signal: True -> reschedule normally, False -> retry sooner.
    Never raises.
    """
    log.info("background sync task %s starting", task_id)
    try:
        config = config_factory()
        ctx = context_factory(config)
        try:
            await ctx.initialize()

            registration = await read_registration(ctx.store, task_id)
            if registration is None:
                log.info("background sync task %s is not registered; skipping", task_id)
                return True
            if not registration.get("active"):
                log.info("background sync task %s was cancelled; skipping", task_id)
                return True

            if constraints is None:
                constraints = registration.get("constraints")
            resolved = ScheduleConstraints(**dict(constraints or {}))

            min_battery_level = None
            if resolved.requires_battery_not_low:
                min_battery_level = max(config.min_battery_level, LOW_BATTERY_LEVEL)

            summary = await SyncOrchestrator(ctx, min_battery_level=min_battery_level).run()
            return summary.ok
        finally:
            await ctx.aclose()
    except Exception:
        log.exception("background sync task %s crashed", task_id)
        return False
