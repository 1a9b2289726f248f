"""
Pre-flight guards. Each one either lets the cycle continue or short-circuits
it as a benign skip; the chain stops at the first skip.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Protocol, Sequence

from outbox.services.context import SyncContext


log = logging.getLogger(__name__)


@dataclass(frozen=True)
class GuardSkip:
    guard: str
    reason: str


class Guard(Protocol):
    name: str

    async def check(self) -> GuardSkip | None:
        ...


class ForegroundGuard:
    name = "foreground"

    def __init__(self, ctx: SyncContext):
        self.ctx = ctx

    async def check(self) -> GuardSkip | None:
        if await self.ctx.foreground.is_foreground():
            return GuardSkip(self.name, "app in foreground")
        return None


class BatteryGuard:
    name = "battery"

    def __init__(self, ctx: SyncContext, *, min_level: int):
        self.ctx = ctx
        self.min_level = min_level

    async def check(self) -> GuardSkip | None:
        state = await self.ctx.battery.read()
        if state.level is None or state.charging:
            return None
        if state.level < self.min_level:
            return GuardSkip(self.name, f"battery at {state.level}% < {self.min_level}%")
        return None


class PendingDataGuard:
    name = "pending_data"

    def __init__(self, ctx: SyncContext):
        self.ctx = ctx

    async def check(self) -> GuardSkip | None:
        if not await self.ctx.store.has_pending(self.ctx.config.queue_names):
            return GuardSkip(self.name, "no pending data")
        return None


class ConnectivityGuard:
    name = "connectivity"

    def __init__(self, ctx: SyncContext):
        self.ctx = ctx

    async def check(self) -> GuardSkip | None:
        if await self.ctx.connectivity.is_ready():
            return None

        if self.ctx.config.show_sync_notifications:
            try:
                await self.ctx.notifier.show("Sync Skipped", "No internet connection, will retry automatically.")
            except Exception:
                log.exception("notification failed (connectivity skip)")
        return GuardSkip(self.name, "offline")


class GuardChain:
    def __init__(self, guards: Sequence[Guard]):
        self.guards = list(guards)

    async def run(self) -> GuardSkip | None:
        for guard in self.guards:
            skip = await guard.check()
            if skip is not None:
                log.info("cycle skipped by %s guard: %s", skip.guard, skip.reason)
                return skip
        return None


def build_guard_chain(
    ctx: SyncContext,
    *,
    respect_foreground: bool = True,
    min_battery_level: int | None = None,
) -> GuardChain:
    config = ctx.config
    threshold = config.min_battery_level if min_battery_level is None else min_battery_level

    guards: list[Guard] = []
    if respect_foreground and config.skip_sync_when_foreground:
        guards.append(ForegroundGuard(ctx))
    if threshold > 0:
        guards.append(BatteryGuard(ctx, min_level=threshold))
    guards.append(PendingDataGuard(ctx))
    guards.append(ConnectivityGuard(ctx))
    return GuardChain(guards)
