"""
Device collaborators: battery, connectivity and notifications.

Each is a small protocol so tests (and embedding apps) can pass their own.
The defaults read the local machine: psutil for the battery, an HTTP probe
against the API host for connectivity, and the log for notifications.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Protocol, runtime_checkable

import httpx
import psutil


log = logging.getLogger(__name__)


@dataclass(frozen=True)
class BatteryState:
    level: int | None  # percent; None when the machine has no battery
    charging: bool


@runtime_checkable
class BatteryProvider(Protocol):
    async def read(self) -> BatteryState:
        ...


@runtime_checkable
class ConnectivityProvider(Protocol):
    async def is_online(self) -> bool:
        ...


@runtime_checkable
class Notifier(Protocol):
    async def show(self, title: str, body: str) -> None:
        ...


class SystemBatteryProvider:
    async def read(self) -> BatteryState:
        bat = psutil.sensors_battery() if hasattr(psutil, "sensors_battery") else None
        if bat is None:
            return BatteryState(level=None, charging=True)
        # "full" reports as plugged in
        return BatteryState(level=int(bat.percent), charging=bool(bat.power_plugged))


class HttpConnectivityProbe:
    """
    Online when the API host answers at all (any status code).
    Only the host is contacted; no credentials are sent.
    """

    def __init__(self, probe_url: str, *, timeout_seconds: float = 5.0):
        self.probe_url = probe_url
        self._timeout = httpx.Timeout(timeout_seconds)

    async def is_online(self) -> bool:
        try:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                await client.head(self.probe_url)
        except httpx.RequestError as e:
            log.info("connectivity probe failed url=%s error=%s", self.probe_url, type(e).__name__)
            return False
        return True


class LogNotifier:
    async def show(self, title: str, body: str) -> None:
        log.info("notification: %s | %s", title, body.replace("\n", " | "))


VpnCheck = Callable[[], Awaitable[bool]]


class ConnectivityChecker:
    """Internet (and, when configured, VPN) must be available before a cycle."""

    def __init__(self, provider: ConnectivityProvider, *, check_vpn: VpnCheck | None = None):
        self.provider = provider
        self.check_vpn = check_vpn

    async def is_ready(self) -> bool:
        if not await self.provider.is_online():
            log.info("no internet connection detected")
            return False

        if self.check_vpn is not None and not await self.check_vpn():
            log.info("VPN is not connected")
            return False

        return True


async def show_sync_summary(notifier: Notifier, *, queue_name: str, success_count: int, failure_count: int) -> None:
    body = f"{success_count} synced successfully"
    if failure_count > 0:
        body += f"\n{failure_count} failed"
    await notifier.show(f"{queue_name} Sync Summary", body)
