from __future__ import annotations

from dataclasses import dataclass, field
from datetime import timedelta
from typing import Awaitable, Callable, Mapping, Sequence

from outbox.core.config import settings
from outbox.queues.base import QueueConfig
from outbox.queues.registry import QueueRegistry
from outbox.services.devices import (
    BatteryProvider,
    ConnectivityChecker,
    ConnectivityProvider,
    HttpConnectivityProbe,
    LogNotifier,
    Notifier,
    SystemBatteryProvider,
    VpnCheck,
)
from outbox.services.http_client import SyncHttpClient, Transport
from outbox.services.lifecycle import ForegroundSignal
from outbox.services.queue_store import QueueStore


TokenProvider = Callable[[], Awaitable[str | None]]


@dataclass(frozen=True)
class SyncConfig:
    """
    Runtime registration for one app. Built by a plain factory function so a
    background worker can rebuild it without any state from the caller.
    """

    base_url: str
    token_provider: TokenProvider
    queues: Sequence[QueueConfig]

    default_headers: Mapping[str, str] = field(default_factory=dict)
    request_timeout: float = field(default_factory=lambda: settings.request_timeout_seconds)
    sync_interval: timedelta = field(default_factory=lambda: timedelta(seconds=settings.sync_interval_seconds))
    min_battery_level: int = field(default_factory=lambda: settings.min_battery_level)  # 0 disables
    skip_sync_when_foreground: bool = field(default_factory=lambda: settings.skip_sync_when_foreground)
    show_sync_notifications: bool = field(default_factory=lambda: settings.show_sync_notifications)
    worker_name: str = field(default_factory=lambda: settings.worker_name)
    foreground_stale_after: float | None = field(default_factory=lambda: settings.foreground_stale_after_seconds)
    database_url: str = field(default_factory=lambda: settings.database_url)

    check_vpn: VpnCheck | None = None
    on_sync_start: Callable[[], None] | None = None
    on_sync_complete: Callable[[int, int], None] | None = None

    registry: QueueRegistry = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "queues", tuple(self.queues))
        # raises ConfigurationError on duplicate names
        object.__setattr__(self, "registry", QueueRegistry(self.queues))

    @property
    def queue_names(self) -> list[str]:
        return self.registry.names()


@dataclass
class SyncContext:
    """Everything a cycle needs, constructed explicitly and passed down."""

    config: SyncConfig
    store: QueueStore
    foreground: ForegroundSignal
    battery: BatteryProvider
    connectivity: ConnectivityChecker
    notifier: Notifier
    transport_factory: Callable[[], Transport]

    @classmethod
    def create(
        cls,
        config: SyncConfig,
        *,
        store: QueueStore | None = None,
        battery: BatteryProvider | None = None,
        connectivity: ConnectivityProvider | None = None,
        notifier: Notifier | None = None,
        transport_factory: Callable[[], Transport] | None = None,
    ) -> "SyncContext":
        store = store or QueueStore(config.database_url)
        return cls(
            config=config,
            store=store,
            foreground=ForegroundSignal(store, stale_after=config.foreground_stale_after),
            battery=battery or SystemBatteryProvider(),
            connectivity=ConnectivityChecker(
                connectivity or HttpConnectivityProbe(config.base_url),
                check_vpn=config.check_vpn,
            ),
            notifier=notifier or LogNotifier(),
            transport_factory=transport_factory or SyncHttpClient,
        )

    async def initialize(self) -> None:
        await self.store.initialize()

    async def aclose(self) -> None:
        await self.store.dispose()
