import pytest
import pytest_asyncio

from fakes import BASE_URL, FakeBattery, FakeConnectivity, FakeTransport, RecordingNotifier, static_token
from outbox.services.context import SyncConfig, SyncContext
from outbox.services.queue_store import QueueStore


@pytest.fixture
def database_url(tmp_path) -> str:
    return f"sqlite+aiosqlite:///{tmp_path / 'outbox.db'}"


@pytest_asyncio.fixture
async def store(database_url):
    s = QueueStore(database_url)
    await s.initialize()
    try:
        yield s
    finally:
        await s.dispose()


@pytest.fixture
def transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def make_config(database_url):
    def _make(queues, **overrides) -> SyncConfig:
        fields = dict(
            base_url=BASE_URL,
            token_provider=static_token(),
            queues=queues,
            database_url=database_url,
            min_battery_level=0,
            skip_sync_when_foreground=True,
            show_sync_notifications=True,
            foreground_stale_after=900,
        )
        fields.update(overrides)
        return SyncConfig(**fields)
    return _make


@pytest.fixture
def make_context(store, transport, notifier, make_config):
    """
    Context sharing the test's store. Device providers default to
    "full battery, online"; pass battery=/connectivity= to override.
    """
    def _make(queues, *, battery=None, connectivity=None, **overrides) -> SyncContext:
        return SyncContext.create(
            make_config(queues, **overrides),
            store=store,
            battery=battery or FakeBattery(),
            connectivity=connectivity or FakeConnectivity(),
            notifier=notifier,
            transport_factory=lambda: transport,
        )
    return _make
