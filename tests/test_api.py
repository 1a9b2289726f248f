import httpx
import pytest
from pydantic import SecretStr

from fakes import make_entry, ok
from outbox.core.config import settings
from outbox.main import create_app
from outbox.queues.base import QueueConfig, SyncStatus
from outbox.services.client import OutboxClient


ADMIN = {"X-Admin-Key": "test-admin"}
ORDERS = QueueConfig("orders", "/orders", "POST", extract_server_id=lambda body: body.get("id"))


@pytest.fixture
def api(make_context, monkeypatch):
    monkeypatch.setattr(settings, "admin_api_key", SecretStr("test-admin"))
    client = OutboxClient(make_context([ORDERS]))
    app = create_app(client)
    # ASGITransport does not run the lifespan
    app.state.outbox_client = client
    return httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test")


@pytest.mark.asyncio
async def test_health(api):
    async with api as ac:
        r = await ac.get("/v1/health")
        assert r.status_code == 200
        assert r.json()["status"] == "ok"


@pytest.mark.asyncio
async def test_admin_key_is_required(api):
    async with api as ac:
        assert (await ac.get("/v1/pending-count")).status_code == 401
        assert (await ac.get("/v1/pending-count", headers={"X-Admin-Key": "wrong"})).status_code == 403


@pytest.mark.asyncio
async def test_list_and_remove_entries(api, store):
    pending = make_entry("orders")
    dead = make_entry("orders", status=SyncStatus.DEAD, retry_count=3, error_message="Cannot reach server")
    await store.enqueue(pending)
    await store.enqueue(dead)

    async with api as ac:
        r = await ac.get("/v1/queues/orders/entries", headers=ADMIN)
        assert r.status_code == 200
        by_id = {e["local_id"]: e for e in r.json()}
        assert by_id[dead.local_id]["status"] == "dead"
        assert by_id[dead.local_id]["error_message"] == "Cannot reach server"

        r = await ac.get("/v1/queues/orders/entries", params={"pending": "true"}, headers=ADMIN)
        assert [e["local_id"] for e in r.json()] == [pending.local_id]

        r = await ac.delete(f"/v1/queues/orders/entries/{dead.local_id}", headers=ADMIN)
        assert r.status_code == 204

        r = await ac.get("/v1/queues/unknown/entries", headers=ADMIN)
        assert r.status_code == 404

    assert await store.get("orders", dead.local_id) is None


@pytest.mark.asyncio
async def test_sync_count_and_clear(api, store, transport):
    await store.enqueue(make_entry("orders", created_at="2026-01-01T00:00:01+00:00"))
    await store.enqueue(make_entry("orders", created_at="2026-01-01T00:00:02+00:00"))
    transport.responses = [ok(201, {"id": "42"}), ok(500)]

    async with api as ac:
        r = await ac.get("/v1/pending-count", headers=ADMIN)
        assert r.json() == {"pending": 2}

        r = await ac.post("/v1/sync", headers=ADMIN)
        body = r.json()
        assert r.status_code == 200
        assert body["ok"] is True
        assert body["success_count"] == 1 and body["failure_count"] == 1
        assert body["outcomes"][0]["server_id"] == "42"
        assert body["outcomes"][1]["error_message"] == "Internal server error, please try again later"

        r = await ac.get("/v1/pending-count", headers=ADMIN)
        assert r.json() == {"pending": 1}

        r = await ac.delete("/v1/entries", headers=ADMIN)
        assert r.json() == {"removed": 1}


@pytest.mark.asyncio
async def test_unconfigured_app_answers_503(monkeypatch):
    monkeypatch.setattr(settings, "admin_api_key", SecretStr("test-admin"))
    app = create_app()
    async with httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test") as ac:
        r = await ac.get("/v1/pending-count", headers=ADMIN)
        assert r.status_code == 503


@pytest.mark.asyncio
async def test_schedule_start_and_stop(make_context, monkeypatch):
    monkeypatch.setattr(settings, "admin_api_key", SecretStr("test-admin"))
    calls = []

    class RecordingScheduler:
        async def register(self, task_id, interval, constraints):
            calls.append(("register", task_id))

        async def cancel(self, task_id):
            calls.append(("cancel", task_id))

    app = create_app()
    app.state.outbox_client = OutboxClient(make_context([ORDERS], worker_name="shop_sync"), scheduler=RecordingScheduler())
    async with httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test") as ac:
        assert (await ac.post("/v1/schedule", headers=ADMIN)).status_code == 204
        assert (await ac.delete("/v1/schedule", headers=ADMIN)).status_code == 204

    assert calls == [("register", "shop_sync"), ("cancel", "shop_sync")]


@pytest.mark.asyncio
async def test_schedule_without_scheduler_conflicts(api):
    async with api as ac:
        assert (await ac.post("/v1/schedule", headers=ADMIN)).status_code == 409
