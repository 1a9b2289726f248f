import pytest

from fakes import FakeBattery, FakeConnectivity, FakeTransport, make_entry, ok, static_token
from outbox.core.errors import TransportError
from outbox.queues.base import QueueConfig, SyncStatus
from outbox.services.orchestrator import SyncOrchestrator


ORDERS = QueueConfig("orders", "/orders", "POST", extract_server_id=lambda body: body.get("id"))
INVOICES = QueueConfig("invoices", "/invoices", "POST")


@pytest.mark.asyncio
async def test_nothing_pending_makes_no_network_calls(make_context, transport):
    connectivity = FakeConnectivity()
    ctx = make_context([ORDERS, INVOICES], connectivity=connectivity)

    summary = await SyncOrchestrator(ctx).run()

    assert summary.ok and summary.is_empty
    assert summary.skipped == "pending_data"
    assert transport.calls == []
    assert connectivity.checks == 0


@pytest.mark.asyncio
async def test_foreground_skips_the_whole_cycle(store, make_context, transport):
    ctx = make_context([ORDERS])
    entry = make_entry("orders")
    await store.enqueue(entry)
    await ctx.foreground.mark_foreground()

    summary = await SyncOrchestrator(ctx).run()

    assert summary.ok and summary.skipped == "foreground"
    assert transport.calls == []
    assert (await store.get("orders", entry.local_id)).status is SyncStatus.PENDING


@pytest.mark.asyncio
async def test_stale_foreground_mark_does_not_block(store, make_context, transport):
    ctx = make_context([ORDERS], foreground_stale_after=0)
    await store.enqueue(make_entry("orders"))
    await ctx.foreground.mark_foreground()

    summary = await SyncOrchestrator(ctx).run()
    assert summary.skipped is None
    assert summary.success_count == 1


@pytest.mark.asyncio
async def test_missing_credential_fails_the_cycle_and_leaves_entries(store, make_context, transport):
    started = []
    ctx = make_context([ORDERS], token_provider=static_token(None), on_sync_start=lambda: started.append(1))
    entry = make_entry("orders")
    await store.enqueue(entry)

    summary = await SyncOrchestrator(ctx).run()

    assert not summary.ok
    assert summary.error == "Not signed in, please log in again"
    assert transport.calls == []
    assert started == []
    assert await store.get("orders", entry.local_id) == entry


@pytest.mark.asyncio
async def test_low_battery_skips_unless_charging(store, make_context, transport):
    await store.enqueue(make_entry("orders"))

    ctx = make_context([ORDERS], battery=FakeBattery(level=10, charging=False), min_battery_level=20)
    summary = await SyncOrchestrator(ctx).run()
    assert summary.ok and summary.skipped == "battery"
    assert transport.calls == []

    ctx = make_context([ORDERS], battery=FakeBattery(level=10, charging=True), min_battery_level=20)
    summary = await SyncOrchestrator(ctx).run()
    assert summary.success_count == 1


@pytest.mark.asyncio
async def test_unknown_battery_level_does_not_block(store, make_context):
    await store.enqueue(make_entry("orders"))
    ctx = make_context([ORDERS], battery=FakeBattery(level=None, charging=False), min_battery_level=20)

    summary = await SyncOrchestrator(ctx).run()
    assert summary.skipped is None


@pytest.mark.asyncio
async def test_offline_skips_with_a_notification(store, make_context, transport, notifier):
    await store.enqueue(make_entry("orders"))
    ctx = make_context([ORDERS], connectivity=FakeConnectivity(online=False))

    summary = await SyncOrchestrator(ctx).run()

    assert summary.ok and summary.skipped == "connectivity"
    assert transport.calls == []
    assert notifier.shown == [("Sync Skipped", "No internet connection, will retry automatically.")]


@pytest.mark.asyncio
async def test_vpn_requirement_is_checked(store, make_context, transport):
    await store.enqueue(make_entry("orders"))

    async def vpn_down() -> bool:
        return False

    ctx = make_context([ORDERS], check_vpn=vpn_down)
    summary = await SyncOrchestrator(ctx).run()
    assert summary.skipped == "connectivity"
    assert transport.calls == []


@pytest.mark.asyncio
async def test_queues_drain_in_registration_order_over_one_transport(store, make_context, transport):
    await store.enqueue(make_entry("invoices"))
    await store.enqueue(make_entry("orders"))
    transport.responses = [ok(201, {"id": "1"}), ok(201)]

    completed = []
    ctx = make_context([ORDERS, INVOICES], on_sync_complete=lambda s, f: completed.append((s, f)))

    summary = await SyncOrchestrator(ctx).run()

    assert [c["endpoint"] for c in transport.calls] == ["/orders", "/invoices"]
    assert [o.queue_name for o in summary.outcomes] == ["orders", "invoices"]
    assert summary.outcomes[0].server_id == "1"
    assert completed == [(2, 0)]
    assert transport.closed
    assert await store.pending_count(["orders", "invoices"]) == 0


@pytest.mark.asyncio
async def test_per_entry_failures_still_report_ok(store, make_context, transport):
    await store.enqueue(make_entry("orders"))
    transport.responses = [TransportError("down", kind="connect")]

    summary = await SyncOrchestrator(make_context([ORDERS])).run()

    assert summary.ok
    assert summary.failure_count == 1
    assert await store.pending_count(["orders"]) == 1


@pytest.mark.asyncio
async def test_interruption_stops_later_queues(store, make_context):
    await store.enqueue(make_entry("orders"))
    untouched = make_entry("invoices")
    await store.enqueue(untouched)
    completed = []
    ctx = make_context([ORDERS, INVOICES], on_sync_complete=lambda s, f: completed.append((s, f)))

    async def user_opens_app(_call):
        await ctx.foreground.mark_foreground()

    ctx.transport_factory = lambda: FakeTransport(before=user_opens_app)
    summary = await SyncOrchestrator(ctx).run()

    assert summary.ok and summary.interrupted
    assert summary.success_count == 1
    assert completed == []
    assert await store.get("invoices", untouched.local_id) == untouched


@pytest.mark.asyncio
async def test_a_broken_queue_does_not_abort_its_siblings(store, make_context, transport, monkeypatch):
    await store.enqueue(make_entry("orders"))
    await store.enqueue(make_entry("invoices"))
    real_get_pending = store.get_pending

    async def flaky_get_pending(queue_name, max_retries):
        if queue_name == "orders":
            raise RuntimeError("disk I/O error")
        return await real_get_pending(queue_name, max_retries)

    monkeypatch.setattr(store, "get_pending", flaky_get_pending)
    summary = await SyncOrchestrator(make_context([ORDERS, INVOICES])).run()

    assert [o.queue_name for o in summary.outcomes] == ["invoices"]
    assert summary.ok


@pytest.mark.asyncio
async def test_manual_run_ignores_foreground(store, make_context, transport):
    ctx = make_context([ORDERS])
    await store.enqueue(make_entry("orders", created_at="2026-01-01T00:00:01+00:00"))
    await store.enqueue(make_entry("orders", created_at="2026-01-01T00:00:02+00:00"))
    await ctx.foreground.mark_foreground()

    summary = await SyncOrchestrator(ctx, respect_foreground=False).run()

    assert not summary.interrupted
    assert summary.success_count == 2


@pytest.mark.asyncio
async def test_aborted_queue_keeps_committed_outcomes(store, make_context, transport, monkeypatch):
    delivered = make_entry("orders", created_at="2026-01-01T00:00:01+00:00")
    stuck = make_entry("orders", created_at="2026-01-01T00:00:02+00:00")
    for e in (delivered, stuck, make_entry("invoices")):
        await store.enqueue(e)
    real_update = store.update

    async def flaky_update(entry):
        if entry.local_id == stuck.local_id:
            raise RuntimeError("disk I/O error")
        await real_update(entry)

    monkeypatch.setattr(store, "update", flaky_update)
    summary = await SyncOrchestrator(make_context([ORDERS, INVOICES])).run()

    assert summary.ok
    assert [(o.queue_name, o.local_id == delivered.local_id) for o in summary.outcomes] == [
        ("orders", True),
        ("invoices", False),
    ]
    assert summary.success_count == 2


@pytest.mark.asyncio
async def test_caller_removal_mid_cycle_does_not_drop_the_queue(store, make_context):
    a, b, c = (
        make_entry("orders", payload={"name": n}, created_at=f"2026-01-01T00:00:0{i}+00:00")
        for i, n in enumerate("abc", start=1)
    )
    for e in (a, b, c):
        await store.enqueue(e)
    ctx = make_context([ORDERS])

    async def caller_removes_b(call):
        if call["body"]["name"] == "b":
            await store.delete("orders", b.local_id)

    transport = FakeTransport([ok(201), TransportError("down", kind="connect"), ok(201)], before=caller_removes_b)
    ctx.transport_factory = lambda: transport
    summary = await SyncOrchestrator(ctx).run()

    assert len(transport.calls) == 3
    assert [o.local_id for o in summary.outcomes] == [a.local_id, c.local_id]
    assert summary.success_count == 2 and summary.failure_count == 0
    assert await store.get_all("orders") == []


@pytest.mark.asyncio
async def test_failing_cycle_hooks_do_not_fail_the_cycle(store, make_context, transport):
    entry = make_entry("orders")
    await store.enqueue(entry)

    def on_sync_start():
        raise RuntimeError("analytics down")

    def on_sync_complete(successes, failures):
        raise RuntimeError("analytics down")

    ctx = make_context([ORDERS], on_sync_start=on_sync_start, on_sync_complete=on_sync_complete)
    summary = await SyncOrchestrator(ctx).run()

    assert summary.ok
    assert summary.success_count == 1
    assert await store.get("orders", entry.local_id) is None
