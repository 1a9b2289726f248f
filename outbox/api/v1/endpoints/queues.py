from fastapi import APIRouter, Depends, HTTPException, Query, Request

from outbox.core.errors import ConfigurationError
from outbox.schemas.entry import ClearedOut, CycleSummaryOut, PendingCountOut, QueueEntryOut
from outbox.services.admin_auth import require_admin
from outbox.services.client import OutboxClient

router = APIRouter(dependencies=[Depends(require_admin)])


def get_client(request: Request) -> OutboxClient:
    client = getattr(request.app.state, "outbox_client", None)
    if client is None:
        raise HTTPException(status_code=503, detail="Outbox not configured")
    return client


@router.get("/queues/{queue_name}/entries", response_model=list[QueueEntryOut])
async def list_entries(
    queue_name: str,
    pending: bool = Query(default=False),
    client: OutboxClient = Depends(get_client),
) -> list[QueueEntryOut]:
    try:
        if pending:
            entries = await client.list_pending(queue_name)
        else:
            entries = await client.list_all(queue_name)
    except ConfigurationError:
        raise HTTPException(status_code=404, detail="Queue not found")
    return [QueueEntryOut.from_entry(e) for e in entries]


@router.delete("/queues/{queue_name}/entries/{local_id}", status_code=204)
async def remove_entry(
    queue_name: str,
    local_id: str,
    client: OutboxClient = Depends(get_client),
) -> None:
    try:
        await client.remove(queue_name, local_id)
    except ConfigurationError:
        raise HTTPException(status_code=404, detail="Queue not found")


@router.get("/pending-count", response_model=PendingCountOut)
async def pending_count(client: OutboxClient = Depends(get_client)) -> PendingCountOut:
    return PendingCountOut(pending=await client.pending_count())


@router.post("/sync", response_model=CycleSummaryOut)
async def trigger_sync(client: OutboxClient = Depends(get_client)) -> CycleSummaryOut:
    summary = await client.trigger_sync_now()
    return CycleSummaryOut.from_summary(summary)


@router.delete("/entries", response_model=ClearedOut)
async def clear_all(client: OutboxClient = Depends(get_client)) -> ClearedOut:
    return ClearedOut(removed=await client.clear_all())


@router.post("/schedule", status_code=204)
async def start_schedule(client: OutboxClient = Depends(get_client)) -> None:
    try:
        await client.start_scheduled_sync()
    except ConfigurationError:
        raise HTTPException(status_code=409, detail="No scheduler configured")


@router.delete("/schedule", status_code=204)
async def stop_schedule(client: OutboxClient = Depends(get_client)) -> None:
    try:
        await client.stop_scheduled_sync()
    except ConfigurationError:
        raise HTTPException(status_code=409, detail="No scheduler configured")
