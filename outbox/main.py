import contextlib
import logging
from typing import AsyncIterator

from fastapi import FastAPI

from outbox.api.v1.router import router as v1_router
from outbox.core.config import settings
from outbox.core.telemetry import setup_telemetry
from outbox.services.client import OutboxClient
from outbox.services.context import SyncContext
from outbox.services.entry_point import load_config_factory
from outbox.services.scheduler import CeleryBeatScheduler
from worker.celery_app import celery


log = logging.getLogger(__name__)


async def open_configured_client() -> OutboxClient:
    """Client built from `settings.config_factory`, scheduling through Celery beat."""
    ctx = SyncContext.create(load_config_factory(settings.config_factory)())
    await ctx.initialize()
    scheduler = CeleryBeatScheduler(celery, ctx.store, debug=settings.debug_scheduling)
    return OutboxClient(ctx, scheduler=scheduler)


def create_app(client: OutboxClient | None = None) -> FastAPI:
    """
    Inspection API. Without an explicit client, one is built at startup from
    `settings.config_factory`, the same factory the background worker uses.
    """

    @contextlib.asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        owned = None
        if client is not None:
            app.state.outbox_client = client
        elif settings.config_factory:
            owned = await open_configured_client()
            app.state.outbox_client = owned
        else:
            log.warning("no config_factory set; queue endpoints will answer 503")

        current = getattr(app.state, "outbox_client", None)
        if current is not None:
            setup_telemetry(engine=current.ctx.store.engine)
        try:
            yield
        finally:
            if owned is not None:
                await owned.aclose()

    app = FastAPI(title="Outbox API", version="0.1.0", lifespan=lifespan)
    setup_telemetry(app=app)
    app.include_router(v1_router)
    return app
