from fastapi import APIRouter

from outbox.api.v1.endpoints.health import router as health_router
from outbox.api.v1.endpoints.queues import router as queues_router


router = APIRouter(prefix="/v1")
router.include_router(health_router, tags=["health"])
router.include_router(queues_router, tags=["queues"])
