"""API routers."""
from app.routers.content_router import router as content_router
from app.routers.health_router import router as health_router
from app.routers.recurring_jobs_router import router as recurring_jobs_router
from app.routers.scheduler_router import router as scheduler_router

__all__ = [
    "content_router",
    "health_router",
    "recurring_jobs_router",
    "scheduler_router",
]
