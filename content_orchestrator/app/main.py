"""FastAPI application entrypoint."""
from contextlib import asynccontextmanager
from typing import Dict, Optional, Type

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from app import __version__
from app.errors import (
    GenerationError,
    InvalidScheduleError,
    InvalidStateError,
    NoPendingApprovalError,
    NotFoundError,
    OrchestratorError,
    PublishExecutionError,
)
from app.logging_config import configure_logging, get_logger
from app.middleware.correlation_id import CorrelationIdMiddleware
from app.routers import content_router, health_router, recurring_jobs_router, scheduler_router
from app.schemas.common import ErrorResponse
from app.services.orchestrator import Orchestrator, build_orchestrator

logger = get_logger(__name__)

ERROR_STATUS: Dict[Type[OrchestratorError], int] = {
    NotFoundError: status.HTTP_404_NOT_FOUND,
    InvalidStateError: status.HTTP_409_CONFLICT,
    NoPendingApprovalError: status.HTTP_409_CONFLICT,
    InvalidScheduleError: status.HTTP_400_BAD_REQUEST,
    PublishExecutionError: status.HTTP_502_BAD_GATEWAY,
    GenerationError: status.HTTP_502_BAD_GATEWAY,
}


def status_for(exc: OrchestratorError) -> int:
    for cls in type(exc).__mro__:
        if cls in ERROR_STATUS:
            return ERROR_STATUS[cls]
    return status.HTTP_400_BAD_REQUEST


async def orchestrator_error_handler(request: Request, exc: OrchestratorError) -> JSONResponse:
    code = status_for(exc)
    if code >= 500:
        logger.warning("api.upstream_error", path=request.url.path, code=exc.code, detail=exc.detail)
    body = ErrorResponse(detail=exc.detail, code=exc.code, extra=exc.extra or None)
    return JSONResponse(status_code=code, content=body.model_dump(mode="json"))


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup/shutdown: logging, orchestrator (reconcile + system jobs), teardown."""
    configure_logging()
    if getattr(app.state, "orchestrator", None) is None:
        app.state.orchestrator = build_orchestrator()
    logger.info("app_started", version=__version__)
    await app.state.orchestrator.start()
    yield
    await app.state.orchestrator.stop()
    logger.info("app_shutdown")


def create_app(orchestrator: Optional[Orchestrator] = None) -> FastAPI:
    """Pass an orchestrator to run against custom collaborators (tests); otherwise one is built at startup."""
    app = FastAPI(
        title="Content Orchestrator",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.orchestrator = orchestrator
    app.add_middleware(CorrelationIdMiddleware)
    app.add_exception_handler(OrchestratorError, orchestrator_error_handler)

    app.include_router(health_router)
    app.include_router(content_router)
    app.include_router(recurring_jobs_router)
    app.include_router(scheduler_router)

    @app.get("/")
    def root() -> dict[str, str]:
        """Root endpoint: app name and version."""
        return {"name": "content_orchestrator", "version": __version__}

    return app


app = create_app()
