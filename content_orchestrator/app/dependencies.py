"""FastAPI dependencies: services come from the Orchestrator stored on app.state."""
from fastapi import Request

from app.services.content_lifecycle import ContentLifecycle
from app.services.orchestrator import Orchestrator
from app.services.recurring_job_service import RecurringJobManager
from app.services.scheduler_service import PublishSchedulerService


def get_orchestrator(request: Request) -> Orchestrator:
    return request.app.state.orchestrator


def get_lifecycle(request: Request) -> ContentLifecycle:
    return get_orchestrator(request).lifecycle


def get_scheduler_service(request: Request) -> PublishSchedulerService:
    return get_orchestrator(request).scheduler_service


def get_recurring_manager(request: Request) -> RecurringJobManager:
    return get_orchestrator(request).recurring
