"""Business logic services."""
from app.services.content_generator import ContentGenerator, GeneratedContent, OpenAIContentGenerator
from app.services.content_lifecycle import ContentLifecycle, ContentPage, PublishOutcome
from app.services.orchestrator import Orchestrator, build_orchestrator
from app.services.publish_executor import FacebookPublishExecutor, PublishExecutor
from app.services.recurring_job_service import RecurringJobManager
from app.services.scheduler_service import IntegrationRefresher, PublishSchedulerService, SweepItem, SweepResult

__all__ = [
    "ContentGenerator",
    "ContentLifecycle",
    "ContentPage",
    "FacebookPublishExecutor",
    "GeneratedContent",
    "IntegrationRefresher",
    "OpenAIContentGenerator",
    "Orchestrator",
    "PublishExecutor",
    "PublishOutcome",
    "PublishSchedulerService",
    "RecurringJobManager",
    "SweepItem",
    "SweepResult",
    "build_orchestrator",
]
