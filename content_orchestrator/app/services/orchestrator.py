"""
Wiring: one Orchestrator per process holds the store, the scheduler and the services on top.
build_orchestrator() picks the store from STORE_BACKEND and the production collaborators
(Facebook executor, OpenAI generator) unless others are passed in.
"""
from dataclasses import dataclass
from typing import Optional, Tuple

from sqlalchemy.ext.asyncio import AsyncEngine

from app.clock import Clock, SystemClock
from app.config import Settings, get_settings
from app.db import make_engine, make_session_factory
from app.logging_config import get_logger
from app.scheduling import Scheduler
from app.services.content_generator import ContentGenerator, OpenAIContentGenerator
from app.services.content_lifecycle import ContentLifecycle
from app.services.publish_executor import FacebookPublishExecutor, PublishExecutor
from app.services.recurring_job_service import RecurringJobManager
from app.services.scheduler_service import IntegrationRefresher, PublishSchedulerService
from app.store import ContentStore, InMemoryContentStore, SqlContentStore

logger = get_logger(__name__)

STORE_MEMORY = "memory"
STORE_SQL = "sql"


@dataclass
class Orchestrator:
    settings: Settings
    store: ContentStore
    clock: Clock
    scheduler: Scheduler
    lifecycle: ContentLifecycle
    recurring: RecurringJobManager
    scheduler_service: PublishSchedulerService
    engine: Optional[AsyncEngine] = None

    async def start(self) -> None:
        await self.scheduler_service.start()

    async def stop(self) -> None:
        await self.scheduler_service.stop()
        if self.engine is not None:
            await self.engine.dispose()


def build_store(settings: Settings) -> Tuple[ContentStore, Optional[AsyncEngine]]:
    if settings.store_backend == STORE_MEMORY:
        return InMemoryContentStore(), None
    if settings.store_backend != STORE_SQL:
        raise ValueError(f"unknown STORE_BACKEND: {settings.store_backend}")
    engine = make_engine(settings.database_url)
    return SqlContentStore(make_session_factory(engine)), engine


def build_orchestrator(
    settings: Optional[Settings] = None,
    store: Optional[ContentStore] = None,
    executor: Optional[PublishExecutor] = None,
    generator: Optional[ContentGenerator] = None,
    token_refresher: Optional[IntegrationRefresher] = None,
    clock: Optional[Clock] = None,
) -> Orchestrator:
    settings = settings or get_settings()
    clock = clock or SystemClock()
    engine: Optional[AsyncEngine] = None
    if store is None:
        store, engine = build_store(settings)

    scheduler = Scheduler(
        clock=clock,
        job_timeout_seconds=settings.job_timeout_seconds,
        enabled=settings.scheduler_enabled,
    )
    lifecycle = ContentLifecycle(
        store,
        executor or FacebookPublishExecutor(settings),
        clock=clock,
        scheduler=scheduler,
        publish_timeout_seconds=settings.publish_timeout_seconds,
        claim_ttl_seconds=settings.publish_claim_ttl_seconds,
    )
    recurring = RecurringJobManager(
        store,
        lifecycle,
        generator or OpenAIContentGenerator(settings),
        scheduler,
        clock=clock,
        timezone=settings.scheduler_timezone,
    )
    scheduler_service = PublishSchedulerService(
        store,
        lifecycle,
        recurring,
        scheduler,
        settings,
        clock=clock,
        token_refresher=token_refresher,
    )
    logger.info("orchestrator.built", store_backend=type(store).__name__, scheduler_enabled=settings.scheduler_enabled)
    return Orchestrator(
        settings=settings,
        store=store,
        clock=clock,
        scheduler=scheduler,
        lifecycle=lifecycle,
        recurring=recurring,
        scheduler_service=scheduler_service,
        engine=engine,
    )
