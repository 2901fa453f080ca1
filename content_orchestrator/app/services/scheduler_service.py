"""
Publish scheduler service: content-side scheduling, startup reconciliation and system jobs.
System jobs (cron from settings):
- system:process-scheduled-content: publish every SCHEDULED item whose time has passed (catch-up sweep).
- system:refresh-integration-tokens: refresh integration credentials expiring within 24h.
- system:cleanup-sessions: delete expired user sessions.
ENV: SCHEDULER_ENABLED, SCHEDULER_TIMEZONE, SWEEP_CRON, TOKEN_REFRESH_CRON, SESSION_CLEANUP_CRON, PUBLISH_MAX_ATTEMPTS.
"""
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Protocol
from uuid import UUID

from app.clock import Clock, SystemClock
from app.config import Settings
from app.errors import InvalidScheduleError, InvalidStateError, NotFoundError, PublishExecutionError
from app.logging_config import get_logger
from app.scheduling import Cron, Scheduler, system_job_id
from app.schemas.content import ContentRecord, ContentStatus
from app.services.audit_service import ACTOR_SYSTEM
from app.services.content_lifecycle import ContentLifecycle
from app.services.recurring_job_service import RecurringJobManager
from app.store.base import ContentStore

logger = get_logger(__name__)

SWEEP_JOB = system_job_id("process-scheduled-content")
TOKEN_REFRESH_JOB = system_job_id("refresh-integration-tokens")
SESSION_CLEANUP_JOB = system_job_id("cleanup-sessions")

TOKEN_REFRESH_WINDOW = timedelta(hours=24)

SWEEP_FAILED = "failed"
SWEEP_SKIPPED = "skipped"


class IntegrationRefresher(Protocol):
    async def refresh_expiring(self, before: datetime) -> int:
        """Refresh credentials expiring before `before`; return how many were refreshed."""
        ...


@dataclass
class SweepItem:
    content_id: UUID
    outcome: str  # published | noop | failed | skipped
    error: Optional[str] = None


@dataclass
class SweepResult:
    ran_at: datetime
    items: List[SweepItem] = field(default_factory=list)

    def count(self, outcome: str) -> int:
        return sum(1 for i in self.items if i.outcome == outcome)


@dataclass
class ReconcileResult:
    content_jobs: int = 0
    recurring_jobs: int = 0


class PublishSchedulerService:
    def __init__(
        self,
        store: ContentStore,
        lifecycle: ContentLifecycle,
        recurring: RecurringJobManager,
        scheduler: Scheduler,
        settings: Settings,
        clock: Optional[Clock] = None,
        token_refresher: Optional[IntegrationRefresher] = None,
    ) -> None:
        self._store = store
        self._lifecycle = lifecycle
        self._recurring = recurring
        self._scheduler = scheduler
        self._settings = settings
        self._clock = clock or SystemClock()
        self._token_refresher = token_refresher
        self._started = False
        self.last_sweep_at: Optional[datetime] = None

    # --- content scheduling ---

    async def schedule_one_off(self, content_id: UUID, user_id: UUID, at: datetime) -> ContentRecord:
        return await self._lifecycle.schedule(content_id, user_id, at)

    async def cancel_one_off(self, content_id: UUID, user_id: UUID) -> ContentRecord:
        return await self._lifecycle.cancel_schedule(content_id, user_id)

    async def reschedule(self, content_id: UUID, user_id: UUID, new_at: datetime) -> ContentRecord:
        return await self._lifecycle.reschedule(content_id, user_id, new_at)

    async def list_scheduled_for_user(self, user_id: UUID, limit: int = 100) -> List[ContentRecord]:
        """Upcoming scheduled items of one owner, soonest first."""
        now = self._clock.now()
        items, _ = await self._store.list_content(owner_id=user_id, statuses=[ContentStatus.SCHEDULED], limit=limit)
        upcoming = [c for c in items if c.scheduled_for is not None and c.scheduled_for > now]
        upcoming.sort(key=lambda c: c.scheduled_for)
        return upcoming

    # --- startup ---

    async def reconcile(self) -> ReconcileResult:
        """
        Rebuild the registry from the store after a restart. Only future SCHEDULED items are
        armed; overdue ones are picked up by the next sweep.
        """
        result = ReconcileResult()
        for content in await self._store.list_scheduled_future(self._clock.now()):
            self._lifecycle.arm_publish_job(content)
            result.content_jobs += 1
        for job in await self._store.list_active_recurring_jobs():
            try:
                self._recurring.arm(job)
            except InvalidScheduleError as e:
                logger.error("scheduler.reconcile_bad_cron", job_id=str(job.id), cron=job.cron_expression, error=e.detail)
                continue
            result.recurring_jobs += 1
        logger.info("scheduler.reconciled", content_jobs=result.content_jobs, recurring_jobs=result.recurring_jobs)
        return result

    def arm_system_jobs(self) -> None:
        tz = self._settings.scheduler_timezone
        self._scheduler.schedule_job(
            SWEEP_JOB, Cron(self._settings.sweep_cron, tz), self.sweep,
            description="Publish overdue scheduled content",
        )
        self._scheduler.schedule_job(
            TOKEN_REFRESH_JOB, Cron(self._settings.token_refresh_cron, tz), self.refresh_integration_tokens,
            description="Refresh expiring integration tokens",
        )
        self._scheduler.schedule_job(
            SESSION_CLEANUP_JOB, Cron(self._settings.session_cleanup_cron, tz), self.cleanup_sessions,
            description="Delete expired sessions",
        )

    async def start(self) -> None:
        """Called from the app lifespan. Idempotent."""
        if self._started:
            return
        if not self._settings.scheduler_enabled:
            logger.info("scheduler.disabled")
            return
        self.arm_system_jobs()
        await self.reconcile()
        self._started = True
        logger.info("scheduler.started", jobs=self._scheduler.registry.ids())

    async def stop(self) -> None:
        await self._scheduler.shutdown()
        self._started = False
        logger.info("scheduler.stopped")

    # --- system jobs ---

    async def sweep(self) -> SweepResult:
        """Publish every overdue SCHEDULED item. One failure never stops the batch."""
        now = self._clock.now()
        self.last_sweep_at = now
        result = SweepResult(ran_at=now)
        due = await self._store.list_scheduled_due(now)
        max_attempts = self._settings.publish_max_attempts
        for content in due:
            if content.publish_attempts >= max_attempts:
                result.items.append(SweepItem(content.id, SWEEP_SKIPPED, error="max_attempts_reached"))
                continue
            try:
                outcome = await self._lifecycle.publish(content.id, actor=ACTOR_SYSTEM)
                result.items.append(SweepItem(content.id, outcome.outcome))
            except PublishExecutionError as e:
                result.items.append(SweepItem(content.id, SWEEP_FAILED, error=e.detail))
            except (InvalidStateError, NotFoundError) as e:
                # Changed or removed since the due query.
                result.items.append(SweepItem(content.id, SWEEP_SKIPPED, error=e.code))
            except Exception as e:
                logger.warning("scheduler.sweep_item_error", content_id=str(content.id), error=str(e))
                result.items.append(SweepItem(content.id, SWEEP_FAILED, error=str(e) or type(e).__name__))
        logger.info(
            "scheduler.sweep_done",
            due=len(due),
            published=result.count("published"),
            failed=result.count(SWEEP_FAILED),
            skipped=result.count(SWEEP_SKIPPED),
        )
        return result

    async def refresh_integration_tokens(self) -> int:
        if self._token_refresher is None:
            logger.info("scheduler.token_refresh_skipped", reason="no_refresher")
            return 0
        refreshed = await self._token_refresher.refresh_expiring(self._clock.now() + TOKEN_REFRESH_WINDOW)
        logger.info("scheduler.tokens_refreshed", count=refreshed)
        return refreshed

    async def cleanup_sessions(self) -> int:
        deleted = await self._store.delete_expired_sessions(self._clock.now())
        logger.info("scheduler.sessions_cleaned", count=deleted)
        return deleted

    # --- status ---

    async def status(self) -> Dict[str, Any]:
        """enabled, armed jobs with next run times, last sweep, pending (overdue) count."""
        due = await self._store.list_scheduled_due(self._clock.now())
        return {
            "enabled": self._settings.scheduler_enabled,
            "started": self._started,
            "jobs": self._scheduler.jobs(),
            "last_sweep_at": self.last_sweep_at,
            "pending_count": len(due),
        }
