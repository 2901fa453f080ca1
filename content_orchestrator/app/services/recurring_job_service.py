"""
Recurring AI generation jobs.
Each ACTIVE job is armed as recurring:<id> on its cron expression. A run asks the content
generator for a post and stores it through the lifecycle as a DRAFT. Failures (including
timeouts) only bump error_count / last_error; the job stays armed.
"""
import asyncio
from datetime import datetime
from typing import List, Optional
from uuid import UUID, uuid4

from app.clock import Clock, SystemClock
from app.errors import InvalidStateError, NotFoundError, OrchestratorError
from app.logging_config import get_logger
from app.scheduling import Cron, Scheduler, normalize_cron, recurring_job_id
from app.schemas.content import ContentCreateRequest, ContentRecord
from app.schemas.recurring_job import GenerationParams, GenerationParamsPatch, RecurringJobRecord, RecurringJobStatus
from app.services.audit_service import ACTOR_SYSTEM, log_audit_event
from app.services.content_generator import ContentGenerator
from app.services.content_lifecycle import ContentLifecycle
from app.store.base import ContentStore

logger = get_logger(__name__)

MAX_ERROR_LENGTH = 1000


def _error_text(exc: BaseException) -> str:
    if isinstance(exc, OrchestratorError):
        text = exc.detail
    elif isinstance(exc, (TimeoutError, asyncio.TimeoutError)):
        text = "timeout"
    else:
        text = str(exc) or type(exc).__name__
    return text[:MAX_ERROR_LENGTH]


class RecurringJobManager:
    def __init__(
        self,
        store: ContentStore,
        lifecycle: ContentLifecycle,
        generator: ContentGenerator,
        scheduler: Scheduler,
        clock: Optional[Clock] = None,
        timezone: str = "UTC",
    ) -> None:
        self._store = store
        self._lifecycle = lifecycle
        self._generator = generator
        self._scheduler = scheduler
        self._clock = clock or SystemClock()
        self._timezone = timezone

    # --- arming ---

    def arm(self, job: RecurringJobRecord) -> None:
        job_id = job.id

        async def on_error(exc: BaseException) -> None:
            await self._record_failure(job_id, exc)

        self._scheduler.schedule_job(
            recurring_job_id(job_id),
            Cron(job.cron_expression, self._timezone),
            lambda: self._run(job_id),
            description=f"Recurring generation: {job.name}",
            on_error=on_error,
        )

    def disarm(self, job_id: UUID) -> bool:
        return self._scheduler.cancel_job(recurring_job_id(job_id))

    # --- reads ---

    async def _require(self, job_id: UUID, user_id: Optional[UUID] = None) -> RecurringJobRecord:
        job = await self._store.get_recurring_job(job_id)
        if job is None or (user_id is not None and job.owner_id != user_id):
            raise NotFoundError("recurring_job_not_found", job_id=str(job_id))
        return job

    async def get(self, job_id: UUID, user_id: Optional[UUID] = None) -> RecurringJobRecord:
        return await self._require(job_id, user_id)

    async def list_jobs(self, owner_id: Optional[UUID] = None) -> List[RecurringJobRecord]:
        return await self._store.list_recurring_jobs(owner_id)

    # --- mutations ---

    async def create(
        self,
        owner_id: UUID,
        name: str,
        cron_expression: str,
        generation_params: GenerationParams,
        organization_id: Optional[UUID] = None,
    ) -> RecurringJobRecord:
        """Validate the expression first: an invalid one raises InvalidScheduleError and nothing is stored."""
        expression = normalize_cron(cron_expression)
        now = self._clock.now()
        job = RecurringJobRecord(
            id=uuid4(),
            name=name,
            cron_expression=expression,
            generation_params=generation_params,
            status=RecurringJobStatus.ACTIVE,
            owner_id=owner_id,
            organization_id=organization_id,
            created_at=now,
            updated_at=now,
        )
        await self._store.save_recurring_job(job)
        self.arm(job)
        logger.info("recurring_job.created", job_id=str(job.id), cron=expression, owner_id=str(owner_id))
        return job

    async def update_status(self, job_id: UUID, user_id: UUID, status: RecurringJobStatus) -> RecurringJobRecord:
        job = await self._require(job_id, user_id)
        if job.status == RecurringJobStatus.CANCELLED and status != RecurringJobStatus.CANCELLED:
            raise InvalidStateError("recurring_job_cancelled")
        if job.status == status:
            return job
        previous = job.status
        job.status = status
        job.updated_at = self._clock.now()
        await self._store.save_recurring_job(job)
        if status == RecurringJobStatus.ACTIVE:
            self.arm(job)
        else:
            self.disarm(job_id)
        logger.info("recurring_job.status_changed", job_id=str(job_id), previous=previous.value, status=status.value)
        return job

    async def reschedule(self, job_id: UUID, user_id: UUID, cron_expression: str) -> RecurringJobRecord:
        job = await self._require(job_id, user_id)
        if job.status == RecurringJobStatus.CANCELLED:
            raise InvalidStateError("recurring_job_cancelled")
        job.cron_expression = normalize_cron(cron_expression)
        job.updated_at = self._clock.now()
        await self._store.save_recurring_job(job)
        if job.status == RecurringJobStatus.ACTIVE:
            self.arm(job)
        logger.info("recurring_job.rescheduled", job_id=str(job_id), cron=job.cron_expression)
        return job

    async def update_params(
        self,
        job_id: UUID,
        user_id: UUID,
        name: Optional[str] = None,
        params: Optional[GenerationParamsPatch] = None,
    ) -> RecurringJobRecord:
        """Merged params apply from the next run; the armed task always reloads the job."""
        job = await self._require(job_id, user_id)
        if job.status == RecurringJobStatus.CANCELLED:
            raise InvalidStateError("recurring_job_cancelled")
        if name is not None:
            job.name = name
        if params is not None:
            merged = job.generation_params.model_dump()
            merged.update(params.model_dump(exclude_unset=True))
            job.generation_params = GenerationParams.model_validate(merged)
        job.updated_at = self._clock.now()
        await self._store.save_recurring_job(job)
        if job.status == RecurringJobStatus.ACTIVE:
            self.arm(job)
        logger.info("recurring_job.params_updated", job_id=str(job_id))
        return job

    async def cancel(self, job_id: UUID, user_id: UUID) -> RecurringJobRecord:
        return await self.update_status(job_id, user_id, RecurringJobStatus.CANCELLED)

    # --- runs ---

    async def run_now(self, job_id: UUID) -> Optional[ContentRecord]:
        """Run one generation immediately. Failures are recorded on the job, then re-raised."""
        try:
            return await self._run(job_id)
        except Exception as e:
            await self._record_failure(job_id, e)
            raise

    async def _run(self, job_id: UUID) -> Optional[ContentRecord]:
        job = await self._store.get_recurring_job(job_id)
        if job is None or job.status != RecurringJobStatus.ACTIVE:
            logger.info("recurring_job.run_skipped", job_id=str(job_id), status=job.status.value if job else None)
            return None
        params = job.generation_params
        generated = await self._generator.generate(params)
        content = await self._lifecycle.create(
            ContentCreateRequest(
                owner_id=job.owner_id,
                organization_id=job.organization_id,
                title=generated.title,
                body=generated.text,
                content_type=params.type,
                platform=params.platform,
                metadata={"recurring_job_id": str(job_id), "topic": params.topic},
            ),
            actor=ACTOR_SYSTEM,
        )
        await self._record_success(job_id, content)
        return content

    async def _record_success(self, job_id: UUID, content: ContentRecord) -> None:
        # Reload: status or params may have changed while the generator was running.
        job = await self._store.get_recurring_job(job_id)
        if job is None:
            return
        now: datetime = self._clock.now()
        job.last_run_at = now
        job.run_count += 1
        job.updated_at = now
        await self._store.save_recurring_job(job)
        await log_audit_event(
            self._store, "RECURRING_RUN_SUCCESS", ACTOR_SYSTEM,
            content_id=content.id, recurring_job_id=job_id, now=now,
        )
        logger.info("recurring_job.run_success", job_id=str(job_id), content_id=str(content.id), run_count=job.run_count)

    async def _record_failure(self, job_id: UUID, exc: BaseException) -> None:
        job = await self._store.get_recurring_job(job_id)
        if job is None:
            return
        now = self._clock.now()
        job.error_count += 1
        job.last_error = _error_text(exc)
        job.updated_at = now
        await self._store.save_recurring_job(job)
        await log_audit_event(
            self._store, "RECURRING_RUN_FAIL", ACTOR_SYSTEM,
            recurring_job_id=job_id, metadata_={"error": job.last_error}, now=now,
        )
        logger.warning("recurring_job.run_failed", job_id=str(job_id), error_count=job.error_count, error=job.last_error)
