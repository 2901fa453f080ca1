"""
Timer engine over the Job Registry (single process, asyncio).
Each armed job owns one timer task that only waits; when it fires, the job body is spawned as a
separate task under a bounded timeout, so cancelling a job never interrupts a running body.
A one-off job removes itself from the registry the moment it fires, whatever the outcome.
"""
import asyncio
from datetime import datetime, timedelta
from typing import List, Optional, Set

from apscheduler.triggers.cron import CronTrigger

from app.clock import Clock, SystemClock
from app.logging_config import bind_job_context, get_logger
from app.scheduling.registry import ErrorFn, JobRegistry, ScheduledJob, TaskFn
from app.scheduling.triggers import Cron, FireSpec, OneOff

logger = get_logger(__name__)

DEFAULT_JOB_TIMEOUT_SECONDS = 120.0
SHUTDOWN_GRACE_SECONDS = 10.0


class Scheduler:
    def __init__(
        self,
        registry: Optional[JobRegistry] = None,
        clock: Optional[Clock] = None,
        job_timeout_seconds: float = DEFAULT_JOB_TIMEOUT_SECONDS,
        enabled: bool = True,
    ) -> None:
        self.registry = registry or JobRegistry()
        self.enabled = enabled
        self._clock = clock or SystemClock()
        self._job_timeout = job_timeout_seconds
        self._running: Set["asyncio.Task[None]"] = set()

    def schedule_job(
        self,
        job_id: str,
        spec: FireSpec,
        task: TaskFn,
        description: str = "",
        on_error: Optional[ErrorFn] = None,
    ) -> ScheduledJob:
        """
        Arm a timer for job_id, replacing (and stopping) any job already registered under it.
        Cron expressions are parsed here, so a malformed one raises InvalidScheduleError
        before anything is registered.
        A disabled scheduler validates the spec but arms nothing; the returned handle is detached.
        """
        trigger = spec.trigger() if isinstance(spec, Cron) else None
        job = ScheduledJob(job_id=job_id, spec=spec, task=task, description=description, on_error=on_error)
        if not self.enabled:
            logger.info("scheduler.job_not_armed", job_id=job_id, reason="scheduler_disabled")
            return job
        if isinstance(spec, OneOff):
            job.next_run_at = spec.at
            job.timer = asyncio.create_task(self._one_off_timer(job), name=f"timer:{job_id}")
        else:
            job.timer = asyncio.create_task(self._cron_timer(job, trigger), name=f"timer:{job_id}")
        previous = self.registry.replace(job)
        if previous is not None:
            previous.stop()
            logger.info("scheduler.job_replaced", job_id=job_id)
        logger.info(
            "scheduler.job_armed",
            job_id=job_id,
            kind=spec.kind,
            at=spec.at.isoformat() if isinstance(spec, OneOff) else None,
            cron=spec.expression if isinstance(spec, Cron) else None,
        )
        return job

    def cancel_job(self, job_id: str) -> bool:
        """Stop and forget job_id. No-op (False) if nothing is armed under it."""
        job = self.registry.remove(job_id)
        if job is None:
            return False
        job.stop()
        logger.info("scheduler.job_cancelled", job_id=job_id)
        return True

    def has_job(self, job_id: str) -> bool:
        return job_id in self.registry

    def jobs(self) -> List[ScheduledJob]:
        return self.registry.snapshot()

    def run_now(self, job_id: str) -> bool:
        """Fire job_id immediately without disturbing its timer."""
        job = self.registry.get(job_id)
        if job is None:
            return False
        self._spawn(job)
        return True

    async def shutdown(self, grace_seconds: float = SHUTDOWN_GRACE_SECONDS) -> None:
        """Stop all timers, give running bodies a grace period, then cancel the stragglers."""
        for job in self.registry.clear():
            job.stop()
        running = list(self._running)
        if running:
            done, pending = await asyncio.wait(running, timeout=grace_seconds)
            for t in pending:
                t.cancel()
            if pending:
                await asyncio.gather(*pending, return_exceptions=True)
                logger.warning("scheduler.shutdown_cancelled_running", count=len(pending))
        logger.info("scheduler.shutdown")

    # --- timers ---

    async def _one_off_timer(self, job: ScheduledJob) -> None:
        at = job.spec.at
        await self._clock.sleep((at - self._clock.now()).total_seconds())
        self.registry.discard(job)
        job.next_run_at = None
        self._spawn(job)

    async def _cron_timer(self, job: ScheduledJob, trigger: CronTrigger) -> None:
        after = self._clock.now()
        while True:
            fire_at = trigger.get_next_fire_time(None, after + timedelta(microseconds=1))
            if fire_at is None:
                self.registry.discard(job)
                return
            job.next_run_at = fire_at
            await self._clock.sleep((fire_at - self._clock.now()).total_seconds())
            self._spawn(job)
            # Missed windows (process suspended) coalesce into a single run.
            after = max(fire_at, self._clock.now())

    # --- execution ---

    def _spawn(self, job: ScheduledJob) -> None:
        body = asyncio.create_task(self._execute(job), name=f"job:{job.job_id}")
        self._running.add(body)
        body.add_done_callback(self._running.discard)

    async def _execute(self, job: ScheduledJob) -> None:
        # Runs in its own task, so the binding stays local to this job.
        bind_job_context(job_id=job.job_id)
        started: datetime = self._clock.now()
        job.last_run_at = started
        job.run_count += 1
        logger.info("scheduler.job_started", job_id=job.job_id, run=job.run_count)
        try:
            await asyncio.wait_for(job.task(), timeout=self._job_timeout)
        except asyncio.TimeoutError as e:
            job.last_error = f"timeout after {self._job_timeout:g}s"
            logger.warning("scheduler.job_timeout", job_id=job.job_id, timeout_seconds=self._job_timeout)
            await self._report_failure(job, e)
        except Exception as e:
            job.last_error = str(e) or type(e).__name__
            logger.warning("scheduler.job_failed", job_id=job.job_id, error=job.last_error)
            await self._report_failure(job, e)
        else:
            job.last_error = None
            elapsed_ms = (self._clock.now() - started).total_seconds() * 1000
            logger.info("scheduler.job_succeeded", job_id=job.job_id, elapsed_ms=round(elapsed_ms))

    async def _report_failure(self, job: ScheduledJob, exc: BaseException) -> None:
        if job.on_error is None:
            return
        try:
            await job.on_error(exc)
        except Exception as e:
            logger.error("scheduler.on_error_failed", job_id=job.job_id, error=str(e))
