"""
Job Registry: job id -> armed ScheduledJob.
Job ids: content:<uuid> (one-off publish), recurring:<uuid> (generation), system:<name>.
The lock only guards map bookkeeping; it is never held across an await or a task body.
"""
import asyncio
import threading
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, List, Optional
from uuid import UUID

from app.scheduling.triggers import FireSpec

TaskFn = Callable[[], Awaitable[Any]]
ErrorFn = Callable[[BaseException], Awaitable[None]]


def content_job_id(content_id: UUID) -> str:
    return f"content:{content_id}"


def recurring_job_id(job_id: UUID) -> str:
    return f"recurring:{job_id}"


def system_job_id(name: str) -> str:
    return f"system:{name}"


@dataclass(eq=False)
class ScheduledJob:
    """Runtime handle of one armed timer. Identity (not value) equality."""

    job_id: str
    spec: FireSpec
    task: TaskFn
    description: str = ""
    on_error: Optional[ErrorFn] = None
    next_run_at: Optional[datetime] = None
    last_run_at: Optional[datetime] = None
    run_count: int = 0
    last_error: Optional[str] = None
    timer: Optional["asyncio.Task[None]"] = field(default=None, repr=False)

    @property
    def kind(self) -> str:
        return self.spec.kind

    def stop(self) -> None:
        """Stop future firings. An execution already spawned keeps running."""
        if self.timer is not None and not self.timer.done():
            self.timer.cancel()


class JobRegistry:
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._jobs: Dict[str, ScheduledJob] = {}

    def replace(self, job: ScheduledJob) -> Optional[ScheduledJob]:
        """Store job under its id; returns the displaced handle (caller stops it)."""
        with self._lock:
            previous = self._jobs.get(job.job_id)
            self._jobs[job.job_id] = job
        return previous

    def remove(self, job_id: str) -> Optional[ScheduledJob]:
        with self._lock:
            return self._jobs.pop(job_id, None)

    def discard(self, job: ScheduledJob) -> bool:
        """Remove job only if the registry still holds this exact handle (a newer one wins)."""
        with self._lock:
            if self._jobs.get(job.job_id) is job:
                del self._jobs[job.job_id]
                return True
            return False

    def get(self, job_id: str) -> Optional[ScheduledJob]:
        with self._lock:
            return self._jobs.get(job_id)

    def ids(self) -> List[str]:
        with self._lock:
            return sorted(self._jobs)

    def snapshot(self) -> List[ScheduledJob]:
        with self._lock:
            return [self._jobs[k] for k in sorted(self._jobs)]

    def clear(self) -> List[ScheduledJob]:
        with self._lock:
            jobs = list(self._jobs.values())
            self._jobs.clear()
        return jobs

    def __contains__(self, job_id: object) -> bool:
        with self._lock:
            return job_id in self._jobs

    def __len__(self) -> int:
        with self._lock:
            return len(self._jobs)
