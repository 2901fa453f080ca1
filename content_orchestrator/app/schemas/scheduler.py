"""Scheduler status / sweep responses."""
from datetime import datetime
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel


class ArmedJobOut(BaseModel):
    job_id: str
    kind: str  # one_off | cron
    description: str
    next_run_at: Optional[datetime] = None
    last_run_at: Optional[datetime] = None
    run_count: int = 0
    last_error: Optional[str] = None


class SchedulerStatusResponse(BaseModel):
    """GET /scheduler/status."""

    enabled: bool
    started: bool
    jobs: List[ArmedJobOut]
    last_sweep_at: Optional[datetime] = None
    pending_count: Optional[int] = None


class SweepItemOut(BaseModel):
    content_id: UUID
    outcome: str  # published | noop | failed | skipped
    error: Optional[str] = None


class SweepResponse(BaseModel):
    """POST /scheduler/sweep."""

    ran_at: datetime
    published: int
    failed: int
    skipped: int
    items: List[SweepItemOut]
