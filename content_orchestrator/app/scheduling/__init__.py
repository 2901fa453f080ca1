"""Timers: fire specs, the job registry and the asyncio scheduler."""
from app.scheduling.registry import (
    JobRegistry,
    ScheduledJob,
    content_job_id,
    recurring_job_id,
    system_job_id,
)
from app.scheduling.scheduler import Scheduler
from app.scheduling.triggers import Cron, FireSpec, OneOff, next_fire_time, normalize_cron, parse_cron

__all__ = [
    "Cron",
    "FireSpec",
    "JobRegistry",
    "OneOff",
    "ScheduledJob",
    "Scheduler",
    "content_job_id",
    "next_fire_time",
    "normalize_cron",
    "parse_cron",
    "recurring_job_id",
    "system_job_id",
]
