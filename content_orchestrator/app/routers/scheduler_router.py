"""Scheduler status and manual sweep."""
from fastapi import APIRouter, Depends

from app.dependencies import get_scheduler_service
from app.schemas.scheduler import ArmedJobOut, SchedulerStatusResponse, SweepItemOut, SweepResponse
from app.services.scheduler_service import SWEEP_FAILED, SWEEP_SKIPPED, PublishSchedulerService

router = APIRouter(prefix="/scheduler", tags=["scheduler"])


@router.get("/status", response_model=SchedulerStatusResponse)
async def get_scheduler_status(
    scheduler: PublishSchedulerService = Depends(get_scheduler_service),
) -> SchedulerStatusResponse:
    """Armed jobs with next run times, last sweep, overdue count."""
    status = await scheduler.status()
    return SchedulerStatusResponse(
        enabled=status["enabled"],
        started=status["started"],
        jobs=[
            ArmedJobOut(
                job_id=job.job_id,
                kind=job.kind,
                description=job.description,
                next_run_at=job.next_run_at,
                last_run_at=job.last_run_at,
                run_count=job.run_count,
                last_error=job.last_error,
            )
            for job in status["jobs"]
        ],
        last_sweep_at=status["last_sweep_at"],
        pending_count=status["pending_count"],
    )


@router.post("/sweep", response_model=SweepResponse)
async def run_sweep(
    scheduler: PublishSchedulerService = Depends(get_scheduler_service),
) -> SweepResponse:
    """Run the overdue-content sweep now."""
    result = await scheduler.sweep()
    return SweepResponse(
        ran_at=result.ran_at,
        published=result.count("published"),
        failed=result.count(SWEEP_FAILED),
        skipped=result.count(SWEEP_SKIPPED),
        items=[SweepItemOut(content_id=i.content_id, outcome=i.outcome, error=i.error) for i in result.items],
    )
