"""Recurring AI generation jobs API."""
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status

from app.dependencies import get_recurring_manager
from app.schemas.content import ActorRequest, ContentRecord
from app.schemas.recurring_job import (
    RecurringJobCreateRequest,
    RecurringJobListResponse,
    RecurringJobParamsRequest,
    RecurringJobRecord,
    RecurringJobRescheduleRequest,
    RecurringJobStatusRequest,
)
from app.services.recurring_job_service import RecurringJobManager

router = APIRouter(prefix="/recurring-jobs", tags=["recurring-jobs"])


@router.post("", response_model=RecurringJobRecord, status_code=status.HTTP_201_CREATED)
async def create_recurring_job(
    payload: RecurringJobCreateRequest,
    manager: RecurringJobManager = Depends(get_recurring_manager),
) -> RecurringJobRecord:
    """400 on an invalid cron expression (nothing is stored)."""
    return await manager.create(
        owner_id=payload.owner_id,
        name=payload.name,
        cron_expression=payload.cron_expression,
        generation_params=payload.generation_params,
        organization_id=payload.organization_id,
    )


@router.get("", response_model=RecurringJobListResponse)
async def list_recurring_jobs(
    owner_id: Optional[UUID] = Query(None),
    manager: RecurringJobManager = Depends(get_recurring_manager),
) -> RecurringJobListResponse:
    return RecurringJobListResponse(items=await manager.list_jobs(owner_id))


@router.get("/{job_id}", response_model=RecurringJobRecord)
async def get_recurring_job(
    job_id: UUID,
    user_id: Optional[UUID] = Query(None),
    manager: RecurringJobManager = Depends(get_recurring_manager),
) -> RecurringJobRecord:
    return await manager.get(job_id, user_id)


@router.post("/{job_id}/status", response_model=RecurringJobRecord)
async def set_recurring_job_status(
    job_id: UUID,
    payload: RecurringJobStatusRequest,
    manager: RecurringJobManager = Depends(get_recurring_manager),
) -> RecurringJobRecord:
    """active | paused | cancelled. 409 when leaving cancelled."""
    return await manager.update_status(job_id, payload.user_id, payload.status)


@router.post("/{job_id}/reschedule", response_model=RecurringJobRecord)
async def reschedule_recurring_job(
    job_id: UUID,
    payload: RecurringJobRescheduleRequest,
    manager: RecurringJobManager = Depends(get_recurring_manager),
) -> RecurringJobRecord:
    return await manager.reschedule(job_id, payload.user_id, payload.cron_expression)


@router.patch("/{job_id}", response_model=RecurringJobRecord)
async def update_recurring_job(
    job_id: UUID,
    payload: RecurringJobParamsRequest,
    manager: RecurringJobManager = Depends(get_recurring_manager),
) -> RecurringJobRecord:
    """Rename and/or merge generation params; applies from the next run."""
    return await manager.update_params(job_id, payload.user_id, name=payload.name, params=payload.generation_params)


@router.post("/{job_id}/cancel", response_model=RecurringJobRecord)
async def cancel_recurring_job(
    job_id: UUID,
    payload: ActorRequest,
    manager: RecurringJobManager = Depends(get_recurring_manager),
) -> RecurringJobRecord:
    return await manager.cancel(job_id, payload.user_id)


@router.post("/{job_id}/run", response_model=Optional[ContentRecord])
async def run_recurring_job(
    job_id: UUID,
    payload: ActorRequest,
    manager: RecurringJobManager = Depends(get_recurring_manager),
) -> Optional[ContentRecord]:
    """Run one generation now. null when the job is not active; 502 when generation fails."""
    await manager.get(job_id, payload.user_id)
    return await manager.run_now(job_id)
