"""Content API: CRUD, versions, approval workflow, scheduling and publish."""
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status

from app.dependencies import get_lifecycle, get_scheduler_service
from app.schemas.common import MessageResponse
from app.schemas.content import (
    ActorRequest,
    ApprovalRecord,
    AuditEventRecord,
    ContentCreateRequest,
    ContentListResponse,
    ContentRecord,
    ContentStatus,
    ContentUpdateRequest,
    ContentVersionRecord,
    PublishResponse,
    ReviewRequest,
    ScheduledContentOut,
    ScheduleRequest,
    SubmitRequest,
)
from app.services.content_lifecycle import ContentLifecycle
from app.services.scheduler_service import PublishSchedulerService

router = APIRouter(prefix="/content", tags=["content"])


@router.post("", response_model=ContentRecord, status_code=status.HTTP_201_CREATED)
async def create_content(
    payload: ContentCreateRequest,
    lifecycle: ContentLifecycle = Depends(get_lifecycle),
) -> ContentRecord:
    """Create content in DRAFT (version 1)."""
    return await lifecycle.create(payload)


@router.get("", response_model=ContentListResponse)
async def list_content(
    owner_id: Optional[UUID] = Query(None, description="Filter by owner"),
    status_filter: Optional[List[ContentStatus]] = Query(None, alias="status"),
    content_type: Optional[List[str]] = Query(None),
    platform: Optional[List[str]] = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    lifecycle: ContentLifecycle = Depends(get_lifecycle),
) -> ContentListResponse:
    """Newest first. status / content_type / platform may repeat."""
    result = await lifecycle.list_content(
        owner_id=owner_id,
        statuses=status_filter,
        content_types=content_type,
        platforms=platform,
        page=page,
        limit=limit,
    )
    return ContentListResponse(
        items=result.items,
        total=result.total,
        page=result.page,
        limit=result.limit,
        total_pages=result.total_pages,
    )


@router.get("/scheduled", response_model=List[ScheduledContentOut])
async def list_scheduled(
    user_id: UUID = Query(..., description="Owner UUID"),
    scheduler: PublishSchedulerService = Depends(get_scheduler_service),
) -> List[ScheduledContentOut]:
    """Upcoming scheduled items of one owner, soonest first."""
    items = await scheduler.list_scheduled_for_user(user_id)
    return [ScheduledContentOut.model_validate(c.model_dump()) for c in items]


@router.get("/{content_id}", response_model=ContentRecord)
async def get_content(
    content_id: UUID,
    user_id: Optional[UUID] = Query(None, description="When set, must be the owner"),
    lifecycle: ContentLifecycle = Depends(get_lifecycle),
) -> ContentRecord:
    return await lifecycle.get(content_id, user_id)


@router.patch("/{content_id}", response_model=ContentRecord)
async def update_content(
    content_id: UUID,
    payload: ContentUpdateRequest,
    lifecycle: ContentLifecycle = Depends(get_lifecycle),
) -> ContentRecord:
    """Only fields present in the body change. Body/media edits cut a new version."""
    changes = payload.model_dump(exclude_unset=True, exclude={"user_id"})
    return await lifecycle.update(content_id, payload.user_id, changes)


@router.delete("/{content_id}", response_model=MessageResponse)
async def delete_content(
    content_id: UUID,
    user_id: UUID = Query(...),
    lifecycle: ContentLifecycle = Depends(get_lifecycle),
) -> MessageResponse:
    """409 for published campaign content with an external post."""
    await lifecycle.delete(content_id, user_id)
    return MessageResponse(message="deleted")


@router.get("/{content_id}/versions", response_model=List[ContentVersionRecord])
async def list_versions(
    content_id: UUID,
    user_id: Optional[UUID] = Query(None),
    lifecycle: ContentLifecycle = Depends(get_lifecycle),
) -> List[ContentVersionRecord]:
    return await lifecycle.list_versions(content_id, user_id)


@router.get("/{content_id}/approvals", response_model=List[ApprovalRecord])
async def list_approvals(
    content_id: UUID,
    lifecycle: ContentLifecycle = Depends(get_lifecycle),
) -> List[ApprovalRecord]:
    return await lifecycle.list_approvals(content_id)


@router.get("/{content_id}/events", response_model=List[AuditEventRecord])
async def list_events(
    content_id: UUID,
    limit: int = Query(50, ge=1, le=500),
    lifecycle: ContentLifecycle = Depends(get_lifecycle),
) -> List[AuditEventRecord]:
    """Audit trail, newest first."""
    return await lifecycle.list_events(content_id, limit=limit)


@router.post("/{content_id}/submit", response_model=ApprovalRecord, status_code=status.HTTP_201_CREATED)
async def submit_content(
    content_id: UUID,
    payload: SubmitRequest,
    lifecycle: ContentLifecycle = Depends(get_lifecycle),
) -> ApprovalRecord:
    """DRAFT -> PENDING_APPROVAL. 409 when not a draft or already pending."""
    return await lifecycle.submit_for_approval(content_id, payload.user_id, payload.notes)


@router.post("/{content_id}/review", response_model=ContentRecord)
async def review_content(
    content_id: UUID,
    payload: ReviewRequest,
    lifecycle: ContentLifecycle = Depends(get_lifecycle),
) -> ContentRecord:
    return await lifecycle.review(content_id, payload.reviewer_id, payload.approved, payload.notes)


@router.post("/{content_id}/schedule", response_model=ContentRecord)
async def schedule_content(
    content_id: UUID,
    payload: ScheduleRequest,
    scheduler: PublishSchedulerService = Depends(get_scheduler_service),
) -> ContentRecord:
    """APPROVED -> SCHEDULED; a DRAFT only records the requested time. 400 if not in the future."""
    return await scheduler.schedule_one_off(content_id, payload.user_id, payload.scheduled_for)


@router.post("/{content_id}/reschedule", response_model=ContentRecord)
async def reschedule_content(
    content_id: UUID,
    payload: ScheduleRequest,
    scheduler: PublishSchedulerService = Depends(get_scheduler_service),
) -> ContentRecord:
    return await scheduler.reschedule(content_id, payload.user_id, payload.scheduled_for)


@router.post("/{content_id}/unschedule", response_model=ContentRecord)
async def unschedule_content(
    content_id: UUID,
    payload: ActorRequest,
    scheduler: PublishSchedulerService = Depends(get_scheduler_service),
) -> ContentRecord:
    return await scheduler.cancel_one_off(content_id, payload.user_id)


@router.post("/{content_id}/return-to-draft", response_model=ContentRecord)
async def return_to_draft(
    content_id: UUID,
    payload: ActorRequest,
    lifecycle: ContentLifecycle = Depends(get_lifecycle),
) -> ContentRecord:
    return await lifecycle.return_to_draft(content_id, payload.user_id)


@router.post("/{content_id}/publish", response_model=PublishResponse)
async def publish_content(
    content_id: UUID,
    payload: ActorRequest,
    lifecycle: ContentLifecycle = Depends(get_lifecycle),
) -> PublishResponse:
    """Publish now. outcome=noop when another trigger already published it; 502 on platform failure."""
    await lifecycle.get(content_id, payload.user_id)
    result = await lifecycle.publish(content_id, actor=str(payload.user_id))
    return PublishResponse(
        content_id=content_id,
        outcome=result.outcome,
        status=result.content.status,
        published_at=result.content.published_at,
        published_url=result.content.published_url,
    )
