"""Content records (store boundary) and request/response schemas."""
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator


class ContentStatus(str, Enum):
    DRAFT = "draft"
    PENDING_APPROVAL = "pending_approval"
    APPROVED = "approved"
    REJECTED = "rejected"
    SCHEDULED = "scheduled"
    PUBLISHED = "published"


class ApprovalStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


PUBLISHABLE_STATUSES = (ContentStatus.APPROVED, ContentStatus.SCHEDULED)


class ContentRecord(BaseModel):
    """One publishable unit, as read from / written to the store."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    owner_id: UUID
    organization_id: Optional[UUID] = None
    campaign_id: Optional[UUID] = None
    title: str
    body: str = ""
    media_urls: List[str] = Field(default_factory=list)
    content_type: str
    platform: str
    status: ContentStatus = ContentStatus.DRAFT
    scheduled_for: Optional[datetime] = None
    published_at: Optional[datetime] = None
    published_url: Optional[str] = None
    tags: List[str] = Field(default_factory=list)
    metadata_: Dict[str, Any] = Field(default_factory=dict)
    publish_attempts: int = 0
    last_publish_error: Optional[str] = None
    last_publish_attempt_at: Optional[datetime] = None
    publish_claimed_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime


class ContentVersionRecord(BaseModel):
    """Immutable snapshot; version starts at 1."""

    model_config = ConfigDict(from_attributes=True, frozen=True)

    id: UUID
    content_id: UUID
    version: int = Field(..., ge=1)
    title: str
    body: str = ""
    media_urls: List[str] = Field(default_factory=list)
    created_at: datetime


class ApprovalRecord(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    content_id: UUID
    requester_id: UUID
    reviewer_id: Optional[UUID] = None
    status: ApprovalStatus = ApprovalStatus.PENDING
    notes: Optional[str] = None
    review_notes: Optional[str] = None
    created_at: datetime
    reviewed_at: Optional[datetime] = None


class AuditEventRecord(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    content_id: Optional[UUID] = None
    recurring_job_id: Optional[UUID] = None
    event_type: str
    actor: str
    metadata_: Optional[Dict[str, Any]] = None
    created_at: datetime


# --- Requests ---


class ContentCreateRequest(BaseModel):
    """Body for POST /content. Generated content uses the same fields."""

    owner_id: UUID = Field(..., description="Owner (caller) UUID")
    organization_id: Optional[UUID] = None
    campaign_id: Optional[UUID] = None
    title: str = Field(..., min_length=1, max_length=512)
    body: str = ""
    media_urls: List[str] = Field(default_factory=list)
    content_type: str = Field(..., min_length=1, max_length=32, description="POST | AD | STORY | ...")
    platform: str = Field(..., min_length=1, max_length=32, description="facebook | instagram | ...")
    tags: List[str] = Field(default_factory=list)
    metadata: Dict[str, Any] = Field(default_factory=dict)


class ContentUpdateRequest(BaseModel):
    """Body for PATCH /content/{id}. Only provided fields change."""

    user_id: UUID = Field(..., description="Caller; must be the owner")
    title: Optional[str] = Field(None, min_length=1, max_length=512)
    body: Optional[str] = None
    media_urls: Optional[List[str]] = None
    content_type: Optional[str] = Field(None, min_length=1, max_length=32)
    platform: Optional[str] = Field(None, min_length=1, max_length=32)
    campaign_id: Optional[UUID] = None
    tags: Optional[List[str]] = None
    metadata: Optional[Dict[str, Any]] = None

    @field_validator("title", "body", "media_urls", "content_type", "platform", "tags", "metadata")
    @classmethod
    def not_null(cls, v: Any) -> Any:
        """These fields may be omitted but not cleared; only campaign_id accepts null."""
        if v is None:
            raise ValueError("may be omitted but not null")
        return v


class ActorRequest(BaseModel):
    """Body carrying only the caller id (unschedule, return-to-draft, delete)."""

    user_id: UUID


class SubmitRequest(BaseModel):
    user_id: UUID
    notes: Optional[str] = None


class ReviewRequest(BaseModel):
    """Body for POST /content/{id}/review."""

    reviewer_id: UUID
    approved: bool
    notes: Optional[str] = None


class ScheduleRequest(BaseModel):
    """Body for POST /content/{id}/schedule and /reschedule."""

    user_id: UUID
    scheduled_for: datetime = Field(..., description="ISO datetime with timezone; must be in the future")


# --- Responses ---


class ContentListResponse(BaseModel):
    items: List[ContentRecord]
    total: int
    page: int
    limit: int
    total_pages: int


class PublishResponse(BaseModel):
    """outcome: published | noop (already published by a concurrent trigger)."""

    content_id: UUID
    outcome: str
    status: ContentStatus
    published_at: Optional[datetime] = None
    published_url: Optional[str] = None


class ScheduledContentOut(BaseModel):
    id: UUID
    title: str
    content_type: str
    platform: str
    scheduled_for: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime
