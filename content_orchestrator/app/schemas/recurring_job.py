"""Recurring generation job records and request/response schemas."""
from datetime import datetime
from enum import Enum
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class RecurringJobStatus(str, Enum):
    ACTIVE = "active"
    PAUSED = "paused"
    CANCELLED = "cancelled"


class GenerationParams(BaseModel):
    """What the AI generator is asked to write on every run."""

    type: str = Field(..., min_length=1, max_length=32, description="Content type tag")
    platform: str = Field(..., min_length=1, max_length=32, description="Target platform tag")
    topic: str = Field(..., min_length=1)
    tone: Optional[str] = None


class GenerationParamsPatch(BaseModel):
    type: Optional[str] = Field(None, min_length=1, max_length=32)
    platform: Optional[str] = Field(None, min_length=1, max_length=32)
    topic: Optional[str] = Field(None, min_length=1)
    tone: Optional[str] = None


class RecurringJobRecord(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    name: str
    cron_expression: str
    generation_params: GenerationParams
    status: RecurringJobStatus = RecurringJobStatus.ACTIVE
    owner_id: UUID
    organization_id: Optional[UUID] = None
    last_run_at: Optional[datetime] = None
    run_count: int = 0
    error_count: int = 0
    last_error: Optional[str] = None
    created_at: datetime
    updated_at: datetime


class RecurringJobCreateRequest(BaseModel):
    """Body for POST /recurring-jobs."""

    owner_id: UUID
    organization_id: Optional[UUID] = None
    name: str = Field(..., min_length=1, max_length=255)
    cron_expression: str = Field(..., description="5-field crontab, e.g. '0 9 * * 1'")
    generation_params: GenerationParams


class RecurringJobStatusRequest(BaseModel):
    user_id: UUID
    status: RecurringJobStatus


class RecurringJobRescheduleRequest(BaseModel):
    user_id: UUID
    cron_expression: str


class RecurringJobParamsRequest(BaseModel):
    user_id: UUID
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    generation_params: Optional[GenerationParamsPatch] = None


class RecurringJobListResponse(BaseModel):
    items: List[RecurringJobRecord]
