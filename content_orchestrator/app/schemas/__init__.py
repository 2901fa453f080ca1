"""Pydantic records and request/response schemas."""
from app.schemas.common import ErrorResponse, MessageResponse
from app.schemas.content import (
    ApprovalRecord,
    ApprovalStatus,
    AuditEventRecord,
    ContentRecord,
    ContentStatus,
    ContentVersionRecord,
)
from app.schemas.recurring_job import (
    GenerationParams,
    RecurringJobRecord,
    RecurringJobStatus,
)

__all__ = [
    "ErrorResponse",
    "MessageResponse",
    "ApprovalRecord",
    "ApprovalStatus",
    "AuditEventRecord",
    "ContentRecord",
    "ContentStatus",
    "ContentVersionRecord",
    "GenerationParams",
    "RecurringJobRecord",
    "RecurringJobStatus",
]
