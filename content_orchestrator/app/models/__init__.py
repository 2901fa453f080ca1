"""SQLAlchemy models for the content orchestrator."""
from app.models.content_item import ContentItem
from app.models.content_version import ContentVersion
from app.models.approval_request import ApprovalRequest
from app.models.recurring_job import RecurringJob
from app.models.audit_event import AuditEvent
from app.models.user_session import UserSession

__all__ = [
    "ContentItem",
    "ContentVersion",
    "ApprovalRequest",
    "RecurringJob",
    "AuditEvent",
    "UserSession",
]
