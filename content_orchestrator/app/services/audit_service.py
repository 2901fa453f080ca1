"""
Audit trail for content and recurring jobs.
event_type: CONTENT_CREATED | CONTENT_UPDATED | VERSION_CREATED | SUBMITTED | APPROVED | REJECTED |
SCHEDULE_SET | SCHEDULE_CLEARED | RETURNED_TO_DRAFT | PUBLISH_SUCCESS | PUBLISH_FAIL | CONTENT_DELETED |
RECURRING_RUN_SUCCESS | RECURRING_RUN_FAIL.
"""
from datetime import datetime, timezone
from typing import Any, Dict, Optional
from uuid import UUID, uuid4

from app.schemas.content import AuditEventRecord
from app.store.base import ContentStore

ACTOR_SYSTEM = "SYSTEM"


async def log_audit_event(
    store: ContentStore,
    event_type: str,
    actor: str,
    content_id: Optional[UUID] = None,
    recurring_job_id: Optional[UUID] = None,
    metadata_: Optional[Dict[str, Any]] = None,
    now: Optional[datetime] = None,
) -> AuditEventRecord:
    """Write one audit row. actor is SYSTEM or the acting user id."""
    ev = AuditEventRecord(
        id=uuid4(),
        content_id=content_id,
        recurring_job_id=recurring_job_id,
        event_type=event_type,
        actor=actor,
        metadata_=metadata_ or {},
        created_at=now or datetime.now(timezone.utc),
    )
    return await store.log_event(ev)
