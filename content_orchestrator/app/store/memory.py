"""
In-process store. Used with STORE_BACKEND=memory and by the test suite.
Records are copied on the way in and out so callers never share mutable state with the store.
None of the methods await, so each call runs atomically on the event loop; that is what makes
claim_for_publish and update_content valid compare-and-sets here.
"""
from copy import deepcopy
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence, Tuple
from uuid import UUID, uuid4

from app.schemas.content import (
    PUBLISHABLE_STATUSES,
    ApprovalRecord,
    ApprovalStatus,
    AuditEventRecord,
    ContentRecord,
    ContentStatus,
    ContentVersionRecord,
)
from app.schemas.recurring_job import RecurringJobRecord, RecurringJobStatus
from app.store.base import ContentStore


class InMemoryContentStore(ContentStore):
    def __init__(self) -> None:
        self._content: Dict[UUID, ContentRecord] = {}
        self._versions: Dict[UUID, List[ContentVersionRecord]] = {}
        self._approvals: Dict[UUID, ApprovalRecord] = {}
        self._recurring: Dict[UUID, RecurringJobRecord] = {}
        self._events: List[AuditEventRecord] = []
        self._sessions: Dict[UUID, Tuple[UUID, datetime]] = {}

    # --- content ---

    async def get_content(self, content_id: UUID) -> Optional[ContentRecord]:
        item = self._content.get(content_id)
        return item.model_copy(deep=True) if item else None

    async def save_content(self, content: ContentRecord) -> ContentRecord:
        self._content[content.id] = content.model_copy(deep=True)
        return content

    async def update_content(
        self,
        content_id: UUID,
        values: Dict[str, Any],
        expected_statuses: Optional[Sequence[ContentStatus]] = None,
        claim_stale_before: Optional[datetime] = None,
    ) -> Optional[ContentRecord]:
        item = self._content.get(content_id)
        if item is None:
            return None
        if expected_statuses is not None and item.status not in expected_statuses:
            return None
        claimed_at = item.publish_claimed_at
        if claim_stale_before is not None and claimed_at is not None and claimed_at >= claim_stale_before:
            return None
        updated = item.model_copy(update=deepcopy(values), deep=True)
        self._content[content_id] = updated
        return updated.model_copy(deep=True)

    async def delete_content(self, content_id: UUID) -> bool:
        if self._content.pop(content_id, None) is None:
            return False
        self._versions.pop(content_id, None)
        for approval_id in [a.id for a in self._approvals.values() if a.content_id == content_id]:
            del self._approvals[approval_id]
        return True

    async def list_content(
        self,
        owner_id: Optional[UUID] = None,
        statuses: Optional[Sequence[ContentStatus]] = None,
        content_types: Optional[Sequence[str]] = None,
        platforms: Optional[Sequence[str]] = None,
        offset: int = 0,
        limit: int = 20,
    ) -> Tuple[List[ContentRecord], int]:
        rows = [
            c
            for c in self._content.values()
            if (owner_id is None or c.owner_id == owner_id)
            and (not statuses or c.status in statuses)
            and (not content_types or c.content_type in content_types)
            and (not platforms or c.platform in platforms)
        ]
        rows.sort(key=lambda c: c.created_at, reverse=True)
        page = rows[offset:offset + limit]
        return [c.model_copy(deep=True) for c in page], len(rows)

    async def list_scheduled_due(self, now: datetime) -> List[ContentRecord]:
        rows = [
            c
            for c in self._content.values()
            if c.status == ContentStatus.SCHEDULED and c.scheduled_for is not None and c.scheduled_for <= now
        ]
        rows.sort(key=lambda c: c.scheduled_for)
        return [c.model_copy(deep=True) for c in rows]

    async def list_scheduled_future(self, now: datetime) -> List[ContentRecord]:
        rows = [
            c
            for c in self._content.values()
            if c.status == ContentStatus.SCHEDULED and c.scheduled_for is not None and c.scheduled_for > now
        ]
        rows.sort(key=lambda c: c.scheduled_for)
        return [c.model_copy(deep=True) for c in rows]

    async def claim_for_publish(
        self,
        content_id: UUID,
        now: datetime,
        stale_before: datetime,
    ) -> Optional[ContentRecord]:
        item = self._content.get(content_id)
        if item is None or item.status not in PUBLISHABLE_STATUSES:
            return None
        if item.publish_claimed_at is not None and item.publish_claimed_at >= stale_before:
            return None
        item.publish_claimed_at = now
        item.last_publish_attempt_at = now
        return item.model_copy(deep=True)

    # --- versions ---

    async def create_version(self, version: ContentVersionRecord) -> ContentVersionRecord:
        existing = self._versions.setdefault(version.content_id, [])
        if any(v.version == version.version for v in existing):
            raise ValueError("duplicate_version")
        existing.append(version)
        return version

    async def list_versions(self, content_id: UUID) -> List[ContentVersionRecord]:
        return sorted(self._versions.get(content_id, []), key=lambda v: v.version)

    async def get_latest_version(self, content_id: UUID) -> Optional[ContentVersionRecord]:
        versions = self._versions.get(content_id)
        if not versions:
            return None
        return max(versions, key=lambda v: v.version)

    # --- approvals ---

    async def get_pending_approval(self, content_id: UUID) -> Optional[ApprovalRecord]:
        for a in self._approvals.values():
            if a.content_id == content_id and a.status == ApprovalStatus.PENDING:
                return a.model_copy(deep=True)
        return None

    async def save_approval(self, approval: ApprovalRecord) -> ApprovalRecord:
        if approval.status == ApprovalStatus.PENDING:
            for a in self._approvals.values():
                if a.content_id == approval.content_id and a.status == ApprovalStatus.PENDING and a.id != approval.id:
                    raise ValueError("pending_approval_exists")
        self._approvals[approval.id] = approval.model_copy(deep=True)
        return approval

    async def list_approvals(self, content_id: UUID) -> List[ApprovalRecord]:
        rows = [a.model_copy(deep=True) for a in self._approvals.values() if a.content_id == content_id]
        rows.sort(key=lambda a: a.created_at, reverse=True)
        return rows

    # --- recurring jobs ---

    async def get_recurring_job(self, job_id: UUID) -> Optional[RecurringJobRecord]:
        job = self._recurring.get(job_id)
        return job.model_copy(deep=True) if job else None

    async def save_recurring_job(self, job: RecurringJobRecord) -> RecurringJobRecord:
        self._recurring[job.id] = job.model_copy(deep=True)
        return job

    async def list_recurring_jobs(self, owner_id: Optional[UUID] = None) -> List[RecurringJobRecord]:
        rows = [j for j in self._recurring.values() if owner_id is None or j.owner_id == owner_id]
        rows.sort(key=lambda j: j.created_at, reverse=True)
        return [j.model_copy(deep=True) for j in rows]

    async def list_active_recurring_jobs(self) -> List[RecurringJobRecord]:
        return [
            j.model_copy(deep=True) for j in self._recurring.values() if j.status == RecurringJobStatus.ACTIVE
        ]

    # --- audit / sessions ---

    async def log_event(self, event: AuditEventRecord) -> AuditEventRecord:
        self._events.append(event)
        return event

    async def list_events(
        self,
        content_id: Optional[UUID] = None,
        recurring_job_id: Optional[UUID] = None,
        limit: int = 50,
    ) -> List[AuditEventRecord]:
        rows = [
            e
            for e in self._events
            if (content_id is None or e.content_id == content_id)
            and (recurring_job_id is None or e.recurring_job_id == recurring_job_id)
        ]
        rows.reverse()
        return rows[:limit]

    def add_session(self, user_id: UUID, expires_at: datetime) -> UUID:
        session_id = uuid4()
        self._sessions[session_id] = (user_id, expires_at)
        return session_id

    async def delete_expired_sessions(self, now: datetime) -> int:
        expired = [sid for sid, (_, expires_at) in self._sessions.items() if expires_at < now]
        for sid in expired:
            del self._sessions[sid]
        return len(expired)
