"""
Persistence boundary for content, versions, approvals, recurring jobs, audit events and sessions.
Pure data access: no transition rules live here. claim_for_publish and update_content are
conditional writes and must be atomic compare-and-sets in every adapter.
"""
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence, Tuple
from uuid import UUID

from app.schemas.content import (
    ApprovalRecord,
    AuditEventRecord,
    ContentRecord,
    ContentStatus,
    ContentVersionRecord,
)
from app.schemas.recurring_job import RecurringJobRecord


class ContentStore(ABC):
    # --- content ---

    @abstractmethod
    async def get_content(self, content_id: UUID) -> Optional[ContentRecord]: ...

    @abstractmethod
    async def save_content(self, content: ContentRecord) -> ContentRecord:
        """Insert or replace by id."""

    @abstractmethod
    async def update_content(
        self,
        content_id: UUID,
        values: Dict[str, Any],
        expected_statuses: Optional[Sequence[ContentStatus]] = None,
        claim_stale_before: Optional[datetime] = None,
    ) -> Optional[ContentRecord]:
        """
        Write only the given fields (record field names), atomically.
        Applies when status is one of expected_statuses (if given) and, when claim_stale_before
        is given, no publish claim newer than it is held. Returns the updated record, or None
        when the item is missing or a condition failed.
        """

    @abstractmethod
    async def delete_content(self, content_id: UUID) -> bool:
        """Remove content with its versions and approval requests. False if absent."""

    @abstractmethod
    async def list_content(
        self,
        owner_id: Optional[UUID] = None,
        statuses: Optional[Sequence[ContentStatus]] = None,
        content_types: Optional[Sequence[str]] = None,
        platforms: Optional[Sequence[str]] = None,
        offset: int = 0,
        limit: int = 20,
    ) -> Tuple[List[ContentRecord], int]:
        """Newest first. Returns (page, total matching)."""

    @abstractmethod
    async def list_scheduled_due(self, now: datetime) -> List[ContentRecord]:
        """status=scheduled and scheduled_for <= now, oldest first."""

    @abstractmethod
    async def list_scheduled_future(self, now: datetime) -> List[ContentRecord]:
        """status=scheduled and scheduled_for > now, soonest first."""

    @abstractmethod
    async def claim_for_publish(
        self,
        content_id: UUID,
        now: datetime,
        stale_before: datetime,
    ) -> Optional[ContentRecord]:
        """
        Atomically mark content as being published.
        Succeeds only if status is approved/scheduled and there is no claim newer than stale_before.
        Returns the claimed record, or None if another trigger holds it or the status moved on.
        """

    # --- versions ---

    @abstractmethod
    async def create_version(self, version: ContentVersionRecord) -> ContentVersionRecord: ...

    @abstractmethod
    async def list_versions(self, content_id: UUID) -> List[ContentVersionRecord]:
        """Ascending by version number."""

    @abstractmethod
    async def get_latest_version(self, content_id: UUID) -> Optional[ContentVersionRecord]: ...

    # --- approvals ---

    @abstractmethod
    async def get_pending_approval(self, content_id: UUID) -> Optional[ApprovalRecord]: ...

    @abstractmethod
    async def save_approval(self, approval: ApprovalRecord) -> ApprovalRecord: ...

    @abstractmethod
    async def list_approvals(self, content_id: UUID) -> List[ApprovalRecord]:
        """Newest first."""

    # --- recurring jobs ---

    @abstractmethod
    async def get_recurring_job(self, job_id: UUID) -> Optional[RecurringJobRecord]: ...

    @abstractmethod
    async def save_recurring_job(self, job: RecurringJobRecord) -> RecurringJobRecord: ...

    @abstractmethod
    async def list_recurring_jobs(self, owner_id: Optional[UUID] = None) -> List[RecurringJobRecord]: ...

    @abstractmethod
    async def list_active_recurring_jobs(self) -> List[RecurringJobRecord]: ...

    # --- audit / sessions ---

    @abstractmethod
    async def log_event(self, event: AuditEventRecord) -> AuditEventRecord: ...

    @abstractmethod
    async def list_events(
        self,
        content_id: Optional[UUID] = None,
        recurring_job_id: Optional[UUID] = None,
        limit: int = 50,
    ) -> List[AuditEventRecord]:
        """Newest first."""

    @abstractmethod
    async def delete_expired_sessions(self, now: datetime) -> int:
        """Delete sessions with expires_at < now; returns the number removed."""
