"""PostgreSQL store (SQLAlchemy 2.0 async ORM). One short transaction per call."""
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence, Tuple
from uuid import UUID

from sqlalchemy import delete, func, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.models import ApprovalRequest, AuditEvent, ContentItem, ContentVersion, RecurringJob, UserSession
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


def _content_row(content: ContentRecord) -> ContentItem:
    data = content.model_dump()
    data["status"] = content.status.value
    return ContentItem(**data)


def _content_values(values: Dict[str, Any]) -> Dict[Any, Any]:
    """Record field names -> mapped columns, enum statuses as their stored value."""
    return {
        getattr(ContentItem, key): value.value if isinstance(value, ContentStatus) else value
        for key, value in values.items()
    }


def _approval_row(approval: ApprovalRecord) -> ApprovalRequest:
    data = approval.model_dump()
    data["status"] = approval.status.value
    return ApprovalRequest(**data)


def _recurring_row(job: RecurringJobRecord) -> RecurringJob:
    data = job.model_dump()
    data["status"] = job.status.value
    return RecurringJob(**data)


class SqlContentStore(ContentStore):
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    # --- content ---

    async def get_content(self, content_id: UUID) -> Optional[ContentRecord]:
        async with self._session_factory() as db:
            row = await db.get(ContentItem, content_id)
            return ContentRecord.model_validate(row) if row else None

    async def save_content(self, content: ContentRecord) -> ContentRecord:
        async with self._session_factory.begin() as db:
            await db.merge(_content_row(content))
        return content

    async def update_content(
        self,
        content_id: UUID,
        values: Dict[str, Any],
        expected_statuses: Optional[Sequence[ContentStatus]] = None,
        claim_stale_before: Optional[datetime] = None,
    ) -> Optional[ContentRecord]:
        conditions = [ContentItem.id == content_id]
        if expected_statuses is not None:
            conditions.append(ContentItem.status.in_([s.value for s in expected_statuses]))
        if claim_stale_before is not None:
            conditions.append(
                or_(
                    ContentItem.publish_claimed_at.is_(None),
                    ContentItem.publish_claimed_at < claim_stale_before,
                )
            )
        stmt = (
            update(ContentItem)
            .where(*conditions)
            .values(_content_values(values))
            .returning(ContentItem)
            .execution_options(synchronize_session=False)
        )
        async with self._session_factory.begin() as db:
            r = await db.execute(stmt)
            row = r.scalar_one_or_none()
            return ContentRecord.model_validate(row) if row else None

    async def delete_content(self, content_id: UUID) -> bool:
        async with self._session_factory.begin() as db:
            r = await db.execute(delete(ContentItem).where(ContentItem.id == content_id))
            return (r.rowcount or 0) > 0

    async def list_content(
        self,
        owner_id: Optional[UUID] = None,
        statuses: Optional[Sequence[ContentStatus]] = None,
        content_types: Optional[Sequence[str]] = None,
        platforms: Optional[Sequence[str]] = None,
        offset: int = 0,
        limit: int = 20,
    ) -> Tuple[List[ContentRecord], int]:
        conditions = []
        if owner_id is not None:
            conditions.append(ContentItem.owner_id == owner_id)
        if statuses:
            conditions.append(ContentItem.status.in_([s.value for s in statuses]))
        if content_types:
            conditions.append(ContentItem.content_type.in_(list(content_types)))
        if platforms:
            conditions.append(ContentItem.platform.in_(list(platforms)))
        async with self._session_factory() as db:
            count_q = select(func.count(ContentItem.id)).where(*conditions)
            total = (await db.execute(count_q)).scalar() or 0
            q = (
                select(ContentItem)
                .where(*conditions)
                .order_by(ContentItem.created_at.desc())
                .offset(offset)
                .limit(limit)
            )
            r = await db.execute(q)
            return [ContentRecord.model_validate(row) for row in r.scalars().all()], total

    async def list_scheduled_due(self, now: datetime) -> List[ContentRecord]:
        q = (
            select(ContentItem)
            .where(
                ContentItem.status == ContentStatus.SCHEDULED.value,
                ContentItem.scheduled_for.isnot(None),
                ContentItem.scheduled_for <= now,
            )
            .order_by(ContentItem.scheduled_for.asc())
        )
        async with self._session_factory() as db:
            r = await db.execute(q)
            return [ContentRecord.model_validate(row) for row in r.scalars().all()]

    async def list_scheduled_future(self, now: datetime) -> List[ContentRecord]:
        q = (
            select(ContentItem)
            .where(
                ContentItem.status == ContentStatus.SCHEDULED.value,
                ContentItem.scheduled_for > now,
            )
            .order_by(ContentItem.scheduled_for.asc())
        )
        async with self._session_factory() as db:
            r = await db.execute(q)
            return [ContentRecord.model_validate(row) for row in r.scalars().all()]

    async def claim_for_publish(
        self,
        content_id: UUID,
        now: datetime,
        stale_before: datetime,
    ) -> Optional[ContentRecord]:
        stmt = (
            update(ContentItem)
            .where(
                ContentItem.id == content_id,
                ContentItem.status.in_([s.value for s in PUBLISHABLE_STATUSES]),
                or_(
                    ContentItem.publish_claimed_at.is_(None),
                    ContentItem.publish_claimed_at < stale_before,
                ),
            )
            .values(publish_claimed_at=now, last_publish_attempt_at=now)
            .returning(ContentItem)
            .execution_options(synchronize_session=False)
        )
        async with self._session_factory.begin() as db:
            r = await db.execute(stmt)
            row = r.scalar_one_or_none()
            return ContentRecord.model_validate(row) if row else None

    # --- versions ---

    async def create_version(self, version: ContentVersionRecord) -> ContentVersionRecord:
        async with self._session_factory.begin() as db:
            db.add(ContentVersion(**version.model_dump()))
        return version

    async def list_versions(self, content_id: UUID) -> List[ContentVersionRecord]:
        q = select(ContentVersion).where(ContentVersion.content_id == content_id).order_by(ContentVersion.version.asc())
        async with self._session_factory() as db:
            r = await db.execute(q)
            return [ContentVersionRecord.model_validate(row) for row in r.scalars().all()]

    async def get_latest_version(self, content_id: UUID) -> Optional[ContentVersionRecord]:
        q = (
            select(ContentVersion)
            .where(ContentVersion.content_id == content_id)
            .order_by(ContentVersion.version.desc())
            .limit(1)
        )
        async with self._session_factory() as db:
            row = (await db.execute(q)).scalar_one_or_none()
            return ContentVersionRecord.model_validate(row) if row else None

    # --- approvals ---

    async def get_pending_approval(self, content_id: UUID) -> Optional[ApprovalRecord]:
        q = select(ApprovalRequest).where(
            ApprovalRequest.content_id == content_id,
            ApprovalRequest.status == ApprovalStatus.PENDING.value,
        )
        async with self._session_factory() as db:
            row = (await db.execute(q)).scalar_one_or_none()
            return ApprovalRecord.model_validate(row) if row else None

    async def save_approval(self, approval: ApprovalRecord) -> ApprovalRecord:
        try:
            async with self._session_factory.begin() as db:
                await db.merge(_approval_row(approval))
        except IntegrityError as e:
            # ux_approval_requests_one_pending
            raise ValueError("pending_approval_exists") from e
        return approval

    async def list_approvals(self, content_id: UUID) -> List[ApprovalRecord]:
        q = (
            select(ApprovalRequest)
            .where(ApprovalRequest.content_id == content_id)
            .order_by(ApprovalRequest.created_at.desc())
        )
        async with self._session_factory() as db:
            r = await db.execute(q)
            return [ApprovalRecord.model_validate(row) for row in r.scalars().all()]

    # --- recurring jobs ---

    async def get_recurring_job(self, job_id: UUID) -> Optional[RecurringJobRecord]:
        async with self._session_factory() as db:
            row = await db.get(RecurringJob, job_id)
            return RecurringJobRecord.model_validate(row) if row else None

    async def save_recurring_job(self, job: RecurringJobRecord) -> RecurringJobRecord:
        async with self._session_factory.begin() as db:
            await db.merge(_recurring_row(job))
        return job

    async def list_recurring_jobs(self, owner_id: Optional[UUID] = None) -> List[RecurringJobRecord]:
        q = select(RecurringJob).order_by(RecurringJob.created_at.desc())
        if owner_id is not None:
            q = q.where(RecurringJob.owner_id == owner_id)
        async with self._session_factory() as db:
            r = await db.execute(q)
            return [RecurringJobRecord.model_validate(row) for row in r.scalars().all()]

    async def list_active_recurring_jobs(self) -> List[RecurringJobRecord]:
        q = select(RecurringJob).where(RecurringJob.status == RecurringJobStatus.ACTIVE.value)
        async with self._session_factory() as db:
            r = await db.execute(q)
            return [RecurringJobRecord.model_validate(row) for row in r.scalars().all()]

    # --- audit / sessions ---

    async def log_event(self, event: AuditEventRecord) -> AuditEventRecord:
        async with self._session_factory.begin() as db:
            db.add(AuditEvent(**event.model_dump()))
        return event

    async def list_events(
        self,
        content_id: Optional[UUID] = None,
        recurring_job_id: Optional[UUID] = None,
        limit: int = 50,
    ) -> List[AuditEventRecord]:
        q = select(AuditEvent).order_by(AuditEvent.created_at.desc()).limit(limit)
        if content_id is not None:
            q = q.where(AuditEvent.content_id == content_id)
        if recurring_job_id is not None:
            q = q.where(AuditEvent.recurring_job_id == recurring_job_id)
        async with self._session_factory() as db:
            r = await db.execute(q)
            return [AuditEventRecord.model_validate(row) for row in r.scalars().all()]

    async def delete_expired_sessions(self, now: datetime) -> int:
        async with self._session_factory.begin() as db:
            r = await db.execute(delete(UserSession).where(UserSession.expires_at < now))
            return r.rowcount or 0
