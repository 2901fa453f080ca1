"""
Content lifecycle: the single place where content status changes.
DRAFT -> PENDING_APPROVAL -> APPROVED | REJECTED; APPROVED -> SCHEDULED | PUBLISHED; SCHEDULED -> PUBLISHED.
APPROVED / SCHEDULED can go back to DRAFT. PUBLISHED and REJECTED are terminal.
Every transition is persisted first; the content:<id> publish job is armed or disarmed afterwards.
"""
import asyncio
import math
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Sequence
from uuid import UUID, uuid4

from app.clock import Clock, SystemClock
from app.errors import InvalidScheduleError, InvalidStateError, NoPendingApprovalError, NotFoundError, PublishExecutionError
from app.logging_config import get_logger
from app.scheduling import OneOff, Scheduler, content_job_id
from app.schemas.content import (
    PUBLISHABLE_STATUSES,
    ApprovalRecord,
    ApprovalStatus,
    AuditEventRecord,
    ContentCreateRequest,
    ContentRecord,
    ContentStatus,
    ContentVersionRecord,
)
from app.services.audit_service import ACTOR_SYSTEM, log_audit_event
from app.services.publish_executor import PublishExecutor
from app.store.base import ContentStore

logger = get_logger(__name__)

DEFAULT_PUBLISH_TIMEOUT_SECONDS = 60.0
DEFAULT_CLAIM_TTL_SECONDS = 600

OUTCOME_PUBLISHED = "published"
OUTCOME_NOOP = "noop"

_UPDATABLE_FIELDS = ("title", "body", "media_urls", "content_type", "platform", "campaign_id", "tags", "metadata")
_SCHEDULABLE_STATUSES = (ContentStatus.DRAFT, ContentStatus.APPROVED)
_PRE_SCHEDULE_STATUSES = (ContentStatus.DRAFT, ContentStatus.PENDING_APPROVAL)


@dataclass
class PublishOutcome:
    content: ContentRecord
    outcome: str  # published | noop


@dataclass
class ContentPage:
    items: List[ContentRecord]
    total: int
    page: int
    limit: int

    @property
    def total_pages(self) -> int:
        return math.ceil(self.total / self.limit) if self.limit else 0


def as_utc(value: datetime) -> datetime:
    """Naive datetimes are taken as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class ContentLifecycle:
    def __init__(
        self,
        store: ContentStore,
        executor: PublishExecutor,
        clock: Optional[Clock] = None,
        scheduler: Optional[Scheduler] = None,
        publish_timeout_seconds: float = DEFAULT_PUBLISH_TIMEOUT_SECONDS,
        claim_ttl_seconds: int = DEFAULT_CLAIM_TTL_SECONDS,
    ) -> None:
        self._store = store
        self._executor = executor
        self._clock = clock or SystemClock()
        self._scheduler = scheduler
        self._publish_timeout = publish_timeout_seconds
        self._claim_ttl = timedelta(seconds=claim_ttl_seconds)

    # --- publish job arming ---

    def arm_publish_job(self, content: ContentRecord) -> None:
        """Arm (or re-arm) the one-off job for a SCHEDULED item."""
        if self._scheduler is None or content.scheduled_for is None:
            return
        content_id = content.id
        self._scheduler.schedule_job(
            content_job_id(content_id),
            OneOff(content.scheduled_for),
            lambda: self._fire_scheduled_publish(content_id),
            description=f"Publish content: {content.title}",
        )

    def disarm_publish_job(self, content_id: UUID) -> bool:
        if self._scheduler is None:
            return False
        return self._scheduler.cancel_job(content_job_id(content_id))

    async def _fire_scheduled_publish(self, content_id: UUID) -> None:
        try:
            await self.publish(content_id, actor=ACTOR_SYSTEM)
        except PublishExecutionError as e:
            # Status stays SCHEDULED; the sweep retries it.
            logger.warning("content.scheduled_publish_failed", content_id=str(content_id), error=e.detail)
        except (InvalidStateError, NotFoundError) as e:
            logger.info("content.scheduled_publish_skipped", content_id=str(content_id), reason=e.code)

    # --- reads ---

    async def _require(self, content_id: UUID, user_id: Optional[UUID] = None) -> ContentRecord:
        content = await self._store.get_content(content_id)
        if content is None or (user_id is not None and content.owner_id != user_id):
            raise NotFoundError("content_not_found", content_id=str(content_id))
        return content

    async def get(self, content_id: UUID, user_id: Optional[UUID] = None) -> ContentRecord:
        return await self._require(content_id, user_id)

    async def list_content(
        self,
        owner_id: Optional[UUID] = None,
        statuses: Optional[Sequence[ContentStatus]] = None,
        content_types: Optional[Sequence[str]] = None,
        platforms: Optional[Sequence[str]] = None,
        page: int = 1,
        limit: int = 20,
    ) -> ContentPage:
        page = max(1, page)
        items, total = await self._store.list_content(
            owner_id=owner_id,
            statuses=statuses,
            content_types=content_types,
            platforms=platforms,
            offset=(page - 1) * limit,
            limit=limit,
        )
        return ContentPage(items=items, total=total, page=page, limit=limit)

    async def list_versions(self, content_id: UUID, user_id: Optional[UUID] = None) -> List[ContentVersionRecord]:
        await self._require(content_id, user_id)
        return await self._store.list_versions(content_id)

    async def list_approvals(self, content_id: UUID) -> List[ApprovalRecord]:
        await self._require(content_id)
        return await self._store.list_approvals(content_id)

    async def list_events(self, content_id: UUID, limit: int = 50) -> List[AuditEventRecord]:
        await self._require(content_id)
        return await self._store.list_events(content_id=content_id, limit=limit)

    # --- create / edit ---

    async def create(self, fields: ContentCreateRequest, actor: Optional[str] = None) -> ContentRecord:
        """New content always starts in DRAFT with version 1. Nothing is scheduled."""
        now = self._clock.now()
        content = ContentRecord(
            id=uuid4(),
            owner_id=fields.owner_id,
            organization_id=fields.organization_id,
            campaign_id=fields.campaign_id,
            title=fields.title,
            body=fields.body,
            media_urls=list(fields.media_urls),
            content_type=fields.content_type,
            platform=fields.platform,
            status=ContentStatus.DRAFT,
            tags=list(fields.tags),
            metadata_=dict(fields.metadata),
            created_at=now,
            updated_at=now,
        )
        await self._store.save_content(content)
        await self._create_version(content, 1, now)
        await log_audit_event(
            self._store,
            event_type="CONTENT_CREATED",
            actor=actor or str(fields.owner_id),
            content_id=content.id,
            metadata_={"content_type": content.content_type, "platform": content.platform},
            now=now,
        )
        logger.info("content.created", content_id=str(content.id), owner_id=str(content.owner_id))
        return content

    async def _create_version(self, content: ContentRecord, number: int, now: datetime) -> ContentVersionRecord:
        version = ContentVersionRecord(
            id=uuid4(),
            content_id=content.id,
            version=number,
            title=content.title,
            body=content.body,
            media_urls=list(content.media_urls),
            created_at=now,
        )
        return await self._store.create_version(version)

    async def _write(
        self,
        content_id: UUID,
        values: Dict[str, Any],
        expected_statuses: Optional[Sequence[ContentStatus]] = None,
        guard_claim: bool = True,
    ) -> ContentRecord:
        """
        Conditional write of the given fields only. Raises InvalidStateError when the status moved
        away from expected_statuses, or (guard_claim) a publish is in flight, since the caller read it.
        """
        stale_before = self._clock.now() - self._claim_ttl if guard_claim else None
        written = await self._store.update_content(
            content_id, values, expected_statuses=expected_statuses, claim_stale_before=stale_before,
        )
        if written is not None:
            return written
        current = await self._require(content_id)
        if guard_claim:
            self._ensure_not_publishing(current)
        raise InvalidStateError("content_state_changed", status=current.status.value)

    async def update(self, content_id: UUID, user_id: UUID, changes: Dict[str, Any]) -> ContentRecord:
        """
        Plain field update; status is untouched. A new version is cut only when body or media
        differ from the latest version (title-only edits do not version).
        Refused while a publish is in flight.
        """
        unknown = set(changes) - set(_UPDATABLE_FIELDS)
        if unknown:
            raise ValueError(f"unknown_fields: {', '.join(sorted(unknown))}")
        content = await self._require(content_id, user_id)
        self._ensure_not_publishing(content)
        values = {("metadata_" if key == "metadata" else key): value for key, value in changes.items()}
        # Raises (ValidationError) on values the record does not accept, e.g. a null body.
        edited = ContentRecord.model_validate({**content.model_dump(), **values})
        now = self._clock.now()
        values["updated_at"] = now

        latest = await self._store.get_latest_version(content_id)
        versioned = latest is None or latest.body != edited.body or latest.media_urls != edited.media_urls
        content = await self._write(content_id, values)
        if versioned:
            version = await self._create_version(content, (latest.version if latest else 0) + 1, now)
            await log_audit_event(
                self._store, "VERSION_CREATED", str(user_id), content_id=content_id,
                metadata_={"version": version.version}, now=now,
            )
        await log_audit_event(
            self._store, "CONTENT_UPDATED", str(user_id), content_id=content_id,
            metadata_={"fields": sorted(changes)}, now=now,
        )
        logger.info("content.updated", content_id=str(content_id), versioned=versioned)
        return content

    # --- approval ---

    async def submit_for_approval(self, content_id: UUID, user_id: UUID, notes: Optional[str] = None) -> ApprovalRecord:
        content = await self._require(content_id, user_id)
        if content.status != ContentStatus.DRAFT:
            raise InvalidStateError("content_not_draft", status=content.status.value)
        if await self._store.get_pending_approval(content_id) is not None:
            raise InvalidStateError("approval_already_pending")
        now = self._clock.now()
        approval = ApprovalRecord(
            id=uuid4(),
            content_id=content_id,
            requester_id=user_id,
            status=ApprovalStatus.PENDING,
            notes=notes,
            created_at=now,
        )
        await self._write(
            content_id,
            {"status": ContentStatus.PENDING_APPROVAL, "updated_at": now},
            expected_statuses=(ContentStatus.DRAFT,),
            guard_claim=False,
        )
        try:
            await self._store.save_approval(approval)
        except ValueError as e:
            await self._store.update_content(
                content_id,
                {"status": ContentStatus.DRAFT, "updated_at": now},
                expected_statuses=(ContentStatus.PENDING_APPROVAL,),
            )
            if str(e) == "pending_approval_exists":
                raise InvalidStateError("approval_already_pending") from e
            raise
        await log_audit_event(self._store, "SUBMITTED", str(user_id), content_id=content_id, now=now)
        logger.info("content.submitted", content_id=str(content_id), approval_id=str(approval.id))
        return approval

    async def review(
        self,
        content_id: UUID,
        reviewer_id: UUID,
        approved: bool,
        notes: Optional[str] = None,
    ) -> ContentRecord:
        """
        Resolve the pending approval request.
        Approved with a pre-scheduled instant still ahead -> SCHEDULED (job armed); a stale
        instant is dropped and the item is just APPROVED. Rejected -> REJECTED, instant cleared.
        """
        content = await self._require(content_id)
        pending = await self._store.get_pending_approval(content_id)
        if pending is None:
            raise NoPendingApprovalError(content_id=str(content_id))
        now = self._clock.now()

        if not approved:
            values: Dict[str, Any] = {"status": ContentStatus.REJECTED, "scheduled_for": None}
        elif content.scheduled_for is not None and content.scheduled_for > now:
            values = {"status": ContentStatus.SCHEDULED}
        else:
            if content.scheduled_for is not None:
                logger.info("content.stale_schedule_dropped", content_id=str(content_id))
            values = {"status": ContentStatus.APPROVED, "scheduled_for": None}
        values["updated_at"] = now
        content = await self._write(
            content_id, values, expected_statuses=(ContentStatus.PENDING_APPROVAL,), guard_claim=False,
        )

        pending.status = ApprovalStatus.APPROVED if approved else ApprovalStatus.REJECTED
        pending.reviewer_id = reviewer_id
        pending.review_notes = notes
        pending.reviewed_at = now
        await self._store.save_approval(pending)
        if content.status == ContentStatus.SCHEDULED:
            self.arm_publish_job(content)

        await log_audit_event(
            self._store,
            "APPROVED" if approved else "REJECTED",
            str(reviewer_id),
            content_id=content_id,
            metadata_={"approval_id": str(pending.id), "notes": notes, "status": content.status.value},
            now=now,
        )
        logger.info("content.reviewed", content_id=str(content_id), approved=approved, status=content.status.value)
        return content

    # --- scheduling ---

    def _require_future(self, at: datetime) -> datetime:
        at = as_utc(at)
        if at <= self._clock.now():
            raise InvalidScheduleError("schedule_not_in_future", scheduled_for=at.isoformat())
        return at

    def _ensure_not_publishing(self, content: ContentRecord) -> None:
        claimed_at = content.publish_claimed_at
        if claimed_at is not None and claimed_at >= self._clock.now() - self._claim_ttl:
            raise InvalidStateError("publish_in_progress")

    async def schedule(self, content_id: UUID, user_id: UUID, at: datetime) -> ContentRecord:
        """APPROVED -> SCHEDULED (armed). A DRAFT keeps its status and only records the requested instant."""
        content = await self._require(content_id, user_id)
        if content.status not in _SCHEDULABLE_STATUSES:
            raise InvalidStateError("content_not_schedulable", status=content.status.value)
        at = self._require_future(at)
        values: Dict[str, Any] = {"scheduled_for": at, "updated_at": self._clock.now()}
        if content.status == ContentStatus.APPROVED:
            values["status"] = ContentStatus.SCHEDULED
        content = await self._write(content_id, values, expected_statuses=(content.status,))
        if content.status == ContentStatus.SCHEDULED:
            self.arm_publish_job(content)
        await log_audit_event(
            self._store, "SCHEDULE_SET", str(user_id), content_id=content_id,
            metadata_={"scheduled_for": at.isoformat(), "armed": content.status == ContentStatus.SCHEDULED},
            now=content.updated_at,
        )
        logger.info("content.scheduled", content_id=str(content_id), scheduled_for=at.isoformat(), status=content.status.value)
        return content

    async def reschedule(self, content_id: UUID, user_id: UUID, new_at: datetime) -> ContentRecord:
        content = await self._require(content_id, user_id)
        pre_scheduled = content.status in _PRE_SCHEDULE_STATUSES and content.scheduled_for is not None
        if content.status != ContentStatus.SCHEDULED and not pre_scheduled:
            raise InvalidStateError("content_not_scheduled", status=content.status.value)
        new_at = self._require_future(new_at)
        if content.status == ContentStatus.SCHEDULED:
            self._ensure_not_publishing(content)
        content = await self._write(
            content_id,
            {"scheduled_for": new_at, "updated_at": self._clock.now()},
            expected_statuses=(content.status,),
        )
        if content.status == ContentStatus.SCHEDULED:
            self.arm_publish_job(content)
        await log_audit_event(
            self._store, "SCHEDULE_SET", str(user_id), content_id=content_id,
            metadata_={"scheduled_for": new_at.isoformat(), "rescheduled": True},
            now=content.updated_at,
        )
        logger.info("content.rescheduled", content_id=str(content_id), scheduled_for=new_at.isoformat())
        return content

    async def cancel_schedule(self, content_id: UUID, user_id: UUID) -> ContentRecord:
        """SCHEDULED -> APPROVED if it was ever published before, else DRAFT. Pre-schedules are just cleared."""
        content = await self._require(content_id, user_id)
        values: Dict[str, Any] = {"scheduled_for": None, "updated_at": self._clock.now()}
        if content.status == ContentStatus.SCHEDULED:
            self._ensure_not_publishing(content)
            values["status"] = ContentStatus.APPROVED if content.published_at is not None else ContentStatus.DRAFT
        elif not (content.status in _PRE_SCHEDULE_STATUSES and content.scheduled_for is not None):
            raise InvalidStateError("content_not_scheduled", status=content.status.value)
        content = await self._write(content_id, values, expected_statuses=(content.status,))
        self.disarm_publish_job(content_id)
        await log_audit_event(
            self._store, "SCHEDULE_CLEARED", str(user_id), content_id=content_id,
            metadata_={"status": content.status.value}, now=content.updated_at,
        )
        logger.info("content.schedule_cancelled", content_id=str(content_id), status=content.status.value)
        return content

    async def return_to_draft(self, content_id: UUID, user_id: UUID) -> ContentRecord:
        content = await self._require(content_id, user_id)
        if content.status not in PUBLISHABLE_STATUSES:
            raise InvalidStateError("content_not_returnable", status=content.status.value)
        self._ensure_not_publishing(content)
        was_scheduled = content.status == ContentStatus.SCHEDULED
        content = await self._write(
            content_id,
            {"status": ContentStatus.DRAFT, "scheduled_for": None, "updated_at": self._clock.now()},
            expected_statuses=(content.status,),
        )
        if was_scheduled:
            self.disarm_publish_job(content_id)
        await log_audit_event(self._store, "RETURNED_TO_DRAFT", str(user_id), content_id=content_id, now=content.updated_at)
        logger.info("content.returned_to_draft", content_id=str(content_id))
        return content

    # --- publish ---

    async def publish(self, content_id: UUID, actor: str = ACTOR_SYSTEM) -> PublishOutcome:
        """
        Publish through the executor, at most once per item.
        The store claim (publish_claimed_at) serializes concurrent triggers: whoever loses the
        claim, or finds the item already PUBLISHED, gets a noop outcome.
        """
        content = await self._require(content_id)
        if content.status == ContentStatus.PUBLISHED:
            return PublishOutcome(content=content, outcome=OUTCOME_NOOP)
        if content.status not in PUBLISHABLE_STATUSES:
            raise InvalidStateError("content_not_publishable", status=content.status.value)

        now = self._clock.now()
        claimed = await self._store.claim_for_publish(content_id, now, now - self._claim_ttl)
        if claimed is None:
            current = await self._require(content_id)
            if current.status == ContentStatus.PUBLISHED or current.publish_claimed_at is not None:
                logger.info("content.publish_noop", content_id=str(content_id), status=current.status.value)
                return PublishOutcome(content=current, outcome=OUTCOME_NOOP)
            raise InvalidStateError("content_not_publishable", status=current.status.value)

        try:
            published_url = await asyncio.wait_for(self._executor.publish(claimed), timeout=self._publish_timeout)
        except asyncio.TimeoutError as e:
            await self._record_publish_failure(content_id, actor, f"timeout after {self._publish_timeout:g}s")
            raise PublishExecutionError("publish_timeout", detail=f"timeout after {self._publish_timeout:g}s") from e
        except PublishExecutionError as e:
            await self._record_publish_failure(content_id, actor, e.detail)
            raise
        except Exception as e:
            # Any executor fault releases the claim and surfaces as a publish failure.
            error = str(e) or type(e).__name__
            await self._record_publish_failure(content_id, actor, error)
            raise PublishExecutionError(detail=error) from e

        published_at = self._clock.now()
        current = await self._store.update_content(
            content_id,
            {
                "status": ContentStatus.PUBLISHED,
                "published_at": published_at,
                "published_url": published_url,
                "scheduled_for": None,
                "publish_claimed_at": None,
                "last_publish_error": None,
                "updated_at": published_at,
            },
            expected_statuses=PUBLISHABLE_STATUSES,
        )
        if current is None:
            current = await self._require(content_id)
            logger.info("content.publish_noop", content_id=str(content_id), status=current.status.value)
            return PublishOutcome(content=current, outcome=OUTCOME_NOOP)
        self.disarm_publish_job(content_id)
        await log_audit_event(
            self._store, "PUBLISH_SUCCESS", actor, content_id=content_id,
            metadata_={"platform": current.platform, "published_url": published_url},
            now=published_at,
        )
        logger.info("content.published", content_id=str(content_id), published_url=published_url)
        return PublishOutcome(content=current, outcome=OUTCOME_PUBLISHED)

    async def _record_publish_failure(self, content_id: UUID, actor: str, error: Optional[str]) -> None:
        current = await self._store.get_content(content_id)
        if current is None:
            return
        now = self._clock.now()
        current = await self._store.update_content(
            content_id,
            {
                "publish_claimed_at": None,
                "publish_attempts": current.publish_attempts + 1,
                "last_publish_error": error,
                "updated_at": now,
            },
        )
        if current is None:
            return
        await log_audit_event(
            self._store, "PUBLISH_FAIL", actor, content_id=content_id,
            metadata_={"platform": current.platform, "error": error, "attempts": current.publish_attempts},
            now=now,
        )
        logger.warning("content.publish_failed", content_id=str(content_id), attempts=current.publish_attempts, error=error)

    # --- delete ---

    async def delete(self, content_id: UUID, user_id: UUID) -> None:
        content = await self._require(content_id, user_id)
        if content.status == ContentStatus.PUBLISHED and content.campaign_id is not None and content.published_url:
            raise InvalidStateError("published_campaign_content")
        self._ensure_not_publishing(content)
        await self._store.delete_content(content_id)
        self.disarm_publish_job(content_id)
        await log_audit_event(
            self._store, "CONTENT_DELETED", str(user_id), content_id=content_id,
            metadata_={"status": content.status.value}, now=self._clock.now(),
        )
        logger.info("content.deleted", content_id=str(content_id))
