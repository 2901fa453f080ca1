"""
Content lifecycle: versions, approval workflow, scheduling transitions, publish guard, delete policy.
"""
from datetime import timedelta
from uuid import uuid4

import pytest

from app.errors import InvalidScheduleError, InvalidStateError, NoPendingApprovalError, NotFoundError, PublishExecutionError
from app.scheduling import content_job_id
from app.schemas.content import ApprovalStatus, ContentStatus

from conftest import approved_content, content_fields


@pytest.mark.asyncio
async def test_create_starts_in_draft_with_first_version(lifecycle, orchestrator, owner_id) -> None:
    content = await lifecycle.create(content_fields(owner_id))

    assert content.status == ContentStatus.DRAFT
    assert content.scheduled_for is None
    versions = await lifecycle.list_versions(content.id, owner_id)
    assert [v.version for v in versions] == [1]
    assert versions[0].body == "text A"
    assert len(orchestrator.scheduler.registry) == 0


@pytest.mark.asyncio
async def test_identical_edit_does_not_add_a_version(lifecycle, owner_id) -> None:
    """Launch Post: text A -> text B -> text B again gives versions 1 and 2 only."""
    content = await lifecycle.create(content_fields(owner_id, body="text A"))
    await lifecycle.update(content.id, owner_id, {"body": "text B"})
    await lifecycle.update(content.id, owner_id, {"body": "text B"})

    versions = await lifecycle.list_versions(content.id)
    assert [v.version for v in versions] == [1, 2]
    assert versions[1].body == "text B"


@pytest.mark.asyncio
async def test_title_only_edit_is_not_versioned_but_media_edit_is(lifecycle, owner_id) -> None:
    content = await lifecycle.create(content_fields(owner_id))
    updated = await lifecycle.update(content.id, owner_id, {"title": "Renamed"})
    assert updated.title == "Renamed"
    assert len(await lifecycle.list_versions(content.id)) == 1

    await lifecycle.update(content.id, owner_id, {"media_urls": ["https://cdn.example/a.jpg"]})
    versions = await lifecycle.list_versions(content.id)
    assert [v.version for v in versions] == [1, 2]
    assert versions[1].media_urls == ["https://cdn.example/a.jpg"]
    assert versions[1].title == "Renamed"


@pytest.mark.asyncio
async def test_update_does_not_change_status(lifecycle, owner_id) -> None:
    content = await approved_content(lifecycle, owner_id)
    updated = await lifecycle.update(content.id, owner_id, {"body": "fresh copy", "metadata": {"k": "v"}})
    assert updated.status == ContentStatus.APPROVED
    assert updated.metadata_ == {"k": "v"}


@pytest.mark.asyncio
async def test_update_with_null_body_writes_nothing(lifecycle, owner_id) -> None:
    content = await lifecycle.create(content_fields(owner_id))
    with pytest.raises(ValueError):
        await lifecycle.update(content.id, owner_id, {"body": None})

    stored = await lifecycle.get(content.id)
    assert stored.body == "text A"
    assert len(await lifecycle.list_versions(content.id)) == 1


@pytest.mark.asyncio
async def test_update_by_other_user_is_not_found(lifecycle, owner_id) -> None:
    content = await lifecycle.create(content_fields(owner_id))
    with pytest.raises(NotFoundError):
        await lifecycle.update(content.id, uuid4(), {"body": "hijack"})
    with pytest.raises(NotFoundError):
        await lifecycle.update(uuid4(), owner_id, {"body": "nothing here"})


@pytest.mark.asyncio
async def test_submit_twice_fails_second_time(lifecycle, owner_id) -> None:
    content = await lifecycle.create(content_fields(owner_id))
    approval = await lifecycle.submit_for_approval(content.id, owner_id, notes="please review")
    assert approval.status == ApprovalStatus.PENDING
    assert (await lifecycle.get(content.id)).status == ContentStatus.PENDING_APPROVAL

    with pytest.raises(InvalidStateError):
        await lifecycle.submit_for_approval(content.id, owner_id)
    assert len(await lifecycle.list_approvals(content.id)) == 1


@pytest.mark.asyncio
async def test_review_without_pending_request(lifecycle, owner_id) -> None:
    content = await lifecycle.create(content_fields(owner_id))
    with pytest.raises(NoPendingApprovalError):
        await lifecycle.review(content.id, uuid4(), approved=True)


@pytest.mark.asyncio
async def test_review_approve_and_reject(lifecycle, clock, owner_id) -> None:
    approved = await approved_content(lifecycle, owner_id)
    assert approved.status == ContentStatus.APPROVED
    history = await lifecycle.list_approvals(approved.id)
    assert history[0].status == ApprovalStatus.APPROVED
    assert history[0].reviewed_at is not None

    other = await lifecycle.create(content_fields(owner_id, title="Second"))
    await lifecycle.submit_for_approval(other.id, owner_id)
    rejected = await lifecycle.review(other.id, uuid4(), approved=False, notes="off brand")
    assert rejected.status == ContentStatus.REJECTED
    with pytest.raises(InvalidStateError):
        await lifecycle.schedule(other.id, owner_id, clock.now() + timedelta(hours=1))


@pytest.mark.asyncio
async def test_schedule_in_the_past_is_rejected(lifecycle, clock, owner_id) -> None:
    content = await approved_content(lifecycle, owner_id)
    with pytest.raises(InvalidScheduleError):
        await lifecycle.schedule(content.id, owner_id, clock.now() - timedelta(seconds=1))
    with pytest.raises(InvalidScheduleError):
        await lifecycle.schedule(content.id, owner_id, clock.now())
    assert (await lifecycle.get(content.id)).status == ContentStatus.APPROVED


@pytest.mark.asyncio
async def test_schedule_approved_content_arms_one_off(lifecycle, orchestrator, clock, owner_id) -> None:
    content = await approved_content(lifecycle, owner_id)
    at = clock.now() + timedelta(hours=1)
    scheduled = await lifecycle.schedule(content.id, owner_id, at)

    assert scheduled.status == ContentStatus.SCHEDULED
    assert scheduled.scheduled_for == at
    job = orchestrator.scheduler.registry.get(content_job_id(content.id))
    assert job is not None
    assert job.kind == "one_off"
    assert job.next_run_at == at


@pytest.mark.asyncio
async def test_naive_schedule_time_is_taken_as_utc(lifecycle, clock, owner_id) -> None:
    content = await approved_content(lifecycle, owner_id)
    naive = (clock.now() + timedelta(hours=2)).replace(tzinfo=None)
    scheduled = await lifecycle.schedule(content.id, owner_id, naive)
    assert scheduled.scheduled_for == clock.now() + timedelta(hours=2)


@pytest.mark.asyncio
async def test_pre_scheduled_draft_is_armed_on_approval(lifecycle, orchestrator, clock, owner_id) -> None:
    content = await lifecycle.create(content_fields(owner_id))
    at = clock.now() + timedelta(hours=3)
    draft = await lifecycle.schedule(content.id, owner_id, at)
    assert draft.status == ContentStatus.DRAFT
    assert draft.scheduled_for == at
    assert content_job_id(content.id) not in orchestrator.scheduler.registry

    await lifecycle.submit_for_approval(content.id, owner_id)
    reviewed = await lifecycle.review(content.id, uuid4(), approved=True)
    assert reviewed.status == ContentStatus.SCHEDULED
    assert content_job_id(content.id) in orchestrator.scheduler.registry


@pytest.mark.asyncio
async def test_stale_pre_schedule_is_dropped_on_approval(lifecycle, orchestrator, clock, owner_id) -> None:
    content = await lifecycle.create(content_fields(owner_id))
    await lifecycle.schedule(content.id, owner_id, clock.now() + timedelta(hours=1))
    await lifecycle.submit_for_approval(content.id, owner_id)
    clock.advance(hours=2)

    reviewed = await lifecycle.review(content.id, uuid4(), approved=True)
    assert reviewed.status == ContentStatus.APPROVED
    assert reviewed.scheduled_for is None
    assert content_job_id(content.id) not in orchestrator.scheduler.registry


@pytest.mark.asyncio
async def test_rejection_clears_pre_schedule(lifecycle, clock, owner_id) -> None:
    content = await lifecycle.create(content_fields(owner_id))
    await lifecycle.schedule(content.id, owner_id, clock.now() + timedelta(hours=1))
    await lifecycle.submit_for_approval(content.id, owner_id)
    rejected = await lifecycle.review(content.id, uuid4(), approved=False)
    assert rejected.status == ContentStatus.REJECTED
    assert rejected.scheduled_for is None


@pytest.mark.asyncio
async def test_cancel_schedule_reverts_to_draft_and_disarms(lifecycle, orchestrator, clock, owner_id) -> None:
    content = await approved_content(lifecycle, owner_id)
    await lifecycle.schedule(content.id, owner_id, clock.now() + timedelta(hours=1))

    cancelled = await lifecycle.cancel_schedule(content.id, owner_id)
    assert cancelled.status == ContentStatus.DRAFT
    assert cancelled.scheduled_for is None
    assert content_job_id(content.id) not in orchestrator.scheduler.registry
    due = await orchestrator.store.list_scheduled_due(clock.now() + timedelta(hours=2))
    assert content.id not in [c.id for c in due]


@pytest.mark.asyncio
async def test_cancel_schedule_of_previously_published_content_reverts_to_approved(lifecycle, orchestrator, clock, owner_id) -> None:
    content = await approved_content(lifecycle, owner_id)
    stored = await orchestrator.store.get_content(content.id)
    stored.status = ContentStatus.SCHEDULED
    stored.scheduled_for = clock.now() + timedelta(hours=1)
    stored.published_at = clock.now() - timedelta(days=30)
    await orchestrator.store.save_content(stored)

    cancelled = await lifecycle.cancel_schedule(content.id, owner_id)
    assert cancelled.status == ContentStatus.APPROVED


@pytest.mark.asyncio
async def test_cancel_schedule_requires_scheduled(lifecycle, owner_id) -> None:
    content = await approved_content(lifecycle, owner_id)
    with pytest.raises(InvalidStateError):
        await lifecycle.cancel_schedule(content.id, owner_id)


@pytest.mark.asyncio
async def test_reschedule_moves_the_armed_job(lifecycle, orchestrator, clock, owner_id) -> None:
    content = await approved_content(lifecycle, owner_id)
    await lifecycle.schedule(content.id, owner_id, clock.now() + timedelta(hours=1))
    new_at = clock.now() + timedelta(hours=5)

    moved = await lifecycle.reschedule(content.id, owner_id, new_at)
    assert moved.status == ContentStatus.SCHEDULED
    assert moved.scheduled_for == new_at
    assert orchestrator.scheduler.registry.get(content_job_id(content.id)).next_run_at == new_at
    assert len(orchestrator.scheduler.registry) == 1

    with pytest.raises(InvalidScheduleError):
        await lifecycle.reschedule(content.id, owner_id, clock.now() - timedelta(minutes=1))


@pytest.mark.asyncio
async def test_return_to_draft_disarms(lifecycle, orchestrator, clock, owner_id) -> None:
    content = await approved_content(lifecycle, owner_id)
    await lifecycle.schedule(content.id, owner_id, clock.now() + timedelta(hours=1))

    draft = await lifecycle.return_to_draft(content.id, owner_id)
    assert draft.status == ContentStatus.DRAFT
    assert draft.scheduled_for is None
    assert content_job_id(content.id) not in orchestrator.scheduler.registry
    with pytest.raises(InvalidStateError):
        await lifecycle.return_to_draft(content.id, owner_id)


@pytest.mark.asyncio
async def test_publish_approved_content(lifecycle, executor, clock, owner_id) -> None:
    content = await approved_content(lifecycle, owner_id)
    result = await lifecycle.publish(content.id, actor=str(owner_id))

    assert result.outcome == "published"
    assert result.content.status == ContentStatus.PUBLISHED
    assert result.content.published_at == clock.now()
    assert result.content.published_url == f"https://social.example/posts/{content.id}"
    assert result.content.publish_claimed_at is None

    again = await lifecycle.publish(content.id)
    assert again.outcome == "noop"
    assert executor.calls == [content.id]


@pytest.mark.asyncio
async def test_publish_requires_approval(lifecycle, executor, owner_id) -> None:
    content = await lifecycle.create(content_fields(owner_id))
    with pytest.raises(InvalidStateError):
        await lifecycle.publish(content.id)
    assert executor.calls == []


@pytest.mark.asyncio
async def test_publish_failure_leaves_status_and_releases_claim(lifecycle, executor, owner_id) -> None:
    content = await approved_content(lifecycle, owner_id)
    executor.fail_with = RuntimeError("token expired")

    with pytest.raises(PublishExecutionError) as exc_info:
        await lifecycle.publish(content.id)
    assert exc_info.value.detail == "token expired"

    stored = await lifecycle.get(content.id)
    assert stored.status == ContentStatus.APPROVED
    assert stored.publish_attempts == 1
    assert stored.last_publish_error == "token expired"
    assert stored.publish_claimed_at is None
    assert stored.published_at is None

    executor.fail_with = None
    result = await lifecycle.publish(content.id)
    assert result.outcome == "published"
    assert result.content.last_publish_error is None


@pytest.mark.asyncio
async def test_publish_timeout_is_a_publish_failure(lifecycle, executor, settings, owner_id) -> None:
    content = await approved_content(lifecycle, owner_id)
    executor.delay = settings.publish_timeout_seconds + 1

    with pytest.raises(PublishExecutionError) as exc_info:
        await lifecycle.publish(content.id)
    assert exc_info.value.code == "publish_timeout"
    assert (await lifecycle.get(content.id)).status == ContentStatus.APPROVED


@pytest.mark.asyncio
async def test_delete_policy(lifecycle, orchestrator, owner_id) -> None:
    campaign = uuid4()
    published = await approved_content(lifecycle, owner_id, campaign_id=campaign)
    await lifecycle.publish(published.id)
    with pytest.raises(InvalidStateError):
        await lifecycle.delete(published.id, owner_id)

    draft = await lifecycle.create(content_fields(owner_id))
    await lifecycle.delete(draft.id, owner_id)
    with pytest.raises(NotFoundError):
        await lifecycle.get(draft.id)
    assert await orchestrator.store.list_versions(draft.id) == []


@pytest.mark.asyncio
async def test_audit_trail(lifecycle, owner_id) -> None:
    content = await approved_content(lifecycle, owner_id)
    await lifecycle.publish(content.id)

    events = await lifecycle.list_events(content.id)
    types = [e.event_type for e in reversed(events)]
    assert types == ["CONTENT_CREATED", "SUBMITTED", "APPROVED", "PUBLISH_SUCCESS"]


@pytest.mark.asyncio
async def test_list_content_filters_and_pages(lifecycle, owner_id) -> None:
    for i in range(3):
        await lifecycle.create(content_fields(owner_id, title=f"Post {i}"))
    await lifecycle.create(content_fields(owner_id, title="Ad", content_type="AD"))
    await lifecycle.create(content_fields(uuid4(), title="Someone else"))

    page = await lifecycle.list_content(owner_id=owner_id, content_types=["POST"], page=1, limit=2)
    assert page.total == 3
    assert len(page.items) == 2
    assert page.total_pages == 2
    drafts = await lifecycle.list_content(owner_id=owner_id, statuses=[ContentStatus.DRAFT])
    assert drafts.total == 4
