"""
Publish scheduler service: one-off publish end to end, the catch-up sweep, the sweep vs one-off
race, startup reconciliation, system jobs (token refresh, session cleanup) and status.
"""
import asyncio
from datetime import datetime, timedelta
from unittest.mock import AsyncMock

import pytest

from app.schemas.content import ContentRecord, ContentStatus
from app.schemas.recurring_job import GenerationParams, RecurringJobStatus
from app.scheduling import content_job_id, recurring_job_id
from app.services.orchestrator import build_orchestrator
from app.services.scheduler_service import (
    SESSION_CLEANUP_JOB,
    SWEEP_FAILED,
    SWEEP_JOB,
    SWEEP_SKIPPED,
    TOKEN_REFRESH_JOB,
    TOKEN_REFRESH_WINDOW,
)

from conftest import START, approved_content, settle

PARAMS = GenerationParams(type="POST", platform="facebook", topic="weekly tips")


async def _force_scheduled(store, content: ContentRecord, at: datetime) -> ContentRecord:
    """Put an item in SCHEDULED directly in the store (as a previous process would have left it)."""
    content.status = ContentStatus.SCHEDULED
    content.scheduled_for = at
    await store.save_content(content)
    return content


async def _events(store, content_id, event_type):
    return [e for e in await store.list_events(content_id=content_id) if e.event_type == event_type]


@pytest.mark.asyncio
async def test_one_off_publishes_at_scheduled_time(orchestrator, clock, executor, owner_id) -> None:
    content = await approved_content(orchestrator.lifecycle, owner_id)
    await orchestrator.scheduler_service.schedule_one_off(content.id, owner_id, START + timedelta(hours=1))

    clock.advance(minutes=59)
    await settle()
    assert executor.calls == []

    clock.advance(minutes=1)
    await settle()
    stored = await orchestrator.store.get_content(content.id)
    assert stored.status == ContentStatus.PUBLISHED
    assert stored.published_url == f"https://social.example/posts/{content.id}"
    assert stored.scheduled_for is None
    assert not orchestrator.scheduler.has_job(content_job_id(content.id))
    assert executor.calls == [content.id]


@pytest.mark.asyncio
async def test_cancelled_one_off_never_publishes(orchestrator, clock, executor, owner_id) -> None:
    content = await approved_content(orchestrator.lifecycle, owner_id)
    service = orchestrator.scheduler_service
    await service.schedule_one_off(content.id, owner_id, START + timedelta(hours=1))

    cancelled = await service.cancel_one_off(content.id, owner_id)
    assert cancelled.status == ContentStatus.DRAFT
    assert not orchestrator.scheduler.has_job(content_job_id(content.id))

    clock.advance(hours=2)
    await settle()
    assert executor.calls == []
    assert (await service.sweep()).items == []


@pytest.mark.asyncio
async def test_failed_one_off_is_retried_by_sweep(orchestrator, clock, executor, owner_id) -> None:
    content = await approved_content(orchestrator.lifecycle, owner_id)
    service = orchestrator.scheduler_service
    await service.schedule_one_off(content.id, owner_id, START + timedelta(minutes=30))
    executor.fail_ids.add(content.id)

    clock.advance(minutes=30)
    await settle()
    stored = await orchestrator.store.get_content(content.id)
    assert stored.status == ContentStatus.SCHEDULED
    assert stored.publish_attempts == 1
    assert stored.last_publish_error == "platform unavailable"
    assert stored.publish_claimed_at is None
    assert not orchestrator.scheduler.has_job(content_job_id(content.id))

    executor.fail_ids.clear()
    result = await service.sweep()
    assert [i.outcome for i in result.items] == ["published"]
    assert (await orchestrator.store.get_content(content.id)).status == ContentStatus.PUBLISHED


@pytest.mark.asyncio
async def test_sweep_continues_past_failures(orchestrator, clock, executor, owner_id) -> None:
    store = orchestrator.store
    first = await approved_content(orchestrator.lifecycle, owner_id, title="first")
    second = await approved_content(orchestrator.lifecycle, owner_id, title="second")
    await _force_scheduled(store, first, START - timedelta(minutes=10))
    await _force_scheduled(store, second, START - timedelta(minutes=5))
    executor.fail_ids.add(first.id)

    result = await orchestrator.scheduler_service.sweep()

    by_id = {i.content_id: i for i in result.items}
    assert by_id[first.id].outcome == SWEEP_FAILED
    assert by_id[first.id].error == "platform unavailable"
    assert by_id[second.id].outcome == "published"
    assert (await store.get_content(first.id)).status == ContentStatus.SCHEDULED
    assert (await store.get_content(second.id)).status == ContentStatus.PUBLISHED
    assert orchestrator.scheduler_service.last_sweep_at == START


@pytest.mark.asyncio
async def test_sweep_skips_items_past_max_attempts(orchestrator, executor, owner_id) -> None:
    store = orchestrator.store
    content = await approved_content(orchestrator.lifecycle, owner_id)
    content.publish_attempts = 3
    await _force_scheduled(store, content, START - timedelta(minutes=1))

    result = await orchestrator.scheduler_service.sweep()

    assert result.items[0].outcome == SWEEP_SKIPPED
    assert result.items[0].error == "max_attempts_reached"
    assert executor.calls == []


@pytest.mark.asyncio
async def test_sweep_ignores_future_items(orchestrator, executor, owner_id) -> None:
    content = await approved_content(orchestrator.lifecycle, owner_id)
    await orchestrator.lifecycle.schedule(content.id, owner_id, START + timedelta(days=1))

    result = await orchestrator.scheduler_service.sweep()
    assert result.items == []
    assert executor.calls == []


@pytest.mark.asyncio
async def test_sweep_and_one_off_publish_exactly_once(orchestrator, clock, executor, owner_id) -> None:
    content = await approved_content(orchestrator.lifecycle, owner_id)
    await orchestrator.scheduler_service.schedule_one_off(content.id, owner_id, START + timedelta(minutes=10))
    executor.delay = 0.05

    clock.advance(minutes=10)
    sweep_result, _ = await asyncio.gather(orchestrator.scheduler_service.sweep(), settle(0.15))

    assert executor.calls == [content.id]
    assert len(await _events(orchestrator.store, content.id, "PUBLISH_SUCCESS")) == 1
    assert (await orchestrator.store.get_content(content.id)).status == ContentStatus.PUBLISHED
    assert sweep_result.count(SWEEP_FAILED) == 0


@pytest.mark.asyncio
async def test_concurrent_publish_calls_execute_once(orchestrator, executor, owner_id) -> None:
    lifecycle = orchestrator.lifecycle
    content = await approved_content(lifecycle, owner_id)
    executor.delay = 0.05

    outcomes = await asyncio.gather(lifecycle.publish(content.id), lifecycle.publish(content.id))

    assert sorted(o.outcome for o in outcomes) == ["noop", "published"]
    assert executor.calls == [content.id]


@pytest.mark.asyncio
async def test_reconcile_rebuilds_registry(orchestrator, clock, settings, executor, generator, owner_id) -> None:
    store = orchestrator.store
    future = await approved_content(orchestrator.lifecycle, owner_id, title="future")
    overdue = await approved_content(orchestrator.lifecycle, owner_id, title="overdue")
    await _force_scheduled(store, future, START + timedelta(hours=3))
    await _force_scheduled(store, overdue, START - timedelta(hours=1))
    active = await orchestrator.recurring.create(owner_id, "weekly", "0 9 * * 1", PARAMS)
    paused = await orchestrator.recurring.create(owner_id, "paused", "0 9 * * 2", PARAMS)
    await orchestrator.recurring.update_status(paused.id, owner_id, RecurringJobStatus.PAUSED)

    # A fresh process over the same store.
    restarted = build_orchestrator(settings, store=store, executor=executor, generator=generator, clock=clock)
    try:
        result = await restarted.scheduler_service.reconcile()
        assert result.content_jobs == 1
        assert result.recurring_jobs == 1
        armed = restarted.scheduler.registry.ids()
        assert armed == sorted([content_job_id(future.id), recurring_job_id(active.id)])
    finally:
        await restarted.scheduler.shutdown(grace_seconds=0.1)


@pytest.mark.asyncio
async def test_reconcile_skips_bad_cron(orchestrator, owner_id) -> None:
    job = await orchestrator.recurring.create(owner_id, "weekly", "0 9 * * 1", PARAMS)
    job.cron_expression = "bad"
    await orchestrator.store.save_recurring_job(job)

    result = await orchestrator.scheduler_service.reconcile()
    assert result.recurring_jobs == 0


@pytest.mark.asyncio
async def test_start_arms_system_jobs_once(orchestrator) -> None:
    service = orchestrator.scheduler_service
    await service.start()
    await service.start()

    ids = orchestrator.scheduler.registry.ids()
    assert ids == sorted([SWEEP_JOB, TOKEN_REFRESH_JOB, SESSION_CLEANUP_JOB])
    status = await service.status()
    assert status["enabled"] is True
    assert status["started"] is True
    assert {j.job_id for j in status["jobs"]} == set(ids)


@pytest.mark.asyncio
async def test_disabled_scheduler_arms_nothing(settings, clock, executor, generator, owner_id) -> None:
    disabled = settings.model_copy(update={"scheduler_enabled": False})
    orch = build_orchestrator(disabled, executor=executor, generator=generator, clock=clock)
    await orch.scheduler_service.start()
    assert len(orch.scheduler.registry) == 0
    assert (await orch.scheduler_service.status())["started"] is False

    content = await approved_content(orch.lifecycle, owner_id)
    scheduled = await orch.lifecycle.schedule(content.id, owner_id, START + timedelta(minutes=1))
    await orch.recurring.create(owner_id, "weekly", "0 9 * * 1", PARAMS)
    assert scheduled.status == ContentStatus.SCHEDULED
    assert len(orch.scheduler.registry) == 0

    clock.advance(minutes=2)
    await settle()
    assert executor.calls == []
    assert (await orch.store.get_content(content.id)).status == ContentStatus.SCHEDULED

    # a manual sweep still publishes
    result = await orch.scheduler_service.sweep()
    assert result.count("published") == 1
    await orch.scheduler.shutdown(grace_seconds=0.1)


@pytest.mark.asyncio
async def test_sweep_job_fires_on_its_cron(orchestrator, clock, owner_id) -> None:
    content = await approved_content(orchestrator.lifecycle, owner_id)
    await _force_scheduled(orchestrator.store, content, START - timedelta(minutes=1))
    await orchestrator.scheduler_service.start()

    # default SWEEP_CRON: every 5 minutes
    clock.advance(minutes=5)
    await settle()
    assert (await orchestrator.store.get_content(content.id)).status == ContentStatus.PUBLISHED


@pytest.mark.asyncio
async def test_session_cleanup_removes_expired_only(orchestrator, owner_id) -> None:
    store = orchestrator.store
    store.add_session(owner_id, START - timedelta(minutes=1))
    store.add_session(owner_id, START - timedelta(days=2))
    store.add_session(owner_id, START + timedelta(hours=1))

    assert await orchestrator.scheduler_service.cleanup_sessions() == 2
    assert await orchestrator.scheduler_service.cleanup_sessions() == 0


@pytest.mark.asyncio
async def test_token_refresh_uses_24h_window(settings, clock, executor, generator) -> None:
    refresher = AsyncMock()
    refresher.refresh_expiring.return_value = 2
    orch = build_orchestrator(settings, executor=executor, generator=generator, clock=clock, token_refresher=refresher)

    assert await orch.scheduler_service.refresh_integration_tokens() == 2
    refresher.refresh_expiring.assert_awaited_once_with(START + TOKEN_REFRESH_WINDOW)


@pytest.mark.asyncio
async def test_token_refresh_without_refresher_is_noop(orchestrator) -> None:
    assert await orchestrator.scheduler_service.refresh_integration_tokens() == 0


@pytest.mark.asyncio
async def test_list_scheduled_for_user_soonest_first(orchestrator, owner_id) -> None:
    service = orchestrator.scheduler_service
    later = await approved_content(orchestrator.lifecycle, owner_id, title="later")
    sooner = await approved_content(orchestrator.lifecycle, owner_id, title="sooner")
    await service.schedule_one_off(later.id, owner_id, START + timedelta(days=2))
    await service.schedule_one_off(sooner.id, owner_id, START + timedelta(days=1))

    items = await service.list_scheduled_for_user(owner_id)
    assert [c.id for c in items] == [sooner.id, later.id]


@pytest.mark.asyncio
async def test_reschedule_moves_the_armed_job(orchestrator, clock, executor, owner_id) -> None:
    content = await approved_content(orchestrator.lifecycle, owner_id)
    service = orchestrator.scheduler_service
    await service.schedule_one_off(content.id, owner_id, START + timedelta(hours=1))
    await service.reschedule(content.id, owner_id, START + timedelta(hours=3))

    clock.advance(hours=2)
    await settle()
    assert executor.calls == []
    job = orchestrator.scheduler.registry.get(content_job_id(content.id))
    assert job.next_run_at == START + timedelta(hours=3)

    clock.advance(hours=1)
    await settle()
    assert executor.calls == [content.id]


@pytest.mark.asyncio
async def test_status_counts_pending(orchestrator, owner_id) -> None:
    content = await approved_content(orchestrator.lifecycle, owner_id)
    await _force_scheduled(orchestrator.store, content, START - timedelta(minutes=1))

    status = await orchestrator.scheduler_service.status()
    assert status["pending_count"] == 1
    assert status["last_sweep_at"] is None
