"""
Shared fixtures: memory store, manual clock, fake publish executor / content generator.
The manual clock only moves when a test calls advance(); scheduler timers wake shortly after.
"""
import asyncio
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional
from uuid import UUID, uuid4

import pytest
import pytest_asyncio

from app.config import Settings
from app.schemas.content import ContentCreateRequest, ContentRecord
from app.schemas.recurring_job import GenerationParams
from app.services.content_generator import GeneratedContent
from app.services.content_lifecycle import ContentLifecycle
from app.services.orchestrator import Orchestrator, build_orchestrator
from app.store import InMemoryContentStore

# Monday
START = datetime(2026, 1, 5, 9, 0, tzinfo=timezone.utc)


class ManualClock:
    def __init__(self, start: datetime = START) -> None:
        self.current = start

    def now(self) -> datetime:
        return self.current

    def advance(self, **delta: float) -> datetime:
        self.current += timedelta(**delta)
        return self.current

    async def sleep(self, seconds: float) -> None:
        deadline = self.current + timedelta(seconds=seconds)
        while self.current < deadline:
            await asyncio.sleep(0.001)


class FakeExecutor:
    def __init__(self) -> None:
        self.calls: List[UUID] = []
        self.delay = 0.0
        self.fail_with: Optional[BaseException] = None
        self.fail_ids: set = set()

    async def publish(self, content: ContentRecord) -> str:
        self.calls.append(content.id)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail_with is not None or content.id in self.fail_ids:
            raise self.fail_with or RuntimeError("platform unavailable")
        return f"https://social.example/posts/{content.id}"


class FakeGenerator:
    def __init__(self) -> None:
        self.calls: List[GenerationParams] = []
        self.fail_with: Optional[BaseException] = None

    async def generate(self, params: GenerationParams) -> GeneratedContent:
        self.calls.append(params)
        if self.fail_with is not None:
            raise self.fail_with
        return GeneratedContent(title=f"About {params.topic}", text=f"A {params.type} on {params.topic}.")


class SuspendingContentStore(InMemoryContentStore):
    """
    Memory store whose reads yield to the event loop, like a real database round trip.
    hold(name) parks the next call of that read right after it has read, until the returned
    event is set, so a concurrent operation can run against the caller's stale copy.
    """

    def __init__(self) -> None:
        super().__init__()
        self._gates: Dict[str, asyncio.Event] = {}
        self.parked: Dict[str, asyncio.Event] = {}

    def hold(self, name: str) -> asyncio.Event:
        gate = asyncio.Event()
        self._gates[name] = gate
        self.parked[name] = asyncio.Event()
        return gate

    async def _suspend(self, name: str) -> None:
        gate = self._gates.pop(name, None)
        if gate is None:
            await asyncio.sleep(0)
            return
        self.parked[name].set()
        await gate.wait()

    async def get_content(self, content_id):
        content = await super().get_content(content_id)
        await self._suspend("get_content")
        return content

    async def get_latest_version(self, content_id):
        version = await super().get_latest_version(content_id)
        await self._suspend("get_latest_version")
        return version

    async def get_pending_approval(self, content_id):
        approval = await super().get_pending_approval(content_id)
        await self._suspend("get_pending_approval")
        return approval

    async def list_scheduled_due(self, now):
        due = await super().list_scheduled_due(now)
        await self._suspend("list_scheduled_due")
        return due


async def settle(seconds: float = 0.05) -> None:
    """Let woken timers and spawned job bodies run."""
    await asyncio.sleep(seconds)


def content_fields(owner_id: UUID, **overrides) -> ContentCreateRequest:
    data = {
        "owner_id": owner_id,
        "title": "Launch Post",
        "body": "text A",
        "content_type": "POST",
        "platform": "facebook",
    }
    data.update(overrides)
    return ContentCreateRequest(**data)


async def approved_content(lifecycle: ContentLifecycle, owner_id: UUID, **overrides) -> ContentRecord:
    content = await lifecycle.create(content_fields(owner_id, **overrides))
    await lifecycle.submit_for_approval(content.id, owner_id)
    return await lifecycle.review(content.id, uuid4(), approved=True)


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock()


@pytest.fixture
def settings() -> Settings:
    return Settings(
        _env_file=None,
        STORE_BACKEND="memory",
        SCHEDULER_ENABLED=True,
        JOB_TIMEOUT_SECONDS=5,
        PUBLISH_TIMEOUT_SECONDS=1,
        PUBLISH_MAX_ATTEMPTS=3,
    )


@pytest.fixture
def executor() -> FakeExecutor:
    return FakeExecutor()


@pytest.fixture
def generator() -> FakeGenerator:
    return FakeGenerator()


@pytest.fixture
def owner_id() -> UUID:
    return uuid4()


@pytest_asyncio.fixture
async def orchestrator(settings, clock, executor, generator) -> Orchestrator:
    orch = build_orchestrator(
        settings,
        store=InMemoryContentStore(),
        executor=executor,
        generator=generator,
        clock=clock,
    )
    yield orch
    await orch.scheduler.shutdown(grace_seconds=0.1)


@pytest.fixture
def lifecycle(orchestrator) -> ContentLifecycle:
    return orchestrator.lifecycle
