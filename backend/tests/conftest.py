"""Shared fixtures: databases, seeding helpers and fakes for external services."""

import json
from collections.abc import AsyncGenerator
from datetime import datetime, timedelta
from pathlib import Path

import httpx
import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

from app.core.database import Base, SessionFactory, enable_sqlite_foreign_keys, session_scope
from app.llm.client import TextGenerationClient
from app.models import Goal, Milestone, Roadmap, RoadmapTask, Task, User
from app.models.enums import (
    GoalCategory,
    GoalStatus,
    MilestoneStatus,
    RoadmapStatus,
    TaskPriority,
    TaskStatus,
)
from app.services.notification_service import TelegramNotifier

# Fixed clock for deterministic tests (a Wednesday)
NOW = datetime(2025, 6, 18, 12, 0, 0)


# ============================================================================
# Databases
# ============================================================================


async def _create_engine(url: str, **kwargs) -> AsyncEngine:
    engine = create_async_engine(url, **kwargs)
    enable_sqlite_foreign_keys(engine)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    return engine


@pytest_asyncio.fixture
async def test_engine() -> AsyncGenerator[AsyncEngine, None]:
    engine = await _create_engine(
        "sqlite+aiosqlite:///:memory:",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def test_session(test_engine: AsyncEngine) -> AsyncGenerator[AsyncSession, None]:
    """In-memory session; nothing is committed."""
    maker = async_sessionmaker(test_engine, expire_on_commit=False, autoflush=False)
    async with maker() as session:
        yield session


@pytest_asyncio.fixture
async def file_engine(tmp_path: Path) -> AsyncGenerator[AsyncEngine, None]:
    """File-backed database so independent sessions see each other's commits."""
    engine = await _create_engine(f"sqlite+aiosqlite:///{tmp_path / 'aura-test.db'}")
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def file_session(file_engine: AsyncEngine) -> AsyncGenerator[AsyncSession, None]:
    maker = async_sessionmaker(file_engine, expire_on_commit=False, autoflush=False)
    async with maker() as session:
        yield session


@pytest.fixture
def session_factory(file_engine: AsyncEngine) -> SessionFactory:
    """Commit-on-success sessions over the file database, as batch jobs use."""
    return session_scope(async_sessionmaker(file_engine, expire_on_commit=False, autoflush=False))


# ============================================================================
# Seeding
# ============================================================================


class Seeder:
    """Adds and flushes entities with sensible defaults."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session
        self._counter = 0

    def _next(self) -> int:
        self._counter += 1
        return self._counter

    async def _add(self, obj):
        self.session.add(obj)
        await self.session.flush()
        return obj

    async def user(self, *, chat_id: str | None = None) -> User:
        n = self._next()
        return await self._add(
            User(username=f"user-{n}", email=f"user-{n}@example.com", telegram_chat_id=chat_id)
        )

    async def roadmap(
        self,
        user: User,
        *,
        status: RoadmapStatus = RoadmapStatus.ACTIVE,
        start_date: datetime | None = None,
        end_date: datetime | None = None,
        title: str | None = None,
        progress: float = 0.0,
    ) -> Roadmap:
        start = start_date or NOW - timedelta(days=90)
        return await self._add(
            Roadmap(
                user_id=user.id,
                title=title or f"Five year plan {self._next()}",
                start_date=start,
                end_date=end_date or start + timedelta(days=5 * 365),
                status=status,
                progress_percentage=progress,
            )
        )

    async def goal(
        self,
        roadmap: Roadmap,
        *,
        category: GoalCategory = GoalCategory.CAREER,
        title: str | None = None,
        status: GoalStatus = GoalStatus.NOT_STARTED,
        completion: float = 0.0,
    ) -> Goal:
        return await self._add(
            Goal(
                roadmap_id=roadmap.id,
                category=category,
                title=title or f"Goal number {self._next()}",
                status=status,
                completion_percentage=completion,
                target_year=1,
            )
        )

    async def milestone(
        self,
        goal: Goal,
        *,
        due_date: datetime | None = None,
        status: MilestoneStatus = MilestoneStatus.NOT_STARTED,
        effort: int | None = None,
        completion_date: datetime | None = None,
        title: str | None = None,
    ) -> Milestone:
        return await self._add(
            Milestone(
                goal_id=goal.id,
                title=title or f"Milestone number {self._next()}",
                due_date=due_date or NOW + timedelta(days=30),
                status=status,
                estimated_effort_hours=effort,
                completion_date=completion_date,
            )
        )

    async def task(
        self,
        milestone: Milestone,
        roadmap: Roadmap,
        *,
        status: TaskStatus = TaskStatus.PENDING,
        completed_at: datetime | None = None,
        scheduled_date: datetime | None = None,
        priority: TaskPriority = TaskPriority.NORMAL,
        duration: int | None = 60,
        title: str | None = None,
    ) -> RoadmapTask:
        return await self._add(
            RoadmapTask(
                milestone_id=milestone.id,
                roadmap_id=roadmap.id,
                title=title or f"Task number {self._next()}",
                status=status,
                completed_at=completed_at,
                scheduled_date=scheduled_date,
                priority=priority,
                estimated_duration=duration,
            )
        )

    async def completed_task(
        self,
        milestone: Milestone,
        roadmap: Roadmap,
        completed_at: datetime,
        *,
        duration: int | None = 60,
    ) -> RoadmapTask:
        return await self.task(
            milestone,
            roadmap,
            status=TaskStatus.COMPLETED,
            completed_at=completed_at,
            duration=duration,
        )

    async def planner_task(self, user: User, *, title: str = "Planner entry") -> Task:
        return await self._add(Task(user_id=user.id, title=title))


@pytest.fixture
def seed(test_session: AsyncSession) -> Seeder:
    return Seeder(test_session)


@pytest.fixture
def file_seed(file_session: AsyncSession) -> Seeder:
    return Seeder(file_session)


# ============================================================================
# Text generation fakes
# ============================================================================


class _Reply:
    def __init__(self, content: str) -> None:
        self.content = content


class FakeChatModel:
    """Stands in for a LangChain chat model.

    ``replies`` are consumed in order; an Exception instance is raised
    instead of returned. The last reply repeats once the list runs out.
    """

    def __init__(self, *replies) -> None:
        self.replies = list(replies)
        self.calls: list[dict] = []
        self._bound: dict = {}

    def bind(self, **kwargs) -> "FakeChatModel":
        self._bound = kwargs
        return self

    async def ainvoke(self, messages):
        self.calls.append({"messages": messages, **self._bound})
        reply = self.replies.pop(0) if len(self.replies) > 1 else self.replies[0]
        if isinstance(reply, Exception):
            raise reply
        return _Reply(reply)


def make_text_client(*replies, max_attempts: int = 1) -> TextGenerationClient:
    return TextGenerationClient(
        FakeChatModel(*replies),
        timeout=1.0,
        max_attempts=max_attempts,
        retry_base_delay=0.0,
    )


@pytest.fixture
def text_client_factory():
    """Build a text client whose model returns the given replies."""
    return make_text_client


# ============================================================================
# Notifier fake
# ============================================================================


class SentMessages(list):
    """Requests captured by the mock Bot API transport."""

    @property
    def texts(self) -> list[str]:
        return [json.loads(r.content)["text"] for r in self]

    @property
    def chat_ids(self) -> list[str]:
        return [json.loads(r.content)["chat_id"] for r in self]


@pytest.fixture
def sent_messages() -> SentMessages:
    return SentMessages()


@pytest_asyncio.fixture
async def notifier(sent_messages: SentMessages) -> AsyncGenerator[TelegramNotifier, None]:
    """Notifier whose Bot API accepts every message and records it."""

    def handler(request: httpx.Request) -> httpx.Response:
        sent_messages.append(request)
        return httpx.Response(200, json={"ok": True, "result": {"message_id": len(sent_messages)}})

    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    yield TelegramNotifier("test-token", api_base="https://bot.test", client=client)
    await client.aclose()


@pytest.fixture
def now() -> datetime:
    return NOW
