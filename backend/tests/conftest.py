"""
Pytest fixtures for stores, engine, event capture and the HTTP client.

Engine tests run against the in-memory store; store and API tests run against
a SQLite database file created per test, so no external services are needed.
"""

import os

# Must be set before anything imports admissions.core.config
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///./admissions_test.db")
os.environ.setdefault("DATABASE_URL_SYNC", "sqlite:///./admissions_test.db")
os.environ["REDIS_ENABLED"] = "false"
os.environ.setdefault("ENVIRONMENT", "test")

import uuid
from datetime import datetime, timedelta, timezone
from typing import AsyncGenerator

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker

from admissions.main import app
from admissions.api.deps import get_engine
from admissions.db.base import Base
from admissions.models import Application  # noqa: F401 - register table metadata
from admissions.schemas.application import ApplicationRecord, ApplicationStatus
from admissions.services.decision_engine import AdmissionDecisionEngine
from admissions.services.interfaces.event_sink import EventSink
from admissions.services.memory_store import InMemoryApplicationStore
from admissions.services.sql_store import SqlApplicationStore

INSTITUTION_ID = "inst-limkokwing"
OTHER_INSTITUTION_ID = "inst-nul"
STUDENT_ID = "student-001"


class RecordingEventSink(EventSink):
    def __init__(self):
        self.events = []

    async def publish(self, event) -> None:
        self.events.append(event)


class FailingEventSink(EventSink):
    async def publish(self, event) -> None:
        raise ConnectionError("sink down")


def build_application(
    student_id: str = STUDENT_ID,
    institution_id: str = INSTITUTION_ID,
    course_id: str = "course-cs",
    status: ApplicationStatus = ApplicationStatus.PENDING,
    **overrides,
) -> ApplicationRecord:
    values = {
        "id": uuid.uuid4().hex,
        "student_id": student_id,
        "institution_id": institution_id,
        "course_id": course_id,
        "status": status,
        "created_at": datetime.now(timezone.utc) - timedelta(days=1),
        "version": 1,
    }
    values.update(overrides)
    return ApplicationRecord(**values)


@pytest.fixture
def sink() -> RecordingEventSink:
    return RecordingEventSink()


@pytest.fixture
def memory_store() -> InMemoryApplicationStore:
    return InMemoryApplicationStore()


@pytest.fixture
def engine(memory_store: InMemoryApplicationStore, sink: RecordingEventSink) -> AdmissionDecisionEngine:
    return AdmissionDecisionEngine(memory_store, sink, backoff_seconds=0)


@pytest.fixture
def make_application(memory_store: InMemoryApplicationStore):
    """Insert an application into the in-memory store."""

    async def _make(**kwargs) -> ApplicationRecord:
        return await memory_store.add(build_application(**kwargs))

    return _make


@pytest_asyncio.fixture(scope="function")
async def session_factory(tmp_path) -> AsyncGenerator[async_sessionmaker[AsyncSession], None]:
    """Create tables in a fresh SQLite file, yield a session factory, then dispose."""
    db_engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'admissions.db'}", echo=False)
    async with db_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)

    await db_engine.dispose()


@pytest.fixture
def sql_store(session_factory) -> SqlApplicationStore:
    return SqlApplicationStore(session_factory, backoff_seconds=0.01)


@pytest.fixture
def sql_engine(sql_store: SqlApplicationStore, sink: RecordingEventSink) -> AdmissionDecisionEngine:
    return AdmissionDecisionEngine(sql_store, sink, backoff_seconds=0.01)


@pytest_asyncio.fixture(scope="function")
async def client(sql_engine: AdmissionDecisionEngine) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client whose engine is backed by the per-test SQLite store."""

    async def override_get_engine():
        return sql_engine

    app.dependency_overrides[get_engine] = override_get_engine

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest.fixture
def actor_headers() -> dict:
    return {"X-Actor-Id": INSTITUTION_ID}
