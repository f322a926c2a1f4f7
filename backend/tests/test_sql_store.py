"""
Tests for the SQLAlchemy store: conditional multi-write atomicity, the
approved-uniqueness safety net, aggregation, and engine behaviour on top of it.
"""

import asyncio

import pytest
from sqlalchemy.exc import OperationalError

from admissions.core.exceptions import ConflictError, StoreUnavailableError
from admissions.schemas.application import ApplicationStatus
from admissions.services.interfaces.store import VersionedWrite
from admissions.services.sql_store import SqlApplicationStore
from tests.conftest import INSTITUTION_ID, OTHER_INSTITUTION_ID, STUDENT_ID, build_application


@pytest.mark.asyncio
async def test_add_and_get(sql_store):
    application = await sql_store.add(build_application(review_notes="Submitted online"))

    fetched = await sql_store.get(application.id)

    assert fetched.id == application.id
    assert fetched.status is ApplicationStatus.PENDING
    assert fetched.review_notes == "Submitted online"
    assert fetched.version == 1


@pytest.mark.asyncio
async def test_get_unknown_returns_none(sql_store):
    assert await sql_store.get("nope") is None


@pytest.mark.asyncio
async def test_query_competing_set(sql_store):
    first = await sql_store.add(build_application(course_id="C1"))
    second = await sql_store.add(build_application(course_id="C2"))
    await sql_store.add(build_application(student_id="other"))
    await sql_store.add(build_application(institution_id=OTHER_INSTITUTION_ID))

    records = await sql_store.query_by_student_and_institution(STUDENT_ID, INSTITUTION_ID)

    assert {r.id for r in records} == {first.id, second.id}


@pytest.mark.asyncio
async def test_conditional_write_applies_and_bumps_version(sql_store):
    application = await sql_store.add(build_application())

    committed = await sql_store.conditional_multi_write([
        VersionedWrite(application.id, 1, {"status": "under_review", "reviewed_by": INSTITUTION_ID}),
    ])

    assert committed is True
    current = await sql_store.get(application.id)
    assert current.status is ApplicationStatus.UNDER_REVIEW
    assert current.reviewed_by == INSTITUTION_ID
    assert current.version == 2


@pytest.mark.asyncio
async def test_stale_member_rolls_back_whole_write(sql_store):
    fresh = await sql_store.add(build_application(course_id="C1"))
    stale = await sql_store.add(build_application(course_id="C2", version=4))

    committed = await sql_store.conditional_multi_write([
        VersionedWrite(fresh.id, 1, {"status": "approved"}),
        VersionedWrite(stale.id, 3, {"status": "rejected"}),
    ])

    assert committed is False
    assert (await sql_store.get(fresh.id)).status is ApplicationStatus.PENDING
    assert (await sql_store.get(fresh.id)).version == 1
    assert (await sql_store.get(stale.id)).status is ApplicationStatus.PENDING


@pytest.mark.asyncio
async def test_stale_check_only_member_blocks_write(sql_store):
    target = await sql_store.add(build_application(course_id="C1"))
    terminal = await sql_store.add(
        build_application(course_id="C2", status=ApplicationStatus.REJECTED, version=2)
    )

    committed = await sql_store.conditional_multi_write([
        VersionedWrite(target.id, 1, {"status": "approved"}),
        VersionedWrite(terminal.id, 1),
    ])

    assert committed is False
    assert (await sql_store.get(target.id)).status is ApplicationStatus.PENDING
    assert (await sql_store.get(terminal.id)).version == 2


@pytest.mark.asyncio
async def test_unique_index_rejects_second_admission(sql_store):
    """Writers that skip the engine's checks still cannot create two admissions."""
    first = await sql_store.add(build_application(course_id="C1"))
    second = await sql_store.add(build_application(course_id="C2"))

    assert await sql_store.conditional_multi_write([VersionedWrite(first.id, 1, {"status": "approved"})])
    committed = await sql_store.conditional_multi_write([
        VersionedWrite(second.id, 1, {"status": "approved"}),
    ])

    assert committed is False
    assert (await sql_store.get(second.id)).status is ApplicationStatus.PENDING


@pytest.mark.asyncio
async def test_status_counts(sql_store):
    await sql_store.add(build_application(student_id="s1"))
    await sql_store.add(build_application(student_id="s2"))
    await sql_store.add(build_application(student_id="s3", status=ApplicationStatus.APPROVED))
    await sql_store.add(build_application(student_id="s4", status=ApplicationStatus.UNDER_REVIEW))
    await sql_store.add(build_application(institution_id=OTHER_INSTITUTION_ID))

    counts = await sql_store.status_counts(INSTITUTION_ID)

    assert counts.pending == 2
    assert counts.approved == 1
    assert counts.under_review == 1
    assert counts.rejected == 0
    assert counts.total == 4


class _BrokenSession:
    async def __aenter__(self):
        raise OperationalError("SELECT 1", {}, ConnectionRefusedError("db down"))

    async def __aexit__(self, *exc_info):
        return False


@pytest.mark.asyncio
async def test_transient_errors_surface_as_store_unavailable():
    attempts = []

    def broken_factory():
        attempts.append(1)
        return _BrokenSession()

    store = SqlApplicationStore(broken_factory, max_attempts=3, backoff_seconds=0)

    with pytest.raises(StoreUnavailableError):
        await store.get("any")

    assert len(attempts) == 3


@pytest.mark.asyncio
async def test_engine_cascade_on_sql_store(sql_engine, sql_store, sink):
    target = await sql_store.add(build_application(course_id="C1"))
    pending = await sql_store.add(build_application(course_id="C2"))
    reviewing = await sql_store.add(
        build_application(course_id="C3", status=ApplicationStatus.UNDER_REVIEW)
    )
    rejected = await sql_store.add(
        build_application(course_id="C4", status=ApplicationStatus.REJECTED)
    )

    result = await sql_engine.transition(target.id, "approved", INSTITUTION_ID)

    assert result.applied is True
    assert result.auto_rejected_count == 2
    assert (await sql_store.get(target.id)).status is ApplicationStatus.APPROVED
    assert (await sql_store.get(pending.id)).status is ApplicationStatus.REJECTED
    assert (await sql_store.get(reviewing.id)).status is ApplicationStatus.REJECTED
    assert (await sql_store.get(rejected.id)).version == 1
    assert len(sink.events) == 3


@pytest.mark.asyncio
async def test_concurrent_approvals_on_sql_store(sql_engine, sql_store):
    a = await sql_store.add(build_application(course_id="C1"))
    b = await sql_store.add(build_application(course_id="C2"))

    results = await asyncio.gather(
        sql_engine.transition(a.id, "approved", INSTITUTION_ID),
        sql_engine.transition(b.id, "approved", INSTITUTION_ID),
        return_exceptions=True,
    )

    assert sum(1 for r in results if not isinstance(r, Exception)) == 1
    assert [type(r) for r in results if isinstance(r, Exception)] == [ConflictError]

    records = await sql_store.query_by_student_and_institution(STUDENT_ID, INSTITUTION_ID)
    assert [r.status for r in records].count(ApplicationStatus.APPROVED) == 1
