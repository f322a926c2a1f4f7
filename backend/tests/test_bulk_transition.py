"""
Tests for bulk transitions: per-item isolation and ordering.
"""

import pytest

from admissions.core.exceptions import ValidationError
from admissions.schemas.application import ApplicationStatus
from admissions.services.bulk_transition import BulkTransitionCoordinator
from tests.conftest import INSTITUTION_ID, OTHER_INSTITUTION_ID


@pytest.fixture
def coordinator(engine) -> BulkTransitionCoordinator:
    return BulkTransitionCoordinator(engine)


@pytest.mark.asyncio
async def test_bulk_approve_independent_sets(coordinator, memory_store, make_application):
    """Applications from different competing sets are approved independently."""
    first = await make_application(student_id="s1")
    second = await make_application(student_id="s2")

    result = await coordinator.transition_many([first.id, second.id], "approved", INSTITUTION_ID)

    assert result.succeeded == [first.id, second.id]
    assert result.failed == []
    for application in (first, second):
        assert (await memory_store.get(application.id)).status is ApplicationStatus.APPROVED


@pytest.mark.asyncio
async def test_bulk_isolates_already_admitted_item(coordinator, memory_store, make_application):
    first = await make_application(student_id="s1")
    await make_application(student_id="s2", course_id="c-admitted", status=ApplicationStatus.APPROVED)
    second = await make_application(student_id="s2")

    result = await coordinator.transition_many([first.id, second.id], "approved", INSTITUTION_ID)

    assert result.succeeded == [first.id]
    assert len(result.failed) == 1
    assert result.failed[0].id == second.id
    assert result.failed[0].reason == "already-admitted"
    assert (await memory_store.get(first.id)).status is ApplicationStatus.APPROVED
    assert (await memory_store.get(second.id)).status is ApplicationStatus.PENDING


@pytest.mark.asyncio
async def test_bulk_approve_within_one_competing_set(coordinator, memory_store, make_application):
    """The first id wins; the second was auto-rejected and now conflicts."""
    first = await make_application(course_id="C1")
    second = await make_application(course_id="C2")

    result = await coordinator.transition_many([first.id, second.id], "approved", INSTITUTION_ID)

    assert result.succeeded == [first.id]
    assert [(f.id, f.reason) for f in result.failed] == [(second.id, "already-admitted")]
    assert (await memory_store.get(second.id)).status is ApplicationStatus.REJECTED


@pytest.mark.asyncio
async def test_bulk_reports_each_failure_reason(coordinator, make_application):
    valid = await make_application()
    foreign = await make_application(institution_id=OTHER_INSTITUTION_ID)
    finished = await make_application(student_id="s9", status=ApplicationStatus.APPROVED)

    result = await coordinator.transition_many(
        ["missing", foreign.id, finished.id, valid.id],
        "rejected",
        INSTITUTION_ID,
        notes="Bulk rejected action",
    )

    assert result.succeeded == [valid.id]
    assert {f.id: f.reason for f in result.failed} == {
        "missing": "not-found",
        foreign.id: "forbidden",
        finished.id: "invalid-transition",
    }


@pytest.mark.asyncio
async def test_bulk_repeated_id_is_idempotent(coordinator, memory_store, make_application):
    application = await make_application()

    result = await coordinator.transition_many(
        [application.id, application.id], "under_review", INSTITUTION_ID
    )

    assert result.succeeded == [application.id, application.id]
    assert (await memory_store.get(application.id)).version == 2


@pytest.mark.asyncio
async def test_bulk_invalid_target_fails_whole_request(coordinator, memory_store, make_application):
    application = await make_application()

    with pytest.raises(ValidationError):
        await coordinator.transition_many([application.id], "pending", INSTITUTION_ID)

    assert memory_store.write_calls == 0
