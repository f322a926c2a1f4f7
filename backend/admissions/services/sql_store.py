"""
SQLAlchemy-backed application store.

CONCURRENCY STRATEGY: Version-checked conditional multi-write
==============================================================

Problem:
  Two reviewers approve two applications of the same student at the same
  institution simultaneously. Both read "no existing admission", both write
  `approved`. Result: two admissions, invariant broken.

Solution:
  Every write in a multi-write is

    UPDATE applications SET ..., version = version + 1
    WHERE id = :id AND version = :expected_version

  and all of them run inside one transaction. If any statement matches zero
  rows, the whole transaction is rolled back and the caller is told the
  precondition failed. An approval always carries the open siblings of its
  competing set as versioned writes (their cascade rejection), so two racing
  approvals overlap on at least one row and only one of them can commit.

  - Updates are issued in id order so concurrent transactions lock rows in
    the same order (no deadlocks, the loser simply matches zero rows)
  - Pure precondition entries (terminal siblings) are checked after the
    updates with a shared row lock
  - The partial unique index on approved applications is the final safety
    net; an IntegrityError from it is reported as a failed precondition

Transient driver failures are retried with backoff at this boundary and then
surfaced as StoreUnavailableError.
"""

import asyncio
from typing import Awaitable, Callable, Optional, TypeVar

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError, InterfaceError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from admissions.core.config import get_settings
from admissions.core.exceptions import StoreUnavailableError
from admissions.core.logging import get_logger
from admissions.core.metrics import record_store_operation
from admissions.models.application import Application
from admissions.schemas.application import ApplicationRecord, ApplicationStatus, StatusCounts
from admissions.services.backoff import backoff_delay
from admissions.services.interfaces.store import ApplicationStore, VersionedWrite

logger = get_logger(__name__)

T = TypeVar("T")

TRANSIENT_ERRORS = (OperationalError, InterfaceError, ConnectionError)


class _PreconditionFailed(Exception):
    def __init__(self, application_id: str):
        self.application_id = application_id
        super().__init__(application_id)


def _column_values(fields: dict) -> dict:
    values = dict(fields)
    values.pop("id", None)
    values.pop("version", None)
    if isinstance(values.get("status"), ApplicationStatus):
        values["status"] = values["status"].value
    return values


class SqlApplicationStore(ApplicationStore):
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        max_attempts: Optional[int] = None,
        backoff_seconds: Optional[float] = None,
    ):
        settings = get_settings()
        self._session_factory = session_factory
        self.max_attempts = max_attempts or settings.STORE_MAX_ATTEMPTS
        self.backoff_seconds = (
            backoff_seconds if backoff_seconds is not None else settings.RETRY_BACKOFF_SECONDS
        )

    async def _call(self, operation: str, fn: Callable[[], Awaitable[T]]) -> T:
        for attempt in range(1, self.max_attempts + 1):
            try:
                return await fn()
            except TRANSIENT_ERRORS as e:
                record_store_operation(operation, "error")
                logger.warning(
                    "store_call_failed",
                    operation=operation,
                    attempt=attempt,
                    error=str(e),
                )
                if attempt == self.max_attempts:
                    raise StoreUnavailableError(
                        f"Application store unavailable during {operation}"
                    ) from e
                await asyncio.sleep(backoff_delay(attempt, self.backoff_seconds))

        # Should not reach here, but just in case
        raise StoreUnavailableError(f"Application store unavailable during {operation}")

    async def get(self, application_id: str) -> Optional[ApplicationRecord]:
        async def _get():
            async with self._session_factory() as session:
                result = await session.execute(
                    select(Application).where(Application.id == application_id)
                )
                row = result.scalar_one_or_none()
                return ApplicationRecord.model_validate(row) if row else None

        record = await self._call("get", _get)
        record_store_operation("get", "ok")
        return record

    async def query_by_student_and_institution(
        self, student_id: str, institution_id: str
    ) -> list[ApplicationRecord]:
        async def _query():
            async with self._session_factory() as session:
                result = await session.execute(
                    select(Application)
                    .where(
                        Application.student_id == student_id,
                        Application.institution_id == institution_id,
                    )
                    .order_by(Application.created_at.asc(), Application.id.asc())
                )
                return [ApplicationRecord.model_validate(row) for row in result.scalars().all()]

        records = await self._call("query", _query)
        record_store_operation("query", "ok")
        return records

    async def conditional_multi_write(self, writes: list[VersionedWrite]) -> bool:
        if not writes:
            return True

        updates = sorted(
            (w for w in writes if not w.is_check_only), key=lambda w: w.application_id
        )
        checks = sorted(
            (w for w in writes if w.is_check_only), key=lambda w: w.application_id
        )

        async def _write() -> bool:
            async with self._session_factory() as session:
                try:
                    async with session.begin():
                        for write in updates:
                            result = await session.execute(
                                update(Application)
                                .where(
                                    Application.id == write.application_id,
                                    Application.version == write.expected_version,
                                )
                                .values(
                                    **_column_values(write.fields),
                                    version=Application.version + 1,
                                )
                                .execution_options(synchronize_session=False)
                            )
                            if result.rowcount != 1:
                                raise _PreconditionFailed(write.application_id)

                        for check in checks:
                            result = await session.execute(
                                select(Application.version)
                                .where(Application.id == check.application_id)
                                .with_for_update(read=True)
                            )
                            if result.scalar_one_or_none() != check.expected_version:
                                raise _PreconditionFailed(check.application_id)
                except _PreconditionFailed as e:
                    logger.info(
                        "conditional_write_rejected",
                        application_id=e.application_id,
                        writes=len(writes),
                        reason="version_mismatch",
                    )
                    return False
                except IntegrityError as e:
                    logger.warning(
                        "conditional_write_rejected",
                        writes=len(writes),
                        reason="integrity_error",
                        error=str(e.orig),
                    )
                    return False
            return True

        committed = await self._call("write", _write)
        record_store_operation("write", "ok" if committed else "precondition_failed")
        return committed

    async def add(self, application: ApplicationRecord) -> ApplicationRecord:
        async def _add():
            async with self._session_factory() as session:
                async with session.begin():
                    values = application.model_dump()
                    values["status"] = application.status.value
                    row = Application(**values)
                    session.add(row)
            return application

        record = await self._call("add", _add)
        record_store_operation("add", "ok")
        logger.info(
            "application_added",
            application_id=record.id,
            student_id=record.student_id,
            institution_id=record.institution_id,
        )
        return record

    async def status_counts(self, institution_id: str) -> StatusCounts:
        async def _count():
            async with self._session_factory() as session:
                result = await session.execute(
                    select(Application.status, func.count())
                    .where(Application.institution_id == institution_id)
                    .group_by(Application.status)
                )
                return {status: count for status, count in result.all()}

        counts = await self._call("count", _count)
        record_store_operation("count", "ok")
        return StatusCounts(institution_id=institution_id, **counts)
