"""
In-memory application store.

Same contract as SqlApplicationStore: reads return immutable snapshots and a
multi-write either applies every entry or none. The lock only guards the
check-and-apply step inside one call; it is never held across the engine's
own reads.
"""

import asyncio
from typing import Optional

from admissions.core.exceptions import ValidationError
from admissions.core.metrics import record_store_operation
from admissions.schemas.application import ApplicationRecord, StatusCounts
from admissions.services.interfaces.store import ApplicationStore, VersionedWrite


class InMemoryApplicationStore(ApplicationStore):
    def __init__(self):
        self._records: dict[str, ApplicationRecord] = {}
        self._lock = asyncio.Lock()
        self.write_calls = 0

    async def get(self, application_id: str) -> Optional[ApplicationRecord]:
        # Yield to the loop like a real I/O call would
        await asyncio.sleep(0)
        record_store_operation("get", "ok")
        return self._records.get(application_id)

    async def query_by_student_and_institution(
        self, student_id: str, institution_id: str
    ) -> list[ApplicationRecord]:
        await asyncio.sleep(0)
        record_store_operation("query", "ok")
        return sorted(
            (
                r for r in self._records.values()
                if r.student_id == student_id and r.institution_id == institution_id
            ),
            key=lambda r: (r.created_at, r.id),
        )

    async def conditional_multi_write(self, writes: list[VersionedWrite]) -> bool:
        self.write_calls += 1
        async with self._lock:
            for write in writes:
                current = self._records.get(write.application_id)
                if current is None or current.version != write.expected_version:
                    record_store_operation("write", "precondition_failed")
                    return False

            staged = {}
            for write in writes:
                if write.is_check_only:
                    continue
                current = self._records[write.application_id]
                values = {**current.model_dump(), **write.fields}
                values["id"] = current.id
                values["version"] = current.version + 1
                staged[current.id] = ApplicationRecord.model_validate(values)

            self._records.update(staged)

        record_store_operation("write", "ok")
        return True

    async def add(self, application: ApplicationRecord) -> ApplicationRecord:
        async with self._lock:
            if application.id in self._records:
                raise ValidationError(f"Application {application.id} already exists")
            self._records[application.id] = application
        record_store_operation("add", "ok")
        return application

    async def status_counts(self, institution_id: str) -> StatusCounts:
        counts: dict[str, int] = {}
        for record in self._records.values():
            if record.institution_id == institution_id:
                counts[record.status.value] = counts.get(record.status.value, 0) + 1
        record_store_operation("count", "ok")
        return StatusCounts(institution_id=institution_id, **counts)
