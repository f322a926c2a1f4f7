"""
Event emitted for every application whose status the engine changed.

Consumers (notifications, statistics) must be idempotent on
(application_id, version): delivery is at-least-once.
"""

from datetime import datetime
from pydantic import BaseModel

from admissions.schemas.application import ApplicationStatus


class ApplicationTransitioned(BaseModel):
    application_id: str
    student_id: str
    institution_id: str
    from_status: ApplicationStatus
    to_status: ApplicationStatus
    auto_rejected: bool = False
    occurred_at: datetime
    version: int

    @property
    def dedup_key(self) -> str:
        return f"{self.application_id}:{self.version}"
