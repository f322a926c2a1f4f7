"""
Pydantic schemas for applications, transition requests and their results.
"""

import enum
from datetime import datetime
from typing import Optional
from pydantic import BaseModel, ConfigDict, Field, computed_field


class ApplicationStatus(str, enum.Enum):
    PENDING = "pending"
    UNDER_REVIEW = "under_review"
    APPROVED = "approved"
    REJECTED = "rejected"

    @property
    def is_terminal(self) -> bool:
        return self in (ApplicationStatus.APPROVED, ApplicationStatus.REJECTED)

    @property
    def is_open(self) -> bool:
        return self in (ApplicationStatus.PENDING, ApplicationStatus.UNDER_REVIEW)


class ApplicationRecord(BaseModel):
    """Immutable snapshot of an application as read from the store."""

    id: str
    student_id: str
    institution_id: str
    course_id: str
    status: ApplicationStatus
    created_at: datetime
    reviewed_at: Optional[datetime] = None
    reviewed_by: Optional[str] = None
    review_notes: Optional[str] = None
    version: int = 1

    model_config = ConfigDict(from_attributes=True, frozen=True)


class TransitionRequest(BaseModel):
    target_status: str = Field(..., min_length=1, max_length=20)
    notes: Optional[str] = Field(None, max_length=2000)


class TransitionResult(BaseModel):
    applied: bool
    auto_rejected_count: int = 0


class BulkTransitionRequest(BaseModel):
    application_ids: list[str] = Field(..., min_length=1, max_length=500)
    target_status: str = Field(..., min_length=1, max_length=20)
    notes: Optional[str] = Field(None, max_length=2000)


class BulkFailure(BaseModel):
    id: str
    reason: str


class BulkResult(BaseModel):
    succeeded: list[str] = Field(default_factory=list)
    failed: list[BulkFailure] = Field(default_factory=list)


class StatusCounts(BaseModel):
    institution_id: str
    pending: int = 0
    under_review: int = 0
    approved: int = 0
    rejected: int = 0

    @computed_field
    @property
    def total(self) -> int:
        return self.pending + self.under_review + self.approved + self.rejected
