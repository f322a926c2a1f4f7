from admissions.schemas.application import (
    ApplicationStatus, ApplicationRecord, TransitionRequest, TransitionResult,
    BulkTransitionRequest, BulkFailure, BulkResult, StatusCounts,
)
from admissions.schemas.transition_event import ApplicationTransitioned

__all__ = [
    "ApplicationStatus", "ApplicationRecord", "TransitionRequest", "TransitionResult",
    "BulkTransitionRequest", "BulkFailure", "BulkResult", "StatusCounts",
    "ApplicationTransitioned",
]
