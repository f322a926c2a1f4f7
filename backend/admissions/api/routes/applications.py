"""
Application review endpoints: single and bulk status transitions.
"""

from fastapi import APIRouter, Depends

from admissions.api.deps import get_actor_id, get_bulk_coordinator, get_engine
from admissions.schemas.application import (
    ApplicationRecord,
    BulkResult,
    BulkTransitionRequest,
    TransitionRequest,
    TransitionResult,
)
from admissions.services.bulk_transition import BulkTransitionCoordinator
from admissions.services.decision_engine import AdmissionDecisionEngine

router = APIRouter(prefix="/applications", tags=["Applications"])


@router.post("/bulk-transition", response_model=BulkResult)
async def bulk_transition_endpoint(
    request: BulkTransitionRequest,
    actor_id: str = Depends(get_actor_id),
    coordinator: BulkTransitionCoordinator = Depends(get_bulk_coordinator),
):
    """
    Apply one status to many applications.

    Items succeed or fail independently; the response lists both.
    """
    return await coordinator.transition_many(
        request.application_ids,
        request.target_status,
        actor_id,
        request.notes,
    )


@router.post("/{application_id}/transition", response_model=TransitionResult)
async def transition_endpoint(
    application_id: str,
    request: TransitionRequest,
    actor_id: str = Depends(get_actor_id),
    engine: AdmissionDecisionEngine = Depends(get_engine),
):
    """
    Move an application to under_review, approved or rejected.

    Approving rejects the student's other open applications at the same
    institution in the same atomic write. Returns 409 if the student is
    already admitted there.
    """
    return await engine.transition(application_id, request.target_status, actor_id, request.notes)


@router.get("/{application_id}", response_model=ApplicationRecord)
async def get_application_endpoint(
    application_id: str,
    actor_id: str = Depends(get_actor_id),
    engine: AdmissionDecisionEngine = Depends(get_engine),
):
    return await engine.get_application(application_id, actor_id)
