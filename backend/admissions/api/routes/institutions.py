"""
Institution-level read endpoints.
"""

from fastapi import APIRouter, Depends

from admissions.api.deps import get_actor_id, get_engine
from admissions.core.exceptions import AuthorizationError
from admissions.schemas.application import StatusCounts
from admissions.services.decision_engine import AdmissionDecisionEngine

router = APIRouter(prefix="/institutions", tags=["Institutions"])


@router.get("/{institution_id}/application-stats", response_model=StatusCounts)
async def application_stats_endpoint(
    institution_id: str,
    actor_id: str = Depends(get_actor_id),
    engine: AdmissionDecisionEngine = Depends(get_engine),
):
    """Application counts per status, computed from current records."""
    if actor_id != institution_id:
        raise AuthorizationError(f"Actor {actor_id} cannot view institution {institution_id}")
    return await engine.store.status_counts(institution_id)
