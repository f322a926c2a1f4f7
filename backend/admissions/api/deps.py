"""
Request dependencies: actor identity and engine wiring.

Authentication happens upstream; the gateway forwards the authenticated
institution id in the X-Actor-Id header.
"""

from typing import Optional

from fastapi import Depends, Header, HTTPException, status

from admissions.services.bulk_transition import BulkTransitionCoordinator
from admissions.services.decision_engine import AdmissionDecisionEngine
from admissions.services.engine_factory import get_decision_engine


async def get_actor_id(x_actor_id: Optional[str] = Header(None)) -> str:
    if not x_actor_id or not x_actor_id.strip():
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing actor identity",
        )
    return x_actor_id.strip()


async def get_engine() -> AdmissionDecisionEngine:
    return await get_decision_engine()


async def get_bulk_coordinator(
    engine: AdmissionDecisionEngine = Depends(get_engine),
) -> BulkTransitionCoordinator:
    return BulkTransitionCoordinator(engine)
