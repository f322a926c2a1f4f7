"""
Bulk transitions: one target status applied to many applications.

Each id is an independent transition. A failure on one id is recorded and
the rest of the batch continues; there is no atomicity across ids since they
may belong to different competing sets. Ids are processed in the order given,
so approving two applications of the same competing set approves the first
and reports the second as failed.
"""

from typing import Optional, Union

from admissions.core.exceptions import AdmissionError
from admissions.core.logging import get_logger
from admissions.core.metrics import record_bulk_item
from admissions.schemas.application import ApplicationStatus, BulkFailure, BulkResult
from admissions.services.decision_engine import AdmissionDecisionEngine, parse_target_status

logger = get_logger(__name__)


class BulkTransitionCoordinator:
    def __init__(self, engine: AdmissionDecisionEngine):
        self.engine = engine

    async def transition_many(
        self,
        application_ids: list[str],
        target_status: Union[str, ApplicationStatus],
        actor_id: str,
        notes: Optional[str] = None,
    ) -> BulkResult:
        # An invalid target fails the whole request rather than every item
        target = parse_target_status(target_status)
        result = BulkResult()

        for application_id in application_ids:
            try:
                await self.engine.transition(application_id, target, actor_id, notes)
            except AdmissionError as e:
                result.failed.append(BulkFailure(id=application_id, reason=e.code))
                record_bulk_item(succeeded=False)
                logger.info(
                    "bulk_item_failed",
                    application_id=application_id,
                    target=target.value,
                    reason=e.code,
                )
            else:
                result.succeeded.append(application_id)
                record_bulk_item(succeeded=True)

        logger.info(
            "bulk_transition_completed",
            target=target.value,
            actor_id=actor_id,
            succeeded=len(result.succeeded),
            failed=len(result.failed),
        )
        return result
