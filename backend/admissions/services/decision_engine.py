"""
Admission decision engine: the only code allowed to change an application's
status.

RULES
=====

  pending ──► under_review ──► approved | rejected
     └───────────────────────► approved | rejected

  - approved and rejected are terminal; moving to the current status is a
    no-op success (safe to retry after a timeout)
  - nothing moves back to pending
  - the actor must be the institution the application belongs to
  - a student holds at most one approved application per institution
  - approving any application of a student who is already admitted at the
    institution fails with ConflictError("already-admitted"), checked before
    the terminal-state rule

APPROVAL CASCADE
================

Approving an application rejects every other pending/under_review
application of the same student at the same institution (its competing set)
in the same atomic write. The write is conditioned on the version of every
competing-set record that was read, so a concurrent approval of a sibling
makes one of the two writes fail its precondition. The loser re-reads,
finds the sibling approved and fails with ConflictError("already-admitted").

Precondition failures are retried up to TRANSITION_MAX_ATTEMPTS with
exponential backoff. Events are published only after the commit, outside the
transition timeout, and a failing sink never undoes a committed transition.
"""

import asyncio
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional, Union

from admissions.core.config import get_settings
from admissions.core.exceptions import (
    AdmissionError,
    AuthorizationError,
    ConflictError,
    NotFoundError,
    TransitionTimeoutError,
    ValidationError,
)
from admissions.core.logging import get_logger
from admissions.core.metrics import (
    auto_rejections,
    record_event_publish,
    record_transition,
    transition_latency,
    transition_retries,
)
from admissions.schemas.application import ApplicationRecord, ApplicationStatus, TransitionResult
from admissions.schemas.transition_event import ApplicationTransitioned
from admissions.services.backoff import backoff_delay
from admissions.services.interfaces.event_sink import EventSink
from admissions.services.interfaces.store import ApplicationStore, VersionedWrite

logger = get_logger(__name__)

AUTO_REJECT_NOTE = "auto-rejected: student admitted to another program at this institution"


def parse_status(value: Union[str, ApplicationStatus]) -> ApplicationStatus:
    if isinstance(value, ApplicationStatus):
        return value
    try:
        return ApplicationStatus(value)
    except ValueError:
        raise ValidationError(f"Unknown application status: {value!r}") from None


def parse_target_status(value: Union[str, ApplicationStatus]) -> ApplicationStatus:
    status = parse_status(value)
    if status is ApplicationStatus.PENDING:
        raise ValidationError("Applications cannot be moved back to pending")
    return status


def _ensure_open(application: ApplicationRecord, target: ApplicationStatus) -> None:
    if application.status.is_terminal:
        raise ValidationError(
            f"Application {application.id} is {application.status.value} "
            f"and cannot move to {target.value}"
        )


@dataclass
class _WritePlan:
    writes: list[VersionedWrite] = field(default_factory=list)
    events: list[ApplicationTransitioned] = field(default_factory=list)
    auto_rejected: int = 0


def _transition_event(
    application: ApplicationRecord,
    to_status: ApplicationStatus,
    occurred_at: datetime,
    auto_rejected: bool = False,
) -> ApplicationTransitioned:
    return ApplicationTransitioned(
        application_id=application.id,
        student_id=application.student_id,
        institution_id=application.institution_id,
        from_status=application.status,
        to_status=to_status,
        auto_rejected=auto_rejected,
        occurred_at=occurred_at,
        version=application.version + 1,
    )


class AdmissionDecisionEngine:
    def __init__(
        self,
        store: ApplicationStore,
        sink: EventSink,
        max_attempts: Optional[int] = None,
        timeout_seconds: Optional[float] = None,
        backoff_seconds: Optional[float] = None,
        publish_timeout_seconds: Optional[float] = None,
    ):
        settings = get_settings()
        self.store = store
        self.sink = sink
        self.max_attempts = max_attempts or settings.TRANSITION_MAX_ATTEMPTS
        self.timeout_seconds = timeout_seconds or settings.TRANSITION_TIMEOUT_SECONDS
        self.backoff_seconds = (
            backoff_seconds if backoff_seconds is not None else settings.RETRY_BACKOFF_SECONDS
        )
        self.publish_timeout_seconds = (
            publish_timeout_seconds or settings.EVENT_PUBLISH_TIMEOUT_SECONDS
        )

    async def transition(
        self,
        application_id: str,
        target_status: Union[str, ApplicationStatus],
        actor_id: str,
        notes: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> TransitionResult:
        """
        Move one application to `target_status` on behalf of `actor_id`.

        Raises ValidationError, NotFoundError, AuthorizationError,
        ConflictError, StoreUnavailableError or TransitionTimeoutError.
        No partial state is ever left behind: every mutation is one
        conditional multi-write.
        """
        target = parse_target_status(target_status)
        start = time.perf_counter()

        try:
            result, events = await asyncio.wait_for(
                self._transition(application_id, target, actor_id, notes),
                timeout or self.timeout_seconds,
            )
        except asyncio.TimeoutError:
            record_transition(target.value, "timeout")
            logger.warning(
                "transition_timeout",
                application_id=application_id,
                target=target.value,
                timeout=timeout or self.timeout_seconds,
            )
            raise TransitionTimeoutError(
                f"Transition of {application_id} to {target.value} timed out"
            ) from None
        except AdmissionError as e:
            record_transition(target.value, e.code)
            raise
        finally:
            transition_latency.labels(target=target.value).observe(time.perf_counter() - start)

        record_transition(target.value, "applied" if result.applied else "noop")
        await self._publish(events)
        return result

    async def get_application(self, application_id: str, actor_id: str) -> ApplicationRecord:
        """Point read restricted to the owning institution."""
        application = await self.store.get(application_id)
        if application is None:
            raise NotFoundError(f"Application {application_id} not found")
        if application.institution_id != actor_id:
            raise AuthorizationError(
                f"Actor {actor_id} cannot view application {application_id}"
            )
        return application

    async def _transition(
        self,
        application_id: str,
        target: ApplicationStatus,
        actor_id: str,
        notes: Optional[str],
    ) -> tuple[TransitionResult, list[ApplicationTransitioned]]:
        for attempt in range(1, self.max_attempts + 1):
            application = await self.store.get(application_id)
            if application is None:
                raise NotFoundError(f"Application {application_id} not found")

            if application.institution_id != actor_id:
                logger.warning(
                    "transition_forbidden",
                    application_id=application_id,
                    actor_id=actor_id,
                    institution_id=application.institution_id,
                )
                raise AuthorizationError(
                    f"Actor {actor_id} cannot review application {application_id}"
                )

            if application.status is target:
                logger.info("transition_noop", application_id=application_id, status=target.value)
                return TransitionResult(applied=False, auto_rejected_count=0), []

            now = datetime.now(timezone.utc)
            if target is ApplicationStatus.APPROVED:
                plan = await self._plan_approval(application, actor_id, notes, now)
            elif target in (ApplicationStatus.UNDER_REVIEW, ApplicationStatus.REJECTED):
                plan = self._plan_review(application, target, actor_id, notes, now)
            else:
                raise ValidationError(f"Unsupported target status: {target.value}")

            if await self.store.conditional_multi_write(plan.writes):
                if plan.auto_rejected:
                    auto_rejections.inc(plan.auto_rejected)
                logger.info(
                    "application_transitioned",
                    application_id=application_id,
                    from_status=application.status.value,
                    to_status=target.value,
                    actor_id=actor_id,
                    auto_rejected=plan.auto_rejected,
                    attempt=attempt,
                )
                return (
                    TransitionResult(applied=True, auto_rejected_count=plan.auto_rejected),
                    plan.events,
                )

            # Version conflict - someone changed the application or its competing set
            transition_retries.inc()
            logger.info(
                "transition_retry",
                application_id=application_id,
                target=target.value,
                attempt=attempt,
                reason="version_conflict",
            )
            if attempt < self.max_attempts:
                await asyncio.sleep(backoff_delay(attempt, self.backoff_seconds))

        raise ConflictError(
            ConflictError.VERSION_CONFLICT,
            f"Application {application_id} kept changing concurrently; retry later",
        )

    async def _plan_approval(
        self,
        application: ApplicationRecord,
        actor_id: str,
        notes: Optional[str],
        now: datetime,
    ) -> _WritePlan:
        competing = await self.store.query_by_student_and_institution(
            application.student_id, application.institution_id
        )
        siblings = [r for r in competing if r.id != application.id]

        admitted = next((s for s in siblings if s.status is ApplicationStatus.APPROVED), None)
        if admitted is not None:
            logger.warning(
                "admission_conflict",
                application_id=application.id,
                student_id=application.student_id,
                institution_id=application.institution_id,
                admitted_application_id=admitted.id,
            )
            raise ConflictError(
                ConflictError.ALREADY_ADMITTED,
                f"Student {application.student_id} is already admitted to course "
                f"{admitted.course_id} at this institution",
            )

        _ensure_open(application, ApplicationStatus.APPROVED)

        plan = _WritePlan()
        plan.writes.append(
            VersionedWrite(
                application.id,
                application.version,
                {
                    "status": ApplicationStatus.APPROVED.value,
                    "reviewed_at": now,
                    "reviewed_by": actor_id,
                    "review_notes": notes or f"Application approved on {now.date().isoformat()}",
                },
            )
        )
        plan.events.append(_transition_event(application, ApplicationStatus.APPROVED, now))

        for sibling in siblings:
            if sibling.status.is_open:
                plan.writes.append(
                    VersionedWrite(
                        sibling.id,
                        sibling.version,
                        {
                            "status": ApplicationStatus.REJECTED.value,
                            "reviewed_at": now,
                            "reviewed_by": actor_id,
                            "review_notes": AUTO_REJECT_NOTE,
                        },
                    )
                )
                plan.events.append(
                    _transition_event(sibling, ApplicationStatus.REJECTED, now, auto_rejected=True)
                )
                plan.auto_rejected += 1
            else:
                # Terminal sibling: version check only
                plan.writes.append(VersionedWrite(sibling.id, sibling.version))

        return plan

    def _plan_review(
        self,
        application: ApplicationRecord,
        target: ApplicationStatus,
        actor_id: str,
        notes: Optional[str],
        now: datetime,
    ) -> _WritePlan:
        _ensure_open(application, target)

        fields = {
            "status": target.value,
            "reviewed_at": now,
            "reviewed_by": actor_id,
        }
        if notes:
            fields["review_notes"] = notes

        return _WritePlan(
            writes=[VersionedWrite(application.id, application.version, fields)],
            events=[_transition_event(application, target, now)],
        )

    async def _publish(self, events: list[ApplicationTransitioned]) -> None:
        for event in events:
            try:
                await asyncio.wait_for(self.sink.publish(event), self.publish_timeout_seconds)
            except asyncio.TimeoutError:
                record_event_publish("timeout")
                logger.error(
                    "event_publish_timeout",
                    application_id=event.application_id,
                    version=event.version,
                )
            except Exception as e:
                # Committed state stands; consumers catch up on redelivery
                record_event_publish("failed")
                logger.error(
                    "event_publish_failed",
                    application_id=event.application_id,
                    version=event.version,
                    error=str(e),
                )
            else:
                record_event_publish("ok")
