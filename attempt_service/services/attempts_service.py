"""Attempt lifecycle: start, save, submit.

States move forward only:

  in_progress --submit--> submitted --evaluate--> evaluated
       \\______________submit (all objective)_______/

When every question of the assessment is objective there is nothing for a
grader to do, so submit writes status=evaluated directly in the same store
call. No reader ever observes a persisted "submitted" state for such an
attempt.

The store guarantees atomicity (one attempt per student, status checks
under lock); this module decides what the new state is.
"""

from __future__ import annotations

import datetime
import logging
from collections.abc import Callable
from dataclasses import replace
from uuid import UUID

from attempt_service.core.errors import (
    AccessDeniedError,
    AlreadyStartedError,
    AssessmentNotFoundError,
    AttemptError,
    AttemptNotFoundError,
    NotFoundError,
    NotMutableError,
    UnknownQuestionError,
)
from attempt_service.core.metrics import (
    ANSWERS_SAVED,
    ATTEMPT_REJECTIONS,
    ATTEMPT_START_CONFLICTS,
    ATTEMPT_TRANSITIONS,
    ATTEMPTS_STARTED,
)
from attempt_service.models.answer import AnswerValue
from attempt_service.models.assessment import AssessmentDefinition
from attempt_service.models.attempt import (
    EVALUATED,
    PENDING,
    SUBMITTED,
    UNGRADED,
    AnswerRecord,
    Attempt,
)
from attempt_service.repos.assessment_repo import AssessmentCatalog
from attempt_service.repos.attempt_repo import AttemptRepo
from attempt_service.services import auto_grader
from attempt_service.services.access_guard import (
    AFTER_WINDOW,
    NOT_PERMITTED,
    can_attempt,
)
from attempt_service.services.events import EventPublisher

logger = logging.getLogger(__name__)

Clock = Callable[[], int]

NOT_OWNER = "not-owner"


def utc_now() -> int:
    return int(datetime.datetime.now(datetime.UTC).timestamp())


def grade_submission(
    definition: AssessmentDefinition, attempt: Attempt, now: int
) -> Attempt:
    """Score every objective answer and freeze the attempt.

    Pure: the store calls this with the locked, current attempt.
    """
    answers = []
    for record in attempt.answers:
        question = definition.question(record.question_id)
        if question is None:
            answers.append(record)
            continue
        result = auto_grader.score(question, record.value)
        answers.append(
            replace(record, outcome=result.outcome, marks_awarded=result.marks_awarded)
        )

    graded = replace(
        attempt,
        answers=tuple(answers),
        status=SUBMITTED,
        submitted_at=now,
        total_score=sum(a.marks_awarded for a in answers),
    )
    if definition.is_auto_gradable:
        graded = replace(graded, status=EVALUATED, evaluated_at=now)
    return graded


class AttemptsService:
    def __init__(
        self,
        catalog: AssessmentCatalog,
        repo: AttemptRepo,
        events: EventPublisher,
        clock: Clock = utc_now,
    ) -> None:
        self._catalog = catalog
        self._repo = repo
        self._events = events
        self._clock = clock

    # --- commands ---

    async def start(self, assessment_id: UUID, student_id: str) -> Attempt:
        definition = await self._definition(assessment_id)
        now = self._clock()

        decision = can_attempt(definition, student_id, now)
        if not decision.allowed:
            reason = decision.reason or NOT_PERMITTED
            logger.warning(
                "Start denied assessment=%s student=%s reason=%s",
                assessment_id,
                student_id,
                reason,
            )
            ATTEMPT_REJECTIONS.labels(operation="start", kind="access-denied").inc()
            raise AccessDeniedError(reason)

        attempt = Attempt.new(definition=definition, student_id=student_id, started_at=now)
        try:
            created = await self._repo.start(attempt)
        except AlreadyStartedError as e:
            ATTEMPT_START_CONFLICTS.inc()
            logger.info(
                "Start found existing attempt=%s assessment=%s student=%s",
                e.existing_attempt_id,
                assessment_id,
                student_id,
            )
            raise

        ATTEMPTS_STARTED.inc()
        logger.info(
            "Attempt started attempt=%s assessment=%s student=%s",
            created.id,
            assessment_id,
            student_id,
            extra=_log_context(created),
        )
        return created

    async def save_answer(
        self,
        attempt_id: UUID,
        student_id: str,
        question_id: UUID,
        value: AnswerValue | None,
    ) -> Attempt:
        try:
            attempt = await self._owned(attempt_id, student_id)
            if not attempt.is_mutable:
                raise NotMutableError(attempt_id, reason="status")

            definition = await self._definition(attempt.assessment_id)
            question = definition.question(question_id)
            if question is None:
                raise UnknownQuestionError(question_id)

            now = self._clock()
            self._ensure_window_open(definition, attempt, now)

            # Objective answers are pre-scored inline; submit re-scores them all.
            if value is None:
                outcome, marks = (UNGRADED if question.is_objective else PENDING), 0
            else:
                result = auto_grader.score(question, value)
                outcome, marks = result.outcome, result.marks_awarded

            record = AnswerRecord(
                question_id=question_id,
                value=value,
                outcome=outcome,
                marks_awarded=marks,
                saved_at=now,
            )
            updated = await self._repo.save_answer(attempt_id, record)
        except AttemptError as e:
            ATTEMPT_REJECTIONS.labels(operation="save_answer", kind=e.kind).inc()
            raise

        ANSWERS_SAVED.inc()
        logger.debug(
            "Answer saved attempt=%s question=%s", attempt_id, question_id
        )
        return updated

    async def submit(self, attempt_id: UUID, student_id: str) -> Attempt:
        try:
            attempt = await self._owned(attempt_id, student_id)
            definition = await self._definition(attempt.assessment_id)
            now = self._clock()
            # Already-frozen attempts fall through so the store reports
            # already-submitted rather than a window error.
            if attempt.is_mutable:
                self._ensure_window_open(definition, attempt, now)

            submitted = await self._repo.submit(
                attempt_id, lambda current: grade_submission(definition, current, now)
            )
        except AttemptError as e:
            ATTEMPT_REJECTIONS.labels(operation="submit", kind=e.kind).inc()
            raise

        ATTEMPT_TRANSITIONS.labels(to_status=submitted.status).inc()
        logger.info(
            "Attempt submitted attempt=%s status=%s score=%d/%d",
            attempt_id,
            submitted.status,
            submitted.total_score,
            definition.total_marks,
            extra=_log_context(submitted),
        )

        await self._events.attempt_submitted(submitted)
        if submitted.status == EVALUATED:
            await self._events.attempt_evaluated(submitted)
        return submitted

    # --- queries ---

    async def get(self, attempt_id: UUID) -> Attempt:
        attempt = await self._repo.get(attempt_id)
        if attempt is None:
            raise AttemptNotFoundError(attempt_id)
        return attempt

    async def get_by_key(self, assessment_id: UUID, student_id: str) -> Attempt:
        attempt = await self._repo.get_by_key(assessment_id, student_id)
        if attempt is None:
            raise NotFoundError("attempt not found", assessment_id=assessment_id)
        return attempt

    async def list_for_student(
        self, student_id: str, status: str | None = None
    ) -> list[Attempt]:
        return await self._repo.list_by_student(student_id, status)

    async def definition_for(self, attempt: Attempt) -> AssessmentDefinition:
        return await self._definition(attempt.assessment_id)

    # --- helpers ---

    async def _definition(self, assessment_id: UUID) -> AssessmentDefinition:
        definition = await self._catalog.get_definition(assessment_id)
        if definition is None:
            raise AssessmentNotFoundError(assessment_id)
        return definition

    async def _owned(self, attempt_id: UUID, student_id: str) -> Attempt:
        attempt = await self.get(attempt_id)
        if attempt.student_id != student_id:
            logger.warning(
                "Attempt access denied attempt=%s actor=%s", attempt_id, student_id
            )
            raise AccessDeniedError(NOT_OWNER)
        return attempt

    def _ensure_window_open(
        self, definition: AssessmentDefinition, attempt: Attempt, now: int
    ) -> None:
        # A closed window freezes an in-progress attempt without touching
        # its stored status.
        decision = can_attempt(definition, attempt.student_id, now)
        if not decision.allowed:
            reason = decision.reason or AFTER_WINDOW
            logger.warning(
                "Attempt frozen by access window attempt=%s reason=%s",
                attempt.id,
                reason,
            )
            raise NotMutableError(attempt.id, reason=reason)


def _log_context(attempt: Attempt) -> dict[str, str]:
    return {
        "attempt_id": str(attempt.id),
        "assessment_id": str(attempt.assessment_id),
        "student_id": attempt.student_id,
    }
