"""Manual grading of subjective answers.

An evaluation is all-or-nothing: every subjective question gets marks in
the same call, or nothing changes. Objective answers were already scored
at submit and are never re-marked by a grader.

Evaluating an already-evaluated attempt again by the same grader with the same
marks and feedback is a no-op that returns the stored attempt; any difference is an
AlreadyEvaluatedError. Grades are final once written.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import replace
from uuid import UUID

from attempt_service.core.errors import (
    AccessDeniedError,
    AlreadyEvaluatedError,
    AssessmentNotFoundError,
    AttemptError,
    AttemptNotFoundError,
    GradingValidationError,
    MarksOutOfRangeError,
    NotSubmittedError,
    UnknownQuestionError,
)
from attempt_service.core.metrics import ATTEMPT_TRANSITIONS, GRADING_REJECTIONS
from attempt_service.models.assessment import AssessmentDefinition
from attempt_service.models.attempt import EVALUATED, GRADED, IN_PROGRESS, Attempt
from attempt_service.repos.assessment_repo import AssessmentCatalog
from attempt_service.repos.attempt_repo import AttemptRepo
from attempt_service.services.access_guard import NOT_PERMITTED
from attempt_service.services.attempts_service import Clock, utc_now
from attempt_service.services.events import EventPublisher

logger = logging.getLogger(__name__)

MAX_FEEDBACK_LENGTH = 2000


def validate_marks(
    definition: AssessmentDefinition, marks: Mapping[UUID, int]
) -> None:
    """Reject the whole payload on the first bad entry."""
    for question_id, awarded in marks.items():
        question = definition.question(question_id)
        if question is None:
            raise UnknownQuestionError(question_id)
        if question.is_objective:
            raise GradingValidationError(
                "objective questions are graded automatically",
                question_id=question_id,
            )
        if awarded < 0 or awarded > question.max_marks:
            raise MarksOutOfRangeError(question_id, awarded, question.max_marks)

    missing = [
        q.id for q in definition.questions if not q.is_objective and q.id not in marks
    ]
    if missing:
        raise GradingValidationError(
            "marks required for every subjective question",
            missing=[str(m) for m in missing],
        )


def apply_grades(
    attempt: Attempt,
    marks: Mapping[UUID, int],
    feedback: str | None,
    grader_id: str,
    now: int,
) -> Attempt:
    answers = tuple(
        replace(a, outcome=GRADED, marks_awarded=marks[a.question_id])
        if a.question_id in marks
        else a
        for a in attempt.answers
    )
    return replace(
        attempt,
        answers=answers,
        status=EVALUATED,
        evaluated_at=now,
        total_score=sum(a.marks_awarded for a in answers),
        feedback=feedback,
        graded_by=grader_id,
    )


def same_result(stored: Attempt, graded: Attempt) -> bool:
    """True when re-grading by the same grader would store the same result."""
    return replace(graded, evaluated_at=stored.evaluated_at) == stored


class GradingService:
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

    async def evaluate(
        self,
        attempt_id: UUID,
        marks: Mapping[UUID, int],
        feedback: str | None,
        grader_id: str,
        *,
        is_admin: bool = False,
    ) -> Attempt:
        try:
            attempt = await self._repo.get(attempt_id)
            if attempt is None:
                raise AttemptNotFoundError(attempt_id)
            definition = await self._catalog.get_definition(attempt.assessment_id)
            if definition is None:
                raise AssessmentNotFoundError(attempt.assessment_id)

            if not is_admin and definition.created_by not in (None, grader_id):
                logger.warning(
                    "Grading denied attempt=%s grader=%s owner=%s",
                    attempt_id,
                    grader_id,
                    definition.created_by,
                )
                raise AccessDeniedError(NOT_PERMITTED)

            if attempt.status == IN_PROGRESS:
                raise NotSubmittedError(attempt_id)
            if feedback is not None and len(feedback) > MAX_FEEDBACK_LENGTH:
                raise GradingValidationError(
                    f"feedback must be at most {MAX_FEEDBACK_LENGTH} characters"
                )
            validate_marks(definition, marks)

            now = self._clock()
            transitioned = False

            def _apply(current: Attempt) -> Attempt:
                nonlocal transitioned
                graded = apply_grades(current, marks, feedback, grader_id, now)
                if current.status == EVALUATED:
                    if same_result(current, graded):
                        return current
                    raise AlreadyEvaluatedError(attempt_id)
                transitioned = True
                return graded

            evaluated = await self._repo.finalize(attempt_id, _apply)
        except AttemptError as e:
            GRADING_REJECTIONS.labels(kind=e.kind).inc()
            raise

        if not transitioned:
            logger.info("Evaluation repeated with identical result attempt=%s", attempt_id)
            return evaluated

        ATTEMPT_TRANSITIONS.labels(to_status=EVALUATED).inc()
        logger.info(
            "Attempt evaluated attempt=%s grader=%s score=%d/%d",
            attempt_id,
            grader_id,
            evaluated.total_score,
            definition.total_marks,
            extra={
                "attempt_id": str(evaluated.id),
                "assessment_id": str(evaluated.assessment_id),
                "student_id": evaluated.student_id,
            },
        )
        await self._events.attempt_evaluated(evaluated)
        return evaluated

    async def list_for_assessment(
        self,
        assessment_id: UUID,
        grader_id: str,
        *,
        is_admin: bool = False,
        status: str | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[Attempt]:
        definition = await self._catalog.get_definition(assessment_id)
        if definition is None:
            raise AssessmentNotFoundError(assessment_id)
        if not is_admin and definition.created_by not in (None, grader_id):
            raise AccessDeniedError(NOT_PERMITTED)
        return await self._repo.list_by_assessment(
            assessment_id, status=status, limit=limit, offset=offset
        )

    async def definition_for(self, attempt: Attempt) -> AssessmentDefinition:
        definition = await self._catalog.get_definition(attempt.assessment_id)
        if definition is None:
            raise AssessmentNotFoundError(attempt.assessment_id)
        return definition
