"""Student-facing attempt endpoints.

  POST /v1/assessments/{assessment_id}/attempts       start (201)
  PUT  /v1/attempts/{attempt_id}/answers/{question_id} auto-save
  POST /v1/attempts/{attempt_id}/submit               freeze and grade
  GET  /v1/attempts/{attempt_id}                      read one
  GET  /v1/assessments/{assessment_id}/attempts/me    read mine by key
  GET  /v1/attempts?status=                           list mine

The student id is always the token subject; it is never taken from the
request body or path.
"""

from __future__ import annotations

from collections.abc import Iterable
from typing import Annotated, Literal, Union
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, Field

from attempt_service.api.dependencies import get_attempts_service, require_user
from attempt_service.api.errors import http_error
from attempt_service.core.errors import AttemptError, AttemptNotFoundError
from attempt_service.models.answer import answer_from_dict
from attempt_service.models.attempt import IN_PROGRESS, Attempt
from attempt_service.models.principal import Principal
from attempt_service.services.attempts_service import AttemptsService
from attempt_service.services.grading_service import GradingService

router = APIRouter(tags=["attempts"])

StatusFilter = Literal["in_progress", "submitted", "evaluated"]


# --- Pydantic schemas ---


class ScalarAnswerIn(BaseModel):
    kind: Literal["scalar"]
    value: str


class MultiSelectAnswerIn(BaseModel):
    kind: Literal["multi_select"]
    values: list[str]


class FreeTextAnswerIn(BaseModel):
    kind: Literal["free_text"]
    text: str


AnswerValueIn = Annotated[
    Union[ScalarAnswerIn, MultiSelectAnswerIn, FreeTextAnswerIn],
    Field(discriminator="kind"),
]


class SaveAnswerIn(BaseModel):
    # null clears a previously saved answer
    value: AnswerValueIn | None = None


class SaveAnswerOut(BaseModel):
    attempt_id: str
    question_id: str
    last_saved_at: int | None


class AnswerOut(BaseModel):
    question_id: str
    value: dict | None
    outcome: str | None
    marks_awarded: int | None
    saved_at: int | None


class AttemptOut(BaseModel):
    id: str
    assessment_id: str
    assessment_version: int
    student_id: str
    status: str
    started_at: int
    last_saved_at: int | None
    submitted_at: int | None
    evaluated_at: int | None
    total_score: int | None
    feedback: str | None
    graded_by: str | None
    answered_count: int
    correct_count: int | None
    time_taken_seconds: int | None
    total_marks: int
    percentage: float | None
    answers: list[AnswerOut]


def attempt_out(
    attempt: Attempt, total_marks: int, *, redact: bool = False
) -> AttemptOut:
    """Serialize an Attempt, scored out of the assessment's total_marks.

    redact hides per-answer outcome and marks (and the counts derived from
    them) while the attempt is still in progress, so inline pre-scoring
    never tells a student which answers are right before they submit.
    """
    hide = redact and attempt.status == IN_PROGRESS
    percentage = None
    if not hide and attempt.total_score is not None and total_marks > 0:
        percentage = round(attempt.total_score * 100 / total_marks, 2)
    return AttemptOut(
        id=str(attempt.id),
        assessment_id=str(attempt.assessment_id),
        assessment_version=attempt.assessment_version,
        student_id=attempt.student_id,
        status=attempt.status,
        started_at=attempt.started_at,
        last_saved_at=attempt.last_saved_at,
        submitted_at=attempt.submitted_at,
        evaluated_at=attempt.evaluated_at,
        total_score=None if hide else attempt.total_score,
        feedback=attempt.feedback,
        graded_by=attempt.graded_by,
        answered_count=attempt.answered_count,
        correct_count=None if hide else attempt.correct_count,
        time_taken_seconds=attempt.time_taken_seconds,
        total_marks=total_marks,
        percentage=percentage,
        answers=[
            AnswerOut(
                question_id=str(a.question_id),
                value=a.value.to_dict() if a.value is not None else None,
                outcome=None if hide else a.outcome,
                marks_awarded=None if hide else a.marks_awarded,
                saved_at=a.saved_at,
            )
            for a in attempt.answers
        ],
    )


async def total_marks_for(
    service: AttemptsService | GradingService, attempts: Iterable[Attempt]
) -> dict[UUID, int]:
    """Look up total_marks once per assessment referenced by attempts."""
    totals: dict[UUID, int] = {}
    for attempt in attempts:
        if attempt.assessment_id not in totals:
            definition = await service.definition_for(attempt)
            totals[attempt.assessment_id] = definition.total_marks
    return totals


def _visible_to(attempt: Attempt, principal: Principal) -> bool:
    return attempt.student_id == principal.user_id or principal.is_grader()


# --- Endpoints ---


@router.post(
    "/v1/assessments/{assessment_id}/attempts",
    response_model=AttemptOut,
    status_code=status.HTTP_201_CREATED,
)
async def start_attempt(
    assessment_id: UUID,
    principal: Annotated[Principal, Depends(require_user)],
    service: Annotated[AttemptsService, Depends(get_attempts_service)],
) -> AttemptOut:
    try:
        attempt = await service.start(assessment_id, principal.user_id)
        definition = await service.definition_for(attempt)
    except AttemptError as e:
        raise http_error(e, operation="start", user_id=principal.user_id) from None
    return attempt_out(attempt, definition.total_marks, redact=True)


@router.put(
    "/v1/attempts/{attempt_id}/answers/{question_id}",
    response_model=SaveAnswerOut,
)
async def save_answer(
    attempt_id: UUID,
    question_id: UUID,
    body: SaveAnswerIn,
    principal: Annotated[Principal, Depends(require_user)],
    service: Annotated[AttemptsService, Depends(get_attempts_service)],
) -> SaveAnswerOut:
    value = None
    if body.value is not None:
        value = answer_from_dict(body.value.model_dump())
    try:
        attempt = await service.save_answer(
            attempt_id, principal.user_id, question_id, value
        )
    except AttemptError as e:
        raise http_error(e, operation="save_answer", user_id=principal.user_id) from None
    return SaveAnswerOut(
        attempt_id=str(attempt.id),
        question_id=str(question_id),
        last_saved_at=attempt.last_saved_at,
    )


@router.post("/v1/attempts/{attempt_id}/submit", response_model=AttemptOut)
async def submit_attempt(
    attempt_id: UUID,
    principal: Annotated[Principal, Depends(require_user)],
    service: Annotated[AttemptsService, Depends(get_attempts_service)],
) -> AttemptOut:
    try:
        attempt = await service.submit(attempt_id, principal.user_id)
        definition = await service.definition_for(attempt)
    except AttemptError as e:
        raise http_error(e, operation="submit", user_id=principal.user_id) from None
    return attempt_out(attempt, definition.total_marks)


@router.get("/v1/attempts", response_model=list[AttemptOut])
async def list_my_attempts(
    principal: Annotated[Principal, Depends(require_user)],
    service: Annotated[AttemptsService, Depends(get_attempts_service)],
    status_filter: Annotated[StatusFilter | None, Query(alias="status")] = None,
) -> list[AttemptOut]:
    try:
        attempts = await service.list_for_student(principal.user_id, status_filter)
        totals = await total_marks_for(service, attempts)
    except AttemptError as e:
        raise http_error(e, operation="list", user_id=principal.user_id) from None
    return [attempt_out(a, totals[a.assessment_id], redact=True) for a in attempts]


@router.get("/v1/attempts/{attempt_id}", response_model=AttemptOut)
async def get_attempt(
    attempt_id: UUID,
    principal: Annotated[Principal, Depends(require_user)],
    service: Annotated[AttemptsService, Depends(get_attempts_service)],
) -> AttemptOut:
    try:
        attempt = await service.get(attempt_id)
        # Someone else's attempt is reported as missing, not forbidden.
        if not _visible_to(attempt, principal):
            raise AttemptNotFoundError(attempt_id)
        definition = await service.definition_for(attempt)
    except AttemptError as e:
        raise http_error(e, operation="get", user_id=principal.user_id) from None
    return attempt_out(
        attempt, definition.total_marks, redact=not principal.is_grader()
    )


@router.get(
    "/v1/assessments/{assessment_id}/attempts/me",
    response_model=AttemptOut,
)
async def get_my_attempt(
    assessment_id: UUID,
    principal: Annotated[Principal, Depends(require_user)],
    service: Annotated[AttemptsService, Depends(get_attempts_service)],
) -> AttemptOut:
    try:
        attempt = await service.get_by_key(assessment_id, principal.user_id)
        definition = await service.definition_for(attempt)
    except AttemptError as e:
        raise http_error(e, operation="get", user_id=principal.user_id) from None
    return attempt_out(attempt, definition.total_marks, redact=True)
