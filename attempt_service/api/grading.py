"""Instructor endpoints: manual evaluation and per-assessment listings."""

from __future__ import annotations

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from attempt_service.api.attempts import (
    AttemptOut,
    StatusFilter,
    attempt_out,
    total_marks_for,
)
from attempt_service.api.dependencies import get_grading_service, require_any_role
from attempt_service.api.errors import http_error
from attempt_service.core.errors import AttemptError
from attempt_service.models.principal import GRADER_ROLES, Principal
from attempt_service.services.grading_service import GradingService

router = APIRouter(tags=["grading"])

_require_grader = require_any_role(GRADER_ROLES)


class EvaluationIn(BaseModel):
    # question_id -> marks awarded, one entry per subjective question
    marks: dict[UUID, int] = Field(default_factory=dict)
    feedback: str | None = None


@router.put("/v1/attempts/{attempt_id}/evaluation", response_model=AttemptOut)
async def evaluate_attempt(
    attempt_id: UUID,
    body: EvaluationIn,
    principal: Annotated[Principal, Depends(_require_grader)],
    service: Annotated[GradingService, Depends(get_grading_service)],
) -> AttemptOut:
    try:
        attempt = await service.evaluate(
            attempt_id,
            body.marks,
            body.feedback,
            principal.user_id,
            is_admin=principal.is_platform_admin(),
        )
        definition = await service.definition_for(attempt)
    except AttemptError as e:
        raise http_error(e, operation="evaluate", user_id=principal.user_id) from None
    return attempt_out(attempt, definition.total_marks)


@router.get(
    "/v1/assessments/{assessment_id}/attempts",
    response_model=list[AttemptOut],
)
async def list_assessment_attempts(
    assessment_id: UUID,
    principal: Annotated[Principal, Depends(_require_grader)],
    service: Annotated[GradingService, Depends(get_grading_service)],
    status_filter: Annotated[StatusFilter | None, Query(alias="status")] = None,
    limit: Annotated[int, Query(ge=1, le=200)] = 50,
    offset: Annotated[int, Query(ge=0)] = 0,
) -> list[AttemptOut]:
    try:
        attempts = await service.list_for_assessment(
            assessment_id,
            principal.user_id,
            is_admin=principal.is_platform_admin(),
            status=status_filter,
            limit=limit,
            offset=offset,
        )
        totals = await total_marks_for(service, attempts)
    except AttemptError as e:
        raise http_error(e, operation="list", user_id=principal.user_id) from None
    return [attempt_out(a, totals[a.assessment_id]) for a in attempts]
