from __future__ import annotations

from dataclasses import dataclass

from attempt_service.models.answer import AnswerValue
from attempt_service.models.assessment import Question
from attempt_service.models.attempt import CORRECT, INCORRECT, PENDING


@dataclass(frozen=True, slots=True)
class GradeResult:
    outcome: str
    marks_awarded: int


def matches(submitted: AnswerValue | None, canonical: AnswerValue | None) -> bool:
    """Exact structural equality, variant by variant.

    A scalar never matches a multi-select even if their strings would, and
    multi-select compares as a set, so option order is irrelevant. No case
    folding or trimming beyond what the canonical value itself encodes.
    """
    if submitted is None or canonical is None:
        return False
    if type(submitted) is not type(canonical):
        return False
    return submitted == canonical


def score(question: Question, value: AnswerValue | None) -> GradeResult:
    if not question.is_objective:
        return GradeResult(outcome=PENDING, marks_awarded=0)

    if matches(value, question.canonical_answer):
        return GradeResult(outcome=CORRECT, marks_awarded=question.max_marks)
    # Unanswered objective questions count as incorrect.
    return GradeResult(outcome=INCORRECT, marks_awarded=0)
