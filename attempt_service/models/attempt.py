from __future__ import annotations

from dataclasses import dataclass, replace
from uuid import UUID, uuid4

from attempt_service.models.answer import AnswerValue
from attempt_service.models.assessment import AssessmentDefinition

IN_PROGRESS = "in_progress"
SUBMITTED = "submitted"
EVALUATED = "evaluated"

# Forward-only ordering of attempt states
STATUS_ORDER = {IN_PROGRESS: 0, SUBMITTED: 1, EVALUATED: 2}

# Grading outcomes. Objective answers move ungraded -> correct|incorrect,
# subjective answers move pending -> graded.
UNGRADED = "ungraded"
CORRECT = "correct"
INCORRECT = "incorrect"
PENDING = "pending"
GRADED = "graded"


@dataclass(frozen=True, slots=True)
class AnswerRecord:
    question_id: UUID
    value: AnswerValue | None = None  # None = not answered yet
    outcome: str = UNGRADED
    marks_awarded: int = 0
    saved_at: int | None = None

    @property
    def is_answered(self) -> bool:
        return self.value is not None


@dataclass(frozen=True, slots=True)
class Attempt:
    """One student's run through one assessment.

    (assessment_id, student_id) is the natural key; the stores enforce
    that at most one Attempt exists per key. total_score is derived from
    the answers by the engine and never accepted from clients.
    """

    id: UUID
    assessment_id: UUID
    student_id: str
    answers: tuple[AnswerRecord, ...]
    assessment_version: int = 1
    status: str = IN_PROGRESS  # in_progress|submitted|evaluated
    started_at: int = 0
    last_saved_at: int | None = None
    submitted_at: int | None = None
    evaluated_at: int | None = None
    total_score: int = 0
    feedback: str | None = None
    graded_by: str | None = None

    @property
    def is_mutable(self) -> bool:
        return self.status == IN_PROGRESS

    @property
    def answered_count(self) -> int:
        return sum(1 for a in self.answers if a.is_answered)

    @property
    def correct_count(self) -> int:
        return sum(1 for a in self.answers if a.outcome == CORRECT)

    @property
    def time_taken_seconds(self) -> int | None:
        if self.submitted_at is None:
            return None
        return self.submitted_at - self.started_at

    def answer(self, question_id: UUID) -> AnswerRecord | None:
        for a in self.answers:
            if a.question_id == question_id:
                return a
        return None

    def with_answer(self, record: AnswerRecord) -> Attempt:
        """Return a copy with the one matching AnswerRecord replaced."""
        answers = tuple(
            record if a.question_id == record.question_id else a
            for a in self.answers
        )
        return replace(self, answers=answers, last_saved_at=record.saved_at)

    def marks_sum(self) -> int:
        return sum(a.marks_awarded for a in self.answers)

    @staticmethod
    def new(
        *, definition: AssessmentDefinition, student_id: str, started_at: int
    ) -> Attempt:
        # One record per question up front, so every answer always
        # references a question of the bound definition.
        answers = tuple(
            AnswerRecord(
                question_id=q.id,
                outcome=UNGRADED if q.is_objective else PENDING,
            )
            for q in definition.questions
        )
        return Attempt(
            id=uuid4(),
            assessment_id=definition.id,
            assessment_version=definition.version,
            student_id=student_id,
            answers=answers,
            started_at=started_at,
        )
