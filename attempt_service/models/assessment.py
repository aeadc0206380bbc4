from __future__ import annotations

from dataclasses import dataclass
from uuid import UUID, uuid4

from attempt_service.models.answer import AnswerValue

OBJECTIVE = "objective"
SUBJECTIVE = "subjective"

PUBLIC = "public"
ASSIGNED = "assigned"


@dataclass(frozen=True, slots=True)
class Question:
    id: UUID
    kind: str  # objective|subjective
    max_marks: int
    position: int = 0
    prompt: str = ""
    canonical_answer: AnswerValue | None = None  # objective only

    @property
    def is_objective(self) -> bool:
        return self.kind == OBJECTIVE

    @staticmethod
    def objective(
        *,
        max_marks: int,
        canonical_answer: AnswerValue,
        position: int = 0,
        prompt: str = "",
    ) -> Question:
        if max_marks < 0:
            raise ValueError("max_marks must be non-negative")
        return Question(
            id=uuid4(),
            kind=OBJECTIVE,
            max_marks=max_marks,
            position=position,
            prompt=prompt,
            canonical_answer=canonical_answer,
        )

    @staticmethod
    def subjective(*, max_marks: int, position: int = 0, prompt: str = "") -> Question:
        if max_marks < 0:
            raise ValueError("max_marks must be non-negative")
        return Question(
            id=uuid4(),
            kind=SUBJECTIVE,
            max_marks=max_marks,
            position=position,
            prompt=prompt,
        )


@dataclass(frozen=True, slots=True)
class AssessmentDefinition:
    """Published assessment as supplied by the catalog. Never mutated here."""

    id: UUID
    title: str
    questions: tuple[Question, ...]
    starts_at: int | None = None
    ends_at: int | None = None
    access_policy: str = PUBLIC  # public|assigned
    assigned_to: frozenset[str] = frozenset()
    status: str = "published"  # draft|published|archived
    created_by: str | None = None
    version: int = 1

    @property
    def total_marks(self) -> int:
        return sum(q.max_marks for q in self.questions)

    @property
    def is_auto_gradable(self) -> bool:
        # An assessment with no questions has nothing for a human to grade.
        return all(q.is_objective for q in self.questions)

    def question(self, question_id: UUID) -> Question | None:
        for q in self.questions:
            if q.id == question_id:
                return q
        return None

    @staticmethod
    def new(
        *,
        title: str,
        questions: list[Question] | tuple[Question, ...],
        starts_at: int | None = None,
        ends_at: int | None = None,
        access_policy: str = PUBLIC,
        assigned_to: frozenset[str] = frozenset(),
        status: str = "published",
        created_by: str | None = None,
    ) -> AssessmentDefinition:
        if starts_at is not None and ends_at is not None and ends_at <= starts_at:
            raise ValueError("ends_at must be after starts_at")
        return AssessmentDefinition(
            id=uuid4(),
            title=title,
            questions=tuple(sorted(questions, key=lambda q: q.position)),
            starts_at=starts_at,
            ends_at=ends_at,
            access_policy=access_policy,
            assigned_to=frozenset(assigned_to),
            status=status,
            created_by=created_by,
        )
