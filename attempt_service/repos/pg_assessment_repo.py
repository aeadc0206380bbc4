"""PostgreSQL implementation of AssessmentCatalog."""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from attempt_service.db.tables import AssessmentRow, QuestionRow
from attempt_service.models.answer import answer_from_json
from attempt_service.models.assessment import AssessmentDefinition, Question


class PgAssessmentCatalog:
    """Satisfies the AssessmentCatalog Protocol using PostgreSQL."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get_definition(self, assessment_id: UUID) -> AssessmentDefinition | None:
        stmt = select(AssessmentRow).where(AssessmentRow.id == assessment_id)
        row = (await self._session.execute(stmt)).scalar_one_or_none()
        if row is None:
            return None

        q_stmt = (
            select(QuestionRow)
            .where(QuestionRow.assessment_id == assessment_id)
            .order_by(QuestionRow.position)
        )
        question_rows = (await self._session.execute(q_stmt)).scalars().all()
        return _row_to_definition(row, question_rows)


def _row_to_question(row: QuestionRow) -> Question:
    return Question(
        id=row.id,
        kind=row.kind,
        max_marks=row.max_marks,
        position=row.position,
        prompt=row.prompt or "",
        canonical_answer=answer_from_json(row.canonical_answer_json),
    )


def _row_to_definition(
    row: AssessmentRow, question_rows: list[QuestionRow] | tuple[QuestionRow, ...]
) -> AssessmentDefinition:
    return AssessmentDefinition(
        id=row.id,
        title=row.title,
        questions=tuple(_row_to_question(q) for q in question_rows),
        starts_at=row.starts_at,
        ends_at=row.ends_at,
        access_policy=row.access_policy,
        assigned_to=frozenset(row.assigned_to or ()),
        status=row.status,
        created_by=row.created_by,
        version=row.version,
    )
