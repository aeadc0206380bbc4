"""PostgreSQL implementation of AttemptRepo.

Concurrency relies on the database, not on the process:

- start: INSERT ... ON CONFLICT DO NOTHING against the
  (assessment_id, student_id) unique constraint. Exactly one racer gets a
  row back; the others read the winner's id and raise AlreadyStartedError.
- save_answer: takes FOR SHARE on the attempt row. Saves to different
  questions run side by side (they update different answer rows), while
  a submit holding FOR UPDATE makes them wait and then see the new status.
- submit/finalize: take FOR UPDATE on the attempt row before reading the
  answers they grade, so the graded snapshot is the frozen one.

last_saved_at is derived from the answer rows instead of stored on the
attempt row, so concurrent saves never contend for the attempt row lock.
"""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.ext.asyncio import AsyncSession

from attempt_service.core.errors import (
    AlreadyStartedError,
    AlreadySubmittedError,
    AttemptNotFoundError,
    NotMutableError,
    NotSubmittedError,
    UnknownQuestionError,
)
from attempt_service.db.tables import AttemptAnswerRow, AttemptRow
from attempt_service.models.answer import answer_from_json, answer_to_json
from attempt_service.models.attempt import IN_PROGRESS, AnswerRecord, Attempt
from attempt_service.repos.attempt_repo import AttemptUpdate, ensure_forward


class PgAttemptRepo:
    """Satisfies the AttemptRepo Protocol using PostgreSQL via SQLAlchemy."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def start(self, attempt: Attempt) -> Attempt:
        stmt = (
            pg_insert(AttemptRow)
            .values(
                id=attempt.id,
                assessment_id=attempt.assessment_id,
                assessment_version=attempt.assessment_version,
                student_id=attempt.student_id,
                status=attempt.status,
                started_at=attempt.started_at,
                total_score=attempt.total_score,
            )
            .on_conflict_do_nothing(constraint="uq_attempts_assessment_student")
            .returning(AttemptRow.id)
        )
        inserted_id = (await self._session.execute(stmt)).scalar_one_or_none()
        if inserted_id is None:
            existing = await self._session.execute(
                select(AttemptRow.id).where(
                    AttemptRow.assessment_id == attempt.assessment_id,
                    AttemptRow.student_id == attempt.student_id,
                )
            )
            raise AlreadyStartedError(existing.scalar_one())

        self._session.add_all(
            [
                AttemptAnswerRow(
                    attempt_id=attempt.id,
                    question_id=a.question_id,
                    position=position,
                    value_json=answer_to_json(a.value),
                    outcome=a.outcome,
                    marks_awarded=a.marks_awarded,
                    saved_at=a.saved_at,
                )
                for position, a in enumerate(attempt.answers)
            ]
        )
        await self._session.flush()
        return attempt

    async def get(self, attempt_id: UUID) -> Attempt | None:
        stmt = select(AttemptRow).where(AttemptRow.id == attempt_id)
        row = (await self._session.execute(stmt)).scalar_one_or_none()
        if row is None:
            return None
        return await self._load(row)

    async def get_by_key(self, assessment_id: UUID, student_id: str) -> Attempt | None:
        stmt = select(AttemptRow).where(
            AttemptRow.assessment_id == assessment_id,
            AttemptRow.student_id == student_id,
        )
        row = (await self._session.execute(stmt)).scalar_one_or_none()
        if row is None:
            return None
        return await self._load(row)

    async def list_by_student(
        self, student_id: str, status: str | None = None
    ) -> list[Attempt]:
        stmt = select(AttemptRow).where(AttemptRow.student_id == student_id)
        if status is not None:
            stmt = stmt.where(AttemptRow.status == status)
        stmt = stmt.order_by(AttemptRow.started_at.desc())
        rows = (await self._session.execute(stmt)).scalars().all()
        return [await self._load(r) for r in rows]

    async def list_by_assessment(
        self,
        assessment_id: UUID,
        status: str | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[Attempt]:
        stmt = select(AttemptRow).where(AttemptRow.assessment_id == assessment_id)
        if status is not None:
            stmt = stmt.where(AttemptRow.status == status)
        stmt = (
            stmt.order_by(
                AttemptRow.submitted_at.desc().nulls_last(),
                AttemptRow.started_at.desc(),
            )
            .limit(limit)
            .offset(offset)
        )
        rows = (await self._session.execute(stmt)).scalars().all()
        return [await self._load(r) for r in rows]

    async def save_answer(self, attempt_id: UUID, record: AnswerRecord) -> Attempt:
        # FOR SHARE: compatible with other saves, blocks against submit.
        stmt = (
            select(AttemptRow)
            .where(AttemptRow.id == attempt_id)
            .with_for_update(read=True)
            .execution_options(populate_existing=True)
        )
        row = (await self._session.execute(stmt)).scalar_one_or_none()
        if row is None:
            raise AttemptNotFoundError(attempt_id)
        if row.status != IN_PROGRESS:
            raise NotMutableError(attempt_id, reason="status")

        update_stmt = (
            update(AttemptAnswerRow)
            .where(AttemptAnswerRow.attempt_id == attempt_id)
            .where(AttemptAnswerRow.question_id == record.question_id)
            .values(
                value_json=answer_to_json(record.value),
                outcome=record.outcome,
                marks_awarded=record.marks_awarded,
                saved_at=record.saved_at,
            )
        )
        result = await self._session.execute(update_stmt)
        if result.rowcount == 0:
            raise UnknownQuestionError(record.question_id)

        return await self._load(row)

    async def submit(self, attempt_id: UUID, apply: AttemptUpdate) -> Attempt:
        row = await self._lock(attempt_id)
        if row.status != IN_PROGRESS:
            raise AlreadySubmittedError(attempt_id, row.status)

        current = await self._load(row)
        updated = apply(current)
        ensure_forward(current, updated)
        await self._write(current, updated)
        return updated

    async def finalize(self, attempt_id: UUID, apply: AttemptUpdate) -> Attempt:
        row = await self._lock(attempt_id)
        if row.status == IN_PROGRESS:
            raise NotSubmittedError(attempt_id)

        current = await self._load(row)
        updated = apply(current)
        if updated is current:
            return current
        ensure_forward(current, updated)
        await self._write(current, updated)
        return updated

    # --- helpers ---

    async def _lock(self, attempt_id: UUID) -> AttemptRow:
        stmt = (
            select(AttemptRow)
            .where(AttemptRow.id == attempt_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        row = (await self._session.execute(stmt)).scalar_one_or_none()
        if row is None:
            raise AttemptNotFoundError(attempt_id)
        return row

    async def _load(self, row: AttemptRow) -> Attempt:
        stmt = (
            select(AttemptAnswerRow)
            .where(AttemptAnswerRow.attempt_id == row.id)
            .order_by(AttemptAnswerRow.position)
            .execution_options(populate_existing=True)
        )
        answer_rows = (await self._session.execute(stmt)).scalars().all()
        return _row_to_attempt(row, answer_rows)

    async def _write(self, before: Attempt, after: Attempt) -> None:
        """Persist grading fields and lifecycle fields. Raw values are never rewritten."""
        await self._session.execute(
            update(AttemptRow)
            .where(AttemptRow.id == after.id)
            .values(
                status=after.status,
                submitted_at=after.submitted_at,
                evaluated_at=after.evaluated_at,
                total_score=after.total_score,
                feedback=after.feedback,
                graded_by=after.graded_by,
            )
        )
        previous = {a.question_id: a for a in before.answers}
        for answer in after.answers:
            old = previous.get(answer.question_id)
            if old is not None and (old.outcome, old.marks_awarded) == (
                answer.outcome,
                answer.marks_awarded,
            ):
                continue
            await self._session.execute(
                update(AttemptAnswerRow)
                .where(AttemptAnswerRow.attempt_id == after.id)
                .where(AttemptAnswerRow.question_id == answer.question_id)
                .values(outcome=answer.outcome, marks_awarded=answer.marks_awarded)
            )


def _row_to_attempt(row: AttemptRow, answer_rows) -> Attempt:
    answers = tuple(
        AnswerRecord(
            question_id=a.question_id,
            value=answer_from_json(a.value_json),
            outcome=a.outcome,
            marks_awarded=a.marks_awarded,
            saved_at=a.saved_at,
        )
        for a in answer_rows
    )
    saved = [a.saved_at for a in answers if a.saved_at is not None]
    return Attempt(
        id=row.id,
        assessment_id=row.assessment_id,
        assessment_version=row.assessment_version,
        student_id=row.student_id,
        answers=answers,
        status=row.status,
        started_at=row.started_at,
        last_saved_at=max(saved) if saved else None,
        submitted_at=row.submitted_at,
        evaluated_at=row.evaluated_at,
        total_score=row.total_score,
        feedback=row.feedback,
        graded_by=row.graded_by,
    )
