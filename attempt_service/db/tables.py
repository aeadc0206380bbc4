"""SQLAlchemy table definitions.

These map to the frozen dataclass domain models in attempt_service/models/.
The domain models stay as-is; these tables are the persistence layer.
Repos convert between SQLAlchemy rows and domain dataclasses.
"""

from __future__ import annotations

import uuid

from sqlalchemy import (
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.dialects.postgresql import ARRAY, UUID
from sqlalchemy.orm import Mapped, mapped_column

from attempt_service.db.engine import Base

# --- Catalog (written by the authoring service, read-only here) ---


class AssessmentRow(Base):
    __tablename__ = "assessments"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    status: Mapped[str] = mapped_column(
        String(32), nullable=False, default="draft"
    )  # draft|published|archived
    access_policy: Mapped[str] = mapped_column(
        String(32), nullable=False, default="public"
    )  # public|assigned
    assigned_to: Mapped[list[str]] = mapped_column(
        ARRAY(String), nullable=False, default=[]
    )
    starts_at: Mapped[int | None] = mapped_column(Integer, nullable=True)
    ends_at: Mapped[int | None] = mapped_column(Integer, nullable=True)
    created_by: Mapped[str | None] = mapped_column(String(320), nullable=True)
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)


class QuestionRow(Base):
    __tablename__ = "questions"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    assessment_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("assessments.id"), nullable=False, index=True
    )
    kind: Mapped[str] = mapped_column(
        String(32), nullable=False
    )  # objective|subjective
    prompt: Mapped[str] = mapped_column(Text, nullable=False, default="")
    max_marks: Mapped[int] = mapped_column(Integer, nullable=False)
    position: Mapped[int] = mapped_column(Integer, nullable=False)
    canonical_answer_json: Mapped[str | None] = mapped_column(Text, nullable=True)


# --- Attempts (owned by this service) ---


class AttemptRow(Base):
    __tablename__ = "attempts"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    assessment_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("assessments.id"), nullable=False
    )
    assessment_version: Mapped[int] = mapped_column(Integer, nullable=False)
    student_id: Mapped[str] = mapped_column(
        String(320), nullable=False, index=True
    )
    status: Mapped[str] = mapped_column(
        String(32), nullable=False, default="in_progress"
    )  # in_progress|submitted|evaluated
    started_at: Mapped[int] = mapped_column(Integer, nullable=False)
    submitted_at: Mapped[int | None] = mapped_column(Integer, nullable=True)
    evaluated_at: Mapped[int | None] = mapped_column(Integer, nullable=True)
    total_score: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    feedback: Mapped[str | None] = mapped_column(Text, nullable=True)
    graded_by: Mapped[str | None] = mapped_column(String(320), nullable=True)

    # Backs the one-attempt-per-student rule and the ON CONFLICT insert.
    __table_args__ = (
        UniqueConstraint(
            "assessment_id", "student_id", name="uq_attempts_assessment_student"
        ),
    )


class AttemptAnswerRow(Base):
    __tablename__ = "attempt_answers"

    attempt_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("attempts.id"), primary_key=True
    )
    question_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("questions.id"), primary_key=True
    )
    position: Mapped[int] = mapped_column(Integer, nullable=False)
    value_json: Mapped[str | None] = mapped_column(Text, nullable=True)
    outcome: Mapped[str] = mapped_column(
        String(16), nullable=False
    )  # ungraded|correct|incorrect|pending|graded
    marks_awarded: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    saved_at: Mapped[int | None] = mapped_column(Integer, nullable=True)
