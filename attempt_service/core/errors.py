"""Error taxonomy for the attempt engine.

Every failure the engine reports carries a stable ``kind`` string so the
HTTP layer (and any other binding) can surface it without string-matching
messages:

  AccessDeniedError  window or ownership failures. Not retryable.
  NotFoundError      unknown attempt or assessment.
  ConflictError      duplicate start, double submit, frozen attempt,
                     re-grade mismatch. Callers should re-fetch state
                     rather than retry blindly.
  ValidationError    marks out of range, unknown question id, malformed
                     grading payload.

AlreadyStartedError is the one recoverable conflict: it carries the id of
the attempt that won the race, and the caller may proceed with it.
"""

from __future__ import annotations

from typing import Any
from uuid import UUID


class AttemptError(Exception):
    """Base class for every error the engine raises on purpose."""

    kind = "error"

    def __init__(self, message: str, **extra: Any) -> None:
        super().__init__(message)
        self.message = message
        self.extra = extra

    def to_detail(self) -> dict[str, Any]:
        detail: dict[str, Any] = {"kind": self.kind, "message": self.message}
        for key, value in self.extra.items():
            detail[key] = str(value) if isinstance(value, UUID) else value
        return detail


# ---------------------------------------------------------------------------
# Access
# ---------------------------------------------------------------------------


class AccessDeniedError(AttemptError):
    kind = "access-denied"

    def __init__(self, reason: str, message: str | None = None) -> None:
        super().__init__(message or f"access denied: {reason}", reason=reason)
        self.reason = reason


# ---------------------------------------------------------------------------
# Not found
# ---------------------------------------------------------------------------


class NotFoundError(AttemptError):
    kind = "not-found"


class AttemptNotFoundError(NotFoundError):
    def __init__(self, attempt_id: UUID) -> None:
        super().__init__("attempt not found", attempt_id=attempt_id)
        self.attempt_id = attempt_id


class AssessmentNotFoundError(NotFoundError):
    def __init__(self, assessment_id: UUID) -> None:
        super().__init__("assessment not found", assessment_id=assessment_id)
        self.assessment_id = assessment_id


# ---------------------------------------------------------------------------
# Conflicts
# ---------------------------------------------------------------------------


class ConflictError(AttemptError):
    kind = "conflict"


class AlreadyStartedError(ConflictError):
    kind = "already-started"

    def __init__(self, existing_attempt_id: UUID) -> None:
        super().__init__(
            "attempt already started",
            existing_attempt_id=existing_attempt_id,
        )
        self.existing_attempt_id = existing_attempt_id


class AlreadySubmittedError(ConflictError):
    kind = "already-submitted"

    def __init__(self, attempt_id: UUID, status: str) -> None:
        super().__init__(
            "attempt already submitted", attempt_id=attempt_id, status=status
        )
        self.attempt_id = attempt_id


class NotMutableError(ConflictError):
    """The attempt no longer accepts answers.

    reason is "status" when the attempt has left in_progress, or the guard's
    denial reason (usually "after-window") when the access window closed
    on an attempt that is still in_progress.
    """

    kind = "not-mutable"

    def __init__(self, attempt_id: UUID, reason: str) -> None:
        super().__init__(
            "attempt is not accepting answers", attempt_id=attempt_id, reason=reason
        )
        self.attempt_id = attempt_id
        self.reason = reason


class NotSubmittedError(ConflictError):
    kind = "not-submitted"

    def __init__(self, attempt_id: UUID) -> None:
        super().__init__("attempt has not been submitted", attempt_id=attempt_id)
        self.attempt_id = attempt_id


class AlreadyEvaluatedError(ConflictError):
    kind = "already-evaluated"

    def __init__(self, attempt_id: UUID) -> None:
        super().__init__(
            "attempt already evaluated with a different result",
            attempt_id=attempt_id,
        )
        self.attempt_id = attempt_id


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


class ValidationError(AttemptError):
    kind = "validation"


class UnknownQuestionError(ValidationError):
    def __init__(self, question_id: UUID) -> None:
        super().__init__("question not in assessment", question_id=question_id)
        self.question_id = question_id


class MarksOutOfRangeError(ValidationError):
    kind = "marks-out-of-range"

    def __init__(self, question_id: UUID, marks: int, max_marks: int) -> None:
        super().__init__(
            f"marks must be between 0 and {max_marks}",
            question_id=question_id,
            marks_awarded=marks,
            max_marks=max_marks,
        )
        self.question_id = question_id


class GradingValidationError(ValidationError):
    pass
