from __future__ import annotations

import threading
from collections.abc import Callable
from typing import Protocol
from uuid import UUID

from attempt_service.core.errors import (
    AlreadyStartedError,
    AlreadySubmittedError,
    AttemptNotFoundError,
    NotMutableError,
    NotSubmittedError,
    UnknownQuestionError,
)
from attempt_service.models.attempt import (
    IN_PROGRESS,
    STATUS_ORDER,
    AnswerRecord,
    Attempt,
)

# Pure function applied to the locked, current attempt inside submit/finalize.
AttemptUpdate = Callable[[Attempt], Attempt]


class AttemptRepo(Protocol):
    async def start(self, attempt: Attempt) -> Attempt: ...
    async def get(self, attempt_id: UUID) -> Attempt | None: ...
    async def get_by_key(
        self, assessment_id: UUID, student_id: str
    ) -> Attempt | None: ...
    async def list_by_student(
        self, student_id: str, status: str | None = None
    ) -> list[Attempt]: ...
    async def list_by_assessment(
        self,
        assessment_id: UUID,
        status: str | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[Attempt]: ...
    async def save_answer(self, attempt_id: UUID, record: AnswerRecord) -> Attempt: ...
    async def submit(self, attempt_id: UUID, apply: AttemptUpdate) -> Attempt: ...
    async def finalize(self, attempt_id: UUID, apply: AttemptUpdate) -> Attempt: ...


def ensure_forward(before: Attempt, after: Attempt) -> None:
    """Reject any update that would move status backwards or break the score sum."""
    if STATUS_ORDER[after.status] < STATUS_ORDER[before.status]:
        raise ValueError(f"status cannot move from {before.status} to {after.status}")
    if after.status != IN_PROGRESS and after.total_score != after.marks_sum():
        raise ValueError("total_score must equal the sum of awarded marks")


class InMemoryAttemptRepo:
    """Dict-backed store for dev and tests.

    A single lock makes every check-then-write atomic, including across
    the threads FastAPI uses for sync dependencies and across event loops.
    Nothing inside the lock awaits.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._by_id: dict[UUID, Attempt] = {}
        self._by_key: dict[tuple[UUID, str], UUID] = {}

    async def start(self, attempt: Attempt) -> Attempt:
        key = (attempt.assessment_id, attempt.student_id)
        with self._lock:
            existing_id = self._by_key.get(key)
            if existing_id is not None:
                raise AlreadyStartedError(existing_id)
            self._by_key[key] = attempt.id
            self._by_id[attempt.id] = attempt
        return attempt

    async def get(self, attempt_id: UUID) -> Attempt | None:
        return self._by_id.get(attempt_id)

    async def get_by_key(self, assessment_id: UUID, student_id: str) -> Attempt | None:
        attempt_id = self._by_key.get((assessment_id, student_id))
        if attempt_id is None:
            return None
        return self._by_id.get(attempt_id)

    async def list_by_student(
        self, student_id: str, status: str | None = None
    ) -> list[Attempt]:
        attempts = [
            a
            for a in self._by_id.values()
            if a.student_id == student_id and (status is None or a.status == status)
        ]
        return sorted(attempts, key=lambda a: a.started_at, reverse=True)

    async def list_by_assessment(
        self,
        assessment_id: UUID,
        status: str | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[Attempt]:
        attempts = [
            a
            for a in self._by_id.values()
            if a.assessment_id == assessment_id
            and (status is None or a.status == status)
        ]
        attempts.sort(key=lambda a: (a.submitted_at or 0, a.started_at), reverse=True)
        return attempts[offset : offset + limit]

    async def save_answer(self, attempt_id: UUID, record: AnswerRecord) -> Attempt:
        with self._lock:
            current = self._by_id.get(attempt_id)
            if current is None:
                raise AttemptNotFoundError(attempt_id)
            if not current.is_mutable:
                raise NotMutableError(attempt_id, reason="status")
            if current.answer(record.question_id) is None:
                raise UnknownQuestionError(record.question_id)
            updated = current.with_answer(record)
            self._by_id[attempt_id] = updated
        return updated

    async def submit(self, attempt_id: UUID, apply: AttemptUpdate) -> Attempt:
        with self._lock:
            current = self._by_id.get(attempt_id)
            if current is None:
                raise AttemptNotFoundError(attempt_id)
            if current.status != IN_PROGRESS:
                raise AlreadySubmittedError(attempt_id, current.status)
            updated = apply(current)
            ensure_forward(current, updated)
            self._by_id[attempt_id] = updated
        return updated

    async def finalize(self, attempt_id: UUID, apply: AttemptUpdate) -> Attempt:
        with self._lock:
            current = self._by_id.get(attempt_id)
            if current is None:
                raise AttemptNotFoundError(attempt_id)
            if current.status == IN_PROGRESS:
                raise NotSubmittedError(attempt_id)
            updated = apply(current)
            if updated is current:
                return current
            ensure_forward(current, updated)
            self._by_id[attempt_id] = updated
        return updated
