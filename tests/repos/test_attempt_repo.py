from __future__ import annotations

import asyncio
from dataclasses import replace
from uuid import uuid4

import pytest

from attempt_service.core.errors import (
    AlreadyStartedError,
    AlreadySubmittedError,
    AttemptNotFoundError,
    NotMutableError,
    NotSubmittedError,
    UnknownQuestionError,
)
from attempt_service.models.answer import ScalarAnswer
from attempt_service.models.assessment import AssessmentDefinition
from attempt_service.models.attempt import (
    EVALUATED,
    IN_PROGRESS,
    SUBMITTED,
    AnswerRecord,
    Attempt,
)
from attempt_service.repos.assessment_repo import InMemoryAssessmentCatalog
from attempt_service.repos.attempt_repo import InMemoryAttemptRepo, ensure_forward
from tests.conftest import objective


def _attempt(student_id: str = "s1", definition=None) -> Attempt:
    definition = definition or AssessmentDefinition.new(
        title="quiz", questions=[objective()]
    )
    return Attempt.new(definition=definition, student_id=student_id, started_at=100)


def test_start_rejects_duplicate_key() -> None:
    repo = InMemoryAttemptRepo()
    first = _attempt()
    asyncio.run(repo.start(first))

    duplicate = replace(first, id=uuid4())
    with pytest.raises(AlreadyStartedError) as exc:
        asyncio.run(repo.start(duplicate))
    assert exc.value.existing_attempt_id == first.id
    assert asyncio.run(repo.get(duplicate.id)) is None


def test_save_answer_touches_only_that_question() -> None:
    repo = InMemoryAttemptRepo()
    q1, q2 = objective(position=0), objective(position=1)
    definition = AssessmentDefinition.new(title="quiz", questions=[q1, q2])
    attempt = asyncio.run(repo.start(_attempt(definition=definition)))

    record = AnswerRecord(question_id=q2.id, value=ScalarAnswer("A"), saved_at=150)
    updated = asyncio.run(repo.save_answer(attempt.id, record))

    assert updated.answer(q1.id) == attempt.answer(q1.id)
    assert updated.answer(q2.id) == record
    assert updated.last_saved_at == 150


def test_save_answer_errors() -> None:
    repo = InMemoryAttemptRepo()
    attempt = asyncio.run(repo.start(_attempt()))
    qid = attempt.answers[0].question_id

    with pytest.raises(AttemptNotFoundError):
        asyncio.run(repo.save_answer(uuid4(), AnswerRecord(question_id=qid)))
    with pytest.raises(UnknownQuestionError):
        asyncio.run(repo.save_answer(attempt.id, AnswerRecord(question_id=uuid4())))

    asyncio.run(repo.submit(attempt.id, lambda a: replace(a, status=SUBMITTED)))
    with pytest.raises(NotMutableError):
        asyncio.run(repo.save_answer(attempt.id, AnswerRecord(question_id=qid)))


def test_submit_only_from_in_progress() -> None:
    repo = InMemoryAttemptRepo()
    attempt = asyncio.run(repo.start(_attempt()))
    asyncio.run(repo.submit(attempt.id, lambda a: replace(a, status=SUBMITTED)))
    with pytest.raises(AlreadySubmittedError):
        asyncio.run(repo.submit(attempt.id, lambda a: replace(a, status=SUBMITTED)))


def test_finalize_requires_submission() -> None:
    repo = InMemoryAttemptRepo()
    attempt = asyncio.run(repo.start(_attempt()))
    with pytest.raises(NotSubmittedError):
        asyncio.run(repo.finalize(attempt.id, lambda a: replace(a, status=EVALUATED)))


def test_finalize_returning_current_writes_nothing() -> None:
    repo = InMemoryAttemptRepo()
    attempt = asyncio.run(repo.start(_attempt()))
    submitted = asyncio.run(
        repo.submit(attempt.id, lambda a: replace(a, status=SUBMITTED))
    )
    same = asyncio.run(repo.finalize(attempt.id, lambda a: a))
    assert same is submitted


def test_ensure_forward_rejects_backwards_status() -> None:
    attempt = _attempt()
    submitted = replace(attempt, status=SUBMITTED)
    with pytest.raises(ValueError, match="cannot move"):
        ensure_forward(submitted, replace(submitted, status=IN_PROGRESS))


def test_ensure_forward_rejects_inconsistent_total() -> None:
    attempt = _attempt()
    with pytest.raises(ValueError, match="total_score"):
        ensure_forward(attempt, replace(attempt, status=SUBMITTED, total_score=5))


def test_store_rejects_backwards_update() -> None:
    repo = InMemoryAttemptRepo()
    attempt = asyncio.run(repo.start(_attempt()))
    asyncio.run(repo.submit(attempt.id, lambda a: replace(a, status=SUBMITTED)))
    with pytest.raises(ValueError):
        asyncio.run(repo.finalize(attempt.id, lambda a: replace(a, status=IN_PROGRESS)))
    assert asyncio.run(repo.get(attempt.id)).status == SUBMITTED


def test_catalog_rejects_republish() -> None:
    catalog = InMemoryAssessmentCatalog()
    definition = AssessmentDefinition.new(title="quiz", questions=[])
    catalog.publish(definition)
    with pytest.raises(ValueError):
        catalog.publish(definition)
    assert asyncio.run(catalog.get_definition(definition.id)) is definition
