from __future__ import annotations

import sys
from dataclasses import dataclass
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from attempt_service.api.dependencies import assessment_catalog, attempt_repo
from attempt_service.main import app
from attempt_service.models.answer import ScalarAnswer
from attempt_service.models.assessment import AssessmentDefinition, Question
from attempt_service.repos.assessment_repo import InMemoryAssessmentCatalog
from attempt_service.repos.attempt_repo import InMemoryAttemptRepo
from attempt_service.services import token_service
from attempt_service.services.attempts_service import AttemptsService
from attempt_service.services.events import EventPublisher
from attempt_service.services.grading_service import GradingService
from attempt_service.services.task_queue import InMemoryTaskQueue, task_queue

# Ensure repo root is on sys.path so `import attempt_service` works under pytest.
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))


@pytest.fixture(autouse=True)
def reset_attempt_store() -> None:
    """Clear the in-memory attempt store between tests."""
    attempt_repo._by_id.clear()
    attempt_repo._by_key.clear()


@pytest.fixture(autouse=True)
def reset_catalog() -> None:
    """Clear published assessments between tests."""
    assessment_catalog._by_id.clear()


@pytest.fixture(autouse=True)
def reset_task_queue() -> None:
    """Clear task queues between tests."""
    if hasattr(task_queue, "_queues"):
        task_queue._queues.clear()  # type: ignore[union-attr]


@pytest.fixture
def client() -> TestClient:
    return TestClient(app)


def mint_token(
    username: str = "student-1",
    roles: list[str] | None = None,
) -> str:
    """Create a valid ES256 JWT for testing."""
    return token_service.create_access_token(sub=username, roles=roles)


def auth(username: str = "student-1", roles: list[str] | None = None) -> dict[str, str]:
    return {"Authorization": f"Bearer {mint_token(username, roles)}"}


@pytest.fixture
def token() -> str:
    """Token with the default role (student)."""
    return mint_token()


@pytest.fixture
def instructor_token() -> str:
    return mint_token(username="instructor-1", roles=["instructor"])


@pytest.fixture
def admin_token() -> str:
    return mint_token(username="test-admin", roles=["admin"])


# ---------------------------------------------------------------------------
# Catalog helpers
# ---------------------------------------------------------------------------


def objective(answer: str = "B", max_marks: int = 1, position: int = 0) -> Question:
    return Question.objective(
        max_marks=max_marks,
        canonical_answer=ScalarAnswer(answer),
        position=position,
    )


def subjective(max_marks: int = 5, position: int = 0) -> Question:
    return Question.subjective(max_marks=max_marks, position=position)


def publish_assessment(
    *questions: Question,
    created_by: str | None = "instructor-1",
    **kwargs,
) -> AssessmentDefinition:
    """Build a definition and publish it to the in-memory catalog."""
    definition = AssessmentDefinition.new(
        title="Unit quiz",
        questions=list(questions),
        created_by=created_by,
        **kwargs,
    )
    assessment_catalog.publish(definition)
    return definition


# ---------------------------------------------------------------------------
# Service harness (fresh stores, controllable clock)
# ---------------------------------------------------------------------------


class FakeClock:
    def __init__(self, now: int = 1_000) -> None:
        self.now = now

    def __call__(self) -> int:
        return self.now


@dataclass
class Harness:
    catalog: InMemoryAssessmentCatalog
    repo: InMemoryAttemptRepo
    queue: InMemoryTaskQueue
    clock: FakeClock
    attempts: AttemptsService
    grading: GradingService

    def publish(
        self, *questions: Question, created_by: str | None = "instructor-1", **kwargs
    ) -> AssessmentDefinition:
        definition = AssessmentDefinition.new(
            title="Unit quiz",
            questions=list(questions),
            created_by=created_by,
            **kwargs,
        )
        self.catalog.publish(definition)
        return definition

    def events(self, queue: str) -> list[dict]:
        return [t.payload for t in self.queue._queues.get(queue, [])]


def make_harness(now: int = 1_000) -> Harness:
    catalog = InMemoryAssessmentCatalog()
    repo = InMemoryAttemptRepo()
    queue = InMemoryTaskQueue()
    clock = FakeClock(now)
    events = EventPublisher(queue)
    return Harness(
        catalog=catalog,
        repo=repo,
        queue=queue,
        clock=clock,
        attempts=AttemptsService(catalog, repo, events, clock),
        grading=GradingService(catalog, repo, events, clock),
    )


@pytest.fixture
def harness() -> Harness:
    return make_harness()
