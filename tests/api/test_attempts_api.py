"""HTTP tests for the student-facing attempt routes."""

from __future__ import annotations

import time
from dataclasses import replace
from uuid import uuid4

from fastapi.testclient import TestClient

from attempt_service.api.dependencies import assessment_catalog
from attempt_service.models.assessment import ASSIGNED
from tests.conftest import auth, objective, publish_assessment, subjective


def _start(client: TestClient, assessment_id, user: str = "student-1") -> dict:
    resp = client.post(f"/v1/assessments/{assessment_id}/attempts", headers=auth(user))
    assert resp.status_code == 201, resp.text
    return resp.json()


def _save(client: TestClient, attempt_id, question_id, value, user: str = "student-1"):
    return client.put(
        f"/v1/attempts/{attempt_id}/answers/{question_id}",
        json={"value": value},
        headers=auth(user),
    )


# ---- start ----


def test_start_returns_201_with_prepopulated_answers(client: TestClient) -> None:
    q1, q2 = objective(position=0), subjective(position=1)
    d = publish_assessment(q1, q2)

    body = _start(client, d.id)

    assert body["status"] == "in_progress"
    assert body["assessment_id"] == str(d.id)
    assert body["student_id"] == "student-1"
    assert [a["question_id"] for a in body["answers"]] == [str(q1.id), str(q2.id)]
    assert all(a["value"] is None for a in body["answers"])


def test_start_requires_auth(client: TestClient) -> None:
    d = publish_assessment(objective())
    resp = client.post(f"/v1/assessments/{d.id}/attempts")
    assert resp.status_code == 401


def test_duplicate_start_returns_409_with_existing_id(client: TestClient) -> None:
    d = publish_assessment(objective())
    first = _start(client, d.id)

    resp = client.post(f"/v1/assessments/{d.id}/attempts", headers=auth())
    assert resp.status_code == 409
    detail = resp.json()["detail"]
    assert detail["kind"] == "already-started"
    assert detail["existing_attempt_id"] == first["id"]


def test_start_unknown_assessment_404(client: TestClient) -> None:
    resp = client.post(f"/v1/assessments/{uuid4()}/attempts", headers=auth())
    assert resp.status_code == 404
    assert resp.json()["detail"]["kind"] == "not-found"


def test_start_before_window_403(client: TestClient) -> None:
    now = int(time.time())
    d = publish_assessment(objective(), starts_at=now + 3600, ends_at=now + 7200)
    resp = client.post(f"/v1/assessments/{d.id}/attempts", headers=auth())
    assert resp.status_code == 403
    assert resp.json()["detail"] == {
        "kind": "access-denied",
        "message": "access denied: before-window",
        "reason": "before-window",
    }


def test_start_not_assigned_403(client: TestClient) -> None:
    d = publish_assessment(
        objective(), access_policy=ASSIGNED, assigned_to=frozenset({"student-1"})
    )
    resp = client.post(f"/v1/assessments/{d.id}/attempts", headers=auth("student-2"))
    assert resp.status_code == 403
    assert resp.json()["detail"]["reason"] == "not-permitted"


def test_start_draft_assessment_403(client: TestClient) -> None:
    d = publish_assessment(objective(), status="draft")
    resp = client.post(f"/v1/assessments/{d.id}/attempts", headers=auth())
    assert resp.status_code == 403
    assert resp.json()["detail"]["reason"] == "not-published"


# ---- save ----


def test_save_answer_acknowledges_with_last_saved_at(client: TestClient) -> None:
    q = objective()
    d = publish_assessment(q)
    attempt = _start(client, d.id)

    resp = _save(client, attempt["id"], q.id, {"kind": "scalar", "value": "B"})

    assert resp.status_code == 200
    body = resp.json()
    assert body["attempt_id"] == attempt["id"]
    assert body["question_id"] == str(q.id)
    assert isinstance(body["last_saved_at"], int)


def test_saved_answer_visible_but_outcome_redacted(client: TestClient) -> None:
    q = objective(answer="B")
    d = publish_assessment(q)
    attempt = _start(client, d.id)
    _save(client, attempt["id"], q.id, {"kind": "scalar", "value": "B"})

    resp = client.get(f"/v1/attempts/{attempt['id']}", headers=auth())
    assert resp.status_code == 200
    body = resp.json()
    [answer] = body["answers"]
    assert answer["value"] == {"kind": "scalar", "value": "B"}
    assert answer["outcome"] is None
    assert answer["marks_awarded"] is None
    assert body["correct_count"] is None
    assert body["answered_count"] == 1
    assert body["total_marks"] == 1
    assert body["percentage"] is None


def test_save_multi_select_and_free_text(client: TestClient) -> None:
    q1, q2 = objective(position=0), subjective(position=1)
    d = publish_assessment(q1, q2)
    attempt = _start(client, d.id)

    r1 = _save(client, attempt["id"], q1.id, {"kind": "multi_select", "values": ["C", "A"]})
    r2 = _save(client, attempt["id"], q2.id, {"kind": "free_text", "text": "My essay"})
    assert r1.status_code == r2.status_code == 200

    body = client.get(f"/v1/attempts/{attempt['id']}", headers=auth()).json()
    assert body["answers"][0]["value"] == {"kind": "multi_select", "values": ["A", "C"]}
    assert body["answers"][1]["value"] == {"kind": "free_text", "text": "My essay"}


def test_save_null_clears_answer(client: TestClient) -> None:
    q = subjective()
    d = publish_assessment(q)
    attempt = _start(client, d.id)
    _save(client, attempt["id"], q.id, {"kind": "free_text", "text": "draft"})

    resp = _save(client, attempt["id"], q.id, None)
    assert resp.status_code == 200
    body = client.get(f"/v1/attempts/{attempt['id']}", headers=auth()).json()
    assert body["answers"][0]["value"] is None


def test_save_malformed_value_422(client: TestClient) -> None:
    q = objective()
    d = publish_assessment(q)
    attempt = _start(client, d.id)
    resp = _save(client, attempt["id"], q.id, {"kind": "essay", "value": "B"})
    assert resp.status_code == 422


def test_save_unknown_question_422(client: TestClient) -> None:
    d = publish_assessment(objective())
    attempt = _start(client, d.id)
    resp = _save(client, attempt["id"], uuid4(), {"kind": "scalar", "value": "B"})
    assert resp.status_code == 422
    assert resp.json()["detail"]["kind"] == "validation"


def test_save_someone_elses_attempt_403(client: TestClient) -> None:
    q = objective()
    d = publish_assessment(q)
    attempt = _start(client, d.id)
    resp = _save(
        client, attempt["id"], q.id, {"kind": "scalar", "value": "B"}, user="student-2"
    )
    assert resp.status_code == 403
    assert resp.json()["detail"]["reason"] == "not-owner"


def test_save_after_window_closed_409(client: TestClient) -> None:
    q = objective()
    now = int(time.time())
    d = publish_assessment(q, starts_at=now - 60, ends_at=now + 3600)
    attempt = _start(client, d.id)

    # Simulate the deadline passing while the student is still working.
    assessment_catalog._by_id[d.id] = replace(d, ends_at=now - 1)

    resp = _save(client, attempt["id"], q.id, {"kind": "scalar", "value": "B"})
    assert resp.status_code == 409
    detail = resp.json()["detail"]
    assert detail["kind"] == "not-mutable"
    assert detail["reason"] == "after-window"


def test_save_after_submit_409(client: TestClient) -> None:
    q = subjective()
    d = publish_assessment(q)
    attempt = _start(client, d.id)
    client.post(f"/v1/attempts/{attempt['id']}/submit", headers=auth())

    resp = _save(client, attempt["id"], q.id, {"kind": "free_text", "text": "late"})
    assert resp.status_code == 409
    assert resp.json()["detail"]["reason"] == "status"


# ---- submit ----


def test_submit_all_objective_is_evaluated(client: TestClient) -> None:
    q1 = objective(answer="B", max_marks=2, position=0)
    q2 = objective(answer="C", max_marks=2, position=1)
    q3 = objective(answer="D", max_marks=2, position=2)
    d = publish_assessment(q1, q2, q3)
    attempt = _start(client, d.id)
    _save(client, attempt["id"], q1.id, {"kind": "scalar", "value": "B"})
    _save(client, attempt["id"], q2.id, {"kind": "scalar", "value": "A"})

    resp = client.post(f"/v1/attempts/{attempt['id']}/submit", headers=auth())

    assert resp.status_code == 200
    body = resp.json()
    assert body["status"] == "evaluated"
    assert body["total_score"] == 2
    assert body["total_marks"] == 6
    assert body["percentage"] == 33.33
    assert [a["outcome"] for a in body["answers"]] == ["correct", "incorrect", "incorrect"]
    assert body["correct_count"] == 1
    assert body["time_taken_seconds"] is not None


def test_submit_twice_409(client: TestClient) -> None:
    d = publish_assessment(subjective())
    attempt = _start(client, d.id)
    client.post(f"/v1/attempts/{attempt['id']}/submit", headers=auth())

    resp = client.post(f"/v1/attempts/{attempt['id']}/submit", headers=auth())
    assert resp.status_code == 409
    assert resp.json()["detail"]["kind"] == "already-submitted"


def test_submit_unknown_attempt_404(client: TestClient) -> None:
    resp = client.post(f"/v1/attempts/{uuid4()}/submit", headers=auth())
    assert resp.status_code == 404


# ---- reads ----


def test_get_someone_elses_attempt_404(client: TestClient) -> None:
    d = publish_assessment(objective())
    attempt = _start(client, d.id)
    resp = client.get(f"/v1/attempts/{attempt['id']}", headers=auth("student-2"))
    assert resp.status_code == 404


def test_instructor_sees_unredacted_in_progress_attempt(client: TestClient) -> None:
    q = objective(answer="B", max_marks=3)
    d = publish_assessment(q)
    attempt = _start(client, d.id)
    _save(client, attempt["id"], q.id, {"kind": "scalar", "value": "B"})

    resp = client.get(
        f"/v1/attempts/{attempt['id']}",
        headers=auth("instructor-1", ["instructor"]),
    )
    assert resp.status_code == 200
    [answer] = resp.json()["answers"]
    assert answer["outcome"] == "correct"
    assert answer["marks_awarded"] == 3


def test_get_my_attempt_by_assessment(client: TestClient) -> None:
    d = publish_assessment(objective())
    attempt = _start(client, d.id)

    resp = client.get(f"/v1/assessments/{d.id}/attempts/me", headers=auth())
    assert resp.status_code == 200
    assert resp.json()["id"] == attempt["id"]

    resp = client.get(f"/v1/assessments/{d.id}/attempts/me", headers=auth("student-2"))
    assert resp.status_code == 404
    detail = resp.json()["detail"]
    assert detail["kind"] == "not-found"
    assert detail["assessment_id"] == str(d.id)
    assert "attempt_id" not in detail


def test_list_my_attempts_with_status_filter(client: TestClient) -> None:
    d1 = publish_assessment(subjective())
    d2 = publish_assessment(subjective())
    a1 = _start(client, d1.id)
    _start(client, d2.id)
    _start(client, d1.id, user="student-2")
    client.post(f"/v1/attempts/{a1['id']}/submit", headers=auth())

    resp = client.get("/v1/attempts", headers=auth())
    assert resp.status_code == 200
    assert len(resp.json()) == 2

    resp = client.get("/v1/attempts", params={"status": "submitted"}, headers=auth())
    assert [a["id"] for a in resp.json()] == [a1["id"]]


def test_list_my_attempts_rejects_unknown_status(client: TestClient) -> None:
    resp = client.get("/v1/attempts", params={"status": "graded"}, headers=auth())
    assert resp.status_code == 422
