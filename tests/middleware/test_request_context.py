"""Tests for the request context middleware."""

from __future__ import annotations

import logging
import uuid

import pytest
from fastapi.testclient import TestClient

from tests.conftest import auth


def test_request_id_generated_when_not_provided(client: TestClient) -> None:
    resp = client.get("/health")
    req_id = resp.headers.get("x-request-id")
    assert req_id is not None
    uuid.UUID(req_id)  # raises ValueError if invalid


def test_request_id_echoed_when_provided(client: TestClient) -> None:
    custom_id = "my-custom-request-id-123"
    resp = client.get("/health", headers={"X-Request-ID": custom_id})
    assert resp.headers.get("x-request-id") == custom_id


def test_request_id_present_on_error_responses(client: TestClient) -> None:
    resp = client.get("/v1/attempts")  # no token: 401
    assert resp.status_code == 401
    assert resp.headers.get("x-request-id") is not None

    resp = client.get(f"/v1/attempts/{uuid.uuid4()}", headers=auth())
    assert resp.status_code == 404
    assert resp.headers.get("x-request-id") is not None


def test_request_summary_logged(
    client: TestClient, caplog: pytest.LogCaptureFixture
) -> None:
    with caplog.at_level(logging.INFO):
        client.get("/health", headers={"X-Request-ID": "trace-me"})

    summaries = [r for r in caplog.records if getattr(r, "request_id", None) == "trace-me"]
    assert summaries
    assert summaries[-1].path == "/health"
    assert summaries[-1].status_code == 200
