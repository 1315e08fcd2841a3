from __future__ import annotations

import uuid

from fastapi.testclient import TestClient

from tests.conftest import auth


def test_fresh_request_id_is_a_uuid(client: TestClient) -> None:
    resp = client.get("/health")
    uuid.UUID(resp.headers["x-request-id"])


def test_caller_request_id_is_echoed(client: TestClient) -> None:
    resp = client.get("/health", headers={"X-Request-ID": "lb-7f3a"})
    assert resp.headers["x-request-id"] == "lb-7f3a"


def test_unauthenticated_response_still_has_request_id(client: TestClient) -> None:
    resp = client.get("/v1/quizzes/mine")
    assert resp.status_code == 401
    assert resp.headers["x-request-id"]


def test_quota_headers_only_on_limited_routes(client: TestClient, student_token: str) -> None:
    resp = client.get("/v1/quizzes/mine", headers=auth(student_token))
    assert "x-ratelimit-limit" not in resp.headers
