from __future__ import annotations

from fastapi.testclient import TestClient

from tests.conftest import auth

# ---- 404: undefined routes ----


def test_undefined_route_returns_404(client: TestClient) -> None:
    resp = client.get("/nonexistent")
    assert resp.status_code == 404
    assert resp.json() == {"detail": "Not Found"}


# ---- 405: wrong HTTP method on existing routes ----


def test_put_health_returns_405(client: TestClient) -> None:
    resp = client.put("/health", json={"status": "bad"})
    assert resp.status_code == 405


def test_get_submit_returns_405(client: TestClient, student_token: str) -> None:
    resp = client.get("/v1/quizzes/1/submit", headers=auth(student_token))
    assert resp.status_code == 405


# ---- 422: path parameters ----


def test_non_integer_quiz_id_returns_422(client: TestClient, student_token: str) -> None:
    resp = client.get("/v1/quizzes/first", headers=auth(student_token))
    assert resp.status_code == 422


def test_mine_is_not_parsed_as_quiz_id(client: TestClient, student_token: str) -> None:
    resp = client.get("/v1/quizzes/mine", headers=auth(student_token))
    assert resp.status_code == 200
    assert resp.json() == []
