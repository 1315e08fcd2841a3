"""Tests for Prometheus metrics.

prometheus-client keeps one global registry and counters never go down,
so every test asserts on the delta around the action.
"""

from __future__ import annotations

from fastapi.testclient import TestClient
from prometheus_client import REGISTRY

from tests.conftest import SeededCourse, auth, correct_option


def _get_sample(name: str, labels: dict | None = None) -> float:
    value = REGISTRY.get_sample_value(name, labels=labels or {})
    return value if value is not None else 0.0


def test_request_counter_increments(client: TestClient) -> None:
    labels = {"method": "GET", "endpoint": "/health", "status_code": "200"}
    before = _get_sample("http_requests_total", labels)
    client.get("/health")
    assert _get_sample("http_requests_total", labels) - before >= 1


def test_request_duration_histogram_observes(client: TestClient) -> None:
    labels = {"method": "GET", "endpoint": "/health"}
    before = _get_sample("http_request_duration_seconds_count", labels)
    client.get("/health")
    assert _get_sample("http_request_duration_seconds_count", labels) - before >= 1


def test_endpoint_label_is_route_template(client: TestClient, student_token: str) -> None:
    labels = {"method": "GET", "endpoint": "/v1/quizzes/{quiz_id}", "status_code": "404"}
    before = _get_sample("http_requests_total", labels)
    client.get("/v1/quizzes/101", headers=auth(student_token))
    client.get("/v1/quizzes/102", headers=auth(student_token))
    assert _get_sample("http_requests_total", labels) - before == 2


def test_unmatched_paths_share_one_label(client: TestClient) -> None:
    labels = {"method": "GET", "endpoint": "unmatched", "status_code": "404"}
    before = _get_sample("http_requests_total", labels)
    client.get("/no/such/path")
    assert _get_sample("http_requests_total", labels) - before == 1


def test_metrics_endpoint_returns_prometheus_format(client: TestClient) -> None:
    client.get("/health")
    resp = client.get("/metrics")
    assert resp.status_code == 200
    assert "http_requests_total" in resp.text
    assert "quiz_submissions_total" in resp.text


def test_metrics_endpoint_not_self_instrumented(client: TestClient) -> None:
    labels = {"method": "GET", "endpoint": "/metrics", "status_code": "200"}
    before = _get_sample("http_requests_total", labels)
    client.get("/metrics")
    client.get("/metrics")
    assert _get_sample("http_requests_total", labels) == before


def test_quiz_submission_and_progress_counters(
    client: TestClient, student_token: str, enrolled: SeededCourse
) -> None:
    passed_before = _get_sample("quiz_submissions_total", {"outcome": "passed"})
    recomputes_before = _get_sample("progress_recomputes_total")
    marked_before = _get_sample("lesson_completion_changes_total", {"action": "marked"})

    answers = [
        {"question_id": q.id, "selected_option": correct_option(q)}
        for q in enrolled.quiz.questions
    ]
    resp = client.post(
        f"/v1/quizzes/{enrolled.quiz_id}/submit",
        json={"answers": answers},
        headers=auth(student_token),
    )
    assert resp.status_code == 200

    assert _get_sample("quiz_submissions_total", {"outcome": "passed"}) - passed_before == 1
    assert _get_sample("progress_recomputes_total") - recomputes_before == 1
    assert (
        _get_sample("lesson_completion_changes_total", {"action": "marked"}) - marked_before
        == 1
    )
