"""Tests for course enrollment endpoints."""

from __future__ import annotations

from fastapi.testclient import TestClient

from tests.conftest import STUDENT_ID, SeededCourse, auth

# ---- 401: unauthenticated ----


def test_enroll_rejects_missing_token(client: TestClient, course: SeededCourse) -> None:
    resp = client.post(f"/v1/courses/{course.course_id}/enroll")
    assert resp.status_code == 401


# ---- 201: enrollment ----


def test_enroll_success(client: TestClient, student_token: str, course: SeededCourse) -> None:
    resp = client.post(f"/v1/courses/{course.course_id}/enroll", headers=auth(student_token))
    assert resp.status_code == 201
    body = resp.json()
    assert body["user_id"] == STUDENT_ID
    assert body["course_id"] == course.course_id
    assert body["progress"] == 0
    assert body["completed_at"] is None


# ---- 409: duplicate ----


def test_enroll_twice_conflicts(
    client: TestClient, student_token: str, course: SeededCourse
) -> None:
    client.post(f"/v1/courses/{course.course_id}/enroll", headers=auth(student_token))
    resp = client.post(f"/v1/courses/{course.course_id}/enroll", headers=auth(student_token))
    assert resp.status_code == 409
    assert resp.json() == {"detail": "Already enrolled in this course", "code": "CONFLICT"}


# ---- 404 ----


def test_enroll_unknown_course(client: TestClient, student_token: str) -> None:
    resp = client.post("/v1/courses/9999/enroll", headers=auth(student_token))
    assert resp.status_code == 404
    assert resp.json()["code"] == "NOT_FOUND"


def test_progress_without_enrollment(
    client: TestClient, student_token: str, course: SeededCourse
) -> None:
    resp = client.get(f"/v1/courses/{course.course_id}/progress", headers=auth(student_token))
    assert resp.status_code == 404


# ---- unenroll ----


def test_unenroll(client: TestClient, student_token: str, enrolled: SeededCourse) -> None:
    resp = client.delete(f"/v1/courses/{enrolled.course_id}/enroll", headers=auth(student_token))
    assert resp.status_code == 204
    resp = client.get(f"/v1/courses/{enrolled.course_id}/progress", headers=auth(student_token))
    assert resp.status_code == 404


def test_unenroll_when_not_enrolled_is_noop(
    client: TestClient, student_token: str, course: SeededCourse
) -> None:
    resp = client.delete(f"/v1/courses/{course.course_id}/enroll", headers=auth(student_token))
    assert resp.status_code == 204


def test_progress_reflects_completions(
    client: TestClient, student_token: str, enrolled: SeededCourse
) -> None:
    client.post(
        "/v1/lesson-completions",
        json={"lesson_id": enrolled.reading_lesson_id},
        headers=auth(student_token),
    )
    resp = client.get(f"/v1/courses/{enrolled.course_id}/progress", headers=auth(student_token))
    assert resp.json()["progress"] == 25
