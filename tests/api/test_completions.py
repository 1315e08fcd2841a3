from __future__ import annotations

import asyncio

from fastapi.testclient import TestClient

from app.repos.registry import Repos
from tests.conftest import NOW, OTHER_STUDENT_ID, STUDENT_ID, SeededCourse, auth, mint_token

BASE = "/v1/lesson-completions"


def _mark(client: TestClient, token: str, lesson_id: int):
    return client.post(BASE, json={"lesson_id": lesson_id}, headers=auth(token))


def test_mark_requires_auth(client: TestClient, enrolled: SeededCourse) -> None:
    resp = client.post(BASE, json={"lesson_id": enrolled.intro_lesson_id})
    assert resp.status_code == 401


def test_mark_returns_progress(
    client: TestClient, student_token: str, enrolled: SeededCourse
) -> None:
    resp = _mark(client, student_token, enrolled.intro_lesson_id)
    assert resp.status_code == 200
    assert resp.json() == {"lesson_id": enrolled.intro_lesson_id, "progress": 25}


def test_mark_is_idempotent(
    client: TestClient, student_token: str, enrolled: SeededCourse
) -> None:
    _mark(client, student_token, enrolled.intro_lesson_id)
    resp = _mark(client, student_token, enrolled.intro_lesson_id)
    assert resp.json()["progress"] == 25
    listed = client.get(BASE, headers=auth(student_token)).json()
    assert len(listed) == 1


def test_mark_all_lessons_completes_course(
    client: TestClient, student_token: str, enrolled: SeededCourse
) -> None:
    for lesson_id in enrolled.lesson_ids:
        resp = _mark(client, student_token, lesson_id)
    assert resp.json()["progress"] == 100

    enrollment = client.get(
        f"/v1/courses/{enrolled.course_id}/progress", headers=auth(student_token)
    ).json()
    assert enrollment["progress"] == 100
    assert enrollment["completed_at"] is not None


def test_unmark(client: TestClient, student_token: str, enrolled: SeededCourse) -> None:
    _mark(client, student_token, enrolled.intro_lesson_id)
    resp = client.delete(f"{BASE}/{enrolled.intro_lesson_id}", headers=auth(student_token))
    assert resp.status_code == 200
    assert resp.json()["progress"] == 0

    check = client.get(
        f"{BASE}/check/{enrolled.intro_lesson_id}", headers=auth(student_token)
    ).json()
    assert check == {"lesson_id": enrolled.intro_lesson_id, "is_completed": False}


def test_mark_without_enrollment_is_404(
    client: TestClient, student_token: str, course: SeededCourse
) -> None:
    resp = _mark(client, student_token, course.intro_lesson_id)
    assert resp.status_code == 404
    assert resp.json() == {"detail": "Enrollment not found", "code": "NOT_FOUND"}


def test_mark_rejects_bad_payload(client: TestClient, student_token: str) -> None:
    resp = client.post(BASE, json={"lesson_id": "first"}, headers=auth(student_token))
    assert resp.status_code == 422


def test_check_completion(
    client: TestClient, student_token: str, enrolled: SeededCourse
) -> None:
    _mark(client, student_token, enrolled.reading_lesson_id)
    resp = client.get(f"{BASE}/check/{enrolled.reading_lesson_id}", headers=auth(student_token))
    assert resp.json()["is_completed"] is True


def test_course_completions_in_curriculum_order(
    client: TestClient, student_token: str, enrolled: SeededCourse
) -> None:
    _mark(client, student_token, enrolled.reading_lesson_id)
    _mark(client, student_token, enrolled.intro_lesson_id)
    rows = client.get(
        f"{BASE}/courses/{enrolled.course_id}", headers=auth(student_token)
    ).json()
    assert [r["lesson_id"] for r in rows] == [
        enrolled.intro_lesson_id,
        enrolled.reading_lesson_id,
    ]
    assert rows[0]["title"] == "Intro"
    assert rows[1]["module_title"] == "Going further"


def test_all_learner_completions_staff_only(
    client: TestClient,
    student_token: str,
    instructor_token: str,
    repos: Repos,
    enrolled: SeededCourse,
) -> None:
    asyncio.run(repos.enrollments.add(OTHER_STUDENT_ID, enrolled.course_id, NOW))
    _mark(client, student_token, enrolled.intro_lesson_id)
    _mark(client, mint_token(user_id=OTHER_STUDENT_ID), enrolled.intro_lesson_id)

    url = f"{BASE}/courses/{enrolled.course_id}/all"
    assert client.get(url, headers=auth(student_token)).status_code == 403

    rows = client.get(url, headers=auth(instructor_token)).json()
    assert sorted(r["user_id"] for r in rows) == sorted([STUDENT_ID, OTHER_STUDENT_ID])
