from __future__ import annotations

import asyncio

import pytest

from app.core.errors import NotFoundError
from app.repos.registry import Repos
from app.services import completion_service
from tests.conftest import NOW, OTHER_STUDENT_ID, STUDENT_ID, SeededCourse


def test_mark_complete_returns_progress(repos: Repos, enrolled: SeededCourse) -> None:
    progress = asyncio.run(
        completion_service.mark_lesson_complete(
            repos, STUDENT_ID, enrolled.intro_lesson_id, now=NOW
        )
    )
    assert progress == 25


def test_marking_twice_is_idempotent(repos: Repos, enrolled: SeededCourse) -> None:
    async def scenario():
        await completion_service.mark_lesson_complete(
            repos, STUDENT_ID, enrolled.intro_lesson_id, now=NOW
        )
        again = await completion_service.mark_lesson_complete(
            repos, STUDENT_ID, enrolled.intro_lesson_id, now=NOW + 100
        )
        rows = await repos.completions.list_completed(STUDENT_ID)
        return again, rows

    again, rows = asyncio.run(scenario())
    assert again == 25
    assert len(rows) == 1
    # The first completion timestamp wins
    assert rows[0].completed_at == NOW


def test_unmark_recomputes(repos: Repos, enrolled: SeededCourse) -> None:
    async def scenario() -> int:
        for lesson_id in (enrolled.intro_lesson_id, enrolled.reading_lesson_id):
            await completion_service.mark_lesson_complete(repos, STUDENT_ID, lesson_id, now=NOW)
        return await completion_service.unmark_lesson_complete(
            repos, STUDENT_ID, enrolled.intro_lesson_id, now=NOW
        )

    assert asyncio.run(scenario()) == 25


def test_unmark_never_completed_is_noop(repos: Repos, enrolled: SeededCourse) -> None:
    progress = asyncio.run(
        completion_service.unmark_lesson_complete(
            repos, STUDENT_ID, enrolled.reading_lesson_id, now=NOW
        )
    )
    assert progress == 0


def test_mark_without_enrollment_is_not_found(repos: Repos, course: SeededCourse) -> None:
    with pytest.raises(NotFoundError, match="Enrollment not found"):
        asyncio.run(
            completion_service.mark_lesson_complete(
                repos, STUDENT_ID, course.intro_lesson_id, now=NOW
            )
        )
    assert not asyncio.run(repos.completions.is_completed(STUDENT_ID, course.intro_lesson_id))


def test_mark_unknown_lesson_is_not_found(repos: Repos, enrolled: SeededCourse) -> None:
    with pytest.raises(NotFoundError):
        asyncio.run(completion_service.mark_lesson_complete(repos, STUDENT_ID, 4040, now=NOW))


def test_record_completion_without_enrollment_still_writes_fact(
    repos: Repos, course: SeededCourse
) -> None:
    progress = asyncio.run(
        completion_service.record_completion(
            repos, OTHER_STUDENT_ID, course.assignment_lesson_id, None, now=NOW
        )
    )
    assert progress is None
    assert asyncio.run(
        repos.completions.is_completed(OTHER_STUDENT_ID, course.assignment_lesson_id)
    )


def test_course_listing_follows_curriculum_order(repos: Repos, enrolled: SeededCourse) -> None:
    async def scenario():
        # Completed out of order
        for i, lesson_id in enumerate(
            (enrolled.assignment_lesson_id, enrolled.intro_lesson_id, enrolled.reading_lesson_id)
        ):
            await completion_service.mark_lesson_complete(
                repos, STUDENT_ID, lesson_id, now=NOW + i
            )
        by_course = await repos.completions.list_completed_by_course(
            STUDENT_ID, enrolled.course_id
        )
        recent = await repos.completions.list_completed(STUDENT_ID)
        return by_course, recent

    by_course, recent = asyncio.run(scenario())
    assert [r.lesson_id for r in by_course] == [
        enrolled.intro_lesson_id,
        enrolled.reading_lesson_id,
        enrolled.assignment_lesson_id,
    ]
    assert [r.lesson_id for r in recent] == [
        enrolled.reading_lesson_id,
        enrolled.intro_lesson_id,
        enrolled.assignment_lesson_id,
    ]
    assert by_course[0].module_title == "Getting started"
    assert by_course[0].course_title == "Data Science 101"
