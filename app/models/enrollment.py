from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class Enrollment:
    """One learner registered in one course.

    ``completed_at`` is stamped the first time ``progress`` reaches 100 and
    is never cleared afterwards, even if progress drops again.
    """

    id: int
    user_id: int
    course_id: int
    enrolled_at: int
    progress: int = 0  # 0..100
    completed_at: int | None = None


@dataclass(frozen=True, slots=True)
class LessonCompletion:
    user_id: int
    lesson_id: int
    completed_at: int


@dataclass(frozen=True, slots=True)
class CompletedLesson:
    """Read projection of a completion joined with its lesson/module/course."""

    user_id: int
    lesson_id: int
    completed_at: int
    title: str
    module_title: str
    course_id: int
    course_title: str
