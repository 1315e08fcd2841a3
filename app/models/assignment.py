from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class Assignment:
    id: int
    lesson_id: int
    course_id: int  # resolved through lesson -> module -> course
    title: str
    deadline: int
    description: str = ""


@dataclass(frozen=True, slots=True)
class Submission:
    id: int
    assignment_id: int
    user_id: int
    submission_url: str
    submitted_at: int
    grade: int | None = None
    feedback: str | None = None
    graded_at: int | None = None
