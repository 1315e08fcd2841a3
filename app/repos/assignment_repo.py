from __future__ import annotations

import itertools
from dataclasses import replace
from typing import Protocol

from app.models.assignment import Assignment, Submission
from app.repos.catalog_repo import InMemoryCatalogRepo


class AssignmentRepo(Protocol):
    async def get_assignment(self, assignment_id: int) -> Assignment | None: ...
    async def add_assignment(
        self, *, lesson_id: int, title: str, deadline: int, description: str = ""
    ) -> Assignment: ...
    async def list_submissions(self, assignment_id: int) -> list[Submission]: ...
    async def get_submission(
        self, assignment_id: int, user_id: int
    ) -> Submission | None: ...
    async def upsert_submission(
        self, assignment_id: int, user_id: int, submission_url: str, now: int
    ) -> Submission: ...
    async def grade_submission(
        self,
        assignment_id: int,
        user_id: int,
        *,
        grade: int,
        feedback: str | None,
        now: int,
    ) -> Submission | None: ...
    async def delete_submission(
        self, assignment_id: int, user_id: int
    ) -> Submission | None: ...


class InMemoryAssignmentRepo:
    def __init__(self, catalog: InMemoryCatalogRepo) -> None:
        self._catalog = catalog
        self.clear()

    def clear(self) -> None:
        self._assignments: dict[int, tuple[int, str, str, int]] = {}
        self._submissions: dict[tuple[int, int], Submission] = {}
        self._ids = itertools.count(1)

    async def get_assignment(self, assignment_id: int) -> Assignment | None:
        raw = self._assignments.get(assignment_id)
        if raw is None:
            return None
        lesson_id, title, description, deadline = raw
        ctx = self._catalog.lesson_context(lesson_id)
        if ctx is None:
            return None
        return Assignment(
            id=assignment_id,
            lesson_id=lesson_id,
            course_id=ctx[2].id,
            title=title,
            deadline=deadline,
            description=description,
        )

    async def add_assignment(
        self, *, lesson_id: int, title: str, deadline: int, description: str = ""
    ) -> Assignment:
        ctx = self._catalog.lesson_context(lesson_id)
        if ctx is None:
            raise KeyError("lesson not found")
        assignment_id = next(self._ids)
        self._assignments[assignment_id] = (lesson_id, title, description, deadline)
        return Assignment(
            id=assignment_id,
            lesson_id=lesson_id,
            course_id=ctx[2].id,
            title=title,
            deadline=deadline,
            description=description,
        )

    async def list_submissions(self, assignment_id: int) -> list[Submission]:
        return sorted(
            (s for s in self._submissions.values() if s.assignment_id == assignment_id),
            key=lambda s: (s.submitted_at, s.id),
            reverse=True,
        )

    async def get_submission(self, assignment_id: int, user_id: int) -> Submission | None:
        return self._submissions.get((assignment_id, user_id))

    async def upsert_submission(
        self, assignment_id: int, user_id: int, submission_url: str, now: int
    ) -> Submission:
        key = (assignment_id, user_id)
        existing = self._submissions.get(key)
        if existing is not None:
            # Resubmission replaces the work; grading fields are left alone
            updated = replace(existing, submission_url=submission_url, submitted_at=now)
        else:
            updated = Submission(
                id=next(self._ids),
                assignment_id=assignment_id,
                user_id=user_id,
                submission_url=submission_url,
                submitted_at=now,
            )
        self._submissions[key] = updated
        return updated

    async def grade_submission(
        self,
        assignment_id: int,
        user_id: int,
        *,
        grade: int,
        feedback: str | None,
        now: int,
    ) -> Submission | None:
        key = (assignment_id, user_id)
        existing = self._submissions.get(key)
        if existing is None:
            return None
        graded = replace(existing, grade=grade, feedback=feedback, graded_at=now)
        self._submissions[key] = graded
        return graded

    async def delete_submission(
        self, assignment_id: int, user_id: int
    ) -> Submission | None:
        return self._submissions.pop((assignment_id, user_id), None)
