from __future__ import annotations

import itertools
from dataclasses import replace
from typing import Protocol

from app.core.errors import ConflictError
from app.models.enrollment import Enrollment
from app.repos.catalog_repo import InMemoryCatalogRepo


class EnrollmentRepo(Protocol):
    async def get_by_id(self, enrollment_id: int) -> Enrollment | None: ...
    async def get_by_user_and_course(
        self, user_id: int, course_id: int
    ) -> Enrollment | None: ...
    async def get_by_user_and_lesson(
        self, user_id: int, lesson_id: int
    ) -> Enrollment | None: ...
    async def list_by_user(self, user_id: int) -> list[Enrollment]: ...
    async def add(self, user_id: int, course_id: int, enrolled_at: int) -> Enrollment: ...
    async def remove(self, user_id: int, course_id: int) -> bool: ...
    async def set_progress(
        self, enrollment_id: int, progress: int, now: int
    ) -> Enrollment | None: ...


class InMemoryEnrollmentRepo:
    def __init__(self, catalog: InMemoryCatalogRepo) -> None:
        self._catalog = catalog
        self.clear()

    def clear(self) -> None:
        self._by_id: dict[int, Enrollment] = {}
        self._ids = itertools.count(1)

    def _find(self, user_id: int, course_id: int) -> Enrollment | None:
        for e in self._by_id.values():
            if e.user_id == user_id and e.course_id == course_id:
                return e
        return None

    async def get_by_id(self, enrollment_id: int) -> Enrollment | None:
        return self._by_id.get(enrollment_id)

    async def get_by_user_and_course(
        self, user_id: int, course_id: int
    ) -> Enrollment | None:
        return self._find(user_id, course_id)

    async def get_by_user_and_lesson(
        self, user_id: int, lesson_id: int
    ) -> Enrollment | None:
        ctx = self._catalog.lesson_context(lesson_id)
        if ctx is None:
            return None
        return self._find(user_id, ctx[2].id)

    async def list_by_user(self, user_id: int) -> list[Enrollment]:
        return sorted(
            (e for e in self._by_id.values() if e.user_id == user_id),
            key=lambda e: e.id,
        )

    async def add(self, user_id: int, course_id: int, enrolled_at: int) -> Enrollment:
        if self._find(user_id, course_id) is not None:
            raise ConflictError("Already enrolled in this course")
        enrollment = Enrollment(
            id=next(self._ids),
            user_id=user_id,
            course_id=course_id,
            enrolled_at=enrolled_at,
        )
        self._by_id[enrollment.id] = enrollment
        return enrollment

    async def remove(self, user_id: int, course_id: int) -> bool:
        e = self._find(user_id, course_id)
        if e is None:
            return False
        del self._by_id[e.id]
        return True

    async def set_progress(
        self, enrollment_id: int, progress: int, now: int
    ) -> Enrollment | None:
        e = self._by_id.get(enrollment_id)
        if e is None:
            return None

        completed_at = e.completed_at
        if progress == 100 and completed_at is None:
            completed_at = now

        updated = replace(e, progress=progress, completed_at=completed_at)
        self._by_id[enrollment_id] = updated
        return updated
