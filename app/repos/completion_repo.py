"""Lesson completion facts: one row per (user, lesson), nothing else."""

from __future__ import annotations

from typing import Protocol

from app.models.enrollment import CompletedLesson, LessonCompletion
from app.repos.catalog_repo import InMemoryCatalogRepo


class CompletionRepo(Protocol):
    async def mark_complete(self, user_id: int, lesson_id: int, now: int) -> bool: ...
    async def unmark_complete(self, user_id: int, lesson_id: int) -> bool: ...
    async def is_completed(self, user_id: int, lesson_id: int) -> bool: ...
    async def list_completed(self, user_id: int) -> list[CompletedLesson]: ...
    async def list_completed_by_course(
        self, user_id: int, course_id: int
    ) -> list[CompletedLesson]: ...
    async def list_all_completed_by_course(
        self, course_id: int
    ) -> list[CompletedLesson]: ...
    async def count_completed_in_course(self, user_id: int, course_id: int) -> int: ...


class InMemoryCompletionRepo:
    def __init__(self, catalog: InMemoryCatalogRepo) -> None:
        self._catalog = catalog
        self.clear()

    def clear(self) -> None:
        self._facts: dict[tuple[int, int], LessonCompletion] = {}

    def _project(self, fact: LessonCompletion) -> tuple[tuple, CompletedLesson] | None:
        ctx = self._catalog.lesson_context(fact.lesson_id)
        if ctx is None:
            return None
        lesson, module, course = ctx
        view = CompletedLesson(
            user_id=fact.user_id,
            lesson_id=lesson.id,
            completed_at=fact.completed_at,
            title=lesson.title,
            module_title=module.title,
            course_id=course.id,
            course_title=course.title,
        )
        return (module.order_num, lesson.order_num), view

    async def mark_complete(self, user_id: int, lesson_id: int, now: int) -> bool:
        key = (user_id, lesson_id)
        if key in self._facts:
            return False
        self._facts[key] = LessonCompletion(
            user_id=user_id, lesson_id=lesson_id, completed_at=now
        )
        return True

    async def unmark_complete(self, user_id: int, lesson_id: int) -> bool:
        return self._facts.pop((user_id, lesson_id), None) is not None

    async def is_completed(self, user_id: int, lesson_id: int) -> bool:
        return (user_id, lesson_id) in self._facts

    async def list_completed(self, user_id: int) -> list[CompletedLesson]:
        views = [
            p[1]
            for f in self._facts.values()
            if f.user_id == user_id and (p := self._project(f)) is not None
        ]
        return sorted(views, key=lambda v: v.completed_at, reverse=True)

    async def list_completed_by_course(
        self, user_id: int, course_id: int
    ) -> list[CompletedLesson]:
        rows = [
            p
            for f in self._facts.values()
            if f.user_id == user_id
            and (p := self._project(f)) is not None
            and p[1].course_id == course_id
        ]
        return [view for _, view in sorted(rows, key=lambda r: r[0])]

    async def list_all_completed_by_course(self, course_id: int) -> list[CompletedLesson]:
        rows = [
            p
            for f in self._facts.values()
            if (p := self._project(f)) is not None and p[1].course_id == course_id
        ]
        return [
            view for _, view in sorted(rows, key=lambda r: (r[1].user_id, *r[0]))
        ]

    async def count_completed_in_course(self, user_id: int, course_id: int) -> int:
        lesson_ids = self._catalog.lesson_ids_in_course(course_id)
        return sum(
            1
            for (uid, lid) in self._facts
            if uid == user_id and lid in lesson_ids
        )
