"""Course / module / lesson directory.

Course authoring lives in another service; this side only needs to count
lessons, resolve which course a lesson belongs to, and read titles for
display.  The ``add_*`` methods exist for seeding and tests.
"""

from __future__ import annotations

import itertools
from typing import Protocol

from app.models.course import Course, Lesson, Module


class CatalogRepo(Protocol):
    async def get_course(self, course_id: int) -> Course | None: ...
    async def get_module(self, module_id: int) -> Module | None: ...
    async def get_lesson(self, lesson_id: int) -> Lesson | None: ...
    async def course_id_for_lesson(self, lesson_id: int) -> int | None: ...
    async def count_lessons_in_course(self, course_id: int) -> int: ...
    async def add_course(
        self, *, title: str, instructor_id: int | None = None
    ) -> Course: ...
    async def add_module(
        self, *, course_id: int, title: str, order_num: int = 0
    ) -> Module: ...
    async def add_lesson(
        self,
        *,
        module_id: int,
        title: str,
        content_type: str = "text",
        order_num: int = 0,
    ) -> Lesson: ...


class InMemoryCatalogRepo:
    def __init__(self) -> None:
        self.clear()

    def clear(self) -> None:
        self._courses: dict[int, Course] = {}
        self._modules: dict[int, Module] = {}
        self._lessons: dict[int, Lesson] = {}
        self._ids = itertools.count(1)

    # --- synchronous lookups shared with the other in-memory repos ---

    def lesson_context(self, lesson_id: int) -> tuple[Lesson, Module, Course] | None:
        """Resolve lesson -> module -> course, or None if any link is missing."""
        lesson = self._lessons.get(lesson_id)
        if lesson is None:
            return None
        module = self._modules.get(lesson.module_id)
        if module is None:
            return None
        course = self._courses.get(module.course_id)
        if course is None:
            return None
        return lesson, module, course

    def lesson_ids_in_course(self, course_id: int) -> set[int]:
        module_ids = {m.id for m in self._modules.values() if m.course_id == course_id}
        return {l.id for l in self._lessons.values() if l.module_id in module_ids}

    # --- CatalogRepo ---

    async def get_course(self, course_id: int) -> Course | None:
        return self._courses.get(course_id)

    async def get_module(self, module_id: int) -> Module | None:
        return self._modules.get(module_id)

    async def get_lesson(self, lesson_id: int) -> Lesson | None:
        return self._lessons.get(lesson_id)

    async def course_id_for_lesson(self, lesson_id: int) -> int | None:
        ctx = self.lesson_context(lesson_id)
        return ctx[2].id if ctx else None

    async def count_lessons_in_course(self, course_id: int) -> int:
        return len(self.lesson_ids_in_course(course_id))

    async def add_course(self, *, title: str, instructor_id: int | None = None) -> Course:
        course = Course(id=next(self._ids), title=title, instructor_id=instructor_id)
        self._courses[course.id] = course
        return course

    async def add_module(self, *, course_id: int, title: str, order_num: int = 0) -> Module:
        if course_id not in self._courses:
            raise KeyError("course not found")
        module = Module(
            id=next(self._ids), course_id=course_id, title=title, order_num=order_num
        )
        self._modules[module.id] = module
        return module

    async def add_lesson(
        self,
        *,
        module_id: int,
        title: str,
        content_type: str = "text",
        order_num: int = 0,
    ) -> Lesson:
        if module_id not in self._modules:
            raise KeyError("module not found")
        lesson = Lesson(
            id=next(self._ids),
            module_id=module_id,
            title=title,
            content_type=content_type,
            order_num=order_num,
        )
        self._lessons[lesson.id] = lesson
        return lesson
