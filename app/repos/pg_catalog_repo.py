"""PostgreSQL implementation of CatalogRepo."""

from __future__ import annotations

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.tables import CourseRow, LessonRow, ModuleRow
from app.models.course import Course, Lesson, Module


class PgCatalogRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get_course(self, course_id: int) -> Course | None:
        row = await self._session.get(CourseRow, course_id)
        return _row_to_course(row) if row is not None else None

    async def get_module(self, module_id: int) -> Module | None:
        row = await self._session.get(ModuleRow, module_id)
        return _row_to_module(row) if row is not None else None

    async def get_lesson(self, lesson_id: int) -> Lesson | None:
        row = await self._session.get(LessonRow, lesson_id)
        return _row_to_lesson(row) if row is not None else None

    async def course_id_for_lesson(self, lesson_id: int) -> int | None:
        stmt = (
            select(ModuleRow.course_id)
            .join(LessonRow, LessonRow.module_id == ModuleRow.id)
            .where(LessonRow.id == lesson_id)
        )
        return (await self._session.execute(stmt)).scalar_one_or_none()

    async def count_lessons_in_course(self, course_id: int) -> int:
        stmt = (
            select(func.count(LessonRow.id))
            .join(ModuleRow, LessonRow.module_id == ModuleRow.id)
            .where(ModuleRow.course_id == course_id)
        )
        return (await self._session.execute(stmt)).scalar_one()

    async def add_course(self, *, title: str, instructor_id: int | None = None) -> Course:
        row = CourseRow(title=title, instructor_id=instructor_id)
        self._session.add(row)
        await self._session.flush()
        return _row_to_course(row)

    async def add_module(self, *, course_id: int, title: str, order_num: int = 0) -> Module:
        row = ModuleRow(course_id=course_id, title=title, order_num=order_num)
        self._session.add(row)
        await self._session.flush()
        return _row_to_module(row)

    async def add_lesson(
        self,
        *,
        module_id: int,
        title: str,
        content_type: str = "text",
        order_num: int = 0,
    ) -> Lesson:
        row = LessonRow(
            module_id=module_id,
            title=title,
            content_type=content_type,
            order_num=order_num,
        )
        self._session.add(row)
        await self._session.flush()
        return _row_to_lesson(row)


def _row_to_course(row: CourseRow) -> Course:
    return Course(id=row.id, title=row.title, instructor_id=row.instructor_id)


def _row_to_module(row: ModuleRow) -> Module:
    return Module(
        id=row.id, course_id=row.course_id, title=row.title, order_num=row.order_num
    )


def _row_to_lesson(row: LessonRow) -> Lesson:
    return Lesson(
        id=row.id,
        module_id=row.module_id,
        title=row.title,
        content_type=row.content_type,
        order_num=row.order_num,
    )
