"""PostgreSQL implementation of CompletionRepo."""

from __future__ import annotations

from sqlalchemy import delete, func, select
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.tables import CourseRow, LessonCompletionRow, LessonRow, ModuleRow
from app.models.enrollment import CompletedLesson


def _completed_lessons_query():
    return (
        select(
            LessonCompletionRow.user_id,
            LessonCompletionRow.lesson_id,
            LessonCompletionRow.completed_at,
            LessonRow.title,
            ModuleRow.title.label("module_title"),
            CourseRow.id.label("course_id"),
            CourseRow.title.label("course_title"),
        )
        .join(LessonRow, LessonRow.id == LessonCompletionRow.lesson_id)
        .join(ModuleRow, ModuleRow.id == LessonRow.module_id)
        .join(CourseRow, CourseRow.id == ModuleRow.course_id)
    )


class PgCompletionRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def mark_complete(self, user_id: int, lesson_id: int, now: int) -> bool:
        stmt = (
            insert(LessonCompletionRow)
            .values(user_id=user_id, lesson_id=lesson_id, completed_at=now)
            .on_conflict_do_nothing(index_elements=["user_id", "lesson_id"])
        )
        result = await self._session.execute(stmt)
        return result.rowcount > 0

    async def unmark_complete(self, user_id: int, lesson_id: int) -> bool:
        stmt = delete(LessonCompletionRow).where(
            LessonCompletionRow.user_id == user_id,
            LessonCompletionRow.lesson_id == lesson_id,
        )
        result = await self._session.execute(stmt)
        return result.rowcount > 0

    async def is_completed(self, user_id: int, lesson_id: int) -> bool:
        stmt = select(LessonCompletionRow.user_id).where(
            LessonCompletionRow.user_id == user_id,
            LessonCompletionRow.lesson_id == lesson_id,
        )
        return (await self._session.execute(stmt)).first() is not None

    async def list_completed(self, user_id: int) -> list[CompletedLesson]:
        stmt = (
            _completed_lessons_query()
            .where(LessonCompletionRow.user_id == user_id)
            .order_by(LessonCompletionRow.completed_at.desc())
        )
        return await self._fetch(stmt)

    async def list_completed_by_course(
        self, user_id: int, course_id: int
    ) -> list[CompletedLesson]:
        stmt = (
            _completed_lessons_query()
            .where(
                LessonCompletionRow.user_id == user_id,
                ModuleRow.course_id == course_id,
            )
            .order_by(ModuleRow.order_num, LessonRow.order_num)
        )
        return await self._fetch(stmt)

    async def list_all_completed_by_course(self, course_id: int) -> list[CompletedLesson]:
        stmt = (
            _completed_lessons_query()
            .where(ModuleRow.course_id == course_id)
            .order_by(
                LessonCompletionRow.user_id, ModuleRow.order_num, LessonRow.order_num
            )
        )
        return await self._fetch(stmt)

    async def count_completed_in_course(self, user_id: int, course_id: int) -> int:
        stmt = (
            select(func.count())
            .select_from(LessonCompletionRow)
            .join(LessonRow, LessonRow.id == LessonCompletionRow.lesson_id)
            .join(ModuleRow, ModuleRow.id == LessonRow.module_id)
            .where(
                LessonCompletionRow.user_id == user_id,
                ModuleRow.course_id == course_id,
            )
        )
        return (await self._session.execute(stmt)).scalar_one()

    async def _fetch(self, stmt) -> list[CompletedLesson]:
        rows = (await self._session.execute(stmt)).all()
        return [
            CompletedLesson(
                user_id=r.user_id,
                lesson_id=r.lesson_id,
                completed_at=r.completed_at,
                title=r.title,
                module_title=r.module_title,
                course_id=r.course_id,
                course_title=r.course_title,
            )
            for r in rows
        ]
