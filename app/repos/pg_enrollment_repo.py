"""PostgreSQL implementation of EnrollmentRepo."""

from __future__ import annotations

from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import ConflictError
from app.db.tables import EnrollmentRow, LessonRow, ModuleRow
from app.models.enrollment import Enrollment


class PgEnrollmentRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get_by_id(self, enrollment_id: int) -> Enrollment | None:
        row = await self._session.get(EnrollmentRow, enrollment_id)
        return _row_to_enrollment(row) if row is not None else None

    async def get_by_user_and_course(
        self, user_id: int, course_id: int
    ) -> Enrollment | None:
        stmt = select(EnrollmentRow).where(
            EnrollmentRow.user_id == user_id,
            EnrollmentRow.course_id == course_id,
        )
        row = (await self._session.execute(stmt)).scalar_one_or_none()
        return _row_to_enrollment(row) if row is not None else None

    async def get_by_user_and_lesson(
        self, user_id: int, lesson_id: int
    ) -> Enrollment | None:
        stmt = (
            select(EnrollmentRow)
            .join(ModuleRow, ModuleRow.course_id == EnrollmentRow.course_id)
            .join(LessonRow, LessonRow.module_id == ModuleRow.id)
            .where(EnrollmentRow.user_id == user_id, LessonRow.id == lesson_id)
        )
        row = (await self._session.execute(stmt)).scalar_one_or_none()
        return _row_to_enrollment(row) if row is not None else None

    async def list_by_user(self, user_id: int) -> list[Enrollment]:
        stmt = (
            select(EnrollmentRow)
            .where(EnrollmentRow.user_id == user_id)
            .order_by(EnrollmentRow.id)
        )
        rows = (await self._session.execute(stmt)).scalars().all()
        return [_row_to_enrollment(r) for r in rows]

    async def add(self, user_id: int, course_id: int, enrolled_at: int) -> Enrollment:
        row = EnrollmentRow(
            user_id=user_id, course_id=course_id, enrolled_at=enrolled_at, progress=0
        )
        try:
            async with self._session.begin_nested():
                self._session.add(row)
        except IntegrityError as exc:
            raise ConflictError("Already enrolled in this course") from exc
        return _row_to_enrollment(row)

    async def remove(self, user_id: int, course_id: int) -> bool:
        stmt = delete(EnrollmentRow).where(
            EnrollmentRow.user_id == user_id,
            EnrollmentRow.course_id == course_id,
        )
        result = await self._session.execute(stmt)
        return result.rowcount > 0

    async def set_progress(
        self, enrollment_id: int, progress: int, now: int
    ) -> Enrollment | None:
        values: dict = {"progress": progress}
        if progress == 100:
            # First arrival at 100 stamps completion; later ones keep it
            values["completed_at"] = func.coalesce(EnrollmentRow.completed_at, now)

        stmt = (
            update(EnrollmentRow)
            .where(EnrollmentRow.id == enrollment_id)
            .values(**values)
            .returning(EnrollmentRow)
        )
        row = (await self._session.execute(stmt)).scalar_one_or_none()
        return _row_to_enrollment(row) if row is not None else None


def _row_to_enrollment(row: EnrollmentRow) -> Enrollment:
    return Enrollment(
        id=row.id,
        user_id=row.user_id,
        course_id=row.course_id,
        enrolled_at=row.enrolled_at,
        progress=row.progress,
        completed_at=row.completed_at,
    )
