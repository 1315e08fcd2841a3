"""PostgreSQL implementation of AssignmentRepo."""

from __future__ import annotations

from sqlalchemy import delete, select, update
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.tables import AssignmentRow, LessonRow, ModuleRow, SubmissionRow
from app.models.assignment import Assignment, Submission


class PgAssignmentRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get_assignment(self, assignment_id: int) -> Assignment | None:
        stmt = (
            select(AssignmentRow, ModuleRow.course_id)
            .join(LessonRow, LessonRow.id == AssignmentRow.lesson_id)
            .join(ModuleRow, ModuleRow.id == LessonRow.module_id)
            .where(AssignmentRow.id == assignment_id)
        )
        found = (await self._session.execute(stmt)).one_or_none()
        if found is None:
            return None
        row, course_id = found
        return Assignment(
            id=row.id,
            lesson_id=row.lesson_id,
            course_id=course_id,
            title=row.title,
            deadline=row.deadline,
            description=row.description or "",
        )

    async def add_assignment(
        self, *, lesson_id: int, title: str, deadline: int, description: str = ""
    ) -> Assignment:
        row = AssignmentRow(
            lesson_id=lesson_id, title=title, deadline=deadline, description=description
        )
        self._session.add(row)
        await self._session.flush()
        assignment = await self.get_assignment(row.id)
        if assignment is None:
            raise RuntimeError(f"assignment {row.id} vanished after insert")
        return assignment

    async def list_submissions(self, assignment_id: int) -> list[Submission]:
        stmt = (
            select(SubmissionRow)
            .where(SubmissionRow.assignment_id == assignment_id)
            .order_by(SubmissionRow.submitted_at.desc(), SubmissionRow.id.desc())
        )
        rows = (await self._session.execute(stmt)).scalars().all()
        return [_row_to_submission(r) for r in rows]

    async def get_submission(self, assignment_id: int, user_id: int) -> Submission | None:
        stmt = select(SubmissionRow).where(
            SubmissionRow.assignment_id == assignment_id,
            SubmissionRow.user_id == user_id,
        )
        row = (await self._session.execute(stmt)).scalar_one_or_none()
        return _row_to_submission(row) if row is not None else None

    async def upsert_submission(
        self, assignment_id: int, user_id: int, submission_url: str, now: int
    ) -> Submission:
        stmt = insert(SubmissionRow).values(
            assignment_id=assignment_id,
            user_id=user_id,
            submission_url=submission_url,
            submitted_at=now,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=["assignment_id", "user_id"],
            set_={
                "submission_url": stmt.excluded.submission_url,
                "submitted_at": stmt.excluded.submitted_at,
            },
        ).returning(SubmissionRow)
        row = (await self._session.execute(stmt)).scalar_one()
        return _row_to_submission(row)

    async def grade_submission(
        self,
        assignment_id: int,
        user_id: int,
        *,
        grade: int,
        feedback: str | None,
        now: int,
    ) -> Submission | None:
        stmt = (
            update(SubmissionRow)
            .where(
                SubmissionRow.assignment_id == assignment_id,
                SubmissionRow.user_id == user_id,
            )
            .values(grade=grade, feedback=feedback, graded_at=now)
            .returning(SubmissionRow)
        )
        row = (await self._session.execute(stmt)).scalar_one_or_none()
        return _row_to_submission(row) if row is not None else None

    async def delete_submission(
        self, assignment_id: int, user_id: int
    ) -> Submission | None:
        stmt = (
            delete(SubmissionRow)
            .where(
                SubmissionRow.assignment_id == assignment_id,
                SubmissionRow.user_id == user_id,
            )
            .returning(SubmissionRow)
        )
        row = (await self._session.execute(stmt)).scalar_one_or_none()
        return _row_to_submission(row) if row is not None else None


def _row_to_submission(row: SubmissionRow) -> Submission:
    return Submission(
        id=row.id,
        assignment_id=row.assignment_id,
        user_id=row.user_id,
        submission_url=row.submission_url,
        submitted_at=row.submitted_at,
        grade=row.grade,
        feedback=row.feedback,
        graded_at=row.graded_at,
    )
