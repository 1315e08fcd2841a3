"""PostgreSQL implementation of QuizRepo."""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Iterable, Sequence

from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import ConflictError
from app.db.tables import (
    LessonRow,
    ModuleRow,
    QuizAnswerRow,
    QuizOptionRow,
    QuizQuestionRow,
    QuizResultRow,
    QuizRow,
)
from app.models.quiz import (
    AnswerStats,
    AttemptStats,
    GradedAnswer,
    QuestionDraft,
    Quiz,
    QuizAnswer,
    QuizAttempt,
    QuizOption,
    QuizQuestion,
)


class PgQuizRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get_quiz(self, quiz_id: int) -> Quiz | None:
        row = await self._session.get(QuizRow, quiz_id)
        if row is None:
            return None
        questions = await self._load_questions([quiz_id])
        return _row_to_quiz(row, questions.get(quiz_id, ()))

    async def list_by_lesson(self, lesson_id: int) -> list[Quiz]:
        stmt = select(QuizRow).where(QuizRow.lesson_id == lesson_id).order_by(QuizRow.id)
        rows = (await self._session.execute(stmt)).scalars().all()
        questions = await self._load_questions([r.id for r in rows])
        return [_row_to_quiz(r, questions.get(r.id, ())) for r in rows]

    async def list_by_courses(self, course_ids: Iterable[int]) -> list[Quiz]:
        ids = list(course_ids)
        if not ids:
            return []
        stmt = (
            select(QuizRow)
            .join(LessonRow, LessonRow.id == QuizRow.lesson_id)
            .join(ModuleRow, ModuleRow.id == LessonRow.module_id)
            .where(ModuleRow.course_id.in_(ids))
            .order_by(
                ModuleRow.course_id,
                ModuleRow.order_num,
                LessonRow.order_num,
                QuizRow.id,
            )
        )
        rows = (await self._session.execute(stmt)).scalars().all()
        questions = await self._load_questions([r.id for r in rows])
        return [_row_to_quiz(r, questions.get(r.id, ())) for r in rows]

    async def _load_questions(
        self, quiz_ids: list[int]
    ) -> dict[int, tuple[QuizQuestion, ...]]:
        if not quiz_ids:
            return {}

        q_stmt = (
            select(QuizQuestionRow)
            .where(QuizQuestionRow.quiz_id.in_(quiz_ids))
            .order_by(QuizQuestionRow.order_num, QuizQuestionRow.id)
        )
        q_rows = (await self._session.execute(q_stmt)).scalars().all()
        if not q_rows:
            return {}

        o_stmt = (
            select(QuizOptionRow)
            .where(QuizOptionRow.question_id.in_([q.id for q in q_rows]))
            .order_by(QuizOptionRow.order_num, QuizOptionRow.id)
        )
        options: dict[int, list[QuizOption]] = defaultdict(list)
        for o in (await self._session.execute(o_stmt)).scalars().all():
            options[o.question_id].append(
                QuizOption(
                    id=o.id,
                    question_id=o.question_id,
                    option_text=o.option_text,
                    is_correct=o.is_correct,
                    order_num=o.order_num,
                )
            )

        by_quiz: dict[int, list[QuizQuestion]] = defaultdict(list)
        for q in q_rows:
            by_quiz[q.quiz_id].append(
                QuizQuestion(
                    id=q.id,
                    quiz_id=q.quiz_id,
                    question_text=q.question_text,
                    question_type=q.question_type,
                    points=q.points,
                    order_num=q.order_num,
                    options=tuple(options.get(q.id, ())),
                )
            )
        return {quiz_id: tuple(qs) for quiz_id, qs in by_quiz.items()}

    async def attempt_stats(self, user_id: int, quiz_id: int) -> AttemptStats:
        stmt = select(
            func.count(QuizResultRow.id),
            func.coalesce(func.max(QuizResultRow.attempt_number), 0),
        ).where(QuizResultRow.user_id == user_id, QuizResultRow.quiz_id == quiz_id)
        count, last = (await self._session.execute(stmt)).one()
        return AttemptStats(count=count, last_attempt_number=last)

    async def insert_attempt(
        self,
        user_id: int,
        quiz_id: int,
        *,
        score: int,
        attempt_number: int,
        started_at: int | None,
        completed_at: int,
        answers: Sequence[GradedAnswer],
    ) -> QuizAttempt:
        row = QuizResultRow(
            user_id=user_id,
            quiz_id=quiz_id,
            score=score,
            attempt_number=attempt_number,
            started_at=started_at,
            completed_at=completed_at,
        )
        try:
            async with self._session.begin_nested():
                self._session.add(row)
                await self._session.flush()
                self._add_answers(row.id, answers)
        except IntegrityError as exc:
            # Another submit for the same attempt number won the race
            raise ConflictError("Attempt was already recorded; please retry") from exc
        return _row_to_attempt(row)

    async def overwrite_attempt(
        self,
        user_id: int,
        quiz_id: int,
        *,
        attempt_number: int,
        score: int,
        started_at: int | None,
        completed_at: int,
        answers: Sequence[GradedAnswer],
    ) -> QuizAttempt | None:
        stmt = (
            update(QuizResultRow)
            .where(
                QuizResultRow.user_id == user_id,
                QuizResultRow.quiz_id == quiz_id,
                QuizResultRow.attempt_number == attempt_number,
            )
            .values(
                score=score,
                started_at=func.coalesce(QuizResultRow.started_at, started_at),
                completed_at=completed_at,
            )
            .returning(QuizResultRow)
        )
        row = (await self._session.execute(stmt)).scalar_one_or_none()
        if row is None:
            return None

        await self._session.execute(
            delete(QuizAnswerRow).where(QuizAnswerRow.result_id == row.id)
        )
        self._add_answers(row.id, answers)
        await self._session.flush()
        return _row_to_attempt(row)

    def _add_answers(self, result_id: int, answers: Sequence[GradedAnswer]) -> None:
        self._session.add_all(
            QuizAnswerRow(
                result_id=result_id,
                question_id=a.question_id,
                option_id=a.option_id,
                answer_text=a.answer_text,
                is_correct=a.is_correct,
            )
            for a in answers
        )

    async def latest_attempt(self, user_id: int, quiz_id: int) -> QuizAttempt | None:
        stmt = (
            select(QuizResultRow)
            .where(QuizResultRow.user_id == user_id, QuizResultRow.quiz_id == quiz_id)
            .order_by(QuizResultRow.completed_at.desc(), QuizResultRow.id.desc())
            .limit(1)
        )
        row = (await self._session.execute(stmt)).scalar_one_or_none()
        return _row_to_attempt(row) if row is not None else None

    async def list_attempts(self, user_id: int, quiz_id: int) -> list[QuizAttempt]:
        stmt = (
            select(QuizResultRow)
            .where(QuizResultRow.user_id == user_id, QuizResultRow.quiz_id == quiz_id)
            .order_by(QuizResultRow.attempt_number.desc())
        )
        rows = (await self._session.execute(stmt)).scalars().all()
        return [_row_to_attempt(r) for r in rows]

    async def list_answers(self, result_id: int) -> list[QuizAnswer]:
        stmt = (
            select(QuizAnswerRow)
            .where(QuizAnswerRow.result_id == result_id)
            .order_by(QuizAnswerRow.id)
        )
        rows = (await self._session.execute(stmt)).scalars().all()
        return [
            QuizAnswer(
                id=r.id,
                result_id=r.result_id,
                question_id=r.question_id,
                option_id=r.option_id,
                answer_text=r.answer_text,
                is_correct=r.is_correct,
            )
            for r in rows
        ]

    async def answer_stats(self, result_id: int) -> AnswerStats:
        correct = func.count().filter(QuizAnswerRow.is_correct.is_(True))
        stmt = select(func.count(), correct).where(QuizAnswerRow.result_id == result_id)
        total, right = (await self._session.execute(stmt)).one()
        return AnswerStats(
            total_answers=total,
            correct_answers=right,
            incorrect_answers=total - right,
        )

    async def create_quiz(
        self,
        *,
        lesson_id: int,
        title: str,
        passing_score: int | None,
        time_limit: int | None,
        max_attempts: int | None,
        questions: Sequence[QuestionDraft],
    ) -> Quiz:
        async with self._session.begin_nested():
            quiz_row = QuizRow(
                lesson_id=lesson_id,
                title=title,
                passing_score=passing_score,
                time_limit=time_limit,
                max_attempts=max_attempts,
            )
            self._session.add(quiz_row)
            await self._session.flush()

            for q_order, draft in enumerate(questions, start=1):
                q_row = QuizQuestionRow(
                    quiz_id=quiz_row.id,
                    question_text=draft.question_text,
                    question_type=draft.question_type,
                    points=draft.points,
                    order_num=q_order,
                )
                self._session.add(q_row)
                await self._session.flush()
                self._session.add_all(
                    QuizOptionRow(
                        question_id=q_row.id,
                        option_text=o.option_text,
                        is_correct=o.is_correct,
                        order_num=o_order,
                    )
                    for o_order, o in enumerate(draft.options, start=1)
                )

        quiz = await self.get_quiz(quiz_row.id)
        if quiz is None:
            raise RuntimeError(f"quiz {quiz_row.id} vanished after insert")
        return quiz

    async def update_quiz(
        self,
        quiz_id: int,
        *,
        title: str | None = None,
        passing_score: int | None = None,
        time_limit: int | None = None,
        max_attempts: int | None = None,
        questions: Sequence[QuestionDraft] | None = None,
    ) -> Quiz | None:
        row = await self._session.get(QuizRow, quiz_id)
        if row is None:
            return None

        # One savepoint: a failed write leaves the quiz exactly as it was
        async with self._session.begin_nested():
            if title is not None:
                row.title = title
            if passing_score is not None:
                row.passing_score = passing_score
            if time_limit is not None:
                row.time_limit = time_limit
            if max_attempts is not None:
                row.max_attempts = max_attempts
            if questions is not None:
                await self._merge_questions(quiz_id, questions)
            await self._session.flush()

        return await self.get_quiz(quiz_id)

    async def _merge_questions(
        self, quiz_id: int, drafts: Sequence[QuestionDraft]
    ) -> None:
        loaded = await self._load_questions([quiz_id])
        current = {q.id: q for q in loaded.get(quiz_id, ())}
        kept = {d.id for d in drafts if d.id is not None}
        dropped = sorted(set(current) - kept)
        if dropped:
            await self._session.execute(
                delete(QuizAnswerRow).where(QuizAnswerRow.question_id.in_(dropped))
            )
            await self._session.execute(
                delete(QuizOptionRow).where(QuizOptionRow.question_id.in_(dropped))
            )
            await self._session.execute(
                delete(QuizQuestionRow).where(QuizQuestionRow.id.in_(dropped))
            )

        for q_order, draft in enumerate(drafts, start=1):
            values = {
                "question_text": draft.question_text,
                "question_type": draft.question_type,
                "points": draft.points,
                "order_num": q_order,
            }
            if draft.id is None:
                q_row = QuizQuestionRow(quiz_id=quiz_id, **values)
                self._session.add(q_row)
                await self._session.flush()
                question_id = q_row.id
            else:
                question_id = draft.id
                await self._session.execute(
                    update(QuizQuestionRow)
                    .where(QuizQuestionRow.id == question_id)
                    .values(**values)
                )
                gone = sorted(
                    {o.id for o in current[question_id].options}
                    - {o.id for o in draft.options if o.id is not None}
                )
                if gone:
                    # Past answers keep their verdict but lose the option link
                    await self._session.execute(
                        update(QuizAnswerRow)
                        .where(QuizAnswerRow.option_id.in_(gone))
                        .values(option_id=None)
                    )
                    await self._session.execute(
                        delete(QuizOptionRow).where(QuizOptionRow.id.in_(gone))
                    )

            for o_order, o in enumerate(draft.options, start=1):
                if o.id is None:
                    self._session.add(
                        QuizOptionRow(
                            question_id=question_id,
                            option_text=o.option_text,
                            is_correct=o.is_correct,
                            order_num=o_order,
                        )
                    )
                else:
                    await self._session.execute(
                        update(QuizOptionRow)
                        .where(QuizOptionRow.id == o.id)
                        .values(
                            option_text=o.option_text,
                            is_correct=o.is_correct,
                            order_num=o_order,
                        )
                    )

    async def delete_quiz(self, quiz_id: int) -> bool:
        # Child tables first; the savepoint makes the cascade all-or-nothing
        async with self._session.begin_nested():
            result_ids = select(QuizResultRow.id).where(QuizResultRow.quiz_id == quiz_id)
            question_ids = select(QuizQuestionRow.id).where(
                QuizQuestionRow.quiz_id == quiz_id
            )
            await self._session.execute(
                delete(QuizAnswerRow).where(QuizAnswerRow.result_id.in_(result_ids))
            )
            await self._session.execute(
                delete(QuizResultRow).where(QuizResultRow.quiz_id == quiz_id)
            )
            await self._session.execute(
                delete(QuizOptionRow).where(QuizOptionRow.question_id.in_(question_ids))
            )
            await self._session.execute(
                delete(QuizQuestionRow).where(QuizQuestionRow.quiz_id == quiz_id)
            )
            result = await self._session.execute(
                delete(QuizRow).where(QuizRow.id == quiz_id)
            )
        return result.rowcount > 0


def _row_to_quiz(row: QuizRow, questions: tuple[QuizQuestion, ...]) -> Quiz:
    return Quiz(
        id=row.id,
        lesson_id=row.lesson_id,
        title=row.title,
        passing_score=row.passing_score,
        time_limit=row.time_limit,
        max_attempts=row.max_attempts,
        questions=questions,
    )


def _row_to_attempt(row: QuizResultRow) -> QuizAttempt:
    return QuizAttempt(
        id=row.id,
        user_id=row.user_id,
        quiz_id=row.quiz_id,
        score=row.score,
        attempt_number=row.attempt_number,
        started_at=row.started_at,
        completed_at=row.completed_at,
    )
