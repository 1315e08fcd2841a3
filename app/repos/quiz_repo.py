from __future__ import annotations

import itertools
from collections.abc import Iterable, Sequence
from dataclasses import replace
from typing import Protocol

from app.core.errors import ConflictError
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
from app.repos.catalog_repo import InMemoryCatalogRepo


class QuizRepo(Protocol):
    async def get_quiz(self, quiz_id: int) -> Quiz | None: ...
    async def list_by_lesson(self, lesson_id: int) -> list[Quiz]: ...
    async def list_by_courses(self, course_ids: Iterable[int]) -> list[Quiz]: ...
    async def attempt_stats(self, user_id: int, quiz_id: int) -> AttemptStats: ...
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
    ) -> QuizAttempt: ...
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
    ) -> QuizAttempt | None: ...
    async def latest_attempt(self, user_id: int, quiz_id: int) -> QuizAttempt | None: ...
    async def list_attempts(self, user_id: int, quiz_id: int) -> list[QuizAttempt]: ...
    async def list_answers(self, result_id: int) -> list[QuizAnswer]: ...
    async def answer_stats(self, result_id: int) -> AnswerStats: ...
    async def create_quiz(
        self,
        *,
        lesson_id: int,
        title: str,
        passing_score: int | None,
        time_limit: int | None,
        max_attempts: int | None,
        questions: Sequence[QuestionDraft],
    ) -> Quiz: ...
    async def update_quiz(
        self,
        quiz_id: int,
        *,
        title: str | None = None,
        passing_score: int | None = None,
        time_limit: int | None = None,
        max_attempts: int | None = None,
        questions: Sequence[QuestionDraft] | None = None,
    ) -> Quiz | None: ...
    async def delete_quiz(self, quiz_id: int) -> bool: ...


def answer_stats_from(answers: Iterable[QuizAnswer]) -> AnswerStats:
    total = correct = 0
    for a in answers:
        total += 1
        if a.is_correct:
            correct += 1
    return AnswerStats(
        total_answers=total,
        correct_answers=correct,
        incorrect_answers=total - correct,
    )


class InMemoryQuizRepo:
    def __init__(self, catalog: InMemoryCatalogRepo) -> None:
        self._catalog = catalog
        self.clear()

    def clear(self) -> None:
        self._quizzes: dict[int, Quiz] = {}
        self._results: dict[int, QuizAttempt] = {}
        self._answers: dict[int, list[QuizAnswer]] = {}  # result_id -> answers
        self._ids = itertools.count(1)

    def _store_answers(
        self, result_id: int, answers: Sequence[GradedAnswer]
    ) -> None:
        self._answers[result_id] = [
            QuizAnswer(
                id=next(self._ids),
                result_id=result_id,
                question_id=a.question_id,
                option_id=a.option_id,
                answer_text=a.answer_text,
                is_correct=a.is_correct,
            )
            for a in answers
        ]

    def _user_results(self, user_id: int, quiz_id: int) -> list[QuizAttempt]:
        return [
            r
            for r in self._results.values()
            if r.user_id == user_id and r.quiz_id == quiz_id
        ]

    async def get_quiz(self, quiz_id: int) -> Quiz | None:
        return self._quizzes.get(quiz_id)

    async def list_by_lesson(self, lesson_id: int) -> list[Quiz]:
        return sorted(
            (q for q in self._quizzes.values() if q.lesson_id == lesson_id),
            key=lambda q: q.id,
        )

    async def list_by_courses(self, course_ids: Iterable[int]) -> list[Quiz]:
        wanted = set(course_ids)
        keyed = []
        for quiz in self._quizzes.values():
            ctx = self._catalog.lesson_context(quiz.lesson_id)
            if ctx is None:
                continue
            lesson, module, course = ctx
            if course.id in wanted:
                keyed.append(((course.id, module.order_num, lesson.order_num, quiz.id), quiz))
        return [quiz for _, quiz in sorted(keyed, key=lambda k: k[0])]

    async def attempt_stats(self, user_id: int, quiz_id: int) -> AttemptStats:
        results = self._user_results(user_id, quiz_id)
        if not results:
            return AttemptStats()
        return AttemptStats(
            count=len(results),
            last_attempt_number=max(r.attempt_number for r in results),
        )

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
        if any(
            r.attempt_number == attempt_number
            for r in self._user_results(user_id, quiz_id)
        ):
            raise ConflictError("Attempt was already recorded; please retry")

        attempt = QuizAttempt(
            id=next(self._ids),
            user_id=user_id,
            quiz_id=quiz_id,
            score=score,
            attempt_number=attempt_number,
            started_at=started_at,
            completed_at=completed_at,
        )
        self._results[attempt.id] = attempt
        self._store_answers(attempt.id, answers)
        return attempt

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
        existing = next(
            (
                r
                for r in self._user_results(user_id, quiz_id)
                if r.attempt_number == attempt_number
            ),
            None,
        )
        if existing is None:
            return None

        updated = replace(
            existing,
            score=score,
            started_at=existing.started_at if existing.started_at is not None else started_at,
            completed_at=completed_at,
        )
        self._results[existing.id] = updated
        self._store_answers(existing.id, answers)
        return updated

    async def latest_attempt(self, user_id: int, quiz_id: int) -> QuizAttempt | None:
        results = self._user_results(user_id, quiz_id)
        if not results:
            return None
        return max(results, key=lambda r: (r.completed_at or 0, r.id))

    async def list_attempts(self, user_id: int, quiz_id: int) -> list[QuizAttempt]:
        return sorted(
            self._user_results(user_id, quiz_id),
            key=lambda r: r.attempt_number,
            reverse=True,
        )

    async def list_answers(self, result_id: int) -> list[QuizAnswer]:
        return list(self._answers.get(result_id, ()))

    async def answer_stats(self, result_id: int) -> AnswerStats:
        return answer_stats_from(self._answers.get(result_id, ()))

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
        quiz_id = next(self._ids)
        quiz = Quiz(
            id=quiz_id,
            lesson_id=lesson_id,
            title=title,
            passing_score=passing_score,
            time_limit=time_limit,
            max_attempts=max_attempts,
            questions=self._build_questions(quiz_id, questions, keep_ids=False),
        )
        self._quizzes[quiz_id] = quiz
        return quiz

    def _build_questions(
        self, quiz_id: int, drafts: Sequence[QuestionDraft], *, keep_ids: bool
    ) -> tuple[QuizQuestion, ...]:
        # With keep_ids, drafts carrying an id keep it; the rest get fresh ids
        built = []
        for q_order, draft in enumerate(drafts, start=1):
            question_id = draft.id if keep_ids and draft.id is not None else next(self._ids)
            options = tuple(
                QuizOption(
                    id=o.id if keep_ids and o.id is not None else next(self._ids),
                    question_id=question_id,
                    option_text=o.option_text,
                    is_correct=o.is_correct,
                    order_num=o_order,
                )
                for o_order, o in enumerate(draft.options, start=1)
            )
            built.append(
                QuizQuestion(
                    id=question_id,
                    quiz_id=quiz_id,
                    question_text=draft.question_text,
                    question_type=draft.question_type,
                    points=draft.points,
                    order_num=q_order,
                    options=options,
                )
            )
        return tuple(built)

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
        quiz = self._quizzes.get(quiz_id)
        if quiz is None:
            return None

        changes: dict = {
            name: value
            for name, value in (
                ("title", title),
                ("passing_score", passing_score),
                ("time_limit", time_limit),
                ("max_attempts", max_attempts),
            )
            if value is not None
        }
        if questions is not None:
            new_questions = self._build_questions(quiz_id, questions, keep_ids=True)
            self._forget_removed(quiz, new_questions)
            changes["questions"] = new_questions

        updated = replace(quiz, **changes)
        self._quizzes[quiz_id] = updated
        return updated

    def _forget_removed(
        self, quiz: Quiz, new_questions: tuple[QuizQuestion, ...]
    ) -> None:
        """Drop stored answers to removed questions; unlink removed options."""
        kept_questions = {q.id for q in new_questions}
        kept_options = {o.id for q in new_questions for o in q.options}
        result_ids = [r.id for r in self._results.values() if r.quiz_id == quiz.id]
        for result_id in result_ids:
            self._answers[result_id] = [
                a if a.option_id is None or a.option_id in kept_options
                else replace(a, option_id=None)
                for a in self._answers.get(result_id, ())
                if a.question_id in kept_questions
            ]

    async def delete_quiz(self, quiz_id: int) -> bool:
        if self._quizzes.pop(quiz_id, None) is None:
            return False
        for result_id in [r.id for r in self._results.values() if r.quiz_id == quiz_id]:
            self._answers.pop(result_id, None)
            del self._results[result_id]
        return True
