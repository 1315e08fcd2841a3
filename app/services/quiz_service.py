"""Quiz grading and attempt accounting.

Submission checks run in a fixed order and stop at the first failure, all
before anything is written:

  1. quiz exists                       NotFoundError
  2. caller is enrolled in its course  ForbiddenError
  3. every answer targets this quiz    ValidationError
  4. attempts remain                   PolicyError

A quiz with ``max_attempts == 1`` is never exhausted: submitting again
regrades the single stored attempt in place (a retake).
"""

from __future__ import annotations

import logging
from collections.abc import Sequence

from app.core.clock import epoch_now
from app.core.config import SETTINGS
from app.core.errors import ForbiddenError, NotFoundError, PolicyError, ValidationError
from app.core.metrics import QUIZ_SUBMISSIONS
from app.models.quiz import (
    QUESTION_TYPES,
    AnswerSubmission,
    AttemptInfo,
    AttemptReport,
    BestAttempt,
    GradeResult,
    LessonQuizSummary,
    QuestionDraft,
    Quiz,
    QuizAnswer,
    QuizAttempt,
    SubmissionOutcome,
    UserQuizSummary,
)
from app.repos.registry import Repos
from app.services import completion_service
from app.services.grading import (
    first_answer_per_question,
    grade_questions,
    score_percentage,
)

logger = logging.getLogger(__name__)


def format_elapsed(started_at: int | None, completed_at: int | None) -> str:
    if not started_at or not completed_at:
        return "N/A"
    elapsed = max(0, completed_at - started_at)
    return f"{elapsed // 60}m {elapsed % 60}s"


def attempts_exhausted(quiz: Quiz, attempt_count: int) -> bool:
    if not quiz.max_attempts or quiz.is_single_attempt:
        return False
    return attempt_count >= quiz.max_attempts


async def _load_quiz(repos: Repos, quiz_id: int) -> Quiz:
    quiz = await repos.quizzes.get_quiz(quiz_id)
    if quiz is None:
        logger.warning("Quiz not found quiz=%d", quiz_id, extra={"quiz_id": quiz_id})
        raise NotFoundError("Quiz not found")
    return quiz


async def _grade_loaded(
    repos: Repos,
    user_id: int,
    quiz: Quiz,
    answers: Sequence[AnswerSubmission],
    started_at: int | None,
    now: int,
) -> GradeResult:
    known = quiz.question_ids()
    foreign = sorted({a.question_id for a in answers} - known)
    if foreign:
        logger.warning(
            "Rejected answers for foreign questions=%s quiz=%d user=%d",
            foreign,
            quiz.id,
            user_id,
            extra={"quiz_id": quiz.id, "user_id": user_id},
        )
        raise ValidationError(
            f"Question(s) {', '.join(map(str, foreign))} do not belong to this quiz"
        )

    stats = await repos.quizzes.attempt_stats(user_id, quiz.id)
    if attempts_exhausted(quiz, stats.count):
        logger.warning(
            "Attempt limit reached quiz=%d user=%d count=%d max=%d",
            quiz.id,
            user_id,
            stats.count,
            quiz.max_attempts,
            extra={"quiz_id": quiz.id, "user_id": user_id},
        )
        raise PolicyError(f"Maximum attempts ({quiz.max_attempts}) exceeded for this quiz")

    graded, earned, possible = grade_questions(
        quiz.questions, first_answer_per_question(answers)
    )
    score = score_percentage(earned, possible)

    attempt: QuizAttempt | None = None
    if quiz.is_single_attempt and stats.count > 0:
        attempt = await repos.quizzes.overwrite_attempt(
            user_id,
            quiz.id,
            attempt_number=stats.last_attempt_number,
            score=score,
            started_at=started_at,
            completed_at=now,
            answers=graded,
        )
        is_retake = True
    if attempt is None:
        attempt = await repos.quizzes.insert_attempt(
            user_id,
            quiz.id,
            score=score,
            attempt_number=stats.last_attempt_number + 1,
            started_at=started_at,
            completed_at=now,
            answers=graded,
        )
        is_retake = stats.count > 0

    passed = score >= (quiz.passing_score or 0)
    return GradeResult(
        attempt=attempt,
        score=score,
        passed=passed,
        attempt_number=attempt.attempt_number,
        is_retake=is_retake,
        answers=tuple(graded),
    )


async def grade_attempt(
    repos: Repos,
    user_id: int,
    quiz_id: int,
    answers: Sequence[AnswerSubmission],
    *,
    started_at: int | None = None,
    now: int | None = None,
) -> GradeResult:
    """Validate, score and store one attempt.  No enrollment check."""
    quiz = await _load_quiz(repos, quiz_id)
    return await _grade_loaded(
        repos, user_id, quiz, answers, started_at, now if now is not None else epoch_now()
    )


async def submit_quiz_attempt(
    repos: Repos,
    user_id: int,
    quiz_id: int,
    answers: Sequence[AnswerSubmission],
    *,
    started_at: int | None = None,
    now: int | None = None,
) -> SubmissionOutcome:
    """Grade a learner's submission and complete the quiz's lesson.

    The lesson is completed on every successful submission, passed or
    not, and the enrollment's progress is recomputed afterwards.
    """
    now = now if now is not None else epoch_now()
    quiz = await _load_quiz(repos, quiz_id)

    enrollment = await repos.enrollments.get_by_user_and_lesson(user_id, quiz.lesson_id)
    if enrollment is None:
        logger.warning(
            "Quiz submission from unenrolled user=%d quiz=%d",
            user_id,
            quiz_id,
            extra={"quiz_id": quiz_id, "user_id": user_id},
        )
        raise ForbiddenError("Not enrolled in this course")

    grade = await _grade_loaded(repos, user_id, quiz, answers, started_at, now)
    progress = await completion_service.complete_for(
        repos, enrollment, quiz.lesson_id, now=now
    )

    if grade.is_retake and quiz.is_single_attempt:
        outcome = "retake"
    else:
        outcome = "passed" if grade.passed else "failed"
    QUIZ_SUBMISSIONS.labels(outcome=outcome).inc()
    logger.info(
        "Quiz graded quiz=%d user=%d attempt=%d score=%d passed=%s retake=%s",
        quiz_id,
        user_id,
        grade.attempt_number,
        grade.score,
        grade.passed,
        grade.is_retake,
        extra={"quiz_id": quiz_id, "user_id": user_id},
    )
    return SubmissionOutcome(grade=grade, progress=progress)


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------


async def get_attempt_info(repos: Repos, user_id: int, quiz: Quiz) -> AttemptInfo:
    stats = await repos.quizzes.attempt_stats(user_id, quiz.id)
    remaining = None
    if quiz.max_attempts:
        remaining = max(0, quiz.max_attempts - stats.count)
    return AttemptInfo(
        attempt_count=stats.count,
        max_attempts=quiz.max_attempts,
        remaining_attempts=remaining,
        can_attempt=not attempts_exhausted(quiz, stats.count),
    )


async def get_quiz(repos: Repos, user_id: int, quiz_id: int) -> tuple[Quiz, AttemptInfo]:
    quiz = await _load_quiz(repos, quiz_id)
    return quiz, await get_attempt_info(repos, user_id, quiz)


async def _report(repos: Repos, quiz: Quiz, attempt: QuizAttempt) -> AttemptReport:
    stats = await repos.quizzes.answer_stats(attempt.id)
    return AttemptReport(
        attempt=attempt,
        quiz_title=quiz.title,
        passing_score=quiz.passing_score,
        time_limit=quiz.time_limit,
        total_questions=len(quiz.questions),
        correct_answers=stats.correct_answers,
        incorrect_answers=stats.incorrect_answers,
        time_taken=format_elapsed(attempt.started_at, attempt.completed_at),
    )


async def get_quiz_results(
    repos: Repos, user_id: int, quiz_id: int
) -> AttemptReport | None:
    """The learner's most recently completed attempt, or None."""
    quiz = await _load_quiz(repos, quiz_id)
    attempt = await repos.quizzes.latest_attempt(user_id, quiz_id)
    if attempt is None:
        return None
    return await _report(repos, quiz, attempt)


async def get_all_quiz_attempts(
    repos: Repos, user_id: int, quiz_id: int
) -> list[AttemptReport]:
    quiz = await _load_quiz(repos, quiz_id)
    attempts = await repos.quizzes.list_attempts(user_id, quiz_id)
    return [await _report(repos, quiz, a) for a in attempts]


async def get_attempt_answers(
    repos: Repos, user_id: int, quiz_id: int, attempt_id: int
) -> list[QuizAnswer]:
    """The stored answers of one of the caller's own attempts."""
    await _load_quiz(repos, quiz_id)
    attempts = await repos.quizzes.list_attempts(user_id, quiz_id)
    if not any(a.id == attempt_id for a in attempts):
        raise NotFoundError("Attempt not found")
    return await repos.quizzes.list_answers(attempt_id)


async def list_lesson_quizzes(repos: Repos, lesson_id: int) -> list[LessonQuizSummary]:
    lesson = await repos.catalog.get_lesson(lesson_id)
    if lesson is None:
        raise NotFoundError("Lesson not found")
    course_id = await repos.catalog.course_id_for_lesson(lesson_id)
    course = await repos.catalog.get_course(course_id) if course_id else None

    return [
        LessonQuizSummary(
            quiz_id=quiz.id,
            title=quiz.title,
            passing_score=quiz.passing_score,
            time_limit=quiz.time_limit,
            max_attempts=quiz.max_attempts,
            lesson_id=lesson.id,
            lesson_title=lesson.title,
            course_title=course.title if course else "",
            question_count=len(quiz.questions),
        )
        for quiz in await repos.quizzes.list_by_lesson(lesson_id)
    ]


async def list_user_quizzes(repos: Repos, user_id: int) -> list[UserQuizSummary]:
    """Quizzes across every course the learner is enrolled in."""
    enrollments = await repos.enrollments.list_by_user(user_id)
    quizzes = await repos.quizzes.list_by_courses(e.course_id for e in enrollments)

    summaries = []
    for quiz in quizzes:
        lesson = await repos.catalog.get_lesson(quiz.lesson_id)
        course_id = await repos.catalog.course_id_for_lesson(quiz.lesson_id)
        course = await repos.catalog.get_course(course_id) if course_id else None
        if lesson is None or course is None:
            continue

        attempts = await repos.quizzes.list_attempts(user_id, quiz.id)
        best = None
        if attempts:
            top = max(attempts, key=lambda a: (a.score, a.completed_at or 0))
            best = BestAttempt(
                score=top.score,
                attempt_number=top.attempt_number,
                completed_at=top.completed_at,
            )
        summaries.append(
            UserQuizSummary(
                quiz_id=quiz.id,
                title=quiz.title,
                passing_score=quiz.passing_score,
                time_limit=quiz.time_limit,
                max_attempts=quiz.max_attempts,
                lesson_id=lesson.id,
                lesson_title=lesson.title,
                course_id=course.id,
                course_title=course.title,
                question_count=len(quiz.questions),
                total_attempts=len(attempts),
                best_attempt=best,
            )
        )

    summaries.sort(key=lambda s: (s.course_title, s.lesson_title, s.title))
    return summaries


# ---------------------------------------------------------------------------
# Authoring
# ---------------------------------------------------------------------------


def validate_questions(questions: Sequence[QuestionDraft]) -> None:
    for i, q in enumerate(questions, start=1):
        if q.question_type not in QUESTION_TYPES:
            raise ValidationError(f"Question {i}: unknown type {q.question_type!r}")
        if not q.question_text.strip():
            raise ValidationError(f"Question {i}: question text is required")
        if q.points is not None and q.points < 0:
            raise ValidationError(f"Question {i}: points cannot be negative")
        if q.question_type == "multiple_choice" and len(q.options) < 2:
            raise ValidationError(
                f"Question {i}: multiple choice questions need at least 2 options"
            )
        if q.question_type == "true_false" and len(q.options) != 2:
            raise ValidationError(
                f"Question {i}: true/false questions need exactly 2 options"
            )
        if q.question_type in ("multiple_choice", "true_false") and not any(
            o.is_correct for o in q.options
        ):
            raise ValidationError(f"Question {i}: mark one option as correct")


async def create_quiz(
    repos: Repos,
    *,
    lesson_id: int,
    title: str,
    questions: Sequence[QuestionDraft],
    passing_score: int | None = None,
    time_limit: int | None = None,
    max_attempts: int | None = 3,
) -> Quiz:
    lesson = await repos.catalog.get_lesson(lesson_id)
    if lesson is None:
        raise NotFoundError("Lesson not found")
    if not title.strip():
        raise ValidationError("Quiz title is required")
    validate_questions(questions)

    if passing_score is None:
        passing_score = SETTINGS.default_passing_score

    quiz = await repos.quizzes.create_quiz(
        lesson_id=lesson_id,
        title=title.strip(),
        passing_score=passing_score,
        time_limit=time_limit,
        max_attempts=max_attempts,
        questions=questions,
    )
    logger.info(
        "Quiz created quiz=%d lesson=%d questions=%d",
        quiz.id,
        lesson_id,
        len(quiz.questions),
        extra={"quiz_id": quiz.id, "lesson_id": lesson_id},
    )
    return quiz


def _check_draft_ids(quiz: Quiz, questions: Sequence[QuestionDraft]) -> None:
    """Ids in an edit must name this quiz's questions and their own options."""
    stored = {q.id: q for q in quiz.questions}
    seen_questions: set[int] = set()
    for i, draft in enumerate(questions, start=1):
        if draft.id is None:
            if any(o.id is not None for o in draft.options):
                raise ValidationError(f"Question {i}: a new question cannot reuse option ids")
            continue
        if draft.id not in stored or draft.id in seen_questions:
            raise ValidationError(f"Question {i}: id {draft.id} is not a question of this quiz")
        seen_questions.add(draft.id)

        own = {o.id for o in stored[draft.id].options}
        seen_options: set[int] = set()
        for o in draft.options:
            if o.id is None:
                continue
            if o.id not in own or o.id in seen_options:
                raise ValidationError(
                    f"Question {i}: option {o.id} does not belong to this question"
                )
            seen_options.add(o.id)


async def update_quiz(
    repos: Repos,
    quiz_id: int,
    *,
    title: str | None = None,
    passing_score: int | None = None,
    time_limit: int | None = None,
    max_attempts: int | None = None,
    questions: Sequence[QuestionDraft] | None = None,
) -> Quiz:
    """Edit a quiz; fields left as None keep their stored value.

    When ``questions`` is given it is the complete new list: drafts with an
    id update that question, drafts without one are added, and stored
    questions not named are removed along with their recorded answers.
    The same rule applies to each kept question's options.  Past answers
    that pointed at a removed option keep their verdict without the link.
    Everything is checked before anything is written.
    """
    quiz = await _load_quiz(repos, quiz_id)
    if title is not None:
        title = title.strip()
        if not title:
            raise ValidationError("Quiz title is required")
    if questions is not None:
        validate_questions(questions)
        _check_draft_ids(quiz, questions)

    updated = await repos.quizzes.update_quiz(
        quiz_id,
        title=title,
        passing_score=passing_score,
        time_limit=time_limit,
        max_attempts=max_attempts,
        questions=questions,
    )
    if updated is None:
        raise NotFoundError("Quiz not found")
    logger.info(
        "Quiz updated quiz=%d questions=%d",
        quiz_id,
        len(updated.questions),
        extra={"quiz_id": quiz_id, "lesson_id": updated.lesson_id},
    )
    return updated


async def delete_quiz(repos: Repos, quiz_id: int) -> None:
    if not await repos.quizzes.delete_quiz(quiz_id):
        raise NotFoundError("Quiz not found")
    logger.info("Quiz deleted quiz=%d", quiz_id, extra={"quiz_id": quiz_id})
