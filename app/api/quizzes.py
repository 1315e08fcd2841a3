"""Quiz endpoints: take, submit, review, author.

Older clients send answers in several shapes (camelCase keys, option ids
wrapped in a list).  ``AnswerIn`` folds them all into one canonical
``AnswerSubmission`` here at the edge; nothing past this module sees an
alias.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from fastapi import APIRouter, Depends, Response, status
from pydantic import BaseModel, Field, model_validator

from app.api.dependencies import STAFF_ROLES, CurrentUser, ReposDep, StaffUser
from app.api.ratelimit import require_rate_limit
from app.models.quiz import (
    AnswerSubmission,
    AttemptInfo,
    AttemptReport,
    LessonQuizSummary,
    OptionDraft,
    QuestionDraft,
    Quiz,
    QuizAnswer,
    UserQuizSummary,
)
from app.services import quiz_service
from app.services.rate_limiter import QUIZ_SUBMIT_LIMIT

router = APIRouter(tags=["quizzes"])

# Checked in order; list-valued keys contribute their first element
_OPTION_KEYS = (
    "selected_option",
    "selected_options",
    "selectedOptions",
    "optionId",
    "option_id",
    "selectedOptionId",
)


def _first(value: Any) -> Any:
    if isinstance(value, (list, tuple)):
        return value[0] if value else None
    return value


# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------


class AnswerIn(BaseModel):
    question_id: int
    # Left untyped so pydantic does not coerce true/false or 1.5 to an id
    selected_option: Any = None
    answer_text: str | None = None

    @model_validator(mode="before")
    @classmethod
    def _normalize_aliases(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data

        question_id = data.get("question_id", data.get("questionId"))

        selected = None
        for key in _OPTION_KEYS:
            selected = _first(data.get(key))
            if selected is not None:
                break

        answer_text = data.get("answer_text", data.get("answerText"))
        return {
            "question_id": question_id,
            "selected_option": selected,
            "answer_text": answer_text,
        }

    def to_domain(self) -> AnswerSubmission:
        return AnswerSubmission(
            question_id=self.question_id,
            selected_option=self.selected_option,
            answer_text=self.answer_text,
        )


class SubmitQuizIn(BaseModel):
    answers: list[AnswerIn] = Field(default_factory=list)
    start_time: datetime | None = None

    @model_validator(mode="before")
    @classmethod
    def _normalize_start_time(cls, data: Any) -> Any:
        if isinstance(data, dict) and "start_time" not in data and "startTime" in data:
            data = {**data, "start_time": data["startTime"]}
        return data


class OptionIn(BaseModel):
    id: int | None = None  # existing option, when editing
    option_text: str = Field(min_length=1)
    is_correct: bool = False


class QuestionIn(BaseModel):
    id: int | None = None
    question_text: str = Field(min_length=1)
    question_type: str
    points: int | None = Field(default=None, ge=0)
    options: list[OptionIn] = Field(default_factory=list)


class CreateQuizIn(BaseModel):
    title: str = Field(min_length=1, max_length=500)
    passing_score: int | None = Field(default=None, ge=0, le=100)
    time_limit: int | None = Field(default=None, gt=0)
    max_attempts: int | None = Field(default=3, ge=0)
    questions: list[QuestionIn] = Field(default_factory=list)


class UpdateQuizIn(BaseModel):
    """Omitted fields keep their stored value; ``questions`` replaces the list."""

    title: str | None = Field(default=None, min_length=1, max_length=500)
    passing_score: int | None = Field(default=None, ge=0, le=100)
    time_limit: int | None = Field(default=None, gt=0)
    max_attempts: int | None = Field(default=None, ge=0)
    questions: list[QuestionIn] | None = None


def _drafts(questions: list[QuestionIn]) -> list[QuestionDraft]:
    return [
        QuestionDraft(
            id=q.id,
            question_text=q.question_text,
            question_type=q.question_type,
            points=q.points,
            options=tuple(
                OptionDraft(id=o.id, option_text=o.option_text, is_correct=o.is_correct)
                for o in q.options
            ),
        )
        for q in questions
    ]


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------


class OptionOut(BaseModel):
    id: int
    option_text: str
    order_num: int
    is_correct: bool | None = None  # only for instructors


class QuestionOut(BaseModel):
    id: int
    question_text: str
    question_type: str
    points: int
    order_num: int
    options: list[OptionOut]


class AttemptInfoOut(BaseModel):
    attempt_count: int
    max_attempts: int | None
    remaining_attempts: int | None
    can_attempt: bool

    @classmethod
    def from_domain(cls, info: AttemptInfo) -> AttemptInfoOut:
        return cls(
            attempt_count=info.attempt_count,
            max_attempts=info.max_attempts,
            remaining_attempts=info.remaining_attempts,
            can_attempt=info.can_attempt,
        )


class QuizOut(BaseModel):
    id: int
    lesson_id: int
    title: str
    passing_score: int | None
    time_limit: int | None
    max_attempts: int | None
    questions: list[QuestionOut]
    attempt_info: AttemptInfoOut | None = None


def _quiz_out(quiz: Quiz, *, reveal_answers: bool, info: AttemptInfo | None = None) -> QuizOut:
    return QuizOut(
        id=quiz.id,
        lesson_id=quiz.lesson_id,
        title=quiz.title,
        passing_score=quiz.passing_score,
        time_limit=quiz.time_limit,
        max_attempts=quiz.max_attempts,
        questions=[
            QuestionOut(
                id=q.id,
                question_text=q.question_text,
                question_type=q.question_type,
                points=q.point_value,
                order_num=q.order_num,
                options=[
                    OptionOut(
                        id=o.id,
                        option_text=o.option_text,
                        order_num=o.order_num,
                        is_correct=o.is_correct if reveal_answers else None,
                    )
                    for o in q.options
                ],
            )
            for q in quiz.questions
        ],
        attempt_info=AttemptInfoOut.from_domain(info) if info else None,
    )


class SubmitQuizOut(BaseModel):
    attempt_id: int
    attempt_number: int
    score: int
    passed: bool
    is_retake: bool
    progress: int


class AttemptReportOut(BaseModel):
    id: int
    quiz_id: int
    quiz_title: str
    score: int
    percentage: int
    passed: bool
    passing_score: int | None
    time_limit: int | None
    attempt_number: int
    started_at: int | None
    completed_at: int | None
    total_questions: int
    correct_answers: int
    incorrect_answers: int
    time_taken: str

    @classmethod
    def from_domain(cls, r: AttemptReport) -> AttemptReportOut:
        return cls(
            id=r.attempt.id,
            quiz_id=r.attempt.quiz_id,
            quiz_title=r.quiz_title,
            score=r.attempt.score,
            percentage=r.attempt.score,
            passed=r.passed,
            passing_score=r.passing_score,
            time_limit=r.time_limit,
            attempt_number=r.attempt.attempt_number,
            started_at=r.attempt.started_at,
            completed_at=r.attempt.completed_at,
            total_questions=r.total_questions,
            correct_answers=r.correct_answers,
            incorrect_answers=r.incorrect_answers,
            time_taken=r.time_taken,
        )


class AnswerOut(BaseModel):
    question_id: int
    option_id: int | None
    answer_text: str | None
    is_correct: bool

    @classmethod
    def from_domain(cls, a: QuizAnswer) -> AnswerOut:
        return cls(
            question_id=a.question_id,
            option_id=a.option_id,
            answer_text=a.answer_text,
            is_correct=a.is_correct,
        )


class LessonQuizOut(BaseModel):
    id: int
    title: str
    passing_score: int | None
    time_limit: int | None
    max_attempts: int | None
    lesson_id: int
    lesson_title: str
    course_title: str
    question_count: int

    @classmethod
    def from_domain(cls, s: LessonQuizSummary) -> LessonQuizOut:
        return cls(
            id=s.quiz_id,
            title=s.title,
            passing_score=s.passing_score,
            time_limit=s.time_limit,
            max_attempts=s.max_attempts,
            lesson_id=s.lesson_id,
            lesson_title=s.lesson_title,
            course_title=s.course_title,
            question_count=s.question_count,
        )


class BestAttemptOut(BaseModel):
    score: int
    total_score: int = 100
    attempt_number: int
    completed_at: int | None


class UserQuizOut(BaseModel):
    id: int
    title: str
    passing_score: int | None
    time_limit: int | None
    max_attempts: int | None
    lesson_id: int
    lesson_title: str
    course_id: int
    course_title: str
    question_count: int
    total_attempts: int
    best_attempt: BestAttemptOut | None

    @classmethod
    def from_domain(cls, s: UserQuizSummary) -> UserQuizOut:
        best = None
        if s.best_attempt is not None:
            best = BestAttemptOut(
                score=s.best_attempt.score,
                attempt_number=s.best_attempt.attempt_number,
                completed_at=s.best_attempt.completed_at,
            )
        return cls(
            id=s.quiz_id,
            title=s.title,
            passing_score=s.passing_score,
            time_limit=s.time_limit,
            max_attempts=s.max_attempts,
            lesson_id=s.lesson_id,
            lesson_title=s.lesson_title,
            course_id=s.course_id,
            course_title=s.course_title,
            question_count=s.question_count,
            total_attempts=s.total_attempts,
            best_attempt=best,
        )


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------

# Declared before /{quiz_id} so "mine" is not parsed as an id
@router.get("/v1/quizzes/mine", response_model=list[UserQuizOut])
async def list_my_quizzes(principal: CurrentUser, repos: ReposDep) -> list[UserQuizOut]:
    summaries = await quiz_service.list_user_quizzes(repos, principal.user_id)
    return [UserQuizOut.from_domain(s) for s in summaries]


@router.get("/v1/quizzes/lessons/{lesson_id}", response_model=list[LessonQuizOut])
async def list_lesson_quizzes(
    lesson_id: int, _principal: CurrentUser, repos: ReposDep
) -> list[LessonQuizOut]:
    summaries = await quiz_service.list_lesson_quizzes(repos, lesson_id)
    return [LessonQuizOut.from_domain(s) for s in summaries]


@router.get("/v1/quizzes/{quiz_id}", response_model=QuizOut)
async def get_quiz(quiz_id: int, principal: CurrentUser, repos: ReposDep) -> QuizOut:
    quiz, info = await quiz_service.get_quiz(repos, principal.user_id, quiz_id)
    return _quiz_out(
        quiz, reveal_answers=principal.has_any_role(STAFF_ROLES), info=info
    )


@router.post(
    "/v1/quizzes/{quiz_id}/submit",
    response_model=SubmitQuizOut,
    dependencies=[Depends(require_rate_limit(QUIZ_SUBMIT_LIMIT))],
)
async def submit_quiz(
    quiz_id: int, body: SubmitQuizIn, principal: CurrentUser, repos: ReposDep
) -> SubmitQuizOut:
    started_at = int(body.start_time.timestamp()) if body.start_time else None
    outcome = await quiz_service.submit_quiz_attempt(
        repos,
        principal.user_id,
        quiz_id,
        [a.to_domain() for a in body.answers],
        started_at=started_at,
    )
    grade = outcome.grade
    return SubmitQuizOut(
        attempt_id=grade.attempt.id,
        attempt_number=grade.attempt_number,
        score=grade.score,
        passed=grade.passed,
        is_retake=grade.is_retake,
        progress=outcome.progress,
    )


@router.get("/v1/quizzes/{quiz_id}/results", response_model=list[AttemptReportOut])
async def get_quiz_results(
    quiz_id: int, principal: CurrentUser, repos: ReposDep
) -> list[AttemptReportOut]:
    """Latest attempt as a one-element list; empty before the first attempt."""
    report = await quiz_service.get_quiz_results(repos, principal.user_id, quiz_id)
    return [AttemptReportOut.from_domain(report)] if report else []


@router.get("/v1/quizzes/{quiz_id}/attempts", response_model=list[AttemptReportOut])
async def get_quiz_attempts(
    quiz_id: int, principal: CurrentUser, repos: ReposDep
) -> list[AttemptReportOut]:
    reports = await quiz_service.get_all_quiz_attempts(repos, principal.user_id, quiz_id)
    return [AttemptReportOut.from_domain(r) for r in reports]


@router.get(
    "/v1/quizzes/{quiz_id}/attempts/{attempt_id}/answers",
    response_model=list[AnswerOut],
)
async def get_attempt_answers(
    quiz_id: int, attempt_id: int, principal: CurrentUser, repos: ReposDep
) -> list[AnswerOut]:
    answers = await quiz_service.get_attempt_answers(
        repos, principal.user_id, quiz_id, attempt_id
    )
    return [AnswerOut.from_domain(a) for a in answers]


@router.post(
    "/v1/lessons/{lesson_id}/quizzes",
    response_model=QuizOut,
    status_code=status.HTTP_201_CREATED,
)
async def create_quiz(
    lesson_id: int, body: CreateQuizIn, _staff: StaffUser, repos: ReposDep
) -> QuizOut:
    quiz = await quiz_service.create_quiz(
        repos,
        lesson_id=lesson_id,
        title=body.title,
        passing_score=body.passing_score,
        time_limit=body.time_limit,
        max_attempts=body.max_attempts,
        questions=_drafts(body.questions),
    )
    return _quiz_out(quiz, reveal_answers=True)


@router.put("/v1/quizzes/{quiz_id}", response_model=QuizOut)
async def update_quiz(
    quiz_id: int, body: UpdateQuizIn, _staff: StaffUser, repos: ReposDep
) -> QuizOut:
    quiz = await quiz_service.update_quiz(
        repos,
        quiz_id,
        title=body.title,
        passing_score=body.passing_score,
        time_limit=body.time_limit,
        max_attempts=body.max_attempts,
        questions=_drafts(body.questions) if body.questions is not None else None,
    )
    return _quiz_out(quiz, reveal_answers=True)


@router.delete("/v1/quizzes/{quiz_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_quiz(quiz_id: int, _staff: StaffUser, repos: ReposDep) -> Response:
    await quiz_service.delete_quiz(repos, quiz_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
