from __future__ import annotations

from dataclasses import dataclass, field

QUESTION_TYPES = ("multiple_choice", "true_false", "short_answer")


@dataclass(frozen=True, slots=True)
class QuizOption:
    id: int
    question_id: int
    option_text: str
    is_correct: bool = False
    order_num: int = 0


@dataclass(frozen=True, slots=True)
class QuizQuestion:
    id: int
    quiz_id: int
    question_text: str
    question_type: str  # multiple_choice|true_false|short_answer
    points: int | None = None
    order_num: int = 0
    options: tuple[QuizOption, ...] = ()

    @property
    def point_value(self) -> int:
        # Unset (or zero) point values count as one point
        return self.points or 1


@dataclass(frozen=True, slots=True)
class Quiz:
    id: int
    lesson_id: int
    title: str
    passing_score: int | None = None
    time_limit: int | None = None  # minutes
    max_attempts: int | None = None  # None/0 = unlimited
    questions: tuple[QuizQuestion, ...] = ()

    @property
    def is_single_attempt(self) -> bool:
        return self.max_attempts == 1

    def question_ids(self) -> set[int]:
        return {q.id for q in self.questions}


@dataclass(frozen=True, slots=True)
class QuizAttempt:
    """A graded attempt (``quiz_results`` row)."""

    id: int
    user_id: int
    quiz_id: int
    score: int
    attempt_number: int
    started_at: int | None = None
    completed_at: int | None = None


@dataclass(frozen=True, slots=True)
class QuizAnswer:
    id: int
    result_id: int
    question_id: int
    option_id: int | None
    answer_text: str | None
    is_correct: bool


@dataclass(frozen=True, slots=True)
class AnswerSubmission:
    """Canonical shape of one submitted answer.

    ``selected_option`` is kept raw: the graders decide whether it parses
    as an option id, so a garbage value grades as incorrect instead of
    failing the request.
    """

    question_id: int
    selected_option: object = None
    answer_text: str | None = None


@dataclass(frozen=True, slots=True)
class GradedAnswer:
    question_id: int
    option_id: int | None
    answer_text: str | None
    is_correct: bool


@dataclass(frozen=True, slots=True)
class AttemptStats:
    count: int = 0
    last_attempt_number: int = 0


@dataclass(frozen=True, slots=True)
class AnswerStats:
    total_answers: int = 0
    correct_answers: int = 0
    incorrect_answers: int = 0


@dataclass(frozen=True, slots=True)
class GradeResult:
    attempt: QuizAttempt
    score: int
    passed: bool
    attempt_number: int
    is_retake: bool
    answers: tuple[GradedAnswer, ...] = field(default=())


@dataclass(frozen=True, slots=True)
class SubmissionOutcome:
    grade: GradeResult
    progress: int


@dataclass(frozen=True, slots=True)
class AttemptInfo:
    """Where a learner stands against a quiz's attempt limit."""

    attempt_count: int
    max_attempts: int | None
    remaining_attempts: int | None  # None when unlimited
    can_attempt: bool


@dataclass(frozen=True, slots=True)
class AttemptReport:
    """A stored attempt enriched for display."""

    attempt: QuizAttempt
    quiz_title: str
    passing_score: int | None
    time_limit: int | None
    total_questions: int
    correct_answers: int
    incorrect_answers: int
    time_taken: str

    @property
    def passed(self) -> bool:
        return self.attempt.score >= (self.passing_score or 0)


@dataclass(frozen=True, slots=True)
class BestAttempt:
    score: int
    attempt_number: int
    completed_at: int | None


@dataclass(frozen=True, slots=True)
class OptionDraft:
    option_text: str
    is_correct: bool = False
    id: int | None = None  # set when editing an existing option


@dataclass(frozen=True, slots=True)
class QuestionDraft:
    """Authoring input for one question.

    ``id`` is None for a new question; on update it names the stored
    question to keep.  Ids are assigned on insert.
    """

    question_text: str
    question_type: str
    points: int | None = None
    options: tuple[OptionDraft, ...] = ()
    id: int | None = None


@dataclass(frozen=True, slots=True)
class LessonQuizSummary:
    quiz_id: int
    title: str
    passing_score: int | None
    time_limit: int | None
    max_attempts: int | None
    lesson_id: int
    lesson_title: str
    course_title: str
    question_count: int


@dataclass(frozen=True, slots=True)
class UserQuizSummary:
    """A quiz in one of the learner's courses, with their attempt history."""

    quiz_id: int
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
    best_attempt: BestAttempt | None = None
