"""Per-question graders and score arithmetic.

Each question type maps to one grader.  A grader never raises on a bad
answer: a missing answer, a non-numeric option id, or an option from some
other question all grade as incorrect.
"""

from __future__ import annotations

from collections.abc import Iterable
from typing import Protocol

from app.models.quiz import AnswerSubmission, GradedAnswer, QuizQuestion
from app.services.progress_service import round_half_up_percent


def parse_option_id(raw: object) -> int | None:
    if raw is None or isinstance(raw, bool):
        return None
    if isinstance(raw, int):
        return raw
    text = str(raw).strip()
    if not text:
        return None
    try:
        return int(text)
    except ValueError:
        return None


class QuestionGrader(Protocol):
    def grade(
        self, question: QuizQuestion, answer: AnswerSubmission | None
    ) -> GradedAnswer: ...


class MultipleChoiceGrader:
    """Correct when the selected option is the question's correct option.

    Only the first option flagged correct counts; a second correct flag on
    the same question is ignored.
    """

    def grade(
        self, question: QuizQuestion, answer: AnswerSubmission | None
    ) -> GradedAnswer:
        option_id = parse_option_id(answer.selected_option) if answer else None
        correct = next((o for o in question.options if o.is_correct), None)
        is_correct = (
            option_id is not None and correct is not None and option_id == correct.id
        )
        # Only keep references to options that exist on this question
        known = option_id is not None and any(o.id == option_id for o in question.options)
        return GradedAnswer(
            question_id=question.id,
            option_id=option_id if known else None,
            answer_text=None,
            is_correct=is_correct,
        )


class TrueFalseGrader(MultipleChoiceGrader):
    """True/false questions are two-option choice questions."""


class ShortAnswerGrader:
    """Accepts any non-blank text.

    Placeholder until short answers get instructor review; the text is
    stored so it can be regraded later.
    """

    def grade(
        self, question: QuizQuestion, answer: AnswerSubmission | None
    ) -> GradedAnswer:
        text = None
        if answer is not None:
            text = answer.answer_text
            if text is None and answer.selected_option is not None:
                text = str(answer.selected_option)
        is_correct = bool(text and text.strip())
        return GradedAnswer(
            question_id=question.id,
            option_id=None,
            answer_text=text,
            is_correct=is_correct,
        )


GRADERS: dict[str, QuestionGrader] = {
    "multiple_choice": MultipleChoiceGrader(),
    "true_false": TrueFalseGrader(),
    "short_answer": ShortAnswerGrader(),
}


def grader_for(question_type: str) -> QuestionGrader:
    try:
        return GRADERS[question_type]
    except KeyError:
        raise ValueError(f"no grader for question type {question_type!r}") from None


def first_answer_per_question(
    answers: Iterable[AnswerSubmission],
) -> dict[int, AnswerSubmission]:
    """Index answers by question id, keeping the first one for each id."""
    by_question: dict[int, AnswerSubmission] = {}
    for a in answers:
        by_question.setdefault(a.question_id, a)
    return by_question


def grade_questions(
    questions: Iterable[QuizQuestion], answers: dict[int, AnswerSubmission]
) -> tuple[list[GradedAnswer], int, int]:
    """Grade every question; return (graded answers, earned, possible).

    Unanswered questions still count toward ``possible`` but produce no
    answer row.
    """
    graded: list[GradedAnswer] = []
    earned = possible = 0
    for q in questions:
        possible += q.point_value
        answer = answers.get(q.id)
        result = grader_for(q.question_type).grade(q, answer)
        if result.is_correct:
            earned += q.point_value
        if answer is not None:
            graded.append(result)
    return graded, earned, possible


def score_percentage(earned: int, possible: int) -> int:
    return round_half_up_percent(earned, possible)
