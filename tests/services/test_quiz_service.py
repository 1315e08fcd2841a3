from __future__ import annotations

import asyncio

import pytest

from app.core.errors import ForbiddenError, NotFoundError, PolicyError, ValidationError
from app.models.quiz import AnswerSubmission, OptionDraft, QuestionDraft
from app.repos.registry import Repos
from app.services import quiz_service
from app.services.quiz_service import format_elapsed
from tests.conftest import (
    NOW,
    OTHER_STUDENT_ID,
    STUDENT_ID,
    SeededCourse,
    correct_option,
    seed_course,
    wrong_option,
)


def _answers(course: SeededCourse, *, mc: bool, tf: bool) -> list[AnswerSubmission]:
    mc_q, tf_q = course.mc_question, course.tf_question
    return [
        AnswerSubmission(mc_q.id, correct_option(mc_q) if mc else wrong_option(mc_q)),
        AnswerSubmission(tf_q.id, correct_option(tf_q) if tf else wrong_option(tf_q)),
    ]


def _submit(repos: Repos, course: SeededCourse, answers, *, user_id=STUDENT_ID, now=NOW):
    return asyncio.run(
        quiz_service.submit_quiz_attempt(
            repos, user_id, course.quiz_id, answers, started_at=now - 90, now=now
        )
    )


def test_points_weighted_score(repos: Repos, enrolled: SeededCourse) -> None:
    outcome = _submit(repos, enrolled, _answers(enrolled, mc=True, tf=False))
    assert outcome.grade.score == 25
    assert outcome.grade.passed is False


def test_submission_completes_lesson_and_updates_progress(
    repos: Repos, enrolled: SeededCourse
) -> None:
    outcome = _submit(repos, enrolled, _answers(enrolled, mc=False, tf=False))
    assert outcome.progress == 25
    assert asyncio.run(
        repos.completions.is_completed(STUDENT_ID, enrolled.quiz_lesson_id)
    )


def test_attempt_numbers_increase(repos: Repos, enrolled: SeededCourse) -> None:
    first = _submit(repos, enrolled, _answers(enrolled, mc=False, tf=False))
    second = _submit(repos, enrolled, _answers(enrolled, mc=True, tf=True), now=NOW + 60)
    assert first.grade.attempt_number == 1
    assert first.grade.is_retake is False
    assert second.grade.attempt_number == 2
    assert second.grade.is_retake is True
    assert second.grade.score == 100


def test_attempts_exhausted_after_max(repos: Repos, enrolled: SeededCourse) -> None:
    _submit(repos, enrolled, _answers(enrolled, mc=False, tf=False))
    _submit(repos, enrolled, _answers(enrolled, mc=False, tf=False), now=NOW + 1)
    with pytest.raises(PolicyError, match=r"Maximum attempts \(2\)"):
        _submit(repos, enrolled, _answers(enrolled, mc=True, tf=True), now=NOW + 2)

    attempts = asyncio.run(repos.quizzes.list_attempts(STUDENT_ID, enrolled.quiz_id))
    assert len(attempts) == 2


def test_single_attempt_quiz_overwrites_in_place(repos: Repos) -> None:
    course = asyncio.run(seed_course(repos, max_attempts=1))
    asyncio.run(repos.enrollments.add(STUDENT_ID, course.course_id, NOW))

    first = _submit(repos, course, _answers(course, mc=False, tf=False))
    second = _submit(repos, course, _answers(course, mc=True, tf=True), now=NOW + 60)

    assert second.grade.attempt.id == first.grade.attempt.id
    assert second.grade.attempt_number == 1
    assert second.grade.is_retake is True
    assert second.grade.score == 100

    attempts = asyncio.run(repos.quizzes.list_attempts(STUDENT_ID, course.quiz_id))
    assert len(attempts) == 1
    assert attempts[0].score == 100
    # started_at of the original attempt is kept
    assert attempts[0].started_at == NOW - 90
    answers = asyncio.run(repos.quizzes.list_answers(attempts[0].id))
    assert len(answers) == 2
    assert all(a.is_correct for a in answers)


def test_unenrolled_submission_is_forbidden_and_writes_nothing(
    repos: Repos, course: SeededCourse
) -> None:
    with pytest.raises(ForbiddenError):
        _submit(repos, course, _answers(course, mc=True, tf=True))
    assert asyncio.run(repos.quizzes.list_attempts(STUDENT_ID, course.quiz_id)) == []
    assert not asyncio.run(repos.completions.is_completed(STUDENT_ID, course.quiz_lesson_id))


def test_foreign_question_rejected_before_any_write(
    repos: Repos, enrolled: SeededCourse
) -> None:
    answers = _answers(enrolled, mc=True, tf=True) + [AnswerSubmission(9999, 1)]
    with pytest.raises(ValidationError, match="9999"):
        _submit(repos, enrolled, answers)
    assert asyncio.run(repos.quizzes.list_attempts(STUDENT_ID, enrolled.quiz_id)) == []
    assert not asyncio.run(
        repos.completions.is_completed(STUDENT_ID, enrolled.quiz_lesson_id)
    )


def test_unknown_quiz(repos: Repos) -> None:
    with pytest.raises(NotFoundError):
        asyncio.run(quiz_service.submit_quiz_attempt(repos, STUDENT_ID, 12345, []))


def test_duplicate_answers_keep_first(repos: Repos, enrolled: SeededCourse) -> None:
    mc_q = enrolled.mc_question
    answers = [
        AnswerSubmission(mc_q.id, correct_option(mc_q)),
        AnswerSubmission(mc_q.id, wrong_option(mc_q)),
    ]
    outcome = _submit(repos, enrolled, answers)
    assert outcome.grade.score == 25
    assert len(outcome.grade.answers) == 1


def test_garbage_option_id_grades_incorrect(repos: Repos, enrolled: SeededCourse) -> None:
    answers = [
        AnswerSubmission(enrolled.mc_question.id, "not-a-number"),
        AnswerSubmission(enrolled.tf_question.id, correct_option(enrolled.tf_question)),
    ]
    outcome = _submit(repos, enrolled, answers)
    assert outcome.grade.score == 75
    stored = asyncio.run(repos.quizzes.list_answers(outcome.grade.attempt.id))
    assert {a.question_id: a.option_id for a in stored}[enrolled.mc_question.id] is None


def test_attempt_info_tracks_remaining(repos: Repos, enrolled: SeededCourse) -> None:
    _submit(repos, enrolled, _answers(enrolled, mc=False, tf=False))
    _, info = asyncio.run(quiz_service.get_quiz(repos, STUDENT_ID, enrolled.quiz_id))
    assert info.attempt_count == 1
    assert info.remaining_attempts == 1
    assert info.can_attempt is True

    _submit(repos, enrolled, _answers(enrolled, mc=False, tf=False), now=NOW + 5)
    _, info = asyncio.run(quiz_service.get_quiz(repos, STUDENT_ID, enrolled.quiz_id))
    assert info.remaining_attempts == 0
    assert info.can_attempt is False


def test_unlimited_attempts(repos: Repos) -> None:
    course = asyncio.run(seed_course(repos, max_attempts=None))
    asyncio.run(repos.enrollments.add(STUDENT_ID, course.course_id, NOW))
    for i in range(4):
        _submit(repos, course, _answers(course, mc=False, tf=False), now=NOW + i)
    _, info = asyncio.run(quiz_service.get_quiz(repos, STUDENT_ID, course.quiz_id))
    assert info.attempt_count == 4
    assert info.remaining_attempts is None
    assert info.can_attempt is True


def test_results_report_latest_attempt(repos: Repos, enrolled: SeededCourse) -> None:
    assert asyncio.run(quiz_service.get_quiz_results(repos, STUDENT_ID, enrolled.quiz_id)) is None

    _submit(repos, enrolled, _answers(enrolled, mc=False, tf=False))
    _submit(repos, enrolled, _answers(enrolled, mc=True, tf=False), now=NOW + 60)

    report = asyncio.run(quiz_service.get_quiz_results(repos, STUDENT_ID, enrolled.quiz_id))
    assert report is not None
    assert report.attempt.attempt_number == 2
    assert report.correct_answers == 1
    assert report.incorrect_answers == 1
    assert report.total_questions == 2
    assert report.time_taken == "1m 30s"
    assert report.passed is False


def test_all_attempts_newest_first(repos: Repos, enrolled: SeededCourse) -> None:
    _submit(repos, enrolled, _answers(enrolled, mc=False, tf=False))
    _submit(repos, enrolled, _answers(enrolled, mc=True, tf=True), now=NOW + 60)
    reports = asyncio.run(
        quiz_service.get_all_quiz_attempts(repos, STUDENT_ID, enrolled.quiz_id)
    )
    assert [r.attempt.attempt_number for r in reports] == [2, 1]


def test_attempts_are_per_user(repos: Repos, enrolled: SeededCourse) -> None:
    asyncio.run(repos.enrollments.add(OTHER_STUDENT_ID, enrolled.course_id, NOW))
    _submit(repos, enrolled, _answers(enrolled, mc=False, tf=False))
    other = _submit(
        repos, enrolled, _answers(enrolled, mc=True, tf=True), user_id=OTHER_STUDENT_ID
    )
    assert other.grade.attempt_number == 1


def test_list_user_quizzes_reports_best_attempt(repos: Repos, enrolled: SeededCourse) -> None:
    _submit(repos, enrolled, _answers(enrolled, mc=False, tf=True))
    _submit(repos, enrolled, _answers(enrolled, mc=True, tf=False), now=NOW + 60)

    summaries = asyncio.run(quiz_service.list_user_quizzes(repos, STUDENT_ID))
    assert len(summaries) == 1
    summary = summaries[0]
    assert summary.course_title == "Data Science 101"
    assert summary.lesson_title == "Checkpoint"
    assert summary.total_attempts == 2
    assert summary.question_count == 2
    assert summary.best_attempt is not None
    assert summary.best_attempt.score == 75
    assert summary.best_attempt.attempt_number == 1


def test_list_user_quizzes_skips_unenrolled_courses(repos: Repos, course: SeededCourse) -> None:
    assert asyncio.run(quiz_service.list_user_quizzes(repos, STUDENT_ID)) == []


def test_format_elapsed() -> None:
    assert format_elapsed(100, 225) == "2m 5s"
    assert format_elapsed(None, 225) == "N/A"
    assert format_elapsed(100, None) == "N/A"


# ---------------------------------------------------------------------------
# Authoring
# ---------------------------------------------------------------------------


def _tf(text: str = "Sky is blue") -> QuestionDraft:
    return QuestionDraft(
        question_text=text,
        question_type="true_false",
        options=(OptionDraft("True", is_correct=True), OptionDraft("False")),
    )


def test_create_quiz_applies_defaults(repos: Repos, course: SeededCourse) -> None:
    quiz = asyncio.run(
        quiz_service.create_quiz(
            repos, lesson_id=course.intro_lesson_id, title="  Warm-up ", questions=[_tf()]
        )
    )
    assert quiz.title == "Warm-up"
    assert quiz.passing_score == 50
    assert quiz.max_attempts == 3
    assert len(quiz.questions) == 1
    assert [o.order_num for o in quiz.questions[0].options] == [1, 2]


def test_create_quiz_unknown_lesson(repos: Repos) -> None:
    with pytest.raises(NotFoundError):
        asyncio.run(quiz_service.create_quiz(repos, lesson_id=404, title="x", questions=[]))


@pytest.mark.parametrize(
    "draft",
    [
        QuestionDraft(question_text="?", question_type="essay"),
        QuestionDraft(question_text="  ", question_type="short_answer"),
        QuestionDraft(question_text="?", question_type="short_answer", points=-1),
        QuestionDraft(
            question_text="?",
            question_type="multiple_choice",
            options=(OptionDraft("only", is_correct=True),),
        ),
        QuestionDraft(
            question_text="?",
            question_type="true_false",
            options=(OptionDraft("a"), OptionDraft("b"), OptionDraft("c", is_correct=True)),
        ),
        QuestionDraft(
            question_text="?",
            question_type="multiple_choice",
            options=(OptionDraft("a"), OptionDraft("b")),
        ),
    ],
)
def test_create_quiz_rejects_malformed_questions(
    repos: Repos, course: SeededCourse, draft: QuestionDraft
) -> None:
    with pytest.raises(ValidationError):
        asyncio.run(
            quiz_service.create_quiz(
                repos, lesson_id=course.intro_lesson_id, title="Bad", questions=[draft]
            )
        )


def test_delete_quiz_removes_attempts(repos: Repos, enrolled: SeededCourse) -> None:
    _submit(repos, enrolled, _answers(enrolled, mc=True, tf=True))
    asyncio.run(quiz_service.delete_quiz(repos, enrolled.quiz_id))
    assert asyncio.run(repos.quizzes.get_quiz(enrolled.quiz_id)) is None
    assert asyncio.run(repos.quizzes.list_attempts(STUDENT_ID, enrolled.quiz_id)) == []
    with pytest.raises(NotFoundError):
        asyncio.run(quiz_service.delete_quiz(repos, enrolled.quiz_id))


# ---------------------------------------------------------------------------
# Editing
# ---------------------------------------------------------------------------


def _keep(question, **changes) -> QuestionDraft:
    """Draft that keeps a stored question and all of its options."""
    return QuestionDraft(
        id=question.id,
        question_text=changes.get("question_text", question.question_text),
        question_type=question.question_type,
        points=changes.get("points", question.points),
        options=changes.get(
            "options",
            tuple(OptionDraft(o.option_text, o.is_correct, id=o.id) for o in question.options),
        ),
    )


def _update(repos: Repos, course: SeededCourse, **kwargs):
    return asyncio.run(quiz_service.update_quiz(repos, course.quiz_id, **kwargs))


def test_update_settings_only_keeps_questions(repos: Repos, course: SeededCourse) -> None:
    quiz = _update(repos, course, title=" Renamed ", time_limit=30)
    assert quiz.title == "Renamed"
    assert quiz.time_limit == 30
    assert quiz.passing_score == 50
    assert quiz.max_attempts == 2
    assert quiz.questions == course.quiz.questions


def test_update_merges_questions_by_id(repos: Repos, course: SeededCourse) -> None:
    mc = course.mc_question
    kept_options = tuple(
        OptionDraft(o.option_text.upper(), o.is_correct, id=o.id)
        for o in mc.options
        if o.is_correct or o.option_text == "numpy"
    )
    quiz = _update(
        repos,
        course,
        questions=[
            QuestionDraft(question_text="Name a plotting library", question_type="short_answer"),
            _keep(mc, points=2, options=kept_options + (OptionDraft("polars"),)),
        ],
    )

    new_q, edited = quiz.questions
    assert new_q.order_num == 1
    assert new_q.question_type == "short_answer"
    assert edited.id == mc.id
    assert edited.order_num == 2
    assert edited.points == 2
    assert [o.option_text for o in edited.options] == ["NUMPY", "PANDAS", "polars"]
    assert [o.id for o in edited.options][:2] == [o.id for o in kept_options]
    assert course.tf_question.id not in quiz.question_ids()


def test_update_unlinks_removed_options_and_drops_removed_questions(
    repos: Repos, enrolled: SeededCourse
) -> None:
    mc = enrolled.mc_question
    picked = wrong_option(mc)
    outcome = _submit(
        repos,
        enrolled,
        [
            AnswerSubmission(mc.id, picked),
            AnswerSubmission(enrolled.tf_question.id, correct_option(enrolled.tf_question)),
        ],
    )

    kept = tuple(
        OptionDraft(o.option_text, o.is_correct, id=o.id) for o in mc.options if o.id != picked
    )
    _update(repos, enrolled, questions=[_keep(mc, options=kept)])

    [answer] = asyncio.run(repos.quizzes.list_answers(outcome.grade.attempt.id))
    assert answer.question_id == mc.id
    assert answer.option_id is None
    assert answer.is_correct is False


@pytest.mark.parametrize(
    "make_drafts",
    [
        # Question id from somewhere else
        lambda c: [QuestionDraft(id=9999, question_text="?", question_type="short_answer")],
        # Same question twice
        lambda c: [_keep(c.mc_question), _keep(c.mc_question)],
        # Option moved from another question
        lambda c: [
            _keep(
                c.mc_question,
                options=(
                    OptionDraft("True", True, id=c.tf_question.options[0].id),
                    OptionDraft("b"),
                ),
            )
        ],
        # New question claiming an existing option
        lambda c: [
            QuestionDraft(
                question_text="?",
                question_type="true_false",
                options=(
                    OptionDraft("a", True, id=c.mc_question.options[0].id),
                    OptionDraft("b"),
                ),
            )
        ],
        # Edit that breaks the one-correct-option rule
        lambda c: [
            _keep(
                c.mc_question,
                options=tuple(
                    OptionDraft(o.option_text, False, id=o.id) for o in c.mc_question.options
                ),
            )
        ],
    ],
)
def test_update_rejects_bad_drafts_without_writing(
    repos: Repos, course: SeededCourse, make_drafts
) -> None:
    with pytest.raises(ValidationError):
        _update(repos, course, title="Changed", questions=make_drafts(course))
    assert asyncio.run(repos.quizzes.get_quiz(course.quiz_id)) == course.quiz


def test_update_blank_title_rejected(repos: Repos, course: SeededCourse) -> None:
    with pytest.raises(ValidationError):
        _update(repos, course, title="   ")


def test_update_unknown_quiz(repos: Repos) -> None:
    with pytest.raises(NotFoundError):
        asyncio.run(quiz_service.update_quiz(repos, 4242, title="x"))


def test_update_with_empty_question_list_clears_quiz(repos: Repos, course: SeededCourse) -> None:
    quiz = _update(repos, course, questions=[])
    assert quiz.questions == ()


# ---------------------------------------------------------------------------
# Lesson lookup and attempt review
# ---------------------------------------------------------------------------


def test_list_lesson_quizzes(repos: Repos, course: SeededCourse) -> None:
    [summary] = asyncio.run(quiz_service.list_lesson_quizzes(repos, course.quiz_lesson_id))
    assert summary.quiz_id == course.quiz_id
    assert summary.lesson_title == "Checkpoint"
    assert summary.course_title == "Data Science 101"
    assert summary.question_count == 2
    assert asyncio.run(quiz_service.list_lesson_quizzes(repos, course.intro_lesson_id)) == []


def test_list_lesson_quizzes_unknown_lesson(repos: Repos) -> None:
    with pytest.raises(NotFoundError):
        asyncio.run(quiz_service.list_lesson_quizzes(repos, 404))


def test_attempt_answers_belong_to_their_owner(repos: Repos, enrolled: SeededCourse) -> None:
    outcome = _submit(repos, enrolled, _answers(enrolled, mc=True, tf=False))
    attempt_id = outcome.grade.attempt.id

    answers = asyncio.run(
        quiz_service.get_attempt_answers(repos, STUDENT_ID, enrolled.quiz_id, attempt_id)
    )
    assert [a.is_correct for a in answers] == [True, False]

    with pytest.raises(NotFoundError):
        asyncio.run(
            quiz_service.get_attempt_answers(
                repos, OTHER_STUDENT_ID, enrolled.quiz_id, attempt_id
            )
        )
