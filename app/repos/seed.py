"""Sample catalog for local development against the in-memory repos."""

from __future__ import annotations

import datetime
import logging

from app.models.quiz import OptionDraft, QuestionDraft
from app.repos.registry import Repos

logger = logging.getLogger(__name__)


async def seed_sample_course(repos: Repos) -> int:
    """Create one course with a text lesson, a quiz and an assignment.

    Returns the course id.  Only call on empty repos.
    """
    course = await repos.catalog.add_course(title="Introduction to Python", instructor_id=1)
    basics = await repos.catalog.add_module(course_id=course.id, title="Basics", order_num=1)

    await repos.catalog.add_lesson(
        module_id=basics.id, title="Variables", content_type="text", order_num=1
    )
    quiz_lesson = await repos.catalog.add_lesson(
        module_id=basics.id, title="Check your understanding", content_type="quiz", order_num=2
    )
    homework = await repos.catalog.add_lesson(
        module_id=basics.id, title="Homework", content_type="assignment", order_num=3
    )

    await repos.quizzes.create_quiz(
        lesson_id=quiz_lesson.id,
        title="Basics quiz",
        passing_score=50,
        time_limit=10,
        max_attempts=3,
        questions=[
            QuestionDraft(
                question_text="Which keyword defines a function?",
                question_type="multiple_choice",
                options=(
                    OptionDraft("def", is_correct=True),
                    OptionDraft("func"),
                    OptionDraft("lambda"),
                ),
            ),
            QuestionDraft(
                question_text="Python lists are mutable.",
                question_type="true_false",
                options=(OptionDraft("True", is_correct=True), OptionDraft("False")),
            ),
        ],
    )

    deadline = datetime.datetime.now(datetime.UTC) + datetime.timedelta(days=14)
    await repos.assignments.add_assignment(
        lesson_id=homework.id,
        title="Write a calculator",
        deadline=int(deadline.timestamp()),
        description="Submit a link to your repository or upload a zip.",
    )

    logger.info("Seeded sample course id=%d", course.id)
    return course.id
