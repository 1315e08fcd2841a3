from __future__ import annotations

import asyncio
import datetime
import sys
from dataclasses import dataclass
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from app.api.ratelimit import rate_limiter
from app.main import app
from app.models.quiz import OptionDraft, QuestionDraft, Quiz
from app.repos.registry import Repos, clear_memory_repos, memory_repos
from app.services import media_storage as media_module
from app.services import token_service
from app.services.media_storage import InMemoryMediaStorage
from app.services.rate_limiter import InMemoryRateLimiter

# Ensure repo root is on sys.path so `import app` works under pytest.
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

STUDENT_ID = 7
OTHER_STUDENT_ID = 8
INSTRUCTOR_ID = 2

NOW = 1_700_000_000


@pytest.fixture(autouse=True)
def reset_repos() -> None:
    """Empty every in-memory table between tests."""
    clear_memory_repos(memory_repos)


@pytest.fixture(autouse=True)
def reset_rate_limiter() -> None:
    """Clear rate limit buckets between tests so limits don't bleed."""
    if isinstance(rate_limiter, InMemoryRateLimiter):
        rate_limiter.clear()


@pytest.fixture(autouse=True)
def reset_media_storage() -> None:
    if isinstance(media_module.media_storage, InMemoryMediaStorage):
        media_module.media_storage.clear()


@pytest.fixture
def client() -> TestClient:
    return TestClient(app)


@pytest.fixture
def repos() -> Repos:
    return memory_repos


@pytest.fixture
def media() -> InMemoryMediaStorage:
    storage = media_module.media_storage
    assert isinstance(storage, InMemoryMediaStorage)
    return storage


def mint_token(
    user_id: int = STUDENT_ID,
    roles: list[str] | None = None,
) -> str:
    """Create a valid ES256 JWT for testing."""
    return token_service.create_access_token(sub=user_id, roles=roles)


def auth(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def student_token() -> str:
    return mint_token()


@pytest.fixture
def instructor_token() -> str:
    return mint_token(user_id=INSTRUCTOR_ID, roles=["instructor"])


# ---------------------------------------------------------------------------
# Catalog fixture
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class SeededCourse:
    """Two modules, four lessons, one quiz lesson, one assignment lesson.

    The quiz allows two attempts: a 1-point multiple-choice question and
    a 3-point true/false question.
    """

    course_id: int
    intro_lesson_id: int
    quiz_lesson_id: int
    reading_lesson_id: int
    assignment_lesson_id: int
    quiz: Quiz
    assignment_id: int

    @property
    def lesson_ids(self) -> tuple[int, ...]:
        return (
            self.intro_lesson_id,
            self.quiz_lesson_id,
            self.reading_lesson_id,
            self.assignment_lesson_id,
        )

    @property
    def quiz_id(self) -> int:
        return self.quiz.id

    @property
    def mc_question(self):
        return self.quiz.questions[0]

    @property
    def tf_question(self):
        return self.quiz.questions[1]


def correct_option(question) -> int:
    return next(o.id for o in question.options if o.is_correct)


def wrong_option(question) -> int:
    return next(o.id for o in question.options if not o.is_correct)


async def seed_course(
    repos: Repos,
    *,
    max_attempts: int | None = 2,
    deadline: int | None = None,
) -> SeededCourse:
    if deadline is None:
        future = datetime.datetime.now(datetime.UTC) + datetime.timedelta(days=7)
        deadline = int(future.timestamp())

    course = await repos.catalog.add_course(title="Data Science 101", instructor_id=INSTRUCTOR_ID)
    m1 = await repos.catalog.add_module(course_id=course.id, title="Getting started", order_num=1)
    m2 = await repos.catalog.add_module(course_id=course.id, title="Going further", order_num=2)

    intro = await repos.catalog.add_lesson(module_id=m1.id, title="Intro", order_num=1)
    quiz_lesson = await repos.catalog.add_lesson(
        module_id=m1.id, title="Checkpoint", content_type="quiz", order_num=2
    )
    reading = await repos.catalog.add_lesson(module_id=m2.id, title="Reading", order_num=1)
    homework = await repos.catalog.add_lesson(
        module_id=m2.id, title="Homework", content_type="assignment", order_num=2
    )

    quiz = await repos.quizzes.create_quiz(
        lesson_id=quiz_lesson.id,
        title="Checkpoint quiz",
        passing_score=50,
        time_limit=15,
        max_attempts=max_attempts,
        questions=[
            QuestionDraft(
                question_text="Which library provides DataFrames?",
                question_type="multiple_choice",
                points=1,
                options=(
                    OptionDraft("numpy"),
                    OptionDraft("pandas", is_correct=True),
                    OptionDraft("requests"),
                ),
            ),
            QuestionDraft(
                question_text="A Series is one-dimensional.",
                question_type="true_false",
                points=3,
                options=(OptionDraft("True", is_correct=True), OptionDraft("False")),
            ),
        ],
    )
    assignment = await repos.assignments.add_assignment(
        lesson_id=homework.id, title="Clean a dataset", deadline=deadline
    )
    return SeededCourse(
        course_id=course.id,
        intro_lesson_id=intro.id,
        quiz_lesson_id=quiz_lesson.id,
        reading_lesson_id=reading.id,
        assignment_lesson_id=homework.id,
        quiz=quiz,
        assignment_id=assignment.id,
    )


@pytest.fixture
def course(repos: Repos) -> SeededCourse:
    return asyncio.run(seed_course(repos))


@pytest.fixture
def enrolled(repos: Repos, course: SeededCourse) -> SeededCourse:
    """The seeded course with STUDENT_ID enrolled."""
    asyncio.run(repos.enrollments.add(STUDENT_ID, course.course_id, NOW))
    return course
