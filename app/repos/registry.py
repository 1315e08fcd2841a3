"""Repository bundles.

Services take one ``Repos`` value instead of five constructor arguments.
With DATABASE_URL set, a bundle of Pg repos is built per request around
the request's session so every write in a request shares one transaction.
Without it, the module-level in-memory bundle is shared process-wide.
"""

from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy.ext.asyncio import AsyncSession

from app.repos.assignment_repo import AssignmentRepo, InMemoryAssignmentRepo
from app.repos.catalog_repo import CatalogRepo, InMemoryCatalogRepo
from app.repos.completion_repo import CompletionRepo, InMemoryCompletionRepo
from app.repos.enrollment_repo import EnrollmentRepo, InMemoryEnrollmentRepo
from app.repos.pg_assignment_repo import PgAssignmentRepo
from app.repos.pg_catalog_repo import PgCatalogRepo
from app.repos.pg_completion_repo import PgCompletionRepo
from app.repos.pg_enrollment_repo import PgEnrollmentRepo
from app.repos.pg_quiz_repo import PgQuizRepo
from app.repos.quiz_repo import InMemoryQuizRepo, QuizRepo


@dataclass(frozen=True, slots=True)
class Repos:
    catalog: CatalogRepo
    enrollments: EnrollmentRepo
    completions: CompletionRepo
    quizzes: QuizRepo
    assignments: AssignmentRepo


def build_memory_repos() -> Repos:
    catalog = InMemoryCatalogRepo()
    return Repos(
        catalog=catalog,
        enrollments=InMemoryEnrollmentRepo(catalog),
        completions=InMemoryCompletionRepo(catalog),
        quizzes=InMemoryQuizRepo(catalog),
        assignments=InMemoryAssignmentRepo(catalog),
    )


def build_pg_repos(session: AsyncSession) -> Repos:
    return Repos(
        catalog=PgCatalogRepo(session),
        enrollments=PgEnrollmentRepo(session),
        completions=PgCompletionRepo(session),
        quizzes=PgQuizRepo(session),
        assignments=PgAssignmentRepo(session),
    )


def clear_memory_repos(repos: Repos) -> None:
    """Reset every in-memory store in the bundle (tests, dev reseed)."""
    for repo in (
        repos.catalog,
        repos.enrollments,
        repos.completions,
        repos.quizzes,
        repos.assignments,
    ):
        repo.clear()  # type: ignore[attr-defined]


memory_repos = build_memory_repos()
