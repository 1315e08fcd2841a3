"""Lesson completion endpoints.

Marking and unmarking respond with the enrollment's recomputed progress.
Reads come straight from the completion store.
"""

from __future__ import annotations

from fastapi import APIRouter, status
from pydantic import BaseModel, Field

from app.api.dependencies import CurrentUser, ReposDep, StaffUser
from app.models.enrollment import CompletedLesson
from app.services import completion_service

router = APIRouter(prefix="/v1/lesson-completions", tags=["lesson-completions"])


class MarkCompleteIn(BaseModel):
    lesson_id: int = Field(gt=0)


class ProgressOut(BaseModel):
    lesson_id: int
    progress: int


class CompletionCheckOut(BaseModel):
    lesson_id: int
    is_completed: bool


class CompletedLessonOut(BaseModel):
    user_id: int
    lesson_id: int
    completed_at: int
    title: str
    module_title: str
    course_id: int
    course_title: str

    @classmethod
    def from_domain(cls, c: CompletedLesson) -> CompletedLessonOut:
        return cls(
            user_id=c.user_id,
            lesson_id=c.lesson_id,
            completed_at=c.completed_at,
            title=c.title,
            module_title=c.module_title,
            course_id=c.course_id,
            course_title=c.course_title,
        )


@router.post("", response_model=ProgressOut, status_code=status.HTTP_200_OK)
async def mark_lesson_complete(
    body: MarkCompleteIn, principal: CurrentUser, repos: ReposDep
) -> ProgressOut:
    progress = await completion_service.mark_lesson_complete(
        repos, principal.user_id, body.lesson_id
    )
    return ProgressOut(lesson_id=body.lesson_id, progress=progress)


@router.delete("/{lesson_id}", response_model=ProgressOut)
async def unmark_lesson_complete(
    lesson_id: int, principal: CurrentUser, repos: ReposDep
) -> ProgressOut:
    progress = await completion_service.unmark_lesson_complete(
        repos, principal.user_id, lesson_id
    )
    return ProgressOut(lesson_id=lesson_id, progress=progress)


@router.get("", response_model=list[CompletedLessonOut])
async def list_completed_lessons(
    principal: CurrentUser, repos: ReposDep
) -> list[CompletedLessonOut]:
    rows = await repos.completions.list_completed(principal.user_id)
    return [CompletedLessonOut.from_domain(r) for r in rows]


@router.get("/check/{lesson_id}", response_model=CompletionCheckOut)
async def check_lesson_completion(
    lesson_id: int, principal: CurrentUser, repos: ReposDep
) -> CompletionCheckOut:
    done = await repos.completions.is_completed(principal.user_id, lesson_id)
    return CompletionCheckOut(lesson_id=lesson_id, is_completed=done)


@router.get("/courses/{course_id}", response_model=list[CompletedLessonOut])
async def list_completed_in_course(
    course_id: int, principal: CurrentUser, repos: ReposDep
) -> list[CompletedLessonOut]:
    rows = await repos.completions.list_completed_by_course(principal.user_id, course_id)
    return [CompletedLessonOut.from_domain(r) for r in rows]


@router.get("/courses/{course_id}/all", response_model=list[CompletedLessonOut])
async def list_course_completions(
    course_id: int, _staff: StaffUser, repos: ReposDep
) -> list[CompletedLessonOut]:
    rows = await repos.completions.list_all_completed_by_course(course_id)
    return [CompletedLessonOut.from_domain(r) for r in rows]
