"""Enrollment endpoints.

  POST   /v1/courses/{course_id}/enroll    -> 201, 409 when already enrolled
  DELETE /v1/courses/{course_id}/enroll    -> 204, also when not enrolled
  GET    /v1/courses/{course_id}/progress  -> the caller's enrollment
"""

from __future__ import annotations

from fastapi import APIRouter, Response, status
from pydantic import BaseModel

from app.api.dependencies import CurrentUser, ReposDep
from app.models.enrollment import Enrollment
from app.services import enrollment_service

router = APIRouter(prefix="/v1/courses", tags=["enrollments"])


class EnrollmentOut(BaseModel):
    id: int
    user_id: int
    course_id: int
    progress: int
    enrolled_at: int
    completed_at: int | None

    @classmethod
    def from_domain(cls, e: Enrollment) -> EnrollmentOut:
        return cls(
            id=e.id,
            user_id=e.user_id,
            course_id=e.course_id,
            progress=e.progress,
            enrolled_at=e.enrolled_at,
            completed_at=e.completed_at,
        )


@router.post(
    "/{course_id}/enroll",
    response_model=EnrollmentOut,
    status_code=status.HTTP_201_CREATED,
)
async def enroll_in_course(
    course_id: int, principal: CurrentUser, repos: ReposDep
) -> EnrollmentOut:
    enrollment = await enrollment_service.enroll(repos, principal.user_id, course_id)
    return EnrollmentOut.from_domain(enrollment)


@router.delete("/{course_id}/enroll", status_code=status.HTTP_204_NO_CONTENT)
async def unenroll_from_course(
    course_id: int, principal: CurrentUser, repos: ReposDep
) -> Response:
    await enrollment_service.unenroll(repos, principal.user_id, course_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/{course_id}/progress", response_model=EnrollmentOut)
async def get_course_progress(
    course_id: int, principal: CurrentUser, repos: ReposDep
) -> EnrollmentOut:
    enrollment = await enrollment_service.get_enrollment(
        repos, principal.user_id, course_id
    )
    return EnrollmentOut.from_domain(enrollment)
