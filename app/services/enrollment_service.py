from __future__ import annotations

import logging

from app.core.clock import epoch_now
from app.core.errors import NotFoundError
from app.models.enrollment import Enrollment
from app.repos.registry import Repos

logger = logging.getLogger(__name__)


async def enroll(
    repos: Repos, user_id: int, course_id: int, *, now: int | None = None
) -> Enrollment:
    if await repos.catalog.get_course(course_id) is None:
        raise NotFoundError("Course not found")
    if now is None:
        now = epoch_now()

    # ConflictError from the repo on a second enroll
    enrollment = await repos.enrollments.add(user_id, course_id, now)
    logger.info(
        "Enrolled user=%d course=%d",
        user_id,
        course_id,
        extra={"user_id": user_id, "course_id": course_id},
    )
    return enrollment


async def unenroll(repos: Repos, user_id: int, course_id: int) -> bool:
    """Remove the enrollment; absent enrollments are not an error."""
    removed = await repos.enrollments.remove(user_id, course_id)
    if removed:
        logger.info(
            "Unenrolled user=%d course=%d",
            user_id,
            course_id,
            extra={"user_id": user_id, "course_id": course_id},
        )
    return removed


async def get_enrollment(repos: Repos, user_id: int, course_id: int) -> Enrollment:
    enrollment = await repos.enrollments.get_by_user_and_course(user_id, course_id)
    if enrollment is None:
        raise NotFoundError("Enrollment not found")
    return enrollment
