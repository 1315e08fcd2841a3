"""Lesson completion coordination.

Every path that can complete a lesson ends up here: the explicit
mark/unmark endpoints, a quiz submission, an assignment submission or
withdrawal.  Each one writes (or removes) the completion fact first and
only then recomputes progress, so the recompute always sees the write.
"""

from __future__ import annotations

import logging

from app.core.clock import epoch_now
from app.core.errors import NotFoundError
from app.core.metrics import LESSON_COMPLETION_CHANGES
from app.models.enrollment import Enrollment
from app.repos.registry import Repos
from app.services.progress_service import update_progress

logger = logging.getLogger(__name__)


async def _enrollment_for_lesson(repos: Repos, user_id: int, lesson_id: int) -> Enrollment:
    enrollment = await repos.enrollments.get_by_user_and_lesson(user_id, lesson_id)
    if enrollment is None:
        logger.warning(
            "No enrollment owns lesson=%d for user=%d",
            lesson_id,
            user_id,
            extra={"user_id": user_id, "lesson_id": lesson_id},
        )
        raise NotFoundError("Enrollment not found")
    return enrollment


async def _write_fact(repos: Repos, user_id: int, lesson_id: int, now: int) -> None:
    created = await repos.completions.mark_complete(user_id, lesson_id, now)
    LESSON_COMPLETION_CHANGES.labels(action="marked" if created else "noop").inc()
    if created:
        logger.info(
            "Lesson completed user=%d lesson=%d",
            user_id,
            lesson_id,
            extra={"user_id": user_id, "lesson_id": lesson_id},
        )


async def _erase_fact(repos: Repos, user_id: int, lesson_id: int) -> None:
    removed = await repos.completions.unmark_complete(user_id, lesson_id)
    LESSON_COMPLETION_CHANGES.labels(action="unmarked" if removed else "noop").inc()
    if removed:
        logger.info(
            "Lesson completion removed user=%d lesson=%d",
            user_id,
            lesson_id,
            extra={"user_id": user_id, "lesson_id": lesson_id},
        )


async def complete_for(
    repos: Repos, enrollment: Enrollment, lesson_id: int, *, now: int
) -> int:
    """Mark a lesson complete for an enrolled learner; return new progress."""
    await _write_fact(repos, enrollment.user_id, lesson_id, now)
    return await update_progress(repos, enrollment.id, now=now)


async def uncomplete_for(
    repos: Repos, enrollment: Enrollment, lesson_id: int, *, now: int
) -> int:
    await _erase_fact(repos, enrollment.user_id, lesson_id)
    return await update_progress(repos, enrollment.id, now=now)


async def record_completion(
    repos: Repos,
    user_id: int,
    lesson_id: int,
    enrollment: Enrollment | None,
    *,
    now: int | None = None,
) -> int | None:
    """Write the completion fact, then recompute progress if enrolled.

    Marking an already-completed lesson is a no-op for the fact (the
    original timestamp stays) but progress is still recomputed.
    Returns the new progress, or None when there is no enrollment.
    """
    now = now if now is not None else epoch_now()
    if enrollment is not None:
        return await complete_for(repos, enrollment, lesson_id, now=now)
    await _write_fact(repos, user_id, lesson_id, now)
    return None


async def remove_completion(
    repos: Repos,
    user_id: int,
    lesson_id: int,
    enrollment: Enrollment | None,
    *,
    now: int | None = None,
) -> int | None:
    now = now if now is not None else epoch_now()
    if enrollment is not None:
        return await uncomplete_for(repos, enrollment, lesson_id, now=now)
    await _erase_fact(repos, user_id, lesson_id)
    return None


async def mark_lesson_complete(
    repos: Repos, user_id: int, lesson_id: int, *, now: int | None = None
) -> int:
    enrollment = await _enrollment_for_lesson(repos, user_id, lesson_id)
    return await complete_for(
        repos, enrollment, lesson_id, now=now if now is not None else epoch_now()
    )


async def unmark_lesson_complete(
    repos: Repos, user_id: int, lesson_id: int, *, now: int | None = None
) -> int:
    enrollment = await _enrollment_for_lesson(repos, user_id, lesson_id)
    return await uncomplete_for(
        repos, enrollment, lesson_id, now=now if now is not None else epoch_now()
    )
