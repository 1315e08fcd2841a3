"""Enrollment progress, derived from lesson completion facts.

Progress is never incremented or decremented in place: every event
recomputes it from scratch as

    progress = round_half_up(completed / total * 100), capped at 100

so the stored value cannot drift from the facts even when events race.
"""

from __future__ import annotations

import logging

from app.core.clock import epoch_now
from app.core.errors import NotFoundError
from app.core.metrics import PROGRESS_RECOMPUTES
from app.repos.registry import Repos

logger = logging.getLogger(__name__)


def round_half_up_percent(numerator: int, denominator: int) -> int:
    """``round(numerator / denominator * 100)`` with .5 rounding up.

    Integer arithmetic, so 1/8 gives 13 (12.5 up) rather than the 12 that
    Python's banker's rounding would produce.
    """
    if denominator <= 0:
        return 0
    return (200 * numerator + denominator) // (2 * denominator)


def compute_progress(completed: int, total: int) -> int:
    if total <= 0:
        return 0
    return min(100, round_half_up_percent(completed, total))


async def update_progress(
    repos: Repos, enrollment_id: int, *, now: int | None = None
) -> int:
    """Recompute and persist progress for one enrollment; return the value.

    ``completed_at`` is stamped the first time the value reaches 100 and is
    left untouched by any later recompute.
    """
    enrollment = await repos.enrollments.get_by_id(enrollment_id)
    if enrollment is None:
        logger.warning("Progress recompute for unknown enrollment=%d", enrollment_id)
        raise NotFoundError("Enrollment not found")

    total = await repos.catalog.count_lessons_in_course(enrollment.course_id)
    completed = await repos.completions.count_completed_in_course(
        enrollment.user_id, enrollment.course_id
    )
    progress = compute_progress(completed, total)

    if now is None:
        now = epoch_now()
    await repos.enrollments.set_progress(enrollment_id, progress, now)
    PROGRESS_RECOMPUTES.inc()

    logger.info(
        "Progress updated enrollment=%d course=%d %d/%d -> %d%%",
        enrollment_id,
        enrollment.course_id,
        completed,
        total,
        progress,
        extra={"enrollment_id": enrollment_id, "course_id": enrollment.course_id},
    )
    return progress
