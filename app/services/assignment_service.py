"""Assignment submission, withdrawal and grading.

A submission is one of: an uploaded file (stored in media storage, the
stored URL is kept), a link, or inline text.  Submitting completes the
assignment's lesson; withdrawing un-completes it.  Both recompute
progress when the learner is enrolled in the owning course.  Staff list
and grade submissions; grading never touches completion or progress.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from app.core.clock import epoch_now
from app.core.errors import ExternalServiceError, NotFoundError, PolicyError, ValidationError
from app.core.metrics import MEDIA_STORAGE_FAILURES
from app.models.assignment import Assignment, Submission
from app.repos.registry import Repos
from app.services import completion_service
from app.services.media_storage import MediaStorage, public_id_from_url

logger = logging.getLogger(__name__)

_EMPTY_SUBMISSION = (
    "At least one of file upload, submission URL, or content must be provided"
)


@dataclass(frozen=True, slots=True)
class UploadedFile:
    filename: str
    data: bytes


@dataclass(frozen=True, slots=True)
class SubmitOutcome:
    submission: Submission
    progress: int | None  # None when not enrolled


async def _load_assignment(repos: Repos, assignment_id: int) -> Assignment:
    assignment = await repos.assignments.get_assignment(assignment_id)
    if assignment is None:
        raise NotFoundError("Assignment not found")
    return assignment


def _clean(value: str | None) -> str | None:
    if value is None:
        return None
    value = value.strip()
    return value or None


async def submit_assignment(
    repos: Repos,
    storage: MediaStorage,
    user_id: int,
    assignment_id: int,
    *,
    file: UploadedFile | None = None,
    submission_url: str | None = None,
    content: str | None = None,
    now: int | None = None,
) -> SubmitOutcome:
    now = now if now is not None else epoch_now()
    assignment = await _load_assignment(repos, assignment_id)

    # A link wins over inline text when both are sent
    text = _clean(submission_url) or _clean(content)
    if file is not None and not file.data:
        file = None
    if file is None and text is None:
        logger.warning(
            "Empty assignment submission assignment=%d user=%d",
            assignment_id,
            user_id,
            extra={"user_id": user_id},
        )
        raise ValidationError(_EMPTY_SUBMISSION)

    if assignment.deadline < now:
        logger.warning(
            "Late assignment submission assignment=%d user=%d",
            assignment_id,
            user_id,
            extra={"user_id": user_id},
        )
        raise PolicyError("Assignment deadline has passed")

    if file is not None:
        try:
            stored = await storage.upload(
                file.data,
                file.filename,
                public_id=f"assignment_{assignment_id}_user_{user_id}_{now}",
            )
        except ExternalServiceError:
            MEDIA_STORAGE_FAILURES.labels(operation="upload").inc()
            raise
        url = stored.url
    elif text is not None:
        url = text
    else:
        raise ValidationError(_EMPTY_SUBMISSION)

    submission = await repos.assignments.upsert_submission(
        assignment_id, user_id, url, now
    )

    enrollment = await repos.enrollments.get_by_user_and_course(
        user_id, assignment.course_id
    )
    progress = await completion_service.record_completion(
        repos, user_id, assignment.lesson_id, enrollment, now=now
    )
    logger.info(
        "Assignment submitted assignment=%d user=%d",
        assignment_id,
        user_id,
        extra={"user_id": user_id, "lesson_id": assignment.lesson_id},
    )
    return SubmitOutcome(submission=submission, progress=progress)


async def withdraw_submission(
    repos: Repos,
    storage: MediaStorage,
    user_id: int,
    assignment_id: int,
    *,
    now: int | None = None,
) -> int | None:
    """Delete the learner's submission; return recomputed progress or None.

    The stored file is removed last and only on a best-effort basis: a
    failed media delete is logged and counted, never surfaced.
    """
    now = now if now is not None else epoch_now()
    assignment = await _load_assignment(repos, assignment_id)

    if assignment.deadline < now:
        logger.warning(
            "Withdrawal after deadline assignment=%d user=%d",
            assignment_id,
            user_id,
            extra={"user_id": user_id},
        )
        raise PolicyError("Cannot delete submission after deadline")

    submission = await repos.assignments.delete_submission(assignment_id, user_id)
    if submission is None:
        raise NotFoundError("No submission found to delete")

    enrollment = await repos.enrollments.get_by_user_and_course(
        user_id, assignment.course_id
    )
    progress = await completion_service.remove_completion(
        repos, user_id, assignment.lesson_id, enrollment, now=now
    )

    if storage.owns(submission.submission_url):
        public_id = public_id_from_url(submission.submission_url)
        if public_id is not None:
            try:
                await storage.delete(public_id)
            except ExternalServiceError as exc:
                MEDIA_STORAGE_FAILURES.labels(operation="delete").inc()
                logger.warning(
                    "Stored file not removed public_id=%s: %s", public_id, exc.message
                )

    logger.info(
        "Assignment submission withdrawn assignment=%d user=%d",
        assignment_id,
        user_id,
        extra={"user_id": user_id, "lesson_id": assignment.lesson_id},
    )
    return progress


async def list_submissions(repos: Repos, assignment_id: int) -> list[Submission]:
    """Every learner's submission for an assignment, newest first."""
    await _load_assignment(repos, assignment_id)
    return await repos.assignments.list_submissions(assignment_id)


async def grade_submission(
    repos: Repos,
    assignment_id: int,
    user_id: int,
    *,
    grade: int,
    feedback: str | None = None,
    grader_id: int | None = None,
    now: int | None = None,
) -> Submission:
    """Record a grade (0-100) and optional feedback on a learner's submission.

    Regrading overwrites the previous grade.  A later resubmission by the
    learner keeps the grade until it is graded again.
    """
    now = now if now is not None else epoch_now()
    await _load_assignment(repos, assignment_id)
    if not 0 <= grade <= 100:
        raise ValidationError("Grade must be between 0 and 100")

    if await repos.assignments.get_submission(assignment_id, user_id) is None:
        logger.warning(
            "Grade for missing submission assignment=%d user=%d",
            assignment_id,
            user_id,
            extra={"user_id": user_id},
        )
        raise NotFoundError("Submission not found")

    graded = await repos.assignments.grade_submission(
        assignment_id, user_id, grade=grade, feedback=_clean(feedback), now=now
    )
    if graded is None:
        # Withdrawn between the lookup and the update
        raise NotFoundError("Submission not found")

    logger.info(
        "Submission graded assignment=%d user=%d grade=%d grader=%s",
        assignment_id,
        user_id,
        grade,
        grader_id,
        extra={"user_id": user_id},
    )
    return graded
