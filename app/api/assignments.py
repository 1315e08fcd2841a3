"""Assignment endpoints: learner submission (multipart form), staff grading."""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, File, Form, UploadFile, status
from pydantic import BaseModel, Field

from app.api.dependencies import CurrentUser, MediaStorageDep, ReposDep, StaffUser
from app.api.ratelimit import require_rate_limit
from app.core.config import SETTINGS
from app.models.assignment import Submission
from app.services import assignment_service
from app.services.assignment_service import UploadedFile
from app.services.rate_limiter import UPLOAD_LIMIT

router = APIRouter(prefix="/v1/assignments", tags=["assignments"])


class SubmissionOut(BaseModel):
    id: int
    assignment_id: int
    user_id: int
    submission_url: str
    submitted_at: int
    grade: int | None
    feedback: str | None
    graded_at: int | None = None
    progress: int | None = None

    @classmethod
    def from_domain(cls, s: Submission, progress: int | None = None) -> SubmissionOut:
        return cls(
            id=s.id,
            assignment_id=s.assignment_id,
            user_id=s.user_id,
            submission_url=s.submission_url,
            submitted_at=s.submitted_at,
            grade=s.grade,
            feedback=s.feedback,
            graded_at=s.graded_at,
            progress=progress,
        )


class WithdrawOut(BaseModel):
    progress: int | None


class GradeIn(BaseModel):
    grade: int = Field(ge=0, le=100)
    feedback: str | None = None


@router.post(
    "/{assignment_id}/submit",
    response_model=SubmissionOut,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_rate_limit(UPLOAD_LIMIT))],
)
async def submit_assignment(
    assignment_id: int,
    principal: CurrentUser,
    repos: ReposDep,
    storage: MediaStorageDep,
    file: Annotated[UploadFile | None, File()] = None,
    submission_url: Annotated[str | None, Form()] = None,
    content: Annotated[str | None, Form()] = None,
) -> SubmissionOut:
    uploaded = None
    if file is not None:
        # One byte past the limit is enough for storage to reject it
        data = await file.read(SETTINGS.max_upload_bytes + 1)
        uploaded = UploadedFile(filename=file.filename or "upload.bin", data=data)

    outcome = await assignment_service.submit_assignment(
        repos,
        storage,
        principal.user_id,
        assignment_id,
        file=uploaded,
        submission_url=submission_url,
        content=content,
    )
    return SubmissionOut.from_domain(outcome.submission, outcome.progress)


@router.delete("/{assignment_id}/submission", response_model=WithdrawOut)
async def withdraw_submission(
    assignment_id: int,
    principal: CurrentUser,
    repos: ReposDep,
    storage: MediaStorageDep,
) -> WithdrawOut:
    progress = await assignment_service.withdraw_submission(
        repos, storage, principal.user_id, assignment_id
    )
    return WithdrawOut(progress=progress)


@router.get("/{assignment_id}/submissions", response_model=list[SubmissionOut])
async def list_submissions(
    assignment_id: int, _staff: StaffUser, repos: ReposDep
) -> list[SubmissionOut]:
    submissions = await assignment_service.list_submissions(repos, assignment_id)
    return [SubmissionOut.from_domain(s) for s in submissions]


@router.put("/{assignment_id}/submissions/{user_id}/grade", response_model=SubmissionOut)
async def grade_submission(
    assignment_id: int, user_id: int, body: GradeIn, staff: StaffUser, repos: ReposDep
) -> SubmissionOut:
    submission = await assignment_service.grade_submission(
        repos,
        assignment_id,
        user_id,
        grade=body.grade,
        feedback=body.feedback,
        grader_id=staff.user_id,
    )
    return SubmissionOut.from_domain(submission)
