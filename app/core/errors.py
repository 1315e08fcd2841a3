"""Domain error taxonomy.

Services raise these; the API layer maps them onto HTTP responses in one
place (app/api/errors.py).  Each class carries the status code it maps to,
so adding a new error never means touching every router.

  NotFoundError         404  quiz / lesson / enrollment / submission missing
  ForbiddenError        403  caller is not enrolled in the owning course
  PolicyError           403  attempts exhausted, deadline passed
  ValidationError       422  malformed payload, rejected before any write
  ConflictError         409  duplicate enrollment, concurrent double submit
  ExternalServiceError  4xx/5xx  media storage failed on the critical path
"""

from __future__ import annotations


class LmsError(Exception):
    status_code = 500
    code = "LMS_ERROR"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class NotFoundError(LmsError):
    status_code = 404
    code = "NOT_FOUND"


class ForbiddenError(LmsError):
    status_code = 403
    code = "FORBIDDEN"


class PolicyError(LmsError):
    status_code = 403
    code = "POLICY_VIOLATION"


class ValidationError(LmsError):
    status_code = 422
    code = "VALIDATION_ERROR"


class ConflictError(LmsError):
    status_code = 409
    code = "CONFLICT"


class ExternalServiceError(LmsError):
    """A third-party call on the critical path failed.

    ``code`` and ``status_code`` are per-instance so the provider's own
    classification (file too large, rejected upload) reaches the caller.
    """

    def __init__(
        self,
        message: str,
        *,
        code: str = "UPLOAD_ERROR",
        status_code: int = 502,
        provider_status: int | None = None,
    ) -> None:
        super().__init__(message)
        self.code = code
        self.status_code = status_code
        self.provider_status = provider_status
