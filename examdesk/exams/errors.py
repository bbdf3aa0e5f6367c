"""Exam workflow exceptions.

Each error is an ``HTTPException`` so services can raise it directly and the
handlers in ``examdesk.core.errors`` render a consistent body.
"""

from typing import Any, Optional

from fastapi import HTTPException


class ExamError(HTTPException):
    status_code = 500
    code = "EXAM_ERROR"

    def __init__(self, message: str, details: Any = None, code: Optional[str] = None):
        if code:
            self.code = code
        self.message = message
        self.details = details
        super().__init__(
            status_code=type(self).status_code,
            detail={"code": self.code, "message": message, "details": details},
        )


class ExamNotFound(ExamError):
    status_code = 404
    code = "EXAM_NOT_FOUND"


class ResultsNotFound(ExamError):
    status_code = 404
    code = "RESULTS_NOT_FOUND"


class ExamForbidden(ExamError):
    """Availability denied. ``code`` is the denial reason."""

    status_code = 403
    code = "EXAM_FORBIDDEN"


class AnswerValidationError(ExamError):
    status_code = 422
    code = "INVALID_ANSWERS"


class AttemptConflict(ExamError):
    """Another submission recorded an attempt between our read and write."""

    status_code = 409
    code = "ATTEMPT_CONFLICT"


class TransientError(ExamError):
    status_code = 503
    code = "TRANSIENT_FAILURE"
