"""
core/errors.py — Typed errors raised by the decision engine.

Every engine call validates before it mutates, so an error never leaves a
session or queue half-updated.  ``engine.interview`` turns these into
``StepResult`` values for the caller.
"""

from __future__ import annotations

from typing import Any, Optional


class AssessmentError(Exception):
    """Base class for all decision-engine errors."""

    code: str = "ASSESSMENT_ERROR"

    def __init__(
        self,
        message: str,
        *,
        code: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        return {
            "error": type(self).__name__,
            "code": self.code,
            "message": self.message,
            "details": self.details,
        }


class ValidationError(AssessmentError):
    """A response does not fit its question (shape, options, range, activity)."""

    code = "VALIDATION_ERROR"


class InvalidTransition(AssessmentError):
    """An illegal queue-item or diagnosis-phase change was requested."""

    code = "INVALID_TRANSITION"


class CollaboratorFailure(AssessmentError):
    """The diagnostic collaborator failed or returned an unusable payload."""

    code = "COLLABORATOR_FAILURE"


class UnknownRegion(AssessmentError):
    """A body region has no referral or region table entry."""

    code = "UNKNOWN_REGION"
