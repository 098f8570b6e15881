"""
Review workflow exceptions.

Every error raised by the review core is a ReviewError subclass carrying a
stable ``kind`` so callers (HTTP layer, jobs, scripts) can branch on the kind
instead of the message. Validation always happens before any mutation, so a
raised ReviewError means nothing was written.
"""
from typing import Any, Dict, Optional


class ReviewError(Exception):
    """Base exception for all review workflow errors."""

    kind = "ReviewError"
    retryable = False

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error": self.kind,
            "message": self.message,
            "retryable": self.retryable,
            **self.details,
        }


class InvalidTransition(ReviewError):
    """Transition is not legal from the submission's current state."""

    kind = "InvalidTransition"


class InvalidScore(ReviewError):
    """A sub-score is not an integer in [1, 10]."""

    kind = "InvalidScore"


class InvalidRevenueEstimate(ReviewError):
    """Revenue estimate is negative, non-numeric, or an implicit clear."""

    kind = "InvalidRevenueEstimate"


class InvalidDecision(ReviewError):
    """Final decision value is not approved, rejected or requires_revision."""

    kind = "InvalidDecision"


class MissingScores(ReviewError):
    """Final decision attempted before any score record exists."""

    kind = "MissingScores"


class DuplicateActiveSubmission(ReviewError):
    """The brand already has a submission in an active state."""

    kind = "DuplicateActiveSubmission"


class ConcurrentModification(ReviewError):
    """
    Optimistic-concurrency conflict: the stored version moved on since the
    caller read it. Safe to reload and retry.
    """

    kind = "ConcurrentModification"
    retryable = True


class NotFound(ReviewError):
    """Referenced submission, brand or deal does not exist."""

    kind = "NotFound"
