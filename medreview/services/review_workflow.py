"""
Medical review submissions and their transitions.

Each transition function validates the submission's current state and its
inputs, then returns a *patch*: a dict of Submission field names to new
values. Nothing is mutated here. The caller persists the patch through a
versioned store update, so a transition is applied either completely or not
at all.
"""
import math
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Iterable, Optional, Tuple

from medreview.core.exceptions import (
    InvalidDecision,
    InvalidRevenueEstimate,
    InvalidTransition,
    MissingScores,
)
from medreview.services.grading import Grade, ScoreRecord, calculate_grade
from medreview.services.review_states import (
    DECISION_STATUSES,
    INITIAL_STATUS,
    ReviewAction,
    ReviewStatus,
    coerce_status,
    require_legal,
)

Patch = Dict[str, Any]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class Submission:
    """One brand's medical-review case."""

    id: str
    brand_id: str
    status: ReviewStatus
    deal_id: Optional[str] = None
    revenue_estimate: Optional[Decimal] = None
    bd_notes: Optional[str] = None
    bd_approved_by: Optional[str] = None
    bd_approved_at: Optional[datetime] = None
    scores: Optional[ScoreRecord] = None
    overall_grade: Optional[Grade] = None  # cache of calculate_grade(scores)
    medical_notes: Optional[str] = None
    clinical_claims: Tuple[str, ...] = ()
    safety_concerns: Tuple[str, ...] = ()
    required_disclaimers: Tuple[str, ...] = ()
    medical_reviewer_id: Optional[str] = None
    medical_reviewed_at: Optional[datetime] = None
    decision_notes: Optional[str] = None
    final_decision_by: Optional[str] = None
    final_decision_at: Optional[datetime] = None
    report_generated_at: Optional[datetime] = None
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)
    version: int = 1

    @property
    def effective_grade(self) -> Optional[Grade]:
        """Grade recomputed from the scores; the source of truth for reads."""
        if self.scores is None:
            return None
        return calculate_grade(self.scores)


# ============= INPUT NORMALIZATION =============

def normalize_revenue(value: Any) -> Optional[Decimal]:
    """Coerce a monetary amount to Decimal; None passes through."""
    if value is None:
        return None
    if isinstance(value, bool):
        raise InvalidRevenueEstimate("Revenue estimate must be a number", {"value": repr(value)})
    if isinstance(value, float) and not math.isfinite(value):
        raise InvalidRevenueEstimate("Revenue estimate must be finite", {"value": repr(value)})
    try:
        amount = value if isinstance(value, Decimal) else Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise InvalidRevenueEstimate("Revenue estimate must be a number", {"value": repr(value)})
    if not amount.is_finite():
        raise InvalidRevenueEstimate("Revenue estimate must be finite", {"value": repr(value)})
    if amount < 0:
        raise InvalidRevenueEstimate("Revenue estimate cannot be negative", {"value": str(amount)})
    return amount


def _normalize_text(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = value.strip()
    return value or None


def _normalize_items(items: Optional[Iterable[str]]) -> Tuple[str, ...]:
    """Keep order, drop blank entries."""
    if not items:
        return ()
    return tuple(item.strip() for item in items if item and item.strip())


# ============= TRANSITIONS =============

def new_submission(
    submission_id: str,
    brand_id: str,
    deal_id: Optional[str] = None,
    revenue_estimate: Any = None,
    now: Optional[datetime] = None,
) -> Submission:
    """Build a fresh submission in the initial state."""
    now = now or utcnow()
    return Submission(
        id=submission_id,
        brand_id=brand_id,
        deal_id=deal_id,
        status=INITIAL_STATUS,
        revenue_estimate=normalize_revenue(revenue_estimate),
        created_at=now,
        updated_at=now,
    )


def approve_bd(
    submission: Submission,
    actor_id: Optional[str],
    revenue_estimate: Any = None,
    notes: Optional[str] = None,
    now: Optional[datetime] = None,
) -> Patch:
    """Business-development gate: move the submission into medical review."""
    require_legal(ReviewAction.APPROVE_BD, submission.status, submission.id)
    amount = normalize_revenue(revenue_estimate)
    now = now or utcnow()

    patch: Patch = {
        "status": ReviewStatus.IN_MEDICAL_REVIEW,
        "bd_approved_by": actor_id,
        "bd_approved_at": now,
        "bd_notes": _normalize_text(notes),
        "updated_at": now,
    }
    # An omitted estimate keeps whatever was captured at creation
    if amount is not None:
        patch["revenue_estimate"] = amount
    return patch


def submit_scores(
    submission: Submission,
    clinical: Any,
    safety: Any,
    transparency: Any,
    actor_id: Optional[str] = None,
    notes: Optional[str] = None,
    clinical_claims: Optional[Iterable[str]] = None,
    safety_concerns: Optional[Iterable[str]] = None,
    required_disclaimers: Optional[Iterable[str]] = None,
    now: Optional[datetime] = None,
) -> Patch:
    """
    Store a complete score record and the grade derived from it.

    Repeatable while in medical review; each call overwrites the previous
    record. The status does not change.
    """
    require_legal(ReviewAction.SUBMIT_SCORES, submission.status, submission.id)
    scores = ScoreRecord(clinical=clinical, safety=safety, transparency=transparency)
    now = now or utcnow()

    return {
        "scores": scores,
        "overall_grade": calculate_grade(scores),
        "medical_notes": _normalize_text(notes),
        "clinical_claims": _normalize_items(clinical_claims),
        "safety_concerns": _normalize_items(safety_concerns),
        "required_disclaimers": _normalize_items(required_disclaimers),
        "medical_reviewer_id": actor_id,
        "medical_reviewed_at": now,
        "updated_at": now,
    }


def final_decision(
    submission: Submission,
    decision: Any,
    actor_id: Optional[str] = None,
    notes: Optional[str] = None,
    now: Optional[datetime] = None,
) -> Patch:
    """Record approved / rejected / requires_revision for a scored submission."""
    require_legal(ReviewAction.FINAL_DECISION, submission.status, submission.id)

    try:
        outcome = coerce_status(decision)
    except ValueError:
        outcome = None
    if outcome not in DECISION_STATUSES:
        raise InvalidDecision(
            f"{decision!r} is not a final decision",
            {
                "submission_id": submission.id,
                "decision": str(decision),
                "allowed_decisions": sorted(s.value for s in DECISION_STATUSES),
            },
        )

    if submission.scores is None:
        raise MissingScores(
            "A final decision requires a score record",
            {"submission_id": submission.id},
        )

    now = now or utcnow()
    return {
        "status": outcome,
        "decision_notes": _normalize_text(notes),
        "final_decision_by": actor_id,
        "final_decision_at": now,
        "updated_at": now,
    }


def reopen(submission: Submission, now: Optional[datetime] = None) -> Patch:
    """Resume review after the brand worked through its IOTP list."""
    require_legal(ReviewAction.REOPEN, submission.status, submission.id)
    now = now or utcnow()
    return {
        "status": ReviewStatus.IN_MEDICAL_REVIEW,
        "updated_at": now,
    }


def update_revenue_estimate(
    submission: Submission,
    amount: Any = None,
    clear: bool = False,
    now: Optional[datetime] = None,
) -> Patch:
    """
    Explicitly set or clear the revenue estimate.

    This is the only operation allowed to clear an estimate, and only when
    asked to with ``clear=True``.
    """
    require_legal(ReviewAction.UPDATE_REVENUE_ESTIMATE, submission.status, submission.id)
    if clear and amount is not None:
        raise InvalidRevenueEstimate(
            "Pass either an amount or clear=True, not both",
            {"submission_id": submission.id},
        )
    if not clear and amount is None:
        raise InvalidRevenueEstimate(
            "Clearing the revenue estimate requires clear=True",
            {"submission_id": submission.id},
        )

    now = now or utcnow()
    return {
        "revenue_estimate": None if clear else normalize_revenue(amount),
        "updated_at": now,
    }


def mark_report_generated(submission: Submission, now: Optional[datetime] = None) -> Patch:
    require_legal(ReviewAction.MARK_REPORT_GENERATED, submission.status, submission.id)
    now = now or utcnow()
    return {
        "report_generated_at": now,
        "updated_at": now,
    }


def apply_patch(submission: Submission, patch: Patch) -> Submission:
    """Return a copy of ``submission`` with ``patch`` applied and version bumped."""
    return replace(submission, version=submission.version + 1, **patch)


def grade_drift(submission: Submission) -> Optional[Tuple[Optional[Grade], Optional[Grade]]]:
    """
    Compare the cached grade with the one derived from the scores.

    Returns ``(cached, expected)`` when they disagree, otherwise None.
    """
    expected = submission.effective_grade
    if submission.overall_grade != expected:
        return submission.overall_grade, expected
    return None
