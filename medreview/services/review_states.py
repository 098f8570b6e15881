"""
Medical review states and the legal-transition table.

    pending_bd_approval --approve_bd--> in_medical_review
    in_medical_review   --submit_scores--> in_medical_review
    in_medical_review   --final_decision--> approved | rejected | requires_revision
    requires_revision   --reopen--> in_medical_review

approved and rejected have no outgoing transition.
"""
import enum
from typing import Dict, FrozenSet, Optional

from medreview.core.exceptions import InvalidTransition


class ReviewStatus(str, enum.Enum):
    PENDING_BD_APPROVAL = "pending_bd_approval"
    IN_MEDICAL_REVIEW = "in_medical_review"
    APPROVED = "approved"
    REJECTED = "rejected"
    REQUIRES_REVISION = "requires_revision"


class ReviewAction(str, enum.Enum):
    APPROVE_BD = "approve_bd"
    SUBMIT_SCORES = "submit_scores"
    FINAL_DECISION = "final_decision"
    REOPEN = "reopen"
    UPDATE_REVENUE_ESTIMATE = "update_revenue_estimate"
    MARK_REPORT_GENERATED = "mark_report_generated"


INITIAL_STATUS = ReviewStatus.PENDING_BD_APPROVAL

# A brand may hold at most one submission in these states
ACTIVE_STATUSES: FrozenSet[ReviewStatus] = frozenset({
    ReviewStatus.PENDING_BD_APPROVAL,
    ReviewStatus.IN_MEDICAL_REVIEW,
})

# Outcomes of final_decision
DECISION_STATUSES: FrozenSet[ReviewStatus] = frozenset({
    ReviewStatus.APPROVED,
    ReviewStatus.REJECTED,
    ReviewStatus.REQUIRES_REVISION,
})

FINALIZED_STATUSES = DECISION_STATUSES

LEGAL_FROM: Dict[ReviewAction, FrozenSet[ReviewStatus]] = {
    ReviewAction.APPROVE_BD: frozenset({ReviewStatus.PENDING_BD_APPROVAL}),
    ReviewAction.SUBMIT_SCORES: frozenset({ReviewStatus.IN_MEDICAL_REVIEW}),
    ReviewAction.FINAL_DECISION: frozenset({ReviewStatus.IN_MEDICAL_REVIEW}),
    ReviewAction.REOPEN: frozenset({ReviewStatus.REQUIRES_REVISION}),
    ReviewAction.UPDATE_REVENUE_ESTIMATE: frozenset({
        ReviewStatus.PENDING_BD_APPROVAL,
        ReviewStatus.IN_MEDICAL_REVIEW,
        ReviewStatus.REQUIRES_REVISION,
    }),
    ReviewAction.MARK_REPORT_GENERATED: FINALIZED_STATUSES,
}

STATUS_LABELS: Dict[ReviewStatus, str] = {
    ReviewStatus.PENDING_BD_APPROVAL: "Pending BD Approval",
    ReviewStatus.IN_MEDICAL_REVIEW: "In Medical Review",
    ReviewStatus.APPROVED: "Approved",
    ReviewStatus.REJECTED: "Rejected",
    ReviewStatus.REQUIRES_REVISION: "Requires Revision",
}

# Public brand-profile indicator; "none" when the brand was never submitted
MEDICAL_INDICATORS: Dict[ReviewStatus, str] = {
    ReviewStatus.PENDING_BD_APPROVAL: "pending",
    ReviewStatus.IN_MEDICAL_REVIEW: "in_review",
    ReviewStatus.APPROVED: "approved",
    ReviewStatus.REJECTED: "rejected",
    ReviewStatus.REQUIRES_REVISION: "iotp_issued",
}
NO_REVIEW_INDICATOR = "none"


def coerce_status(value) -> ReviewStatus:
    """Parse a stored or submitted status string into a ReviewStatus."""
    if isinstance(value, ReviewStatus):
        return value
    return ReviewStatus(str(value))


def is_legal(action: ReviewAction, status: ReviewStatus) -> bool:
    return status in LEGAL_FROM[action]


def require_legal(action: ReviewAction, status: ReviewStatus, submission_id: Optional[str] = None):
    """Raise InvalidTransition unless ``action`` may run from ``status``."""
    if not is_legal(action, status):
        allowed = sorted(s.value for s in LEGAL_FROM[action])
        raise InvalidTransition(
            f"Cannot {action.value} a submission in state {status.value}",
            {
                "submission_id": submission_id,
                "action": action.value,
                "current_status": status.value,
                "allowed_from": allowed,
            },
        )


def status_label(status: ReviewStatus) -> str:
    return STATUS_LABELS[coerce_status(status)]


def medical_indicator(status: Optional[ReviewStatus]) -> str:
    if status is None:
        return NO_REVIEW_INDICATOR
    return MEDICAL_INDICATORS[coerce_status(status)]
