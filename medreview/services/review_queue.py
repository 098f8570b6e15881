"""
Review queue projections for dashboards and alerting.

Pure read-side computations over a snapshot of submissions. Missing grades
or missing commercial data are treated as absent, never as errors.
"""
from dataclasses import dataclass
from decimal import Decimal
from typing import Dict, Iterable, List, Mapping, Optional, Sequence

from medreview.services.commercial_status import CommercialStatus
from medreview.services.grading import Grade
from medreview.services.review_states import FINALIZED_STATUSES, ReviewStatus
from medreview.services.review_workflow import Submission

DEFAULT_AT_RISK_GRADES = frozenset({Grade.A, Grade.B})


@dataclass(frozen=True)
class QueueRow:
    """A submission annotated with its brand's commercial standing."""

    submission: Submission
    commercial_status: Optional[CommercialStatus]
    at_risk: bool


@dataclass(frozen=True)
class QueueStats:
    """Counters for the dashboard strip."""

    pending_bd: int
    in_review: int
    approved: int
    rejected: int
    requires_revision: int
    total: int
    total_pipeline_value: Decimal
    at_risk: int

    def as_dict(self) -> dict:
        return {
            "pending_bd": self.pending_bd,
            "in_review": self.in_review,
            "approved": self.approved,
            "rejected": self.rejected,
            "requires_revision": self.requires_revision,
            "total": self.total,
            "total_pipeline_value": self.total_pipeline_value,
            "at_risk": self.at_risk,
        }


def _grades(grades: Optional[Iterable]) -> frozenset:
    if grades is None:
        return DEFAULT_AT_RISK_GRADES
    return frozenset(Grade(str(getattr(g, 'value', g))) for g in grades)


def filter_by_state(
    submissions: Iterable[Submission],
    state: Optional[ReviewStatus] = None,
) -> List[Submission]:
    if state is None:
        return list(submissions)
    return [s for s in submissions if s.status == state]


def newest_first(submissions: Iterable[Submission]) -> List[Submission]:
    return sorted(submissions, key=lambda s: s.created_at, reverse=True)


def group_by_state(submissions: Iterable[Submission]) -> Dict[ReviewStatus, List[Submission]]:
    """Every state is present in the result, possibly with an empty list."""
    groups: Dict[ReviewStatus, List[Submission]] = {status: [] for status in ReviewStatus}
    for submission in submissions:
        groups[submission.status].append(submission)
    return groups


def count_by_state(submissions: Iterable[Submission]) -> Dict[ReviewStatus, int]:
    return {status: len(items) for status, items in group_by_state(submissions).items()}


def pipeline_value(submissions: Iterable[Submission]) -> Decimal:
    """Sum of revenue estimates over non-rejected submissions."""
    total = Decimal("0")
    for submission in submissions:
        if submission.status == ReviewStatus.REJECTED:
            continue
        if submission.revenue_estimate is not None:
            total += Decimal(submission.revenue_estimate)
    return total


def is_at_risk(
    submission: Submission,
    commercial_status: Optional[CommercialStatus],
    at_risk_grades: Optional[Iterable] = None,
) -> bool:
    """High medical grade but the brand is still only a commercial prospect."""
    grade = submission.effective_grade
    if grade is None or commercial_status is None:
        return False
    return grade in _grades(at_risk_grades) and commercial_status == CommercialStatus.PROSPECT


def build_queue_rows(
    submissions: Iterable[Submission],
    commercial_statuses: Mapping[str, CommercialStatus],
    state: Optional[ReviewStatus] = None,
    at_risk_grades: Optional[Iterable] = None,
) -> List[QueueRow]:
    grades = _grades(at_risk_grades)
    rows = []
    for submission in newest_first(filter_by_state(submissions, state)):
        status = commercial_statuses.get(submission.brand_id)
        rows.append(QueueRow(
            submission=submission,
            commercial_status=status,
            at_risk=is_at_risk(submission, status, grades),
        ))
    return rows


def summarize(
    submissions: Sequence[Submission],
    commercial_statuses: Optional[Mapping[str, CommercialStatus]] = None,
    at_risk_grades: Optional[Iterable] = None,
) -> QueueStats:
    counts = count_by_state(submissions)
    statuses = commercial_statuses or {}
    grades = _grades(at_risk_grades)
    at_risk = sum(
        1 for s in submissions
        if is_at_risk(s, statuses.get(s.brand_id), grades)
    )
    return QueueStats(
        pending_bd=counts[ReviewStatus.PENDING_BD_APPROVAL],
        in_review=counts[ReviewStatus.IN_MEDICAL_REVIEW],
        approved=counts[ReviewStatus.APPROVED],
        rejected=counts[ReviewStatus.REJECTED],
        requires_revision=counts[ReviewStatus.REQUIRES_REVISION],
        total=len(submissions),
        total_pipeline_value=pipeline_value(submissions),
        at_risk=at_risk,
    )


# ============= NAMED VIEWS =============

def intake_queue(submissions: Iterable[Submission]) -> List[Submission]:
    """Brands waiting on the BD gate."""
    return newest_first(filter_by_state(submissions, ReviewStatus.PENDING_BD_APPROVAL))


def evaluation_queue(
    submissions: Iterable[Submission],
    commercial_statuses: Mapping[str, CommercialStatus],
    at_risk_grades: Optional[Iterable] = None,
) -> List[QueueRow]:
    """Submissions under medical review, with commercial annotations."""
    return build_queue_rows(
        submissions, commercial_statuses, ReviewStatus.IN_MEDICAL_REVIEW, at_risk_grades
    )


def finalized_reviews(submissions: Iterable[Submission]) -> List[Submission]:
    return newest_first(s for s in submissions if s.status in FINALIZED_STATUSES)
