"""
Unit tests for the review state table and label mappings.
"""
import pytest

from medreview.core.exceptions import InvalidTransition
from medreview.services.review_states import (
    ACTIVE_STATUSES,
    LEGAL_FROM,
    ReviewAction,
    ReviewStatus,
    coerce_status,
    is_legal,
    medical_indicator,
    require_legal,
    status_label,
)

EXPECTED_LEGAL = {
    (ReviewAction.APPROVE_BD, ReviewStatus.PENDING_BD_APPROVAL),
    (ReviewAction.SUBMIT_SCORES, ReviewStatus.IN_MEDICAL_REVIEW),
    (ReviewAction.FINAL_DECISION, ReviewStatus.IN_MEDICAL_REVIEW),
    (ReviewAction.REOPEN, ReviewStatus.REQUIRES_REVISION),
    (ReviewAction.UPDATE_REVENUE_ESTIMATE, ReviewStatus.PENDING_BD_APPROVAL),
    (ReviewAction.UPDATE_REVENUE_ESTIMATE, ReviewStatus.IN_MEDICAL_REVIEW),
    (ReviewAction.UPDATE_REVENUE_ESTIMATE, ReviewStatus.REQUIRES_REVISION),
    (ReviewAction.MARK_REPORT_GENERATED, ReviewStatus.APPROVED),
    (ReviewAction.MARK_REPORT_GENERATED, ReviewStatus.REJECTED),
    (ReviewAction.MARK_REPORT_GENERATED, ReviewStatus.REQUIRES_REVISION),
}


class TestTransitionTable:
    """Every (action, state) pair is either listed legal or rejected."""

    @pytest.mark.parametrize("action", list(ReviewAction))
    @pytest.mark.parametrize("state", list(ReviewStatus))
    def test_legality(self, action, state):
        assert is_legal(action, state) == ((action, state) in EXPECTED_LEGAL)

    def test_every_action_has_an_entry(self):
        assert set(LEGAL_FROM) == set(ReviewAction)

    def test_approved_and_rejected_have_no_state_changing_exit(self):
        for action in (ReviewAction.APPROVE_BD, ReviewAction.SUBMIT_SCORES,
                       ReviewAction.FINAL_DECISION, ReviewAction.REOPEN):
            assert not is_legal(action, ReviewStatus.APPROVED)
            assert not is_legal(action, ReviewStatus.REJECTED)

    def test_require_legal_details(self):
        with pytest.raises(InvalidTransition) as exc:
            require_legal(ReviewAction.FINAL_DECISION, ReviewStatus.PENDING_BD_APPROVAL, "sub-1")
        details = exc.value.details
        assert details["submission_id"] == "sub-1"
        assert details["current_status"] == "pending_bd_approval"
        assert details["allowed_from"] == ["in_medical_review"]

    def test_active_states(self):
        assert ACTIVE_STATUSES == {ReviewStatus.PENDING_BD_APPROVAL, ReviewStatus.IN_MEDICAL_REVIEW}


class TestLabels:
    """Closed mappings from state to display strings."""

    def test_labels_cover_every_state(self):
        assert status_label(ReviewStatus.PENDING_BD_APPROVAL) == "Pending BD Approval"
        assert status_label(ReviewStatus.IN_MEDICAL_REVIEW) == "In Medical Review"
        assert status_label(ReviewStatus.APPROVED) == "Approved"
        assert status_label(ReviewStatus.REJECTED) == "Rejected"
        assert status_label(ReviewStatus.REQUIRES_REVISION) == "Requires Revision"

    def test_medical_indicator(self):
        assert medical_indicator(None) == "none"
        assert medical_indicator(ReviewStatus.REQUIRES_REVISION) == "iotp_issued"
        assert medical_indicator("in_medical_review") == "in_review"

    def test_unknown_status_string_rejected(self):
        with pytest.raises(ValueError):
            coerce_status("archived")
