"""
Submission store and commercial deal reader.

The store owns persistence and concurrency control: every update is a
compare-and-set on the submission's ``version``. A stale ``expected_version``
raises ConcurrentModification and writes nothing. A brand may hold at most
one submission in an active state; the store enforces this too, so two
racing creates cannot both succeed.
"""
import threading
from abc import ABC, abstractmethod
from dataclasses import replace
from typing import Dict, Iterable, List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from medreview.core.exceptions import ConcurrentModification, DuplicateActiveSubmission, NotFound
from medreview.db.models import Brand, CommercialDeal, MedicalReview
from medreview.services.commercial_status import DealRecord
from medreview.services.grading import ScoreRecord
from medreview.services.review_states import ACTIVE_STATUSES, ReviewStatus, coerce_status
from medreview.services.review_workflow import Patch, Submission, apply_patch


def _not_found(submission_id: str) -> NotFound:
    return NotFound(f"Submission {submission_id} not found", {"submission_id": submission_id})


def _conflict(submission_id: str, expected_version: int, current_version: int) -> ConcurrentModification:
    return ConcurrentModification(
        f"Submission {submission_id} was modified concurrently",
        {
            "submission_id": submission_id,
            "expected_version": expected_version,
            "current_version": current_version,
        },
    )


def _duplicate(brand_id: str, existing_id: Optional[str] = None) -> DuplicateActiveSubmission:
    details = {"brand_id": brand_id}
    if existing_id:
        details["existing_submission_id"] = existing_id
    return DuplicateActiveSubmission(
        f"Brand {brand_id} already has an active submission", details
    )


# ============= CONTRACTS =============

class SubmissionStore(ABC):
    @abstractmethod
    def get(self, submission_id: str) -> Submission:
        """Return the submission or raise NotFound."""

    @abstractmethod
    def get_by_brand(self, brand_id: str) -> List[Submission]:
        """All submissions for a brand, newest first."""

    @abstractmethod
    def list_by_state(self, state: Optional[ReviewStatus] = None) -> List[Submission]:
        """All submissions, optionally filtered to one state, newest first."""

    @abstractmethod
    def create(self, submission: Submission) -> Submission:
        """Insert a new submission; DuplicateActiveSubmission if the brand has an active one."""

    @abstractmethod
    def update(self, submission_id: str, patch: Patch, expected_version: int) -> Submission:
        """Apply ``patch`` iff the stored version equals ``expected_version``."""

    def get_active_by_brand(self, brand_id: str) -> Optional[Submission]:
        for submission in self.get_by_brand(brand_id):
            if submission.status in ACTIVE_STATUSES:
                return submission
        return None


class DealReader(ABC):
    @abstractmethod
    def list_deals_by_brand(self, brand_id: str) -> List[DealRecord]:
        """Read-only list of the brand's commercial deals."""

    def list_deals_for_brands(self, brand_ids: Iterable[str]) -> List[DealRecord]:
        deals: List[DealRecord] = []
        for brand_id in set(brand_ids):
            deals.extend(self.list_deals_by_brand(brand_id))
        return deals


# ============= IN-MEMORY =============

class InMemorySubmissionStore(SubmissionStore):
    """
    Thread-safe store kept in a dict. ``known_brands`` enables NotFound
    checks on create; when omitted any brand id is accepted.
    """

    def __init__(self, known_brands: Optional[Iterable[str]] = None):
        self._rows: Dict[str, Submission] = {}
        self._known_brands = set(known_brands) if known_brands is not None else None
        self._lock = threading.Lock()

    def add_brand(self, brand_id: str):
        if self._known_brands is None:
            self._known_brands = set()
        self._known_brands.add(brand_id)

    def get(self, submission_id: str) -> Submission:
        with self._lock:
            try:
                return self._rows[submission_id]
            except KeyError:
                raise _not_found(submission_id)

    def get_by_brand(self, brand_id: str) -> List[Submission]:
        with self._lock:
            rows = [s for s in self._rows.values() if s.brand_id == brand_id]
        return sorted(rows, key=lambda s: s.created_at, reverse=True)

    def list_by_state(self, state: Optional[ReviewStatus] = None) -> List[Submission]:
        with self._lock:
            rows = list(self._rows.values())
        if state is not None:
            state = coerce_status(state)
            rows = [s for s in rows if s.status == state]
        return sorted(rows, key=lambda s: s.created_at, reverse=True)

    def _active_for(self, brand_id: str, exclude_id: Optional[str] = None) -> Optional[Submission]:
        for row in self._rows.values():
            if row.brand_id == brand_id and row.status in ACTIVE_STATUSES and row.id != exclude_id:
                return row
        return None

    def create(self, submission: Submission) -> Submission:
        with self._lock:
            if self._known_brands is not None and submission.brand_id not in self._known_brands:
                raise NotFound(f"Brand {submission.brand_id} not found", {"brand_id": submission.brand_id})
            if submission.id in self._rows:
                raise _duplicate(submission.brand_id, submission.id)
            existing = self._active_for(submission.brand_id)
            if existing is not None and submission.status in ACTIVE_STATUSES:
                raise _duplicate(submission.brand_id, existing.id)
            stored = replace(submission, version=1)
            self._rows[stored.id] = stored
            return stored

    def update(self, submission_id: str, patch: Patch, expected_version: int) -> Submission:
        with self._lock:
            current = self._rows.get(submission_id)
            if current is None:
                raise _not_found(submission_id)
            if current.version != expected_version:
                raise _conflict(submission_id, expected_version, current.version)
            updated = apply_patch(current, patch)
            if updated.status in ACTIVE_STATUSES and current.status not in ACTIVE_STATUSES:
                existing = self._active_for(updated.brand_id, exclude_id=submission_id)
                if existing is not None:
                    raise _duplicate(updated.brand_id, existing.id)
            self._rows[submission_id] = updated
            return updated


class InMemoryDealReader(DealReader):
    def __init__(self, deals: Iterable[DealRecord] = ()):
        self._deals: List[DealRecord] = list(deals)

    def add(self, deal: DealRecord):
        self._deals.append(deal)

    def list_deals_by_brand(self, brand_id: str) -> List[DealRecord]:
        return [d for d in self._deals if d.brand_id == brand_id]


# ============= SQLALCHEMY =============

# Submission field -> MedicalReview column, for fields stored one-to-one
_DIRECT_COLUMNS = (
    "deal_id", "revenue_estimate", "bd_notes", "bd_approved_by", "bd_approved_at",
    "overall_grade", "medical_notes", "medical_reviewer_id", "medical_reviewed_at",
    "decision_notes", "final_decision_by", "final_decision_at", "report_generated_at",
    "updated_at",
)
_LIST_COLUMNS = ("clinical_claims", "safety_concerns", "required_disclaimers")


def review_to_submission(row: MedicalReview) -> Submission:
    """Map an ORM row to the immutable Submission record."""
    score_values = (row.clinical_evidence_score, row.safety_profile_score, row.transparency_score)
    scores = None
    if all(v is not None for v in score_values):
        scores = ScoreRecord(*score_values)

    return Submission(
        id=row.id,
        brand_id=row.brand_id,
        deal_id=row.deal_id,
        status=coerce_status(row.status),
        revenue_estimate=row.revenue_estimate,
        bd_notes=row.bd_notes,
        bd_approved_by=row.bd_approved_by,
        bd_approved_at=row.bd_approved_at,
        scores=scores,
        overall_grade=row.overall_grade,
        medical_notes=row.medical_notes,
        clinical_claims=tuple(row.clinical_claims or ()),
        safety_concerns=tuple(row.safety_concerns or ()),
        required_disclaimers=tuple(row.required_disclaimers or ()),
        medical_reviewer_id=row.medical_reviewer_id,
        medical_reviewed_at=row.medical_reviewed_at,
        decision_notes=row.decision_notes,
        final_decision_by=row.final_decision_by,
        final_decision_at=row.final_decision_at,
        report_generated_at=row.report_generated_at,
        created_at=row.created_at,
        updated_at=row.updated_at,
        version=row.version,
    )


def patch_to_columns(patch: Patch) -> dict:
    """Translate a Submission patch into MedicalReview column values."""
    values = {}
    for key, value in patch.items():
        if key == "scores":
            values["clinical_evidence_score"] = value.clinical if value else None
            values["safety_profile_score"] = value.safety if value else None
            values["transparency_score"] = value.transparency if value else None
        elif key == "status":
            status = coerce_status(value)
            values["status"] = status
            values["active_brand_id"] = MedicalReview.brand_id if status in ACTIVE_STATUSES else None
        elif key in _LIST_COLUMNS:
            values[key] = list(value or ())
        elif key in _DIRECT_COLUMNS:
            values[key] = value
        else:
            raise KeyError(f"Unknown submission field in patch: {key}")
    return values


class SqlSubmissionStore(SubmissionStore):
    """
    Store backed by the ``medical_reviews`` table.

    Writes are flushed, not committed; the caller owns the transaction.
    """

    def __init__(self, db: Session):
        self.db = db

    def _query(self):
        return self.db.query(MedicalReview).populate_existing()

    def get(self, submission_id: str) -> Submission:
        row = self._query().filter(MedicalReview.id == submission_id).first()
        if not row:
            raise _not_found(submission_id)
        return review_to_submission(row)

    def get_by_brand(self, brand_id: str) -> List[Submission]:
        rows = self._query().filter(
            MedicalReview.brand_id == brand_id
        ).order_by(MedicalReview.created_at.desc()).all()
        return [review_to_submission(r) for r in rows]

    def get_active_by_brand(self, brand_id: str) -> Optional[Submission]:
        row = self._query().filter(MedicalReview.active_brand_id == brand_id).first()
        return review_to_submission(row) if row else None

    def list_by_state(self, state: Optional[ReviewStatus] = None) -> List[Submission]:
        query = self._query()
        if state is not None:
            query = query.filter(MedicalReview.status == coerce_status(state))
        rows = query.order_by(MedicalReview.created_at.desc()).all()
        return [review_to_submission(r) for r in rows]

    def create(self, submission: Submission) -> Submission:
        if not self.db.get(Brand, submission.brand_id):
            raise NotFound(f"Brand {submission.brand_id} not found", {"brand_id": submission.brand_id})
        if submission.deal_id:
            deal = self.db.get(CommercialDeal, submission.deal_id)
            if not deal:
                raise NotFound(f"Deal {submission.deal_id} not found", {"deal_id": submission.deal_id})
            if deal.brand_id != submission.brand_id:
                raise NotFound(
                    f"Deal {submission.deal_id} not found for brand {submission.brand_id}",
                    {"deal_id": submission.deal_id, "brand_id": submission.brand_id},
                )

        row = MedicalReview(
            id=submission.id,
            brand_id=submission.brand_id,
            deal_id=submission.deal_id,
            status=submission.status,
            active_brand_id=submission.brand_id if submission.status in ACTIVE_STATUSES else None,
            revenue_estimate=submission.revenue_estimate,
            clinical_claims=[],
            safety_concerns=[],
            required_disclaimers=[],
            version=1,
            created_at=submission.created_at,
            updated_at=submission.updated_at,
        )
        self.db.add(row)
        try:
            self.db.flush()
        except IntegrityError:
            self.db.rollback()
            raise _duplicate(submission.brand_id)
        return review_to_submission(row)

    def update(self, submission_id: str, patch: Patch, expected_version: int) -> Submission:
        values = patch_to_columns(patch)
        values["version"] = MedicalReview.version + 1

        try:
            updated = self.db.query(MedicalReview).filter(
                MedicalReview.id == submission_id,
                MedicalReview.version == expected_version,
            ).update(values, synchronize_session=False)
        except IntegrityError:
            self.db.rollback()
            current = self.get(submission_id)
            raise _duplicate(current.brand_id)

        if updated == 0:
            current = self.get(submission_id)
            raise _conflict(submission_id, expected_version, current.version)
        return self.get(submission_id)


class SqlDealReader(DealReader):
    def __init__(self, db: Session):
        self.db = db

    @staticmethod
    def _to_record(deal: CommercialDeal) -> DealRecord:
        return DealRecord(
            id=deal.id,
            brand_id=deal.brand_id,
            stage=deal.deal_stage,
            deal_name=deal.deal_name,
            deal_value=deal.deal_value,
        )

    def list_deals_by_brand(self, brand_id: str) -> List[DealRecord]:
        deals = self.db.query(CommercialDeal).filter(CommercialDeal.brand_id == brand_id).all()
        return [self._to_record(d) for d in deals]

    def list_deals_for_brands(self, brand_ids: Iterable[str]) -> List[DealRecord]:
        ids = list(set(brand_ids))
        if not ids:
            return []
        deals = self.db.query(CommercialDeal).filter(CommercialDeal.brand_id.in_(ids)).all()
        return [self._to_record(d) for d in deals]
