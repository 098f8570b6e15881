"""
Review service: runs workflow transitions against a submission store.

Each write is read-validate-write: load the current submission, build a patch
with the pure transition function, and persist it with a versioned update.
Callers holding a version token pass ``expected_version`` and get a
ConcurrentModification on mismatch. Callers without one get the transition
retried on conflict up to REVIEW_MAX_RETRIES times.
"""
import uuid
from datetime import datetime
from typing import Any, Callable, Dict, Iterable, List, Optional, TypeVar

from medreview.core.config import settings
from medreview.core.exceptions import ConcurrentModification, DuplicateActiveSubmission
from medreview.core.logging import get_logger
from medreview.services import review_queue, review_workflow
from medreview.services.commercial_status import (
    CommercialStatus,
    resolve_commercial_status,
    resolve_commercial_statuses,
)
from medreview.services.review_events import ReviewEvent, ReviewEventBus, ReviewEventType
from medreview.services.review_states import ReviewStatus
from medreview.services.review_store import DealReader, SubmissionStore
from medreview.services.review_workflow import Patch, Submission, grade_drift, utcnow

logger = get_logger(__name__)

T = TypeVar("T")

QUEUE_VIEWS = ("intake", "evaluation", "finalized")


def retry_on_conflict(operation: Callable[[], T], max_attempts: int) -> T:
    """
    Run ``operation`` until it stops raising ConcurrentModification.

    Gives up after ``max_attempts`` tries and re-raises the last conflict.
    Any other error propagates immediately.
    """
    attempt = 1
    while True:
        try:
            return operation()
        except ConcurrentModification as e:
            if attempt >= max_attempts:
                logger.warning(f"Giving up after {attempt} conflicting attempts: {e}")
                raise
            logger.info(f"Conflict on attempt {attempt}/{max_attempts}, retrying")
            attempt += 1


def _money(value) -> Optional[str]:
    return str(value) if value is not None else None


class ReviewService:
    """Entry point for every review operation."""

    def __init__(
        self,
        store: SubmissionStore,
        deal_reader: Optional[DealReader] = None,
        event_bus: Optional[ReviewEventBus] = None,
        clock: Callable[[], datetime] = utcnow,
        max_retries: Optional[int] = None,
        id_factory: Callable[[], Any] = uuid.uuid4,
        at_risk_grades: Optional[Iterable[str]] = None,
    ):
        self.store = store
        self.deal_reader = deal_reader
        self.event_bus = event_bus or ReviewEventBus()
        self.clock = clock
        self.max_retries = settings.REVIEW_MAX_RETRIES if max_retries is None else max_retries
        self.id_factory = id_factory
        self.at_risk_grades = list(at_risk_grades or settings.AT_RISK_GRADES)

    # ============= INTERNALS =============

    def _publish(
        self,
        event_type: ReviewEventType,
        submission: Submission,
        actor_id: Optional[str] = None,
        payload: Optional[Dict[str, Any]] = None,
    ):
        self.event_bus.publish(ReviewEvent(
            type=event_type,
            submission_id=submission.id,
            brand_id=submission.brand_id,
            actor_id=actor_id,
            payload=payload or {},
            occurred_at=submission.updated_at,
        ))

    def _transition(
        self,
        submission_id: str,
        build_patch: Callable[[Submission], Patch],
        expected_version: Optional[int] = None,
    ) -> Submission:
        def attempt() -> Submission:
            current = self.store.get(submission_id)
            if expected_version is not None and current.version != expected_version:
                raise ConcurrentModification(
                    f"Submission {submission_id} was modified concurrently",
                    {
                        "submission_id": submission_id,
                        "expected_version": expected_version,
                        "current_version": current.version,
                    },
                )
            patch = build_patch(current)
            return self.store.update(submission_id, patch, current.version)

        if expected_version is not None:
            return attempt()
        return retry_on_conflict(attempt, self.max_retries + 1)

    # ============= TRANSITIONS =============

    def create(
        self,
        brand_id: str,
        deal_id: Optional[str] = None,
        revenue_estimate: Any = None,
        actor_id: Optional[str] = None,
    ) -> Submission:
        existing = self.store.get_active_by_brand(brand_id)
        if existing is not None:
            raise DuplicateActiveSubmission(
                f"Brand {brand_id} already has an active submission",
                {"brand_id": brand_id, "existing_submission_id": existing.id},
            )

        submission = review_workflow.new_submission(
            submission_id=str(self.id_factory()),
            brand_id=brand_id,
            deal_id=deal_id,
            revenue_estimate=revenue_estimate,
            now=self.clock(),
        )
        created = self.store.create(submission)
        logger.info(f"Created medical review {created.id} for brand {brand_id}")
        self._publish(ReviewEventType.SUBMISSION_CREATED, created, actor_id, {
            "deal_id": deal_id,
            "revenue_estimate": _money(created.revenue_estimate),
        })
        return created

    def get(self, submission_id: str) -> Submission:
        return self.store.get(submission_id)

    def list_reviews(self, state: Optional[ReviewStatus] = None) -> List[Submission]:
        return self.store.list_by_state(state)

    def approve_bd(
        self,
        submission_id: str,
        actor_id: Optional[str],
        revenue_estimate: Any = None,
        notes: Optional[str] = None,
        expected_version: Optional[int] = None,
    ) -> Submission:
        updated = self._transition(
            submission_id,
            lambda s: review_workflow.approve_bd(
                s, actor_id, revenue_estimate=revenue_estimate, notes=notes, now=self.clock()
            ),
            expected_version,
        )
        logger.info(f"BD approved medical review {submission_id} by {actor_id}")
        self._publish(ReviewEventType.BD_APPROVED, updated, actor_id, {
            "revenue_estimate": _money(updated.revenue_estimate),
        })
        return updated

    def submit_scores(
        self,
        submission_id: str,
        clinical: Any,
        safety: Any,
        transparency: Any,
        actor_id: Optional[str] = None,
        notes: Optional[str] = None,
        clinical_claims: Optional[Iterable[str]] = None,
        safety_concerns: Optional[Iterable[str]] = None,
        required_disclaimers: Optional[Iterable[str]] = None,
        expected_version: Optional[int] = None,
    ) -> Submission:
        updated = self._transition(
            submission_id,
            lambda s: review_workflow.submit_scores(
                s, clinical, safety, transparency,
                actor_id=actor_id,
                notes=notes,
                clinical_claims=clinical_claims,
                safety_concerns=safety_concerns,
                required_disclaimers=required_disclaimers,
                now=self.clock(),
            ),
            expected_version,
        )
        logger.info(
            f"Scores submitted for medical review {submission_id}: "
            f"grade {updated.overall_grade.value}"
        )
        self._publish(ReviewEventType.SCORES_SUBMITTED, updated, actor_id, {
            "scores": updated.scores.as_dict(),
            "overall_grade": updated.overall_grade.value,
        })
        return updated

    def final_decision(
        self,
        submission_id: str,
        decision: Any,
        actor_id: Optional[str] = None,
        notes: Optional[str] = None,
        expected_version: Optional[int] = None,
    ) -> Submission:
        updated = self._transition(
            submission_id,
            lambda s: review_workflow.final_decision(
                s, decision, actor_id=actor_id, notes=notes, now=self.clock()
            ),
            expected_version,
        )
        logger.info(f"Final decision on medical review {submission_id}: {updated.status.value}")
        self._publish(ReviewEventType.FINAL_DECISION_RECORDED, updated, actor_id, {
            "decision": updated.status.value,
            "overall_grade": updated.overall_grade.value if updated.overall_grade else None,
        })
        return updated

    def reopen(
        self,
        submission_id: str,
        actor_id: Optional[str] = None,
        expected_version: Optional[int] = None,
    ) -> Submission:
        def build(current: Submission) -> Patch:
            patch = review_workflow.reopen(current, now=self.clock())
            other = self.store.get_active_by_brand(current.brand_id)
            if other is not None and other.id != current.id:
                raise DuplicateActiveSubmission(
                    f"Brand {current.brand_id} already has an active submission",
                    {"brand_id": current.brand_id, "existing_submission_id": other.id},
                )
            return patch

        updated = self._transition(submission_id, build, expected_version)
        logger.info(f"Reopened medical review {submission_id}")
        self._publish(ReviewEventType.SUBMISSION_REOPENED, updated, actor_id)
        return updated

    def update_revenue_estimate(
        self,
        submission_id: str,
        amount: Any = None,
        clear: bool = False,
        actor_id: Optional[str] = None,
        expected_version: Optional[int] = None,
    ) -> Submission:
        updated = self._transition(
            submission_id,
            lambda s: review_workflow.update_revenue_estimate(
                s, amount=amount, clear=clear, now=self.clock()
            ),
            expected_version,
        )
        logger.info(f"Revenue estimate for medical review {submission_id} set to {updated.revenue_estimate}")
        self._publish(ReviewEventType.REVENUE_ESTIMATE_UPDATED, updated, actor_id, {
            "revenue_estimate": _money(updated.revenue_estimate),
        })
        return updated

    def mark_report_generated(
        self,
        submission_id: str,
        actor_id: Optional[str] = None,
        expected_version: Optional[int] = None,
    ) -> Submission:
        updated = self._transition(
            submission_id,
            lambda s: review_workflow.mark_report_generated(s, now=self.clock()),
            expected_version,
        )
        logger.info(f"Report card generated for medical review {submission_id}")
        self._publish(ReviewEventType.REPORT_GENERATED, updated, actor_id)
        return updated

    # ============= READ SIDE =============

    def commercial_status(self, brand_id: str) -> CommercialStatus:
        if self.deal_reader is None:
            return CommercialStatus.UNKNOWN
        return resolve_commercial_status(brand_id, self.deal_reader.list_deals_by_brand(brand_id))

    def commercial_statuses(self, brand_ids: Iterable[str]) -> Dict[str, CommercialStatus]:
        brand_ids = list(brand_ids)
        if self.deal_reader is None:
            return {b: CommercialStatus.UNKNOWN for b in brand_ids}
        deals = self.deal_reader.list_deals_for_brands(brand_ids)
        return resolve_commercial_statuses(deals, brand_ids)

    def annotate(self, submission: Submission) -> review_queue.QueueRow:
        status = self.commercial_status(submission.brand_id)
        return review_queue.QueueRow(
            submission=submission,
            commercial_status=status,
            at_risk=review_queue.is_at_risk(submission, status, self.at_risk_grades),
        )

    def rows(self, state: Optional[ReviewStatus] = None) -> List[review_queue.QueueRow]:
        submissions = self.store.list_by_state(state)
        statuses = self.commercial_statuses(s.brand_id for s in submissions)
        return review_queue.build_queue_rows(submissions, statuses, at_risk_grades=self.at_risk_grades)

    def stats(self) -> review_queue.QueueStats:
        submissions = self.store.list_by_state()
        statuses = self.commercial_statuses(s.brand_id for s in submissions)
        return review_queue.summarize(submissions, statuses, self.at_risk_grades)

    def queue_view(self, view: str) -> List[review_queue.QueueRow]:
        """Named dashboard views: intake, evaluation, finalized."""
        if view not in QUEUE_VIEWS:
            raise ValueError(f"Unknown queue view: {view}")
        submissions = self.store.list_by_state()
        statuses = self.commercial_statuses(s.brand_id for s in submissions)
        if view == "evaluation":
            return review_queue.evaluation_queue(submissions, statuses, self.at_risk_grades)
        if view == "intake":
            selected = review_queue.intake_queue(submissions)
        else:
            selected = review_queue.finalized_reviews(submissions)
        return review_queue.build_queue_rows(selected, statuses, at_risk_grades=self.at_risk_grades)


def revalidate_grades(store: SubmissionStore) -> Dict[str, int]:
    """
    Recompute every cached grade from its scores and repair drift.

    Repairs go through the versioned update; a submission that changes under
    the scan is skipped, since its own write already refreshed the grade.
    """
    checked = drifted = repaired = 0
    for submission in store.list_by_state():
        if submission.scores is None and submission.overall_grade is None:
            continue
        checked += 1
        drift = grade_drift(submission)
        if drift is None:
            continue
        drifted += 1
        cached, expected = drift
        logger.warning(
            f"Grade drift on medical review {submission.id}: cached "
            f"{cached.value if cached else None}, expected {expected.value if expected else None}"
        )
        try:
            store.update(submission.id, {"overall_grade": expected}, submission.version)
            repaired += 1
        except ConcurrentModification:
            logger.info(f"Medical review {submission.id} changed during revalidation, skipping")
    return {"checked": checked, "drifted": drifted, "repaired": repaired}
