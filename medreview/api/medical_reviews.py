"""
Medical Reviews API routes.

Thin adapter over ReviewService: each route translates the request into one
service call, commits on success and maps ReviewError kinds to HTTP errors.
"""
from typing import Any, List, Optional
from datetime import datetime
from decimal import Decimal
from fastapi import APIRouter, Depends, HTTPException, status, Query
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from medreview.core.config import settings
from medreview.core.exceptions import (
    InvalidDecision,
    InvalidRevenueEstimate,
    InvalidScore,
    NotFound,
    ReviewError,
)
from medreview.core.logging import get_logger
from medreview.core.rbac import require_operator, require_viewer
from medreview.db.models import Brand, CommercialDeal
from medreview.db.session import get_db
from medreview.services.grading import preview_grade
from medreview.services.report_card import render_report_card, report_filename
from medreview.services.review_events import (
    AuditTrailSubscriber,
    QueueDispatchSubscriber,
    ReviewEventBus,
)
from medreview.services.review_queue import QueueRow
from medreview.services.review_service import QUEUE_VIEWS, ReviewService
from medreview.services.review_states import ReviewStatus, medical_indicator, status_label
from medreview.services.review_store import SqlDealReader, SqlSubmissionStore

logger = get_logger(__name__)

router = APIRouter(prefix="/api/medical-reviews", tags=["Medical Reviews"])

# Kinds not listed here are conflicts with the current state (409)
ERROR_STATUS_CODES = {
    NotFound: status.HTTP_404_NOT_FOUND,
    InvalidDecision: 422,
    InvalidScore: 422,
    InvalidRevenueEstimate: 422,
}


def to_http_exception(error: ReviewError) -> HTTPException:
    status_code = ERROR_STATUS_CODES.get(type(error), status.HTTP_409_CONFLICT)
    logger.warning(f"Rejected review operation ({error.kind}): {error}")
    return HTTPException(status_code=status_code, detail=error.to_dict())


def build_event_bus(db: Session) -> ReviewEventBus:
    bus = ReviewEventBus()
    bus.subscribe(AuditTrailSubscriber(db))
    if settings.EVENT_DISPATCH == "queue":
        bus.subscribe(QueueDispatchSubscriber())
    return bus


def get_review_service(db: Session = Depends(get_db)) -> ReviewService:
    """Request-scoped service sharing the request's DB session."""
    return ReviewService(
        store=SqlSubmissionStore(db),
        deal_reader=SqlDealReader(db),
        event_bus=build_event_bus(db),
    )


# ============= SCHEMAS =============

class ReviewCreate(BaseModel):
    brand_id: str
    deal_id: Optional[str] = None
    revenue_estimate: Optional[Decimal] = None


class VersionedRequest(BaseModel):
    # Omit to let the server retry on conflict
    expected_version: Optional[int] = None


class BDApprovalRequest(VersionedRequest):
    revenue_estimate: Optional[Decimal] = None
    notes: Optional[str] = None


class RevenueEstimateRequest(VersionedRequest):
    amount: Optional[Decimal] = None
    clear: bool = False


class ScoresRequest(VersionedRequest):
    # Passed through unparsed; ScoreRecord rejects bools, floats and strings
    clinical: Any
    safety: Any
    transparency: Any
    notes: Optional[str] = None
    clinical_claims: List[str] = Field(default_factory=list)
    safety_concerns: List[str] = Field(default_factory=list)
    required_disclaimers: List[str] = Field(default_factory=list)


class DecisionRequest(VersionedRequest):
    decision: str
    notes: Optional[str] = None


class GradePreviewRequest(BaseModel):
    clinical: Any = None
    safety: Any = None
    transparency: Any = None


class GradePreviewResponse(BaseModel):
    grade: Optional[str]
    complete: bool


class ScoresResponse(BaseModel):
    clinical: int
    safety: int
    transparency: int


class ReviewResponse(BaseModel):
    id: str
    brand_id: str
    deal_id: Optional[str]
    status: str
    status_label: str
    medical_indicator: str
    revenue_estimate: Optional[float]
    bd_notes: Optional[str]
    bd_approved_by: Optional[str]
    bd_approved_at: Optional[datetime]
    scores: Optional[ScoresResponse]
    overall_grade: Optional[str]
    medical_notes: Optional[str]
    clinical_claims: List[str]
    safety_concerns: List[str]
    required_disclaimers: List[str]
    medical_reviewer_id: Optional[str]
    medical_reviewed_at: Optional[datetime]
    decision_notes: Optional[str]
    final_decision_by: Optional[str]
    final_decision_at: Optional[datetime]
    report_generated_at: Optional[datetime]
    created_at: datetime
    updated_at: datetime
    version: int
    commercial_status: Optional[str] = None
    at_risk: bool = False


class QueueStatsResponse(BaseModel):
    pending_bd: int
    in_review: int
    approved: int
    rejected: int
    requires_revision: int
    total: int
    total_pipeline_value: float
    at_risk: int


class CommercialStatusResponse(BaseModel):
    brand_id: str
    commercial_status: str
    medical_indicator: str


class ReportCardResponse(BaseModel):
    submission_id: str
    filename: str
    content: str


def _to_response(row: QueueRow) -> ReviewResponse:
    s = row.submission
    grade = s.effective_grade
    return ReviewResponse(
        id=s.id,
        brand_id=s.brand_id,
        deal_id=s.deal_id,
        status=s.status.value,
        status_label=status_label(s.status),
        medical_indicator=medical_indicator(s.status),
        revenue_estimate=float(s.revenue_estimate) if s.revenue_estimate is not None else None,
        bd_notes=s.bd_notes,
        bd_approved_by=s.bd_approved_by,
        bd_approved_at=s.bd_approved_at,
        scores=ScoresResponse(**s.scores.as_dict()) if s.scores else None,
        overall_grade=grade.value if grade else None,
        medical_notes=s.medical_notes,
        clinical_claims=list(s.clinical_claims),
        safety_concerns=list(s.safety_concerns),
        required_disclaimers=list(s.required_disclaimers),
        medical_reviewer_id=s.medical_reviewer_id,
        medical_reviewed_at=s.medical_reviewed_at,
        decision_notes=s.decision_notes,
        final_decision_by=s.final_decision_by,
        final_decision_at=s.final_decision_at,
        report_generated_at=s.report_generated_at,
        created_at=s.created_at,
        updated_at=s.updated_at,
        version=s.version,
        commercial_status=row.commercial_status.value if row.commercial_status else None,
        at_risk=row.at_risk,
    )


# ============= READ ROUTES =============

@router.get("", response_model=List[ReviewResponse])
async def list_reviews(
    status_filter: Optional[ReviewStatus] = Query(None, alias="status", description="Filter by state"),
    user_context: dict = Depends(require_viewer),
    service: ReviewService = Depends(get_review_service),
):
    """List medical reviews, newest first."""
    return [_to_response(row) for row in service.rows(status_filter)]


@router.post("/grade-preview", response_model=GradePreviewResponse)
async def grade_preview(
    payload: GradePreviewRequest,
    user_context: dict = Depends(require_viewer),
):
    """Live grade for slider input; no grade until all three scores are set."""
    try:
        grade = preview_grade(payload.clinical, payload.safety, payload.transparency)
    except ReviewError as e:
        raise to_http_exception(e)
    return GradePreviewResponse(grade=grade.value if grade else None, complete=grade is not None)


@router.get("/queue/stats", response_model=QueueStatsResponse)
async def queue_stats(
    user_context: dict = Depends(require_viewer),
    service: ReviewService = Depends(get_review_service),
):
    """Dashboard counters and pipeline value."""
    stats = service.stats()
    data = stats.as_dict()
    data["total_pipeline_value"] = float(stats.total_pipeline_value)
    return QueueStatsResponse(**data)


@router.get("/queue/{view}", response_model=List[ReviewResponse])
async def queue_view(
    view: str,
    user_context: dict = Depends(require_viewer),
    service: ReviewService = Depends(get_review_service),
):
    """Intake, evaluation or finalized queue."""
    if view not in QUEUE_VIEWS:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Unknown queue view '{view}'. Expected one of: {', '.join(QUEUE_VIEWS)}",
        )
    return [_to_response(row) for row in service.queue_view(view)]


@router.get("/brands/{brand_id}/commercial-status", response_model=CommercialStatusResponse)
async def brand_commercial_status(
    brand_id: str,
    user_context: dict = Depends(require_viewer),
    service: ReviewService = Depends(get_review_service),
    db: Session = Depends(get_db),
):
    """Commercial status of a brand plus its public medical indicator."""
    if not db.get(Brand, brand_id):
        raise to_http_exception(NotFound(f"Brand {brand_id} not found", {"brand_id": brand_id}))

    reviews = service.store.get_by_brand(brand_id)
    return CommercialStatusResponse(
        brand_id=brand_id,
        commercial_status=service.commercial_status(brand_id).value,
        medical_indicator=medical_indicator(reviews[0].status if reviews else None),
    )


@router.get("/{review_id}", response_model=ReviewResponse)
async def get_review(
    review_id: str,
    user_context: dict = Depends(require_viewer),
    service: ReviewService = Depends(get_review_service),
):
    """Get a medical review with its commercial annotation."""
    try:
        submission = service.get(review_id)
    except ReviewError as e:
        raise to_http_exception(e)
    return _to_response(service.annotate(submission))


@router.get("/{review_id}/report-card", response_model=ReportCardResponse)
async def get_report_card(
    review_id: str,
    user_context: dict = Depends(require_viewer),
    service: ReviewService = Depends(get_review_service),
    db: Session = Depends(get_db),
):
    """Render the plain-text report card of a finalized review."""
    try:
        submission = service.get(review_id)
        brand = db.get(Brand, submission.brand_id)
        deal = db.get(CommercialDeal, submission.deal_id) if submission.deal_id else None
        brand_name = brand.name if brand else None
        content = render_report_card(
            submission,
            brand_name=brand_name,
            deal_name=deal.deal_name if deal else None,
        )
    except ReviewError as e:
        raise to_http_exception(e)

    return ReportCardResponse(
        submission_id=submission.id,
        filename=report_filename(brand_name),
        content=content,
    )


# ============= WRITE ROUTES =============

@router.post("", response_model=ReviewResponse, status_code=status.HTTP_201_CREATED)
async def create_review(
    payload: ReviewCreate,
    user_context: dict = Depends(require_operator),
    service: ReviewService = Depends(get_review_service),
    db: Session = Depends(get_db),
):
    """Submit a brand for medical review."""
    try:
        submission = service.create(
            brand_id=payload.brand_id,
            deal_id=payload.deal_id,
            revenue_estimate=payload.revenue_estimate,
            actor_id=user_context["actor_id"],
        )
    except ReviewError as e:
        db.rollback()
        raise to_http_exception(e)

    db.commit()
    return _to_response(service.annotate(submission))


@router.post("/{review_id}/bd-approval", response_model=ReviewResponse)
async def approve_bd(
    review_id: str,
    payload: BDApprovalRequest,
    user_context: dict = Depends(require_operator),
    service: ReviewService = Depends(get_review_service),
    db: Session = Depends(get_db),
):
    """Business-development approval: move the review into medical evaluation."""
    try:
        submission = service.approve_bd(
            review_id,
            actor_id=user_context["actor_id"],
            revenue_estimate=payload.revenue_estimate,
            notes=payload.notes,
            expected_version=payload.expected_version,
        )
    except ReviewError as e:
        db.rollback()
        raise to_http_exception(e)

    db.commit()
    return _to_response(service.annotate(submission))


@router.patch("/{review_id}/revenue-estimate", response_model=ReviewResponse)
async def update_revenue_estimate(
    review_id: str,
    payload: RevenueEstimateRequest,
    user_context: dict = Depends(require_operator),
    service: ReviewService = Depends(get_review_service),
    db: Session = Depends(get_db),
):
    """Set, or explicitly clear, the revenue estimate."""
    try:
        submission = service.update_revenue_estimate(
            review_id,
            amount=payload.amount,
            clear=payload.clear,
            actor_id=user_context["actor_id"],
            expected_version=payload.expected_version,
        )
    except ReviewError as e:
        db.rollback()
        raise to_http_exception(e)

    db.commit()
    return _to_response(service.annotate(submission))


@router.post("/{review_id}/scores", response_model=ReviewResponse)
async def submit_scores(
    review_id: str,
    payload: ScoresRequest,
    user_context: dict = Depends(require_operator),
    service: ReviewService = Depends(get_review_service),
    db: Session = Depends(get_db),
):
    """Save the three sub-scores; the grade is derived server-side."""
    try:
        submission = service.submit_scores(
            review_id,
            clinical=payload.clinical,
            safety=payload.safety,
            transparency=payload.transparency,
            actor_id=user_context["actor_id"],
            notes=payload.notes,
            clinical_claims=payload.clinical_claims,
            safety_concerns=payload.safety_concerns,
            required_disclaimers=payload.required_disclaimers,
            expected_version=payload.expected_version,
        )
    except ReviewError as e:
        db.rollback()
        raise to_http_exception(e)

    db.commit()
    return _to_response(service.annotate(submission))


@router.post("/{review_id}/decision", response_model=ReviewResponse)
async def final_decision(
    review_id: str,
    payload: DecisionRequest,
    user_context: dict = Depends(require_operator),
    service: ReviewService = Depends(get_review_service),
    db: Session = Depends(get_db),
):
    """Record approved, rejected or requires_revision."""
    try:
        submission = service.final_decision(
            review_id,
            decision=payload.decision,
            actor_id=user_context["actor_id"],
            notes=payload.notes,
            expected_version=payload.expected_version,
        )
    except ReviewError as e:
        db.rollback()
        raise to_http_exception(e)

    db.commit()
    return _to_response(service.annotate(submission))


@router.post("/{review_id}/reopen", response_model=ReviewResponse)
async def reopen_review(
    review_id: str,
    payload: Optional[VersionedRequest] = None,
    user_context: dict = Depends(require_operator),
    service: ReviewService = Depends(get_review_service),
    db: Session = Depends(get_db),
):
    """Resume evaluation of a review sent back for revision."""
    try:
        submission = service.reopen(
            review_id,
            actor_id=user_context["actor_id"],
            expected_version=payload.expected_version if payload else None,
        )
    except ReviewError as e:
        db.rollback()
        raise to_http_exception(e)

    db.commit()
    return _to_response(service.annotate(submission))


@router.post("/{review_id}/report-generated", response_model=ReviewResponse)
async def mark_report_generated(
    review_id: str,
    payload: Optional[VersionedRequest] = None,
    user_context: dict = Depends(require_operator),
    service: ReviewService = Depends(get_review_service),
    db: Session = Depends(get_db),
):
    """Record that the report card was generated."""
    try:
        submission = service.mark_report_generated(
            review_id,
            actor_id=user_context["actor_id"],
            expected_version=payload.expected_version if payload else None,
        )
    except ReviewError as e:
        db.rollback()
        raise to_http_exception(e)

    db.commit()
    return _to_response(service.annotate(submission))
