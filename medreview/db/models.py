"""
SQLAlchemy ORM models for the medical standards review workflow.
"""
from sqlalchemy import (
    Column, Integer, String, Text, DateTime, Numeric,
    ForeignKey, Enum, JSON, UniqueConstraint, Index, CheckConstraint
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from medreview.db.session import Base
from medreview.services.commercial_status import DealStage
from medreview.services.grading import Grade
from medreview.services.review_states import ReviewStatus


# ============= ENUMS =============
# Stored as constrained VARCHARs so SQLite and Postgres share one schema.
# values_callable keeps the lowercase values rather than the member names.

def enum_values(enum_cls):
    return [e.value for e in enum_cls]


ReviewStatusType = Enum(
    ReviewStatus,
    name='reviewstatus',
    native_enum=False,
    length=32,
    values_callable=enum_values,
    validate_strings=True,
)

GradeType = Enum(
    Grade,
    name='reviewgrade',
    native_enum=False,
    length=1,
    values_callable=enum_values,
    validate_strings=True,
)


# ============= BRANDS & DEALS =============

class Brand(Base):
    """Partner brand under evaluation."""
    __tablename__ = "brands"

    id = Column(String(36), primary_key=True)
    name = Column(String(255), nullable=False)
    website = Column(String(500))
    contact_email = Column(String(255))
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    # Relationships
    deals = relationship("CommercialDeal", back_populates="brand")
    reviews = relationship("MedicalReview", back_populates="brand")


class CommercialDeal(Base):
    """Sales pipeline record for a brand. Read-only from the review workflow."""
    __tablename__ = "commercial_deals"

    id = Column(String(36), primary_key=True)
    brand_id = Column(String(36), ForeignKey("brands.id"), nullable=False, index=True)
    deal_name = Column(String(255), nullable=False)
    deal_value = Column(Numeric(14, 2))
    # Free-form: unknown stages count as in-progress
    deal_stage = Column(String(50), nullable=False, default=DealStage.PROSPECTING.value)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    # Relationships
    brand = relationship("Brand", back_populates="deals")


# ============= MEDICAL REVIEWS =============

class MedicalReview(Base):
    """One brand's medical standards review case."""
    __tablename__ = "medical_reviews"

    id = Column(String(36), primary_key=True)
    brand_id = Column(String(36), ForeignKey("brands.id"), nullable=False, index=True)
    deal_id = Column(String(36), ForeignKey("commercial_deals.id"), nullable=True)
    status = Column(ReviewStatusType, nullable=False, default=ReviewStatus.PENDING_BD_APPROVAL, index=True)

    # Set to brand_id while the review is active, NULL otherwise; unique so a
    # brand can hold at most one active review.
    active_brand_id = Column(String(36), nullable=True)

    revenue_estimate = Column(Numeric(14, 2))
    bd_notes = Column(Text)
    bd_approved_by = Column(String(255))
    bd_approved_at = Column(DateTime(timezone=True))

    clinical_evidence_score = Column(Integer)
    safety_profile_score = Column(Integer)
    transparency_score = Column(Integer)
    overall_grade = Column(GradeType)
    medical_notes = Column(Text)
    clinical_claims = Column(JSON, default=list)
    safety_concerns = Column(JSON, default=list)
    required_disclaimers = Column(JSON, default=list)
    medical_reviewer_id = Column(String(255))
    medical_reviewed_at = Column(DateTime(timezone=True))

    decision_notes = Column(Text)
    final_decision_by = Column(String(255))
    final_decision_at = Column(DateTime(timezone=True))
    report_generated_at = Column(DateTime(timezone=True))

    version = Column(Integer, nullable=False, default=1)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    # Relationships
    brand = relationship("Brand", back_populates="reviews")
    deal = relationship("CommercialDeal")

    __table_args__ = (
        UniqueConstraint('active_brand_id', name='uq_medical_review_active_brand'),
        CheckConstraint(
            '(clinical_evidence_score IS NULL AND safety_profile_score IS NULL AND transparency_score IS NULL) OR '
            '(clinical_evidence_score BETWEEN 1 AND 10 AND safety_profile_score BETWEEN 1 AND 10 '
            'AND transparency_score BETWEEN 1 AND 10)',
            name='ck_medical_review_scores_complete',
        ),
        Index('ix_medical_reviews_status_created', 'status', 'created_at'),
    )


# ============= AUDIT LOG =============

class AuditLog(Base):
    """Compliance-grade audit log of review events."""
    __tablename__ = "audit_logs"

    id = Column(Integer, primary_key=True, index=True)
    timestamp = Column(DateTime(timezone=True), server_default=func.now(), index=True)
    actor_id = Column(String(255), nullable=True, index=True)
    action = Column(String(100), nullable=False, index=True)
    entity_type = Column(String(100), index=True)
    entity_id = Column(String(36))
    details = Column(JSON)

    __table_args__ = (
        Index('ix_audit_logs_entity', 'entity_type', 'entity_id'),
    )
