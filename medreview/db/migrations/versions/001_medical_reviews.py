"""Create brands, commercial_deals, medical_reviews and audit_logs tables

Revision ID: 001_medical_reviews
Revises:
Create Date: 2026-10-19

"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = '001_medical_reviews'
down_revision = None
branch_labels = None
depends_on = None

REVIEW_STATUSES = (
    'pending_bd_approval', 'in_medical_review', 'approved', 'rejected', 'requires_revision',
)
GRADES = ('A', 'B', 'C', 'D', 'F')


def upgrade() -> None:
    op.create_table(
        'brands',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('website', sa.String(length=500), nullable=True),
        sa.Column('contact_email', sa.String(length=255), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=True),
        sa.PrimaryKeyConstraint('id')
    )

    op.create_table(
        'commercial_deals',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('brand_id', sa.String(length=36), nullable=False),
        sa.Column('deal_name', sa.String(length=255), nullable=False),
        sa.Column('deal_value', sa.Numeric(14, 2), nullable=True),
        sa.Column('deal_stage', sa.String(length=50), nullable=False, server_default='prospecting'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['brand_id'], ['brands.id']),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_commercial_deals_brand_id', 'commercial_deals', ['brand_id'])

    op.create_table(
        'medical_reviews',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('brand_id', sa.String(length=36), nullable=False),
        sa.Column('deal_id', sa.String(length=36), nullable=True),
        sa.Column(
            'status',
            sa.Enum(*REVIEW_STATUSES, name='reviewstatus', native_enum=False, length=32),
            nullable=False,
            server_default='pending_bd_approval',
        ),
        sa.Column('active_brand_id', sa.String(length=36), nullable=True),
        sa.Column('revenue_estimate', sa.Numeric(14, 2), nullable=True),
        sa.Column('bd_notes', sa.Text(), nullable=True),
        sa.Column('bd_approved_by', sa.String(length=255), nullable=True),
        sa.Column('bd_approved_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('clinical_evidence_score', sa.Integer(), nullable=True),
        sa.Column('safety_profile_score', sa.Integer(), nullable=True),
        sa.Column('transparency_score', sa.Integer(), nullable=True),
        sa.Column(
            'overall_grade',
            sa.Enum(*GRADES, name='reviewgrade', native_enum=False, length=1),
            nullable=True,
        ),
        sa.Column('medical_notes', sa.Text(), nullable=True),
        sa.Column('clinical_claims', sa.JSON(), nullable=True),
        sa.Column('safety_concerns', sa.JSON(), nullable=True),
        sa.Column('required_disclaimers', sa.JSON(), nullable=True),
        sa.Column('medical_reviewer_id', sa.String(length=255), nullable=True),
        sa.Column('medical_reviewed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('decision_notes', sa.Text(), nullable=True),
        sa.Column('final_decision_by', sa.String(length=255), nullable=True),
        sa.Column('final_decision_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('report_generated_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('version', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.ForeignKeyConstraint(['brand_id'], ['brands.id']),
        sa.ForeignKeyConstraint(['deal_id'], ['commercial_deals.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('active_brand_id', name='uq_medical_review_active_brand'),
        # Scores are all present or all absent
        sa.CheckConstraint(
            '(clinical_evidence_score IS NULL AND safety_profile_score IS NULL AND transparency_score IS NULL) OR '
            '(clinical_evidence_score BETWEEN 1 AND 10 AND safety_profile_score BETWEEN 1 AND 10 '
            'AND transparency_score BETWEEN 1 AND 10)',
            name='ck_medical_review_scores_complete',
        ),
    )
    op.create_index('ix_medical_reviews_brand_id', 'medical_reviews', ['brand_id'])
    op.create_index('ix_medical_reviews_status', 'medical_reviews', ['status'])
    op.create_index('ix_medical_reviews_status_created', 'medical_reviews', ['status', 'created_at'])

    op.create_table(
        'audit_logs',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('timestamp', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=True),
        sa.Column('actor_id', sa.String(length=255), nullable=True),
        sa.Column('action', sa.String(length=100), nullable=False),
        sa.Column('entity_type', sa.String(length=100), nullable=True),
        sa.Column('entity_id', sa.String(length=36), nullable=True),
        sa.Column('details', sa.JSON(), nullable=True),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_audit_logs_id', 'audit_logs', ['id'])
    op.create_index('ix_audit_logs_timestamp', 'audit_logs', ['timestamp'])
    op.create_index('ix_audit_logs_actor_id', 'audit_logs', ['actor_id'])
    op.create_index('ix_audit_logs_action', 'audit_logs', ['action'])
    op.create_index('ix_audit_logs_entity_type', 'audit_logs', ['entity_type'])
    op.create_index('ix_audit_logs_entity', 'audit_logs', ['entity_type', 'entity_id'])


def downgrade() -> None:
    op.drop_table('audit_logs')
    op.drop_table('medical_reviews')
    op.drop_table('commercial_deals')
    op.drop_table('brands')
