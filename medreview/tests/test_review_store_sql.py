"""
Tests for the SQLAlchemy submission store and deal reader.
"""
from decimal import Decimal

import pytest

from medreview.core.exceptions import ConcurrentModification, DuplicateActiveSubmission, NotFound
from medreview.db.models import CommercialDeal, MedicalReview
from medreview.services.commercial_status import CommercialStatus
from medreview.services.grading import Grade, ScoreRecord
from medreview.services.review_service import ReviewService, revalidate_grades
from medreview.services.review_states import ReviewStatus
from medreview.services.review_store import SqlDealReader, SqlSubmissionStore
from medreview.services.review_workflow import new_submission

from medreview.tests.conftest import make_clock


@pytest.fixture
def sql_store(db_session):
    return SqlSubmissionStore(db_session)


@pytest.fixture
def sql_service(db_session, sql_store):
    return ReviewService(sql_store, SqlDealReader(db_session), clock=make_clock())


class TestSqlSubmissionStore:
    """Store contract over the medical_reviews table."""

    def test_create_and_get(self, sql_store, make_brand, db_session):
        brand = make_brand()
        created = sql_store.create(new_submission("s-1", brand.id, revenue_estimate=1500))
        db_session.commit()

        loaded = sql_store.get("s-1")
        assert loaded.status == ReviewStatus.PENDING_BD_APPROVAL
        assert loaded.revenue_estimate == Decimal("1500")
        assert loaded.version == 1
        assert created.id == loaded.id

    def test_missing_brand(self, sql_store, db_session):
        with pytest.raises(NotFound):
            sql_store.create(new_submission("s-1", "no-such-brand"))

    def test_missing_deal(self, sql_store, make_brand):
        brand = make_brand()
        with pytest.raises(NotFound) as exc:
            sql_store.create(new_submission("s-1", brand.id, deal_id="no-such-deal"))
        assert exc.value.details == {"deal_id": "no-such-deal"}

    def test_deal_of_another_brand(self, sql_store, make_brand, db_session):
        owner = make_brand("Owner", deal_stages=["closed_won"])
        other = make_brand("Other")
        deal_id = db_session.query(CommercialDeal).filter(CommercialDeal.brand_id == owner.id).one().id

        with pytest.raises(NotFound) as exc:
            sql_store.create(new_submission("s-1", other.id, deal_id=deal_id))
        assert exc.value.details == {"deal_id": deal_id, "brand_id": other.id}
        assert sql_store.get_by_brand(other.id) == []

        created = sql_store.create(new_submission("s-2", owner.id, deal_id=deal_id))
        assert created.deal_id == deal_id

    def test_missing_submission(self, sql_store):
        with pytest.raises(NotFound):
            sql_store.get("nope")
        with pytest.raises(NotFound):
            sql_store.update("nope", {"bd_notes": "x"}, 1)

    def test_unique_active_brand_enforced_by_database(self, sql_store, make_brand, db_session):
        brand = make_brand()
        sql_store.create(new_submission("s-1", brand.id))
        db_session.commit()
        with pytest.raises(DuplicateActiveSubmission):
            sql_store.create(new_submission("s-2", brand.id))
        assert [s.id for s in sql_store.get_by_brand(brand.id)] == ["s-1"]

    def test_versioned_update(self, sql_store, make_brand, db_session):
        brand = make_brand()
        sql_store.create(new_submission("s-1", brand.id))
        updated = sql_store.update("s-1", {
            "status": ReviewStatus.IN_MEDICAL_REVIEW,
            "scores": ScoreRecord(9, 9, 8),
            "overall_grade": Grade.A,
            "clinical_claims": ("Claim",),
        }, 1)
        assert updated.version == 2
        assert updated.scores == ScoreRecord(9, 9, 8)
        assert updated.overall_grade == Grade.A
        assert updated.clinical_claims == ("Claim",)

        with pytest.raises(ConcurrentModification) as exc:
            sql_store.update("s-1", {"bd_notes": "late"}, 1)
        assert exc.value.details["current_version"] == 2
        assert sql_store.get("s-1").bd_notes is None

    def test_active_brand_column_follows_status(self, sql_store, make_brand, db_session):
        brand = make_brand()
        sql_store.create(new_submission("s-1", brand.id))
        sql_store.update("s-1", {"status": ReviewStatus.REJECTED}, 1)
        row = db_session.get(MedicalReview, "s-1")
        db_session.refresh(row)
        assert row.active_brand_id is None
        assert sql_store.get_active_by_brand(brand.id) is None

    def test_list_by_state(self, sql_store, make_brand):
        a, b = make_brand("A"), make_brand("B")
        sql_store.create(new_submission("s-1", a.id))
        sql_store.create(new_submission("s-2", b.id))
        sql_store.update("s-2", {"status": ReviewStatus.IN_MEDICAL_REVIEW}, 1)
        assert [s.id for s in sql_store.list_by_state(ReviewStatus.IN_MEDICAL_REVIEW)] == ["s-2"]
        assert len(sql_store.list_by_state()) == 2


class TestSqlDealReader:
    def test_list_deals(self, db_session, make_brand):
        brand = make_brand(deal_stages=["proposal", "closed_won"])
        other = make_brand("Other", deal_stages=["rejected"])
        reader = SqlDealReader(db_session)
        assert sorted(d.stage for d in reader.list_deals_by_brand(brand.id)) == ["closed_won", "proposal"]
        assert len(reader.list_deals_for_brands([brand.id, other.id])) == 3
        assert reader.list_deals_for_brands([]) == []


class TestSqlService:
    """Service on the SQL store, end to end."""

    def test_lifecycle(self, sql_service, make_brand, db_session):
        brand = make_brand(deal_stages=["negotiation"])
        s = sql_service.create(brand.id, revenue_estimate=50000)
        s = sql_service.approve_bd(s.id, "bd-1")
        s = sql_service.submit_scores(s.id, 9, 9, 8, actor_id="md-1")
        db_session.commit()

        assert s.overall_grade == Grade.A
        assert s.revenue_estimate == Decimal("50000")
        assert sql_service.commercial_status(brand.id) == CommercialStatus.PROSPECT
        assert sql_service.annotate(s).at_risk is True

        s = sql_service.final_decision(s.id, "approved", actor_id="md-1")
        assert s.status == ReviewStatus.APPROVED
        assert s.final_decision_by == "md-1"

    def test_revalidate_repairs_drift(self, sql_service, sql_store, make_brand, db_session):
        brand = make_brand()
        s = sql_service.create(brand.id)
        sql_service.approve_bd(s.id, "bd-1")
        sql_service.submit_scores(s.id, 9, 9, 8)
        db_session.query(MedicalReview).filter(MedicalReview.id == s.id).update({"overall_grade": Grade.F})
        db_session.commit()

        assert revalidate_grades(sql_store) == {"checked": 1, "drifted": 1, "repaired": 1}
        assert sql_store.get(s.id).overall_grade == Grade.A
        assert revalidate_grades(sql_store) == {"checked": 1, "drifted": 0, "repaired": 0}
