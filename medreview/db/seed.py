"""
Demo data seeding for development.

Reviews are driven through ReviewService so seeded rows obey the same
transition rules as real ones. Run: python -m medreview.db.seed
"""
import uuid
from decimal import Decimal

from medreview.core.logging import get_logger
from medreview.db.models import Brand, CommercialDeal
from medreview.db.session import SessionLocal
from medreview.services.review_events import AuditTrailSubscriber, ReviewEventBus
from medreview.services.review_service import ReviewService
from medreview.services.review_store import SqlDealReader, SqlSubmissionStore

logger = get_logger(__name__)

SEED_ACTOR = "seed"

# (name, website, deal stage or None)
BRANDS = [
    ("Northwind Botanicals", "https://northwind.example", "negotiation"),
    ("Helio Sleep Labs", "https://helio.example", "closed_won"),
    ("Vitalis Nutrition", "https://vitalis.example", "closed_lost"),
    ("Cardia Supplements", "https://cardia.example", None),
    ("Lumen Skin Science", "https://lumen.example", "proposal"),
]


def _brand_id(name: str) -> str:
    return str(uuid.uuid5(uuid.NAMESPACE_DNS, name))


def seed_demo_data():
    """
    Create demo brands, deals and reviews in each workflow state.

    Does nothing if brands already exist.
    """
    db = SessionLocal()
    try:
        if db.query(Brand).first():
            logger.info("Demo data already exists. Skipping...")
            return

        deals = {}
        for name, website, stage in BRANDS:
            brand_id = _brand_id(name)
            db.add(Brand(id=brand_id, name=name, website=website))
            if stage:
                deal = CommercialDeal(
                    id=str(uuid.uuid4()),
                    brand_id=brand_id,
                    deal_name=f"{name} launch campaign",
                    deal_value=Decimal("25000"),
                    deal_stage=stage,
                )
                db.add(deal)
                deals[name] = deal.id
        db.flush()

        bus = ReviewEventBus()
        bus.subscribe(AuditTrailSubscriber(db))
        service = ReviewService(SqlSubmissionStore(db), SqlDealReader(db), bus)

        def start(name: str, revenue: int):
            return service.create(
                _brand_id(name), deal_id=deals.get(name),
                revenue_estimate=revenue, actor_id=SEED_ACTOR,
            )

        # Waiting on BD
        start("Cardia Supplements", 12000)

        # In evaluation, graded A while still a prospect (at risk)
        r = start("Northwind Botanicals", 50000)
        service.approve_bd(r.id, SEED_ACTOR, notes="Strong inbound interest")
        service.submit_scores(
            r.id, 9, 9, 8, actor_id=SEED_ACTOR,
            clinical_claims=["Supports restful sleep"],
        )

        # Approved partner
        r = start("Helio Sleep Labs", 80000)
        service.approve_bd(r.id, SEED_ACTOR)
        service.submit_scores(r.id, 8, 9, 7, actor_id=SEED_ACTOR)
        service.final_decision(r.id, "approved", actor_id=SEED_ACTOR, notes="Meets all standards")

        # Rejected
        r = start("Vitalis Nutrition", 30000)
        service.approve_bd(r.id, SEED_ACTOR)
        service.submit_scores(
            r.id, 3, 2, 4, actor_id=SEED_ACTOR,
            safety_concerns=["Undisclosed stimulant content"],
        )
        service.final_decision(r.id, "rejected", actor_id=SEED_ACTOR)

        # Sent back for revision
        r = start("Lumen Skin Science", 40000)
        service.approve_bd(r.id, SEED_ACTOR)
        service.submit_scores(
            r.id, 6, 7, 5, actor_id=SEED_ACTOR,
            required_disclaimers=["Not evaluated by the FDA"],
        )
        service.final_decision(
            r.id, "requires_revision", actor_id=SEED_ACTOR,
            notes="Add third-party lab testing",
        )

        db.commit()
        logger.info(f"Demo data seeded: {len(BRANDS)} brands, {len(deals)} deals, 5 reviews")

    except Exception:
        db.rollback()
        logger.exception("Demo seeding failed")
        raise
    finally:
        db.close()


if __name__ == "__main__":
    from medreview.db.session import init_db
    from medreview.core.logging import setup_logging

    setup_logging()
    init_db()
    seed_demo_data()
