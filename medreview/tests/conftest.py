"""
Shared fixtures.

Environment is configured before any medreview module is imported so the
settings object and the engine bind to an in-memory SQLite database.
"""
import os

os.environ["DEBUG"] = "true"
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["SECRET_KEY"] = "test-secret-key-0123456789abcdef0123456789"
os.environ["EVENT_DISPATCH"] = "inline"
os.environ["SEED_DEMO"] = "false"

import itertools
import uuid
from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient

from medreview.core.security import create_access_token
from medreview.db import models
from medreview.db.session import Base, SessionLocal, engine, get_db
from medreview.main import app
from medreview.services.commercial_status import DealRecord
from medreview.services.review_events import ReviewEventBus
from medreview.services.review_service import ReviewService
from medreview.services.review_store import InMemoryDealReader, InMemorySubmissionStore

BASE_TIME = datetime(2026, 1, 15, 9, 0, tzinfo=timezone.utc)


def make_clock(start: datetime = BASE_TIME):
    """Clock that advances one minute per call."""
    ticks = itertools.count()
    return lambda: start + timedelta(minutes=next(ticks))


# ============= IN-MEMORY FIXTURES =============

@pytest.fixture
def deal_reader():
    return InMemoryDealReader()


@pytest.fixture
def event_log():
    return []


@pytest.fixture
def event_bus(event_log):
    bus = ReviewEventBus()
    bus.subscribe(event_log.append)
    return bus


@pytest.fixture
def store():
    return InMemorySubmissionStore()


@pytest.fixture
def service(store, deal_reader, event_bus):
    return ReviewService(
        store=store,
        deal_reader=deal_reader,
        event_bus=event_bus,
        clock=make_clock(),
        max_retries=3,
    )


@pytest.fixture
def scored(service):
    """A submission in medical review with a complete score record."""
    s = service.create("brand-scored")
    service.approve_bd(s.id, "bd-1", revenue_estimate=50000)
    return service.submit_scores(s.id, 9, 9, 8, actor_id="md-1")


def deal(brand_id: str, stage: str, name: str = "Deal") -> DealRecord:
    return DealRecord(id=str(uuid.uuid4()), brand_id=brand_id, stage=stage, deal_name=name)


# ============= DATABASE FIXTURES =============

@pytest.fixture
def db_session():
    """Fresh schema per test."""
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def make_brand(db_session):
    def _make(name: str = "Northwind Botanicals", deal_stages=()):
        brand = models.Brand(id=str(uuid.uuid4()), name=name)
        db_session.add(brand)
        for i, stage in enumerate(deal_stages):
            db_session.add(models.CommercialDeal(
                id=str(uuid.uuid4()),
                brand_id=brand.id,
                deal_name=f"{name} deal {i + 1}",
                deal_value=Decimal("10000"),
                deal_stage=stage,
            ))
        db_session.commit()
        return brand
    return _make


@pytest.fixture
def client(db_session):
    def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


@pytest.fixture
def auth_headers():
    def _headers(role: str = "operator", sub: str = "user-1"):
        token = create_access_token({"sub": sub, "role": role, "email": f"{sub}@example.com"})
        return {"Authorization": f"Bearer {token}"}
    return _headers
