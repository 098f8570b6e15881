"""
Database session management with SQLAlchemy.
"""
from sqlalchemy import create_engine
from sqlalchemy.ext.declarative import declarative_base
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import StaticPool
from typing import Generator
from contextlib import contextmanager

from medreview.core.config import settings
from medreview.core.logging import get_logger

logger = get_logger(__name__)


def _engine_kwargs(url: str) -> dict:
    """Pool settings per backend; SQLite gets a single shared connection."""
    if url.startswith("sqlite"):
        return {
            "connect_args": {"check_same_thread": False},
            "poolclass": StaticPool,
        }
    return {
        "pool_pre_ping": True,
        "pool_size": 10,
        "max_overflow": 20,
        "pool_timeout": 30,
        "pool_recycle": 1800,
    }


engine = create_engine(settings.DATABASE_URL, **_engine_kwargs(settings.DATABASE_URL))

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


def get_db() -> Generator[Session, None, None]:
    """Dependency for getting database session."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def get_db_context() -> Generator[Session, None, None]:
    """Context manager for database session."""
    db = SessionLocal()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


def init_db():
    """
    Initialize database connection and run startup tasks.

    Schema is managed by Alembic migrations (`alembic upgrade head`).

    Startup order:
    1. Run preflight check (validates DB connectivity)
    2. Verify schema exists; create it only when DEBUG=true
    3. Seed demo data ONLY if SEED_DEMO=true
    """
    from sqlalchemy import inspect, text

    from medreview.db.preflight import run_db_preflight
    run_db_preflight()

    # Import models to register them with the metadata
    from medreview.db import models  # noqa

    inspector = inspect(engine)
    existing_tables = inspector.get_table_names()
    required_tables = ['brands', 'commercial_deals', 'medical_reviews', 'audit_logs']

    missing = [t for t in required_tables if t not in existing_tables]
    if missing:
        logger.warning(f"Database schema missing tables: {missing}")
        if settings.DEBUG:
            logger.warning("DEBUG=true: auto-creating tables (not for production)")
            Base.metadata.create_all(bind=engine)
        else:
            logger.error("Run `alembic upgrade head` before starting the API")
            return
    else:
        logger.info(f"Database schema verified: {len(existing_tables)} tables found")

    if 'alembic_version' in existing_tables:
        try:
            with engine.connect() as conn:
                version = conn.execute(text("SELECT version_num FROM alembic_version")).scalar()
                logger.info(f"Alembic migration version: {version}")
        except Exception as e:
            logger.warning(f"Could not read migration version: {e}")

    if settings.SEED_DEMO:
        from medreview.db.seed import seed_demo_data
        logger.info("SEED_DEMO=true: seeding demo data")
        seed_demo_data()
