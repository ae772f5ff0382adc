"""
FarmLink - Database Configuration
==================================
Engine, SessionLocal, Base, and get_db dependency.
All models across all modules inherit from this Base.

Store methods each run inside unit_of_work(): one durable commit per call,
the same granularity the checkout workflow is designed around.
"""

import logging
from contextlib import contextmanager

from sqlalchemy import create_engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker, declarative_base, Session
from sqlalchemy.pool import StaticPool
from config.settings import DATABASE_URL
from common.exceptions import StoreError

logger = logging.getLogger("farmlink.db")

if DATABASE_URL.startswith("sqlite"):
    # Local/test database: one shared connection usable from the request threadpool
    engine = create_engine(
        DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
else:
    engine = create_engine(
        DATABASE_URL,
        pool_size=20,
        max_overflow=40,
        pool_timeout=30,
        pool_recycle=1800,  # Refresh connections every 30 minutes
    )

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


def get_db():
    """FastAPI dependency: yields a database session, auto-closes after request."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def unit_of_work(db: Session, operation: str):
    """Commit on success; on a driver error roll back and raise StoreError."""
    try:
        yield
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"{operation} failed: {e}")
        raise StoreError(f"Database operation failed: {operation}", operation=operation) from e
    except Exception:
        db.rollback()
        raise
