"""
Database configuration and session management for SQLAlchemy.
"""

import logging
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Iterator

from sqlalchemy import create_engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker, declarative_base

from app.core.config import DATABASE_URL
from app.core.exceptions import StorageError

logger = logging.getLogger(__name__)

# Engine & Session
connect_args = {"check_same_thread": False} if DATABASE_URL.startswith("sqlite") else {}
engine = create_engine(DATABASE_URL, connect_args=connect_args)
SessionLocal = sessionmaker(
    autocommit=False, autoflush=False, expire_on_commit=False, bind=engine
)

# Declarative Base
Base = declarative_base()


def utcnow() -> datetime:
    """Naive UTC timestamp, matching the ``DateTime`` columns."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


# Import all models to register them with the Base metadata
import app.auth.models  # noqa: E402,F401
import app.articles.models  # noqa: E402,F401
import app.goals.models  # noqa: E402,F401


# Dependency for FastAPI Routes
def get_db():
    """
    Yields a database session for use in FastAPI dependency injection.
    Ensures the session is closed after the request lifecycle.
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def transaction(db: Session, step: str) -> Iterator[Session]:
    """
    Runs a block of writes as one unit of work.

    Commits when the block finishes, rolls back on any exception. Driver and
    ORM failures are re-raised as ``StorageError`` tagged with ``step``; every
    other exception (domain errors, interruption) propagates unchanged after
    the rollback.

    Args:
        db (Session): SQLAlchemy session.
        step (str): Short description of the operation, used in error messages.
    """
    try:
        yield db
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Transaction '{step}' failed: {e}")
        raise StorageError(step, e) from e
    except BaseException:
        db.rollback()
        raise


@contextmanager
def storage_step(db: Session, step: str) -> Iterator[Session]:
    """
    Runs reads outside a unit of work. Nothing is committed.

    Driver and ORM failures are rolled back and re-raised as ``StorageError``
    tagged with ``step``, the same way ``transaction`` reports them.
    """
    try:
        yield db
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Read '{step}' failed: {e}")
        raise StorageError(step, e) from e
