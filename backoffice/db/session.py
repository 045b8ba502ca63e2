"""
Database session management.
"""
import logging
from contextlib import contextmanager
from typing import Generator, Iterator

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.exc import DBAPIError, IntegrityError
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import StaticPool

from backoffice.core.config import get_settings
from backoffice.core.exceptions import ConflictError, ServiceUnavailableError

logger = logging.getLogger(__name__)

settings = get_settings()


def build_engine(url: str) -> Engine:
    """Create an engine; in-memory SQLite shares one connection across threads."""
    if url.startswith("sqlite"):
        return create_engine(
            url,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    return create_engine(url, pool_pre_ping=True)


engine = build_engine(settings.DATABASE_URL)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def get_db() -> Generator[Session, None, None]:
    """Dependency that provides a database session."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def transaction(db: Session) -> Iterator[Session]:
    """
    Run a block as one all-or-nothing unit of work.

    Commits when the block exits cleanly, rolls back on any exception.
    Integrity violations surface as ConflictError, other driver failures
    as ServiceUnavailableError. Nothing is retried.
    """
    try:
        yield db
        db.commit()
    except IntegrityError as e:
        db.rollback()
        logger.warning(f"Integrity violation, transaction rolled back: {e.orig}")
        raise ConflictError("Write violates a uniqueness or integrity constraint") from e
    except DBAPIError as e:
        db.rollback()
        logger.error(f"Relational store failure, transaction rolled back: {e}")
        raise ServiceUnavailableError("Database unavailable") from e
    except Exception:
        db.rollback()
        raise
