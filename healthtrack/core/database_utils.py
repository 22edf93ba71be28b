"""
Database utility functions for consistent session management.

Sessions are always obtained through get_db_session() so that commit, rollback
and close happen in one place.
"""

import logging
from contextlib import contextmanager
from typing import Callable, Generator, Optional

from sqlalchemy.orm import Session

from healthtrack.db.session import SessionLocal

logger = logging.getLogger(__name__)


@contextmanager
def get_db_session(session_factory: Optional[Callable[[], Session]] = None) -> Generator[Session, None, None]:
    """
    Get a database session with proper cleanup using context manager.

    Usage:
        with get_db_session() as db:
            result = db.query(Model).all()

    Commits when the block exits normally, rolls back and re-raises otherwise.
    """
    db = (session_factory or SessionLocal)()
    try:
        yield db
        db.commit()
    except Exception as e:
        db.rollback()
        logger.error(f"Database session error: {e}")
        raise
    finally:
        db.close()
