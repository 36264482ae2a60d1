"""
Single commit point for logistics mutations.
A failed commit rolls back everything the operation touched.
"""
import structlog
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from .errors import PersistenceError

logger = structlog.get_logger(__name__)


def commit_or_rollback(db: Session, operation: str) -> None:
    try:
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.error("commit_failed", operation=operation, error=str(exc))
        raise PersistenceError(
            f"Could not save {operation}; nothing was changed, retry the whole operation",
            details={"operation": operation},
        ) from exc
