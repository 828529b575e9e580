from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
import logging

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.exceptions import AppError, ConflictError, StorageError

logger = logging.getLogger(__name__)


@contextmanager
def atomic(db: Session, *, operation: str) -> Iterator[Session]:
    """Run one all-or-nothing unit of work and commit it.

    Business errors roll back untouched. A unique-index violation means another
    transaction claimed the same room or instructor slot first; the caller may
    re-issue. Anything else from the store is logged and surfaced generically.
    """
    try:
        yield db
        db.commit()
    except AppError:
        db.rollback()
        raise
    except IntegrityError as exc:
        db.rollback()
        logger.info("Uniqueness violation during %s: %s", operation, exc.orig)
        raise ConflictError(
            "The slot was claimed by a concurrent request. Refresh and try again.",
            details={"operation": operation},
            reason="concurrent_claim",
        ) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception("Storage failure during %s", operation)
        raise StorageError() from exc
