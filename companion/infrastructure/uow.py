from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from .exceptions import handle_database_error
from .logging import get_logger

logger = get_logger(__name__)


class UnitOfWork:
    """Session scope that commits on success and rolls back on any error."""

    def __init__(self, SessionLocal: sessionmaker, operation: str = "unit of work"):
        self.SessionLocal = SessionLocal
        self.operation = operation

    @contextmanager
    def begin(self) -> Iterator[Session]:
        s = self.SessionLocal()
        try:
            yield s
            s.commit()
        except SQLAlchemyError as e:
            s.rollback()
            logger.warning("Rolled back %s after database error", self.operation)
            raise handle_database_error(e, self.operation) from e
        except Exception:
            s.rollback()
            logger.warning("Rolled back %s", self.operation)
            raise
        finally:
            s.close()
