"""Database engine and session management."""

from __future__ import annotations

import logging

from collections.abc import Iterator
from contextlib import contextmanager

from sqlalchemy import Engine, create_engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from stepwise.infrastructure.persistence.orm import Base
from stepwise.shared.exceptions import DuplicateRecordError, PersistenceError

logger = logging.getLogger(__name__)


class Database:
    """Owns the engine and hands out transactional sessions."""

    def __init__(self, url: str, echo: bool = False) -> None:
        self.url = url
        self.engine: Engine = create_engine(url, echo=echo, pool_pre_ping=True)
        self._session_factory = sessionmaker(
            self.engine,
            expire_on_commit=False,
            autoflush=False,
        )

    def create_all(self) -> None:
        """Create any missing tables."""
        Base.metadata.create_all(self.engine)
        logger.info("Database schema ready at %s", self.engine.url.render_as_string())

    @contextmanager
    def session_scope(self) -> Iterator[Session]:
        """Provide a transactional scope: commit on success, roll back on error.

        Raises:
            DuplicateRecordError: If a write hit a uniqueness constraint.
            PersistenceError: On any other database failure.
        """
        session = self._session_factory()
        try:
            yield session
            session.commit()
        except IntegrityError as e:
            session.rollback()
            raise DuplicateRecordError(str(e.orig)) from e
        except SQLAlchemyError as e:
            session.rollback()
            raise PersistenceError(f"Database error: {e}") from e
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def dispose(self) -> None:
        self.engine.dispose()
