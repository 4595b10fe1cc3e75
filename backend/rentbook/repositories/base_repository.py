# backend/rentbook/repositories/base_repository.py
"""
Base Repository Pattern for the rentbook backend.

Repositories own data access only. They flush but never commit:
transaction boundaries belong to the service layer.
"""

import logging
from typing import Any, Generic, NoReturn, Type, TypeVar

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from ..core.exceptions import RepositoryException
from ..database import is_transient_contention
from ..database.session_utils import supports_row_locks

# Type variable for generic model support
T = TypeVar("T")

logger = logging.getLogger(__name__)


class BaseRepository(Generic[T]):
    """
    Concrete base repository with common data access patterns.

    Attributes:
        db: SQLAlchemy session
        model: SQLAlchemy model class
    """

    def __init__(self, db: Session, model: Type[T]):
        self.db = db
        self.model = model
        self.logger = logging.getLogger(f"{__name__}.{model.__name__}")

    @property
    def can_lock_rows(self) -> bool:
        return supports_row_locks(self.db)

    def _raise_repository_error(self, action: str, exc: SQLAlchemyError) -> NoReturn:
        """Wrap a data access failure; lock contention passes through for the retry loop."""
        if is_transient_contention(exc):
            raise exc
        self.logger.error(f"Error trying to {action}: {str(exc)}")
        raise RepositoryException(f"Failed to {action}: {str(exc)}") from exc

    def create(self, **kwargs: Any) -> T:
        """
        Create a new entity.

        Note: Does NOT commit - transaction management is handled by service layer.
        """
        try:
            entity = self.model(**kwargs)
            self.db.add(entity)
            self.db.flush()  # Get ID without committing
            return entity
        except IntegrityError as exc:
            self.logger.error(
                "Integrity error creating %s: %s", self.model.__name__, exc, exc_info=True
            )
            raise RepositoryException(f"Integrity constraint violated: {exc}") from exc
        except SQLAlchemyError as e:
            self._raise_repository_error(f"create {self.model.__name__}", e)

    def flush(self) -> None:
        """Flush pending ORM changes."""
        try:
            self.db.flush()
        except SQLAlchemyError as e:
            self._raise_repository_error(f"flush {self.model.__name__} changes", e)

