# backend/provider_calendar/repositories/base_repository.py
"""
Base Repository for the provider calendar core.

Shared data access for the availability, job schedule and reschedule
request repositories:
- Primary key lookup, optionally row-locked for a state transition
- Create/update that run the subclass ``_validate`` hook first
- SQLAlchemy errors surfaced as RepositoryException

Repositories flush so generated ids are visible, but never commit; the
calling service owns the transaction.
"""

import logging
from typing import Any, Dict, Generic, List, Optional, Type, TypeVar

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Query, Session

from ..core.exceptions import RepositoryException

T = TypeVar("T")

logger = logging.getLogger(__name__)


def get_dialect_name(session: Session, default: str = "sqlite") -> str:
    """Dialect of the session's bind ("postgresql", "sqlite", ...)."""
    try:
        bind = session.get_bind()
    except SQLAlchemyError:
        return default
    return getattr(getattr(bind, "dialect", None), "name", None) or default


class BaseRepository(Generic[T]):
    """
    Generic repository over one calendar model.

    Attributes:
        db: SQLAlchemy session shared with the owning service
        model: Mapped class this repository reads and writes
    """

    def __init__(self, db: Session, model: Type[T]):
        self.db = db
        self.model = model
        self.logger = logging.getLogger(f"{__name__}.{model.__name__}")

    @property
    def dialect_name(self) -> str:
        return get_dialect_name(self.db)

    def get_by_id(self, id: str, for_update: bool = False) -> Optional[T]:
        """
        Fetch one row by primary key.

        ``for_update`` takes a row lock (PostgreSQL) so a status transition
        cannot interleave with another writer.
        """
        try:
            query = self._build_query().filter(self.model.id == id)
            if for_update:
                query = query.with_for_update()
            return query.first()
        except SQLAlchemyError as e:
            self.logger.error(f"Error loading {self.model.__name__} {id}: {str(e)}")
            raise RepositoryException(f"Failed to load {self.model.__name__} {id}: {str(e)}")

    def create(self, **values: Any) -> T:
        """Validate, add and flush a new row. Does not commit."""
        self._validate(values, existing=None)
        entity = self.model(**values)
        try:
            self.db.add(entity)
            self.db.flush()
        except IntegrityError as e:
            self.logger.error(f"Constraint violated creating {self.model.__name__}: {e.orig}")
            self.db.rollback()
            raise RepositoryException(f"Constraint violated creating {self.model.__name__}: {e.orig}")
        except SQLAlchemyError as e:
            self.logger.error(f"Error creating {self.model.__name__}: {str(e)}")
            self.db.rollback()
            raise RepositoryException(f"Failed to create {self.model.__name__}: {str(e)}")
        return entity

    def update(self, id: str, **changes: Any) -> Optional[T]:
        """
        Apply ``changes`` to an existing row.

        ``_validate`` sees the changes together with the current row, so
        invariants are checked on the merged state. Returns None when the
        row does not exist.
        """
        entity = self.get_by_id(id)
        if entity is None:
            return None

        self._validate(changes, existing=entity)
        for key, value in changes.items():
            setattr(entity, key, value)
        try:
            self.db.flush()
        except SQLAlchemyError as e:
            self.logger.error(f"Error updating {self.model.__name__} {id}: {str(e)}")
            self.db.rollback()
            raise RepositoryException(f"Failed to update {self.model.__name__} {id}: {str(e)}")
        return entity

    def delete(self, id: str) -> bool:
        """Delete one row by primary key. Returns False when it does not exist."""
        entity = self.get_by_id(id)
        if entity is None:
            return False
        try:
            self.db.delete(entity)
            self.db.flush()
        except SQLAlchemyError as e:
            self.logger.error(f"Error deleting {self.model.__name__} {id}: {str(e)}")
            self.db.rollback()
            raise RepositoryException(f"Failed to delete {self.model.__name__} {id}: {str(e)}")
        return True

    def flush(self) -> None:
        self.db.flush()

    def refresh(self, instance: T) -> None:
        self.db.refresh(instance)

    def _validate(self, values: Dict[str, Any], existing: Optional[T]) -> None:
        """
        Check model invariants before a write.

        Subclasses override this; they may normalize ``values`` in place and
        raise ValidationException to reject the write.
        """

    def _build_query(self) -> Query:
        return self.db.query(self.model)

    def _execute_query(self, query: Query) -> List[T]:
        try:
            return query.all()
        except SQLAlchemyError as e:
            self.logger.error(f"{self.model.__name__} query failed: {str(e)}")
            raise RepositoryException(f"{self.model.__name__} query failed: {str(e)}")
