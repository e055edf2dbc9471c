# backend/cadence/repositories/base_repository.py
"""
Base Repository Pattern for the scheduling engine.

Repositories wrap one model each and only ever flush; the service layer
decides when a unit of work commits or rolls back.
"""

from abc import ABC, abstractmethod
import logging
from typing import Any, Generic, List, Optional, Type, TypeVar

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from ..core.exceptions import RepositoryException
from ..database.session_utils import get_dialect_name

# Type variable for generic model support
T = TypeVar("T")

logger = logging.getLogger(__name__)


class IRepository(ABC, Generic[T]):
    """
    Abstract repository interface defining core data access methods.
    """

    @abstractmethod
    def get_by_id(self, id: str) -> Optional[T]:
        """Retrieve an entity by its primary key, or None."""

    @abstractmethod
    def create(self, **kwargs: Any) -> T:
        """
        Create a new entity.

        Raises:
            RepositoryException: If creation fails
        """

    @abstractmethod
    def update(self, id: str, **kwargs: Any) -> Optional[T]:
        """Update an existing entity, returning None if it does not exist."""

    @abstractmethod
    def delete(self, id: str) -> bool:
        """Delete an entity by its primary key. True if something was deleted."""


class UniqueViolation(RepositoryException):
    """A uniqueness constraint rejected the write."""


class BaseRepository(IRepository[T]):
    """
    Concrete base repository implementation with common data access patterns.

    Attributes:
        db: SQLAlchemy session
        model: SQLAlchemy model class
    """

    def __init__(self, db: Session, model: Type[T]):
        self.db = db
        self.model = model
        self.logger = logging.getLogger(f"{__name__}.{model.__name__}")

    @property
    def dialect_name(self) -> str:
        return get_dialect_name(self.db)

    def get_by_id(self, id: str) -> Optional[T]:
        try:
            return self.db.get(self.model, id)
        except SQLAlchemyError as e:
            self.logger.error(f"Error getting {self.model.__name__} by id {id}: {str(e)}")
            raise RepositoryException(f"Failed to retrieve {self.model.__name__}: {str(e)}") from e

    def get_for_update(self, id: str) -> Optional[T]:
        """Load an entity with a row lock where the dialect supports one."""
        try:
            query = self.db.query(self.model).filter(self.model.id == id)
            if self.dialect_name == "postgresql":
                query = query.with_for_update()
            return query.first()
        except SQLAlchemyError as e:
            self.logger.error(f"Error locking {self.model.__name__} {id}: {str(e)}")
            raise RepositoryException(f"Failed to lock {self.model.__name__}: {str(e)}") from e

    def create(self, **kwargs: Any) -> T:
        """
        Create a new entity.

        Note: Does NOT commit - transaction management is handled by service layer.
        """
        entity = self.model(**kwargs)
        return self.add(entity)

    def add(self, entity: T) -> T:
        try:
            self.db.add(entity)
            self.db.flush()  # Get ID and hit constraints without committing
            return entity
        except IntegrityError as exc:
            self.logger.info("Integrity error creating %s: %s", self.model.__name__, exc.orig)
            raise UniqueViolation(f"Integrity constraint violated: {exc.orig}") from exc
        except SQLAlchemyError as e:
            self.logger.error(f"Error creating {self.model.__name__}: {str(e)}")
            raise RepositoryException(f"Failed to create {self.model.__name__}: {str(e)}") from e

    def add_all(self, entities: List[T]) -> List[T]:
        """Add several entities in one flush. All of them land or none do."""
        if not entities:
            return []
        try:
            self.db.add_all(entities)
            self.db.flush()
            return entities
        except IntegrityError as exc:
            self.logger.info("Integrity error bulk creating %s: %s", self.model.__name__, exc.orig)
            raise UniqueViolation(f"Integrity constraint violated: {exc.orig}") from exc
        except SQLAlchemyError as e:
            self.logger.error(f"Error bulk creating {self.model.__name__}: {str(e)}")
            raise RepositoryException(f"Failed to bulk create: {str(e)}") from e

    def update(self, id: str, **kwargs: Any) -> Optional[T]:
        """
        Update an existing entity.

        Only updates provided fields, preserves others.
        """
        try:
            entity = self.get_by_id(id)
            if not entity:
                return None

            for key, value in kwargs.items():
                if hasattr(entity, key):
                    setattr(entity, key, value)

            self.db.flush()
            return entity
        except SQLAlchemyError as e:
            self.logger.error(f"Error updating {self.model.__name__} {id}: {str(e)}")
            raise RepositoryException(f"Failed to update {self.model.__name__}: {str(e)}") from e

    def delete(self, id: str) -> bool:
        try:
            entity = self.get_by_id(id)
            if not entity:
                return False

            self.db.delete(entity)
            self.db.flush()
            return True
        except IntegrityError as e:
            self.logger.error(
                f"Cannot delete {self.model.__name__} {id} due to constraints: {str(e)}"
            )
            raise RepositoryException(f"Cannot delete due to existing references: {str(e)}") from e
        except SQLAlchemyError as e:
            self.logger.error(f"Error deleting {self.model.__name__} {id}: {str(e)}")
            raise RepositoryException(f"Failed to delete {self.model.__name__}: {str(e)}") from e

    def exists(self, **kwargs: Any) -> bool:
        """Check if an entity exists with given criteria."""
        return self.db.query(self.model).filter_by(**kwargs).first() is not None

    def count(self, **kwargs: Any) -> int:
        """Count entities matching given criteria."""
        return self.db.query(self.model).filter_by(**kwargs).count()

    def find_by(self, **kwargs: Any) -> List[T]:
        return self.db.query(self.model).filter_by(**kwargs).all()

    def find_one_by(self, **kwargs: Any) -> Optional[T]:
        return self.db.query(self.model).filter_by(**kwargs).first()
