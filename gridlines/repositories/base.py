"""
Base repository for the gridlines tables.

Repositories wrap one SQLAlchemy model each and own their transactions:
insert-only rows (identities, mappings) commit per write and roll back on
IntegrityError, and snapshot writes go through Core UPDATEs.

Example:
    class GameRepository(BaseRepository[GameIdentityRecord]):
        def find_by_readable_id(self, readable_id: str) -> Optional[GameIdentityRecord]:
            return self.where_first(GameIdentityRecord.readable_id == readable_id)
"""
from abc import ABC
from datetime import datetime
from typing import Any, Generic, List, Optional, Type, TypeVar

from sqlalchemy import desc, func, inspect
from sqlalchemy.orm import Query, Session

T = TypeVar("T")


class BaseRepository(Generic[T], ABC):
    """
    Base repository class providing common data access methods.

    All repositories should extend this class and specify their model type.

    Attributes:
        model_type: The SQLAlchemy model class this repository manages
        db: The database session
    """

    def __init__(self, model_type: Type[T], db: Session):
        """
        Initialize the repository.

        Args:
            model_type: The SQLAlchemy model class
            db: The database session
        """
        self.model_type = model_type
        self.db = db
        self._pk = inspect(model_type).primary_key[0]

    # ========================================================================
    # CRUD Operations
    # ========================================================================

    def find_by_id(self, id: Any) -> Optional[T]:
        """Find a single record by primary key."""
        return self.db.query(self.model_type).filter(self._pk == id).first()

    def create(self, **kwargs) -> T:
        """
        Create a new record.

        Returns:
            The created record (not yet committed to database)
        """
        instance = self.model_type(**kwargs)
        self.db.add(instance)
        return instance

    # ========================================================================
    # Query Builders
    # ========================================================================

    def query(self) -> Query:
        """Get a new query object for this model."""
        return self.db.query(self.model_type)

    def where_first(self, *criterion) -> Optional[T]:
        """Filter records using SQLAlchemy expressions and return first match."""
        return self.db.query(self.model_type).filter(*criterion).first()

    def count(self, *criterion) -> int:
        """Count records matching optional criterion."""
        query = self.db.query(func.count(self._pk))
        if criterion:
            query = query.filter(*criterion)
        return query.scalar() or 0

    def in_date_range(
        self,
        date_field: str,
        start: datetime,
        end: datetime,
        *additional_criterion
    ) -> List[T]:
        """
        Find records within a date range.

        Args:
            date_field: Name of the datetime field to filter on
            start: Start (inclusive)
            end: End (inclusive)
            additional_criterion: Additional filter criteria

        Returns:
            List of records ordered by the date field
        """
        column = getattr(self.model_type, date_field)
        query = self.db.query(self.model_type).filter(column >= start, column <= end)
        if additional_criterion:
            query = query.filter(*additional_criterion)
        return query.order_by(column).all()

    def group_by_and_count(self, group_field: str, *additional_criterion) -> List[tuple]:
        """
        Group by a field and count records in each group.

        Returns:
            List of tuples: [(group_value, count), ...], largest group first
        """
        column = getattr(self.model_type, group_field)
        query = self.db.query(column, func.count(self._pk))
        if additional_criterion:
            query = query.filter(*additional_criterion)
        return query.group_by(column).order_by(desc(func.count(self._pk))).all()
