"""Base repository with common CRUD operations."""

from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any, Generic, TypeVar
from uuid import uuid4

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from passgate.exceptions import PersistenceError

T = TypeVar("T")


class BaseRepository(Generic[T]):
    """Base repository with common CRUD operations.

    Subclasses must set:
    - model: The SQLAlchemy model class

    Repositories never commit: the caller owns the transaction, so a
    ceremony can roll back every write it made on failure.
    """

    model: type[T]  # Set by subclasses

    def __init__(self, session: AsyncSession):
        """Initialize repository with database session.

        Args:
            session: SQLAlchemy async session
        """
        self.session = session

    async def create(self, data: dict[str, Any]) -> T:
        """Create a new entity.

        Args:
            data: Entity data

        Returns:
            Created entity
        """
        entity = self.model(**{"id": str(uuid4()), **data})
        self.session.add(entity)
        await self.session.flush()
        return entity


@contextmanager
def store_errors(operation: str) -> Iterator[None]:
    """Re-raise SQLAlchemy failures as PersistenceError.

    Args:
        operation: Short description used in the error message
    """
    try:
        yield
    except SQLAlchemyError as e:
        raise PersistenceError(f"Store failure during {operation}") from e
