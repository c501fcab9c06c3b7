"""Generic base repository with async CRUD operations.

This module provides a generic repository pattern for SQLAlchemy models.
All methods are async and use SQLAlchemy 2.0 style.

Usage:
    from booksage.repositories.base import BaseRepository
    from booksage.models.book import Book

    class BookRepository(BaseRepository[Book]):
        pass

    repo = BookRepository(session)
    book = await repo.get_by_id("book-1712345678-abc1234")
"""

from typing import Any, Generic, TypeVar

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from booksage.models.base import Base

# Type variable for model classes
T = TypeVar("T", bound=Base)


class BaseRepository(Generic[T]):
    """Generic repository providing async CRUD operations.

    Type Parameters:
        T: The SQLAlchemy model class

    Attributes:
        session: The async database session
        model_class: The model class for this repository
    """

    model_class: type[T]

    def __init__(self, session: AsyncSession) -> None:
        """Initialize the repository with a database session.

        Args:
            session: Async database session
        """
        self.session = session

    def __init_subclass__(cls, **kwargs: Any) -> None:
        """Extract model class from Generic type parameter."""
        super().__init_subclass__(**kwargs)
        for base in cls.__orig_bases__:  # type: ignore[attr-defined]
            if hasattr(base, "__args__"):
                cls.model_class = base.__args__[0]
                break

    async def get_by_id(self, id: Any) -> T | None:
        """Get a single entity by its primary key.

        Args:
            id: The entity's primary key

        Returns:
            The entity if found, None otherwise
        """
        result = await self.session.execute(
            select(self.model_class).where(self.model_class.id == id)
        )
        return result.scalar_one_or_none()

    async def create(self, entity: T) -> T:
        """Create a new entity.

        Args:
            entity: The entity to create

        Returns:
            The created entity with generated fields (id, timestamps)
        """
        self.session.add(entity)
        await self.session.flush()
        await self.session.refresh(entity)
        return entity

    async def update(self, entity: T) -> T:
        """Flush pending changes of an entity and reload it.

        Args:
            entity: The entity with updated fields

        Returns:
            The updated entity
        """
        await self.session.flush()
        await self.session.refresh(entity)
        return entity

    async def exists(self, id: Any) -> bool:
        """Check if an entity exists.

        Args:
            id: The entity's primary key

        Returns:
            True if exists, False otherwise
        """
        result = await self.session.execute(
            select(func.count())
            .select_from(self.model_class)
            .where(self.model_class.id == id)
        )
        return result.scalar_one() > 0
