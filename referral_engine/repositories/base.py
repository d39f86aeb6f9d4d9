"""
Base repository.

Generic CRUD operations for all repositories.
"""

from typing import Any, Generic, TypeVar

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from referral_engine.models.base import Base

# Generic type for model
ModelType = TypeVar("ModelType", bound=Base)


class BaseRepository(Generic[ModelType]):
    """
    Base repository with generic CRUD operations.

    Provides async database operations for any SQLAlchemy model.

    Type Parameters:
        ModelType: SQLAlchemy model class

    Example:
        class UserRepository(BaseRepository[User]):
            def __init__(self, session: AsyncSession):
                super().__init__(User, session)
    """

    def __init__(
        self, model: type[ModelType], session: AsyncSession
    ) -> None:
        """
        Initialize repository.

        Args:
            model: SQLAlchemy model class
            session: Async database session
        """
        self.model = model
        self.session = session

    async def get_by_id(
        self, id: Any, fresh: bool = False
    ) -> ModelType | None:
        """
        Get entity by primary key.

        Args:
            id: Entity primary key
            fresh: Reload from the database even if cached in the session

        Returns:
            Entity or None if not found
        """
        return await self.session.get(
            self.model, id, populate_existing=fresh
        )

    async def get_by(
        self, **filters: Any
    ) -> ModelType | None:
        """
        Get single entity by filters.

        Args:
            **filters: Column filters

        Returns:
            First matching entity or None
        """
        stmt = select(self.model).filter_by(**filters).limit(1)
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def create(self, **data: Any) -> ModelType:
        """
        Create new entity.

        Args:
            **data: Entity data

        Returns:
            Created entity
        """
        entity = self.model(**data)
        self.session.add(entity)
        await self.session.flush()
        await self.session.refresh(entity)
        return entity

    async def delete(self, id: Any) -> bool:
        """
        Delete entity by primary key.

        Args:
            id: Entity primary key

        Returns:
            True if deleted, False if not found
        """
        entity = await self.get_by_id(id)
        if entity is None:
            return False
        await self.session.delete(entity)
        await self.session.flush()
        return True

    async def count(self, **filters: Any) -> int:
        """
        Count entities matching filters.

        Args:
            **filters: Column filters

        Returns:
            Count of matching entities
        """
        stmt = select(func.count()).select_from(self.model)

        if filters:
            stmt = stmt.filter_by(**filters)

        result = await self.session.execute(stmt)
        return result.scalar() or 0
