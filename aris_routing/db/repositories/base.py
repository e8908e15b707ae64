"""Base repository with the generic operations shared by every table."""

from typing import Generic, Type, TypeVar

from sqlalchemy.ext.asyncio import AsyncSession

from aris_routing.db.base import Base

T = TypeVar("T", bound=Base)


class BaseRepository(Generic[T]):
    """Common write helpers for one ORM model.

    Transaction control is left to the caller; writes use flush() and
    refresh() rather than commit().

    Args:
        session: AsyncSession for database operations.
        model_class: The ORM model class this repository manages.
    """

    def __init__(self, session: AsyncSession, model_class: Type[T]) -> None:
        self._session = session
        self._model_class = model_class

    async def create(self, **kwargs: object) -> T:
        """Insert a new row.

        Args:
            **kwargs: Column values for the new row.

        Returns:
            The created row with server-generated fields populated.
        """
        instance = self._model_class(**kwargs)
        self._session.add(instance)
        await self._session.flush()
        await self._session.refresh(instance)
        return instance

    async def update(self, instance: T, **kwargs: object) -> T:
        """Apply column changes to a loaded row and flush them.

        Args:
            instance: Row previously loaded through this session.
            **kwargs: Columns to change.

        Returns:
            The refreshed row.
        """
        for key, value in kwargs.items():
            setattr(instance, key, value)
        await self._session.flush()
        await self._session.refresh(instance)
        return instance
