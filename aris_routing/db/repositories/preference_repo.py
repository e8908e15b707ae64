"""Repository for tenant AI preferences."""

from typing import Any, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from aris_routing.db.models.preferences import TenantPreferencesORM
from aris_routing.db.repositories.base import BaseRepository


class PreferenceRepository(BaseRepository[TenantPreferencesORM]):
    """Lookup and upsert of ``tenant_ai_preferences`` rows.

    Args:
        session: AsyncSession for database operations.
    """

    def __init__(self, session: AsyncSession) -> None:
        super().__init__(session, TenantPreferencesORM)

    async def get_exact(
        self, tenant_id: str, user_id: Optional[str]
    ) -> Optional[TenantPreferencesORM]:
        """Return the row for exactly this scope (user_id None means tenant-wide)."""
        orm = TenantPreferencesORM
        stmt = select(orm).where(orm.tenant_id == tenant_id)
        stmt = stmt.where(orm.user_id.is_(None) if user_id is None else orm.user_id == user_id)
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_for_scope(
        self, tenant_id: str, user_id: Optional[str]
    ) -> Optional[TenantPreferencesORM]:
        """Return the user-specific row, falling back to the tenant-wide row.

        Args:
            tenant_id: Tenant identifier.
            user_id: User identifier, or None for tenant-wide only.

        Returns:
            The most specific matching row, or None when neither exists.
        """
        if user_id is not None:
            row = await self.get_exact(tenant_id, user_id)
            if row is not None:
                return row
        return await self.get_exact(tenant_id, None)

    async def upsert(
        self, tenant_id: str, user_id: Optional[str], **values: Any
    ) -> TenantPreferencesORM:
        """Create or update the row for a scope.

        Args:
            tenant_id: Tenant identifier.
            user_id: User identifier, or None for the tenant-wide row.
            **values: Column values (ai_enabled, rule lists, instructions).

        Returns:
            The stored row.
        """
        existing = await self.get_exact(tenant_id, user_id)
        if existing is None:
            return await self.create(tenant_id=tenant_id, user_id=user_id, **values)
        return await self.update(existing, **values)
