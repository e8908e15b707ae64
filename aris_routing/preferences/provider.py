"""Tenant preference providers: in-memory, database-backed, and TTL-memoised."""

import logging
import time
from typing import Optional, Protocol

from pydantic import ValidationError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from aris_routing.db.models.preferences import TenantPreferencesORM
from aris_routing.db.repositories.preference_repo import PreferenceRepository
from aris_routing.preferences.models import PreferenceRule, TenantPreferences

logger = logging.getLogger(__name__)

ScopeKey = tuple[str, Optional[str]]


class PreferenceProvider(Protocol):
    """Source of tenant preference records."""

    async def get(self, tenant_id: str, user_id: Optional[str]) -> Optional[TenantPreferences]:
        """Return the most specific preferences for a scope, or None."""
        ...


class InMemoryPreferenceProvider:
    """Dictionary-backed provider, used by tests and the CLI.

    A user-specific record wins over the tenant-wide record.
    """

    def __init__(self, preferences: Optional[list[TenantPreferences]] = None) -> None:
        self._items: dict[ScopeKey, TenantPreferences] = {}
        for prefs in preferences or []:
            self.put(prefs)

    def put(self, preferences: TenantPreferences) -> None:
        self._items[(preferences.tenant_id, preferences.user_id)] = preferences

    async def get(self, tenant_id: str, user_id: Optional[str]) -> Optional[TenantPreferences]:
        if user_id is not None and (tenant_id, user_id) in self._items:
            return self._items[(tenant_id, user_id)]
        return self._items.get((tenant_id, None))


def _parse_rules(raw_rules: list, tenant_id: str, family: str) -> tuple[PreferenceRule, ...]:
    """Validate stored rule objects, skipping malformed entries."""
    rules: list[PreferenceRule] = []
    for raw in raw_rules or []:
        try:
            rules.append(PreferenceRule.model_validate(raw))
        except ValidationError as e:
            logger.warning(
                f"preference_rule_invalid: tenant={tenant_id}, family={family}, "
                f"error_count={e.error_count()}"
            )
    return tuple(rules)


def preferences_from_row(row: TenantPreferencesORM) -> TenantPreferences:
    """Convert a stored preferences row into a TenantPreferences model."""
    return TenantPreferences(
        tenant_id=row.tenant_id,
        user_id=row.user_id,
        ai_enabled=row.ai_enabled,
        exclusion_rules=_parse_rules(row.exclusion_rules, row.tenant_id, "exclusion"),
        email_filters=_parse_rules(row.email_filters, row.tenant_id, "filter"),
        response_rules=_parse_rules(row.response_rules, row.tenant_id, "response"),
        global_instructions=row.global_instructions,
        custom_instructions=row.custom_instructions,
    )


class DatabasePreferenceProvider:
    """Reads preferences from ``tenant_ai_preferences``, one session per lookup.

    Args:
        session_factory: Async session factory.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def get(self, tenant_id: str, user_id: Optional[str]) -> Optional[TenantPreferences]:
        async with self._session_factory() as session:
            row = await PreferenceRepository(session).get_for_scope(tenant_id, user_id)
            if row is None:
                return None
            return preferences_from_row(row)


class _CacheEntry:
    """Memoised lookup result with TTL tracking.

    Attributes:
        value: The cached preferences, or None for a confirmed absence.
        created_at: Monotonic timestamp when the entry was created.
    """

    __slots__ = ("value", "created_at")

    def __init__(self, value: Optional[TenantPreferences]) -> None:
        self.value: Optional[TenantPreferences] = value
        self.created_at: float = time.monotonic()

    def is_expired(self, ttl_seconds: float) -> bool:
        return (time.monotonic() - self.created_at) > ttl_seconds


class CachedPreferenceProvider:
    """Memoises another provider's lookups for a fixed TTL.

    Absences are memoised too, so a tenant without configuration does not
    hit the database on every task.

    Args:
        inner: Provider to delegate misses to.
        ttl_seconds: How long a lookup stays valid.
    """

    def __init__(self, inner: PreferenceProvider, ttl_seconds: float = 300.0) -> None:
        self._inner = inner
        self._ttl_seconds = ttl_seconds
        self._cache: dict[ScopeKey, _CacheEntry] = {}

    async def get(self, tenant_id: str, user_id: Optional[str]) -> Optional[TenantPreferences]:
        key = (tenant_id, user_id)
        entry = self._cache.get(key)
        if entry is not None and not entry.is_expired(self._ttl_seconds):
            return entry.value

        value = await self._inner.get(tenant_id, user_id)
        self._cache[key] = _CacheEntry(value)
        logger.debug(
            f"preference_provider_loaded: tenant={tenant_id}, user={user_id}, found={value is not None}"
        )
        return value

    def invalidate(self, tenant_id: str, user_id: Optional[str] = None) -> int:
        """Drop memoised lookups for a tenant, or for one user within it.

        Args:
            tenant_id: Tenant whose entries are dropped.
            user_id: When given, only this user's entry is dropped.

        Returns:
            Number of entries removed.
        """
        if user_id is not None:
            removed = 1 if self._cache.pop((tenant_id, user_id), None) is not None else 0
        else:
            keys = [k for k in self._cache if k[0] == tenant_id]
            for key in keys:
                del self._cache[key]
            removed = len(keys)

        logger.info(
            f"preference_provider_invalidated: tenant={tenant_id}, user={user_id}, removed={removed}"
        )
        return removed
