"""Fixtures for database model and repository tests."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from aris_routing.db.base import Base

# Force all models to register with Base.metadata
import aris_routing.db.models  # noqa: F401


@pytest.fixture
def all_tables() -> set[str]:
    """Get all table names from Base metadata."""
    return set(Base.metadata.tables.keys())


@pytest.fixture
def session() -> AsyncMock:
    """AsyncSession stand-in; ``add`` is synchronous on the real session."""
    mock = AsyncMock()
    mock.add = MagicMock()
    return mock
