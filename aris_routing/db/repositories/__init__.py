"""Async repositories over the routing engine's tables."""

from aris_routing.db.repositories.base import BaseRepository
from aris_routing.db.repositories.performance_repo import PerformanceRepository
from aris_routing.db.repositories.preference_repo import PreferenceRepository

__all__ = [
    "BaseRepository",
    "PerformanceRepository",
    "PreferenceRepository",
]
