"""ORM models. Importing this package registers every table on Base.metadata."""

from aris_routing.db.models.performance import ModelPerformanceORM
from aris_routing.db.models.preferences import TenantPreferencesORM

__all__ = [
    "ModelPerformanceORM",
    "TenantPreferencesORM",
]
