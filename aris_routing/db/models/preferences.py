"""Tenant AI preference ORM model."""

from typing import Optional

from sqlalchemy import Boolean, Text, UniqueConstraint, text
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from aris_routing.db.base import Base, TimestampMixin, UUIDMixin


class TenantPreferencesORM(Base, UUIDMixin, TimestampMixin):
    """Per-tenant (optionally per-user) AI processing preferences.

    Rule lists are stored as JSONB arrays of rule objects whose
    ``condition`` is kept in its textual form and parsed on load.
    A row with ``user_id`` NULL applies to the whole tenant.
    Maps to the ``tenant_ai_preferences`` table.
    """

    __tablename__ = "tenant_ai_preferences"
    __table_args__ = (UniqueConstraint("tenant_id", "user_id", name="uq_tenant_ai_preferences_scope"),)

    tenant_id: Mapped[str] = mapped_column(Text, nullable=False)
    user_id: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    ai_enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, server_default=text("true"))
    exclusion_rules: Mapped[list] = mapped_column(
        JSONB, nullable=False, server_default=text("'[]'::jsonb")
    )
    email_filters: Mapped[list] = mapped_column(
        JSONB, nullable=False, server_default=text("'[]'::jsonb")
    )
    response_rules: Mapped[list] = mapped_column(
        JSONB, nullable=False, server_default=text("'[]'::jsonb")
    )
    global_instructions: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    custom_instructions: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
