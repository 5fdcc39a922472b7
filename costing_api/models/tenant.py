"""
Multi-Tenancy Models: Tenant and User.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Optional

from sqlalchemy import ForeignKey, Index, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from shared.config.constants import Roles, SubscriptionPlan

from .base import AuditMixin, Base, BigIntId

if TYPE_CHECKING:
    from .vendor import Vendor
    from .material import Material


class Tenant(AuditMixin, Base):
    """
    A formulating business (top-level tenant).
    Every material, vendor, formulation and audit entry belongs to exactly one tenant.
    """

    __tablename__ = "tenant"

    id: Mapped[int] = mapped_column(BigIntId, primary_key=True)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    slug: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)
    plan: Mapped[str] = mapped_column(String(32), default=SubscriptionPlan.FREE, nullable=False)

    users: Mapped[list["User"]] = relationship(back_populates="tenant")
    vendors: Mapped[list["Vendor"]] = relationship(back_populates="tenant")
    materials: Mapped[list["Material"]] = relationship(back_populates="tenant")

    def __repr__(self) -> str:
        return f"<Tenant(id={self.id}, slug='{self.slug}', plan='{self.plan}')>"


class User(AuditMixin, Base):
    """A person working inside a tenant. One role per user."""

    __tablename__ = "app_user"

    id: Mapped[int] = mapped_column(BigIntId, primary_key=True)
    tenant_id: Mapped[int] = mapped_column(ForeignKey("tenant.id"), nullable=False, index=True)
    email: Mapped[str] = mapped_column(String(255), nullable=False)
    password: Mapped[str] = mapped_column(Text, nullable=False)  # bcrypt hash
    first_name: Mapped[Optional[str]] = mapped_column(Text)
    last_name: Mapped[Optional[str]] = mapped_column(Text)
    role: Mapped[str] = mapped_column(String(16), default=Roles.OWNER, nullable=False)

    __table_args__ = (
        UniqueConstraint("tenant_id", "email", name="uq_user_tenant_email"),
        Index("ix_user_email", "email"),
    )

    tenant: Mapped["Tenant"] = relationship(back_populates="users")

    def __repr__(self) -> str:
        return f"<User(id={self.id}, email='{self.email}', role='{self.role}')>"
