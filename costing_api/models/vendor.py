"""
Supplier models: Vendor and MaterialCategory.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Optional

from sqlalchemy import ForeignKey, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import AuditMixin, Base, BigIntId

if TYPE_CHECKING:
    from .tenant import Tenant
    from .material import Material


class Vendor(AuditMixin, Base):
    """A supplier raw materials are purchased from."""

    __tablename__ = "vendor"

    id: Mapped[int] = mapped_column(BigIntId, primary_key=True)
    tenant_id: Mapped[int] = mapped_column(ForeignKey("tenant.id"), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    contact_email: Mapped[Optional[str]] = mapped_column(String(255))
    contact_phone: Mapped[Optional[str]] = mapped_column(String(50))
    address: Mapped[Optional[str]] = mapped_column(Text)
    notes: Mapped[Optional[str]] = mapped_column(Text)

    tenant: Mapped["Tenant"] = relationship(back_populates="vendors")
    materials: Mapped[list["Material"]] = relationship(back_populates="vendor")

    def __repr__(self) -> str:
        return f"<Vendor(id={self.id}, name='{self.name}')>"


class MaterialCategory(AuditMixin, Base):
    """Grouping for raw materials (oils, fragrances, packaging...)."""

    __tablename__ = "material_category"

    id: Mapped[int] = mapped_column(BigIntId, primary_key=True)
    tenant_id: Mapped[int] = mapped_column(ForeignKey("tenant.id"), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    color: Mapped[str] = mapped_column(String(7), default="#3b82f6", nullable=False)

    materials: Mapped[list["Material"]] = relationship(back_populates="category")

    def __repr__(self) -> str:
        return f"<MaterialCategory(id={self.id}, name='{self.name}')>"
