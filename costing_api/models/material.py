"""
Raw Material Model.
"""

from __future__ import annotations

from decimal import Decimal
from typing import TYPE_CHECKING, Optional

from sqlalchemy import ForeignKey, Index, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import AuditMixin, Base, BigIntId

if TYPE_CHECKING:
    from .tenant import Tenant
    from .vendor import MaterialCategory, Vendor


class Material(AuditMixin, Base):
    """
    A purchasable input with a total cost for a purchased quantity.

    unit_cost is derived (total_cost / quantity, or 0 when quantity is 0)
    and only ever written by MaterialService through the cost calculator.
    Materials are hard-deleted; deletion is refused while any formulation
    ingredient references the material.
    """

    __tablename__ = "raw_material"

    id: Mapped[int] = mapped_column(BigIntId, primary_key=True)
    tenant_id: Mapped[int] = mapped_column(ForeignKey("tenant.id"), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    sku: Mapped[Optional[str]] = mapped_column(String(100))
    category_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("material_category.id", ondelete="SET NULL"), index=True
    )
    vendor_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("vendor.id", ondelete="SET NULL"), index=True
    )
    total_cost: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False, default=Decimal("0"))
    quantity: Mapped[Decimal] = mapped_column(Numeric(10, 3), nullable=False, default=Decimal("0"))
    unit: Mapped[str] = mapped_column(String(50), nullable=False)
    unit_cost: Mapped[Decimal] = mapped_column(Numeric(10, 4), nullable=False, default=Decimal("0"))
    notes: Mapped[Optional[str]] = mapped_column(Text)

    __table_args__ = (Index("ix_raw_material_tenant_name", "tenant_id", "name"),)

    tenant: Mapped["Tenant"] = relationship(back_populates="materials")
    vendor: Mapped[Optional["Vendor"]] = relationship(back_populates="materials")
    category: Mapped[Optional["MaterialCategory"]] = relationship(back_populates="materials")

    def __repr__(self) -> str:
        return f"<Material(id={self.id}, name='{self.name}', unit_cost={self.unit_cost})>"
