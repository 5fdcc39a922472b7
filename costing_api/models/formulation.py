"""
Formulation Models: Formulation and FormulationIngredient.
"""

from __future__ import annotations

from decimal import Decimal
from typing import TYPE_CHECKING, Optional

from sqlalchemy import Boolean, ForeignKey, Index, Integer, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import AuditMixin, Base, BigIntId

if TYPE_CHECKING:
    from .material import Material


class Formulation(AuditMixin, Base):
    """
    A recipe made of ingredient line items.

    total_cost, unit_cost and profit_margin are derived and cached; they
    are recomputed on every ingredient or batch change and by the
    propagation engine when a referenced material's price changes.
    is_active=False means archived.
    """

    __tablename__ = "formulation"

    id: Mapped[int] = mapped_column(BigIntId, primary_key=True)
    tenant_id: Mapped[int] = mapped_column(ForeignKey("tenant.id"), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text)
    batch_size: Mapped[Decimal] = mapped_column(Numeric(10, 3), nullable=False)
    batch_unit: Mapped[str] = mapped_column(String(50), nullable=False)
    target_price: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 2))
    markup_percentage: Mapped[Decimal] = mapped_column(
        Numeric(5, 2), nullable=False, default=Decimal("30")
    )

    # Derived
    total_cost: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False, default=Decimal("0"))
    unit_cost: Mapped[Decimal] = mapped_column(Numeric(10, 4), nullable=False, default=Decimal("0"))
    profit_margin: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False, default=Decimal("0"))

    ingredients: Mapped[list["FormulationIngredient"]] = relationship(
        back_populates="formulation",
        cascade="all, delete-orphan",
        order_by="FormulationIngredient.position",
        foreign_keys="FormulationIngredient.formulation_id",
    )

    __table_args__ = (Index("ix_formulation_tenant_active", "tenant_id", "is_active"),)

    @property
    def archived(self) -> bool:
        return not self.is_active

    def __repr__(self) -> str:
        return f"<Formulation(id={self.id}, name='{self.name}', total_cost={self.total_cost})>"


class FormulationIngredient(Base):
    """
    One line of a formulation: a quantity of a material or of a nested formulation.

    cost_contribution is a cached value from the last recalculation.
    """

    __tablename__ = "formulation_ingredient"

    id: Mapped[int] = mapped_column(BigIntId, primary_key=True)
    formulation_id: Mapped[int] = mapped_column(
        ForeignKey("formulation.id", ondelete="CASCADE"), nullable=False, index=True
    )
    material_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("raw_material.id", ondelete="SET NULL"), index=True
    )
    sub_formulation_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("formulation.id", ondelete="SET NULL"), index=True
    )
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    quantity: Mapped[Decimal] = mapped_column(Numeric(10, 3), nullable=False)
    unit: Mapped[str] = mapped_column(String(50), nullable=False)
    cost_contribution: Mapped[Decimal] = mapped_column(
        Numeric(10, 4), nullable=False, default=Decimal("0")
    )
    include_in_markup: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    notes: Mapped[Optional[str]] = mapped_column(Text)

    formulation: Mapped["Formulation"] = relationship(
        back_populates="ingredients", foreign_keys=[formulation_id]
    )
    material: Mapped[Optional["Material"]] = relationship()
    sub_formulation: Mapped[Optional["Formulation"]] = relationship(foreign_keys=[sub_formulation_id])

    def __repr__(self) -> str:
        source = (
            f"material_id={self.material_id}"
            if self.sub_formulation_id is None
            else f"sub_formulation_id={self.sub_formulation_id}"
        )
        return f"<FormulationIngredient(id={self.id}, {source}, qty={self.quantity})>"
