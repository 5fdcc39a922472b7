"""
Pydantic schemas for the costing API.
Centralized to avoid circular imports between services and routers.

Derived values (unit_cost, total_cost of formulations, profit_margin,
cost_contribution) only ever appear on *Output schemas. Create/update
schemas forbid unknown fields, so a client sending a derived value gets
a 422 instead of having it silently ignored.
"""

from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field, model_validator

from shared.config.constants import Limits


class _Input(BaseModel):
    class Config:
        extra = "forbid"
        str_strip_whitespace = True


# =============================================================================
# Vendor Schemas
# =============================================================================


class VendorOutput(BaseModel):
    id: int
    name: str
    contact_email: str | None = None
    contact_phone: str | None = None
    address: str | None = None
    notes: str | None = None
    created_at: datetime
    updated_at: datetime | None = None

    class Config:
        from_attributes = True


class VendorCreate(_Input):
    name: str = Field(min_length=1, max_length=Limits.NAME_MAX)
    contact_email: str | None = Field(default=None, max_length=Limits.NAME_MAX)
    contact_phone: str | None = Field(default=None, max_length=50)
    address: str | None = None
    notes: str | None = Field(default=None, max_length=Limits.NOTES_MAX)


class VendorUpdate(_Input):
    name: str | None = Field(default=None, min_length=1, max_length=Limits.NAME_MAX)
    contact_email: str | None = Field(default=None, max_length=Limits.NAME_MAX)
    contact_phone: str | None = Field(default=None, max_length=50)
    address: str | None = None
    notes: str | None = Field(default=None, max_length=Limits.NOTES_MAX)


# =============================================================================
# Material Category Schemas
# =============================================================================


class MaterialCategoryOutput(BaseModel):
    id: int
    name: str
    color: str
    created_at: datetime

    class Config:
        from_attributes = True


class MaterialCategoryCreate(_Input):
    name: str = Field(min_length=1, max_length=Limits.NAME_MAX)
    color: str = Field(default="#3b82f6", pattern=r"^#[0-9A-Fa-f]{6}$")


class MaterialCategoryUpdate(_Input):
    name: str | None = Field(default=None, min_length=1, max_length=Limits.NAME_MAX)
    color: str | None = Field(default=None, pattern=r"^#[0-9A-Fa-f]{6}$")


# =============================================================================
# Material Schemas
# =============================================================================


class MaterialOutput(BaseModel):
    id: int
    name: str
    sku: str | None = None
    category_id: int | None = None
    vendor_id: int | None = None
    total_cost: Decimal
    quantity: Decimal
    unit: str
    unit_cost: Decimal
    notes: str | None = None
    created_at: datetime
    updated_at: datetime | None = None

    class Config:
        from_attributes = True


class MaterialCreate(_Input):
    name: str = Field(min_length=1, max_length=Limits.NAME_MAX)
    sku: str | None = Field(default=None, max_length=100)
    category_id: int | None = None
    vendor_id: int | None = None
    total_cost: Decimal = Field(ge=0, max_digits=10, decimal_places=2)
    quantity: Decimal = Field(ge=0, max_digits=10, decimal_places=3)
    unit: str = Field(min_length=1, max_length=Limits.UNIT_MAX)
    notes: str | None = Field(default=None, max_length=Limits.NOTES_MAX)


class MaterialUpdate(_Input):
    name: str | None = Field(default=None, min_length=1, max_length=Limits.NAME_MAX)
    sku: str | None = Field(default=None, max_length=100)
    category_id: int | None = None
    vendor_id: int | None = None
    total_cost: Decimal | None = Field(default=None, ge=0, max_digits=10, decimal_places=2)
    quantity: Decimal | None = Field(default=None, ge=0, max_digits=10, decimal_places=3)
    unit: str | None = Field(default=None, min_length=1, max_length=Limits.UNIT_MAX)
    notes: str | None = Field(default=None, max_length=Limits.NOTES_MAX)


class PropagationSummary(BaseModel):
    triggering_material_id: int
    scanned: int
    recalculated: list[int] = Field(default_factory=list)
    skipped: int = 0
    failed: list[int] = Field(default_factory=list)
    error: str | None = None


class MaterialUpdateOutput(BaseModel):
    material: MaterialOutput
    propagation: PropagationSummary | None = None


class MaterialUsageItem(BaseModel):
    formulation_id: int
    formulation_name: str
    is_active: bool
    quantity: Decimal
    unit: str
    cost_contribution: Decimal


class MaterialUsageOutput(BaseModel):
    material_id: int
    material_name: str
    formulation_count: int
    total_cost_contribution: Decimal
    usages: list[MaterialUsageItem] = Field(default_factory=list)


# =============================================================================
# Formulation Schemas
# =============================================================================


class IngredientOutput(BaseModel):
    id: int
    formulation_id: int
    material_id: int | None = None
    sub_formulation_id: int | None = None
    position: int
    quantity: Decimal
    unit: str
    cost_contribution: Decimal
    include_in_markup: bool
    notes: str | None = None

    class Config:
        from_attributes = True


class IngredientInput(_Input):
    """One ingredient line: exactly one of material_id / sub_formulation_id."""

    material_id: int | None = None
    sub_formulation_id: int | None = None
    quantity: Decimal = Field(gt=0, max_digits=10, decimal_places=3)
    unit: str = Field(min_length=1, max_length=Limits.UNIT_MAX)
    include_in_markup: bool = True
    notes: str | None = Field(default=None, max_length=Limits.NOTES_MAX)

    @model_validator(mode="after")
    def _one_source(self):
        if (self.material_id is None) == (self.sub_formulation_id is None):
            raise ValueError("Provide exactly one of material_id or sub_formulation_id")
        return self


class IngredientUpdate(_Input):
    quantity: Decimal | None = Field(default=None, gt=0, max_digits=10, decimal_places=3)
    unit: str | None = Field(default=None, min_length=1, max_length=Limits.UNIT_MAX)
    include_in_markup: bool | None = None
    notes: str | None = Field(default=None, max_length=Limits.NOTES_MAX)


class ProfitMarginOutput(BaseModel):
    amount: Decimal
    percentage: Decimal
    suggested_price: Decimal


class FormulationOutput(BaseModel):
    id: int
    name: str
    description: str | None = None
    batch_size: Decimal
    batch_unit: str
    target_price: Decimal | None = None
    markup_percentage: Decimal
    total_cost: Decimal
    unit_cost: Decimal
    profit_margin: Decimal
    is_active: bool
    created_at: datetime
    updated_at: datetime | None = None

    class Config:
        from_attributes = True


class FormulationDetailOutput(FormulationOutput):
    ingredients: list[IngredientOutput] = Field(default_factory=list)
    margin: ProfitMarginOutput | None = None


class FormulationCreate(_Input):
    name: str = Field(min_length=1, max_length=Limits.NAME_MAX)
    description: str | None = Field(default=None, max_length=Limits.NOTES_MAX)
    batch_size: Decimal = Field(gt=0, max_digits=10, decimal_places=3)
    batch_unit: str = Field(min_length=1, max_length=Limits.UNIT_MAX)
    target_price: Decimal | None = Field(default=None, ge=0, max_digits=10, decimal_places=2)
    markup_percentage: Decimal | None = Field(default=None, ge=0, max_digits=5, decimal_places=2)
    ingredients: list[IngredientInput] = Field(default_factory=list)


class FormulationUpdate(_Input):
    name: str | None = Field(default=None, min_length=1, max_length=Limits.NAME_MAX)
    description: str | None = Field(default=None, max_length=Limits.NOTES_MAX)
    batch_size: Decimal | None = Field(default=None, gt=0, max_digits=10, decimal_places=3)
    batch_unit: str | None = Field(default=None, min_length=1, max_length=Limits.UNIT_MAX)
    target_price: Decimal | None = Field(default=None, ge=0, max_digits=10, decimal_places=2)
    markup_percentage: Decimal | None = Field(default=None, ge=0, max_digits=5, decimal_places=2)
    # None leaves ingredients untouched; a list (even empty) replaces them
    ingredients: Optional[list[IngredientInput]] = None


class DeleteOutcomeOutput(BaseModel):
    id: int
    deleted: bool
    archived: bool
    is_active: bool | None = None
    reason: str
    message: str


class RestoreOutcomeOutput(BaseModel):
    formulation: FormulationOutput
    cleared_ingredients_count: int
    message: str


class RecalculationOutput(BaseModel):
    formulation: FormulationOutput
    changed: bool
    total_cost_before: Decimal
    total_cost_after: Decimal


# =============================================================================
# Audit, Dashboard and Report Schemas
# =============================================================================


class AuditLogOutput(BaseModel):
    id: int
    user_id: int | None = None
    user_email: str | None = None
    entity_type: str
    entity_id: int
    action: str
    changes: str | None = None
    created_at: datetime

    class Config:
        from_attributes = True


class ChangeSummaryOutput(BaseModel):
    id: int
    action: str
    entity_type: str
    entity_id: int
    timestamp: datetime | None = None
    description: str
    user_email: str | None = None
    total_cost_before: Decimal | None = None
    total_cost_after: Decimal | None = None
    unit_cost_before: Decimal | None = None
    unit_cost_after: Decimal | None = None
    percent_change: Decimal | None = None
    triggering_material_id: int | None = None


class DashboardStatsOutput(BaseModel):
    total_materials: int
    active_formulations: int
    archived_formulations: int
    total_vendors: int
    total_categories: int
    total_inventory_value: Decimal
    average_profit_margin: Decimal


class PriceVolatilityItem(BaseModel):
    material_id: int
    total_changes: int
    average_change: Decimal
    volatility_index: Decimal  # population std dev of percent changes
    max_change: Decimal
    min_change: Decimal


class CostChangeReportOutput(BaseModel):
    materials: list[ChangeSummaryOutput] = Field(default_factory=list)
    formulations: list[ChangeSummaryOutput] = Field(default_factory=list)
    biggest_changes: list[ChangeSummaryOutput] = Field(default_factory=list)
    volatility: list[PriceVolatilityItem] = Field(default_factory=list)


class MaterialUsageReportOutput(BaseModel):
    materials: list[MaterialUsageOutput] = Field(default_factory=list)
    unused_material_ids: list[int] = Field(default_factory=list)


class PlanUsageItem(BaseModel):
    resource: str
    used: int
    limit: int
    read_only_ids: list[int] = Field(default_factory=list)


class PlanUsageOutput(BaseModel):
    plan: str
    resources: list[PlanUsageItem] = Field(default_factory=list)
