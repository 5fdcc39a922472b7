"""
Centralized constants for the backend application.
Avoids magic strings and repeated numeric precisions.

Usage:
    from shared.config.constants import Roles, AuditAction, EntityType, Precision

    if role in EDITOR_ROLES:
        ...

    total = Precision.money(raw_total)
"""

from decimal import ROUND_HALF_UP, Decimal
from typing import Final


# =============================================================================
# User Roles
# =============================================================================


class Roles:
    """User role constants."""

    OWNER: Final[str] = "OWNER"
    EDITOR: Final[str] = "EDITOR"
    VIEWER: Final[str] = "VIEWER"

    ALL: Final[list[str]] = [OWNER, EDITOR, VIEWER]


# Roles allowed to mutate tenant data
EDITOR_ROLES: Final[frozenset[str]] = frozenset({Roles.OWNER, Roles.EDITOR})


# =============================================================================
# Audit Log Vocabulary
# =============================================================================


class AuditAction:
    """Audit log action constants (stored lowercase)."""

    CREATE: Final[str] = "create"
    UPDATE: Final[str] = "update"
    DELETE: Final[str] = "delete"
    ARCHIVE: Final[str] = "archive"
    RESTORE: Final[str] = "restore"

    ALL: Final[list[str]] = [CREATE, UPDATE, DELETE, ARCHIVE, RESTORE]

    # Actions whose payload carries {"before", "after"} instead of {"data"}.
    # Recalculations are updates whose payload also has "triggering_material_id".
    BEFORE_AFTER: Final[frozenset[str]] = frozenset({UPDATE})


class EntityType:
    """Audited entity type constants."""

    VENDOR: Final[str] = "vendor"
    MATERIAL_CATEGORY: Final[str] = "material_category"
    MATERIAL: Final[str] = "material"
    FORMULATION: Final[str] = "formulation"
    FORMULATION_INGREDIENT: Final[str] = "formulation_ingredient"


# =============================================================================
# Decimal Precision
# =============================================================================


def _quantizer(places: str):
    exponent = Decimal(places)

    def quantize(value: Decimal) -> Decimal:
        return value.quantize(exponent, rounding=ROUND_HALF_UP)

    return quantize


class Precision:
    """
    Fixed decimal precisions for stored and rendered values.

    Money totals use 2 places, unit costs and ingredient cost
    contributions 4 places, percentages 2 places, quantities 3 places.
    """

    MONEY_PLACES: Final[str] = "0.01"
    UNIT_COST_PLACES: Final[str] = "0.0001"
    PERCENT_PLACES: Final[str] = "0.01"
    QUANTITY_PLACES: Final[str] = "0.001"

    money = staticmethod(_quantizer(MONEY_PLACES))
    unit_cost = staticmethod(_quantizer(UNIT_COST_PLACES))
    percent = staticmethod(_quantizer(PERCENT_PLACES))
    quantity = staticmethod(_quantizer(QUANTITY_PLACES))


# =============================================================================
# Subscription Plans
# =============================================================================


class SubscriptionPlan:
    """Subscription plan names."""

    FREE: Final[str] = "free"
    STARTER: Final[str] = "starter"
    PRO: Final[str] = "pro"
    PROFESSIONAL: Final[str] = "professional"
    BUSINESS: Final[str] = "business"
    ENTERPRISE: Final[str] = "enterprise"

    ALL: Final[list[str]] = [FREE, STARTER, PRO, PROFESSIONAL, BUSINESS, ENTERPRISE]


class PlanResource:
    """Resources counted against plan limits."""

    MATERIALS: Final[str] = "materials"
    FORMULATIONS: Final[str] = "formulations"
    VENDORS: Final[str] = "vendors"
    CATEGORIES: Final[str] = "categories"

    ALL: Final[list[str]] = [MATERIALS, FORMULATIONS, VENDORS, CATEGORIES]


PLAN_LIMITS: Final[dict[str, dict[str, int]]] = {
    SubscriptionPlan.FREE: {"materials": 5, "formulations": 1, "vendors": 2, "categories": 2},
    SubscriptionPlan.STARTER: {"materials": 20, "formulations": 8, "vendors": 5, "categories": 5},
    SubscriptionPlan.PRO: {"materials": 100, "formulations": 25, "vendors": 10, "categories": 10},
    SubscriptionPlan.PROFESSIONAL: {"materials": 300, "formulations": 60, "vendors": 20, "categories": 20},
    SubscriptionPlan.BUSINESS: {"materials": 500, "formulations": 100, "vendors": 25, "categories": 25},
    SubscriptionPlan.ENTERPRISE: {"materials": 1000, "formulations": 250, "vendors": 50, "categories": 50},
}


# =============================================================================
# Field Limits
# =============================================================================


class Limits:
    """Input length limits shared by schemas and models."""

    NAME_MAX: Final[int] = 255
    UNIT_MAX: Final[int] = 50
    NOTES_MAX: Final[int] = 2000
    AUDIT_PAGE_MAX: Final[int] = 500
