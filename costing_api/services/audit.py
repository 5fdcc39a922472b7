"""
Audit logging service.
Records every mutation of materials, vendors, categories and formulations.

The `changes` column is a contract other components read (through the
ChangeSummary projection):

    {"description": str, "data": {...}}                     create / delete / archive / restore
    {"description": str, "before": {...}, "after": {...}}   update / recalculate

Recalculation entries additionally carry "triggering_material_id" and an
"ingredients" snapshot.

Writes are best-effort: an entry is committed after the business mutation
it describes has already been committed, and a failure to write it is
logged and swallowed so it never undoes that mutation.
"""

from __future__ import annotations

import json
from datetime import datetime
from decimal import Decimal
from typing import Any, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from costing_api.models import AuditLog, Formulation, Material, MaterialCategory, Vendor
from shared.config.constants import AuditAction
from shared.config.logging import audit_logger as logger
from shared.infrastructure.db import safe_commit


class Actor:
    """Who performed a mutation. Built from the JWT user context."""

    __slots__ = ("user_id", "email")

    def __init__(self, user_id: Optional[int], email: Optional[str]):
        self.user_id = user_id
        self.email = email

    @classmethod
    def from_context(cls, user_ctx: dict) -> "Actor":
        sub = user_ctx.get("sub")
        return cls(int(sub) if sub is not None else None, user_ctx.get("email"))

    @classmethod
    def system(cls) -> "Actor":
        return cls(None, None)

    def __repr__(self) -> str:
        return f"<Actor(user_id={self.user_id})>"


# =============================================================================
# Serialization
# =============================================================================


def _json_default(value: Any) -> Any:
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, datetime):
        return value.isoformat()
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def serialize_model(obj: Any, exclude: list[str] | None = None) -> dict:
    """
    Serialize a SQLAlchemy model's columns to a JSON-safe dict.

    Decimals become strings (exact), datetimes ISO strings.
    """
    exclude = exclude or []
    result = {}
    for column in obj.__table__.columns:
        if column.name in exclude:
            continue
        value = getattr(obj, column.name)
        if isinstance(value, Decimal):
            value = str(value)
        elif isinstance(value, datetime):
            value = value.isoformat()
        result[column.name] = value
    return result


def serialize_formulation(formulation: Formulation) -> dict:
    """Formulation columns plus its ingredient lines."""
    data = serialize_model(formulation)
    data["ingredients"] = snapshot_ingredients(formulation)
    return data


def snapshot_ingredients(formulation: Formulation) -> list[dict]:
    return [
        serialize_model(ing, exclude=["formulation_id"])
        for ing in formulation.ingredients
    ]


def encode_changes(payload: dict) -> str:
    return json.dumps(payload, default=_json_default)


# =============================================================================
# Write path
# =============================================================================


def record_audit(
    db: Session,
    *,
    tenant_id: int,
    actor: Actor,
    entity_type: str,
    entity_id: int,
    action: str,
    description: str,
    data: Optional[dict] = None,
    before: Optional[dict] = None,
    after: Optional[dict] = None,
    extra: Optional[dict] = None,
) -> Optional[AuditLog]:
    """
    Append one audit entry and commit it.

    Call after the business mutation has been committed. Returns the entry,
    or None when it could not be written (the failure is logged at ERROR).
    """
    payload: dict[str, Any] = {"description": description}
    if action in AuditAction.BEFORE_AFTER:
        payload["before"] = before or {}
        payload["after"] = after or {}
    else:
        payload["data"] = data or {}
    if extra:
        payload.update(extra)

    try:
        entry = AuditLog(
            tenant_id=tenant_id,
            user_id=actor.user_id,
            user_email=actor.email,
            entity_type=entity_type,
            entity_id=entity_id,
            action=action,
            changes=encode_changes(payload),
        )
        db.add(entry)
        safe_commit(db)
    except (SQLAlchemyError, TypeError, ValueError) as e:
        logger.error(
            "Audit write failed; mutation kept",
            tenant_id=tenant_id,
            entity_type=entity_type,
            entity_id=entity_id,
            action=action,
            error=str(e),
            exc_info=True,
        )
        return None

    logger.debug(
        "Audit entry recorded",
        audit_id=entry.id,
        entity_type=entity_type,
        entity_id=entity_id,
        action=action,
    )
    return entry


# =============================================================================
# Descriptions
# =============================================================================


def _money(value: Any) -> str:
    return f"${value}"


def describe_material(action: str, material: Material, before: Optional[dict] = None) -> str:
    qty = f"{material.quantity} {material.unit}"
    if action == AuditAction.CREATE:
        return (
            f'Added new raw material "{material.name}" with a total cost of '
            f"{_money(material.total_cost)} for {qty}"
        )
    if action == AuditAction.UPDATE:
        change = ""
        old_unit_cost = (before or {}).get("unit_cost")
        if old_unit_cost is not None and Decimal(old_unit_cost) != material.unit_cost:
            change = (
                f" (unit cost changed from {_money(old_unit_cost)} to "
                f"{_money(material.unit_cost)})"
            )
        return (
            f'Updated raw material "{material.name}" - total cost is now '
            f"{_money(material.total_cost)} for {qty}{change}"
        )
    return (
        f'Deleted raw material "{material.name}" (was {_money(material.total_cost)} '
        f"total cost for {qty})"
    )


def describe_vendor(action: str, vendor: Vendor, before: Optional[dict] = None) -> str:
    if action == AuditAction.CREATE:
        email = f" with email {vendor.contact_email}" if vendor.contact_email else ""
        return f'Added new vendor "{vendor.name}"{email}'
    if action == AuditAction.UPDATE:
        change = ""
        if before is not None and before.get("contact_email") != vendor.contact_email:
            change = f" (email changed to {vendor.contact_email or 'none'})"
        return f'Updated vendor "{vendor.name}"{change}'
    email = f" ({vendor.contact_email})" if vendor.contact_email else ""
    return f'Deleted vendor "{vendor.name}"{email}'


def describe_category(
    action: str, category: MaterialCategory, before: Optional[dict] = None
) -> str:
    if action == AuditAction.CREATE:
        return f'Created new category "{category.name}" with {category.color} color'
    if action == AuditAction.UPDATE:
        change = ""
        if before is not None and before.get("color") != category.color:
            change = f" (color changed from {before.get('color')} to {category.color})"
        return f'Updated category "{category.name}"{change}'
    return f'Deleted category "{category.name}" ({category.color} color)'


def describe_formulation(
    action: str,
    formulation: Formulation,
    before: Optional[dict] = None,
    reason: Optional[str] = None,
    cleared: int = 0,
    recalculated: bool = False,
) -> str:
    batch = f"{formulation.batch_size} {formulation.batch_unit}"
    if action == AuditAction.CREATE:
        return (
            f'Created new formulation "{formulation.name}" with batch size of {batch} '
            f"and {formulation.markup_percentage}% markup"
        )
    if action == AuditAction.UPDATE:
        change = ""
        old_total = (before or {}).get("total_cost")
        if old_total is not None and Decimal(old_total) != formulation.total_cost:
            change = (
                f" (total cost changed from {_money(old_total)} to "
                f"{_money(formulation.total_cost)})"
            )
        if recalculated:
            return f'Recalculated formulation "{formulation.name}" from current material prices{change}'
        return (
            f'Updated formulation "{formulation.name}" - batch size is now {batch} '
            f"with {formulation.markup_percentage}% markup{change}"
        )
    if action == AuditAction.ARCHIVE:
        suffix = f": {reason}" if reason else ""
        return f'Archived formulation "{formulation.name}"{suffix}'
    if action == AuditAction.RESTORE:
        return (
            f'Restored formulation "{formulation.name}"; cleared {cleared} ingredient(s) '
            "and reset its costs to zero"
        )
    return (
        f'Deleted formulation "{formulation.name}" (was {batch} batch with '
        f"{_money(formulation.total_cost)} total cost)"
    )
