"""
Vendor Service.

Handles vendor CRUD. Deleting a vendor detaches the materials that
reference it (their vendor_id becomes null) inside the same transaction.

Usage:
    from costing_api.services.domain import VendorService

    service = VendorService(db)
    vendor = service.create(data, tenant_id, actor)
"""

from __future__ import annotations

from typing import Any

from sqlalchemy import func, select, update
from sqlalchemy.orm import Session

from costing_api.models import Material, Vendor
from costing_api.services.audit import describe_vendor
from costing_api.services.base_service import BaseCRUDService
from shared.config.constants import EntityType
from shared.config.logging import get_logger
from shared.utils.costing_schemas import VendorOutput
from shared.utils.exceptions import ConflictError

logger = get_logger(__name__)


class VendorService(BaseCRUDService[Vendor, VendorOutput]):
    """
    Service for vendor management.

    Business rules:
    - Vendor names are unique per tenant (case-insensitive)
    - Delete is a hard delete; materials lose their vendor link
    """

    def __init__(self, db: Session):
        super().__init__(
            db=db,
            model=Vendor,
            output_schema=VendorOutput,
            entity_name="Vendor",
            entity_type=EntityType.VENDOR,
            describe=describe_vendor,
        )

    def _name_taken(self, name: str, tenant_id: int, exclude_id: int | None = None) -> bool:
        query = select(func.count()).select_from(Vendor).where(
            Vendor.tenant_id == tenant_id,
            func.lower(Vendor.name) == name.lower(),
        )
        if exclude_id is not None:
            query = query.where(Vendor.id != exclude_id)
        return bool(self._db.scalar(query))

    def _validate_create(self, data: dict[str, Any], tenant_id: int) -> None:
        if self._name_taken(data["name"], tenant_id):
            raise ConflictError(f'A vendor named "{data["name"]}" already exists')

    def _validate_update(self, entity: Vendor, data: dict[str, Any], tenant_id: int) -> None:
        name = data.get("name")
        if name and self._name_taken(name, tenant_id, exclude_id=entity.id):
            raise ConflictError(f'A vendor named "{name}" already exists')

    def _before_delete(self, entity: Vendor, tenant_id: int) -> None:
        detached = self._db.execute(
            update(Material)
            .where(Material.tenant_id == tenant_id, Material.vendor_id == entity.id)
            .values(vendor_id=None)
        ).rowcount
        if detached:
            logger.info("Detached materials from vendor", vendor_id=entity.id, count=detached)
