"""
Material Category Service.

Categories group raw materials and carry a display color. Deleting a
category leaves its materials uncategorized.
"""

from __future__ import annotations

from typing import Any

from sqlalchemy import func, select, update
from sqlalchemy.orm import Session

from costing_api.models import Material, MaterialCategory
from costing_api.services.audit import describe_category
from costing_api.services.base_service import BaseCRUDService
from shared.config.constants import EntityType
from shared.utils.costing_schemas import MaterialCategoryOutput
from shared.utils.exceptions import ConflictError


class MaterialCategoryService(BaseCRUDService[MaterialCategory, MaterialCategoryOutput]):
    def __init__(self, db: Session):
        super().__init__(
            db=db,
            model=MaterialCategory,
            output_schema=MaterialCategoryOutput,
            entity_name="Material category",
            entity_type=EntityType.MATERIAL_CATEGORY,
            describe=describe_category,
        )

    def _name_taken(self, name: str, tenant_id: int, exclude_id: int | None = None) -> bool:
        query = select(func.count()).select_from(MaterialCategory).where(
            MaterialCategory.tenant_id == tenant_id,
            func.lower(MaterialCategory.name) == name.lower(),
        )
        if exclude_id is not None:
            query = query.where(MaterialCategory.id != exclude_id)
        return bool(self._db.scalar(query))

    def _validate_create(self, data: dict[str, Any], tenant_id: int) -> None:
        if self._name_taken(data["name"], tenant_id):
            raise ConflictError(f'A category named "{data["name"]}" already exists')

    def _validate_update(
        self, entity: MaterialCategory, data: dict[str, Any], tenant_id: int
    ) -> None:
        name = data.get("name")
        if name and self._name_taken(name, tenant_id, exclude_id=entity.id):
            raise ConflictError(f'A category named "{name}" already exists')

    def _before_delete(self, entity: MaterialCategory, tenant_id: int) -> None:
        self._db.execute(
            update(Material)
            .where(Material.tenant_id == tenant_id, Material.category_id == entity.id)
            .values(category_id=None)
        )
