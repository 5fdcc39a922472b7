"""
Material category management endpoints.
"""

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from costing_api.models import MaterialCategory
from costing_api.routers.costing._base import (
    actor_of,
    current_user,
    get_db,
    plan_gate,
    require_editor,
    tenant_of,
)
from costing_api.services.domain import MaterialCategoryService
from costing_api.services.plan_policy import PlanGate
from shared.config.constants import PlanResource
from shared.utils.costing_schemas import (
    MaterialCategoryCreate,
    MaterialCategoryOutput,
    MaterialCategoryUpdate,
)


router = APIRouter(prefix="/material-categories", tags=["material-categories"])


@router.get("", response_model=list[MaterialCategoryOutput])
def list_categories(
    db: Session = Depends(get_db),
    user: dict = Depends(current_user),
) -> list[MaterialCategoryOutput]:
    return MaterialCategoryService(db).list_all(tenant_of(user), order_by=MaterialCategory.name)


@router.get("/{category_id}", response_model=MaterialCategoryOutput)
def get_category(
    category_id: int,
    db: Session = Depends(get_db),
    user: dict = Depends(current_user),
) -> MaterialCategoryOutput:
    return MaterialCategoryService(db).get_by_id(category_id, tenant_of(user))


@router.post("", response_model=MaterialCategoryOutput, status_code=status.HTTP_201_CREATED)
def create_category(
    body: MaterialCategoryCreate,
    db: Session = Depends(get_db),
    user: dict = Depends(require_editor),
    gate: PlanGate = Depends(plan_gate),
) -> MaterialCategoryOutput:
    gate.ensure_can_create(PlanResource.CATEGORIES)
    return MaterialCategoryService(db).create(body.model_dump(), tenant_of(user), actor_of(user))


@router.patch("/{category_id}", response_model=MaterialCategoryOutput)
def update_category(
    category_id: int,
    body: MaterialCategoryUpdate,
    db: Session = Depends(get_db),
    user: dict = Depends(require_editor),
    gate: PlanGate = Depends(plan_gate),
) -> MaterialCategoryOutput:
    gate.ensure_can_edit(PlanResource.CATEGORIES, category_id)
    return MaterialCategoryService(db).update(
        category_id, body.model_dump(exclude_unset=True), tenant_of(user), actor_of(user)
    )


@router.delete("/{category_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_category(
    category_id: int,
    db: Session = Depends(get_db),
    user: dict = Depends(require_editor),
) -> None:
    """Delete a category; its materials become uncategorized."""
    MaterialCategoryService(db).delete(category_id, tenant_of(user), actor_of(user))
