"""
Ingredient line endpoints.

Lines are addressed through their formulation for listing and adding,
and directly by id for editing and removal. Every change recomputes the
parent formulation's costs.
"""

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from costing_api.routers.costing._base import (
    actor_of,
    current_user,
    get_db,
    plan_gate,
    require_editor,
    tenant_of,
)
from costing_api.services.domain import FormulationService
from costing_api.services.plan_policy import PlanGate
from shared.config.constants import PlanResource
from shared.utils.costing_schemas import IngredientInput, IngredientOutput, IngredientUpdate


router = APIRouter(tags=["ingredients"])


@router.get("/formulations/{formulation_id}/ingredients", response_model=list[IngredientOutput])
def list_ingredients(
    formulation_id: int,
    db: Session = Depends(get_db),
    user: dict = Depends(current_user),
) -> list[IngredientOutput]:
    return FormulationService(db).list_ingredients(formulation_id, tenant_of(user))


@router.post(
    "/formulations/{formulation_id}/ingredients",
    response_model=IngredientOutput,
    status_code=status.HTTP_201_CREATED,
)
def add_ingredient(
    formulation_id: int,
    body: IngredientInput,
    db: Session = Depends(get_db),
    user: dict = Depends(require_editor),
    gate: PlanGate = Depends(plan_gate),
) -> IngredientOutput:
    gate.ensure_can_edit(PlanResource.FORMULATIONS, formulation_id)
    return FormulationService(db).add_ingredient(
        formulation_id, body.model_dump(), tenant_of(user), actor_of(user)
    )


@router.patch("/formulation-ingredients/{ingredient_id}", response_model=IngredientOutput)
def update_ingredient(
    ingredient_id: int,
    body: IngredientUpdate,
    db: Session = Depends(get_db),
    user: dict = Depends(require_editor),
    gate: PlanGate = Depends(plan_gate),
) -> IngredientOutput:
    service = FormulationService(db)
    line = service.get_ingredient(ingredient_id, tenant_of(user))
    gate.ensure_can_edit(PlanResource.FORMULATIONS, line.formulation_id)
    return service.update_ingredient(
        ingredient_id, body.model_dump(exclude_unset=True), tenant_of(user), actor_of(user)
    )


@router.delete("/formulation-ingredients/{ingredient_id}", status_code=status.HTTP_204_NO_CONTENT)
def remove_ingredient(
    ingredient_id: int,
    db: Session = Depends(get_db),
    user: dict = Depends(require_editor),
    gate: PlanGate = Depends(plan_gate),
) -> None:
    service = FormulationService(db)
    line = service.get_ingredient(ingredient_id, tenant_of(user))
    gate.ensure_can_edit(PlanResource.FORMULATIONS, line.formulation_id)
    service.remove_ingredient(ingredient_id, tenant_of(user), actor_of(user))
