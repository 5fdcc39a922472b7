"""
Raw material endpoints.

PATCH returns the updated material together with the propagation
summary when the unit cost changed, so a client sees which
formulations were recalculated (and which failed) in one response.
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
from costing_api.services.domain import MaterialService
from costing_api.services.plan_policy import PlanGate
from shared.config.constants import PlanResource
from shared.utils.costing_schemas import (
    MaterialCreate,
    MaterialOutput,
    MaterialUpdate,
    MaterialUpdateOutput,
    MaterialUsageOutput,
    PropagationSummary,
)


router = APIRouter(prefix="/materials", tags=["materials"])


@router.get("", response_model=list[MaterialOutput])
def list_materials(
    db: Session = Depends(get_db),
    user: dict = Depends(current_user),
) -> list[MaterialOutput]:
    return MaterialService(db).list_materials(tenant_of(user))


@router.get("/{material_id}", response_model=MaterialOutput)
def get_material(
    material_id: int,
    db: Session = Depends(get_db),
    user: dict = Depends(current_user),
) -> MaterialOutput:
    return MaterialService(db).get_material(material_id, tenant_of(user))


@router.get("/{material_id}/usage", response_model=MaterialUsageOutput)
def get_material_usage(
    material_id: int,
    db: Session = Depends(get_db),
    user: dict = Depends(current_user),
) -> MaterialUsageOutput:
    """Formulations that use this material and what it contributes to each."""
    return MaterialService(db).usage(material_id, tenant_of(user))


@router.post("", response_model=MaterialOutput, status_code=status.HTTP_201_CREATED)
def create_material(
    body: MaterialCreate,
    db: Session = Depends(get_db),
    user: dict = Depends(require_editor),
    gate: PlanGate = Depends(plan_gate),
) -> MaterialOutput:
    """Create a raw material. unit_cost is derived from total_cost / quantity."""
    gate.ensure_can_create(PlanResource.MATERIALS)
    return MaterialService(db).create_material(body.model_dump(), tenant_of(user), actor_of(user))


@router.patch("/{material_id}", response_model=MaterialUpdateOutput)
def update_material(
    material_id: int,
    body: MaterialUpdate,
    db: Session = Depends(get_db),
    user: dict = Depends(require_editor),
    gate: PlanGate = Depends(plan_gate),
) -> MaterialUpdateOutput:
    gate.ensure_can_edit(PlanResource.MATERIALS, material_id)
    material, report = MaterialService(db).update_material(
        material_id, body.model_dump(exclude_unset=True), tenant_of(user), actor_of(user)
    )
    propagation = PropagationSummary(**report.to_summary()) if report is not None else None
    return MaterialUpdateOutput(material=material, propagation=propagation)


@router.delete("/{material_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_material(
    material_id: int,
    db: Session = Depends(get_db),
    user: dict = Depends(require_editor),
) -> None:
    """Delete a material. 409 while any formulation still uses it."""
    MaterialService(db).delete_material(material_id, tenant_of(user), actor_of(user))
