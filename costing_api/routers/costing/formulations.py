"""
Formulation endpoints.

DELETE does not always delete: the lifecycle guard archives
formulations that have history, and the response says which happened.
"""

from fastapi import APIRouter, Depends, Query, status
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
from shared.utils.costing_schemas import (
    DeleteOutcomeOutput,
    FormulationCreate,
    FormulationDetailOutput,
    FormulationOutput,
    FormulationUpdate,
    RecalculationOutput,
    RestoreOutcomeOutput,
)


router = APIRouter(prefix="/formulations", tags=["formulations"])


@router.get("", response_model=list[FormulationOutput])
def list_formulations(
    include_archived: bool = Query(default=False),
    db: Session = Depends(get_db),
    user: dict = Depends(current_user),
) -> list[FormulationOutput]:
    return FormulationService(db).list_formulations(
        tenant_of(user), include_archived=include_archived
    )


# Declared before /{formulation_id} so "archived" is not parsed as an id
@router.get("/archived", response_model=list[FormulationOutput])
def list_archived_formulations(
    db: Session = Depends(get_db),
    user: dict = Depends(current_user),
) -> list[FormulationOutput]:
    """Archived formulations, most recently archived first."""
    return FormulationService(db).list_archived(tenant_of(user))


@router.get("/{formulation_id}", response_model=FormulationDetailOutput)
def get_formulation(
    formulation_id: int,
    db: Session = Depends(get_db),
    user: dict = Depends(current_user),
) -> FormulationDetailOutput:
    return FormulationService(db).get_formulation(formulation_id, tenant_of(user))


@router.post("", response_model=FormulationDetailOutput, status_code=status.HTTP_201_CREATED)
def create_formulation(
    body: FormulationCreate,
    db: Session = Depends(get_db),
    user: dict = Depends(require_editor),
    gate: PlanGate = Depends(plan_gate),
) -> FormulationDetailOutput:
    """Create a formulation with its ingredient lines. Costs are computed server-side."""
    gate.ensure_can_create(PlanResource.FORMULATIONS)
    return FormulationService(db).create_formulation(
        body.model_dump(exclude={"ingredients"}),
        [item.model_dump() for item in body.ingredients],
        tenant_of(user),
        actor_of(user),
    )


@router.patch("/{formulation_id}", response_model=FormulationDetailOutput)
def update_formulation(
    formulation_id: int,
    body: FormulationUpdate,
    db: Session = Depends(get_db),
    user: dict = Depends(require_editor),
    gate: PlanGate = Depends(plan_gate),
) -> FormulationDetailOutput:
    """
    Update a formulation.

    When `ingredients` is present the whole ingredient list is replaced;
    when it is omitted the existing lines are kept.
    """
    gate.ensure_can_edit(PlanResource.FORMULATIONS, formulation_id)
    ingredients = (
        None if body.ingredients is None else [item.model_dump() for item in body.ingredients]
    )
    return FormulationService(db).update_formulation(
        formulation_id,
        body.model_dump(exclude_unset=True, exclude={"ingredients"}),
        tenant_of(user),
        actor_of(user),
        ingredients=ingredients,
    )


@router.delete("/{formulation_id}", response_model=DeleteOutcomeOutput)
def delete_formulation(
    formulation_id: int,
    db: Session = Depends(get_db),
    user: dict = Depends(require_editor),
) -> DeleteOutcomeOutput:
    """Hard delete when the formulation has no history, archive otherwise."""
    outcome = FormulationService(db).delete_formulation(
        formulation_id, tenant_of(user), actor_of(user)
    )
    return DeleteOutcomeOutput(**outcome.to_dict())


@router.post("/{formulation_id}/archive", response_model=FormulationOutput)
def archive_formulation(
    formulation_id: int,
    db: Session = Depends(get_db),
    user: dict = Depends(require_editor),
) -> FormulationOutput:
    return FormulationService(db).archive_formulation(
        formulation_id, tenant_of(user), actor_of(user)
    )


@router.post("/{formulation_id}/restore", response_model=RestoreOutcomeOutput)
def restore_formulation(
    formulation_id: int,
    db: Session = Depends(get_db),
    user: dict = Depends(require_editor),
) -> RestoreOutcomeOutput:
    """Restore an archived formulation. Its ingredient list comes back empty."""
    outcome = FormulationService(db).restore_formulation(
        formulation_id, tenant_of(user), actor_of(user)
    )
    return RestoreOutcomeOutput(
        formulation=FormulationOutput.model_validate(outcome.formulation),
        cleared_ingredients_count=outcome.cleared_ingredients_count,
        message=outcome.message,
    )


@router.post("/{formulation_id}/recalculate", response_model=RecalculationOutput)
def recalculate_formulation(
    formulation_id: int,
    db: Session = Depends(get_db),
    user: dict = Depends(require_editor),
) -> RecalculationOutput:
    service = FormulationService(db)
    result = service.recalculate(formulation_id, tenant_of(user), actor_of(user))
    formulation = service.get_entity(formulation_id, tenant_of(user))
    return RecalculationOutput(
        formulation=FormulationOutput.model_validate(formulation),
        changed=result.changed,
        total_cost_before=result.total_cost_before,
        total_cost_after=result.total_cost_after,
    )
