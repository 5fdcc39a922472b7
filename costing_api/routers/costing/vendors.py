"""
Vendor management endpoints.
"""

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from costing_api.models import Vendor
from costing_api.routers.costing._base import (
    actor_of,
    current_user,
    get_db,
    plan_gate,
    require_editor,
    tenant_of,
)
from costing_api.services.domain import VendorService
from costing_api.services.plan_policy import PlanGate
from shared.config.constants import PlanResource
from shared.utils.costing_schemas import VendorCreate, VendorOutput, VendorUpdate


router = APIRouter(prefix="/vendors", tags=["vendors"])


@router.get("", response_model=list[VendorOutput])
def list_vendors(
    db: Session = Depends(get_db),
    user: dict = Depends(current_user),
) -> list[VendorOutput]:
    return VendorService(db).list_all(tenant_of(user), order_by=Vendor.name)


@router.get("/{vendor_id}", response_model=VendorOutput)
def get_vendor(
    vendor_id: int,
    db: Session = Depends(get_db),
    user: dict = Depends(current_user),
) -> VendorOutput:
    return VendorService(db).get_by_id(vendor_id, tenant_of(user))


@router.post("", response_model=VendorOutput, status_code=status.HTTP_201_CREATED)
def create_vendor(
    body: VendorCreate,
    db: Session = Depends(get_db),
    user: dict = Depends(require_editor),
    gate: PlanGate = Depends(plan_gate),
) -> VendorOutput:
    """Create a vendor. Requires OWNER or EDITOR role."""
    gate.ensure_can_create(PlanResource.VENDORS)
    return VendorService(db).create(body.model_dump(), tenant_of(user), actor_of(user))


@router.patch("/{vendor_id}", response_model=VendorOutput)
def update_vendor(
    vendor_id: int,
    body: VendorUpdate,
    db: Session = Depends(get_db),
    user: dict = Depends(require_editor),
    gate: PlanGate = Depends(plan_gate),
) -> VendorOutput:
    gate.ensure_can_edit(PlanResource.VENDORS, vendor_id)
    return VendorService(db).update(
        vendor_id, body.model_dump(exclude_unset=True), tenant_of(user), actor_of(user)
    )


@router.delete("/{vendor_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_vendor(
    vendor_id: int,
    db: Session = Depends(get_db),
    user: dict = Depends(require_editor),
) -> None:
    """Delete a vendor. Materials supplied by it keep existing without a vendor."""
    VendorService(db).delete(vendor_id, tenant_of(user), actor_of(user))
