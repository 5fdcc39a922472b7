"""
Seed data for development and demos.
Creates a demo tenant with users, a vendor, a category, a few raw
materials and one formulation. Idempotent: does nothing when the demo
tenant already exists.
"""

from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.orm import Session

from costing_api.models import Tenant, User
from costing_api.services.audit import Actor
from costing_api.services.domain import (
    FormulationService,
    MaterialCategoryService,
    MaterialService,
    VendorService,
)
from shared.config.constants import Roles, SubscriptionPlan
from shared.config.logging import get_logger
from shared.infrastructure.db import safe_commit
from shared.security.password import hash_password

logger = get_logger(__name__)

DEMO_TENANT_SLUG = "demo-bakery"
DEMO_PASSWORD = "demo1234"

DEMO_USERS = [
    ("owner@demo.example.com", Roles.OWNER),
    ("editor@demo.example.com", Roles.EDITOR),
    ("viewer@demo.example.com", Roles.VIEWER),
]

DEMO_MATERIALS = [
    # name, total_cost, quantity, unit
    ("Flour", Decimal("25.00"), Decimal("10"), "kg"),
    ("Sugar", Decimal("12.00"), Decimal("5"), "kg"),
    ("Butter", Decimal("40.00"), Decimal("4"), "kg"),
    ("Gift box", Decimal("30.00"), Decimal("50"), "unit"),
]


def seed(db: Session) -> Tenant:
    """
    Seed the demo tenant.

    Returns:
        The demo tenant (existing or newly created).
    """
    existing = db.scalar(select(Tenant).where(Tenant.slug == DEMO_TENANT_SLUG))
    if existing is not None:
        logger.info("Demo tenant already seeded, skipping", tenant_id=existing.id)
        return existing

    tenant = Tenant(name="Demo Bakery", slug=DEMO_TENANT_SLUG, plan=SubscriptionPlan.PRO)
    db.add(tenant)
    safe_commit(db)

    password_hash = hash_password(DEMO_PASSWORD)
    for email, role in DEMO_USERS:
        db.add(User(tenant_id=tenant.id, email=email, password=password_hash, role=role))
    safe_commit(db)

    owner = db.scalar(select(User).where(User.email == DEMO_USERS[0][0]))
    actor = Actor(owner.id, owner.email)

    vendor = VendorService(db).create(
        {"name": "Mill & Co", "contact_email": "orders@mill.example.com"}, tenant.id, actor
    )
    category = MaterialCategoryService(db).create(
        {"name": "Dry goods", "color": "#f59e0b"}, tenant.id, actor
    )

    materials = MaterialService(db)
    created = {}
    for name, total_cost, quantity, unit in DEMO_MATERIALS:
        created[name] = materials.create_material(
            {
                "name": name,
                "total_cost": total_cost,
                "quantity": quantity,
                "unit": unit,
                "vendor_id": vendor.id,
                "category_id": category.id if unit == "kg" else None,
            },
            tenant.id,
            actor,
        )

    FormulationService(db).create_formulation(
        {
            "name": "Shortbread (24 pcs)",
            "batch_size": Decimal("24"),
            "batch_unit": "pcs",
            "markup_percentage": Decimal("40"),
        },
        [
            {"material_id": created["Flour"].id, "quantity": Decimal("0.5"), "unit": "kg"},
            {"material_id": created["Sugar"].id, "quantity": Decimal("0.2"), "unit": "kg"},
            {"material_id": created["Butter"].id, "quantity": Decimal("0.3"), "unit": "kg"},
            {
                "material_id": created["Gift box"].id,
                "quantity": Decimal("1"),
                "unit": "unit",
                "include_in_markup": False,
            },
        ],
        tenant.id,
        actor,
    )

    logger.info("Demo tenant seeded", tenant_id=tenant.id, materials=len(created))
    return tenant
