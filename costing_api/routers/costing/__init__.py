"""
Costing API router - combines all costing sub-routers.

- vendors: Vendor CRUD
- categories: Material category CRUD
- materials: Raw material CRUD, usage, price propagation summary
- formulations: Formulation CRUD, archive/restore/recalculate
- ingredients: Ingredient line management
- dashboard: Stats and recent activity
- audit: Audit log viewing
- reports: Cost changes, material usage, plan usage

All routes are prefixed with /api
"""

from fastapi import APIRouter

from .vendors import router as vendors_router
from .categories import router as categories_router
from .materials import router as materials_router
from .formulations import router as formulations_router
from .ingredients import router as ingredients_router
from .dashboard import router as dashboard_router
from .audit import router as audit_router
from .reports import router as reports_router


router = APIRouter(prefix="/api")

router.include_router(vendors_router)
router.include_router(categories_router)
router.include_router(materials_router)
router.include_router(formulations_router)
router.include_router(ingredients_router)
router.include_router(dashboard_router)
router.include_router(audit_router)
router.include_router(reports_router)

__all__ = ["router"]
