"""
Domain Services - application layer.

Services contain business logic and orchestrate operations.
They use Repositories for data access and emit domain events.

Structure:
    Router (thin controller)
        ↓
    Service (business logic)  ← YOU ARE HERE
        ↓
    Repository (data access)
        ↓
    Model (entity)

Usage:
    from costing_api.services.domain import MaterialService

    service = MaterialService(db)
    materials = service.list_materials(tenant_id)
"""

from .vendor_service import VendorService
from .material_category_service import MaterialCategoryService
from .material_service import MaterialService
from .formulation_service import FormulationService
from .report_service import ReportService

__all__ = [
    "VendorService",
    "MaterialCategoryService",
    "MaterialService",
    "FormulationService",
    "ReportService",
]
