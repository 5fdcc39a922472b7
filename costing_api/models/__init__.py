"""
SQLAlchemy ORM Models Package.

Modules:
- base: Base class, AuditMixin and time helpers
- tenant: Tenant, User
- vendor: Vendor, MaterialCategory
- material: Material
- formulation: Formulation, FormulationIngredient
- audit: AuditLog
"""

from .base import Base, AuditMixin, utcnow, as_utc
from .tenant import Tenant, User
from .vendor import Vendor, MaterialCategory
from .material import Material
from .formulation import Formulation, FormulationIngredient
from .audit import AuditLog

__all__ = [
    "Base",
    "AuditMixin",
    "utcnow",
    "as_utc",
    "Tenant",
    "User",
    "Vendor",
    "MaterialCategory",
    "Material",
    "Formulation",
    "FormulationIngredient",
    "AuditLog",
]
