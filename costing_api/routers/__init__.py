"""
HTTP routers.

- auth: /api/auth/* login and current user
- costing: /api/* vendors, materials, formulations, dashboard, audit, reports
"""

from .auth import router as auth_router
from .costing import router as costing_router

__all__ = ["auth_router", "costing_router"]
