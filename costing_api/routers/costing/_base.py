"""
Shared dependencies and helpers for the costing routers.

Routers stay thin: they resolve the caller, check the role and plan
gate, then hand off to a domain service. Domain exceptions raised by
services are HTTP exceptions already and pass through untouched.
"""

from typing import Any

from fastapi import Depends
from sqlalchemy.orm import Session

from costing_api.services.audit import Actor
from costing_api.services.plan_policy import PlanGate
from shared.config.constants import EDITOR_ROLES
from shared.infrastructure.db import get_db
from shared.security.auth import current_user_context as current_user
from shared.security.auth import require_roles


# =============================================================================
# Role-based Dependencies
# =============================================================================


def require_editor(user: dict = Depends(current_user)) -> dict:
    """Dependency that requires OWNER or EDITOR role. VIEWER is read-only."""
    require_roles(user, EDITOR_ROLES)
    return user


def plan_gate(
    db: Session = Depends(get_db),
    user: dict = Depends(current_user),
) -> PlanGate:
    """Subscription plan gate for the caller's tenant."""
    return PlanGate.for_tenant(db, user["tenant_id"])


# =============================================================================
# Common Utility Functions
# =============================================================================


def tenant_of(user: dict[str, Any]) -> int:
    return user["tenant_id"]


def actor_of(user: dict[str, Any]) -> Actor:
    return Actor.from_context(user)


__all__ = [
    "current_user",
    "get_db",
    "require_editor",
    "plan_gate",
    "tenant_of",
    "actor_of",
]
