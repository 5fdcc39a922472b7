"""
Services module for business logic.

- domain/: Application services (business logic) - USE THESE
- crud/: Tenant-isolated repositories
- costing/: Pure cost arithmetic and the cost resolver
- events/: In-process domain events
- propagation: Material price fan-out to formulations
- lifecycle: Delete-or-archive decisions and restore
- change_summary: Typed reads over the audit log
- plan_policy: Subscription limits and soft-lock

Usage:
    from costing_api.services.domain import FormulationService
    service = FormulationService(db)
    detail = service.get_formulation(formulation_id, tenant_id)
"""

from .audit import Actor, record_audit
from .change_summary import AuditQuery, ChangeSummary, summarize
from .lifecycle import LifecycleGuard, LifecycleOutcome, RestoreOutcome
from .plan_policy import PlanGate, PlanPolicy
from .propagation import PropagationEngine, PropagationReport, register_propagation_handlers

__all__ = [
    "Actor",
    "record_audit",
    "AuditQuery",
    "ChangeSummary",
    "summarize",
    "LifecycleGuard",
    "LifecycleOutcome",
    "RestoreOutcome",
    "PlanGate",
    "PlanPolicy",
    "PropagationEngine",
    "PropagationReport",
    "register_propagation_handlers",
]
