"""
Lifecycle Guard for formulations.

States: active, archived, deleted (terminal, the row is gone).
Transitions: active -> archived, active -> deleted, archived -> active.

A delete request hard-deletes only formulations without history. History
means any of:
    - an audit entry for the formulation other than its creation
    - age greater than the configured threshold (24h)
    - updated_at later than created_at by more than the grace period (60s)
If the history check itself fails the formulation is archived, never
deleted.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, selectinload

from costing_api.models import Formulation, as_utc, utcnow
from costing_api.services.audit import (
    Actor,
    describe_formulation,
    record_audit,
    serialize_formulation,
    serialize_model,
)
from costing_api.services.change_summary import AuditQuery
from costing_api.services.costing import reset_costs
from costing_api.services.crud.repository import TenantRepository
from shared.config.constants import AuditAction, EntityType
from shared.config.logging import lifecycle_logger as logger
from shared.config.settings import settings
from shared.infrastructure.db import safe_commit
from shared.utils.exceptions import DatabaseError, InvalidTransitionError, NotFoundError

RESTORE_MESSAGE = (
    "Formulation restored. Its ingredient list was cleared and its costs were "
    "reset to zero; add the ingredients again to recalculate."
)


@dataclass(frozen=True, slots=True)
class HistoryVerdict:
    has_history: bool
    reason: str


@dataclass(frozen=True, slots=True)
class LifecycleOutcome:
    formulation_id: int
    deleted: bool
    archived: bool
    reason: str
    is_active: Optional[bool] = None

    @property
    def message(self) -> str:
        if self.deleted:
            return "Formulation deleted permanently"
        return f"Formulation archived instead of deleted ({self.reason})"

    def to_dict(self) -> dict:
        return {
            "id": self.formulation_id,
            "deleted": self.deleted,
            "archived": self.archived,
            "is_active": self.is_active,
            "reason": self.reason,
            "message": self.message,
        }


@dataclass(frozen=True, slots=True)
class RestoreOutcome:
    formulation: Formulation
    cleared_ingredients_count: int
    message: str = RESTORE_MESSAGE


class LifecycleGuard:
    """
    Decides between hard delete and archive, and performs archive/restore.

    Args:
        db: Session.
        now: Clock override, mainly for tests.
    """

    def __init__(self, db: Session, *, now: Optional[Callable[[], datetime]] = None):
        self._db = db
        self._now = now or utcnow
        self._repo = TenantRepository(Formulation, db)
        self._audit = AuditQuery(db)
        self._age_threshold = timedelta(hours=settings.history_age_threshold_hours)
        self._grace = timedelta(seconds=settings.history_modification_grace_seconds)

    def _get(self, formulation_id: int, tenant_id: int) -> Formulation:
        formulation = self._repo.find_by_id(
            formulation_id,
            tenant_id,
            include_inactive=True,
            options=[selectinload(Formulation.ingredients)],
        )
        if formulation is None:
            raise NotFoundError("Formulation", formulation_id, tenant_id=tenant_id)
        return formulation

    # =========================================================================
    # History
    # =========================================================================

    def has_history(self, formulation: Formulation) -> HistoryVerdict:
        try:
            changes = self._audit.non_create_count(
                formulation.tenant_id, EntityType.FORMULATION, formulation.id
            )
            if changes:
                return HistoryVerdict(True, f"{changes} recorded change(s) after creation")

            created = as_utc(formulation.created_at)
            updated = as_utc(formulation.updated_at) or created
            if self._now() - created > self._age_threshold:
                return HistoryVerdict(True, "older than the history age threshold")
            if updated - created > self._grace:
                return HistoryVerdict(True, "modified after creation")
        except Exception as e:
            self._db.rollback()
            logger.error(
                "History check failed; archiving instead of deleting",
                formulation_id=formulation.id,
                error=str(e),
                exc_info=True,
            )
            return HistoryVerdict(True, "history check failed")

        return HistoryVerdict(False, "no history")

    # =========================================================================
    # Transitions
    # =========================================================================

    def decide_delete_or_archive(
        self, formulation_id: int, tenant_id: int, actor: Actor
    ) -> LifecycleOutcome:
        """
        Handle a delete request.

        Raises:
            NotFoundError: Unknown formulation (or another tenant's).
            InvalidTransitionError: The formulation is already archived.
        """
        formulation = self._get(formulation_id, tenant_id)
        if formulation.archived:
            raise InvalidTransitionError("Formulation", "archived", "deleted")

        verdict = self.has_history(formulation)
        logger.info(
            "Delete requested",
            formulation_id=formulation_id,
            has_history=verdict.has_history,
            reason=verdict.reason,
        )

        if verdict.has_history:
            self._archive(formulation, actor, verdict.reason)
            return LifecycleOutcome(
                formulation_id=formulation_id,
                deleted=False,
                archived=True,
                reason=verdict.reason,
                is_active=formulation.is_active,
            )

        self._hard_delete(formulation, actor)
        return LifecycleOutcome(
            formulation_id=formulation_id,
            deleted=True,
            archived=False,
            reason=verdict.reason,
        )

    def archive(
        self,
        formulation_id: int,
        tenant_id: int,
        actor: Actor,
        reason: str = "archived manually",
    ) -> Formulation:
        """Archive an active formulation regardless of its history."""
        formulation = self._get(formulation_id, tenant_id)
        if formulation.archived:
            raise InvalidTransitionError("Formulation", "archived", "archived")
        self._archive(formulation, actor, reason)
        return formulation

    def restore_formulation(
        self, formulation_id: int, tenant_id: int, actor: Actor
    ) -> RestoreOutcome:
        """
        Reactivate an archived formulation as an empty shell.

        Every ingredient line is removed and total_cost, unit_cost and
        profit_margin are reset to zero, so no line can point at a
        material that changed or disappeared while archived.
        """
        formulation = self._get(formulation_id, tenant_id)
        if not formulation.archived:
            raise InvalidTransitionError("Formulation", "active", "active")

        before = serialize_formulation(formulation)
        cleared = len(formulation.ingredients)
        formulation.ingredients.clear()
        reset_costs(formulation)
        formulation.restore(actor.user_id, actor.email)
        self._commit("restore formulation", formulation_id)

        record_audit(
            self._db,
            tenant_id=tenant_id,
            actor=actor,
            entity_type=EntityType.FORMULATION,
            entity_id=formulation_id,
            action=AuditAction.RESTORE,
            description=describe_formulation(AuditAction.RESTORE, formulation, cleared=cleared),
            data={
                "previous": before,
                "cleared_ingredients_count": cleared,
                "restored": serialize_model(formulation),
            },
        )
        logger.info("Formulation restored", formulation_id=formulation_id, cleared=cleared)
        return RestoreOutcome(formulation=formulation, cleared_ingredients_count=cleared)

    # =========================================================================
    # Internal
    # =========================================================================

    def _commit(self, operation: str, formulation_id: int) -> None:
        try:
            safe_commit(self._db)
        except SQLAlchemyError as e:
            logger.error(f"Failed to {operation}", formulation_id=formulation_id, error=str(e))
            raise DatabaseError(operation, formulation_id=formulation_id)

    def _archive(self, formulation: Formulation, actor: Actor, reason: str) -> None:
        formulation.soft_delete(actor.user_id, actor.email)
        self._commit("archive formulation", formulation.id)
        record_audit(
            self._db,
            tenant_id=formulation.tenant_id,
            actor=actor,
            entity_type=EntityType.FORMULATION,
            entity_id=formulation.id,
            action=AuditAction.ARCHIVE,
            description=describe_formulation(AuditAction.ARCHIVE, formulation, reason=reason),
            data={"reason": reason, "formulation": serialize_model(formulation)},
        )
        logger.info("Formulation archived", formulation_id=formulation.id, reason=reason)

    def _hard_delete(self, formulation: Formulation, actor: Actor) -> None:
        formulation_id = formulation.id
        tenant_id = formulation.tenant_id
        snapshot = serialize_formulation(formulation)
        description = describe_formulation(AuditAction.DELETE, formulation)

        self._db.delete(formulation)
        self._commit("delete formulation", formulation_id)

        record_audit(
            self._db,
            tenant_id=tenant_id,
            actor=actor,
            entity_type=EntityType.FORMULATION,
            entity_id=formulation_id,
            action=AuditAction.DELETE,
            description=description,
            data=snapshot,
        )
        logger.info("Formulation deleted", formulation_id=formulation_id)
