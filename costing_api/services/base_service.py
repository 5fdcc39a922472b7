"""
Base Service Classes.

Provides base classes for application services that:
- Use Repository for data access (not direct queries)
- Use pydantic output schemas for DTO transformation
- Handle business rule validation before any state mutation
- Write one audit entry per mutation, after the mutation is committed

Architecture:
    Router (thin) → Service (business logic) → Repository (data access) → Model

Usage:
    from costing_api.services.base_service import BaseCRUDService

    class VendorService(BaseCRUDService[Vendor, VendorOutput]):
        def __init__(self, db: Session):
            super().__init__(
                db=db,
                model=Vendor,
                output_schema=VendorOutput,
                entity_name="Vendor",
                entity_type=EntityType.VENDOR,
            )
"""

from __future__ import annotations

from abc import ABC
from typing import Any, Callable, Generic, Optional, Type, TypeVar

from pydantic import BaseModel
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from costing_api.models import Base
from costing_api.services.audit import Actor, record_audit, serialize_model
from costing_api.services.crud.repository import TenantRepository
from shared.config.constants import AuditAction
from shared.config.logging import get_logger
from shared.infrastructure.db import safe_commit
from shared.utils.exceptions import DatabaseError, NotFoundError

logger = get_logger(__name__)

ModelT = TypeVar("ModelT", bound=Base)
OutputT = TypeVar("OutputT", bound=BaseModel)


class BaseService(ABC, Generic[ModelT]):
    """
    Abstract base service for domain operations.

    Subclasses implement specific business logic while this class
    provides common infrastructure (repository access, commits).
    """

    def __init__(self, db: Session, model: Type[ModelT]):
        self._db = db
        self._model = model
        self._repo = TenantRepository(model, db)

    @property
    def db(self) -> Session:
        return self._db

    @property
    def repo(self) -> TenantRepository[ModelT]:
        return self._repo

    def _commit(self, operation: str, **log_context: Any) -> None:
        """
        Commit the unit of work or raise DatabaseError.

        safe_commit already rolled back, so the caller can state that
        nothing was persisted.
        """
        try:
            safe_commit(self._db)
        except SQLAlchemyError as e:
            logger.error(f"Failed to {operation}", error=str(e), **log_context)
            raise DatabaseError(operation, **log_context)


class BaseCRUDService(BaseService[ModelT], Generic[ModelT, OutputT]):
    """
    Base service for tenant-owned entities with CRUD operations.

    Standard create/update/delete run validation hooks first, commit,
    then record the audit entry and call the _after_* hook. Deletes are
    hard deletes; formulations override this with the lifecycle guard.
    """

    def __init__(
        self,
        db: Session,
        model: Type[ModelT],
        output_schema: Type[OutputT],
        entity_name: str,
        entity_type: str,
        describe: Optional[Callable[..., str]] = None,
    ):
        super().__init__(db, model)
        self._output_schema = output_schema
        self._entity_name = entity_name
        self._entity_type = entity_type
        self._describe = describe

    @property
    def entity_name(self) -> str:
        return self._entity_name

    # =========================================================================
    # Read Operations
    # =========================================================================

    def get_entity(self, entity_id: int, tenant_id: int, **kwargs: Any) -> ModelT:
        """Get raw entity or raise NotFoundError."""
        entity = self._repo.find_by_id(entity_id, tenant_id, **kwargs)
        if entity is None:
            raise NotFoundError(self._entity_name, entity_id, tenant_id=tenant_id)
        return entity

    def get_by_id(self, entity_id: int, tenant_id: int) -> OutputT:
        return self.to_output(self.get_entity(entity_id, tenant_id))

    def list_all(
        self,
        tenant_id: int,
        *,
        limit: int | None = None,
        offset: int | None = None,
        order_by: Any | None = None,
    ) -> list[OutputT]:
        entities = self._repo.find_all(
            tenant_id, limit=limit, offset=offset, order_by=order_by
        )
        return [self.to_output(e) for e in entities]

    def count(self, tenant_id: int) -> int:
        return self._repo.count(tenant_id)

    # =========================================================================
    # Write Operations
    # =========================================================================

    def create(self, data: dict[str, Any], tenant_id: int, actor: Actor) -> OutputT:
        """
        Create new entity.

        Raises:
            ValidationError: If data is invalid (nothing written).
            DatabaseError: If the commit fails (nothing written).
        """
        self._validate_create(data, tenant_id)

        entity = self._model(**data, tenant_id=tenant_id)
        self._apply_derived(entity)
        entity.set_created_by(actor.user_id, actor.email)
        self._db.add(entity)
        self._commit(f"create {self._entity_name.lower()}", tenant_id=tenant_id)

        self._audit(AuditAction.CREATE, entity, actor, data=serialize_model(entity))
        self._after_create(entity, actor)
        return self.to_output(entity)

    def update(
        self,
        entity_id: int,
        data: dict[str, Any],
        tenant_id: int,
        actor: Actor,
    ) -> OutputT:
        """
        Update existing entity with the given partial data.

        Raises:
            NotFoundError: If entity not found.
            ValidationError: If data is invalid (nothing written).
            DatabaseError: If the commit fails (nothing written).
        """
        entity = self.get_entity(entity_id, tenant_id)
        self._validate_update(entity, data, tenant_id)

        before = serialize_model(entity)
        for field_name, value in data.items():
            if hasattr(entity, field_name):
                setattr(entity, field_name, value)
        self._apply_derived(entity)
        entity.set_updated_by(actor.user_id, actor.email)

        self._commit(f"update {self._entity_name.lower()}", entity_id=entity_id)

        self._audit(
            AuditAction.UPDATE, entity, actor, before=before, after=serialize_model(entity)
        )
        self._after_update(entity, before, actor)
        return self.to_output(entity)

    def delete(self, entity_id: int, tenant_id: int, actor: Actor) -> None:
        """
        Hard delete an entity.

        Raises:
            NotFoundError: If entity not found.
            ConflictError: If dependents block the deletion.
        """
        entity = self.get_entity(entity_id, tenant_id)
        self._validate_delete(entity, tenant_id)

        snapshot = serialize_model(entity)
        description = self._description(AuditAction.DELETE, entity)
        self._before_delete(entity, tenant_id)
        self._db.delete(entity)
        self._commit(f"delete {self._entity_name.lower()}", entity_id=entity_id)

        record_audit(
            self._db,
            tenant_id=tenant_id,
            actor=actor,
            entity_type=self._entity_type,
            entity_id=entity_id,
            action=AuditAction.DELETE,
            description=description,
            data=snapshot,
        )
        self._after_delete(snapshot, actor)

    # =========================================================================
    # Transformation
    # =========================================================================

    def to_output(self, entity: ModelT) -> OutputT:
        """Convert entity to output DTO. Override for custom transformation."""
        return self._output_schema.model_validate(entity)

    # =========================================================================
    # Validation Hooks (override in subclasses)
    # =========================================================================

    def _validate_create(self, data: dict[str, Any], tenant_id: int) -> None:
        pass

    def _validate_update(self, entity: ModelT, data: dict[str, Any], tenant_id: int) -> None:
        pass

    def _validate_delete(self, entity: ModelT, tenant_id: int) -> None:
        pass

    # =========================================================================
    # Lifecycle Hooks (override in subclasses)
    # =========================================================================

    def _apply_derived(self, entity: ModelT) -> None:
        """Recompute derived columns after fields are assigned."""
        pass

    def _before_delete(self, entity: ModelT, tenant_id: int) -> None:
        """Detach dependents inside the delete transaction."""
        pass

    def _after_create(self, entity: ModelT, actor: Actor) -> None:
        pass

    def _after_update(self, entity: ModelT, before: dict[str, Any], actor: Actor) -> None:
        pass

    def _after_delete(self, snapshot: dict[str, Any], actor: Actor) -> None:
        pass

    # =========================================================================
    # Internal Helpers
    # =========================================================================

    def _description(self, action: str, entity: ModelT, before: Optional[dict] = None) -> str:
        if self._describe is not None:
            return self._describe(action, entity, before)
        return f"{action.capitalize()} {self._entity_name.lower()} {entity.id}"

    def _audit(
        self,
        action: str,
        entity: ModelT,
        actor: Actor,
        *,
        data: Optional[dict] = None,
        before: Optional[dict] = None,
        after: Optional[dict] = None,
    ) -> None:
        record_audit(
            self._db,
            tenant_id=entity.tenant_id,
            actor=actor,
            entity_type=self._entity_type,
            entity_id=entity.id,
            action=action,
            description=self._description(action, entity, before),
            data=data,
            before=before,
            after=after,
        )
