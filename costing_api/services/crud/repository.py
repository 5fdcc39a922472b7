"""
Repository Pattern for database access.

Provides a thin abstraction between business logic and data access,
with built-in multi-tenant isolation: every TenantRepository query is
filtered by tenant_id, so an id that belongs to another tenant behaves
exactly like a missing one.

Usage:
    from costing_api.services.crud import TenantRepository

    material_repo = TenantRepository(Material, db)
    materials = material_repo.find_all(tenant_id=1)
    material = material_repo.find_by_id(42, tenant_id=1)

    # Archived formulations are is_active=False
    formulation_repo.find_all(tenant_id=1, include_inactive=True)
"""

from __future__ import annotations

from typing import Any, Generic, Sequence, TypeVar

from sqlalchemy import exists as sql_exists
from sqlalchemy import func, select
from sqlalchemy.orm import Session
from sqlalchemy.sql import Select

from costing_api.models import Base

ModelT = TypeVar("ModelT", bound=Base)


class BaseRepository(Generic[ModelT]):
    """
    Base repository providing common database operations.

    For multi-tenant entities, use TenantRepository instead.
    """

    def __init__(self, model: type[ModelT], session: Session):
        self._model = model
        self._session = session

    @property
    def model(self) -> type[ModelT]:
        return self._model

    @property
    def session(self) -> Session:
        return self._session

    def _base_query(self) -> Select:
        return select(self._model)

    def _apply_active_filter(self, query: Select, include_inactive: bool) -> Select:
        """Apply is_active filter if model has it."""
        if hasattr(self._model, "is_active") and not include_inactive:
            query = query.where(self._model.is_active.is_(True))
        return query

    def _apply_options(self, query: Select, options: list[Any] | None) -> Select:
        if options:
            query = query.options(*options)
        return query

    def _apply_paging(
        self,
        query: Select,
        order_by: Any | None,
        limit: int | None,
        offset: int | None,
    ) -> Select:
        query = query.order_by(order_by if order_by is not None else self._model.id)
        if offset is not None:
            query = query.offset(offset)
        if limit is not None:
            query = query.limit(limit)
        return query

    def find_by_id(
        self,
        entity_id: int,
        *,
        options: list[Any] | None = None,
        include_inactive: bool = False,
    ) -> ModelT | None:
        query = self._base_query().where(self._model.id == entity_id)
        query = self._apply_active_filter(query, include_inactive)
        query = self._apply_options(query, options)
        return self._session.scalar(query)

    def add(self, entity: ModelT) -> ModelT:
        """Add entity to session (not committed)."""
        self._session.add(entity)
        return entity

    def delete(self, entity: ModelT) -> None:
        """Delete entity from session (not committed)."""
        self._session.delete(entity)

    def refresh(self, entity: ModelT) -> ModelT:
        self._session.refresh(entity)
        return entity


class TenantRepository(BaseRepository[ModelT]):
    """
    Repository with automatic multi-tenant isolation.

    The model must have a `tenant_id` column.
    """

    def _tenant_query(self, tenant_id: int) -> Select:
        if not hasattr(self._model, "tenant_id"):
            raise AttributeError(
                f"Model {self._model.__name__} does not have tenant_id column. "
                "Use BaseRepository instead."
            )
        return self._base_query().where(self._model.tenant_id == tenant_id)

    def find_by_id(
        self,
        entity_id: int,
        tenant_id: int,
        *,
        options: list[Any] | None = None,
        include_inactive: bool = False,
    ) -> ModelT | None:
        """
        Find entity by ID within tenant scope.

        Returns:
            Entity or None if not found or owned by another tenant.
        """
        query = self._tenant_query(tenant_id).where(self._model.id == entity_id)
        query = self._apply_active_filter(query, include_inactive)
        query = self._apply_options(query, options)
        return self._session.scalar(query)

    def find_all(
        self,
        tenant_id: int,
        *,
        options: list[Any] | None = None,
        include_inactive: bool = False,
        limit: int | None = None,
        offset: int | None = None,
        order_by: Any | None = None,
    ) -> Sequence[ModelT]:
        """
        Find all entities within tenant scope, ordered by id unless told otherwise.

        Args:
            tenant_id: The tenant ID for isolation.
            options: SQLAlchemy loader options.
            include_inactive: Include inactive (archived) rows.
            limit: Maximum results.
            offset: Skip count.
            order_by: Order expression.
        """
        query = self._tenant_query(tenant_id)
        query = self._apply_active_filter(query, include_inactive)
        query = self._apply_options(query, options)
        query = self._apply_paging(query, order_by, limit, offset)
        return self._session.scalars(query).all()

    def find_by_ids(
        self,
        entity_ids: Sequence[int],
        tenant_id: int,
        *,
        include_inactive: bool = True,
    ) -> dict[int, ModelT]:
        """Load several entities at once, keyed by id. Missing ids are simply absent."""
        if not entity_ids:
            return {}
        query = self._tenant_query(tenant_id).where(self._model.id.in_(set(entity_ids)))
        query = self._apply_active_filter(query, include_inactive)
        return {entity.id: entity for entity in self._session.scalars(query).all()}

    def ordered_ids(self, tenant_id: int, *, include_inactive: bool = True) -> list[int]:
        """Ids in creation order; plan soft-lock positions are computed from this."""
        query = select(self._model.id).where(self._model.tenant_id == tenant_id)
        if hasattr(self._model, "is_active") and not include_inactive:
            query = query.where(self._model.is_active.is_(True))
        return list(self._session.scalars(query.order_by(self._model.id)).all())

    def count(self, tenant_id: int, *, include_inactive: bool = False) -> int:
        query = (
            select(func.count())
            .select_from(self._model)
            .where(self._model.tenant_id == tenant_id)
        )
        if hasattr(self._model, "is_active") and not include_inactive:
            query = query.where(self._model.is_active.is_(True))
        return self._session.scalar(query) or 0

    def exists(self, entity_id: int, tenant_id: int) -> bool:
        query = select(
            sql_exists().where(
                self._model.id == entity_id,
                self._model.tenant_id == tenant_id,
            )
        )
        return self._session.scalar(query) or False
