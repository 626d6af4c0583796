"""
Repository Pattern for database access.

Provides a clean abstraction layer between business logic and data access,
with built-in multi-tenant isolation.

Usage:
    from meal_booking.repositories.base import TenantRepository

    repo = TenantRepository(Student, db)
    student = repo.find_by_id(42, tenant_id=1)
"""

from __future__ import annotations

from typing import Generic, TypeVar

from sqlalchemy import select
from sqlalchemy.orm import Session
from sqlalchemy.sql import Select

from meal_booking.models import Base

ModelT = TypeVar("ModelT", bound=Base)


class TenantRepository(Generic[ModelT]):
    """
    Repository with automatic multi-tenant isolation.

    All queries are filtered by tenant_id, so an id that belongs to another
    tenant behaves exactly like an id that does not exist.
    """

    def __init__(self, model: type[ModelT], session: Session):
        self._model = model
        self._session = session

    def _tenant_query(self, tenant_id: int) -> Select:
        """Create tenant-filtered base query."""
        if not hasattr(self._model, "tenant_id"):
            raise AttributeError(
                f"Model {self._model.__name__} does not have tenant_id column."
            )
        return select(self._model).where(self._model.tenant_id == tenant_id)

    def _apply_active_filter(self, query: Select, include_inactive: bool) -> Select:
        """Apply is_active filter if model has it."""
        if hasattr(self._model, "is_active") and not include_inactive:
            query = query.where(self._model.is_active.is_(True))
        return query

    def find_by_id(
        self,
        entity_id: int,
        tenant_id: int,
        *,
        include_inactive: bool = False,
    ) -> ModelT | None:
        """
        Find entity by ID within tenant scope.

        Args:
            entity_id: The primary key value.
            tenant_id: The tenant ID for isolation.
            include_inactive: Include inactive entities.

        Returns:
            Entity or None if not found or wrong tenant.
        """
        query = self._tenant_query(tenant_id).where(self._model.id == entity_id)
        query = self._apply_active_filter(query, include_inactive)
        return self._session.scalar(query)
