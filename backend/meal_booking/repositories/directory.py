"""
Read-only access to the Student and Tenant directories.
"""

from __future__ import annotations

from typing import Sequence

from sqlalchemy import select
from sqlalchemy.orm import Session

from meal_booking.models import Student, Tenant
from meal_booking.repositories.base import TenantRepository


class StudentDirectory(TenantRepository[Student]):
    """Active students per tenant."""

    def __init__(self, session: Session):
        super().__init__(Student, session)

    def get_active(self, student_id: int, tenant_id: int) -> Student | None:
        """Active student within the tenant, or None."""
        return self.find_by_id(student_id, tenant_id)

    def list_eligible(self, tenant_id: int) -> Sequence[Student]:
        """
        Students the scheduler enrolls automatically: active regular
        students (day boarders book for themselves).
        """
        query = (
            self._tenant_query(tenant_id)
            .where(
                Student.is_active.is_(True),
                Student.is_day_boarder.is_(False),
            )
            .order_by(Student.id)
        )
        return self._session.scalars(query).all()


class TenantDirectory:
    """Active tenant ids, used to (re)build the full schedule set."""

    def __init__(self, session: Session):
        self._session = session

    def list_active_ids(self) -> list[int]:
        return list(
            self._session.scalars(
                select(Tenant.id).where(Tenant.is_active.is_(True)).order_by(Tenant.id)
            ).all()
        )
