"""
MealRegistrationRepository: tenant-scoped queries over meal_registration.
"""

from __future__ import annotations

from datetime import date
from typing import Sequence

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from meal_booking.models import MealRegistration
from meal_booking.repositories.base import TenantRepository
from shared.config.constants import Limits, RegistrationStatus


class MealRegistrationRepository(TenantRepository[MealRegistration]):
    """Registrations of one tenant. Rows are never deleted, only transitioned."""

    def __init__(self, session: Session):
        super().__init__(MealRegistration, session)

    def _meal_query(self, tenant_id: int, meal_type: str, meal_date: date):
        return self._tenant_query(tenant_id).where(
            MealRegistration.meal_type == meal_type,
            MealRegistration.meal_date == meal_date,
        )

    def find_active(
        self,
        tenant_id: int,
        student_id: int,
        meal_type: str,
        meal_date: date,
    ) -> MealRegistration | None:
        """The non-cancelled registration for an identity, if any."""
        query = self._meal_query(tenant_id, meal_type, meal_date).where(
            MealRegistration.student_id == student_id,
            MealRegistration.status != RegistrationStatus.CANCELLED,
        )
        return self._session.scalar(query)

    def find_latest(
        self,
        tenant_id: int,
        student_id: int,
        meal_type: str,
        meal_date: date,
    ) -> MealRegistration | None:
        """Newest row for an identity, cancelled ones included."""
        query = (
            self._meal_query(tenant_id, meal_type, meal_date)
            .where(MealRegistration.student_id == student_id)
            .order_by(MealRegistration.id.desc())
            .limit(1)
        )
        return self._session.scalar(query)

    def list_by_status(
        self,
        tenant_id: int,
        meal_type: str,
        meal_date: date,
        statuses: list[str],
        *,
        order_by=None,
    ) -> Sequence[MealRegistration]:
        query = self._meal_query(tenant_id, meal_type, meal_date).where(
            MealRegistration.status.in_(statuses)
        )
        query = query.order_by(order_by if order_by is not None else MealRegistration.token_number)
        return self._session.scalars(query).all()

    def list_for_meal(self, tenant_id: int, meal_type: str, meal_date: date) -> Sequence[MealRegistration]:
        """Every registration of a meal, any status, token ascending."""
        return self.list_by_status(tenant_id, meal_type, meal_date, RegistrationStatus.ALL)

    def list_queue(self, tenant_id: int, meal_type: str, meal_date: date) -> Sequence[MealRegistration]:
        """Registered, not yet consumed, token ascending."""
        return self.list_by_status(
            tenant_id, meal_type, meal_date, [RegistrationStatus.REGISTERED]
        )

    def list_consumed(self, tenant_id: int, meal_type: str, meal_date: date) -> Sequence[MealRegistration]:
        return self.list_by_status(
            tenant_id, meal_type, meal_date, [RegistrationStatus.CONSUMED]
        )

    def list_opted_out(self, tenant_id: int, meal_type: str, meal_date: date) -> Sequence[MealRegistration]:
        return self.list_by_status(
            tenant_id,
            meal_type,
            meal_date,
            [RegistrationStatus.OPTED_OUT],
            order_by=MealRegistration.student_name,
        )

    def list_for_student(self, tenant_id: int, student_id: int, meal_date: date) -> Sequence[MealRegistration]:
        """All registrations (any status) of a student on a date."""
        query = (
            self._tenant_query(tenant_id)
            .where(
                MealRegistration.student_id == student_id,
                MealRegistration.meal_date == meal_date,
            )
            .order_by(MealRegistration.meal_type, MealRegistration.id)
        )
        return self._session.scalars(query).all()

    def history(
        self,
        tenant_id: int,
        student_id: int,
        limit: int = Limits.DEFAULT_HISTORY_SIZE,
    ) -> Sequence[MealRegistration]:
        """Most recent registrations, newest meal date first."""
        limit = max(1, min(limit, Limits.MAX_HISTORY_SIZE))
        query = (
            self._tenant_query(tenant_id)
            .where(MealRegistration.student_id == student_id)
            .order_by(
                MealRegistration.meal_date.desc(),
                MealRegistration.meal_type,
                MealRegistration.id.desc(),
            )
            .limit(limit)
        )
        return self._session.scalars(query).all()

    def count_by_status(self, tenant_id: int, meal_type: str, meal_date: date) -> dict[str, int]:
        """Row count per status for one meal; absent statuses count 0."""
        rows = self._session.execute(
            select(MealRegistration.status, func.count())
            .where(
                MealRegistration.tenant_id == tenant_id,
                MealRegistration.meal_type == meal_type,
                MealRegistration.meal_date == meal_date,
            )
            .group_by(MealRegistration.status)
        ).all()
        counts = {status: 0 for status in RegistrationStatus.ALL}
        counts.update({status: count for status, count in rows})
        return counts

    def count_special(self, tenant_id: int, meal_type: str, meal_date: date, statuses: list[str]) -> int:
        query = (
            select(func.count())
            .select_from(MealRegistration)
            .where(
                MealRegistration.tenant_id == tenant_id,
                MealRegistration.meal_type == meal_type,
                MealRegistration.meal_date == meal_date,
                MealRegistration.status.in_(statuses),
                MealRegistration.is_special.is_(True),
            )
        )
        return self._session.scalar(query) or 0

    def daily_statistics(
        self,
        tenant_id: int,
        from_date: date,
        to_date: date,
    ) -> Sequence[tuple[date, str, int, int]]:
        """
        (meal_date, meal_type, student_count, max_token) per meal in the
        inclusive range, for registrations that are or were going to be
        served (registered or consumed). Newest date first, lunch before
        dinner.
        """
        query = (
            select(
                MealRegistration.meal_date,
                MealRegistration.meal_type,
                func.count(),
                func.max(MealRegistration.token_number),
            )
            .where(
                MealRegistration.tenant_id == tenant_id,
                MealRegistration.meal_date.between(from_date, to_date),
                MealRegistration.status.in_(
                    [RegistrationStatus.REGISTERED, RegistrationStatus.CONSUMED]
                ),
            )
            .group_by(MealRegistration.meal_date, MealRegistration.meal_type)
            # "lunch" sorts after "dinner"
            .order_by(MealRegistration.meal_date.desc(), MealRegistration.meal_type.desc())
        )
        return [tuple(row) for row in self._session.execute(query).all()]

    def max_token(self, tenant_id: int, meal_type: str, meal_date: date) -> int:
        """Highest token ever handed out for the meal, cancelled rows included."""
        query = select(func.max(MealRegistration.token_number)).where(
            MealRegistration.tenant_id == tenant_id,
            MealRegistration.meal_type == meal_type,
            MealRegistration.meal_date == meal_date,
        )
        return self._session.scalar(query) or 0
