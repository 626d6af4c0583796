"""
Meal Models: MealWindowSetting, MealRegistration, MealTokenCounter.
"""

from __future__ import annotations

from datetime import date, datetime, time
from typing import Optional

from sqlalchemy import (
    BigInteger,
    Boolean,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    Time,
    UniqueConstraint,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column

from shared.config.constants import MealPreference, RegistrationStatus

from .base import AuditMixin, Base, BigIntPK


class MealWindowSetting(AuditMixin, Base):
    """
    One tenant's booking and serving windows for one weekday and meal type.

    A tenant with no rows has no meals configured at all; an enabled row
    must carry start < end for both windows.
    """

    __tablename__ = "meal_window_setting"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    tenant_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("tenant.id"), nullable=False, index=True
    )
    weekday: Mapped[str] = mapped_column(String(10), nullable=False)  # "Monday" .. "Sunday"
    meal_type: Mapped[str] = mapped_column(String(10), nullable=False)  # lunch, dinner
    enabled: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    booking_start: Mapped[Optional[time]] = mapped_column(Time)
    booking_end: Mapped[Optional[time]] = mapped_column(Time)
    serving_start: Mapped[Optional[time]] = mapped_column(Time)
    serving_end: Mapped[Optional[time]] = mapped_column(Time)

    __table_args__ = (
        UniqueConstraint("tenant_id", "weekday", "meal_type", name="uq_meal_window_setting_day_meal"),
    )

    def __repr__(self) -> str:
        return (
            f"<MealWindowSetting(tenant_id={self.tenant_id}, weekday='{self.weekday}', "
            f"meal_type='{self.meal_type}', enabled={self.enabled})>"
        )


class MealRegistration(AuditMixin, Base):
    """
    A student's registration for one meal on one date.

    Identity is (tenant_id, student_id, meal_type, meal_date); at most one
    non-cancelled row per identity. Student fields are a snapshot taken at
    registration time.
    """

    __tablename__ = "meal_registration"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    tenant_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("tenant.id"), nullable=False, index=True
    )
    student_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("student.id"), nullable=False, index=True
    )
    meal_type: Mapped[str] = mapped_column(String(10), nullable=False)
    meal_date: Mapped[date] = mapped_column(Date, nullable=False)
    token_number: Mapped[int] = mapped_column(Integer, nullable=False)
    status: Mapped[str] = mapped_column(
        String(20), default=RegistrationStatus.REGISTERED, nullable=False, index=True
    )
    preference: Mapped[str] = mapped_column(
        String(10), default=MealPreference.NON_VEG, nullable=False
    )
    is_special: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    special_remarks: Mapped[str] = mapped_column(Text, default="", nullable=False)
    registered_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    consumed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    consumed_by: Mapped[Optional[str]] = mapped_column(String(100))

    # Snapshot of the student at registration time
    student_reg_no: Mapped[Optional[str]] = mapped_column(Text)
    student_name: Mapped[str] = mapped_column(Text, nullable=False)
    mobile: Mapped[Optional[str]] = mapped_column(Text)
    email: Mapped[Optional[str]] = mapped_column(Text)
    address: Mapped[Optional[str]] = mapped_column(Text)
    course: Mapped[Optional[str]] = mapped_column(Text)
    hostel: Mapped[Optional[str]] = mapped_column(Text)
    associated_flat: Mapped[Optional[str]] = mapped_column(Text)
    associated_block: Mapped[Optional[str]] = mapped_column(Text)

    __table_args__ = (
        # Tokens are never reused within (tenant, meal, date)
        UniqueConstraint(
            "tenant_id", "meal_type", "meal_date", "token_number",
            name="uq_meal_registration_token",
        ),
        # One active registration per identity; cancelled rows do not count
        Index(
            "uq_meal_registration_active_identity",
            "tenant_id", "student_id", "meal_type", "meal_date",
            unique=True,
            sqlite_where=text("status != 'cancelled'"),
            postgresql_where=text("status != 'cancelled'"),
        ),
        Index("ix_meal_registration_queue", "tenant_id", "meal_type", "meal_date", "status"),
    )

    def __repr__(self) -> str:
        return (
            f"<MealRegistration(id={self.id}, student_id={self.student_id}, "
            f"meal_type='{self.meal_type}', meal_date={self.meal_date}, "
            f"token={self.token_number}, status='{self.status}')>"
        )


class MealTokenCounter(Base):
    """
    Last token handed out for (tenant, meal type, date).

    Incremented with a single UPDATE ... RETURNING inside the Register
    transaction, so concurrent writers are serialized on this row.
    """

    __tablename__ = "meal_token_counter"

    tenant_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("tenant.id"), primary_key=True
    )
    meal_type: Mapped[str] = mapped_column(String(10), primary_key=True)
    meal_date: Mapped[date] = mapped_column(Date, primary_key=True)
    last_token: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    def __repr__(self) -> str:
        return (
            f"<MealTokenCounter(tenant_id={self.tenant_id}, meal_type='{self.meal_type}', "
            f"meal_date={self.meal_date}, last_token={self.last_token})>"
        )
