"""
Directory Models: Tenant and Student.

Both tables are administered by other parts of the platform; meal booking
only reads them.
"""

from __future__ import annotations

from typing import Optional

from sqlalchemy import BigInteger, Boolean, ForeignKey, Index, Text
from sqlalchemy.orm import Mapped, mapped_column

from .base import AuditMixin, Base, BigIntPK


class Tenant(AuditMixin, Base):
    """
    Top-level scoping unit (an institution running a mess).
    Every lookup and window check is scoped to one tenant.
    """

    __tablename__ = "tenant"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False, index=True)

    def __repr__(self) -> str:
        return f"<Tenant(id={self.id}, name='{self.name}')>"


class Student(AuditMixin, Base):
    """
    A student enrolled with a tenant.

    Name, contact and enrollment fields are copied onto a MealRegistration
    when it is created and never re-synced afterwards.
    """

    __tablename__ = "student"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    tenant_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("tenant.id"), nullable=False, index=True
    )
    reg_no: Mapped[Optional[str]] = mapped_column(Text)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    mobile: Mapped[Optional[str]] = mapped_column(Text)
    email: Mapped[Optional[str]] = mapped_column(Text)
    address: Mapped[Optional[str]] = mapped_column(Text)
    course: Mapped[Optional[str]] = mapped_column(Text)
    hostel: Mapped[Optional[str]] = mapped_column(Text)
    associated_flat: Mapped[Optional[str]] = mapped_column(Text)
    associated_block: Mapped[Optional[str]] = mapped_column(Text)
    # Day boarders book manually; auto-registration only enrolls regular students
    is_day_boarder: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    __table_args__ = (
        Index("ix_student_tenant_active", "tenant_id", "is_active"),
    )

    def __repr__(self) -> str:
        return f"<Student(id={self.id}, name='{self.name}', tenant_id={self.tenant_id})>"
