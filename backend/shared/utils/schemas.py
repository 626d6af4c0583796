"""
Shared Pydantic schemas used across the meal booking services.
"""

from datetime import date, datetime
from typing import Any, Literal

from pydantic import BaseModel, Field, field_validator

from shared.utils.exceptions import MealError


# =============================================================================
# Common Types
# =============================================================================

MealTypeName = Literal["lunch", "dinner"]
Preference = Literal["veg", "non-veg"]
Status = Literal["registered", "opted_out", "consumed", "cancelled"]
Outcome = Literal["success", "caller_error", "server_error"]


# =============================================================================
# Uniform result
# =============================================================================


class ServiceResult(BaseModel):
    """
    Uniform {outcome, message, payload} envelope returned by every
    MealService operation.
    """

    outcome: Outcome
    message: str
    payload: Any = None
    error_code: str | None = None

    @property
    def ok(self) -> bool:
        return self.outcome == "success"

    @classmethod
    def success(cls, message: str, payload: Any = None) -> "ServiceResult":
        return cls(outcome="success", message=message, payload=payload)

    @classmethod
    def from_error(cls, error: MealError) -> "ServiceResult":
        return cls(outcome=error.outcome, message=error.detail, error_code=error.code)


# =============================================================================
# External (QR) code
# =============================================================================


class ExternalMealCode(BaseModel):
    """Payload encoded in a student's meal QR code."""

    student_id: int = Field(gt=0)
    meal_type: MealTypeName

    @field_validator("meal_type", mode="before")
    @classmethod
    def normalize_meal_type(cls, value: Any) -> Any:
        return value.strip().lower() if isinstance(value, str) else value


# =============================================================================
# Registrations
# =============================================================================


class StudentSnapshot(BaseModel):
    """Student details frozen onto a registration at booking time."""

    class Config:
        from_attributes = True

    student_id: int
    student_reg_no: str | None = None
    student_name: str
    mobile: str | None = None
    email: str | None = None
    course: str | None = None
    hostel: str | None = None


class RegistrationOutput(BaseModel):
    """A meal registration as returned to callers."""

    class Config:
        from_attributes = True

    id: int
    tenant_id: int
    student_id: int
    student_reg_no: str | None = None
    student_name: str
    mobile: str | None = None
    course: str | None = None
    hostel: str | None = None
    meal_type: MealTypeName
    meal_date: date
    token_number: int
    status: Status
    preference: Preference
    is_special: bool
    special_remarks: str
    registered_at: datetime | None = None
    consumed_at: datetime | None = None
    consumed_by: str | None = None
    created_by: str | None = None
    updated_by: str | None = None


class StudentMealStatus(BaseModel):
    """All of one student's registrations for a date."""

    student_id: int
    meal_date: date
    meals: list[RegistrationOutput]


class RegistrationList(BaseModel):
    """Registrations of one meal, token ascending."""

    meal_type: MealTypeName
    meal_date: date
    total: int
    registrations: list[RegistrationOutput]


class MealQueue(RegistrationList):
    """Registered-but-not-consumed registrations: the serving queue."""


class OptedOutStudent(BaseModel):
    class Config:
        from_attributes = True

    student_id: int
    student_name: str
    mobile: str | None = None
    course: str | None = None
    hostel: str | None = None
    preference: Preference
    is_special: bool
    special_remarks: str
    updated_by: str | None = None
    updated_at: datetime | None = None


class OptedOutSummary(BaseModel):
    """Opted-out head counts for the kitchen."""

    meal_type: MealTypeName
    meal_date: date
    total_opted_out: int
    veg_opted_out: int
    non_veg_opted_out: int
    special_opted_out: int
    students: list[OptedOutStudent]


class ServingStatistics(BaseModel):
    total_registered: int = 0
    total_consumed: int = 0
    pending_consumption: int = 0
    consumption_rate: float = 0.0
    special_meals: int = 0


class WindowStatus(BaseModel):
    """Booking/serving window verdict plus counters for dashboards."""

    meal_type: MealTypeName
    meal_date: date
    is_open: bool
    message: str
    total_registrations: int | None = None
    statistics: ServingStatistics | None = None


class MealDayStatistics(BaseModel):
    student_count: int
    max_token: int


class MealStatistics(BaseModel):
    """Per-date, per-meal head counts over a date range, newest date first."""

    from_date: date
    to_date: date
    statistics: dict[date, dict[MealTypeName, MealDayStatistics]]
    total_days: int


# =============================================================================
# Auto-registration
# =============================================================================


class BatchResult(BaseModel):
    """Outcome of one bulk Register pass for (tenant, meal type, date)."""

    tenant_id: int
    meal_type: MealTypeName
    meal_date: date
    triggered_by: str
    total_students: int = 0
    registered: list[int] = Field(default_factory=list)
    skipped: list[int] = Field(default_factory=list)
    errored: list[int] = Field(default_factory=list)
    abandoned: int = 0
    errors: list[str] = Field(default_factory=list)

    @property
    def registered_count(self) -> int:
        return len(self.registered)

    @property
    def skipped_count(self) -> int:
        return len(self.skipped)

    @property
    def errored_count(self) -> int:
        return len(self.errored)

    def summary(self) -> dict[str, Any]:
        """Aggregate counts for log lines and result payloads."""
        return {
            "tenant_id": self.tenant_id,
            "meal_type": self.meal_type,
            "meal_date": self.meal_date.isoformat(),
            "total_students": self.total_students,
            "registered_count": self.registered_count,
            "skipped_count": self.skipped_count,
            "errored_count": self.errored_count,
            "abandoned": self.abandoned,
        }


class TenantRunResult(BaseModel):
    """One tenant's entry in a trigger-all-tenants run."""

    tenant_id: int
    success: bool
    message: str
    data: BatchResult | None = None


class AllTenantsRunResult(BaseModel):
    meal_type: MealTypeName
    total_tenants: int
    success_count: int
    fail_count: int
    results: list[TenantRunResult]
