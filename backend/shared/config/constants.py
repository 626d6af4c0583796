"""
Centralized constants for the meal booking backend.
Avoids magic strings for meal types, statuses and weekdays.

Usage:
    from shared.config.constants import MealType, RegistrationStatus

    if registration.status == RegistrationStatus.REGISTERED:
        ...
"""

from typing import Final


# =============================================================================
# Meals
# =============================================================================


class MealType:
    """Meal type constants."""

    LUNCH: Final[str] = "lunch"
    DINNER: Final[str] = "dinner"

    ALL: Final[list[str]] = [LUNCH, DINNER]


class MealPreference:
    """Dietary preference recorded on a registration."""

    VEG: Final[str] = "veg"
    NON_VEG: Final[str] = "non-veg"

    ALL: Final[list[str]] = [VEG, NON_VEG]


class RegistrationStatus:
    """Meal registration lifecycle states."""

    REGISTERED: Final[str] = "registered"
    OPTED_OUT: Final[str] = "opted_out"
    CONSUMED: Final[str] = "consumed"
    CANCELLED: Final[str] = "cancelled"

    ALL: Final[list[str]] = [REGISTERED, OPTED_OUT, CONSUMED, CANCELLED]
    # Rows that occupy the (tenant, student, meal type, date) identity
    ACTIVE: Final[list[str]] = [REGISTERED, OPTED_OUT, CONSUMED]
    # Attribute updates are allowed only in these states
    MUTABLE: Final[list[str]] = [REGISTERED, OPTED_OUT]


# =============================================================================
# Calendar
# =============================================================================


class Weekday:
    """Weekday names, indexed like datetime.weekday() (Monday == 0)."""

    MONDAY: Final[str] = "Monday"
    TUESDAY: Final[str] = "Tuesday"
    WEDNESDAY: Final[str] = "Wednesday"
    THURSDAY: Final[str] = "Thursday"
    FRIDAY: Final[str] = "Friday"
    SATURDAY: Final[str] = "Saturday"
    SUNDAY: Final[str] = "Sunday"

    ALL: Final[list[str]] = [MONDAY, TUESDAY, WEDNESDAY, THURSDAY, FRIDAY, SATURDAY, SUNDAY]

    @classmethod
    def from_index(cls, index: int) -> str:
        return cls.ALL[index]

    @classmethod
    def index_of(cls, name: str) -> int:
        return cls.ALL.index(name)


# =============================================================================
# Audit actors
# =============================================================================


class TriggerSource:
    """created_by / updated_by values for non-interactive writers."""

    LUNCH_CRON_JOB: Final[str] = "LUNCH_CRON_JOB"
    DINNER_CRON_JOB: Final[str] = "DINNER_CRON_JOB"
    MANUAL_TRIGGER: Final[str] = "MANUAL_TRIGGER"
    SYSTEM: Final[str] = "SYSTEM"

    @classmethod
    def for_cron(cls, meal_type: str) -> str:
        return cls.LUNCH_CRON_JOB if meal_type == MealType.LUNCH else cls.DINNER_CRON_JOB


# =============================================================================
# Limits
# =============================================================================


class Limits:
    """Query and payload limits."""

    DEFAULT_HISTORY_SIZE: Final[int] = 10
    MAX_HISTORY_SIZE: Final[int] = 100
    MAX_SPECIAL_REMARKS_LENGTH: Final[int] = 500
