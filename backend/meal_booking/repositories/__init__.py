"""
Tenant-scoped data access.
"""

from meal_booking.repositories.base import TenantRepository
from meal_booking.repositories.directory import StudentDirectory, TenantDirectory
from meal_booking.repositories.registration import MealRegistrationRepository
from meal_booking.repositories.window_config import (
    DayMealWindow,
    MealWindowConfig,
    WindowConfigStore,
)

__all__ = [
    "TenantRepository",
    "StudentDirectory",
    "TenantDirectory",
    "MealRegistrationRepository",
    "DayMealWindow",
    "MealWindowConfig",
    "WindowConfigStore",
]
