"""
Domain services for meal booking.

- windows: BookingWindowGuard, ServingWindowGuard
- tokens: TokenAllocator
- registration_service: RegistrationStateMachine

The MealService facade lives in meal_booking.services.meal_service since it
also drives the scheduling package.
"""

from meal_booking.services.domain.windows import (
    BookingWindowGuard,
    ServingWindowGuard,
    WindowCheck,
    load_window_config,
    meal_clock,
    weekday_of,
)
from meal_booking.services.domain.tokens import TokenAllocator
from meal_booking.services.domain.registration_service import RegistrationStateMachine

__all__ = [
    "BookingWindowGuard",
    "ServingWindowGuard",
    "WindowCheck",
    "load_window_config",
    "meal_clock",
    "weekday_of",
    "TokenAllocator",
    "RegistrationStateMachine",
]
