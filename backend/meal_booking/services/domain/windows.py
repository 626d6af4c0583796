"""
Booking and serving window guards.

Pure evaluators: they compare "now" against a tenant's MealWindowConfig and
never cache a verdict, so a boundary crossing takes effect on the next call
at minute resolution. Both bounds are inclusive.

Usage:
    check = BookingWindowGuard().is_open(config, "Monday", "lunch", now)
    check.raise_if_closed()
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, time
from typing import Callable

from meal_booking.repositories.window_config import (
    DayMealWindow,
    MealWindowConfig,
    WindowConfigStore,
)
from shared.config.constants import Weekday
from shared.config.settings import settings
from shared.utils.exceptions import (
    ConfigurationError,
    NotFoundError,
    WindowClosedError,
)
from shared.utils.validators import minutes_since_midnight

# Returns the current instant; tests inject a fixed one
Clock = Callable[[], datetime]


def meal_clock() -> datetime:
    """Current time in the configured meal timezone."""
    return datetime.now(settings.timezone)


def weekday_of(moment: datetime) -> str:
    return Weekday.from_index(moment.weekday())


def load_window_config(store: WindowConfigStore, tenant_id: int) -> MealWindowConfig:
    """
    Tenant config, with "no settings" surfaced as a configuration error.

    Raises:
        ConfigurationError: The tenant has no meal settings.
    """
    try:
        return store.get_config(tenant_id)
    except NotFoundError as exc:
        raise ConfigurationError(exc.detail, tenant_id=tenant_id) from exc


@dataclass(frozen=True)
class WindowCheck:
    """Verdict of one guard evaluation."""

    is_open: bool
    reason: str
    boundary: time | None = None
    not_yet_open: bool = False
    misconfigured: bool = False

    def raise_if_closed(self, **log_context) -> None:
        """
        Raises:
            ConfigurationError: The window has a missing or inverted bound.
            WindowClosedError: The window is closed right now.
        """
        if self.is_open:
            return
        if self.misconfigured:
            raise ConfigurationError(self.reason, **log_context)
        raise WindowClosedError(
            self.reason,
            boundary=self.boundary,
            not_yet_open=self.not_yet_open,
            **log_context,
        )


class _WindowGuard:
    """Shared evaluation; subclasses pick which pair of bounds to test."""

    label = ""
    before_phrase = ""
    after_phrase = ""

    def bounds(self, window: DayMealWindow) -> tuple[time | None, time | None]:
        raise NotImplementedError

    def is_open(
        self,
        config: MealWindowConfig,
        weekday: str,
        meal_type: str,
        now: datetime | time,
    ) -> WindowCheck:
        meal = meal_type.capitalize()
        window = config.window(weekday, meal_type)

        if not window.enabled:
            return WindowCheck(False, f"{meal} is not available on {weekday}")

        start, end = self.bounds(window)
        if start is None or end is None:
            return WindowCheck(
                False,
                f"{meal} {self.label} window is not configured for {weekday}",
                misconfigured=True,
            )
        if minutes_since_midnight(start) >= minutes_since_midnight(end):
            return WindowCheck(
                False,
                f"{meal} {self.label} window for {weekday} must start before it ends",
                misconfigured=True,
            )

        current = now.time() if isinstance(now, datetime) else now
        current_minutes = minutes_since_midnight(current)

        if current_minutes < minutes_since_midnight(start):
            return WindowCheck(
                False,
                f"{meal} {self.label} {self.before_phrase} {start.strftime('%H:%M')}",
                boundary=start,
                not_yet_open=True,
            )
        if current_minutes > minutes_since_midnight(end):
            return WindowCheck(
                False,
                f"{meal} {self.label} {self.after_phrase} {end.strftime('%H:%M')}",
                boundary=end,
            )
        return WindowCheck(True, f"{meal} {self.label} is open")


class BookingWindowGuard(_WindowGuard):
    """Register, opt-out, opt-in, updates and cancel."""

    label = "booking"
    before_phrase = "opens at"
    after_phrase = "closed at"

    def bounds(self, window: DayMealWindow) -> tuple[time | None, time | None]:
        return window.booking_start, window.booking_end


class ServingWindowGuard(_WindowGuard):
    """Consume. Independent of the booking window."""

    label = "serving"
    before_phrase = "starts at"
    after_phrase = "ended at"

    def bounds(self, window: DayMealWindow) -> tuple[time | None, time | None]:
        return window.serving_start, window.serving_end
