"""
Tests for booking and serving window guards.
"""

from datetime import time

import pytest
from hypothesis import given, settings, strategies as st

from meal_booking.repositories import DayMealWindow, MealWindowConfig, WindowConfigStore
from meal_booking.services.domain.windows import (
    BookingWindowGuard,
    ServingWindowGuard,
    load_window_config,
    weekday_of,
)
from shared.utils.exceptions import ConfigurationError, WindowClosedError
from tests.conftest import at, TUESDAY


def lunch_config(**overrides) -> MealWindowConfig:
    fields = {
        "weekday": "Monday",
        "meal_type": "lunch",
        "enabled": True,
        "booking_start": time(11, 0),
        "booking_end": time(11, 30),
        "serving_start": time(12, 30),
        "serving_end": time(13, 30),
    }
    fields.update(overrides)
    window = DayMealWindow(**fields)
    return MealWindowConfig(tenant_id=1, windows={(window.weekday, window.meal_type): window})


class TestBookingWindowGuard:
    """Booking window evaluation."""

    def test_open_inside_window(self):
        check = BookingWindowGuard().is_open(lunch_config(), "Monday", "lunch", at(11, 5))
        assert check.is_open
        assert check.reason == "Lunch booking is open"

    def test_start_bound_is_inclusive(self):
        assert BookingWindowGuard().is_open(lunch_config(), "Monday", "lunch", at(11, 0)).is_open

    def test_end_bound_is_inclusive(self):
        assert BookingWindowGuard().is_open(lunch_config(), "Monday", "lunch", at(11, 30)).is_open

    def test_seconds_are_ignored_at_end_bound(self):
        """Minute resolution: 11:30:59 still counts as 11:30."""
        moment = at(11, 30).replace(second=59)
        assert BookingWindowGuard().is_open(lunch_config(), "Monday", "lunch", moment).is_open

    def test_one_minute_after_end_names_end(self):
        check = BookingWindowGuard().is_open(lunch_config(), "Monday", "lunch", at(11, 31))
        assert not check.is_open
        assert check.reason == "Lunch booking closed at 11:30"
        assert check.boundary == time(11, 30)
        assert check.not_yet_open is False

    def test_before_start_names_start(self):
        check = BookingWindowGuard().is_open(lunch_config(), "Monday", "lunch", at(10, 59))
        assert not check.is_open
        assert check.reason == "Lunch booking opens at 11:00"
        assert check.not_yet_open is True

    def test_disabled_day_is_closed(self):
        check = BookingWindowGuard().is_open(lunch_config(enabled=False), "Monday", "lunch", at(11, 5))
        assert not check.is_open
        assert check.reason == "Lunch is not available on Monday"

    def test_day_without_row_is_closed(self):
        check = BookingWindowGuard().is_open(lunch_config(), "Tuesday", "lunch", at(11, 5, TUESDAY))
        assert not check.is_open
        assert "not available on Tuesday" in check.reason

    def test_missing_bound_is_configuration_error(self):
        check = BookingWindowGuard().is_open(lunch_config(booking_end=None), "Monday", "lunch", at(11, 5))
        assert not check.is_open
        assert check.misconfigured

        with pytest.raises(ConfigurationError):
            check.raise_if_closed()

    def test_inverted_window_is_configuration_error(self):
        config = lunch_config(booking_start=time(11, 30), booking_end=time(11, 0))
        check = BookingWindowGuard().is_open(config, "Monday", "lunch", at(11, 15))
        assert check.misconfigured

    def test_raise_if_closed_carries_boundary(self):
        check = BookingWindowGuard().is_open(lunch_config(), "Monday", "lunch", at(11, 35))

        with pytest.raises(WindowClosedError) as exc_info:
            check.raise_if_closed()

        assert exc_info.value.boundary == time(11, 30)
        assert exc_info.value.not_yet_open is False
        assert "closed at 11:30" in exc_info.value.detail


class TestServingWindowGuard:
    """Serving window is independent of the booking window."""

    def test_open_while_booking_closed(self):
        config = lunch_config()
        now = at(12, 45)
        assert ServingWindowGuard().is_open(config, "Monday", "lunch", now).is_open
        assert not BookingWindowGuard().is_open(config, "Monday", "lunch", now).is_open

    def test_before_serving(self):
        check = ServingWindowGuard().is_open(lunch_config(), "Monday", "lunch", at(12, 0))
        assert check.reason == "Lunch serving starts at 12:30"

    def test_after_serving(self):
        check = ServingWindowGuard().is_open(lunch_config(), "Monday", "lunch", at(13, 31))
        assert check.reason == "Lunch serving ended at 13:30"

    def test_serving_bounds_inclusive(self):
        guard = ServingWindowGuard()
        assert guard.is_open(lunch_config(), "Monday", "lunch", at(12, 30)).is_open
        assert guard.is_open(lunch_config(), "Monday", "lunch", at(13, 30)).is_open

    def test_missing_serving_times_is_configuration_error(self):
        config = lunch_config(serving_start=None, serving_end=None)
        check = ServingWindowGuard().is_open(config, "Monday", "lunch", at(12, 45))
        assert check.misconfigured
        assert check.reason == "Lunch serving window is not configured for Monday"


class TestWindowConfigStore:
    """Loading configuration rows."""

    def test_not_configured_tenant_is_configuration_error(self, db_session, seed_tenant):
        with pytest.raises(ConfigurationError) as exc_info:
            load_window_config(WindowConfigStore(db_session), 1)
        assert exc_info.value.detail == "Meal settings not configured"

    def test_rows_become_windows(self, db_session, seed_windows):
        config = WindowConfigStore(db_session).get_config(1)

        monday_lunch = config.window("Monday", "lunch")
        assert monday_lunch.enabled
        assert monday_lunch.booking_start == time(11, 0)
        assert monday_lunch.serving_end == time(13, 30)
        assert not config.window("Monday", "dinner").enabled
        assert not config.window("Sunday", "lunch").enabled
        assert len(config.enabled_windows()) == 2

    def test_weekday_comes_from_now(self):
        assert weekday_of(at(11, 0)) == "Monday"
        assert weekday_of(at(11, 0, TUESDAY)) == "Tuesday"


class TestWindowProperties:
    """Property-based checks of the inclusive minute comparison."""

    @given(
        start=st.integers(min_value=0, max_value=1438),
        length=st.integers(min_value=1, max_value=600),
        probe=st.integers(min_value=0, max_value=1439),
    )
    @settings(max_examples=200)
    def test_open_iff_within_inclusive_bounds(self, start, length, probe):
        """Property: open exactly when start <= now <= end (minutes)."""
        end = min(start + length, 1439)
        config = lunch_config(
            booking_start=time(start // 60, start % 60),
            booking_end=time(end // 60, end % 60),
        )
        now = time(probe // 60, probe % 60)

        check = BookingWindowGuard().is_open(config, "Monday", "lunch", now)

        assert check.is_open == (start <= probe <= end)
        if not check.is_open:
            assert check.not_yet_open == (probe < start)

    @given(probe=st.integers(min_value=0, max_value=1439))
    @settings(max_examples=100)
    def test_disabled_never_open(self, probe):
        """Property: a disabled day is closed at every minute."""
        config = lunch_config(enabled=False)
        now = time(probe // 60, probe % 60)
        assert not BookingWindowGuard().is_open(config, "Monday", "lunch", now).is_open
        assert not ServingWindowGuard().is_open(config, "Monday", "lunch", now).is_open
