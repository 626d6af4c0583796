"""
WindowConfigStore: per-tenant meal window configuration.

Rows are administered elsewhere; this module turns them into an immutable
MealWindowConfig that the guards evaluate. A tenant with no rows is
"not configured" and never "open all day".
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import time
from typing import Mapping

from sqlalchemy import select
from sqlalchemy.orm import Session

from meal_booking.models import MealWindowSetting
from shared.utils.exceptions import NotFoundError


@dataclass(frozen=True)
class DayMealWindow:
    """Booking and serving windows for one weekday and meal type."""

    weekday: str
    meal_type: str
    enabled: bool = False
    booking_start: time | None = None
    booking_end: time | None = None
    serving_start: time | None = None
    serving_end: time | None = None

    @classmethod
    def disabled(cls, weekday: str, meal_type: str) -> "DayMealWindow":
        return cls(weekday=weekday, meal_type=meal_type, enabled=False)


@dataclass(frozen=True)
class MealWindowConfig:
    """All configured windows of one tenant, keyed by (weekday, meal_type)."""

    tenant_id: int
    windows: Mapping[tuple[str, str], DayMealWindow] = field(default_factory=dict)

    def window(self, weekday: str, meal_type: str) -> DayMealWindow:
        """Configured window, or a disabled one for a day/meal with no row."""
        return self.windows.get((weekday, meal_type)) or DayMealWindow.disabled(weekday, meal_type)

    def enabled_windows(self) -> list[DayMealWindow]:
        return [w for w in self.windows.values() if w.enabled]


class WindowConfigStore:
    """Read-only access to meal_window_setting rows."""

    def __init__(self, session: Session):
        self._session = session

    def find_config(self, tenant_id: int) -> MealWindowConfig | None:
        rows = self._session.scalars(
            select(MealWindowSetting).where(MealWindowSetting.tenant_id == tenant_id)
        ).all()
        if not rows:
            return None

        windows = {
            (row.weekday, row.meal_type): DayMealWindow(
                weekday=row.weekday,
                meal_type=row.meal_type,
                enabled=bool(row.enabled),
                booking_start=row.booking_start,
                booking_end=row.booking_end,
                serving_start=row.serving_start,
                serving_end=row.serving_end,
            )
            for row in rows
        }
        return MealWindowConfig(tenant_id=tenant_id, windows=windows)

    def get_config(self, tenant_id: int) -> MealWindowConfig:
        """
        Raises:
            NotFoundError: The tenant has no meal settings at all.
        """
        config = self.find_config(tenant_id)
        if config is None:
            raise NotFoundError(
                "Meal settings",
                detail="Meal settings not configured",
                tenant_id=tenant_id,
            )
        return config
