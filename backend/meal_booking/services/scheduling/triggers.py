"""
Trigger specs: the firing calendar derived from meal window configuration.

One TriggerSpec per enabled (tenant, weekday, meal type), firing at that
day's booking start. The set is a pure function of the configuration, so
reloading the scheduler is stop-all / recompute / start-all.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, time, timedelta

from sqlalchemy.orm import Session

from meal_booking.repositories import MealWindowConfig, TenantDirectory, WindowConfigStore
from shared.config.constants import Weekday
from shared.config.logging import get_logger
from shared.utils.validators import minutes_since_midnight

logger = get_logger(__name__)


@dataclass(frozen=True)
class TriggerSpec:
    """When to auto-register one tenant's meal on one weekday."""

    tenant_id: int
    weekday: str
    meal_type: str
    fire_at: time

    @property
    def key(self) -> str:
        """Stable registry key, e.g. "lunch_7_Monday"."""
        return f"{self.meal_type}_{self.tenant_id}_{self.weekday}"

    def next_fire_after(self, now: datetime) -> datetime:
        """
        First firing strictly after `now`, in now's timezone.
        """
        days_ahead = (Weekday.index_of(self.weekday) - now.weekday()) % 7
        fire_time = self.fire_at.replace(second=0, microsecond=0)
        candidate = datetime.combine(
            now.date() + timedelta(days=days_ahead), fire_time, tzinfo=now.tzinfo
        )
        if candidate <= now:
            candidate += timedelta(days=7)
        return candidate

    def as_dict(self) -> dict:
        return {
            "key": self.key,
            "tenant_id": self.tenant_id,
            "weekday": self.weekday,
            "meal_type": self.meal_type,
            "fire_at": self.fire_at.strftime("%H:%M"),
        }


def compute_trigger_specs(config: MealWindowConfig) -> list[TriggerSpec]:
    """
    Specs for every enabled day/meal of one tenant.

    Enabled windows with a missing or inverted booking window are skipped
    (the booking guard would reject their firing anyway).
    """
    specs = []
    for window in config.enabled_windows():
        start, end = window.booking_start, window.booking_end
        if start is None or end is None or minutes_since_midnight(start) >= minutes_since_midnight(end):
            logger.warning(
                "Skipping misconfigured booking window",
                tenant_id=config.tenant_id,
                weekday=window.weekday,
                meal_type=window.meal_type,
            )
            continue
        specs.append(
            TriggerSpec(
                tenant_id=config.tenant_id,
                weekday=window.weekday,
                meal_type=window.meal_type,
                fire_at=start,
            )
        )
    return sorted(specs, key=_spec_order)


def load_trigger_specs(db: Session) -> list[TriggerSpec]:
    """
    Full trigger set across active tenants.

    Tenants without meal settings contribute nothing; they never stop the
    other tenants from being scheduled.
    """
    store = WindowConfigStore(db)
    specs: list[TriggerSpec] = []
    for tenant_id in TenantDirectory(db).list_active_ids():
        config = store.find_config(tenant_id)
        if config is None:
            logger.info("No meal settings found, skipping tenant", tenant_id=tenant_id)
            continue
        specs.extend(compute_trigger_specs(config))
    return sorted(specs, key=_spec_order)


def _spec_order(spec: TriggerSpec) -> tuple:
    return (spec.tenant_id, Weekday.index_of(spec.weekday), spec.meal_type)
