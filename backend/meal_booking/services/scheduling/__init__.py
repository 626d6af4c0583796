"""
Auto-registration scheduling: trigger specs, batch pass, schedule registry.
"""

from meal_booking.services.scheduling.triggers import (
    TriggerSpec,
    compute_trigger_specs,
    load_trigger_specs,
)
from meal_booking.services.scheduling.auto_registration import (
    AutoRegistrationScheduler,
    trigger_all_tenants,
)
from meal_booking.services.scheduling.manager import (
    SchedulerManager,
    get_scheduler_manager,
    start_scheduler,
    stop_scheduler,
)

__all__ = [
    "TriggerSpec",
    "compute_trigger_specs",
    "load_trigger_specs",
    "AutoRegistrationScheduler",
    "trigger_all_tenants",
    "SchedulerManager",
    "get_scheduler_manager",
    "start_scheduler",
    "stop_scheduler",
]
