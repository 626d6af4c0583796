"""
Auto-Registration: bulk Register pass for one (tenant, meal type, date).

Every eligible student goes through RegistrationStateMachine.register,
the same path as a manual booking, so token allocation and duplicate
detection are never bypassed. One student's failure is recorded and the
batch moves on; a repeat run for the same meal skips everyone already
registered.
"""

from __future__ import annotations

import threading
from datetime import date

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from meal_booking.repositories import StudentDirectory, TenantDirectory, WindowConfigStore
from meal_booking.services.domain.registration_service import RegistrationStateMachine
from meal_booking.services.domain.windows import (
    BookingWindowGuard,
    Clock,
    load_window_config,
    meal_clock,
    weekday_of,
)
from shared.config.constants import TriggerSource
from shared.config.logging import get_logger
from shared.config.settings import settings
from shared.utils.exceptions import (
    DuplicateError,
    InvalidRequestError,
    MealError,
    PersistenceError,
)
from shared.utils.schemas import (
    AllTenantsRunResult,
    BatchResult,
    TenantRunResult,
)
from shared.utils.validators import validate_meal_type

logger = get_logger(__name__)


class AutoRegistrationScheduler:
    """Runs one firing. Holds no state between runs."""

    def __init__(
        self,
        db: Session,
        clock: Clock = meal_clock,
        error_limit: int | None = None,
    ):
        self._db = db
        self._clock = clock
        self._error_limit = error_limit if error_limit is not None else settings.auto_registration_error_limit
        self._machine = RegistrationStateMachine(db, clock=clock)

    def run(
        self,
        tenant_id: int,
        meal_type: str,
        meal_date: date | None = None,
        triggered_by: str = TriggerSource.SYSTEM,
        stop_event: threading.Event | None = None,
    ) -> BatchResult:
        """
        Register every eligible student of the tenant.

        A set stop_event lets the current student finish and abandons the
        rest; abandoned students are counted, never half-written.

        Raises:
            InvalidRequestError: Unknown meal type.
            ConfigurationError: Tenant has no usable meal settings.
            WindowClosedError: Booking window is not open right now.
            PersistenceError: The eligible-student list could not be read.
        """
        try:
            meal_type = validate_meal_type(meal_type)
        except ValueError as exc:
            raise InvalidRequestError(str(exc)) from exc

        now = self._clock()
        meal_date = meal_date or now.date()

        # Re-validate at firing time: clock skew and manual re-triggers
        config = load_window_config(WindowConfigStore(self._db), tenant_id)
        weekday = weekday_of(now)
        BookingWindowGuard().is_open(config, weekday, meal_type, now).raise_if_closed(
            tenant_id=tenant_id, meal_type=meal_type, weekday=weekday
        )

        try:
            students = [
                (student.id, student.name)
                for student in StudentDirectory(self._db).list_eligible(tenant_id)
            ]
        except SQLAlchemyError as exc:
            self._db.rollback()
            raise PersistenceError("load eligible students", tenant_id=tenant_id) from exc

        result = BatchResult(
            tenant_id=tenant_id,
            meal_type=meal_type,
            meal_date=meal_date,
            triggered_by=triggered_by,
            total_students=len(students),
        )
        logger.info(
            "Auto-registration started",
            tenant_id=tenant_id,
            meal_type=meal_type,
            meal_date=meal_date.isoformat(),
            total_students=len(students),
            triggered_by=triggered_by,
        )

        for position, (student_id, name) in enumerate(students):
            if stop_event is not None and stop_event.is_set():
                result.abandoned = len(students) - position
                logger.warning("Auto-registration stopped", tenant_id=tenant_id, abandoned=result.abandoned)
                break

            try:
                self._machine.register(
                    tenant_id,
                    student_id,
                    meal_type,
                    meal_date,
                    actor=triggered_by,
                )
            except DuplicateError:
                result.skipped.append(student_id)
            except MealError as exc:
                result.errored.append(student_id)
                if len(result.errors) < self._error_limit:
                    result.errors.append(f"Failed to register {name}: {exc.detail}")
            else:
                result.registered.append(student_id)

        logger.info("Auto-registration completed", **result.summary())
        return result


def trigger_all_tenants(
    db: Session,
    meal_type: str,
    clock: Clock = meal_clock,
    triggered_by: str = TriggerSource.MANUAL_TRIGGER,
) -> AllTenantsRunResult:
    """
    Run today's batch for every active tenant, one after another.
    A tenant whose run fails is reported and does not stop the others.
    """
    try:
        meal_type = validate_meal_type(meal_type)
    except ValueError as exc:
        raise InvalidRequestError(str(exc)) from exc

    try:
        tenant_ids = TenantDirectory(db).list_active_ids()
    except SQLAlchemyError as exc:
        db.rollback()
        raise PersistenceError("load active tenants") from exc

    scheduler = AutoRegistrationScheduler(db, clock=clock)
    results: list[TenantRunResult] = []
    for tenant_id in tenant_ids:
        try:
            batch = scheduler.run(tenant_id, meal_type, triggered_by=triggered_by)
        except MealError as exc:
            results.append(TenantRunResult(tenant_id=tenant_id, success=False, message=exc.detail))
        else:
            results.append(
                TenantRunResult(
                    tenant_id=tenant_id,
                    success=True,
                    message="Automatic meal registration completed",
                    data=batch,
                )
            )

    success_count = sum(1 for r in results if r.success)
    return AllTenantsRunResult(
        meal_type=meal_type,
        total_tenants=len(results),
        success_count=success_count,
        fail_count=len(results) - success_count,
        results=results,
    )
