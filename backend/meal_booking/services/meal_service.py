"""
Meal Service: the operations exposed to the request layer.

Every method takes an explicit tenant_id and returns a ServiceResult with
a three-way outcome: success, caller_error (validation, closed window,
wrong state, not found) or server_error (persistence failure). Domain
errors never escape this class.

Usage:
    service = MealService(db)
    result = service.register(tenant_id=1, student_id=42, meal_type="lunch")
    if result.ok:
        print(result.payload.token_number)
"""

from __future__ import annotations

import json
from datetime import date
from typing import Any, Callable, Mapping

from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from meal_booking.repositories import MealRegistrationRepository, WindowConfigStore
from meal_booking.services.domain.registration_service import RegistrationStateMachine
from meal_booking.services.domain.windows import (
    BookingWindowGuard,
    Clock,
    ServingWindowGuard,
    load_window_config,
    meal_clock,
    weekday_of,
)
from meal_booking.services.scheduling.auto_registration import (
    AutoRegistrationScheduler,
    trigger_all_tenants,
)
from shared.config.constants import Limits, MealPreference, RegistrationStatus, TriggerSource
from shared.config.logging import get_logger
from shared.utils.exceptions import (
    ConfigurationError,
    InvalidRequestError,
    MealError,
    PersistenceError,
)
from shared.utils.schemas import (
    ExternalMealCode,
    MealDayStatistics,
    MealQueue,
    MealStatistics,
    OptedOutStudent,
    OptedOutSummary,
    RegistrationList,
    RegistrationOutput,
    ServiceResult,
    ServingStatistics,
    StudentMealStatus,
    WindowStatus,
)
from shared.utils.validators import validate_meal_type

logger = get_logger(__name__)


def parse_external_code(code: str | bytes | Mapping[str, Any]) -> ExternalMealCode:
    """
    Decode a meal QR payload: a JSON object (or mapping) with student_id
    and meal_type.

    Raises:
        InvalidRequestError: Malformed payload.
    """
    try:
        data = json.loads(code) if isinstance(code, (str, bytes)) else code
        return ExternalMealCode.model_validate(data)
    except (ValueError, ValidationError) as exc:
        raise InvalidRequestError(
            "Invalid QR data: student_id and meal_type required"
        ) from exc


class MealService:
    def __init__(self, db: Session, clock: Clock = meal_clock):
        self._db = db
        self._clock = clock
        self._machine = RegistrationStateMachine(db, clock=clock)
        self._registrations = MealRegistrationRepository(db)
        self._configs = WindowConfigStore(db)

    # =========================================================================
    # Plumbing
    # =========================================================================

    def _execute(self, operation: str, message: str, work: Callable[[], Any]) -> ServiceResult:
        """Run `work` and fold any domain or storage error into the result."""
        try:
            payload = work()
        except MealError as exc:
            return ServiceResult.from_error(exc)
        except SQLAlchemyError:
            self._db.rollback()
            return ServiceResult.from_error(PersistenceError(operation))
        return ServiceResult.success(message, payload)

    def _meal_type(self, meal_type: str) -> str:
        try:
            return validate_meal_type(meal_type)
        except ValueError as exc:
            raise InvalidRequestError(str(exc)) from exc

    def _date(self, meal_date: date | None) -> date:
        return meal_date or self._clock().date()

    def _window_verdict(self, guard, tenant_id: int, meal_type: str) -> tuple[bool, str]:
        try:
            config = load_window_config(self._configs, tenant_id)
        except ConfigurationError as exc:
            return False, exc.detail
        now = self._clock()
        check = guard.is_open(config, weekday_of(now), meal_type, now)
        return check.is_open, check.reason

    @staticmethod
    def _output(registration) -> RegistrationOutput:
        return RegistrationOutput.model_validate(registration)

    # =========================================================================
    # Booking
    # =========================================================================

    def register(
        self,
        tenant_id: int,
        student_id: int,
        meal_type: str,
        meal_date: date | None = None,
        *,
        preference: str | None = None,
        is_special: bool = False,
        special_remarks: str | None = None,
        actor: str | None = None,
    ) -> ServiceResult:
        return self._execute(
            "register for meal",
            "Meal registered successfully",
            lambda: self._output(
                self._machine.register(
                    tenant_id,
                    student_id,
                    meal_type,
                    meal_date,
                    preference=preference,
                    is_special=is_special,
                    special_remarks=special_remarks,
                    actor=actor,
                )
            ),
        )

    def register_via_external_code(
        self,
        tenant_id: int,
        code: str | bytes | Mapping[str, Any],
        *,
        is_special: bool = False,
        special_remarks: str | None = None,
        actor: str | None = None,
    ) -> ServiceResult:
        """Same as register, with student and meal taken from a QR payload."""
        try:
            parsed = parse_external_code(code)
        except InvalidRequestError as exc:
            return ServiceResult.from_error(exc)
        return self.register(
            tenant_id,
            parsed.student_id,
            parsed.meal_type,
            is_special=is_special,
            special_remarks=special_remarks,
            actor=actor,
        )

    def opt_out(
        self,
        tenant_id: int,
        student_id: int,
        meal_type: str,
        meal_date: date | None = None,
        *,
        actor: str | None = None,
    ) -> ServiceResult:
        return self._execute(
            "opt out of meal",
            "Opted out of meal successfully",
            lambda: self._output(self._machine.opt_out(tenant_id, student_id, meal_type, meal_date, actor=actor)),
        )

    def opt_back_in(
        self,
        tenant_id: int,
        student_id: int,
        meal_type: str,
        meal_date: date | None = None,
        *,
        actor: str | None = None,
    ) -> ServiceResult:
        return self._execute(
            "opt back in to meal",
            "Opted back in to meal successfully",
            lambda: self._output(self._machine.opt_back_in(tenant_id, student_id, meal_type, meal_date, actor=actor)),
        )

    def update_preference(
        self,
        tenant_id: int,
        student_id: int,
        meal_type: str,
        preference: str,
        meal_date: date | None = None,
        *,
        actor: str | None = None,
    ) -> ServiceResult:
        return self._execute(
            "update meal preference",
            "Meal preference updated successfully",
            lambda: self._output(
                self._machine.update_preference(
                    tenant_id, student_id, meal_type, preference, meal_date, actor=actor
                )
            ),
        )

    def update_special_request(
        self,
        tenant_id: int,
        student_id: int,
        meal_type: str,
        is_special: bool,
        special_remarks: str | None = None,
        meal_date: date | None = None,
        *,
        actor: str | None = None,
    ) -> ServiceResult:
        return self._execute(
            "update special request",
            "Meal registration updated successfully",
            lambda: self._output(
                self._machine.update_special_request(
                    tenant_id, student_id, meal_type, is_special, special_remarks, meal_date, actor=actor
                )
            ),
        )

    def cancel(
        self,
        tenant_id: int,
        student_id: int,
        meal_type: str,
        meal_date: date | None = None,
        *,
        actor: str | None = None,
    ) -> ServiceResult:
        return self._execute(
            "cancel meal registration",
            "Meal registration cancelled successfully",
            lambda: self._output(self._machine.cancel(tenant_id, student_id, meal_type, meal_date, actor=actor)),
        )

    def update_special_request_by_id(
        self,
        tenant_id: int,
        registration_id: int,
        is_special: bool,
        special_remarks: str | None = None,
        *,
        actor: str | None = None,
    ) -> ServiceResult:
        return self._execute(
            "update special request",
            "Meal registration updated successfully",
            lambda: self._output(
                self._machine.update_special_request_by_id(
                    tenant_id, registration_id, is_special, special_remarks, actor=actor
                )
            ),
        )

    def cancel_by_id(self, tenant_id: int, registration_id: int, *, actor: str | None = None) -> ServiceResult:
        return self._execute(
            "cancel meal registration",
            "Meal registration cancelled successfully",
            lambda: self._output(self._machine.cancel_by_id(tenant_id, registration_id, actor=actor)),
        )

    # =========================================================================
    # Serving
    # =========================================================================

    def consume(
        self,
        tenant_id: int,
        student_id: int,
        meal_type: str,
        meal_date: date | None = None,
        *,
        actor: str | None = None,
    ) -> ServiceResult:
        return self._execute(
            "consume meal",
            "Meal consumed successfully",
            lambda: self._output(self._machine.consume(tenant_id, student_id, meal_type, meal_date, actor=actor)),
        )

    def consume_by_id(self, tenant_id: int, registration_id: int, *, actor: str | None = None) -> ServiceResult:
        return self._execute(
            "consume meal",
            "Meal consumed successfully",
            lambda: self._output(self._machine.consume_by_id(tenant_id, registration_id, actor=actor)),
        )

    def consume_via_external_code(
        self,
        tenant_id: int,
        code: str | bytes | Mapping[str, Any],
        *,
        actor: str | None = None,
    ) -> ServiceResult:
        try:
            parsed = parse_external_code(code)
        except InvalidRequestError as exc:
            return ServiceResult.from_error(exc)
        return self.consume(tenant_id, parsed.student_id, parsed.meal_type, actor=actor)

    # =========================================================================
    # Queries
    # =========================================================================

    def get_registration(self, tenant_id: int, registration_id: int) -> ServiceResult:
        return self._execute(
            "get meal registration",
            "Meal registration retrieved",
            lambda: self._output(self._machine.get(tenant_id, registration_id)),
        )

    def get_registrations(self, tenant_id: int, meal_type: str, meal_date: date | None = None) -> ServiceResult:
        """Every registration of a meal, any status, token ascending."""

        def work() -> RegistrationList:
            meal = self._meal_type(meal_type)
            target = self._date(meal_date)
            rows = self._registrations.list_for_meal(tenant_id, meal, target)
            return RegistrationList(
                meal_type=meal,
                meal_date=target,
                total=len(rows),
                registrations=[self._output(r) for r in rows],
            )

        return self._execute("get meal registrations", "Meal registrations retrieved", work)

    def get_meal_statistics(self, tenant_id: int, from_date: date, to_date: date) -> ServiceResult:
        """Head count and highest token per date and meal, both dates inclusive."""

        def work() -> MealStatistics:
            if from_date > to_date:
                raise InvalidRequestError(
                    "from_date must not be after to_date",
                    from_date=from_date.isoformat(),
                    to_date=to_date.isoformat(),
                )
            rows = self._registrations.daily_statistics(tenant_id, from_date, to_date)
            statistics: dict[date, dict[str, MealDayStatistics]] = {}
            for meal_date, meal_type, student_count, max_token in rows:
                statistics.setdefault(meal_date, {})[meal_type] = MealDayStatistics(
                    student_count=student_count,
                    max_token=max_token,
                )
            return MealStatistics(
                from_date=from_date,
                to_date=to_date,
                statistics=statistics,
                total_days=len(statistics),
            )

        return self._execute("get meal statistics", "Meal statistics retrieved", work)

    def get_status(self, tenant_id: int, student_id: int, meal_date: date | None = None) -> ServiceResult:
        """All of a student's registrations (any status) for a date."""

        def work() -> StudentMealStatus:
            target = self._date(meal_date)
            rows = self._registrations.list_for_student(tenant_id, student_id, target)
            return StudentMealStatus(
                student_id=student_id,
                meal_date=target,
                meals=[self._output(r) for r in rows],
            )

        return self._execute("get registration status", "Registration status retrieved", work)

    def get_queue(self, tenant_id: int, meal_type: str, meal_date: date | None = None) -> ServiceResult:
        """Registered, not yet consumed, ordered by token."""

        def work() -> MealQueue:
            meal = self._meal_type(meal_type)
            target = self._date(meal_date)
            rows = self._registrations.list_queue(tenant_id, meal, target)
            return MealQueue(
                meal_type=meal,
                meal_date=target,
                total=len(rows),
                registrations=[self._output(r) for r in rows],
            )

        return self._execute("get meal queue", "Meal queue retrieved", work)

    def get_consumed(self, tenant_id: int, meal_type: str, meal_date: date | None = None) -> ServiceResult:
        def work() -> RegistrationList:
            meal = self._meal_type(meal_type)
            target = self._date(meal_date)
            rows = self._registrations.list_consumed(tenant_id, meal, target)
            return RegistrationList(
                meal_type=meal,
                meal_date=target,
                total=len(rows),
                registrations=[self._output(r) for r in rows],
            )

        return self._execute("get consumed meals", "Consumed meals retrieved", work)

    def get_opted_out_summary(self, tenant_id: int, meal_type: str, meal_date: date | None = None) -> ServiceResult:
        """Opted-out head counts by preference, plus the students by name."""

        def work() -> OptedOutSummary:
            meal = self._meal_type(meal_type)
            target = self._date(meal_date)
            rows = self._registrations.list_opted_out(tenant_id, meal, target)
            return OptedOutSummary(
                meal_type=meal,
                meal_date=target,
                total_opted_out=len(rows),
                veg_opted_out=sum(1 for r in rows if r.preference == MealPreference.VEG),
                non_veg_opted_out=sum(1 for r in rows if r.preference == MealPreference.NON_VEG),
                special_opted_out=sum(1 for r in rows if r.is_special),
                students=[OptedOutStudent.model_validate(r) for r in rows],
            )

        return self._execute("get opted-out summary", "Opted-out summary retrieved", work)

    def get_student_history(
        self,
        tenant_id: int,
        student_id: int,
        limit: int = Limits.DEFAULT_HISTORY_SIZE,
    ) -> ServiceResult:
        return self._execute(
            "get meal history",
            "Meal history retrieved",
            lambda: [
                self._output(r)
                for r in self._registrations.history(tenant_id, student_id, limit)
            ],
        )

    def get_booking_status(self, tenant_id: int, meal_type: str, meal_date: date | None = None) -> ServiceResult:
        def work() -> WindowStatus:
            meal = self._meal_type(meal_type)
            target = self._date(meal_date)
            is_open, message = self._window_verdict(BookingWindowGuard(), tenant_id, meal)
            counts = self._registrations.count_by_status(tenant_id, meal, target)
            return WindowStatus(
                meal_type=meal,
                meal_date=target,
                is_open=is_open,
                message=message,
                total_registrations=sum(counts[s] for s in RegistrationStatus.ACTIVE),
            )

        return self._execute("get booking status", "Booking status retrieved", work)

    def get_serving_status(self, tenant_id: int, meal_type: str, meal_date: date | None = None) -> ServiceResult:
        def work() -> WindowStatus:
            meal = self._meal_type(meal_type)
            target = self._date(meal_date)
            is_open, message = self._window_verdict(ServingWindowGuard(), tenant_id, meal)
            return WindowStatus(
                meal_type=meal,
                meal_date=target,
                is_open=is_open,
                message=message,
                statistics=self._serving_statistics(tenant_id, meal, target),
            )

        return self._execute("get serving status", "Serving status retrieved", work)

    def _serving_statistics(self, tenant_id: int, meal_type: str, meal_date: date) -> ServingStatistics:
        counts = self._registrations.count_by_status(tenant_id, meal_type, meal_date)
        pending = counts[RegistrationStatus.REGISTERED]
        consumed = counts[RegistrationStatus.CONSUMED]
        total = pending + consumed
        return ServingStatistics(
            total_registered=total,
            total_consumed=consumed,
            pending_consumption=pending,
            consumption_rate=round(consumed / total * 100, 2) if total else 0.0,
            special_meals=self._registrations.count_special(
                tenant_id,
                meal_type,
                meal_date,
                [RegistrationStatus.REGISTERED, RegistrationStatus.CONSUMED],
            ),
        )

    # =========================================================================
    # Auto-registration
    # =========================================================================

    def trigger_auto_registration(
        self,
        tenant_id: int,
        meal_type: str,
        meal_date: date | None = None,
        *,
        triggered_by: str = TriggerSource.MANUAL_TRIGGER,
    ) -> ServiceResult:
        """Run one bulk Register pass now. Safe to repeat for the same meal."""
        return self._execute(
            "auto-register students",
            "Automatic meal registration completed",
            lambda: AutoRegistrationScheduler(self._db, clock=self._clock).run(
                tenant_id, meal_type, meal_date, triggered_by=triggered_by
            ),
        )

    def trigger_all_tenants(self, meal_type: str, *, triggered_by: str = TriggerSource.MANUAL_TRIGGER) -> ServiceResult:
        def work():
            result = trigger_all_tenants(self._db, meal_type, clock=self._clock, triggered_by=triggered_by)
            logger.info(
                "Auto-registration triggered for all tenants",
                meal_type=result.meal_type,
                total_tenants=result.total_tenants,
                success_count=result.success_count,
                fail_count=result.fail_count,
            )
            return result

        return self._execute("auto-register all tenants", "Automatic meal registration triggered for all tenants", work)
