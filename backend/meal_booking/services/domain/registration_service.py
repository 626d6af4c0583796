"""
Registration State Machine.

Owns the lifecycle of one MealRegistration:

    (none) --register--> registered --opt_out--> opted_out
    opted_out --opt_back_in--> registered
    registered --cancel--> cancelled*     (booking window)
    registered --consume--> consumed*     (serving window)

Preference and special-request updates keep the status and are allowed in
registered/opted_out only. Transitions address a registration either by its
identity or by its id; both paths run the same guards. Every transition is
one read-check-write in a single transaction; status writes are
compare-and-set on the expected status, so a concurrent writer can never
double-apply a transition.
"""

from __future__ import annotations

from datetime import date, datetime, timezone
from typing import Any, Callable

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from meal_booking.models import MealRegistration, Student
from meal_booking.repositories import (
    MealRegistrationRepository,
    StudentDirectory,
    WindowConfigStore,
)
from meal_booking.services.domain.tokens import TokenAllocator
from meal_booking.services.domain.windows import (
    BookingWindowGuard,
    Clock,
    ServingWindowGuard,
    load_window_config,
    meal_clock,
    weekday_of,
)
from shared.config.constants import RegistrationStatus
from shared.config.logging import get_logger, mask_mobile
from shared.config.settings import settings
from shared.infrastructure.db import safe_commit
from shared.utils.exceptions import (
    DuplicateError,
    InvalidRequestError,
    MealError,
    NotFoundError,
    PersistenceError,
    StateConflictError,
)
from shared.utils.validators import (
    sanitize_remarks,
    validate_meal_type,
    validate_preference,
)

logger = get_logger(__name__)

S = RegistrationStatus

# Statuses each action may start from
_ALLOWED_FROM: dict[str, list[str]] = {
    "opt-out": [S.REGISTERED],
    "opt back in": [S.OPTED_OUT],
    "update": S.MUTABLE,
    "cancel": [S.REGISTERED],
    "consume": [S.REGISTERED],
}

# Rejection reason per (action, current status)
_REJECTIONS: dict[str, dict[str, str]] = {
    "opt-out": {
        S.OPTED_OUT: "Student has already opted out of this meal",
        S.CONSUMED: "Cannot opt-out: Meal has already been consumed",
        S.CANCELLED: "Cannot opt-out: Meal has already been cancelled",
    },
    "opt back in": {
        S.REGISTERED: "Student is already registered for this meal",
        S.CONSUMED: "Cannot opt back in: Meal has already been consumed",
        S.CANCELLED: "Cannot opt back in: Meal has been cancelled",
    },
    "update": {
        S.CONSUMED: "Cannot update consumed or cancelled meal",
        S.CANCELLED: "Cannot update consumed or cancelled meal",
    },
    "cancel": {
        S.OPTED_OUT: "Cannot cancel: Student has opted out of this meal",
        S.CONSUMED: "Cannot cancel: Meal has already been consumed",
        S.CANCELLED: "Meal registration is already cancelled",
    },
    "consume": {
        S.OPTED_OUT: "Cannot consume: Student has opted out of this meal",
        S.CONSUMED: "Meal already consumed",
        S.CANCELLED: "Meal registration was cancelled",
    },
}


class RegistrationStateMachine:
    """
    Transitions for (tenant, student, meal type, date) identities.

    Manual booking, external-code booking and the auto-registration
    scheduler all go through this class; there is no batch fast path.
    """

    def __init__(
        self,
        db: Session,
        clock: Clock = meal_clock,
        max_attempts: int | None = None,
    ):
        self._db = db
        self._clock = clock
        self._max_attempts = max_attempts or settings.register_max_attempts
        self._configs = WindowConfigStore(db)
        self._students = StudentDirectory(db)
        self._registrations = MealRegistrationRepository(db)
        self._tokens = TokenAllocator(db)
        self._booking_guard = BookingWindowGuard()
        self._serving_guard = ServingWindowGuard()

    # =========================================================================
    # Helpers
    # =========================================================================

    def _resolve(self, meal_type: str, meal_date: date | None) -> tuple[str, date, datetime]:
        try:
            meal_type = validate_meal_type(meal_type)
        except ValueError as exc:
            raise InvalidRequestError(str(exc)) from exc
        now = self._clock()
        return meal_type, meal_date or now.date(), now

    def _check_window(self, guard, tenant_id: int, meal_type: str, now: datetime) -> None:
        config = load_window_config(self._configs, tenant_id)
        weekday = weekday_of(now)
        guard.is_open(config, weekday, meal_type, now).raise_if_closed(
            tenant_id=tenant_id, meal_type=meal_type, weekday=weekday
        )

    def _load(self, tenant_id: int, student_id: int, meal_type: str, meal_date: date) -> MealRegistration:
        registration = self._registrations.find_active(
            tenant_id, student_id, meal_type, meal_date
        ) or self._registrations.find_latest(tenant_id, student_id, meal_type, meal_date)
        if registration is None:
            raise NotFoundError(
                "Meal registration",
                detail="Meal registration not found",
                tenant_id=tenant_id,
                student_id=student_id,
                meal_type=meal_type,
                meal_date=meal_date.isoformat(),
            )
        return registration

    @staticmethod
    def _ensure_allowed(action: str, registration: MealRegistration) -> None:
        current = registration.status
        if current in _ALLOWED_FROM[action]:
            return
        raise StateConflictError(
            action,
            current,
            _REJECTIONS[action].get(current),
            registration_id=registration.id,
        )

    def _compare_and_set(
        self,
        action: str,
        registration: MealRegistration,
        actor: str | None,
        values: dict[str, Any],
    ) -> None:
        """
        Apply `values` only if the row still has an allowed status.
        Raises StateConflictError naming the status another writer left.
        """
        result = self._db.execute(
            update(MealRegistration)
            .where(
                MealRegistration.id == registration.id,
                MealRegistration.status.in_(_ALLOWED_FROM[action]),
            )
            .values(updated_by=actor, updated_at=datetime.now(timezone.utc), **values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 1:
            return

        self._db.refresh(registration)
        self._ensure_allowed(action, registration)
        raise StateConflictError(action, registration.status, registration_id=registration.id)

    def _in_transaction(
        self,
        operation: str,
        work: Callable[[], MealRegistration],
        **log_context: Any,
    ) -> MealRegistration:
        try:
            result = work()
            safe_commit(self._db)
            return result
        except MealError:
            self._db.rollback()
            raise
        except SQLAlchemyError as exc:
            self._db.rollback()
            raise PersistenceError(operation, **log_context) from exc

    def _guard(self, serving: bool):
        return self._serving_guard if serving else self._booking_guard

    def _transition(
        self,
        action: str,
        operation: str,
        tenant_id: int,
        student_id: int,
        meal_type: str,
        meal_date: date | None,
        actor: str | None,
        values: Callable[[datetime], dict[str, Any]],
        *,
        serving: bool = False,
    ) -> MealRegistration:
        meal_type, meal_date, now = self._resolve(meal_type, meal_date)

        def locate() -> MealRegistration:
            self._check_window(self._guard(serving), tenant_id, meal_type, now)
            return self._load(tenant_id, student_id, meal_type, meal_date)

        return self._apply(
            action, operation, tenant_id, actor, now, locate, values,
            student_id=student_id, meal_type=meal_type,
        )

    def _transition_by_id(
        self,
        action: str,
        operation: str,
        tenant_id: int,
        registration_id: int,
        actor: str | None,
        values: Callable[[datetime], dict[str, Any]],
        *,
        serving: bool = False,
    ) -> MealRegistration:
        """Same guards as _transition; the meal type is read from the row."""
        now = self._clock()

        def locate() -> MealRegistration:
            registration = self.get(tenant_id, registration_id)
            self._check_window(self._guard(serving), tenant_id, registration.meal_type, now)
            return registration

        return self._apply(
            action, operation, tenant_id, actor, now, locate, values,
            registration_id=registration_id,
        )

    def _apply(
        self,
        action: str,
        operation: str,
        tenant_id: int,
        actor: str | None,
        now: datetime,
        locate: Callable[[], MealRegistration],
        values: Callable[[datetime], dict[str, Any]],
        **log_context: Any,
    ) -> MealRegistration:
        def work() -> MealRegistration:
            registration = locate()
            self._ensure_allowed(action, registration)
            self._compare_and_set(action, registration, actor, values(now))
            return registration

        registration = self._in_transaction(operation, work, tenant_id=tenant_id, **log_context)
        logger.info(
            f"Meal registration {action}",
            tenant_id=tenant_id,
            student_id=registration.student_id,
            meal_type=registration.meal_type,
            meal_date=registration.meal_date.isoformat(),
            registration_id=registration.id,
            actor=actor,
        )
        return registration

    # =========================================================================
    # Lookup
    # =========================================================================

    def get(self, tenant_id: int, registration_id: int) -> MealRegistration:
        """
        Load one registration by id. Another tenant's id is not found.

        Raises:
            NotFoundError: No such registration in this tenant.
        """
        registration = self._registrations.find_by_id(registration_id, tenant_id)
        if registration is None:
            raise NotFoundError(
                "Meal registration",
                registration_id,
                detail="Meal registration not found",
                tenant_id=tenant_id,
            )
        return registration

    # =========================================================================
    # Register
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
    ) -> MealRegistration:
        """
        Create a registration with the next token.

        A cancelled row for the same identity does not block a new
        registration; the new one gets a fresh token.

        Raises:
            InvalidRequestError: Unknown meal type or preference.
            ConfigurationError: No usable window configuration.
            WindowClosedError: Booking window closed.
            NotFoundError: Student not active in this tenant.
            DuplicateError: An active registration already exists.
            PersistenceError: Storage failure, or the uniqueness race did
                not settle within register_max_attempts.
        """
        meal_type, meal_date, now = self._resolve(meal_type, meal_date)
        try:
            preference = validate_preference(preference or settings.default_meal_preference)
        except ValueError as exc:
            raise InvalidRequestError(str(exc)) from exc
        remarks = sanitize_remarks(special_remarks) if is_special else ""

        log_context = {"tenant_id": tenant_id, "student_id": student_id, "meal_type": meal_type}

        for attempt in range(1, self._max_attempts + 1):
            try:
                registration = self._register_once(
                    tenant_id, student_id, meal_type, meal_date, now,
                    preference, is_special, remarks, actor,
                )
                safe_commit(self._db)
            except IntegrityError as exc:
                self._db.rollback()
                if attempt >= self._max_attempts:
                    raise PersistenceError("register for meal", attempts=attempt, **log_context) from exc
                logger.info("Register raced on token or identity, retrying", attempt=attempt, **log_context)
                continue
            except MealError:
                self._db.rollback()
                raise
            except SQLAlchemyError as exc:
                self._db.rollback()
                raise PersistenceError("register for meal", **log_context) from exc

            logger.info(
                "Meal registered",
                meal_date=meal_date.isoformat(),
                token=registration.token_number,
                registration_id=registration.id,
                created_by=actor,
                **log_context,
            )
            return registration

        # Unreachable: the loop either returns or raises
        raise PersistenceError("register for meal", **log_context)

    def _register_once(
        self,
        tenant_id: int,
        student_id: int,
        meal_type: str,
        meal_date: date,
        now: datetime,
        preference: str,
        is_special: bool,
        remarks: str,
        actor: str | None,
    ) -> MealRegistration:
        self._check_window(self._booking_guard, tenant_id, meal_type, now)

        student = self._students.get_active(student_id, tenant_id)
        if student is None:
            raise NotFoundError("Student", student_id, detail="Student not found", tenant_id=tenant_id)

        # Locks the meal's counter row: from here on same-meal writers queue up
        token = self._tokens.next_token(tenant_id, meal_type, meal_date)

        existing = self._registrations.find_active(tenant_id, student_id, meal_type, meal_date)
        if existing is not None:
            identity = _identity(tenant_id, student_id, meal_type)
            if existing.status == S.CONSUMED:
                raise DuplicateError("Student already consumed this meal", **identity)
            raise DuplicateError(**identity)

        registration = MealRegistration(
            tenant_id=tenant_id,
            student_id=student_id,
            meal_type=meal_type,
            meal_date=meal_date,
            token_number=token,
            status=S.REGISTERED,
            preference=preference,
            is_special=is_special,
            special_remarks=remarks,
            registered_at=now,
            **_snapshot(student),
        )
        registration.set_created_by(actor)
        self._db.add(registration)
        self._db.flush()

        logger.debug(
            "Student snapshot taken",
            tenant_id=tenant_id,
            student_id=student_id,
            mobile=mask_mobile(student.mobile),
        )
        return registration

    # =========================================================================
    # Booking-window transitions
    # =========================================================================

    def opt_out(
        self,
        tenant_id: int,
        student_id: int,
        meal_type: str,
        meal_date: date | None = None,
        *,
        actor: str | None = None,
    ) -> MealRegistration:
        return self._transition(
            "opt-out", "opt out of meal", tenant_id, student_id, meal_type, meal_date, actor,
            lambda now: {"status": S.OPTED_OUT},
        )

    def opt_back_in(
        self,
        tenant_id: int,
        student_id: int,
        meal_type: str,
        meal_date: date | None = None,
        *,
        actor: str | None = None,
    ) -> MealRegistration:
        """Back to registered; token and preference are kept."""
        return self._transition(
            "opt back in", "opt back in to meal", tenant_id, student_id, meal_type, meal_date, actor,
            lambda now: {"status": S.REGISTERED},
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
    ) -> MealRegistration:
        try:
            preference = validate_preference(preference)
        except ValueError as exc:
            raise InvalidRequestError(str(exc)) from exc
        return self._transition(
            "update", "update meal preference", tenant_id, student_id, meal_type, meal_date, actor,
            lambda now: {"preference": preference},
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
    ) -> MealRegistration:
        remarks = sanitize_remarks(special_remarks) if is_special else ""
        return self._transition(
            "update", "update special request", tenant_id, student_id, meal_type, meal_date, actor,
            lambda now: {"is_special": is_special, "special_remarks": remarks},
        )

    def update_special_request_by_id(
        self,
        tenant_id: int,
        registration_id: int,
        is_special: bool,
        special_remarks: str | None = None,
        *,
        actor: str | None = None,
    ) -> MealRegistration:
        remarks = sanitize_remarks(special_remarks) if is_special else ""
        return self._transition_by_id(
            "update", "update special request", tenant_id, registration_id, actor,
            lambda now: {"is_special": is_special, "special_remarks": remarks},
        )

    def cancel(
        self,
        tenant_id: int,
        student_id: int,
        meal_type: str,
        meal_date: date | None = None,
        *,
        actor: str | None = None,
    ) -> MealRegistration:
        """Irreversible. Only a registered (not opted-out) meal can be cancelled."""
        return self._transition(
            "cancel", "cancel meal registration", tenant_id, student_id, meal_type, meal_date, actor,
            lambda now: {"status": S.CANCELLED},
        )

    def cancel_by_id(self, tenant_id: int, registration_id: int, *, actor: str | None = None) -> MealRegistration:
        return self._transition_by_id(
            "cancel", "cancel meal registration", tenant_id, registration_id, actor,
            lambda now: {"status": S.CANCELLED},
        )

    # =========================================================================
    # Serving-window transition
    # =========================================================================

    def consume(
        self,
        tenant_id: int,
        student_id: int,
        meal_type: str,
        meal_date: date | None = None,
        *,
        actor: str | None = None,
    ) -> MealRegistration:
        """
        Mark a registered meal consumed.

        An opted-out registration is not in the serving queue: consuming it
        fails even while the serving window is open.
        """
        return self._transition(
            "consume", "consume meal", tenant_id, student_id, meal_type, meal_date, actor,
            _consumed_values(actor),
            serving=True,
        )

    def consume_by_id(self, tenant_id: int, registration_id: int, *, actor: str | None = None) -> MealRegistration:
        return self._transition_by_id(
            "consume", "consume meal", tenant_id, registration_id, actor,
            _consumed_values(actor),
            serving=True,
        )


def _consumed_values(actor: str | None) -> Callable[[datetime], dict[str, Any]]:
    return lambda now: {"status": S.CONSUMED, "consumed_at": now, "consumed_by": actor}


def _identity(tenant_id: int, student_id: int, meal_type: str) -> dict[str, Any]:
    return {"tenant_id": tenant_id, "student_id": student_id, "meal_type": meal_type}


def _snapshot(student: Student) -> dict[str, Any]:
    """Student fields frozen onto the registration; never re-synced."""
    return {
        "student_reg_no": student.reg_no,
        "student_name": student.name,
        "mobile": student.mobile,
        "email": student.email,
        "address": student.address,
        "course": student.course,
        "hostel": student.hostel,
        "associated_flat": student.associated_flat,
        "associated_block": student.associated_block,
    }
