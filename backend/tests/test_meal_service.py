"""
Tests for MealService, the result-returning facade over the meal lifecycle.

Tests verify:
- Three-way outcome mapping (success, caller_error, server_error)
- QR payload decoding
- Operations addressing a registration by id
- Queue, registrations, opted-out, consumed, history, status and
  date-range statistics queries
- Manual auto-registration triggers
"""

import json
from datetime import date, timedelta
from unittest.mock import patch

import pytest
from sqlalchemy.exc import OperationalError

from meal_booking.models import MealRegistration
from meal_booking.repositories import MealRegistrationRepository
from meal_booking.services.domain.tokens import TokenAllocator
from meal_booking.services.meal_service import MealService, parse_external_code
from shared.config.constants import MealType, RegistrationStatus, TriggerSource
from shared.utils.exceptions import InvalidRequestError
from tests.conftest import MONDAY, TUESDAY


def db_down():
    return OperationalError("SELECT 1", {}, Exception("database is locked"))


class TestOutcomes:
    """Every domain error folds into a ServiceResult."""

    def test_register_success(self, service):
        result = service.register(1, 101, MealType.LUNCH)

        assert result.ok
        assert result.outcome == "success"
        assert result.message == "Meal registered successfully"
        assert result.payload.token_number == 1
        assert result.payload.status == "registered"
        assert result.payload.preference == "non-veg"
        assert result.payload.student_name == "Aarav Sharma"
        assert result.payload.meal_date == MONDAY

    def test_duplicate_is_caller_error(self, service):
        service.register(1, 101, MealType.LUNCH)

        result = service.register(1, 101, MealType.LUNCH)

        assert result.outcome == "caller_error"
        assert result.message == "Student already registered for this meal"
        assert result.error_code == "DUPLICATE"
        assert result.payload is None

    def test_closed_window_is_caller_error(self, service, clock):
        clock.set(11, 31)

        result = service.register(1, 101, MealType.LUNCH)

        assert result.outcome == "caller_error"
        assert result.message == "Lunch booking closed at 11:30"
        assert result.error_code == "WINDOW_CLOSED"

    def test_unknown_student_is_caller_error(self, service):
        result = service.register(1, 999, MealType.LUNCH)

        assert result.outcome == "caller_error"
        assert result.message == "Student not found"

    def test_cross_tenant_student_is_not_found(self, service, other_tenant):
        result = service.register(1, 201, MealType.LUNCH)

        assert result.error_code == "NOT_FOUND"

    def test_state_conflict_is_caller_error(self, service):
        service.register(1, 101, MealType.LUNCH)
        service.opt_out(1, 101, MealType.LUNCH)

        result = service.cancel(1, 101, MealType.LUNCH)

        assert result.outcome == "caller_error"
        assert result.message == "Cannot cancel: Student has opted out of this meal"
        assert result.error_code == "STATE_CONFLICT"

    def test_storage_failure_in_register_is_server_error(self, service):
        with patch.object(TokenAllocator, "next_token", side_effect=db_down()):
            result = service.register(1, 101, MealType.LUNCH)

        assert result.outcome == "server_error"
        assert result.message == "Failed to register for meal"
        assert result.error_code == "PERSISTENCE_ERROR"

    def test_storage_failure_in_query_is_server_error(self, service):
        with patch.object(MealRegistrationRepository, "list_queue", side_effect=db_down()):
            result = service.get_queue(1, MealType.LUNCH)

        assert result.outcome == "server_error"
        assert result.message == "Failed to get meal queue"

    def test_session_usable_after_server_error(self, service):
        with patch.object(TokenAllocator, "next_token", side_effect=db_down()):
            service.register(1, 101, MealType.LUNCH)

        assert service.register(1, 101, MealType.LUNCH).ok

    def test_invalid_meal_type_in_query(self, service):
        result = service.get_queue(1, "breakfast")

        assert result.outcome == "caller_error"
        assert result.error_code == "INVALID_REQUEST"

    def test_result_serializes(self, service):
        """The envelope is plain JSON for the request layer."""
        result = service.register(1, 101, MealType.LUNCH)

        data = json.loads(result.model_dump_json())
        assert data["outcome"] == "success"
        assert data["payload"]["token_number"] == 1


class TestExternalCode:
    """QR payloads carry student_id and meal_type."""

    def test_parse_json_string(self):
        parsed = parse_external_code('{"student_id": 101, "meal_type": "lunch"}')
        assert parsed.student_id == 101
        assert parsed.meal_type == "lunch"

    def test_parse_bytes_and_mapping(self):
        assert parse_external_code(b'{"student_id": 7, "meal_type": "dinner"}').student_id == 7
        assert parse_external_code({"student_id": 7, "meal_type": "dinner"}).meal_type == "dinner"

    @pytest.mark.parametrize(
        "code",
        [
            "not json",
            '{"student_id": 101}',
            '{"meal_type": "lunch"}',
            '{"student_id": "abc", "meal_type": "lunch"}',
            '{"student_id": 101, "meal_type": "brunch"}',
        ],
    )
    def test_malformed_payload(self, code):
        with pytest.raises(InvalidRequestError) as exc_info:
            parse_external_code(code)
        assert exc_info.value.detail == "Invalid QR data: student_id and meal_type required"

    def test_register_via_code(self, service):
        result = service.register_via_external_code(1, '{"student_id": 102, "meal_type": "lunch"}')

        assert result.ok
        assert result.payload.student_id == 102

    def test_meal_type_is_case_insensitive(self, service):
        assert parse_external_code('{"student_id": 101, "meal_type": " Lunch "}').meal_type == "lunch"

        result = service.register_via_external_code(1, {"student_id": 103, "meal_type": "LUNCH"})

        assert result.ok
        assert result.payload.meal_type == "lunch"

    def test_register_via_bad_code(self, service):
        result = service.register_via_external_code(1, "garbage")

        assert result.outcome == "caller_error"
        assert result.message == "Invalid QR data: student_id and meal_type required"

    def test_consume_via_code(self, service, clock):
        service.register(1, 101, MealType.LUNCH)
        clock.set(12, 45)

        result = service.consume_via_external_code(
            1, {"student_id": 101, "meal_type": "lunch"}, actor="mess-counter-1"
        )

        assert result.ok
        assert result.message == "Meal consumed successfully"
        assert result.payload.status == "consumed"
        assert result.payload.consumed_by == "mess-counter-1"


class TestLifecycleOperations:
    """Booking-window operations through the facade."""

    def test_opt_out_and_back_in_keep_token(self, service):
        service.register(1, 101, MealType.LUNCH)
        service.register(1, 102, MealType.LUNCH)

        opted = service.opt_out(1, 102, MealType.LUNCH)
        back = service.opt_back_in(1, 102, MealType.LUNCH)

        assert opted.payload.status == "opted_out"
        assert back.payload.status == "registered"
        assert back.payload.token_number == 2

    def test_update_preference(self, service):
        service.register(1, 101, MealType.LUNCH)

        result = service.update_preference(1, 101, MealType.LUNCH, "veg")

        assert result.ok
        assert result.payload.preference == "veg"

    def test_invalid_preference(self, service):
        service.register(1, 101, MealType.LUNCH)

        result = service.update_preference(1, 101, MealType.LUNCH, "vegan")

        assert result.outcome == "caller_error"

    def test_special_request(self, service):
        service.register(1, 101, MealType.LUNCH)

        result = service.update_special_request(1, 101, MealType.LUNCH, True, "  No onion  ")

        assert result.payload.is_special is True
        assert result.payload.special_remarks == "No onion"

    def test_cancel(self, service):
        service.register(1, 101, MealType.LUNCH)

        result = service.cancel(1, 101, MealType.LUNCH, actor="warden")

        assert result.ok
        assert result.payload.status == "cancelled"
        assert result.payload.updated_by == "warden"


class TestByIdOperations:
    """Operations addressing a registration by its id run the same guards."""

    def test_get_registration(self, service):
        registration_id = service.register(1, 102, MealType.LUNCH).payload.id

        result = service.get_registration(1, registration_id)

        assert result.ok
        assert result.payload.student_id == 102
        assert result.payload.token_number == 1

    def test_get_registration_of_other_tenant_not_found(self, service, other_tenant):
        registration_id = service.register(1, 102, MealType.LUNCH).payload.id

        result = service.get_registration(2, registration_id)

        assert result.outcome == "caller_error"
        assert result.error_code == "NOT_FOUND"
        assert result.message == "Meal registration not found"

    def test_cancel_by_id(self, service):
        registration_id = service.register(1, 101, MealType.LUNCH).payload.id

        result = service.cancel_by_id(1, registration_id, actor="warden")

        assert result.ok
        assert result.payload.status == "cancelled"
        assert result.payload.updated_by == "warden"

    def test_cancel_by_id_outside_booking_window(self, service, clock):
        registration_id = service.register(1, 101, MealType.LUNCH).payload.id
        clock.set(11, 31)

        result = service.cancel_by_id(1, registration_id)

        assert result.error_code == "WINDOW_CLOSED"
        assert result.message == "Lunch booking closed at 11:30"

    def test_update_special_request_by_id(self, service):
        registration_id = service.register(1, 101, MealType.LUNCH).payload.id

        result = service.update_special_request_by_id(1, registration_id, True, " Less spicy ")

        assert result.message == "Meal registration updated successfully"
        assert result.payload.is_special is True
        assert result.payload.special_remarks == "Less spicy"

    def test_consume_by_id_in_serving_window(self, service, clock):
        registration_id = service.register(1, 101, MealType.LUNCH).payload.id
        clock.set(12, 30)

        result = service.consume_by_id(1, registration_id, actor="mess-counter-2")

        assert result.ok
        assert result.payload.status == "consumed"
        assert result.payload.consumed_by == "mess-counter-2"

    def test_consume_by_id_before_serving(self, service):
        registration_id = service.register(1, 101, MealType.LUNCH).payload.id

        result = service.consume_by_id(1, registration_id)

        assert result.error_code == "WINDOW_CLOSED"
        assert result.message == "Lunch serving starts at 12:30"

    def test_consume_by_id_opted_out_rejected(self, service, clock):
        registration_id = service.register(1, 101, MealType.LUNCH).payload.id
        service.opt_out(1, 101, MealType.LUNCH)
        clock.set(12, 45)

        result = service.consume_by_id(1, registration_id)

        assert result.error_code == "STATE_CONFLICT"
        assert result.message == "Cannot consume: Student has opted out of this meal"


class TestQueries:
    """Read-side operations."""

    def test_queue_excludes_opted_out_and_consumed(self, service, clock):
        for student_id in (101, 102, 103, 104):
            service.register(1, student_id, MealType.LUNCH)
        service.opt_out(1, 102, MealType.LUNCH)
        clock.set(12, 45)
        service.consume(1, 103, MealType.LUNCH)

        result = service.get_queue(1, MealType.LUNCH)

        assert result.ok
        assert result.payload.total == 2
        assert [r.token_number for r in result.payload.registrations] == [1, 4]

    def test_consumed_list(self, service, clock):
        service.register(1, 101, MealType.LUNCH)
        service.register(1, 102, MealType.LUNCH)
        clock.set(12, 45)
        service.consume(1, 102, MealType.LUNCH)

        result = service.get_consumed(1, MealType.LUNCH)

        assert [r.student_id for r in result.payload.registrations] == [102]

    def test_opted_out_summary(self, service):
        service.register(1, 103, MealType.LUNCH)
        service.register(1, 101, MealType.LUNCH, preference="veg", is_special=True, special_remarks="Jain")
        service.register(1, 102, MealType.LUNCH)
        service.opt_out(1, 103, MealType.LUNCH)
        service.opt_out(1, 101, MealType.LUNCH)

        summary = service.get_opted_out_summary(1, MealType.LUNCH).payload

        assert summary.total_opted_out == 2
        assert summary.veg_opted_out == 1
        assert summary.non_veg_opted_out == 1
        assert summary.special_opted_out == 1
        assert [s.student_name for s in summary.students] == ["Aarav Sharma", "Kabir Singh"]

    def test_student_status_lists_every_meal(self, service):
        service.register(1, 101, MealType.LUNCH)
        service.cancel(1, 101, MealType.LUNCH)
        service.register(1, 101, MealType.LUNCH)

        status = service.get_status(1, 101).payload

        assert status.meal_date == MONDAY
        assert [m.status for m in status.meals] == ["cancelled", "registered"]
        assert [m.token_number for m in status.meals] == [1, 2]

    def test_history_newest_first(self, service):
        service.register(1, 101, MealType.LUNCH, TUESDAY)
        service.register(1, 101, MealType.LUNCH, MONDAY)

        history = service.get_student_history(1, 101).payload

        assert [h.meal_date for h in history] == [TUESDAY, MONDAY]

    def test_history_limit(self, service):
        service.register(1, 101, MealType.LUNCH, MONDAY)
        service.register(1, 101, MealType.LUNCH, TUESDAY)

        assert len(service.get_student_history(1, 101, limit=1).payload) == 1

    def test_booking_status(self, service):
        service.register(1, 101, MealType.LUNCH)
        service.register(1, 102, MealType.LUNCH)
        service.register(1, 103, MealType.LUNCH)
        service.opt_out(1, 102, MealType.LUNCH)
        service.cancel(1, 103, MealType.LUNCH)

        status = service.get_booking_status(1, MealType.LUNCH).payload

        assert status.is_open is True
        assert status.message == "Lunch booking is open"
        assert status.total_registrations == 2

    def test_booking_status_unconfigured_tenant(self, service, other_tenant):
        result = service.get_booking_status(2, MealType.LUNCH)

        assert result.ok
        assert result.payload.is_open is False
        assert result.payload.message == "Meal settings not configured"

    def test_serving_status_statistics(self, service, clock):
        for student_id in (101, 102, 103, 104):
            service.register(1, student_id, MealType.LUNCH, is_special=(student_id == 104))
        service.opt_out(1, 103, MealType.LUNCH)
        clock.set(12, 45)
        service.consume(1, 101, MealType.LUNCH)

        status = service.get_serving_status(1, MealType.LUNCH).payload

        assert status.is_open is True
        assert status.message == "Lunch serving is open"
        stats = status.statistics
        assert stats.total_registered == 3
        assert stats.total_consumed == 1
        assert stats.pending_consumption == 2
        assert stats.consumption_rate == 33.33
        assert stats.special_meals == 1

    def test_serving_status_before_serving(self, service):
        status = service.get_serving_status(1, MealType.LUNCH).payload

        assert status.is_open is False
        assert status.message == "Lunch serving starts at 12:30"
        assert status.statistics.consumption_rate == 0.0

    def test_registrations_list_every_status(self, service, clock):
        for student_id in (101, 102, 103, 104):
            service.register(1, student_id, MealType.LUNCH)
        service.opt_out(1, 102, MealType.LUNCH)
        service.cancel(1, 104, MealType.LUNCH)
        clock.set(12, 45)
        service.consume(1, 103, MealType.LUNCH)

        result = service.get_registrations(1, MealType.LUNCH)

        assert result.ok
        assert result.payload.total == 4
        assert [(r.token_number, r.status) for r in result.payload.registrations] == [
            (1, "registered"),
            (2, "opted_out"),
            (3, "consumed"),
            (4, "cancelled"),
        ]

    def test_meal_statistics_per_date_and_meal(self, service, db_session):
        for student_id in (101, 102, 103, 104):
            service.register(1, student_id, MealType.LUNCH)
        service.opt_out(1, 102, MealType.LUNCH)
        service.cancel(1, 104, MealType.LUNCH)
        service.register(1, 101, MealType.LUNCH, TUESDAY)
        db_session.add_all([
            MealRegistration(
                tenant_id=1, student_id=101, meal_type=MealType.DINNER, meal_date=MONDAY,
                token_number=7, status=RegistrationStatus.CONSUMED, student_name="Aarav Sharma",
            ),
            MealRegistration(
                tenant_id=1, student_id=101, meal_type=MealType.LUNCH, meal_date=MONDAY - timedelta(days=1),
                token_number=1, status=RegistrationStatus.REGISTERED, student_name="Aarav Sharma",
            ),
        ])
        db_session.commit()

        result = service.get_meal_statistics(1, MONDAY, TUESDAY)

        assert result.ok
        stats = result.payload
        assert stats.total_days == 2
        assert list(stats.statistics) == [TUESDAY, MONDAY]
        assert list(stats.statistics[MONDAY]) == ["lunch", "dinner"]
        assert stats.statistics[MONDAY]["lunch"].student_count == 2
        assert stats.statistics[MONDAY]["lunch"].max_token == 3
        assert stats.statistics[MONDAY]["dinner"].max_token == 7
        assert stats.statistics[TUESDAY]["lunch"].student_count == 1

    def test_meal_statistics_empty_range(self, service):
        stats = service.get_meal_statistics(1, MONDAY, TUESDAY).payload

        assert stats.statistics == {}
        assert stats.total_days == 0

    def test_meal_statistics_reversed_range(self, service):
        result = service.get_meal_statistics(1, TUESDAY, MONDAY)

        assert result.outcome == "caller_error"
        assert result.error_code == "INVALID_REQUEST"

    def test_explicit_date_query(self, service):
        service.register(1, 101, MealType.LUNCH, date(2026, 10, 26))

        assert service.get_queue(1, MealType.LUNCH).payload.total == 0
        assert service.get_queue(1, MealType.LUNCH, date(2026, 10, 26)).payload.total == 1


class TestTriggers:
    """Manual auto-registration entry points."""

    def test_trigger_registers_everyone(self, service, clock):
        clock.set(11, 0)

        result = service.trigger_auto_registration(1, MealType.LUNCH)

        assert result.ok
        assert result.message == "Automatic meal registration completed"
        assert result.payload.registered_count == 4
        assert result.payload.triggered_by == TriggerSource.MANUAL_TRIGGER

    def test_trigger_twice_is_safe(self, service):
        service.trigger_auto_registration(1, MealType.LUNCH)

        result = service.trigger_auto_registration(1, MealType.LUNCH)

        assert result.ok
        assert result.payload.registered_count == 0
        assert result.payload.skipped_count == 4

    def test_trigger_outside_window(self, service, clock):
        clock.set(9, 0)

        result = service.trigger_auto_registration(1, MealType.LUNCH)

        assert result.outcome == "caller_error"
        assert result.message == "Lunch booking opens at 11:00"

    def test_trigger_all_tenants(self, service, other_tenant):
        result = service.trigger_all_tenants(MealType.LUNCH)

        assert result.ok
        assert result.payload.total_tenants == 2
        assert result.payload.success_count == 1
        assert result.payload.fail_count == 1
