"""
Domain exceptions for meal booking with automatic logging.

Window and state errors are expected and frequent: they log at WARNING/INFO
and become caller errors. PersistenceError is the only unexpected class: it
logs at ERROR and becomes a server error. The HTTP status code is a hint for
whatever request layer sits in front of the services.

Usage:
    from shared.utils.exceptions import NotFoundError, StateConflictError

    raise NotFoundError("Meal registration", tenant_id=tenant_id)
    raise StateConflictError("opt-out", "consumed", "Cannot opt-out: Meal has already been consumed")
"""

from datetime import time
from typing import Any

from fastapi import status

from shared.config.logging import get_logger

logger = get_logger(__name__)

CALLER_ERROR = "caller_error"
SERVER_ERROR = "server_error"


class MealError(Exception):
    """
    Base exception with automatic logging.

    All domain exceptions inherit from this class so MealService can map
    any of them to a uniform result.
    """

    code: str = "MEAL_ERROR"
    outcome: str = CALLER_ERROR

    def __init__(
        self,
        detail: str,
        status_code: int = status.HTTP_400_BAD_REQUEST,
        log_level: str = "warning",
        exc_info: bool = False,
        **log_context: Any,
    ):
        self.detail = detail
        self.status_code = status_code
        self.context = log_context

        log_fn = getattr(logger, log_level, logger.warning)
        if exc_info:
            log_fn(detail, code=self.code, exc_info=True, **log_context)
        else:
            log_fn(detail, code=self.code, **log_context)

        super().__init__(detail)


# =============================================================================
# Configuration
# =============================================================================


class ConfigurationError(MealError):
    """
    Meal windows are not configured (or configured inconsistently).
    Never treated as "open all day".
    """

    code = "CONFIGURATION_ERROR"

    def __init__(self, detail: str = "Meal settings not configured", **log_context: Any):
        super().__init__(
            detail,
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            log_level="warning",
            **log_context,
        )


# =============================================================================
# Windows
# =============================================================================


class WindowClosedError(MealError):
    """
    The booking or serving window is closed right now.

    `boundary` is the missed start/end time (None when the meal is not
    offered that day); `not_yet_open` tells which side of it we are on.
    """

    code = "WINDOW_CLOSED"

    def __init__(
        self,
        detail: str,
        boundary: time | None = None,
        not_yet_open: bool = False,
        **log_context: Any,
    ):
        self.boundary = boundary
        self.not_yet_open = not_yet_open
        super().__init__(
            detail,
            status_code=status.HTTP_403_FORBIDDEN,
            log_level="info",
            boundary=boundary.strftime("%H:%M") if boundary else None,
            not_yet_open=not_yet_open,
            **log_context,
        )


# =============================================================================
# Lifecycle
# =============================================================================


class StateConflictError(MealError):
    """Transition not allowed from the registration's current status."""

    code = "STATE_CONFLICT"

    def __init__(self, action: str, current_status: str, detail: str | None = None, **log_context: Any):
        self.action = action
        self.current_status = current_status
        if detail is None:
            detail = f"Cannot {action}: Meal is in {current_status} status"
        super().__init__(
            detail,
            status_code=status.HTTP_409_CONFLICT,
            log_level="warning",
            action=action,
            current_status=current_status,
            **log_context,
        )


class DuplicateError(MealError):
    """An active registration already exists for the identity."""

    code = "DUPLICATE"

    def __init__(self, detail: str = "Student already registered for this meal", **log_context: Any):
        super().__init__(
            detail,
            status_code=status.HTTP_409_CONFLICT,
            log_level="info",
            **log_context,
        )


class NotFoundError(MealError):
    """
    Entity not found (404). Cross-tenant lookups end here too.

    Usage:
        raise NotFoundError("Student", student_id, tenant_id=tenant_id)
    """

    code = "NOT_FOUND"

    def __init__(self, entity: str, entity_id: int | str | None = None, detail: str | None = None, **log_context: Any):
        self.entity = entity
        if detail is None:
            if entity_id is not None:
                detail = f"{entity} with ID {entity_id} not found"
            else:
                detail = f"{entity} not found"
        super().__init__(
            detail,
            status_code=status.HTTP_404_NOT_FOUND,
            log_level="warning",
            entity=entity,
            entity_id=entity_id,
            **log_context,
        )


class InvalidRequestError(MealError):
    """Input validation error: unknown meal type, bad preference, malformed code."""

    code = "INVALID_REQUEST"

    def __init__(self, detail: str, **log_context: Any):
        super().__init__(
            detail,
            status_code=status.HTTP_400_BAD_REQUEST,
            log_level="warning",
            **log_context,
        )


# =============================================================================
# Storage
# =============================================================================


class PersistenceError(MealError):
    """
    Storage failure (500).
    Logged with the underlying exception, surfaced with a generic message.
    """

    code = "PERSISTENCE_ERROR"
    outcome = SERVER_ERROR

    def __init__(self, operation: str, **log_context: Any):
        self.operation = operation
        super().__init__(
            f"Failed to {operation}",
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            log_level="error",
            exc_info=True,
            operation=operation,
            **log_context,
        )
