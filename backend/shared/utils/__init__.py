"""
Utilities module: Exceptions, validators, schemas.
"""

from shared.utils.exceptions import (
    MealError,
    ConfigurationError,
    WindowClosedError,
    StateConflictError,
    DuplicateError,
    NotFoundError,
    InvalidRequestError,
    PersistenceError,
)
from shared.utils.validators import (
    validate_meal_type,
    validate_preference,
    sanitize_remarks,
    parse_time_of_day,
    minutes_since_midnight,
)
from shared.utils.schemas import ServiceResult

__all__ = [
    # exceptions
    "MealError",
    "ConfigurationError",
    "WindowClosedError",
    "StateConflictError",
    "DuplicateError",
    "NotFoundError",
    "InvalidRequestError",
    "PersistenceError",
    # validators
    "validate_meal_type",
    "validate_preference",
    "sanitize_remarks",
    "parse_time_of_day",
    "minutes_since_midnight",
    # schemas
    "ServiceResult",
]
