"""
Shared validators for meal booking input.
"""

import re
from datetime import time

from shared.config.constants import Limits, MealPreference, MealType

_TIME_PATTERN = re.compile(r"^(\d{1,2}):(\d{2})(?::(\d{2}))?$")


def validate_meal_type(meal_type: str) -> str:
    """
    Normalize and validate a meal type.

    Raises:
        ValueError: If the meal type is not lunch or dinner
    """
    normalized = (meal_type or "").strip().lower()
    if normalized not in MealType.ALL:
        raise ValueError(f"Invalid meal type '{meal_type}'. Must be one of: {', '.join(MealType.ALL)}")
    return normalized


def validate_preference(preference: str) -> str:
    """
    Raises:
        ValueError: If the preference is not veg or non-veg
    """
    normalized = (preference or "").strip().lower()
    if normalized not in MealPreference.ALL:
        raise ValueError('Invalid meal preference. Must be "veg" or "non-veg"')
    return normalized


def sanitize_remarks(remarks: str | None, max_length: int = Limits.MAX_SPECIAL_REMARKS_LENGTH) -> str:
    """
    Trim special-request remarks and strip control characters.
    """
    if not remarks:
        return ""

    remarks = remarks.strip()
    remarks = re.sub(r"[\x00-\x1f\x7f-\x9f]", "", remarks)
    return remarks[:max_length]


def parse_time_of_day(value: str | time | None) -> time | None:
    """
    Parse "HH:MM" or "HH:MM:SS" into a time. None/empty stays None.

    Raises:
        ValueError: If the string is not a valid time of day
    """
    if value is None or isinstance(value, time):
        return value

    value = value.strip()
    if not value:
        return None

    match = _TIME_PATTERN.match(value)
    if not match:
        raise ValueError(f"Invalid time of day '{value}'")
    hours, minutes = int(match.group(1)), int(match.group(2))
    if hours > 23 or minutes > 59:
        raise ValueError(f"Invalid time of day '{value}'")
    return time(hours, minutes)


def minutes_since_midnight(value: time) -> int:
    """Minute-resolution position of a time of day."""
    return value.hour * 60 + value.minute
