"""
SQLAlchemy ORM Models Package.

- base: Base class and AuditMixin
- directory: Tenant, Student (read-only here)
- meal: MealWindowSetting, MealRegistration, MealTokenCounter
"""

# Base classes
from .base import Base, AuditMixin

# Directory (administered elsewhere)
from .directory import Tenant, Student

# Meal booking
from .meal import MealWindowSetting, MealRegistration, MealTokenCounter

__all__ = [
    "Base",
    "AuditMixin",
    "Tenant",
    "Student",
    "MealWindowSetting",
    "MealRegistration",
    "MealTokenCounter",
]
