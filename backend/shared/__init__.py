"""
Shared module for common utilities used by the meal booking service.

STRUCTURE:
- shared.infrastructure: Database and request context
  - db.py: SQLAlchemy engine/sessions, safe_commit()
  - correlation.py: Correlation ids for log lines (requests, scheduler firings)

- shared.config: Configuration
  - settings.py: Environment config (Pydantic)
  - logging.py: Structured logging
  - constants.py: MealType, RegistrationStatus, Weekday, TriggerSource

- shared.utils: Utilities
  - exceptions.py: Domain exceptions with auto-logging
  - validators.py: Meal type, preference and time-of-day validation
  - schemas.py: Shared Pydantic schemas (ServiceResult and payloads)

IMPORT EXAMPLES:
    from shared.infrastructure.db import get_db_context, safe_commit
    from shared.config.settings import settings
    from shared.config.constants import MealType, RegistrationStatus
    from shared.utils.exceptions import NotFoundError, WindowClosedError
    from shared.utils.validators import validate_meal_type
"""
