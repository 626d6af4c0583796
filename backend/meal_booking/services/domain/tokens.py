"""
TokenAllocator: sequential serving tokens per (tenant, meal type, date).

Tokens start at 1 and only grow; gaps left by cancellations are fine,
duplicates are not. Allocation runs inside the caller's Register
transaction and is serialized on the meal_token_counter row.
"""

from datetime import date

from sqlalchemy import update
from sqlalchemy.orm import Session

from meal_booking.models import MealTokenCounter
from meal_booking.repositories.registration import MealRegistrationRepository
from shared.config.logging import get_logger

logger = get_logger(__name__)


class TokenAllocator:
    def __init__(self, db: Session):
        self._db = db
        self._registrations = MealRegistrationRepository(db)

    def next_token(self, tenant_id: int, meal_type: str, meal_date: date) -> int:
        """
        Next token for the meal. Must be called inside the transaction that
        inserts the registration; the counter row stays locked until it ends.

        The first allocation for a meal seeds the counter from the highest
        existing token. Two first allocations racing on the insert surface as
        an IntegrityError on flush, which the caller retries.
        """
        token = self._db.execute(
            update(MealTokenCounter)
            .where(
                MealTokenCounter.tenant_id == tenant_id,
                MealTokenCounter.meal_type == meal_type,
                MealTokenCounter.meal_date == meal_date,
            )
            .values(last_token=MealTokenCounter.last_token + 1)
            .returning(MealTokenCounter.last_token)
            .execution_options(synchronize_session=False)
        ).scalar_one_or_none()

        if token is not None:
            return token

        token = self._registrations.max_token(tenant_id, meal_type, meal_date) + 1
        self._db.add(
            MealTokenCounter(
                tenant_id=tenant_id,
                meal_type=meal_type,
                meal_date=meal_date,
                last_token=token,
            )
        )
        self._db.flush()
        logger.debug(
            "Token counter seeded",
            tenant_id=tenant_id,
            meal_type=meal_type,
            meal_date=meal_date.isoformat(),
            token=token,
        )
        return token
