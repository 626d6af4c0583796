"""
Services package.

- domain/: guards, token allocation, registration lifecycle
- scheduling/: auto-registration batch and the schedule registry
- meal_service: MealService, the facade the request layer calls

Usage:
    from meal_booking.services.meal_service import MealService

    result = MealService(db).get_queue(tenant_id=1, meal_type="lunch")
"""
