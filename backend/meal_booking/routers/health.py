"""
Health check endpoints.
"""

from fastapi import APIRouter, Depends

from meal_booking.services.scheduling.manager import SchedulerManager, get_scheduler_manager
from shared.config.settings import settings


router = APIRouter(prefix="/api", tags=["health"])


@router.get("/health")
def health_check():
    """
    Basic health check endpoint.
    Returns service status without checking dependencies.
    """
    return {
        "status": "healthy",
        "service": "meal-booking",
        "environment": settings.environment,
    }


@router.get("/health/scheduler")
def scheduler_health(manager: SchedulerManager = Depends(get_scheduler_manager)):
    """
    Auto-registration schedules currently registered, with their next run.
    """
    return {
        "service": "meal-booking",
        "scheduler_enabled": settings.scheduler_enabled,
        **manager.get_jobs_status(),
    }
