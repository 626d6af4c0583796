"""
Meal booking main application.
Entry point for the FastAPI process that hosts the auto-registration scheduler.
"""

from fastapi import FastAPI

from meal_booking.core.lifespan import lifespan
from meal_booking.routers.health import router as health_router


app = FastAPI(
    title="Meal Booking Service",
    description="Meal registration, serving queue and auto-registration scheduler",
    version="0.1.0",
    lifespan=lifespan,
)

app.include_router(health_router)
