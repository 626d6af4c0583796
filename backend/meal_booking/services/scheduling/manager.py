"""
SchedulerManager: registry of running auto-registration schedules.

Owns one asyncio task per TriggerSpec (keyed by spec.key). Each task
sleeps until its next firing and runs the batch in a worker thread, so the
event loop never blocks on the database.

Lifecycle:
- start(): load the trigger set from configuration and start every job
- reload(): stop all jobs, recompute, start again. Firings already running
  are shielded and finish under the configuration they started with.
- stop(): stop all jobs and ask running firings to abandon their remaining
  students after the current one.
"""

from __future__ import annotations

import asyncio
import threading
from datetime import datetime
from typing import Any, Callable

from sqlalchemy.orm import Session

from meal_booking.services.domain.windows import Clock, meal_clock
from meal_booking.services.scheduling.auto_registration import AutoRegistrationScheduler
from meal_booking.services.scheduling.triggers import TriggerSpec, load_trigger_specs
from shared.config.constants import TriggerSource
from shared.config.logging import get_logger
from shared.infrastructure.correlation import correlation_scope, new_run_id
from shared.infrastructure.db import SessionLocal
from shared.utils.exceptions import MealError
from shared.utils.schemas import BatchResult

logger = get_logger("meal_booking.scheduler")

# Sleep slices never exceed this, so a fixed or adjusted clock is re-read
MAX_SLEEP_SECONDS = 60.0


class SchedulerManager:
    def __init__(
        self,
        session_factory: Callable[[], Session] = SessionLocal,
        clock: Clock = meal_clock,
    ):
        self._session_factory = session_factory
        self._clock = clock
        self._specs: dict[str, TriggerSpec] = {}
        self._jobs: dict[str, asyncio.Task] = {}
        self._next_runs: dict[str, datetime] = {}
        self._in_flight: set[asyncio.Future] = set()
        self._stop_event = threading.Event()
        self._initialized = False

    @property
    def is_initialized(self) -> bool:
        return self._initialized

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def start(self) -> None:
        """Start one job per enabled (tenant, weekday, meal type)."""
        if self._initialized:
            logger.warning("Meal scheduler already initialized")
            return

        self._stop_event = threading.Event()
        specs = await asyncio.to_thread(self._load_specs)
        for spec in specs:
            self._start_job(spec)
        self._initialized = True
        logger.info("Meal scheduler started", total_jobs=len(self._jobs))

    async def stop(self) -> None:
        """Stop all jobs; running firings stop after their current student."""
        self._stop_event.set()
        await self._stop_jobs()
        if self._in_flight:
            await asyncio.gather(*list(self._in_flight), return_exceptions=True)
        self._initialized = False
        logger.info("Meal scheduler stopped")

    async def reload(self) -> None:
        """Stop-all / recompute / start-all from current configuration."""
        await self._stop_jobs()
        # After stop() the old event stays set; in-flight firings keep theirs
        if self._stop_event.is_set():
            self._stop_event = threading.Event()
        specs = await asyncio.to_thread(self._load_specs)
        for spec in specs:
            self._start_job(spec)
        self._initialized = True
        logger.info(
            "Meal scheduler reloaded",
            total_jobs=len(self._jobs),
            in_flight=len(self._in_flight),
        )

    async def run_now(self, key: str) -> BatchResult | None:
        """Fire one registered job immediately (operator re-trigger)."""
        spec = self._specs.get(key)
        if spec is None:
            raise KeyError(key)
        return await self._fire(spec)

    def get_jobs_status(self) -> dict[str, Any]:
        jobs = []
        for key, spec in self._specs.items():
            next_run = self._next_runs.get(key)
            jobs.append({
                **spec.as_dict(),
                "next_run": next_run.isoformat() if next_run else None,
            })
        return {
            "initialized": self._initialized,
            "total_jobs": len(self._jobs),
            "jobs": jobs,
        }

    # =========================================================================
    # Jobs
    # =========================================================================

    def _load_specs(self) -> list[TriggerSpec]:
        db = self._session_factory()
        try:
            return load_trigger_specs(db)
        finally:
            db.close()

    def _start_job(self, spec: TriggerSpec) -> None:
        self._specs[spec.key] = spec
        self._next_runs[spec.key] = spec.next_fire_after(self._clock())
        self._jobs[spec.key] = asyncio.create_task(self._run_job(spec), name=spec.key)
        logger.debug("Scheduled auto-registration", **spec.as_dict())

    async def _stop_jobs(self) -> None:
        tasks = list(self._jobs.values())
        for task in tasks:
            task.cancel()
        for task in tasks:
            try:
                await task
            except asyncio.CancelledError:
                pass
        self._jobs.clear()
        self._specs.clear()
        self._next_runs.clear()

    async def _run_job(self, spec: TriggerSpec) -> None:
        """Sleep until the next firing, fire, repeat."""
        while True:
            next_run = spec.next_fire_after(self._clock())
            self._next_runs[spec.key] = next_run

            remaining = (next_run - self._clock()).total_seconds()
            while remaining > 0:
                await asyncio.sleep(min(remaining, MAX_SLEEP_SECONDS))
                remaining = (next_run - self._clock()).total_seconds()

            try:
                await self._fire(spec)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error("Auto-registration firing failed", key=spec.key, error=str(e))

    async def _fire(self, spec: TriggerSpec) -> BatchResult | None:
        future = asyncio.ensure_future(
            asyncio.to_thread(self._run_firing, spec, self._stop_event)
        )
        self._in_flight.add(future)
        future.add_done_callback(self._in_flight.discard)
        # Cancelling the job (reload/stop) must not cut a firing short
        return await asyncio.shield(future)

    def _run_firing(self, spec: TriggerSpec, stop_event: threading.Event) -> BatchResult | None:
        """Worker-thread body of one firing."""
        triggered_by = TriggerSource.for_cron(spec.meal_type)
        with correlation_scope(new_run_id(spec.key)):
            logger.info("Triggering auto-registration", key=spec.key, tenant_id=spec.tenant_id)
            db = self._session_factory()
            try:
                return AutoRegistrationScheduler(db, clock=self._clock).run(
                    spec.tenant_id,
                    spec.meal_type,
                    triggered_by=triggered_by,
                    stop_event=stop_event,
                )
            except MealError as e:
                logger.warning("Auto-registration firing rejected", key=spec.key, reason=e.detail)
                return None
            finally:
                db.close()


# Singleton instance
_manager: SchedulerManager | None = None


def get_scheduler_manager() -> SchedulerManager:
    """Get the process-wide scheduler manager."""
    global _manager
    if _manager is None:
        _manager = SchedulerManager()
    return _manager


async def start_scheduler() -> None:
    """Start the scheduler (call in FastAPI lifespan startup)."""
    await get_scheduler_manager().start()


async def stop_scheduler() -> None:
    """Stop the scheduler (call in FastAPI lifespan shutdown)."""
    await get_scheduler_manager().stop()
