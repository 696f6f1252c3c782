"""
Cycle scheduler for the controller's periodic tasks.

Design Principles:
- One asyncio event loop, no worker threads (Pi-friendly)
- Fixed-rate interval jobs; a late tick is not caught up
- Single in-flight run per job: a tick arriving while the previous run is
  still going is skipped and counted
- A failing run is logged and counted; it never stops its job or others

Usage:
    scheduler = CycleScheduler()
    scheduler.schedule_interval("irrigation", controller.run_irrigation_cycle, 7200, run_immediately=True)
    scheduler.start()
    ...
    await scheduler.stop()
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Any

from gardenrig.enums.irrigation import CycleKind
from gardenrig.utils.time import utc_now

logger = logging.getLogger(__name__)

JobFunc = Callable[[], Awaitable[Any]]


class JobStatus(Enum):
    """Status of a scheduled job."""

    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


@dataclass
class ScheduledJob:
    """A periodic job and its execution tracking."""

    job_id: str
    func: JobFunc
    interval_seconds: float
    kind: CycleKind | None = None
    run_immediately: bool = False
    enabled: bool = True
    status: JobStatus = JobStatus.PENDING

    # Execution tracking
    next_run: datetime | None = None
    last_run: datetime | None = None
    last_duration: float | None = None
    run_count: int = 0
    success_count: int = 0
    failure_count: int = 0
    skipped_count: int = 0
    last_error: str | None = None

    _task: asyncio.Task | None = field(default=None, repr=False)

    @property
    def in_flight(self) -> bool:
        return self._task is not None and not self._task.done()

    def to_dict(self) -> dict[str, Any]:
        return {
            "job_id": self.job_id,
            "kind": self.kind.value if self.kind else None,
            "interval_seconds": self.interval_seconds,
            "enabled": self.enabled,
            "status": self.status.value,
            "next_run": self.next_run.isoformat() if self.next_run else None,
            "last_run": self.last_run.isoformat() if self.last_run else None,
            "last_duration": self.last_duration,
            "run_count": self.run_count,
            "success_count": self.success_count,
            "failure_count": self.failure_count,
            "skipped_count": self.skipped_count,
            "last_error": self.last_error,
        }


class CycleScheduler:
    """
    Runs interval jobs on the current event loop.

    Every job gets a driver task that sleeps until the next tick and then
    dispatches a run as its own task, so a slow run never delays the ticks of
    its own job or of any other.
    """

    def __init__(self):
        self._jobs: dict[str, ScheduledJob] = {}
        self._drivers: dict[str, asyncio.Task] = {}
        self._running = False

    def schedule_interval(
        self,
        job_id: str,
        func: JobFunc,
        interval_seconds: float,
        run_immediately: bool = False,
        kind: CycleKind | None = None,
    ) -> ScheduledJob:
        """
        Register a job running every ``interval_seconds``.

        Args:
            job_id: Unique job identifier
            func: Coroutine function called with no arguments
            interval_seconds: Tick period
            run_immediately: Run once at start, before the first tick
            kind: Controller cycle this job drives
        """
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be positive")
        if job_id in self._jobs:
            raise ValueError(f"Job already scheduled: {job_id}")

        job = ScheduledJob(
            job_id=job_id,
            func=func,
            interval_seconds=interval_seconds,
            kind=kind,
            run_immediately=run_immediately,
        )
        self._jobs[job_id] = job
        if self._running:
            self._start_driver(job)
        logger.debug("Scheduled %s every %ss", job_id, interval_seconds)
        return job

    def remove_job(self, job_id: str) -> bool:
        job = self._jobs.pop(job_id, None)
        if job is None:
            return False
        driver = self._drivers.pop(job_id, None)
        if driver is not None:
            driver.cancel()
        return True

    def enable_job(self, job_id: str, enabled: bool = True) -> bool:
        job = self._jobs.get(job_id)
        if job is None:
            return False
        job.enabled = enabled
        return True

    def get_job(self, job_id: str) -> ScheduledJob | None:
        return self._jobs.get(job_id)

    def get_jobs(self, kind: CycleKind | None = None) -> list[dict[str, Any]]:
        return [job.to_dict() for job in self._jobs.values() if kind is None or job.kind == kind]

    @property
    def is_running(self) -> bool:
        return self._running

    def start(self) -> None:
        """Start every job's driver. Must be called from the running loop."""
        if self._running:
            return
        self._running = True
        for job in self._jobs.values():
            self._start_driver(job)
        logger.info("Cycle scheduler started with %s jobs", len(self._jobs))

    async def stop(self, timeout: float = 5.0) -> None:
        """Cancel the drivers, then wait up to ``timeout`` for in-flight runs."""
        if not self._running:
            return
        self._running = False

        drivers = list(self._drivers.values())
        self._drivers.clear()
        for driver in drivers:
            driver.cancel()
        await asyncio.gather(*drivers, return_exceptions=True)

        in_flight = [job._task for job in self._jobs.values() if job.in_flight]
        if in_flight:
            _, pending = await asyncio.wait(in_flight, timeout=timeout)
            for task in pending:
                task.cancel()
            if pending:
                await asyncio.gather(*pending, return_exceptions=True)
                logger.warning("Cancelled %s runs still in flight at stop", len(pending))
        logger.info("Cycle scheduler stopped")

    async def run_now(self, job_id: str) -> bool:
        """Run a job immediately and wait for it. False if skipped or unknown."""
        job = self._jobs.get(job_id)
        if job is None:
            return False
        task = self._dispatch(job)
        if task is None:
            return False
        await asyncio.shield(task)
        return job.status == JobStatus.COMPLETED

    def get_status(self) -> dict[str, Any]:
        return {
            "running": self._running,
            "total_jobs": len(self._jobs),
            "enabled_jobs": sum(1 for j in self._jobs.values() if j.enabled),
            "in_flight": [j.job_id for j in self._jobs.values() if j.in_flight],
            "total_skipped": sum(j.skipped_count for j in self._jobs.values()),
            "total_failures": sum(j.failure_count for j in self._jobs.values()),
        }

    def _start_driver(self, job: ScheduledJob) -> None:
        self._drivers[job.job_id] = asyncio.create_task(self._drive(job), name=f"driver:{job.job_id}")

    async def _drive(self, job: ScheduledJob) -> None:
        loop = asyncio.get_running_loop()
        if job.run_immediately:
            self._dispatch(job)

        next_tick = loop.time() + job.interval_seconds
        while True:
            job.next_run = utc_now() + timedelta(seconds=max(0.0, next_tick - loop.time()))
            await asyncio.sleep(max(0.0, next_tick - loop.time()))
            self._dispatch(job)
            next_tick += job.interval_seconds
            now = loop.time()
            if next_tick <= now:
                # Loop stalled past whole ticks; drop them instead of bursting
                missed = int((now - next_tick) // job.interval_seconds) + 1
                job.skipped_count += missed
                next_tick += missed * job.interval_seconds
                logger.warning("Job %s fell %s ticks behind; not catching up", job.job_id, missed)

    def _dispatch(self, job: ScheduledJob) -> asyncio.Task | None:
        if not job.enabled:
            return None
        if job.in_flight:
            job.skipped_count += 1
            logger.warning("Job %s still running, skipping this tick (%s skipped)", job.job_id, job.skipped_count)
            return None
        job._task = asyncio.create_task(self._execute_job(job), name=f"job:{job.job_id}")
        return job._task

    async def _execute_job(self, job: ScheduledJob) -> None:
        loop = asyncio.get_running_loop()
        started = loop.time()
        job.last_run = utc_now()
        job.status = JobStatus.RUNNING
        try:
            await job.func()
        except asyncio.CancelledError:
            job.status = JobStatus.CANCELLED
            raise
        except Exception as e:
            job.run_count += 1
            job.failure_count += 1
            job.last_error = str(e)
            job.status = JobStatus.FAILED
            logger.error("Job %s failed: %s", job.job_id, e, exc_info=True)
        else:
            job.run_count += 1
            job.success_count += 1
            job.last_error = None
            job.status = JobStatus.COMPLETED
        finally:
            job.last_duration = loop.time() - started
            logger.debug("Job %s finished in %.2fs (%s)", job.job_id, job.last_duration, job.status.value)