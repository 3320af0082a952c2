"""
Heartbeat - cooperative scheduler for recurring maintenance jobs.

Drives automatic backups and session capture sweeps from a single asyncio
event loop. Jobs are plain callables (or coroutine functions); a failing job
is logged and keeps its schedule.
"""

import asyncio
import inspect
import time
from typing import Any, Callable, Dict, List, Optional

from ..util.logging import logger


class Heartbeat:
    """
    Registry of named recurring jobs.

    Jobs can be scheduled before or after ``start()``; scheduling a name that
    already exists replaces it and cancels its pending timer.
    """

    def __init__(self):
        self._jobs: Dict[str, Dict[str, Any]] = {}  # name -> {func, interval, initial_delay, ...}
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._running = False
        self._started_at: Optional[float] = None

    @property
    def running(self) -> bool:
        return self._running

    def schedule(self, name: str, interval_sec: float, func: Callable, initial_delay_sec: float = 0.0):
        """
        Register a job to be executed periodically.

        Args:
            name: Unique job identifier
            interval_sec: Seconds between runs
            func: Callable or coroutine function taking no arguments
            initial_delay_sec: Seconds before the first run
        """
        if not callable(func):
            raise ValueError(f"Task function must be callable: {func}")

        if interval_sec <= 0:
            raise ValueError(f"Interval must be > 0 seconds: {interval_sec}")

        if initial_delay_sec < 0:
            raise ValueError(f"Initial delay must be >= 0 seconds: {initial_delay_sec}")

        self.cancel(name)

        job = {
            "func": func,
            "interval": interval_sec,
            "initial_delay": initial_delay_sec,
            "last_run": None,
            "runs": 0,
            "failures": 0,
            "last_error": None,
            "task": None,
        }
        self._jobs[name] = job

        if self._running:
            self._launch(name, job)

        logger.info(f"Registered heartbeat task '{name}' (every {interval_sec}s, first run in {initial_delay_sec}s)")

    def cancel(self, name: str) -> bool:
        """Remove a job and cancel its timer. False when no such job."""
        job = self._jobs.pop(name, None)
        if job is None:
            return False

        task = job.get("task")
        if task is not None and not task.done():
            task.cancel()

        logger.info(f"Unregistered heartbeat task '{name}'")
        return True

    def list_tasks(self) -> List[str]:
        """Return list of registered task names."""
        return list(self._jobs.keys())

    def is_scheduled(self, name: str) -> bool:
        return name in self._jobs

    def start(self):
        """
        Start every registered job on the running event loop.

        Raises:
            RuntimeError: If already running or called outside an event loop
        """
        if self._running:
            raise RuntimeError("Heartbeat already running")

        self._loop = asyncio.get_running_loop()
        self._running = True
        self._started_at = time.monotonic()

        for name, job in self._jobs.items():
            self._launch(name, job)

        logger.log_operation("heartbeat.start", "success", {"tasks": self.list_tasks()})

    async def stop(self):
        """Cancel every job and wait for the timers to unwind."""
        if not self._running:
            return

        self._running = False
        tasks = [job["task"] for job in self._jobs.values() if job["task"] is not None]
        for task in tasks:
            task.cancel()

        await asyncio.gather(*tasks, return_exceptions=True)

        for job in self._jobs.values():
            job["task"] = None

        logger.log_operation("heartbeat.stop", "success", {"tasks": self.list_tasks()})

    def _launch(self, name: str, job: Dict[str, Any]):
        job["task"] = self._loop.create_task(self._run_job(name, job), name=f"heartbeat:{name}")

    async def _run_job(self, name: str, job: Dict[str, Any]):
        if job["initial_delay"] > 0:
            await asyncio.sleep(job["initial_delay"])

        while True:
            await self.run_task(name, job)
            await asyncio.sleep(job["interval"])

    async def run_task(self, name: str, job: Dict[str, Any]) -> bool:
        """Execute a job once and record timing. Failures are logged, not raised."""
        start_time = time.monotonic()

        try:
            result = job["func"]()
            if inspect.isawaitable(result):
                await result
        except Exception as e:
            end_time = time.monotonic()
            job["last_run"] = time.time()
            job["runs"] += 1
            job["failures"] += 1
            job["last_error"] = str(e)
            logger.log_heartbeat_task(name, start_time, end_time, status="failed", details={"error": str(e)})
            return False

        job["last_run"] = time.time()
        job["runs"] += 1
        logger.log_heartbeat_task(name, start_time, time.monotonic())
        return True

    def get_status(self) -> Dict[str, Any]:
        """Return current heartbeat status for monitoring."""
        return {
            "status": "running" if self._running else "stopped",
            "tasks": {
                name: {
                    "interval_sec": job["interval"],
                    "initial_delay_sec": job["initial_delay"],
                    "last_run": job["last_run"],
                    "runs": job["runs"],
                    "failures": job["failures"],
                    "last_error": job["last_error"],
                }
                for name, job in self._jobs.items()
            },
            "uptime_sec": time.monotonic() - self._started_at if self._running else 0.0,
        }
