"""
Interval scheduler for sweeps.

Runs every configured task through the executor once per interval (hourly
by default) on a daemon thread.  ``stop()`` lets the task in progress
finish; a task that raises is logged and the loop keeps its rhythm.

Not a distributed scheduler.  Two processes sweeping one database only
duplicate work, since expiry re-checks each session under its row lock.
"""

from __future__ import annotations

import threading
from collections.abc import Sequence
from typing import Protocol

from trialflow_batch.domain.types import SweepRunResult
from trialflow_kernel.logging_config import get_logger

logger = get_logger("batch.scheduler")


class SweepRunner(Protocol):
    def run(self, task_type: str) -> SweepRunResult: ...


class SweepScheduler:
    def __init__(
        self,
        executor: SweepRunner,
        task_types: Sequence[str],
        interval_seconds: float = 3600,
    ):
        self._executor = executor
        self._task_types = tuple(task_types)
        self._interval = interval_seconds
        self._stopping = threading.Event()
        self._worker: threading.Thread | None = None

    def tick(self, interruptible: bool = False) -> list[SweepRunResult]:
        """One pass over every task; failed tasks are left out of the result."""
        results: list[SweepRunResult] = []
        for task_type in self._task_types:
            if interruptible and self._stopping.is_set():
                break
            try:
                results.append(self._executor.run(task_type))
            except Exception:
                logger.exception("sweep_run_failed", extra={"task_type": task_type})
        return results

    @property
    def is_running(self) -> bool:
        return self._worker is not None and self._worker.is_alive()

    def start(self) -> None:
        """Start the background loop; the first pass runs immediately."""
        if self.is_running:
            return
        self._stopping.clear()
        self._worker = threading.Thread(target=self._loop, name="trialflow-sweeper", daemon=True)
        self._worker.start()
        logger.info(
            "scheduler_started",
            extra={"interval_seconds": self._interval, "task_types": self._task_types},
        )

    def stop(self, timeout: float = 30.0) -> None:
        self._stopping.set()
        if self.is_running:
            self._worker.join(timeout=timeout)
        logger.info("scheduler_stopped")

    def wait(self, timeout: float | None = None) -> bool:
        """Block until ``stop()`` was requested; False on timeout."""
        return self._stopping.wait(timeout=timeout)

    def _loop(self) -> None:
        while not self._stopping.is_set():
            self.tick(interruptible=True)
            self._stopping.wait(timeout=self._interval)
