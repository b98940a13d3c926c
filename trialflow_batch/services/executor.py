"""
SweepExecutor -- transaction-per-item sweep execution.

Contract:
    ``run(task_type)`` finds the task's candidates, processes each in its
    own transaction, publishes the committed items' events, and returns a
    SweepRunResult.

Invariants enforced:
    - One failing item rolls back only itself; it is logged with
      ``exc_info`` and left for the next run.
    - Events are published only for items whose transaction committed.
    - All timestamps from the injected Clock.
"""

from __future__ import annotations

import time
from collections.abc import Callable, Sequence
from uuid import uuid4

from sqlalchemy.orm import Session, sessionmaker

from trialflow_batch.domain.types import (
    SweepItem,
    SweepItemResult,
    SweepItemStatus,
    SweepRunResult,
)
from trialflow_batch.tasks.base import SweepTask, TaskRegistry
from trialflow_kernel.db.engine import session_scope
from trialflow_kernel.domain.clock import Clock, SystemClock
from trialflow_kernel.domain.events import SessionEvent
from trialflow_kernel.logging_config import LogContext, get_logger

logger = get_logger("batch.executor")


class SweepExecutor:
    """Runs registered sweep tasks.

    Non-goals:
        - Does NOT manage background threads -- that is SweepScheduler's job.
        - Does NOT retry failed items within a run.
    """

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        task_registry: TaskRegistry,
        clock: Clock | None = None,
        publish: Callable[[Sequence[SessionEvent]], None] | None = None,
    ):
        self._session_factory = session_factory
        self._task_registry = task_registry
        self._clock = clock or SystemClock()
        self._publish = publish

    def run(self, task_type: str) -> SweepRunResult:
        """
        Execute one sweep.

        Raises:
            KeyError: task_type is not registered.
        """
        task = self._task_registry.get(task_type)
        correlation_id = str(uuid4())
        start_time = time.monotonic()
        started_at = self._clock.now_utc()

        with LogContext.bind(correlation_id=correlation_id):
            with session_scope(self._session_factory) as session:
                items = task.prepare_items(session, started_at)

            logger.info(
                "sweep_started",
                extra={"task_type": task_type, "candidate_count": len(items)},
            )

            results = [self._execute(task, item, started_at) for item in items]

            run = SweepRunResult.tally(
                task_type,
                results,
                started_at=started_at,
                completed_at=self._clock.now_utc(),
                duration_ms=int((time.monotonic() - start_time) * 1000),
                correlation_id=correlation_id,
            )
            if self._publish is not None and run.events:
                self._publish(run.events)

            logger.info(
                "sweep_completed",
                extra={
                    "task_type": task_type,
                    "checked": run.checked,
                    "succeeded": run.succeeded,
                    "skipped": run.skipped,
                    "failed": run.failed,
                    "duration_ms": run.duration_ms,
                },
            )
            return run

    def _execute(self, task: SweepTask, item: SweepItem, as_of) -> SweepItemResult:
        item_start = time.monotonic()
        try:
            with session_scope(self._session_factory) as session:
                outcome = task.execute_item(item, session, as_of)
        except Exception as exc:
            logger.exception(
                "sweep_item_failed",
                extra={"task_type": task.task_type, "item_key": item.item_key},
            )
            return SweepItemResult(
                item_index=item.item_index,
                item_key=item.item_key,
                status=SweepItemStatus.FAILED,
                error_code=getattr(exc, "code", "UNHANDLED_EXCEPTION"),
                error_message=str(exc),
                duration_ms=int((time.monotonic() - item_start) * 1000),
            )

        return SweepItemResult(
            item_index=item.item_index,
            item_key=item.item_key,
            status=outcome.status,
            error_code=outcome.error_code,
            error_message=outcome.error_message,
            result_data=outcome.result_data,
            events=outcome.events,
            duration_ms=int((time.monotonic() - item_start) * 1000),
        )
