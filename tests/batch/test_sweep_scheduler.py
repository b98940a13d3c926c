"""
Tests for SweepScheduler: tick(), background start/stop, and failure
tolerance.  The executor is a stub; sweeping itself is covered in
test_deadline_sweep.py.
"""

import threading

from trialflow_batch.domain.types import SweepRunResult
from trialflow_batch.services.scheduler import SweepScheduler


class StubExecutor:
    def __init__(self, fail_on: set[str] | None = None):
        self.calls: list[str] = []
        self.fail_on = fail_on or set()
        self.ran = threading.Event()

    def run(self, task_type: str) -> SweepRunResult:
        self.calls.append(task_type)
        self.ran.set()
        if task_type in self.fail_on:
            raise RuntimeError("database unavailable")
        return SweepRunResult(task_type=task_type, checked=0, succeeded=0, skipped=0, failed=0)


class TestTick:
    def test_runs_each_task_once(self):
        executor = StubExecutor()
        scheduler = SweepScheduler(executor, ["a", "b"])

        results = scheduler.tick()

        assert executor.calls == ["a", "b"]
        assert [r.task_type for r in results] == ["a", "b"]

    def test_failing_task_does_not_stop_the_tick(self, captured_logs):
        executor = StubExecutor(fail_on={"a"})
        scheduler = SweepScheduler(executor, ["a", "b"])

        results = scheduler.tick()

        assert executor.calls == ["a", "b"]
        assert [r.task_type for r in results] == ["b"]
        failure = next(r for r in captured_logs() if r["message"] == "sweep_run_failed")
        assert failure["task_type"] == "a"
        assert failure["exc_message"] == "database unavailable"

    def test_no_tasks(self):
        assert SweepScheduler(StubExecutor(), []).tick() == []


class TestLifecycle:
    def test_start_runs_immediately_and_stop_joins(self):
        executor = StubExecutor()
        scheduler = SweepScheduler(executor, ["a"], interval_seconds=60)

        scheduler.start()
        assert executor.ran.wait(timeout=5)
        assert scheduler.is_running

        scheduler.stop(timeout=5)
        assert not scheduler.is_running
        assert executor.calls == ["a"]

    def test_start_twice_is_harmless(self):
        executor = StubExecutor()
        scheduler = SweepScheduler(executor, ["a"], interval_seconds=60)

        scheduler.start()
        scheduler.start()
        executor.ran.wait(timeout=5)
        scheduler.stop(timeout=5)

        assert executor.calls == ["a"]

    def test_wait_returns_after_stop(self):
        scheduler = SweepScheduler(StubExecutor(), ["a"], interval_seconds=60)
        scheduler.start()

        assert scheduler.wait(timeout=0.01) is False
        scheduler.stop(timeout=5)
        assert scheduler.wait(timeout=0.01) is True

    def test_stop_without_start(self, captured_logs):
        scheduler = SweepScheduler(StubExecutor(), ["a"])
        scheduler.stop()

        assert not scheduler.is_running
        assert any(r["message"] == "scheduler_stopped" for r in captured_logs())
