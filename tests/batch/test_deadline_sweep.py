"""
Tests for the purchase-deadline sweep end to end: candidate query,
transaction-per-item execution, publication of committed events, and
idempotent re-runs.

Uses in-memory SQLite; the clock starts Monday 2024-01-01 and campaigns buy
on Tuesdays, so accepted sessions are due 2024-01-02.
"""

from datetime import datetime, timezone
from uuid import UUID

import pytest
from sqlalchemy.orm import Session

from trialflow_batch.domain.types import SweepItem, SweepItemStatus
from trialflow_batch.services.executor import SweepExecutor
from trialflow_batch.tasks.base import SweepTaskResult, TaskRegistry
from trialflow_batch.tasks.deadline_tasks import ExpiredPurchaseDeadlineTask
from trialflow_kernel.db.engine import session_scope
from trialflow_kernel.domain.dtos import Actor, PurchaseProof
from trialflow_kernel.domain.values import SessionStatus
from trialflow_kernel.exceptions import AccessDeniedError
from trialflow_kernel.selectors.session_selector import SessionSelector
from trialflow_kernel.services.slot_ledger import SlotLedger

TASK = "sessions.expire_purchase_deadlines"
WEDNESDAY = datetime(2024, 1, 3, 0, 30, tzinfo=timezone.utc)


@pytest.fixture
def campaign_id(seed, make_campaign):
    return seed(lambda s: make_campaign(s, total_slots=5).id)


@pytest.fixture
def accepted(orchestrator, campaign_id, owner):
    """Three testers accepted for Tuesday 2024-01-02."""
    ids = []
    for n in range(3):
        sid = orchestrator.apply(campaign_id, Actor.tester(f"tester-{n}")).id
        orchestrator.accept(sid, owner)
        ids.append(sid)
    return ids


@pytest.fixture
def sweep(session_factory, clock, orchestrator):
    registry = TaskRegistry()
    registry.register(ExpiredPurchaseDeadlineTask(orchestrator.build_engine))
    return SweepExecutor(session_factory, registry, clock=clock, publish=orchestrator.publish)


def available(session_factory, campaign_id: UUID) -> int:
    with session_scope(session_factory) as s:
        return SlotLedger(s).available(campaign_id)


class TestExpiredPurchaseDeadlineSweep:
    def test_nothing_due_on_the_purchase_day(self, sweep, clock, accepted):
        clock.set_time(datetime(2024, 1, 2, 23, 59, tzinfo=timezone.utc))

        result = sweep.run(TASK)

        assert result.checked == 0
        assert result.is_clean

    def test_expires_every_missed_session(
        self, sweep, clock, accepted, orchestrator, campaign_id, session_factory, sink
    ):
        assert available(session_factory, campaign_id) == 2
        clock.set_time(WEDNESDAY)

        result = sweep.run(TASK)

        assert (result.checked, result.succeeded, result.skipped, result.failed) == (3, 3, 0, 0)
        for sid in accepted:
            info = orchestrator.get_session(sid)
            assert info.status == SessionStatus.CANCELLED
            assert info.cancellation_reason == (
                "Purchase deadline expired (scheduled for 2024-01-02)"
            )
        assert available(session_factory, campaign_id) == 5
        assert sink.types().count("DEADLINE_EXPIRED") == 3
        assert result.item_results[0].result_data["scheduled_purchase_date"] == "2024-01-02"

    def test_second_run_finds_nothing(self, sweep, clock, accepted, session_factory, campaign_id):
        clock.set_time(WEDNESDAY)
        sweep.run(TASK)

        again = sweep.run(TASK)

        assert again.checked == 0
        assert available(session_factory, campaign_id) == 5

    def test_purchased_sessions_are_left_alone(
        self, sweep, clock, accepted, orchestrator, campaign_id, session_factory
    ):
        buyer = accepted[0]
        orchestrator.validate_price(buyer, Actor.tester("tester-0"), "20.00")
        clock.set_time(datetime(2024, 1, 2, 10, 0, tzinfo=timezone.utc))
        orchestrator.submit_purchase(
            buyer, Actor.tester("tester-0"), PurchaseProof(order_number="ORD-1")
        )
        clock.set_time(WEDNESDAY)

        result = sweep.run(TASK)

        assert result.succeeded == 2
        assert orchestrator.get_session(buyer).status == SessionStatus.PURCHASE_SUBMITTED
        assert available(session_factory, campaign_id) == 4

    def test_pending_sessions_never_expire(self, sweep, clock, orchestrator, campaign_id):
        sid = orchestrator.apply(campaign_id, Actor.tester("waiting")).id
        clock.set_time(datetime(2024, 2, 1, tzinfo=timezone.utc))

        assert sweep.run(TASK).checked == 0
        assert orchestrator.get_session(sid).status == SessionStatus.PENDING

    def test_batch_limit(self, session_factory, clock, orchestrator, accepted):
        registry = TaskRegistry()
        registry.register(ExpiredPurchaseDeadlineTask(orchestrator.build_engine, batch_limit=2))
        executor = SweepExecutor(session_factory, registry, clock=clock)
        clock.set_time(WEDNESDAY)

        assert executor.run(TASK).succeeded == 2
        assert executor.run(TASK).succeeded == 1

    def test_unknown_task_type(self, sweep):
        with pytest.raises(KeyError):
            sweep.run("sessions.unknown")

    def test_logs_sweep_lifecycle(self, sweep, clock, accepted, captured_logs):
        clock.set_time(WEDNESDAY)
        sweep.run(TASK)

        records = captured_logs()
        started = next(r for r in records if r["message"] == "sweep_started")
        completed = next(r for r in records if r["message"] == "sweep_completed")
        assert started["candidate_count"] == 3
        assert completed["succeeded"] == 3
        assert started["correlation_id"] == completed["correlation_id"]


class TestCandidateQuery:
    def test_ordered_and_limited(self, session_factory, clock, accepted):
        with session_scope(session_factory) as s:
            selector = SessionSelector(s)
            due = selector.find_expired_purchase_deadlines(WEDNESDAY.date())
            first_two = selector.find_expired_purchase_deadlines(WEDNESDAY.date(), limit=2)
            today = selector.find_expired_purchase_deadlines(datetime(2024, 1, 2).date())

        assert sorted(due) == sorted(accepted)
        assert first_two == due[:2]
        assert today == []


# =============================================================================
# Item isolation
# =============================================================================


class FlakyExpiryTask:
    """Wraps the real task and fails on one chosen item."""

    def __init__(self, inner: ExpiredPurchaseDeadlineTask, poisoned: str):
        self._inner = inner
        self._poisoned = poisoned

    @property
    def task_type(self) -> str:
        return self._inner.task_type

    @property
    def description(self) -> str:
        return self._inner.description

    def prepare_items(self, session: Session, as_of: datetime) -> tuple[SweepItem, ...]:
        return self._inner.prepare_items(session, as_of)

    def execute_item(self, item: SweepItem, session: Session, as_of: datetime) -> SweepTaskResult:
        result = self._inner.execute_item(item, session, as_of)
        if item.item_key == self._poisoned:
            raise RuntimeError("disk full")
        return result


class TestItemIsolation:
    def test_failing_item_rolls_back_only_itself(
        self, session_factory, clock, orchestrator, accepted, campaign_id, sink, captured_logs
    ):
        poisoned = str(accepted[1])
        registry = TaskRegistry()
        registry.register(
            FlakyExpiryTask(ExpiredPurchaseDeadlineTask(orchestrator.build_engine), poisoned)
        )
        executor = SweepExecutor(session_factory, registry, clock=clock, publish=orchestrator.publish)
        clock.set_time(WEDNESDAY)

        result = executor.run(TASK)

        assert (result.succeeded, result.failed) == (2, 1)
        assert not result.is_clean
        failed = next(r for r in result.item_results if r.status == SweepItemStatus.FAILED)
        assert failed.item_key == poisoned
        assert failed.error_code == "UNHANDLED_EXCEPTION"
        assert failed.error_message == "disk full"
        assert orchestrator.get_session(accepted[1]).status == SessionStatus.ACCEPTED
        assert available(session_factory, campaign_id) == 4
        assert sink.types().count("DEADLINE_EXPIRED") == 2
        assert any(r["message"] == "sweep_item_failed" for r in captured_logs())

    def test_next_run_retries_the_failed_item(
        self, session_factory, clock, orchestrator, accepted, sweep
    ):
        poisoned = str(accepted[0])
        registry = TaskRegistry()
        registry.register(
            FlakyExpiryTask(ExpiredPurchaseDeadlineTask(orchestrator.build_engine), poisoned)
        )
        clock.set_time(WEDNESDAY)
        SweepExecutor(session_factory, registry, clock=clock).run(TASK)

        result = sweep.run(TASK)

        assert result.checked == 1
        assert result.succeeded == 1

    def test_non_system_actor_is_refused(self, session_factory, clock, orchestrator, accepted):
        registry = TaskRegistry()
        registry.register(
            ExpiredPurchaseDeadlineTask(orchestrator.build_engine, actor=Actor.tester("tester-0"))
        )
        clock.set_time(WEDNESDAY)

        result = SweepExecutor(session_factory, registry, clock=clock).run(TASK)

        assert result.failed == 3
        assert result.item_results[0].error_code == AccessDeniedError.code
