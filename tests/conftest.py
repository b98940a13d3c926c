"""
Pytest fixtures for the trialflow test suite.

Provides:
- An in-memory SQLite database per test (StaticPool, one shared connection)
- A DeterministicClock pinned to Monday 2024-01-01 12:00 UTC
- Builders for campaigns, distributions, procedures and steps
- Fake collaborators (eligibility, payout, notifications)
- Captured structured logs as parsed JSON dicts
"""

import json
import logging
from collections.abc import Callable
from datetime import date, datetime, timezone
from decimal import Decimal
from io import StringIO
from uuid import UUID

import pytest
from sqlalchemy.orm import Session, sessionmaker

from trialflow_kernel.db.engine import (
    create_tables,
    drop_tables,
    get_session_factory,
    init_engine_from_url,
    reset_engine,
    session_scope,
)
from trialflow_kernel.domain.clock import DeterministicClock
from trialflow_kernel.domain.dtos import Actor, EligibilityResult
from trialflow_kernel.domain.events import SessionEvent
from trialflow_kernel.domain.values import (
    CampaignStatus,
    DistributionType,
    StepType,
)
from trialflow_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from trialflow_kernel.models.campaign import Campaign, Distribution
from trialflow_kernel.models.procedure import Procedure, Step
from trialflow_kernel.services.session_lifecycle import SessionLifecycleEngine
from trialflow_services.session_orchestrator import SessionOrchestrator

OWNER_ID = "owner-1"
ADMIN_ID = "admin-1"

# Monday 2024-01-01 12:00 UTC; weekday index 1 (Sunday = 0)
START = datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)
TUESDAY = 2


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    reset_logging()
    configure_logging(level=logging.DEBUG)
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture trialflow logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, engine):
            engine.accept(...)
            assert any(r["message"] == "session_transition" for r in captured_logs())
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("trialflow")
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)


# =============================================================================
# Database
# =============================================================================


@pytest.fixture
def session_factory() -> sessionmaker[Session]:
    init_engine_from_url("sqlite://")
    create_tables()
    yield get_session_factory()
    drop_tables()
    reset_engine()


@pytest.fixture
def session(session_factory) -> Session:
    """A single session for flush-only service tests; never committed."""
    s = session_factory()
    yield s
    s.rollback()
    s.close()


@pytest.fixture
def clock() -> DeterministicClock:
    return DeterministicClock(START)


# =============================================================================
# Actors
# =============================================================================


@pytest.fixture
def owner() -> Actor:
    return Actor.owner(OWNER_ID)


@pytest.fixture
def admin() -> Actor:
    return Actor.admin(ADMIN_ID)


@pytest.fixture
def tester() -> Actor:
    return Actor.tester("tester-1")


# =============================================================================
# Builders
# =============================================================================


def _campaign(
    session: Session,
    *,
    total_slots: int = 5,
    available_slots: int | None = None,
    status: CampaignStatus = CampaignStatus.ACTIVE,
    auto_accept: bool = False,
    expected_price: Decimal = Decimal("20.00"),
    price_range_min: Decimal | None = None,
    price_range_max: Decimal | None = None,
    reward_amount: Decimal = Decimal("10.00"),
    ends_on: date | None = None,
    weekdays: tuple[int, ...] = (TUESDAY,),
    max_units: int = 10,
    specific_dates: tuple[date, ...] = (),
    title: str = "Blender trial",
) -> Campaign:
    campaign = Campaign(
        owner_id=OWNER_ID,
        title=title,
        status=status,
        total_slots=total_slots,
        available_slots=total_slots if available_slots is None else available_slots,
        auto_accept_applications=auto_accept,
        expected_price=expected_price,
        price_range_min=price_range_min,
        price_range_max=price_range_max,
        reward_amount=reward_amount,
        ends_on=ends_on,
        currency="EUR",
    )
    session.add(campaign)
    session.flush()
    position = 0
    for weekday in weekdays:
        session.add(
            Distribution(
                campaign_id=campaign.id,
                distribution_type=DistributionType.RECURRING,
                day_of_week=weekday,
                max_units=max_units,
                is_active=True,
                position=position,
            )
        )
        position += 1
    for day in specific_dates:
        session.add(
            Distribution(
                campaign_id=campaign.id,
                distribution_type=DistributionType.SPECIFIC_DATE,
                specific_date=day,
                max_units=max_units,
                is_active=True,
                position=position,
            )
        )
        position += 1
    session.flush()
    return campaign


def _procedure(
    session: Session,
    campaign_id: UUID,
    steps: list[tuple[StepType, bool]],
    *,
    position: int = 0,
    is_required: bool = True,
    title: str = "Unboxing",
) -> list[Step]:
    """Add a procedure; ``steps`` is (type, required) in declared order."""
    procedure = Procedure(
        campaign_id=campaign_id,
        title=title,
        position=position,
        is_required=is_required,
    )
    session.add(procedure)
    session.flush()
    created = []
    for index, (step_type, required) in enumerate(steps):
        step = Step(
            procedure_id=procedure.id,
            title=f"{title} step {index + 1}",
            step_type=step_type,
            position=index,
            is_required=required,
        )
        session.add(step)
        created.append(step)
    session.flush()
    return created


@pytest.fixture
def make_campaign() -> Callable[..., Campaign]:
    """Flush a campaign (and its distributions) into the given session."""
    return _campaign


@pytest.fixture
def make_procedure() -> Callable[..., list[Step]]:
    return _procedure


@pytest.fixture
def seed(session_factory):
    """
    Commit fixtures through a scope of their own; returns plain ids.

    Usage::

        campaign_id = seed(lambda s: make_campaign(s, total_slots=1).id)
    """

    def _seed(build: Callable[[Session], object]):
        with session_scope(session_factory) as s:
            return build(s)

    return _seed


# =============================================================================
# Fake collaborators
# =============================================================================


class StaticEligibility:
    def __init__(self, rejected: dict[str, tuple[str, ...]] | None = None):
        self.rejected = rejected or {}
        self.calls: list[tuple[UUID, str]] = []

    def check(self, campaign_id: UUID, tester_id: str) -> EligibilityResult:
        self.calls.append((campaign_id, tester_id))
        reasons = self.rejected.get(tester_id)
        if reasons:
            return EligibilityResult(eligible=False, reasons=reasons)
        return EligibilityResult(eligible=True)


class RecordingSink:
    def __init__(self, fail: bool = False):
        self.events: list[SessionEvent] = []
        self.fail = fail

    def publish(self, event: SessionEvent) -> None:
        if self.fail:
            raise ConnectionError("notification service unavailable")
        self.events.append(event)

    def types(self) -> list[str]:
        return [e.event_type.value for e in self.events]


class FakeDirectory:
    def __init__(self, destinations: dict[str, str] | None = None):
        self.destinations = destinations or {}

    def destination_for(self, tester_id: str) -> str | None:
        return self.destinations.get(tester_id)


class FakeGateway:
    def __init__(self, fail_with: Exception | None = None):
        self.fail_with = fail_with
        self.transfers: list[tuple[str, Decimal, str, UUID]] = []

    def transfer(self, destination: str, amount: Decimal, memo: str, session_id: UUID) -> str:
        if self.fail_with is not None:
            raise self.fail_with
        self.transfers.append((destination, amount, memo, session_id))
        return f"tr_{len(self.transfers)}"


@pytest.fixture
def eligibility() -> StaticEligibility:
    return StaticEligibility()


@pytest.fixture
def sink() -> RecordingSink:
    return RecordingSink()


@pytest.fixture
def engine(session, clock, eligibility) -> SessionLifecycleEngine:
    return SessionLifecycleEngine(session, clock, eligibility=eligibility)


@pytest.fixture
def orchestrator(session_factory, clock, eligibility, sink) -> SessionOrchestrator:
    return SessionOrchestrator(
        session_factory,
        clock=clock,
        eligibility=eligibility,
        notifications=sink,
    )
