"""
Session events and settlement instructions.

Responsibility:
    The side effects a lifecycle operation owes the outside world, captured
    as values while the transaction is open and dispatched only after it
    commits.

Architecture position:
    Kernel > Domain -- pure value objects, zero I/O.

Invariants enforced:
    - An event or instruction exists only for a transition that was actually
      applied; the orchestrator drops them if the transaction rolls back.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID

from trialflow_kernel.domain.values import SettlementKind


class SessionEventType(str, Enum):
    SESSION_APPLIED = "SESSION_APPLIED"
    SESSION_ACCEPTED = "SESSION_ACCEPTED"
    SESSION_REJECTED = "SESSION_REJECTED"
    STEP_COMPLETED = "STEP_COMPLETED"
    PROCEDURES_COMPLETED = "PROCEDURES_COMPLETED"
    PRICE_VALIDATED = "PRICE_VALIDATED"
    PURCHASE_SUBMITTED = "PURCHASE_SUBMITTED"
    PURCHASE_VALIDATED = "PURCHASE_VALIDATED"
    PURCHASE_REJECTED = "PURCHASE_REJECTED"
    TEST_SUBMITTED = "TEST_SUBMITTED"
    TEST_VALIDATED = "TEST_VALIDATED"
    UGC_REQUESTED = "UGC_REQUESTED"
    UGC_SUBMITTED = "UGC_SUBMITTED"
    UGC_DECLINED = "UGC_DECLINED"
    UGC_VALIDATED = "UGC_VALIDATED"
    UGC_REJECTED = "UGC_REJECTED"
    SESSION_CLOSED = "SESSION_CLOSED"
    TESTER_RATED = "TESTER_RATED"
    SESSION_CANCELLED = "SESSION_CANCELLED"
    DEADLINE_EXPIRED = "DEADLINE_EXPIRED"
    DISPUTE_CREATED = "DISPUTE_CREATED"
    DISPUTE_RESOLVED = "DISPUTE_RESOLVED"
    PAYMENT_RECEIVED = "PAYMENT_RECEIVED"
    SETTLEMENT_FAILED = "SETTLEMENT_FAILED"


@dataclass(frozen=True)
class SessionEvent:
    """A fire-and-forget notification about one session."""

    event_type: SessionEventType
    session_id: UUID
    campaign_id: UUID
    tester_id: str
    occurred_at: datetime
    actor_id: str | None = None
    data: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class SettlementInstruction:
    """
    Money owed to a tester because of a committed transition.

    ``record_id`` points at the PENDING SettlementRecord written in the same
    transaction, so the orchestrator can mark it SETTLED or FAILED.
    """

    record_id: UUID
    session_id: UUID
    campaign_id: UUID
    tester_id: str
    kind: SettlementKind
    amount: Decimal
    memo: str
