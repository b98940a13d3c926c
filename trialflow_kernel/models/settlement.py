"""
Settlement bookkeeping models.

SettlementRecord is the durable trace of money owed to a tester by a
committed transition (test validation reward, extra-content bonus).  It is
created PENDING in the same transaction as the transition, then marked
SETTLED or FAILED once the payout collaborator has been called after
commit.  A validated-but-unpaid session is therefore always discoverable by
querying FAILED and stale PENDING records.

WalletCredit is the internal ledger used when a tester has no external
payout destination.
"""

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import CheckConstraint, ForeignKey, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from trialflow_kernel.db.base import TrackedBase, UTCDateTime, UUIDString
from trialflow_kernel.db.types import enum_column
from trialflow_kernel.domain.values import (
    SettlementChannel,
    SettlementKind,
    SettlementStatus,
)


class SettlementRecord(TrackedBase):
    __tablename__ = "settlement_records"

    __table_args__ = (
        CheckConstraint("amount >= 0", name="ck_settlement_amount_non_negative"),
        Index("idx_settlement_session", "session_id"),
        Index("idx_settlement_status", "status"),
    )

    session_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("test_sessions.id"),
        nullable=False,
    )

    tester_id: Mapped[str] = mapped_column(String(64), nullable=False)

    kind: Mapped[SettlementKind] = mapped_column(enum_column(SettlementKind), nullable=False)

    amount: Mapped[Decimal] = mapped_column(nullable=False)

    memo: Mapped[str] = mapped_column(String(500), nullable=False)

    status: Mapped[SettlementStatus] = mapped_column(
        enum_column(SettlementStatus),
        default=SettlementStatus.PENDING,
        nullable=False,
    )

    channel: Mapped[SettlementChannel | None] = mapped_column(
        enum_column(SettlementChannel), nullable=True
    )

    reference: Mapped[str | None] = mapped_column(String(200), nullable=True)

    failure_reason: Mapped[str | None] = mapped_column(String(2000), nullable=True)

    attempts: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    settled_at: Mapped[datetime | None] = mapped_column(
        UTCDateTime(), nullable=True
    )

    def __repr__(self) -> str:
        return f"<SettlementRecord {self.kind} {self.amount} {self.status}>"


class WalletCredit(TrackedBase):
    """An internal credit to a tester's wallet (settlement fallback)."""

    __tablename__ = "wallet_credits"

    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_wallet_credit_positive"),
        Index("idx_wallet_credit_tester", "tester_id"),
    )

    tester_id: Mapped[str] = mapped_column(String(64), nullable=False)

    amount: Mapped[Decimal] = mapped_column(nullable=False)

    currency: Mapped[str] = mapped_column(String(3), default="EUR", nullable=False)

    memo: Mapped[str] = mapped_column(String(500), nullable=False)

    session_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("test_sessions.id"),
        nullable=True,
    )

    credited_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)

    def __repr__(self) -> str:
        return f"<WalletCredit {self.tester_id} +{self.amount}>"
