"""
Module: trialflow_kernel.selectors.settlement_selector
Responsibility: Read-only access to settlement records and wallet credits,
    chiefly so operators can find validated-but-unpaid sessions.
Architecture position: Kernel > Selectors.
"""

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import func, select

from trialflow_kernel.db.types import ZERO
from trialflow_kernel.domain.values import (
    SettlementChannel,
    SettlementKind,
    SettlementStatus,
)
from trialflow_kernel.models.settlement import SettlementRecord, WalletCredit
from trialflow_kernel.selectors.base import BaseSelector


@dataclass(frozen=True)
class SettlementInfo:
    id: UUID
    session_id: UUID
    tester_id: str
    kind: SettlementKind
    amount: Decimal
    memo: str
    status: SettlementStatus
    channel: SettlementChannel | None
    reference: str | None
    failure_reason: str | None
    attempts: int
    settled_at: datetime | None

    @classmethod
    def from_model(cls, model: SettlementRecord) -> "SettlementInfo":
        return cls(
            id=model.id,
            session_id=model.session_id,
            tester_id=model.tester_id,
            kind=SettlementKind(model.kind),
            amount=model.amount,
            memo=model.memo,
            status=SettlementStatus(model.status),
            channel=SettlementChannel(model.channel) if model.channel else None,
            reference=model.reference,
            failure_reason=model.failure_reason,
            attempts=model.attempts,
            settled_at=model.settled_at,
        )


class SettlementSelector(BaseSelector):
    def get(self, record_id: UUID) -> SettlementInfo | None:
        model = self.session.get(SettlementRecord, record_id)
        return SettlementInfo.from_model(model) if model is not None else None

    def for_session(self, session_id: UUID) -> list[SettlementInfo]:
        query = (
            select(SettlementRecord)
            .where(SettlementRecord.session_id == session_id)
            .order_by(SettlementRecord.created_at, SettlementRecord.id)
        )
        return [SettlementInfo.from_model(m) for m in self.session.scalars(query)]

    def outstanding(
        self,
        statuses: Iterable[SettlementStatus] = (
            SettlementStatus.PENDING,
            SettlementStatus.FAILED,
        ),
        limit: int | None = None,
    ) -> list[SettlementInfo]:
        """Records that still owe the tester money, oldest first."""
        query = (
            select(SettlementRecord)
            .where(SettlementRecord.status.in_(list(statuses)))
            .order_by(SettlementRecord.created_at, SettlementRecord.id)
        )
        if limit is not None:
            query = query.limit(limit)
        return [SettlementInfo.from_model(m) for m in self.session.scalars(query)]

    def wallet_balance(self, tester_id: str) -> Decimal:
        """Sum of internal credits for a tester."""
        total = self.session.scalar(
            select(func.sum(WalletCredit.amount)).where(WalletCredit.tester_id == tester_id)
        )
        return total if total is not None else ZERO
