"""
trialflow_services.settlement_router -- Pays testers what they are owed.

Responsibility:
    Implements ``RewardSettlement``: an external transfer when the tester
    has a payout destination, otherwise an internal wallet credit.

Architecture position:
    Services.  Called by the SessionOrchestrator only after the transition
    that created the obligation has committed.

Invariants enforced:
    - The wallet fallback is logged as ``settlement_internal_credit_fallback``,
      never as a transfer, so operators can tell the two apart.
    - Non-positive amounts are refused before any channel is touched.

Failure modes:
    - SettlementFailedError wrapping any gateway or ledger failure.
"""

from __future__ import annotations

from decimal import Decimal
from uuid import UUID

from sqlalchemy.orm import Session

from trialflow_kernel.db.types import ZERO
from trialflow_kernel.domain.clock import Clock
from trialflow_kernel.domain.values import SettlementChannel
from trialflow_kernel.exceptions import SettlementFailedError
from trialflow_kernel.logging_config import get_logger
from trialflow_kernel.services.internal_credit import InternalCreditLedger
from trialflow_services.collaborators import (
    PayoutDirectory,
    PayoutGateway,
    SettlementReceipt,
)

logger = get_logger("services.settlement")


class SettlementRouter:
    """
    Chooses the settlement channel for each payment.

    Contract:
        ``settle`` returns a SettlementReceipt naming the channel used and
        a reference (provider id or ``wallet:<credit id>``).

    Non-goals:
        - Does not retry; retries are driven by the orchestrator from the
          FAILED settlement record.
        - Does not commit; the wallet credit is flushed into the caller's
          session.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock,
        directory: PayoutDirectory | None = None,
        gateway: PayoutGateway | None = None,
        currency: str = "EUR",
    ):
        self._directory = directory
        self._gateway = gateway
        self._ledger = InternalCreditLedger(session, clock, currency=currency)

    def _destination(self, tester_id: str) -> str | None:
        if self._directory is None or self._gateway is None:
            return None
        return self._directory.destination_for(tester_id)

    def settle(
        self,
        tester_id: str,
        amount: Decimal,
        memo: str,
        session_id: UUID,
    ) -> SettlementReceipt:
        if amount <= ZERO:
            raise SettlementFailedError(tester_id, amount, "amount must be positive")

        destination = self._destination(tester_id)
        if destination is None:
            try:
                reference = self._ledger.credit(tester_id, amount, memo, session_id)
            except Exception as exc:
                raise SettlementFailedError(tester_id, amount, str(exc)) from exc
            logger.warning(
                "settlement_internal_credit_fallback",
                extra={
                    "tester_id": tester_id,
                    "amount": amount,
                    "session_id": str(session_id),
                    "reference": reference,
                },
            )
            return SettlementReceipt(reference=reference, channel=SettlementChannel.INTERNAL_CREDIT)

        try:
            reference = self._gateway.transfer(destination, amount, memo, session_id)
        except Exception as exc:
            raise SettlementFailedError(tester_id, amount, str(exc)) from exc

        logger.info(
            "settlement_external_transfer",
            extra={
                "tester_id": tester_id,
                "amount": amount,
                "session_id": str(session_id),
                "reference": reference,
            },
        )
        return SettlementReceipt(reference=reference, channel=SettlementChannel.EXTERNAL_TRANSFER)
