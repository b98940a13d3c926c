"""
InternalCreditLedger -- the wallet credit fallback for settlements.

Responsibility:
    Credits a tester's internal wallet when no external payout destination
    is configured.

Architecture position:
    Kernel > Services -- flush-only.

Invariants enforced:
    - Credits are strictly positive.
    - Each credit carries its session id and memo so it can be reconciled
      against the settlement record that caused it.
"""

from decimal import Decimal
from uuid import UUID

from trialflow_kernel.db.types import ZERO
from trialflow_kernel.domain.clock import Clock
from trialflow_kernel.exceptions import InvalidAmountError
from trialflow_kernel.logging_config import get_logger
from trialflow_kernel.models.settlement import WalletCredit
from trialflow_kernel.services.base import BaseService

logger = get_logger("services.internal_credit")


class InternalCreditLedger(BaseService):
    def __init__(self, session, clock: Clock, currency: str = "EUR"):
        super().__init__(session)
        self._clock = clock
        self._currency = currency

    def credit(
        self,
        tester_id: str,
        amount: Decimal,
        memo: str,
        session_id: UUID | None = None,
    ) -> str:
        """
        Record a wallet credit.

        Returns:
            A settlement reference of the form ``wallet:<credit id>``.

        Raises:
            InvalidAmountError: amount is not positive.
        """
        if amount <= ZERO:
            raise InvalidAmountError("amount", amount)

        credit = WalletCredit(
            tester_id=tester_id,
            amount=amount,
            currency=self._currency,
            memo=memo,
            session_id=session_id,
            credited_at=self._clock.now_utc(),
        )
        self.session.add(credit)
        self.session.flush()

        logger.info(
            "wallet_credited",
            extra={
                "tester_id": tester_id,
                "amount": amount,
                "session_id": str(session_id) if session_id else None,
                "credit_id": str(credit.id),
            },
        )
        return f"wallet:{credit.id}"
