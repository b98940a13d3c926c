"""Tests for SettlementRouter channel choice and failure wrapping."""

from decimal import Decimal
from uuid import uuid4

import pytest
from sqlalchemy import select

from trialflow_kernel.domain.values import SettlementChannel
from trialflow_kernel.exceptions import SettlementFailedError
from trialflow_kernel.models.settlement import WalletCredit
from trialflow_kernel.selectors.settlement_selector import SettlementSelector
from trialflow_services.collaborators import PayoutGateway, RewardSettlement
from trialflow_services.settlement_router import SettlementRouter

from tests.conftest import FakeDirectory, FakeGateway


class TestInternalCreditFallback:
    def test_no_directory_credits_wallet(self, session, clock, captured_logs):
        router = SettlementRouter(session, clock)
        session_id = uuid4()

        receipt = router.settle("tester-1", Decimal("10.00"), "Reward", session_id)

        assert receipt.channel == SettlementChannel.INTERNAL_CREDIT
        assert receipt.reference.startswith("wallet:")
        credit = session.scalars(select(WalletCredit)).one()
        assert credit.session_id == session_id
        assert credit.memo == "Reward"
        assert SettlementSelector(session).wallet_balance("tester-1") == Decimal("10.00")

        fallback = next(
            r for r in captured_logs() if r["message"] == "settlement_internal_credit_fallback"
        )
        assert fallback["level"] == "WARNING"
        assert fallback["amount"] == "10.00"

    def test_tester_without_destination(self, session, clock):
        gateway = FakeGateway()
        router = SettlementRouter(session, clock, FakeDirectory({"someone-else": "acct_9"}), gateway)

        receipt = router.settle("tester-1", Decimal("5"), "Bonus", uuid4())

        assert receipt.channel == SettlementChannel.INTERNAL_CREDIT
        assert gateway.transfers == []

    def test_directory_without_gateway_falls_back(self, session, clock):
        router = SettlementRouter(session, clock, FakeDirectory({"tester-1": "acct_1"}))
        assert router.settle("tester-1", Decimal("5"), "Bonus", uuid4()).channel == (
            SettlementChannel.INTERNAL_CREDIT
        )

    def test_wallet_uses_configured_currency(self, session, clock):
        SettlementRouter(session, clock, currency="USD").settle(
            "tester-1", Decimal("5"), "Bonus", uuid4()
        )
        assert session.scalars(select(WalletCredit)).one().currency == "USD"


class TestExternalTransfer:
    def test_transfers_to_destination(self, session, clock, captured_logs):
        gateway = FakeGateway()
        router = SettlementRouter(session, clock, FakeDirectory({"tester-1": "acct_1"}), gateway)
        session_id = uuid4()

        receipt = router.settle("tester-1", Decimal("12.50"), "Reward", session_id)

        assert receipt.channel == SettlementChannel.EXTERNAL_TRANSFER
        assert receipt.reference == "tr_1"
        assert gateway.transfers == [("acct_1", Decimal("12.50"), "Reward", session_id)]
        assert session.scalars(select(WalletCredit)).first() is None
        assert any(r["message"] == "settlement_external_transfer" for r in captured_logs())

    def test_gateway_error_is_wrapped(self, session, clock):
        gateway = FakeGateway(fail_with=TimeoutError("provider timed out"))
        router = SettlementRouter(session, clock, FakeDirectory({"tester-1": "acct_1"}), gateway)

        with pytest.raises(SettlementFailedError) as exc_info:
            router.settle("tester-1", Decimal("12.50"), "Reward", uuid4())

        assert exc_info.value.reason == "provider timed out"
        assert isinstance(exc_info.value.__cause__, TimeoutError)


class TestAmounts:
    @pytest.mark.parametrize("amount", [Decimal("0"), Decimal("-1")])
    def test_non_positive_refused(self, session, clock, amount):
        gateway = FakeGateway()
        router = SettlementRouter(session, clock, FakeDirectory({"tester-1": "acct_1"}), gateway)

        with pytest.raises(SettlementFailedError):
            router.settle("tester-1", amount, "Reward", uuid4())
        assert gateway.transfers == []


class TestProtocols:
    def test_router_and_fakes_satisfy_ports(self, session, clock):
        assert isinstance(SettlementRouter(session, clock), RewardSettlement)
        assert isinstance(FakeGateway(), PayoutGateway)
