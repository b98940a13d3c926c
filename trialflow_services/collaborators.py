"""
trialflow_services.collaborators -- Ports to the surrounding system.

Responsibility:
    Declares the narrow interfaces the lifecycle needs from the outside
    world (eligibility, payouts, notifications) and the default
    implementations used when the host application supplies none.

Architecture position:
    Services -- collaborator contracts.  Implementations live in the host
    application; the kernel only sees ``EligibilityChecker``.

Failure modes:
    - PayoutGateway.transfer raises whatever its transport raises; the
      SettlementRouter converts that into SettlementFailedError.
    - NotificationSink.publish may raise; the orchestrator logs and moves on.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Protocol, runtime_checkable
from uuid import UUID

from trialflow_kernel.domain.eligibility import EligibilityChecker, OpenEligibility
from trialflow_kernel.domain.events import SessionEvent
from trialflow_kernel.domain.values import SettlementChannel
from trialflow_kernel.logging_config import get_logger

logger = get_logger("services.notifications")

__all__ = [
    "EligibilityChecker",
    "LoggingNotificationSink",
    "NotificationSink",
    "OpenEligibility",
    "PayoutDirectory",
    "PayoutGateway",
    "RewardSettlement",
    "SettlementReceipt",
]


@runtime_checkable
class PayoutGateway(Protocol):
    """External money transfer (payment provider)."""

    def transfer(
        self,
        destination: str,
        amount: Decimal,
        memo: str,
        session_id: UUID,
    ) -> str:
        """Move ``amount`` to ``destination``; return the provider reference."""
        ...


@runtime_checkable
class PayoutDirectory(Protocol):
    def destination_for(self, tester_id: str) -> str | None:
        """The tester's connected payout account, or None."""
        ...


@dataclass(frozen=True)
class SettlementReceipt:
    reference: str
    channel: SettlementChannel


@runtime_checkable
class RewardSettlement(Protocol):
    def settle(
        self,
        tester_id: str,
        amount: Decimal,
        memo: str,
        session_id: UUID,
    ) -> SettlementReceipt:
        ...


@runtime_checkable
class NotificationSink(Protocol):
    def publish(self, event: SessionEvent) -> None:
        ...


class LoggingNotificationSink:
    """Writes each event to the structured log.  Default sink."""

    def publish(self, event: SessionEvent) -> None:
        logger.info(
            "session_event",
            extra={
                "event_type": event.event_type,
                "session_id": str(event.session_id),
                "campaign_id": str(event.campaign_id),
                "tester_id": event.tester_id,
                "actor_id": event.actor_id,
                "occurred_at": event.occurred_at,
                "data": event.data,
            },
        )
