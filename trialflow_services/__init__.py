"""
trialflow_services -- Package init and public API.

Responsibility:
    Transaction ownership and the collaborator seams around the kernel:
    the SessionOrchestrator runs lifecycle commands, settles rewards
    after commit and publishes session events.

Architecture position:
    Services -- stateful orchestration over the kernel.

    Dependency direction:
        trialflow_services/ -> trialflow_kernel/  (allowed)
        trialflow_kernel/   -> trialflow_services/ (FORBIDDEN)

Invariants enforced:
    - Layer isolation: trialflow_kernel must never import from this package.
"""

from trialflow_services.collaborators import (
    EligibilityChecker,
    LoggingNotificationSink,
    NotificationSink,
    OpenEligibility,
    PayoutDirectory,
    PayoutGateway,
    RewardSettlement,
    SettlementReceipt,
)
from trialflow_services.session_orchestrator import SessionOrchestrator
from trialflow_services.settlement_router import SettlementRouter

__all__ = [
    "EligibilityChecker",
    "LoggingNotificationSink",
    "NotificationSink",
    "OpenEligibility",
    "PayoutDirectory",
    "PayoutGateway",
    "RewardSettlement",
    "SessionOrchestrator",
    "SettlementReceipt",
    "SettlementRouter",
]
