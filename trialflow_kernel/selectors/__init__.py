"""Read-only selectors for the trialflow kernel."""

from trialflow_kernel.selectors.session_selector import SessionSelector
from trialflow_kernel.selectors.settlement_selector import SettlementInfo, SettlementSelector

__all__ = [
    "SessionSelector",
    "SettlementInfo",
    "SettlementSelector",
]
