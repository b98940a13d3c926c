"""Persistence models for the trialflow kernel."""

from trialflow_kernel.models.campaign import Campaign, Distribution
from trialflow_kernel.models.procedure import Procedure, Step
from trialflow_kernel.models.session import TestSession
from trialflow_kernel.models.settlement import SettlementRecord, WalletCredit
from trialflow_kernel.models.step_progress import StepProgress

__all__ = [
    "Campaign",
    "Distribution",
    "Procedure",
    "SettlementRecord",
    "Step",
    "StepProgress",
    "TestSession",
    "WalletCredit",
]
