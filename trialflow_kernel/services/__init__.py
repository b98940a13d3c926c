"""
Kernel services.

All services are flush-only: they receive a SQLAlchemy ``Session`` from the
caller and never commit.  Transaction boundaries belong to the caller.
"""

from trialflow_kernel.services.distribution_scheduler import DistributionScheduler
from trialflow_kernel.services.internal_credit import InternalCreditLedger
from trialflow_kernel.services.session_lifecycle import SessionLifecycleEngine
from trialflow_kernel.services.slot_ledger import SlotLedger
from trialflow_kernel.services.step_progress import StepProgressTracker

__all__ = [
    "DistributionScheduler",
    "InternalCreditLedger",
    "SessionLifecycleEngine",
    "SlotLedger",
    "StepProgressTracker",
]
