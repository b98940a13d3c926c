"""
Pure domain layer.

This module contains value objects and domain logic with NO dependencies on:
- ORM sessions
- Database
- System time (time arrives through an injected Clock)
- I/O
"""

from trialflow_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from trialflow_kernel.domain.deadlines import (
    DeadlineInfo,
    deadline_info,
    is_deadline_expired,
    is_purchase_day,
    purchase_deadline,
)
from trialflow_kernel.domain.dtos import (
    Actor,
    DistributionRule,
    EligibilityResult,
    PurchaseProof,
    SessionInfo,
    StepProgressInfo,
    StepSubmission,
    UGCRequestItem,
    UGCSubmissionItem,
)
from trialflow_kernel.domain.eligibility import EligibilityChecker, OpenEligibility
from trialflow_kernel.domain.events import (
    SessionEvent,
    SessionEventType,
    SettlementInstruction,
)
from trialflow_kernel.domain.pricing import PricePolicy, PriceRange, check_price, price_range
from trialflow_kernel.domain.scheduling import (
    CandidateDay,
    SchedulingPolicy,
    candidate_days,
    choose_purchase_day,
)
from trialflow_kernel.domain.step_validation import validate_step_value
from trialflow_kernel.domain.values import (
    ActorRole,
    CampaignStatus,
    DistributionType,
    SessionStatus,
    SettlementChannel,
    SettlementKind,
    SettlementStatus,
    StepType,
    UGCType,
)

__all__ = [
    "Actor",
    "ActorRole",
    "CampaignStatus",
    "CandidateDay",
    "Clock",
    "DeadlineInfo",
    "DeterministicClock",
    "DistributionRule",
    "DistributionType",
    "EligibilityChecker",
    "EligibilityResult",
    "OpenEligibility",
    "PricePolicy",
    "PriceRange",
    "PurchaseProof",
    "SchedulingPolicy",
    "SessionEvent",
    "SessionEventType",
    "SessionInfo",
    "SessionStatus",
    "SettlementChannel",
    "SettlementInstruction",
    "SettlementKind",
    "SettlementStatus",
    "StepProgressInfo",
    "StepSubmission",
    "StepType",
    "SystemClock",
    "UGCRequestItem",
    "UGCSubmissionItem",
    "UGCType",
    "candidate_days",
    "check_price",
    "choose_purchase_day",
    "deadline_info",
    "is_deadline_expired",
    "is_purchase_day",
    "price_range",
    "purchase_deadline",
    "validate_step_value",
]
