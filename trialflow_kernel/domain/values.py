"""
Values -- Enumerated domain vocabulary.

Responsibility:
    The closed sets every other layer agrees on: campaign and session
    statuses, distribution and step types, actor roles, extra-content
    request types, and settlement bookkeeping states.

Architecture position:
    Kernel > Domain -- pure, zero I/O.  Models map these enums onto columns;
    domain logic and DTOs use them directly.

Invariants enforced:
    - Enum values equal their names, so the stored string, the log field and
      the API value are the same token.
"""

from enum import Enum


class CampaignStatus(str, Enum):
    DRAFT = "DRAFT"
    ACTIVE = "ACTIVE"
    PAUSED = "PAUSED"
    ENDED = "ENDED"
    CANCELLED = "CANCELLED"


class DistributionType(str, Enum):
    """Which calendar days a purchase may be scheduled on."""

    RECURRING = "RECURRING"
    SPECIFIC_DATE = "SPECIFIC_DATE"


class StepType(str, Enum):
    TEXT = "TEXT"
    PHOTO = "PHOTO"
    VIDEO = "VIDEO"
    CHECKLIST = "CHECKLIST"
    RATING = "RATING"
    PRICE_VALIDATION = "PRICE_VALIDATION"


class SessionStatus(str, Enum):
    """Lifecycle status of a test session.

    Contract: changed only through SessionLifecycleEngine operations.
    Terminal: REJECTED, COMPLETED, CANCELLED.
    """

    PENDING = "PENDING"
    ACCEPTED = "ACCEPTED"
    REJECTED = "REJECTED"
    IN_PROGRESS = "IN_PROGRESS"
    PROCEDURES_COMPLETED = "PROCEDURES_COMPLETED"
    PRICE_VALIDATED = "PRICE_VALIDATED"
    PURCHASE_SUBMITTED = "PURCHASE_SUBMITTED"
    PURCHASE_VALIDATED = "PURCHASE_VALIDATED"
    SUBMITTED = "SUBMITTED"
    UGC_REQUESTED = "UGC_REQUESTED"
    UGC_SUBMITTED = "UGC_SUBMITTED"
    PENDING_CLOSURE = "PENDING_CLOSURE"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"
    DISPUTED = "DISPUTED"


class ActorRole(str, Enum):
    TESTER = "TESTER"
    OWNER = "OWNER"
    ADMIN = "ADMIN"
    SYSTEM = "SYSTEM"


class UGCType(str, Enum):
    """Kinds of extra content an owner may request after the test."""

    VIDEO = "VIDEO"
    PHOTO = "PHOTO"
    TEXT_REVIEW = "TEXT_REVIEW"
    EXTERNAL_REVIEW = "EXTERNAL_REVIEW"


class SettlementKind(str, Enum):
    REWARD = "REWARD"
    UGC_BONUS = "UGC_BONUS"


class SettlementStatus(str, Enum):
    PENDING = "PENDING"
    SETTLED = "SETTLED"
    FAILED = "FAILED"


class SettlementChannel(str, Enum):
    EXTERNAL_TRANSFER = "EXTERNAL_TRANSFER"
    INTERNAL_CREDIT = "INTERNAL_CREDIT"


# Statuses still awaiting a purchase; the deadline sweep may expire these.
PRE_PURCHASE_STATUSES: frozenset[SessionStatus] = frozenset({
    SessionStatus.ACCEPTED,
    SessionStatus.IN_PROGRESS,
    SessionStatus.PROCEDURES_COMPLETED,
    SessionStatus.PRICE_VALIDATED,
})

# Statuses whose scheduled purchase day counts against the day's capacity.
SCHEDULED_LOAD_STATUSES: tuple[SessionStatus, ...] = (
    SessionStatus.ACCEPTED,
    SessionStatus.IN_PROGRESS,
    SessionStatus.PROCEDURES_COMPLETED,
    SessionStatus.PRICE_VALIDATED,
    SessionStatus.PURCHASE_SUBMITTED,
    SessionStatus.PURCHASE_VALIDATED,
)
