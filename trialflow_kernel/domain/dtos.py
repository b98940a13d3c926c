"""
DTOs -- Pure domain data transfer objects.

Responsibility:
    The immutable structures that cross the service boundary: who is acting
    (Actor), what they submit (StepSubmission, PurchaseProof, UGC items),
    what the engine reads (DistributionRule, EligibilityResult), and what it
    returns (SessionInfo, StepProgressInfo).

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.
    ``from_model()`` class methods exist as boundary converters but are only
    invoked from the service and selector layers.

Invariants enforced:
    - Services accept and return DTOs, never ORM entities.
    - Monetary fields are Decimal; dates are ``date``, instants are aware
      ``datetime``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from typing import TYPE_CHECKING, Any
from uuid import UUID

from trialflow_kernel.domain.values import (
    ActorRole,
    DistributionType,
    SessionStatus,
    StepType,
    UGCType,
)

if TYPE_CHECKING:
    from trialflow_kernel.models.campaign import Distribution as DistributionModel
    from trialflow_kernel.models.procedure import Step as StepModel
    from trialflow_kernel.models.session import TestSession as TestSessionModel
    from trialflow_kernel.models.step_progress import StepProgress as StepProgressModel


@dataclass(frozen=True)
class Actor:
    """The identity performing an operation, as vouched for by the caller."""

    actor_id: str
    role: ActorRole

    @classmethod
    def tester(cls, actor_id: str) -> Actor:
        return cls(actor_id, ActorRole.TESTER)

    @classmethod
    def owner(cls, actor_id: str) -> Actor:
        return cls(actor_id, ActorRole.OWNER)

    @classmethod
    def admin(cls, actor_id: str) -> Actor:
        return cls(actor_id, ActorRole.ADMIN)

    @classmethod
    def system(cls, actor_id: str = "deadline-sweeper") -> Actor:
        return cls(actor_id, ActorRole.SYSTEM)


@dataclass(frozen=True)
class EligibilityResult:
    eligible: bool
    reasons: tuple[str, ...] = ()


@dataclass(frozen=True)
class DistributionRule:
    """
    A rule describing which days purchases may be scheduled on.

    Contract:
        RECURRING rules carry ``day_of_week`` (0 = Sunday ... 6 = Saturday);
        SPECIFIC_DATE rules carry ``specific_date``.  ``max_units`` is the
        number of purchases the day can absorb.
    """

    distribution_type: DistributionType
    max_units: int
    day_of_week: int | None = None
    specific_date: date | None = None
    is_active: bool = True

    def __post_init__(self) -> None:
        if self.max_units <= 0:
            raise ValueError(f"max_units must be positive, got {self.max_units}")
        if self.distribution_type == DistributionType.RECURRING:
            if self.day_of_week is None or not 0 <= self.day_of_week <= 6:
                raise ValueError(
                    f"RECURRING rule needs day_of_week in 0..6, got {self.day_of_week}"
                )
        elif self.specific_date is None:
            raise ValueError("SPECIFIC_DATE rule needs specific_date")

    @classmethod
    def from_model(cls, model: DistributionModel) -> DistributionRule:
        return cls(
            distribution_type=DistributionType(model.distribution_type),
            max_units=model.max_units,
            day_of_week=model.day_of_week,
            specific_date=model.specific_date,
            is_active=model.is_active,
        )


@dataclass(frozen=True)
class StepSubmission:
    """What a tester submits for one step."""

    response: Any
    comment: str | None = None
    attachments: tuple[str, ...] = ()

    def to_payload(self) -> dict[str, Any]:
        return {
            "response": self.response,
            "comment": self.comment,
            "attachments": list(self.attachments),
        }


@dataclass(frozen=True)
class PurchaseProof:
    order_number: str
    purchase_proof_url: str | None = None
    product_price: Decimal | None = None
    shipping_cost: Decimal | None = None


@dataclass(frozen=True)
class UGCRequestItem:
    """One piece of extra content requested by the owner, with its bonus."""

    ugc_type: UGCType
    description: str
    bonus: Decimal
    deadline: date | None = None

    def to_payload(self) -> dict[str, Any]:
        return {
            "type": UGCType(self.ugc_type).value,
            "description": self.description,
            "bonus": str(self.bonus),
            "deadline": self.deadline.isoformat() if self.deadline else None,
        }


@dataclass(frozen=True)
class UGCSubmissionItem:
    ugc_type: UGCType
    content_url: str | None = None
    comment: str | None = None

    def to_payload(self) -> dict[str, Any]:
        return {
            "type": UGCType(self.ugc_type).value,
            "content_url": self.content_url,
            "comment": self.comment,
        }


@dataclass(frozen=True)
class StepProgressInfo:
    step_id: UUID
    procedure_id: UUID
    title: str
    step_type: StepType
    position: int
    is_required: bool
    is_completed: bool
    completed_at: datetime | None = None
    submission: dict[str, Any] | None = None
    validated_price: Decimal | None = None

    @classmethod
    def from_model(cls, progress: StepProgressModel, step: StepModel) -> StepProgressInfo:
        return cls(
            step_id=step.id,
            procedure_id=step.procedure_id,
            title=step.title,
            step_type=StepType(step.step_type),
            position=step.position,
            is_required=step.is_required,
            is_completed=progress.is_completed,
            completed_at=progress.completed_at,
            submission=progress.submission,
            validated_price=progress.validated_price,
        )


@dataclass(frozen=True)
class SessionInfo:
    """
    Read-only snapshot of a test session after an operation.

    Guarantees:
        Detached from the ORM; safe to hand to callers after commit.
    """

    id: UUID
    campaign_id: UUID
    tester_id: str
    status: SessionStatus
    version: int
    scheduled_purchase_date: date | None = None
    validated_product_price: Decimal | None = None
    order_number: str | None = None
    product_price: Decimal | None = None
    shipping_cost: Decimal | None = None
    reward_amount: Decimal | None = None
    potential_bonus: Decimal | None = None
    final_bonus: Decimal | None = None
    rating: int | None = None
    rejection_reason: str | None = None
    purchase_rejection_reason: str | None = None
    cancellation_reason: str | None = None
    dispute_reason: str | None = None
    dispute_resolution: str | None = None
    ugc_decline_reason: str | None = None
    ugc_rejection_reason: str | None = None
    applied_at: datetime | None = None
    accepted_at: datetime | None = None
    completed_at: datetime | None = None
    cancelled_at: datetime | None = None
    ugc_requests: tuple[dict[str, Any], ...] = field(default_factory=tuple)
    ugc_submissions: tuple[dict[str, Any], ...] = field(default_factory=tuple)

    @classmethod
    def from_model(cls, model: TestSessionModel) -> SessionInfo:
        return cls(
            id=model.id,
            campaign_id=model.campaign_id,
            tester_id=model.tester_id,
            status=SessionStatus(model.status),
            version=model.version,
            scheduled_purchase_date=model.scheduled_purchase_date,
            validated_product_price=model.validated_product_price,
            order_number=model.order_number,
            product_price=model.product_price,
            shipping_cost=model.shipping_cost,
            reward_amount=model.reward_amount,
            potential_bonus=model.potential_bonus,
            final_bonus=model.final_bonus,
            rating=model.rating,
            rejection_reason=model.rejection_reason,
            purchase_rejection_reason=model.purchase_rejection_reason,
            cancellation_reason=model.cancellation_reason,
            dispute_reason=model.dispute_reason,
            dispute_resolution=model.dispute_resolution,
            ugc_decline_reason=model.ugc_decline_reason,
            ugc_rejection_reason=model.ugc_rejection_reason,
            applied_at=model.applied_at,
            accepted_at=model.accepted_at,
            completed_at=model.completed_at,
            cancelled_at=model.cancelled_at,
            ugc_requests=tuple(model.ugc_requests or ()),
            ugc_submissions=tuple(model.ugc_submissions or ()),
        )
