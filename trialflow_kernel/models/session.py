"""
TestSession model -- one tester's participation in one campaign.

Invariants enforced:
    - One session per (campaign, tester) (unique constraint).
    - ``version`` is the optimistic-lock counter: every flush of a changed
      row bumps it and a concurrent writer holding the old value fails with
      StaleDataError.
    - Status and its transition timestamp are written in the same flush.
      Transition timestamps are set once and never cleared.

Non-goals:
    This model does NOT validate transitions.  SessionLifecycleEngine is the
    only writer of ``status``.
"""

from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import (
    JSON,
    Date,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from trialflow_kernel.db.base import TrackedBase, UTCDateTime, UUIDString
from trialflow_kernel.db.types import enum_column
from trialflow_kernel.domain.values import SessionStatus
from trialflow_kernel.models.campaign import Campaign


def _ts() -> Mapped[datetime | None]:
    return mapped_column(UTCDateTime(), nullable=True)


def _reason() -> Mapped[str | None]:
    return mapped_column(String(4000), nullable=True)


class TestSession(TrackedBase):
    __tablename__ = "test_sessions"
    __test__ = False  # not a pytest class

    __table_args__ = (
        UniqueConstraint("campaign_id", "tester_id", name="uq_session_campaign_tester"),
        Index("idx_session_tester", "tester_id"),
        Index("idx_session_status", "status"),
        Index("idx_session_scheduled_date", "campaign_id", "scheduled_purchase_date"),
    )

    campaign_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("campaigns.id"),
        nullable=False,
    )

    tester_id: Mapped[str] = mapped_column(String(64), nullable=False)

    status: Mapped[SessionStatus] = mapped_column(
        enum_column(SessionStatus),
        default=SessionStatus.PENDING,
        nullable=False,
    )

    version: Mapped[int] = mapped_column(Integer, nullable=False)

    scheduled_purchase_date: Mapped[date | None] = mapped_column(Date, nullable=True)

    # Transition timestamps
    applied_at: Mapped[datetime | None] = _ts()
    accepted_at: Mapped[datetime | None] = _ts()
    rejected_at: Mapped[datetime | None] = _ts()
    started_at: Mapped[datetime | None] = _ts()
    procedures_completed_at: Mapped[datetime | None] = _ts()
    price_validated_at: Mapped[datetime | None] = _ts()
    purchase_submitted_at: Mapped[datetime | None] = _ts()
    purchase_rejected_at: Mapped[datetime | None] = _ts()
    purchase_validated_at: Mapped[datetime | None] = _ts()
    submitted_at: Mapped[datetime | None] = _ts()
    test_validated_at: Mapped[datetime | None] = _ts()
    ugc_requested_at: Mapped[datetime | None] = _ts()
    ugc_submitted_at: Mapped[datetime | None] = _ts()
    ugc_declined_at: Mapped[datetime | None] = _ts()
    ugc_validated_at: Mapped[datetime | None] = _ts()
    ugc_rejected_at: Mapped[datetime | None] = _ts()
    closed_at: Mapped[datetime | None] = _ts()
    completed_at: Mapped[datetime | None] = _ts()
    cancelled_at: Mapped[datetime | None] = _ts()
    disputed_at: Mapped[datetime | None] = _ts()
    dispute_resolved_at: Mapped[datetime | None] = _ts()

    # Commerce facts
    validated_product_price: Mapped[Decimal | None] = mapped_column(nullable=True)
    order_number: Mapped[str | None] = mapped_column(String(100), nullable=True)
    purchase_proof_url: Mapped[str | None] = mapped_column(String(2000), nullable=True)
    product_price: Mapped[Decimal | None] = mapped_column(nullable=True)
    shipping_cost: Mapped[Decimal | None] = mapped_column(nullable=True)
    reward_amount: Mapped[Decimal | None] = mapped_column(nullable=True)
    potential_bonus: Mapped[Decimal | None] = mapped_column(nullable=True)
    final_bonus: Mapped[Decimal | None] = mapped_column(nullable=True)

    # Reasons, one per family
    rejection_reason: Mapped[str | None] = _reason()
    purchase_rejection_reason: Mapped[str | None] = _reason()
    cancellation_reason: Mapped[str | None] = _reason()
    dispute_reason: Mapped[str | None] = _reason()
    dispute_resolution: Mapped[str | None] = _reason()
    ugc_decline_reason: Mapped[str | None] = _reason()
    ugc_rejection_reason: Mapped[str | None] = _reason()

    # Payloads
    submission_data: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    ugc_requests: Mapped[list | None] = mapped_column(JSON, nullable=True)
    ugc_submissions: Mapped[list | None] = mapped_column(JSON, nullable=True)

    # Rating
    rating: Mapped[int | None] = mapped_column(Integer, nullable=True)
    rating_comment: Mapped[str | None] = _reason()
    rated_at: Mapped[datetime | None] = _ts()

    campaign: Mapped[Campaign] = relationship()

    __mapper_args__ = {"version_id_col": version}

    def __repr__(self) -> str:
        return f"<TestSession {self.id} status={self.status} v{self.version}>"
