"""
Campaign and Distribution models.

Campaign is the seller's testing opportunity: a finite number of slots, the
offer the tester is reimbursed and rewarded against, and the distribution
rules that decide which days purchases are scheduled on.

Invariants enforced:
    - ``available_slots >= 0`` (database CHECK constraint).  The column is
      written only by SlotLedger through a conditional UPDATE.
    - Distribution ``max_units > 0``; ``day_of_week`` in 0..6 (0 = Sunday).
"""

from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Date,
    ForeignKey,
    Index,
    Integer,
    String,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from trialflow_kernel.db.base import TrackedBase, UUIDString
from trialflow_kernel.db.types import ZERO, enum_column
from trialflow_kernel.domain.values import CampaignStatus, DistributionType


class Campaign(TrackedBase):
    """
    A seller-defined testing opportunity.

    Contract:
        ``available_slots`` starts equal to ``total_slots`` and moves only
        through SlotLedger.  ``expected_price`` and the optional explicit
        price bounds are the offer the tester's discovered price is checked
        against; ``reward_amount`` is paid when the test is validated.

    Non-goals:
        Campaign authoring (products, criteria, procedure templates) lives
        outside this package.
    """

    __tablename__ = "campaigns"

    __table_args__ = (
        CheckConstraint("available_slots >= 0", name="ck_campaign_slots_non_negative"),
        CheckConstraint("total_slots >= 0", name="ck_campaign_total_slots_non_negative"),
        Index("idx_campaign_owner", "owner_id"),
        Index("idx_campaign_status", "status"),
    )

    owner_id: Mapped[str] = mapped_column(String(64), nullable=False)

    title: Mapped[str] = mapped_column(String(200), nullable=False)

    status: Mapped[CampaignStatus] = mapped_column(
        enum_column(CampaignStatus),
        default=CampaignStatus.DRAFT,
        nullable=False,
    )

    total_slots: Mapped[int] = mapped_column(Integer, nullable=False)

    available_slots: Mapped[int] = mapped_column(Integer, nullable=False)

    auto_accept_applications: Mapped[bool] = mapped_column(
        Boolean, default=False, nullable=False
    )

    starts_on: Mapped[date | None] = mapped_column(Date, nullable=True)

    ends_on: Mapped[date | None] = mapped_column(Date, nullable=True)

    # Offer data
    expected_price: Mapped[Decimal] = mapped_column(default=ZERO, nullable=False)
    price_range_min: Mapped[Decimal | None] = mapped_column(nullable=True)
    price_range_max: Mapped[Decimal | None] = mapped_column(nullable=True)
    reward_amount: Mapped[Decimal] = mapped_column(default=ZERO, nullable=False)
    currency: Mapped[str] = mapped_column(String(3), default="EUR", nullable=False)

    distributions: Mapped[list["Distribution"]] = relationship(
        back_populates="campaign",
        order_by="Distribution.position",
        cascade="all, delete-orphan",
    )

    procedures: Mapped[list["Procedure"]] = relationship(  # noqa: F821
        back_populates="campaign",
        order_by="Procedure.position",
        cascade="all, delete-orphan",
    )

    def __repr__(self) -> str:
        return f"<Campaign {self.id} status={self.status} slots={self.available_slots}>"

    @property
    def is_active(self) -> bool:
        return self.status == CampaignStatus.ACTIVE

    def has_ended(self, today: date) -> bool:
        """ENDED status, or the end day is already behind us."""
        if self.status == CampaignStatus.ENDED:
            return True
        return self.ends_on is not None and self.ends_on < today


class Distribution(TrackedBase):
    """
    One purchase-scheduling rule of a campaign.

    Contract:
        RECURRING rules use ``day_of_week``; SPECIFIC_DATE rules use
        ``specific_date``.  ``position`` fixes rule order.
    """

    __tablename__ = "distributions"

    __table_args__ = (
        CheckConstraint("max_units > 0", name="ck_distribution_max_units_positive"),
        CheckConstraint(
            "day_of_week IS NULL OR (day_of_week >= 0 AND day_of_week <= 6)",
            name="ck_distribution_day_of_week",
        ),
        Index("idx_distribution_campaign", "campaign_id"),
    )

    campaign_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("campaigns.id"),
        nullable=False,
    )

    distribution_type: Mapped[DistributionType] = mapped_column(
        enum_column(DistributionType),
        nullable=False,
    )

    day_of_week: Mapped[int | None] = mapped_column(Integer, nullable=True)

    specific_date: Mapped[date | None] = mapped_column(Date, nullable=True)

    max_units: Mapped[int] = mapped_column(Integer, nullable=False)

    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    position: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    campaign: Mapped[Campaign] = relationship(back_populates="distributions")

    def __repr__(self) -> str:
        when = self.specific_date or f"weekday {self.day_of_week}"
        return f"<Distribution {self.distribution_type} {when} x{self.max_units}>"
