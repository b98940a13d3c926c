"""
Procedure and Step models.

A campaign's procedures are ordered groups of steps the tester works
through.  Within a procedure a step may be completed only after every
lower-positioned step; a step counts towards "all required steps complete"
only when both it and its procedure are marked required.
"""

from uuid import UUID

from sqlalchemy import JSON, Boolean, ForeignKey, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from trialflow_kernel.db.base import TrackedBase, UUIDString
from trialflow_kernel.db.types import enum_column
from trialflow_kernel.domain.values import StepType
from trialflow_kernel.models.campaign import Campaign


class Procedure(TrackedBase):
    __tablename__ = "procedures"

    __table_args__ = (Index("idx_procedure_campaign", "campaign_id"),)

    campaign_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("campaigns.id"),
        nullable=False,
    )

    title: Mapped[str] = mapped_column(String(200), nullable=False)

    position: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    is_required: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    campaign: Mapped[Campaign] = relationship(back_populates="procedures")

    steps: Mapped[list["Step"]] = relationship(
        back_populates="procedure",
        order_by="Step.position",
        cascade="all, delete-orphan",
    )

    def __repr__(self) -> str:
        return f"<Procedure {self.title!r} #{self.position}>"


class Step(TrackedBase):
    """
    One task inside a procedure.

    Contract:
        ``step_type`` selects how a submitted value is validated.
        PRICE_VALIDATION steps are completed by price validation, never by
        step completion.
    """

    __tablename__ = "procedure_steps"

    __table_args__ = (Index("idx_step_procedure", "procedure_id"),)

    procedure_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("procedures.id"),
        nullable=False,
    )

    title: Mapped[str] = mapped_column(String(200), nullable=False)

    description: Mapped[str | None] = mapped_column(String(2000), nullable=True)

    step_type: Mapped[StepType] = mapped_column(enum_column(StepType), nullable=False)

    position: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    is_required: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    checklist_items: Mapped[list | None] = mapped_column(JSON, nullable=True)

    procedure: Mapped[Procedure] = relationship(back_populates="steps")

    def __repr__(self) -> str:
        return f"<Step {self.title!r} {self.step_type} #{self.position}>"
