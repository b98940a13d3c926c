"""
StepProgress model -- one row per (session, step).

Invariants enforced:
    - Unique per (session_id, step_id).
    - Rows are never deleted while the session exists.
    - ``completed_at`` is written on first completion only; later
      re-completions replace the submission but keep the original time.
"""

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import JSON, Boolean, ForeignKey, Index, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from trialflow_kernel.db.base import TrackedBase, UTCDateTime, UUIDString
from trialflow_kernel.models.procedure import Step


class StepProgress(TrackedBase):
    __tablename__ = "step_progress"

    __table_args__ = (
        UniqueConstraint("session_id", "step_id", name="uq_step_progress_session_step"),
        Index("idx_step_progress_session", "session_id"),
    )

    session_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("test_sessions.id"),
        nullable=False,
    )

    step_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("procedure_steps.id"),
        nullable=False,
    )

    is_completed: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    completed_at: Mapped[datetime | None] = mapped_column(
        UTCDateTime(), nullable=True
    )

    submission: Mapped[dict | None] = mapped_column(JSON, nullable=True)

    # Only for PRICE_VALIDATION steps
    validated_price: Mapped[Decimal | None] = mapped_column(nullable=True)

    step: Mapped[Step] = relationship()

    def __repr__(self) -> str:
        done = "done" if self.is_completed else "open"
        return f"<StepProgress session={self.session_id} step={self.step_id} {done}>"
