"""
Module: trialflow_kernel.selectors.session_selector
Responsibility: Read-only queries over test sessions and their step progress:
    lookups for callers, the per-day load the distribution scheduler balances
    against, and the candidates the deadline sweep expires.
Architecture position: Kernel > Selectors.

Invariants enforced:
    - Read-only.
    - Returns SessionInfo / StepProgressInfo DTOs or plain values.
    - Deterministic ordering on every list query.

Failure modes:
    - Returns None or an empty collection on absence (never raises).
"""

from collections.abc import Iterable
from datetime import date
from uuid import UUID

from sqlalchemy import func, select

from trialflow_kernel.domain.dtos import SessionInfo, StepProgressInfo
from trialflow_kernel.domain.values import (
    PRE_PURCHASE_STATUSES,
    SCHEDULED_LOAD_STATUSES,
    SessionStatus,
)
from trialflow_kernel.models.procedure import Procedure, Step
from trialflow_kernel.models.session import TestSession
from trialflow_kernel.models.step_progress import StepProgress
from trialflow_kernel.selectors.base import BaseSelector


class SessionSelector(BaseSelector):
    """Read-side access to sessions."""

    def get(self, session_id: UUID) -> SessionInfo | None:
        model = self.session.get(TestSession, session_id)
        return SessionInfo.from_model(model) if model is not None else None

    def get_for_tester(self, campaign_id: UUID, tester_id: str) -> SessionInfo | None:
        model = self.session.execute(
            select(TestSession).where(
                TestSession.campaign_id == campaign_id,
                TestSession.tester_id == tester_id,
            )
        ).scalar_one_or_none()
        return SessionInfo.from_model(model) if model is not None else None

    def list_for_tester(
        self,
        tester_id: str,
        statuses: Iterable[SessionStatus] | None = None,
    ) -> list[SessionInfo]:
        query = select(TestSession).where(TestSession.tester_id == tester_id)
        if statuses is not None:
            query = query.where(TestSession.status.in_(list(statuses)))
        query = query.order_by(TestSession.applied_at.desc(), TestSession.id)
        return [SessionInfo.from_model(m) for m in self.session.scalars(query)]

    def list_for_campaign(
        self,
        campaign_id: UUID,
        statuses: Iterable[SessionStatus] | None = None,
    ) -> list[SessionInfo]:
        query = select(TestSession).where(TestSession.campaign_id == campaign_id)
        if statuses is not None:
            query = query.where(TestSession.status.in_(list(statuses)))
        query = query.order_by(TestSession.applied_at, TestSession.id)
        return [SessionInfo.from_model(m) for m in self.session.scalars(query)]

    def scheduled_load(
        self,
        campaign_id: UUID,
        days: Iterable[date] | None = None,
    ) -> dict[date, int]:
        """
        Count sessions already scheduled per purchase day for a campaign.

        Only statuses that still occupy the day before the purchase is
        validated are counted.
        """
        query = (
            select(TestSession.scheduled_purchase_date, func.count(TestSession.id))
            .where(
                TestSession.campaign_id == campaign_id,
                TestSession.scheduled_purchase_date.is_not(None),
                TestSession.status.in_(list(SCHEDULED_LOAD_STATUSES)),
            )
            .group_by(TestSession.scheduled_purchase_date)
        )
        if days is not None:
            query = query.where(TestSession.scheduled_purchase_date.in_(list(days)))
        return {day: count for day, count in self.session.execute(query)}

    def find_expired_purchase_deadlines(
        self,
        today: date,
        limit: int | None = None,
    ) -> list[UUID]:
        """
        Sessions still awaiting a purchase whose scheduled day is before
        ``today``, oldest deadline first.
        """
        query = (
            select(TestSession.id)
            .where(
                TestSession.status.in_(list(PRE_PURCHASE_STATUSES)),
                TestSession.scheduled_purchase_date.is_not(None),
                TestSession.scheduled_purchase_date < today,
            )
            .order_by(TestSession.scheduled_purchase_date, TestSession.id)
        )
        if limit is not None:
            query = query.limit(limit)
        return list(self.session.scalars(query))

    def step_progress(self, session_id: UUID) -> list[StepProgressInfo]:
        """Progress rows ordered by procedure position, then step position."""
        rows = self.session.execute(
            select(StepProgress, Step)
            .join(Step, StepProgress.step_id == Step.id)
            .join(Procedure, Step.procedure_id == Procedure.id)
            .where(StepProgress.session_id == session_id)
            .order_by(Procedure.position, Step.position, Step.id)
        ).all()
        return [StepProgressInfo.from_model(progress, step) for progress, step in rows]
