"""
DistributionScheduler -- picks a newly accepted session's purchase day.

Responsibility:
    Reads a campaign's distribution rules and the current per-day load,
    then delegates the choice to the pure ``domain.scheduling`` functions.

Architecture position:
    Kernel > Services.  Reads only; never flushes.

Failure modes:
    - Returns None (and logs ``purchase_date_unavailable`` at WARNING) when
      no rule yields a future day with spare capacity.  The caller leaves
      the purchase date unset.
"""

from datetime import date
from uuid import UUID

from sqlalchemy import select

from trialflow_kernel.domain.clock import Clock
from trialflow_kernel.domain.dtos import DistributionRule
from trialflow_kernel.domain.scheduling import (
    SchedulingPolicy,
    candidate_days,
    choose_purchase_day,
)
from trialflow_kernel.logging_config import get_logger
from trialflow_kernel.models.campaign import Distribution
from trialflow_kernel.selectors.session_selector import SessionSelector
from trialflow_kernel.services.base import BaseService

logger = get_logger("services.distribution_scheduler")


class DistributionScheduler(BaseService):
    def __init__(self, session, clock: Clock, policy: SchedulingPolicy | None = None):
        super().__init__(session)
        self._clock = clock
        self._policy = policy or SchedulingPolicy()
        self._sessions = SessionSelector(session)

    def rules_for(self, campaign_id: UUID) -> list[DistributionRule]:
        rows = self.session.scalars(
            select(Distribution)
            .where(Distribution.campaign_id == campaign_id)
            .order_by(Distribution.position, Distribution.id)
        )
        return [DistributionRule.from_model(row) for row in rows]

    def next_purchase_date(
        self,
        campaign_id: UUID,
        as_of: date | None = None,
    ) -> date | None:
        """
        Earliest future day with spare capacity, or None.

        Args:
            campaign_id: Campaign whose rules and load are used.
            as_of: Reference day; defaults to the clock's today.
        """
        today = as_of or self._clock.today()
        candidates = candidate_days(self.rules_for(campaign_id), today, self._policy)
        load = self._sessions.scheduled_load(campaign_id, [c.day for c in candidates])
        chosen = choose_purchase_day(candidates, load)

        if chosen is None:
            logger.warning(
                "purchase_date_unavailable",
                extra={
                    "campaign_id": str(campaign_id),
                    "as_of": today,
                    "candidate_count": len(candidates),
                },
            )
            return None

        logger.debug(
            "purchase_date_chosen",
            extra={
                "campaign_id": str(campaign_id),
                "purchase_date": chosen,
                "scheduled_that_day": load.get(chosen, 0),
            },
        )
        return chosen
