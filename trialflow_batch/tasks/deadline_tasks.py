"""
Deadline sweep: cancel sessions whose purchase day has passed.

A session that was accepted for a purchase day but never submitted a
purchase by the end of that day (UTC) is cancelled by the system actor
and its slot is returned to the campaign.

The candidate query is only a pre-filter.  ``SessionLifecycleEngine.expire``
re-checks status and deadline under the row lock, so a session whose
tester submitted the purchase between the query and the item is skipped.
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime
from uuid import UUID

from sqlalchemy.orm import Session

from trialflow_batch.domain.types import SweepItem, SweepItemStatus
from trialflow_batch.tasks.base import SweepTaskResult
from trialflow_kernel.domain.dtos import Actor
from trialflow_kernel.selectors.session_selector import SessionSelector
from trialflow_kernel.services.session_lifecycle import SessionLifecycleEngine


class ExpiredPurchaseDeadlineTask:
    """Expire one session per item."""

    def __init__(
        self,
        engine_factory: Callable[[Session], SessionLifecycleEngine],
        batch_limit: int | None = None,
        actor: Actor | None = None,
    ):
        self._engine_factory = engine_factory
        self._batch_limit = batch_limit
        self._actor = actor or Actor.system()

    @property
    def task_type(self) -> str:
        return "sessions.expire_purchase_deadlines"

    @property
    def description(self) -> str:
        return "Cancel sessions whose scheduled purchase day has passed"

    def prepare_items(self, session: Session, as_of: datetime) -> tuple[SweepItem, ...]:
        ids = SessionSelector(session).find_expired_purchase_deadlines(
            as_of.date(), limit=self._batch_limit
        )
        return tuple(
            SweepItem(item_index=i, item_key=str(session_id))
            for i, session_id in enumerate(ids)
        )

    def execute_item(
        self,
        item: SweepItem,
        session: Session,
        as_of: datetime,
    ) -> SweepTaskResult:
        engine = self._engine_factory(session)
        info = engine.expire(UUID(item.item_key), self._actor)
        events, _ = engine.drain_effects()
        if info is None:
            return SweepTaskResult(status=SweepItemStatus.SKIPPED)
        return SweepTaskResult(
            status=SweepItemStatus.SUCCEEDED,
            result_data={
                "campaign_id": str(info.campaign_id),
                "scheduled_purchase_date": info.scheduled_purchase_date.isoformat(),
            },
            events=tuple(events),
        )
