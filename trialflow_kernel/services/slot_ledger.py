"""
SlotLedger -- campaign slot accounting.

Responsibility:
    Atomic check-and-decrement (reserve) and increment (release) of a
    campaign's ``available_slots`` counter.

Architecture position:
    Kernel > Services -- flush-only, called by the lifecycle engine inside
    the same transaction that writes the session status.

Invariants enforced:
    - ``available_slots`` never goes negative: reserve is a single
      conditional UPDATE guarded by ``available_slots > 0``, so of two
      transactions racing for the last slot exactly one updates a row.
    - Every reserve/release is paired with a session status change in the
      caller's transaction; neither persists without the other.

Failure modes:
    - NoSlotsAvailableError when the conditional UPDATE matched no row.
    - CampaignNotFoundError when the campaign does not exist.
"""

from uuid import UUID

from sqlalchemy import update

from trialflow_kernel.exceptions import CampaignNotFoundError, NoSlotsAvailableError
from trialflow_kernel.logging_config import get_logger
from trialflow_kernel.models.campaign import Campaign
from trialflow_kernel.services.base import BaseService

logger = get_logger("services.slot_ledger")


class SlotLedger(BaseService):
    """
    Reserve and release campaign slots.

    Guarantees:
        - reserve() decrements by exactly 1 or raises.
        - release() increments by exactly 1.
    """

    def reserve(self, campaign_id: UUID) -> int:
        """
        Take one slot.

        Returns:
            The remaining available slots.

        Raises:
            NoSlotsAvailableError, CampaignNotFoundError
        """
        result = self.session.execute(
            update(Campaign)
            .where(Campaign.id == campaign_id, Campaign.available_slots > 0)
            .values(available_slots=Campaign.available_slots - 1)
            .execution_options(synchronize_session="fetch")
        )
        if result.rowcount == 0:
            if self.session.get(Campaign, campaign_id) is None:
                raise CampaignNotFoundError(str(campaign_id))
            logger.info("slot_reserve_refused", extra={"campaign_id": str(campaign_id)})
            raise NoSlotsAvailableError(str(campaign_id))

        self.session.flush()
        remaining = self.available(campaign_id)
        logger.info(
            "slot_reserved",
            extra={"campaign_id": str(campaign_id), "available_slots": remaining},
        )
        return remaining

    def release(self, campaign_id: UUID) -> int:
        """
        Return one slot.

        Returns:
            The available slots after the release.
        """
        result = self.session.execute(
            update(Campaign)
            .where(Campaign.id == campaign_id)
            .values(available_slots=Campaign.available_slots + 1)
            .execution_options(synchronize_session="fetch")
        )
        if result.rowcount == 0:
            raise CampaignNotFoundError(str(campaign_id))

        self.session.flush()
        remaining = self.available(campaign_id)
        logger.info(
            "slot_released",
            extra={"campaign_id": str(campaign_id), "available_slots": remaining},
        )
        return remaining

    def available(self, campaign_id: UUID) -> int:
        campaign = self.session.get(Campaign, campaign_id, populate_existing=True)
        if campaign is None:
            raise CampaignNotFoundError(str(campaign_id))
        return campaign.available_slots
