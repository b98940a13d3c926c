"""
SessionLifecycleEngine -- the test session state machine.

Responsibility:
    Every change to a test session's status goes through this service.  It
    checks the actor's role, the current status against the fixed session
    workflow, and the submitted fields; then writes the new status together
    with its timestamp, reserves or releases the campaign slot in the same
    transaction, and queues the events and settlement instructions the
    transition owes the outside world.

Architecture position:
    Kernel > Services -- flush-only.  The caller (SessionOrchestrator or the
    deadline sweep) owns the transaction, commits it, and only then
    dispatches the queued effects.

Invariants enforced:
    - Role before status before fields: a wrong actor always gets
      AccessDeniedError, a wrong status InvalidSessionStateError naming the
      required status(es), a bad field a ValidationFailedError subclass.
    - Status and its timestamp are written in one flush; transition
      timestamps are set once and never cleared.
    - Slot reservation/release and the status change that causes it share
      the caller's transaction.
    - Cancellation returns the slot only from ACCEPTED or IN_PROGRESS;
      deadline expiry returns it from every pre-purchase status.
    - The session row is read with SELECT ... FOR UPDATE and written with an
      optimistic ``version`` check; a lost race surfaces as
      OptimisticLockError.
    - Settlement and notification never happen here; they are queued.

Failure modes:
    - NotFoundError subclasses for unknown session, campaign or step.
    - AccessDeniedError, PreconditionFailedError, ValidationFailedError
      subclasses as above.
    - OptimisticLockError on a concurrent write to the same session.
"""

from collections.abc import Sequence
from datetime import date
from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm.exc import StaleDataError

from trialflow_kernel.db.types import ZERO, to_money
from trialflow_kernel.domain import session_workflow as wf
from trialflow_kernel.domain.clock import Clock
from trialflow_kernel.domain.deadlines import (
    DeadlineInfo,
    deadline_info,
    is_deadline_expired,
    is_purchase_day,
)
from trialflow_kernel.domain.dtos import (
    Actor,
    PurchaseProof,
    SessionInfo,
    StepSubmission,
    UGCRequestItem,
    UGCSubmissionItem,
)
from trialflow_kernel.domain.eligibility import EligibilityChecker, OpenEligibility
from trialflow_kernel.domain.events import (
    SessionEvent,
    SessionEventType,
    SettlementInstruction,
)
from trialflow_kernel.domain.pricing import PricePolicy, PriceRange, check_price, price_range
from trialflow_kernel.domain.step_validation import is_valid_rating
from trialflow_kernel.domain.values import (
    PRE_PURCHASE_STATUSES,
    ActorRole,
    CampaignStatus,
    SessionStatus,
    SettlementKind,
    SettlementStatus,
)
from trialflow_kernel.domain.workflow import Transition
from trialflow_kernel.exceptions import (
    AccessDeniedError,
    AlreadyAppliedError,
    AlreadyRatedError,
    CampaignNotActiveError,
    CampaignNotEndedError,
    CampaignNotFoundError,
    InvalidAmountError,
    InvalidRatingError,
    InvalidSessionStateError,
    MissingFieldError,
    NoSlotsAvailableError,
    NotEligibleError,
    NotRatedError,
    OptimisticLockError,
    PriceAlreadyValidatedError,
    PriceMismatchError,
    PriceOutOfRangeError,
    PurchaseDeadlineExpiredError,
    SessionNotFoundError,
    WrongPurchaseDayError,
)
from trialflow_kernel.logging_config import get_logger
from trialflow_kernel.models.campaign import Campaign
from trialflow_kernel.models.session import TestSession
from trialflow_kernel.models.settlement import SettlementRecord
from trialflow_kernel.services.base import BaseService
from trialflow_kernel.services.distribution_scheduler import DistributionScheduler
from trialflow_kernel.services.slot_ledger import SlotLedger
from trialflow_kernel.services.step_progress import StepProgressTracker

logger = get_logger("services.session_lifecycle")

S = SessionStatus

_OWNER = "the campaign owner"
_OWNER_OR_ADMIN = "the campaign owner or an admin"
_TESTER = "the session's tester"


class SessionLifecycleEngine(BaseService):
    """
    Drives test sessions through their lifecycle.

    Contract:
        Each public operation takes the acting identity as an ``Actor`` and
        returns a frozen ``SessionInfo``.  Side effects owed after commit are
        collected on the engine; ``drain_effects()`` hands them to the caller.

    Guarantees:
        - Never commits or rolls back.
        - A raised error leaves no queued effects for that operation.

    Non-goals:
        - Administrative overrides (force-complete, force-reject, arbitrary
          status changes) are not offered.
        - Does not deliver notifications or move money.
    """

    def __init__(
        self,
        session,
        clock: Clock,
        eligibility: EligibilityChecker | None = None,
        scheduler: DistributionScheduler | None = None,
        tracker: StepProgressTracker | None = None,
        ledger: SlotLedger | None = None,
        price_policy: PricePolicy | None = None,
    ):
        super().__init__(session)
        self._clock = clock
        self._eligibility = eligibility or OpenEligibility()
        self._scheduler = scheduler or DistributionScheduler(session, clock)
        self._tracker = tracker or StepProgressTracker(session, clock)
        self._ledger = ledger or SlotLedger(session)
        self._price_policy = price_policy or PricePolicy()
        self._events: list[SessionEvent] = []
        self._settlements: list[SettlementInstruction] = []

    # ==================================================================
    # Effects
    # ==================================================================

    def drain_effects(self) -> tuple[list[SessionEvent], list[SettlementInstruction]]:
        """Hand over and forget the queued events and settlement instructions."""
        events, settlements = self._events, self._settlements
        self._events, self._settlements = [], []
        return events, settlements

    def discard_effects(self) -> None:
        self._events, self._settlements = [], []

    # ==================================================================
    # Loading and checks
    # ==================================================================

    def _load(self, session_id: UUID) -> TestSession:
        row = self.session.get(
            TestSession,
            session_id,
            with_for_update=True,
            populate_existing=True,
        )
        if row is None:
            raise SessionNotFoundError(str(session_id))
        return row

    def _campaign(self, campaign_id: UUID) -> Campaign:
        campaign = self.session.get(Campaign, campaign_id)
        if campaign is None:
            raise CampaignNotFoundError(str(campaign_id))
        return campaign

    @staticmethod
    def _require_tester(row: TestSession, actor: Actor, action: str) -> None:
        if actor.role != ActorRole.TESTER or actor.actor_id != row.tester_id:
            raise AccessDeniedError(actor.actor_id, action, _TESTER)

    @staticmethod
    def _require_owner(
        campaign: Campaign,
        actor: Actor,
        action: str,
        allow_admin: bool = False,
    ) -> None:
        if actor.role == ActorRole.OWNER and actor.actor_id == campaign.owner_id:
            return
        if allow_admin and actor.role == ActorRole.ADMIN:
            return
        raise AccessDeniedError(
            actor.actor_id, action, _OWNER_OR_ADMIN if allow_admin else _OWNER
        )

    @staticmethod
    def _require_status(row: TestSession, action: str) -> None:
        if not wf.is_allowed(action, S(row.status)):
            raise InvalidSessionStateError(
                str(row.id),
                action,
                S(row.status).value,
                [s.value for s in wf.sources_for(action)],
            )

    @staticmethod
    def _require_text(value: str | None, field_name: str, action: str) -> str:
        if value is None or not str(value).strip():
            raise MissingFieldError(field_name, action)
        return str(value).strip()

    @staticmethod
    def _require_rating(rating: Any) -> int:
        if not is_valid_rating(rating):
            raise InvalidRatingError(rating)
        return rating

    @staticmethod
    def _amount(value: Any, field_name: str) -> Decimal:
        try:
            amount = to_money(value)
        except ValueError:
            raise InvalidAmountError(field_name, value) from None
        if amount < ZERO:
            raise InvalidAmountError(field_name, value)
        return amount

    # ==================================================================
    # Writing
    # ==================================================================

    def _edge(self, row: TestSession, to_status: SessionStatus, action: str) -> Transition:
        edge = wf.transition_for(action, S(row.status), to_status)
        if edge is None:
            raise InvalidSessionStateError(
                str(row.id),
                action,
                S(row.status).value,
                [s.value for s in wf.sources_for(action)],
            )
        return edge

    def _transition(self, row: TestSession, to_status: SessionStatus, action: str) -> Transition:
        """Move ``row`` along the declared edge and return it."""
        edge = self._edge(row, to_status, action)
        from_status = S(row.status)
        row.status = to_status
        logger.info(
            "session_transition",
            extra={
                "session_id": str(row.id),
                "campaign_id": str(row.campaign_id),
                "action": action,
                "from_status": from_status,
                "to_status": to_status,
            },
        )
        return edge

    def _flush(self, row: TestSession, action: str) -> None:
        # A failed flush expires the row, so its id must be read first
        session_id = str(row.id)
        try:
            self.session.flush()
        except StaleDataError as exc:
            logger.warning(
                "session_version_conflict",
                extra={"session_id": session_id, "action": action},
            )
            raise OptimisticLockError(session_id, action) from exc

    def _emit(
        self,
        row: TestSession,
        event_type: SessionEventType,
        actor: Actor | None = None,
        **data: Any,
    ) -> None:
        self._events.append(
            SessionEvent(
                event_type=event_type,
                session_id=row.id,
                campaign_id=row.campaign_id,
                tester_id=row.tester_id,
                occurred_at=self._clock.now_utc(),
                actor_id=actor.actor_id if actor else None,
                data=data,
            )
        )

    def _queue_settlement(
        self,
        row: TestSession,
        kind: SettlementKind,
        amount: Decimal,
        memo: str,
    ) -> None:
        record = SettlementRecord(
            session_id=row.id,
            tester_id=row.tester_id,
            kind=kind,
            amount=amount,
            memo=memo,
            status=SettlementStatus.PENDING,
            attempts=0,
        )
        self.session.add(record)
        self.session.flush()
        self._settlements.append(
            SettlementInstruction(
                record_id=record.id,
                session_id=row.id,
                campaign_id=row.campaign_id,
                tester_id=row.tester_id,
                kind=kind,
                amount=amount,
                memo=memo,
            )
        )
        logger.info(
            "settlement_queued",
            extra={
                "session_id": str(row.id),
                "settlement_id": str(record.id),
                "kind": kind,
                "amount": amount,
            },
        )

    def _accept_row(self, row: TestSession, campaign: Campaign, actor: Actor) -> None:
        """Schedule, reserve, initialize progress, mark ACCEPTED."""
        edge = self._edge(row, S.ACCEPTED, wf.ACCEPT)
        purchase_day = self._scheduler.next_purchase_date(campaign.id)
        if edge.reserves_slot:
            self._ledger.reserve(campaign.id)

        row.scheduled_purchase_date = purchase_day
        row.accepted_at = self._clock.now_utc()
        self._transition(row, S.ACCEPTED, wf.ACCEPT)
        self._flush(row, wf.ACCEPT)
        self._tracker.initialize(row.id, campaign.id)
        self._emit(
            row,
            SessionEventType.SESSION_ACCEPTED,
            actor,
            scheduled_purchase_date=purchase_day.isoformat() if purchase_day else None,
        )

    # ==================================================================
    # Application and selection
    # ==================================================================

    def apply(self, campaign_id: UUID, actor: Actor) -> SessionInfo:
        """
        Create a session for ``actor`` on ``campaign_id``.

        Auto-accepting campaigns create the session directly in ACCEPTED
        with a purchase date and a reserved slot; otherwise it is PENDING
        and consumes nothing.
        """
        if actor.role != ActorRole.TESTER:
            raise AccessDeniedError(actor.actor_id, wf.APPLY, "a tester")

        campaign = self._campaign(campaign_id)
        if campaign.status != CampaignStatus.ACTIVE:
            raise CampaignNotActiveError(str(campaign_id), CampaignStatus(campaign.status).value)
        if campaign.available_slots <= 0:
            raise NoSlotsAvailableError(str(campaign_id))

        existing = self.session.scalar(
            select(TestSession.id).where(
                TestSession.campaign_id == campaign_id,
                TestSession.tester_id == actor.actor_id,
            )
        )
        if existing is not None:
            raise AlreadyAppliedError(str(campaign_id), actor.actor_id)

        verdict = self._eligibility.check(campaign_id, actor.actor_id)
        if not verdict.eligible:
            logger.info(
                "application_not_eligible",
                extra={
                    "campaign_id": str(campaign_id),
                    "tester_id": actor.actor_id,
                    "reasons": list(verdict.reasons),
                },
            )
            raise NotEligibleError(str(campaign_id), actor.actor_id, verdict.reasons)

        row = TestSession(
            campaign_id=campaign_id,
            tester_id=actor.actor_id,
            status=S.PENDING,
            applied_at=self._clock.now_utc(),
        )
        self.session.add(row)
        try:
            self.session.flush()
        except IntegrityError as exc:
            raise AlreadyAppliedError(str(campaign_id), actor.actor_id) from exc

        logger.info(
            "session_applied",
            extra={
                "session_id": str(row.id),
                "campaign_id": str(campaign_id),
                "tester_id": actor.actor_id,
                "auto_accept": campaign.auto_accept_applications,
            },
        )
        self._emit(row, SessionEventType.SESSION_APPLIED, actor)

        if campaign.auto_accept_applications:
            self._accept_row(row, campaign, actor)

        return SessionInfo.from_model(row)

    def accept(self, session_id: UUID, actor: Actor) -> SessionInfo:
        row = self._load(session_id)
        campaign = self._campaign(row.campaign_id)
        self._require_owner(campaign, actor, wf.ACCEPT, allow_admin=True)
        self._require_status(row, wf.ACCEPT)
        self._accept_row(row, campaign, actor)
        return SessionInfo.from_model(row)

    def reject(self, session_id: UUID, actor: Actor, reason: str) -> SessionInfo:
        row = self._load(session_id)
        campaign = self._campaign(row.campaign_id)
        self._require_owner(campaign, actor, wf.REJECT, allow_admin=True)
        self._require_status(row, wf.REJECT)
        reason = self._require_text(reason, "reason", wf.REJECT)

        row.rejection_reason = reason
        row.rejected_at = self._clock.now_utc()
        self._transition(row, S.REJECTED, wf.REJECT)
        self._flush(row, wf.REJECT)
        self._emit(row, SessionEventType.SESSION_REJECTED, actor, reason=reason)
        return SessionInfo.from_model(row)

    # ==================================================================
    # Procedures and price
    # ==================================================================

    def complete_step(
        self,
        session_id: UUID,
        actor: Actor,
        step_id: UUID,
        submission: StepSubmission,
    ) -> SessionInfo:
        """
        Complete one procedure step.

        The first completion moves ACCEPTED to IN_PROGRESS; once every
        required step is done the session moves to PROCEDURES_COMPLETED.
        """
        row = self._load(session_id)
        self._require_tester(row, actor, wf.COMPLETE_STEP)
        self._require_status(row, wf.COMPLETE_STEP)

        self._tracker.complete(row.id, row.campaign_id, step_id, submission)

        now = self._clock.now_utc()
        if row.status == S.ACCEPTED:
            row.started_at = row.started_at or now
            self._transition(row, S.IN_PROGRESS, wf.COMPLETE_STEP)

        procedures_done = row.status == S.IN_PROGRESS and self._tracker.all_required_complete(
            row.id, row.campaign_id
        )
        if procedures_done:
            row.procedures_completed_at = row.procedures_completed_at or now
            self._transition(row, S.PROCEDURES_COMPLETED, wf.COMPLETE_STEP)

        self._flush(row, wf.COMPLETE_STEP)
        self._emit(row, SessionEventType.STEP_COMPLETED, actor, step_id=str(step_id))
        if procedures_done:
            self._emit(row, SessionEventType.PROCEDURES_COMPLETED, actor)
        return SessionInfo.from_model(row)

    def price_range(self, campaign_id: UUID) -> PriceRange:
        """Acceptable discovered-price range for a campaign's offer."""
        campaign = self._campaign(campaign_id)
        return price_range(
            campaign.expected_price,
            self._price_policy,
            campaign.price_range_min,
            campaign.price_range_max,
        )

    def validate_price(self, session_id: UUID, actor: Actor, price: Any) -> SessionInfo:
        """
        Check the tester's discovered price against the offer.

        Allowed from PROCEDURES_COMPLETED, or from ACCEPTED when the campaign
        has no required steps.
        """
        row = self._load(session_id)
        self._require_tester(row, actor, wf.VALIDATE_PRICE)
        if row.validated_product_price is not None:
            raise PriceAlreadyValidatedError(str(row.id))
        self._require_status(row, wf.VALIDATE_PRICE)
        if row.status == S.ACCEPTED and self._tracker.has_required_steps(row.campaign_id):
            raise InvalidSessionStateError(
                str(row.id),
                wf.VALIDATE_PRICE,
                S.ACCEPTED.value,
                [S.PROCEDURES_COMPLETED.value],
            )

        amount = self._amount(price, "price")
        campaign = self._campaign(row.campaign_id)
        accepted = self.price_range(campaign.id)
        try:
            check_price(str(row.id), amount, campaign.expected_price, accepted, self._price_policy)
        except (PriceOutOfRangeError, PriceMismatchError):
            logger.info(
                "price_validation_refused",
                extra={
                    "session_id": str(row.id),
                    "price": amount,
                    "range_min": accepted.minimum,
                    "range_max": accepted.maximum,
                },
            )
            raise

        row.validated_product_price = amount
        row.price_validated_at = self._clock.now_utc()
        self._transition(row, S.PRICE_VALIDATED, wf.VALIDATE_PRICE)
        self._tracker.record_price(row.id, row.campaign_id, amount)
        self._flush(row, wf.VALIDATE_PRICE)
        self._emit(row, SessionEventType.PRICE_VALIDATED, actor, price=str(amount))
        return SessionInfo.from_model(row)

    # ==================================================================
    # Purchase
    # ==================================================================

    def deadline_info(self, session_id: UUID) -> DeadlineInfo | None:
        row = self.session.get(TestSession, session_id)
        if row is None:
            raise SessionNotFoundError(str(session_id))
        return deadline_info(row.scheduled_purchase_date, self._clock.now_utc())

    def submit_purchase(
        self,
        session_id: UUID,
        actor: Actor,
        proof: PurchaseProof,
    ) -> SessionInfo:
        """
        Record the tester's purchase proof.

        First submission (from PRICE_VALIDATED) must happen on the scheduled
        purchase day: the deadline must not have passed and today must be
        that day.  A resubmission after the owner rejected the proof only
        replaces the proof.
        """
        row = self._load(session_id)
        self._require_tester(row, actor, wf.SUBMIT_PURCHASE)
        self._require_status(row, wf.SUBMIT_PURCHASE)
        resubmission = row.status == S.PURCHASE_SUBMITTED
        if resubmission and row.purchase_rejection_reason is None:
            raise InvalidSessionStateError(
                str(row.id),
                wf.SUBMIT_PURCHASE,
                S.PURCHASE_SUBMITTED.value,
                [S.PRICE_VALIDATED.value],
            )

        order_number = self._require_text(proof.order_number, "order_number", wf.SUBMIT_PURCHASE)
        product_price = (
            self._amount(proof.product_price, "product_price")
            if proof.product_price is not None
            else None
        )
        shipping_cost = (
            self._amount(proof.shipping_cost, "shipping_cost")
            if proof.shipping_cost is not None
            else None
        )

        scheduled = row.scheduled_purchase_date
        if not resubmission and scheduled is not None:
            today = self._clock.today()
            if is_deadline_expired(scheduled, today):
                raise PurchaseDeadlineExpiredError(str(row.id), scheduled)
            if not is_purchase_day(scheduled, today):
                raise WrongPurchaseDayError(str(row.id), scheduled, today)

        now = self._clock.now_utc()
        row.order_number = order_number
        row.purchase_proof_url = proof.purchase_proof_url
        row.product_price = product_price
        row.shipping_cost = shipping_cost
        row.purchase_rejection_reason = None
        row.purchase_submitted_at = row.purchase_submitted_at or now
        self._transition(row, S.PURCHASE_SUBMITTED, wf.SUBMIT_PURCHASE)
        self._flush(row, wf.SUBMIT_PURCHASE)
        self._emit(
            row,
            SessionEventType.PURCHASE_SUBMITTED,
            actor,
            order_number=order_number,
            resubmission=resubmission,
        )
        return SessionInfo.from_model(row)

    def validate_purchase(self, session_id: UUID, actor: Actor) -> SessionInfo:
        row = self._load(session_id)
        self._require_owner(self._campaign(row.campaign_id), actor, wf.VALIDATE_PURCHASE)
        self._require_status(row, wf.VALIDATE_PURCHASE)
        self._require_text(row.order_number, "order_number", wf.VALIDATE_PURCHASE)

        row.purchase_validated_at = self._clock.now_utc()
        self._transition(row, S.PURCHASE_VALIDATED, wf.VALIDATE_PURCHASE)
        self._flush(row, wf.VALIDATE_PURCHASE)
        self._emit(row, SessionEventType.PURCHASE_VALIDATED, actor)
        return SessionInfo.from_model(row)

    def reject_purchase(self, session_id: UUID, actor: Actor, reason: str) -> SessionInfo:
        """Store a rejection reason; the status stays PURCHASE_SUBMITTED."""
        row = self._load(session_id)
        self._require_owner(self._campaign(row.campaign_id), actor, wf.REJECT_PURCHASE)
        self._require_status(row, wf.REJECT_PURCHASE)
        reason = self._require_text(reason, "reason", wf.REJECT_PURCHASE)

        row.purchase_rejection_reason = reason
        row.purchase_rejected_at = row.purchase_rejected_at or self._clock.now_utc()
        self._flush(row, wf.REJECT_PURCHASE)
        self._emit(row, SessionEventType.PURCHASE_REJECTED, actor, reason=reason)
        return SessionInfo.from_model(row)

    # ==================================================================
    # Test submission and validation
    # ==================================================================

    def submit_test(
        self,
        session_id: UUID,
        actor: Actor,
        submission_data: dict[str, Any] | None = None,
    ) -> SessionInfo:
        row = self._load(session_id)
        self._require_tester(row, actor, wf.SUBMIT_TEST)
        self._require_status(row, wf.SUBMIT_TEST)

        row.submission_data = dict(submission_data or {})
        row.submitted_at = row.submitted_at or self._clock.now_utc()
        self._transition(row, S.SUBMITTED, wf.SUBMIT_TEST)
        self._flush(row, wf.SUBMIT_TEST)
        self._emit(row, SessionEventType.TEST_SUBMITTED, actor)
        return SessionInfo.from_model(row)

    def _record_validation(
        self,
        row: TestSession,
        campaign: Campaign,
        rating: int,
        comment: str | None,
    ) -> Decimal:
        now = self._clock.now_utc()
        reward = campaign.reward_amount or ZERO
        row.reward_amount = reward
        row.rating = rating
        row.rating_comment = comment
        row.rated_at = now
        row.test_validated_at = row.test_validated_at or now
        return reward

    def validate_test(
        self,
        session_id: UUID,
        actor: Actor,
        rating: Any,
        comment: str | None = None,
    ) -> SessionInfo:
        """
        Validate the submitted test, rate the tester, and owe the reward.

        The reward comes from the campaign offer.  A positive reward is
        recorded as a PENDING settlement and settled after commit.
        """
        row = self._load(session_id)
        campaign = self._campaign(row.campaign_id)
        self._require_owner(campaign, actor, wf.VALIDATE_TEST, allow_admin=True)
        self._require_status(row, wf.VALIDATE_TEST)
        rating = self._require_rating(rating)

        reward = self._record_validation(row, campaign, rating, comment)
        row.completed_at = row.completed_at or self._clock.now_utc()
        edge = self._transition(row, S.COMPLETED, wf.VALIDATE_TEST)
        self._flush(row, wf.VALIDATE_TEST)

        if edge.settles and reward > ZERO:
            self._queue_settlement(
                row,
                SettlementKind.REWARD,
                reward,
                f"Reward for validated test - campaign {campaign.title}",
            )
        self._emit(
            row,
            SessionEventType.TEST_VALIDATED,
            actor,
            rating=rating,
            reward_amount=str(reward),
        )
        return SessionInfo.from_model(row)

    # ==================================================================
    # Extra content (UGC)
    # ==================================================================

    def request_ugc(
        self,
        session_id: UUID,
        actor: Actor,
        rating: Any,
        requests: Sequence[UGCRequestItem],
        comment: str | None = None,
    ) -> SessionInfo:
        """
        Validate the test and request extra content, each item with a bonus.

        The test reward is owed now; the bonuses are summed into the
        potential bonus and paid at closure if the content is validated.
        """
        row = self._load(session_id)
        campaign = self._campaign(row.campaign_id)
        self._require_owner(campaign, actor, wf.REQUEST_UGC)
        self._require_status(row, wf.REQUEST_UGC)
        rating = self._require_rating(rating)
        if not requests:
            raise MissingFieldError("ugc_requests", wf.REQUEST_UGC)

        payload = []
        potential = ZERO
        for item in requests:
            self._require_text(item.description, "description", wf.REQUEST_UGC)
            bonus = self._amount(item.bonus, "bonus")
            potential += bonus
            payload.append(item.to_payload())

        reward = self._record_validation(row, campaign, rating, comment)
        row.ugc_requests = payload
        row.potential_bonus = potential
        row.ugc_requested_at = row.ugc_requested_at or self._clock.now_utc()
        edge = self._transition(row, S.UGC_REQUESTED, wf.REQUEST_UGC)
        self._flush(row, wf.REQUEST_UGC)

        if edge.settles and reward > ZERO:
            self._queue_settlement(
                row,
                SettlementKind.REWARD,
                reward,
                f"Reward for validated test - campaign {campaign.title}",
            )
        self._emit(
            row,
            SessionEventType.UGC_REQUESTED,
            actor,
            rating=rating,
            request_count=len(payload),
            potential_bonus=str(potential),
        )
        return SessionInfo.from_model(row)

    def submit_ugc(
        self,
        session_id: UUID,
        actor: Actor,
        submissions: Sequence[UGCSubmissionItem],
    ) -> SessionInfo:
        row = self._load(session_id)
        self._require_tester(row, actor, wf.SUBMIT_UGC)
        self._require_status(row, wf.SUBMIT_UGC)
        if not submissions:
            raise MissingFieldError("ugc_submissions", wf.SUBMIT_UGC)

        row.ugc_submissions = [item.to_payload() for item in submissions]
        row.ugc_rejection_reason = None
        row.ugc_submitted_at = row.ugc_submitted_at or self._clock.now_utc()
        self._transition(row, S.UGC_SUBMITTED, wf.SUBMIT_UGC)
        self._flush(row, wf.SUBMIT_UGC)
        self._emit(row, SessionEventType.UGC_SUBMITTED, actor, submission_count=len(submissions))
        return SessionInfo.from_model(row)

    def decline_ugc(self, session_id: UUID, actor: Actor, reason: str) -> SessionInfo:
        """Tester declines the extra content; no bonus will be paid."""
        row = self._load(session_id)
        self._require_tester(row, actor, wf.DECLINE_UGC)
        self._require_status(row, wf.DECLINE_UGC)
        reason = self._require_text(reason, "reason", wf.DECLINE_UGC)

        row.ugc_decline_reason = reason
        row.potential_bonus = ZERO
        row.ugc_declined_at = row.ugc_declined_at or self._clock.now_utc()
        self._transition(row, S.PENDING_CLOSURE, wf.DECLINE_UGC)
        self._flush(row, wf.DECLINE_UGC)
        self._emit(row, SessionEventType.UGC_DECLINED, actor, reason=reason)
        return SessionInfo.from_model(row)

    def validate_ugc(
        self,
        session_id: UUID,
        actor: Actor,
        comment: str | None = None,
    ) -> SessionInfo:
        row = self._load(session_id)
        self._require_owner(self._campaign(row.campaign_id), actor, wf.VALIDATE_UGC)
        self._require_status(row, wf.VALIDATE_UGC)

        row.ugc_validated_at = row.ugc_validated_at or self._clock.now_utc()
        self._transition(row, S.PENDING_CLOSURE, wf.VALIDATE_UGC)
        self._flush(row, wf.VALIDATE_UGC)
        self._emit(row, SessionEventType.UGC_VALIDATED, actor, comment=comment)
        return SessionInfo.from_model(row)

    def reject_ugc(self, session_id: UUID, actor: Actor, reason: str) -> SessionInfo:
        """Send the content back for correction (UGC_SUBMITTED -> UGC_REQUESTED)."""
        row = self._load(session_id)
        self._require_owner(self._campaign(row.campaign_id), actor, wf.REJECT_UGC)
        self._require_status(row, wf.REJECT_UGC)
        reason = self._require_text(reason, "reason", wf.REJECT_UGC)

        row.ugc_rejection_reason = reason
        row.ugc_rejected_at = row.ugc_rejected_at or self._clock.now_utc()
        self._transition(row, S.UGC_REQUESTED, wf.REJECT_UGC)
        self._flush(row, wf.REJECT_UGC)
        self._emit(row, SessionEventType.UGC_REJECTED, actor, reason=reason)
        return SessionInfo.from_model(row)

    def close(
        self,
        session_id: UUID,
        actor: Actor,
        closing_message: str | None = None,
    ) -> SessionInfo:
        """
        Complete a PENDING_CLOSURE session.

        The potential bonus becomes the final bonus only if the content was
        validated; a positive final bonus is owed to the tester.
        """
        row = self._load(session_id)
        campaign = self._campaign(row.campaign_id)
        self._require_owner(campaign, actor, wf.CLOSE)
        self._require_status(row, wf.CLOSE)

        final_bonus = (row.potential_bonus or ZERO) if row.ugc_validated_at else ZERO
        now = self._clock.now_utc()
        row.final_bonus = final_bonus
        row.closed_at = row.closed_at or now
        row.completed_at = row.completed_at or now
        edge = self._transition(row, S.COMPLETED, wf.CLOSE)
        self._flush(row, wf.CLOSE)

        if edge.settles and final_bonus > ZERO:
            self._queue_settlement(
                row,
                SettlementKind.UGC_BONUS,
                final_bonus,
                f"Extra content bonus - campaign {campaign.title}",
            )
        self._emit(
            row,
            SessionEventType.SESSION_CLOSED,
            actor,
            final_bonus=str(final_bonus),
            closing_message=closing_message,
        )
        return SessionInfo.from_model(row)

    # ==================================================================
    # Ratings
    # ==================================================================

    def rate_tester(
        self,
        session_id: UUID,
        actor: Actor,
        rating: Any,
        comment: str | None = None,
    ) -> SessionInfo:
        """Rate a tester once the campaign has ended, without completing."""
        row = self._load(session_id)
        campaign = self._campaign(row.campaign_id)
        self._require_owner(campaign, actor, wf.RATE_TESTER)
        self._require_status(row, wf.RATE_TESTER)
        if not campaign.has_ended(self._clock.today()):
            raise CampaignNotEndedError(str(campaign.id))
        if row.rating is not None:
            raise AlreadyRatedError(str(row.id))
        rating = self._require_rating(rating)

        row.rating = rating
        row.rating_comment = comment
        row.rated_at = self._clock.now_utc()
        self._flush(row, wf.RATE_TESTER)
        self._emit(row, SessionEventType.TESTER_RATED, actor, rating=rating)
        return SessionInfo.from_model(row)

    def update_rating(
        self,
        session_id: UUID,
        actor: Actor,
        rating: Any,
        comment: str | None = None,
    ) -> SessionInfo:
        row = self._load(session_id)
        self._require_owner(self._campaign(row.campaign_id), actor, wf.UPDATE_RATING)
        self._require_status(row, wf.UPDATE_RATING)
        if row.rating is None:
            raise NotRatedError(str(row.id))
        rating = self._require_rating(rating)

        previous = row.rating
        row.rating = rating
        row.rating_comment = comment
        row.rated_at = self._clock.now_utc()
        self._flush(row, wf.UPDATE_RATING)
        self._emit(
            row,
            SessionEventType.TESTER_RATED,
            actor,
            rating=rating,
            previous_rating=previous,
        )
        return SessionInfo.from_model(row)

    # ==================================================================
    # Cancellation, expiry, disputes
    # ==================================================================

    def cancel(self, session_id: UUID, actor: Actor, reason: str) -> SessionInfo:
        """
        Tester withdraws.  The slot comes back only from ACCEPTED or
        IN_PROGRESS.
        """
        row = self._load(session_id)
        self._require_tester(row, actor, wf.CANCEL)
        self._require_status(row, wf.CANCEL)
        reason = self._require_text(reason, "reason", wf.CANCEL)

        release = wf.releases_slot(wf.CANCEL, S(row.status))
        if release:
            self._ledger.release(row.campaign_id)
        row.cancellation_reason = reason
        row.cancelled_at = row.cancelled_at or self._clock.now_utc()
        self._transition(row, S.CANCELLED, wf.CANCEL)
        self._flush(row, wf.CANCEL)
        self._emit(
            row,
            SessionEventType.SESSION_CANCELLED,
            actor,
            reason=reason,
            slot_released=release,
        )
        return SessionInfo.from_model(row)

    def expire(self, session_id: UUID, actor: Actor | None = None) -> SessionInfo | None:
        """
        Cancel a session whose purchase day passed without a purchase.

        Re-checks status and deadline under the row lock, so running it on a
        session that is no longer eligible (already cancelled, purchase
        submitted meanwhile) is a no-op returning None.
        """
        actor = actor or Actor.system()
        if actor.role not in (ActorRole.SYSTEM, ActorRole.ADMIN):
            raise AccessDeniedError(actor.actor_id, wf.EXPIRE, "the deadline sweep")

        row = self._load(session_id)
        scheduled = row.scheduled_purchase_date
        today = self._clock.today()
        if (
            S(row.status) not in PRE_PURCHASE_STATUSES
            or scheduled is None
            or not is_deadline_expired(scheduled, today)
        ):
            logger.debug(
                "expire_skipped",
                extra={"session_id": str(row.id), "status": S(row.status)},
            )
            return None

        from_status = S(row.status)
        if wf.releases_slot(wf.EXPIRE, from_status):
            self._ledger.release(row.campaign_id)
        row.cancellation_reason = (
            f"Purchase deadline expired (scheduled for {scheduled.isoformat()})"
        )
        row.cancelled_at = row.cancelled_at or self._clock.now_utc()
        self._transition(row, S.CANCELLED, wf.EXPIRE)
        self._flush(row, wf.EXPIRE)
        logger.info(
            "purchase_deadline_expired",
            extra={
                "session_id": str(row.id),
                "campaign_id": str(row.campaign_id),
                "scheduled_purchase_date": scheduled,
                "from_status": from_status,
            },
        )
        self._emit(
            row,
            SessionEventType.DEADLINE_EXPIRED,
            actor,
            scheduled_purchase_date=scheduled.isoformat(),
            from_status=from_status.value,
        )
        return SessionInfo.from_model(row)

    def dispute(self, session_id: UUID, actor: Actor, reason: str) -> SessionInfo:
        """Open a dispute.  Tester, campaign owner or admin."""
        row = self._load(session_id)
        campaign = self._campaign(row.campaign_id)
        is_party = (
            (actor.role == ActorRole.TESTER and actor.actor_id == row.tester_id)
            or (actor.role == ActorRole.OWNER and actor.actor_id == campaign.owner_id)
            or actor.role == ActorRole.ADMIN
        )
        if not is_party:
            raise AccessDeniedError(
                actor.actor_id, wf.DISPUTE, "the tester, the campaign owner or an admin"
            )
        self._require_status(row, wf.DISPUTE)
        reason = self._require_text(reason, "reason", wf.DISPUTE)

        row.dispute_reason = reason
        row.disputed_at = row.disputed_at or self._clock.now_utc()
        from_status = S(row.status)
        self._transition(row, S.DISPUTED, wf.DISPUTE)
        self._flush(row, wf.DISPUTE)
        self._emit(
            row,
            SessionEventType.DISPUTE_CREATED,
            actor,
            reason=reason,
            from_status=from_status.value,
        )
        return SessionInfo.from_model(row)

    def resolve_dispute(self, session_id: UUID, actor: Actor, resolution: str) -> SessionInfo:
        """Record an admin's resolution.  The status stays DISPUTED."""
        row = self._load(session_id)
        if actor.role != ActorRole.ADMIN:
            raise AccessDeniedError(actor.actor_id, wf.RESOLVE_DISPUTE, "an admin")
        self._require_status(row, wf.RESOLVE_DISPUTE)
        resolution = self._require_text(resolution, "resolution", wf.RESOLVE_DISPUTE)

        row.dispute_resolution = resolution
        row.dispute_resolved_at = self._clock.now_utc()
        self._flush(row, wf.RESOLVE_DISPUTE)
        self._emit(row, SessionEventType.DISPUTE_RESOLVED, actor, resolution=resolution)
        return SessionInfo.from_model(row)

    # ==================================================================
    # Reads
    # ==================================================================

    def progress_percentage(self, session_id: UUID) -> int:
        return self._tracker.completion_percentage(session_id)

    def scheduled_purchase_date(self, session_id: UUID) -> date | None:
        row = self.session.get(TestSession, session_id)
        if row is None:
            raise SessionNotFoundError(str(session_id))
        return row.scheduled_purchase_date
