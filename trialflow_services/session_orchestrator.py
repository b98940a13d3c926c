"""
trialflow_services.session_orchestrator -- Command entry point for sessions.

Responsibility:
    Runs each lifecycle command in its own transaction, then -- only after
    commit -- settles the money the command made owed and publishes the
    command's events.  Also offers the read side (session, progress,
    deadline, settlement queries) and operator retry of failed settlements.

Architecture position:
    Services -- stateful orchestration over the kernel.  The only place
    that opens transactions for interactive commands and the only caller
    of RewardSettlement and NotificationSink.

Invariants enforced:
    - A command either commits completely (status, timestamps, slot
      counter, settlement records) or not at all.
    - Settlement never runs inside the command transaction; a settlement
      failure leaves the session as committed, marks the record FAILED,
      logs ``settlement_failed`` at ERROR and emits SETTLEMENT_FAILED.
    - A notification failure is logged and never undoes a transition.
    - A SETTLED record is never paid twice.

Failure modes:
    - TrialflowError subclasses from the kernel are re-raised unchanged
      after the rollback.
    - Unexpected errors are logged with ``exc_info`` and re-raised.
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from typing import Any, TypeVar
from uuid import UUID, uuid4

from sqlalchemy.orm import Session, sessionmaker

from trialflow_kernel.db.engine import session_scope
from trialflow_kernel.domain.clock import Clock, SystemClock
from trialflow_kernel.domain.deadlines import DeadlineInfo
from trialflow_kernel.domain.dtos import (
    Actor,
    PurchaseProof,
    SessionInfo,
    StepProgressInfo,
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
from trialflow_kernel.domain.pricing import PricePolicy, PriceRange
from trialflow_kernel.domain.scheduling import SchedulingPolicy
from trialflow_kernel.domain.values import SessionStatus, SettlementStatus
from trialflow_kernel.exceptions import (
    SessionNotFoundError,
    SettlementFailedError,
    SettlementNotFoundError,
    TrialflowError,
)
from trialflow_kernel.logging_config import LogContext, get_logger
from trialflow_kernel.models.session import TestSession
from trialflow_kernel.models.settlement import SettlementRecord
from trialflow_kernel.selectors.session_selector import SessionSelector
from trialflow_kernel.selectors.settlement_selector import SettlementInfo, SettlementSelector
from trialflow_kernel.services.distribution_scheduler import DistributionScheduler
from trialflow_kernel.services.session_lifecycle import SessionLifecycleEngine
from trialflow_kernel.services.step_progress import StepProgressTracker
from trialflow_services.collaborators import (
    LoggingNotificationSink,
    NotificationSink,
    PayoutDirectory,
    PayoutGateway,
)
from trialflow_services.settlement_router import SettlementRouter

logger = get_logger("services.session_orchestrator")

T = TypeVar("T")


class SessionOrchestrator:
    """
    Transactional façade over SessionLifecycleEngine.

    Contract:
        Constructed with a session factory and the collaborators; every
        public command opens one transaction, returns the committed
        ``SessionInfo``, then dispatches effects.

    Guarantees:
        - Effects of a rolled-back command are discarded, never dispatched.
        - Every command runs with ``correlation_id``, ``session_id``,
          ``campaign_id`` and ``actor_id`` bound into the log context.

    Non-goals:
        - No retries of the command itself; OptimisticLockError reaches the
          caller, who reloads and tries again.
    """

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        clock: Clock | None = None,
        eligibility: EligibilityChecker | None = None,
        notifications: NotificationSink | None = None,
        payout_directory: PayoutDirectory | None = None,
        payout_gateway: PayoutGateway | None = None,
        price_policy: PricePolicy | None = None,
        scheduling_policy: SchedulingPolicy | None = None,
        currency: str = "EUR",
    ) -> None:
        self._factory = session_factory
        self._clock = clock or SystemClock()
        self._eligibility = eligibility or OpenEligibility()
        self._notifications = notifications or LoggingNotificationSink()
        self._directory = payout_directory
        self._gateway = payout_gateway
        self._price_policy = price_policy or PricePolicy()
        self._scheduling_policy = scheduling_policy or SchedulingPolicy()
        self._currency = currency

    # ------------------------------------------------------------------
    # Wiring
    # ------------------------------------------------------------------

    def build_engine(self, session: Session) -> SessionLifecycleEngine:
        return SessionLifecycleEngine(
            session,
            self._clock,
            eligibility=self._eligibility,
            scheduler=DistributionScheduler(session, self._clock, self._scheduling_policy),
            tracker=StepProgressTracker(session, self._clock),
            price_policy=self._price_policy,
        )

    def _router(self, session: Session) -> SettlementRouter:
        return SettlementRouter(
            session,
            self._clock,
            directory=self._directory,
            gateway=self._gateway,
            currency=self._currency,
        )

    # ------------------------------------------------------------------
    # Command execution
    # ------------------------------------------------------------------

    def _run(
        self,
        action: str,
        command: Callable[[SessionLifecycleEngine], T],
        actor: Actor | None,
        session_id: UUID | None = None,
        campaign_id: UUID | None = None,
    ) -> T:
        with LogContext.bind(
            correlation_id=uuid4(),
            session_id=session_id,
            campaign_id=campaign_id,
            actor_id=actor.actor_id if actor else None,
        ):
            try:
                with session_scope(self._factory) as session:
                    engine = self.build_engine(session)
                    result = command(engine)
                    events, settlements = engine.drain_effects()
            except TrialflowError as exc:
                logger.info(
                    "command_refused",
                    extra={"action": action, "error_code": exc.code, "error": str(exc)},
                )
                raise
            except Exception:
                logger.exception("command_failed", extra={"action": action})
                raise

            events = list(events)
            for instruction in settlements:
                events.extend(self._settle(instruction))
            self.publish(events)
            return result

    def publish(self, events: Sequence[SessionEvent]) -> None:
        """Hand committed events to the sink; failures are logged per event."""
        for event in events:
            try:
                self._notifications.publish(event)
            except Exception:
                logger.exception(
                    "notification_publish_failed",
                    extra={
                        "event_type": event.event_type,
                        "session_id": str(event.session_id),
                    },
                )

    # ------------------------------------------------------------------
    # Settlement
    # ------------------------------------------------------------------

    def _settlement_event(
        self,
        instruction: SettlementInstruction,
        event_type: SessionEventType,
        **data: Any,
    ) -> SessionEvent:
        return SessionEvent(
            event_type=event_type,
            session_id=instruction.session_id,
            campaign_id=instruction.campaign_id,
            tester_id=instruction.tester_id,
            occurred_at=self._clock.now_utc(),
            data={
                "settlement_id": str(instruction.record_id),
                "kind": instruction.kind.value,
                "amount": str(instruction.amount),
                **data,
            },
        )

    def _settle(self, instruction: SettlementInstruction) -> list[SessionEvent]:
        """
        Pay one committed settlement record.

        The payment and the SETTLED mark share a transaction; on failure a
        fresh transaction marks the record FAILED.
        """
        try:
            with session_scope(self._factory) as session:
                record = session.get(SettlementRecord, instruction.record_id, with_for_update=True)
                if record is None:
                    raise SettlementNotFoundError(str(instruction.record_id))
                if record.status == SettlementStatus.SETTLED:
                    logger.info(
                        "settlement_already_settled",
                        extra={"settlement_id": str(record.id)},
                    )
                    return []

                receipt = self._router(session).settle(
                    instruction.tester_id,
                    instruction.amount,
                    instruction.memo,
                    instruction.session_id,
                )
                record.attempts = (record.attempts or 0) + 1
                record.status = SettlementStatus.SETTLED
                record.channel = receipt.channel
                record.reference = receipt.reference
                record.failure_reason = None
                record.settled_at = self._clock.now_utc()
        except SettlementNotFoundError:
            raise
        except Exception as exc:
            reason = exc.reason if isinstance(exc, SettlementFailedError) else repr(exc)
            logger.error(
                "settlement_failed",
                extra={
                    "settlement_id": str(instruction.record_id),
                    "tester_id": instruction.tester_id,
                    "amount": instruction.amount,
                    "kind": instruction.kind,
                    "reason": reason,
                },
                exc_info=True,
            )
            self._mark_failed(instruction.record_id, reason)
            return [
                self._settlement_event(
                    instruction, SessionEventType.SETTLEMENT_FAILED, reason=reason
                )
            ]

        logger.info(
            "settlement_completed",
            extra={
                "settlement_id": str(instruction.record_id),
                "channel": receipt.channel,
                "reference": receipt.reference,
            },
        )
        return [
            self._settlement_event(
                instruction,
                SessionEventType.PAYMENT_RECEIVED,
                channel=receipt.channel.value,
                reference=receipt.reference,
            )
        ]

    def _mark_failed(self, record_id: UUID, reason: str) -> None:
        try:
            with session_scope(self._factory) as session:
                record = session.get(SettlementRecord, record_id, with_for_update=True)
                if record is None or record.status == SettlementStatus.SETTLED:
                    return
                record.attempts = (record.attempts or 0) + 1
                record.status = SettlementStatus.FAILED
                record.failure_reason = reason[:2000]
        except Exception:
            # Record stays PENDING; retry_outstanding picks it up.
            logger.exception(
                "settlement_mark_failed_error",
                extra={"settlement_id": str(record_id)},
            )

    def retry_settlement(self, record_id: UUID) -> SettlementInfo:
        """
        Re-drive one PENDING or FAILED settlement record.

        Raises:
            SettlementNotFoundError: unknown record.
        """
        with session_scope(self._factory) as session:
            record = session.get(SettlementRecord, record_id)
            if record is None:
                raise SettlementNotFoundError(str(record_id))
            instruction = SettlementInstruction(
                record_id=record.id,
                session_id=record.session_id,
                campaign_id=session.get(TestSession, record.session_id).campaign_id,
                tester_id=record.tester_id,
                kind=record.kind,
                amount=record.amount,
                memo=record.memo,
            )
            already_settled = record.status == SettlementStatus.SETTLED

        with LogContext.bind(correlation_id=uuid4(), session_id=instruction.session_id):
            if not already_settled:
                logger.info(
                    "settlement_retry",
                    extra={"settlement_id": str(record_id)},
                )
                self.publish(self._settle(instruction))

        with session_scope(self._factory) as session:
            return SettlementSelector(session).get(record_id)

    def retry_outstanding(self, limit: int | None = None) -> list[SettlementInfo]:
        """Retry every PENDING/FAILED record, oldest first."""
        with session_scope(self._factory) as session:
            ids = [info.id for info in SettlementSelector(session).outstanding(limit=limit)]
        return [self.retry_settlement(record_id) for record_id in ids]

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    def apply(self, campaign_id: UUID, actor: Actor) -> SessionInfo:
        return self._run(
            "apply",
            lambda e: e.apply(campaign_id, actor),
            actor,
            campaign_id=campaign_id,
        )

    def accept(self, session_id: UUID, actor: Actor) -> SessionInfo:
        return self._run("accept", lambda e: e.accept(session_id, actor), actor, session_id)

    def reject(self, session_id: UUID, actor: Actor, reason: str) -> SessionInfo:
        return self._run(
            "reject", lambda e: e.reject(session_id, actor, reason), actor, session_id
        )

    def complete_step(
        self,
        session_id: UUID,
        actor: Actor,
        step_id: UUID,
        submission: StepSubmission,
    ) -> SessionInfo:
        return self._run(
            "complete_step",
            lambda e: e.complete_step(session_id, actor, step_id, submission),
            actor,
            session_id,
        )

    def validate_price(self, session_id: UUID, actor: Actor, price: Any) -> SessionInfo:
        return self._run(
            "validate_price",
            lambda e: e.validate_price(session_id, actor, price),
            actor,
            session_id,
        )

    def submit_purchase(
        self, session_id: UUID, actor: Actor, proof: PurchaseProof
    ) -> SessionInfo:
        return self._run(
            "submit_purchase",
            lambda e: e.submit_purchase(session_id, actor, proof),
            actor,
            session_id,
        )

    def validate_purchase(self, session_id: UUID, actor: Actor) -> SessionInfo:
        return self._run(
            "validate_purchase",
            lambda e: e.validate_purchase(session_id, actor),
            actor,
            session_id,
        )

    def reject_purchase(self, session_id: UUID, actor: Actor, reason: str) -> SessionInfo:
        return self._run(
            "reject_purchase",
            lambda e: e.reject_purchase(session_id, actor, reason),
            actor,
            session_id,
        )

    def submit_test(
        self,
        session_id: UUID,
        actor: Actor,
        submission_data: dict[str, Any] | None = None,
    ) -> SessionInfo:
        return self._run(
            "submit_test",
            lambda e: e.submit_test(session_id, actor, submission_data),
            actor,
            session_id,
        )

    def validate_test(
        self,
        session_id: UUID,
        actor: Actor,
        rating: Any,
        comment: str | None = None,
    ) -> SessionInfo:
        return self._run(
            "validate_test",
            lambda e: e.validate_test(session_id, actor, rating, comment),
            actor,
            session_id,
        )

    def request_ugc(
        self,
        session_id: UUID,
        actor: Actor,
        rating: Any,
        requests: Sequence[UGCRequestItem],
        comment: str | None = None,
    ) -> SessionInfo:
        return self._run(
            "request_ugc",
            lambda e: e.request_ugc(session_id, actor, rating, requests, comment),
            actor,
            session_id,
        )

    def submit_ugc(
        self,
        session_id: UUID,
        actor: Actor,
        submissions: Sequence[UGCSubmissionItem],
    ) -> SessionInfo:
        return self._run(
            "submit_ugc",
            lambda e: e.submit_ugc(session_id, actor, submissions),
            actor,
            session_id,
        )

    def decline_ugc(self, session_id: UUID, actor: Actor, reason: str) -> SessionInfo:
        return self._run(
            "decline_ugc",
            lambda e: e.decline_ugc(session_id, actor, reason),
            actor,
            session_id,
        )

    def validate_ugc(
        self, session_id: UUID, actor: Actor, comment: str | None = None
    ) -> SessionInfo:
        return self._run(
            "validate_ugc",
            lambda e: e.validate_ugc(session_id, actor, comment),
            actor,
            session_id,
        )

    def reject_ugc(self, session_id: UUID, actor: Actor, reason: str) -> SessionInfo:
        return self._run(
            "reject_ugc",
            lambda e: e.reject_ugc(session_id, actor, reason),
            actor,
            session_id,
        )

    def close(
        self, session_id: UUID, actor: Actor, closing_message: str | None = None
    ) -> SessionInfo:
        return self._run(
            "close",
            lambda e: e.close(session_id, actor, closing_message),
            actor,
            session_id,
        )

    def rate_tester(
        self,
        session_id: UUID,
        actor: Actor,
        rating: Any,
        comment: str | None = None,
    ) -> SessionInfo:
        return self._run(
            "rate_tester",
            lambda e: e.rate_tester(session_id, actor, rating, comment),
            actor,
            session_id,
        )

    def update_rating(
        self,
        session_id: UUID,
        actor: Actor,
        rating: Any,
        comment: str | None = None,
    ) -> SessionInfo:
        return self._run(
            "update_rating",
            lambda e: e.update_rating(session_id, actor, rating, comment),
            actor,
            session_id,
        )

    def cancel(self, session_id: UUID, actor: Actor, reason: str) -> SessionInfo:
        return self._run(
            "cancel", lambda e: e.cancel(session_id, actor, reason), actor, session_id
        )

    def expire(self, session_id: UUID, actor: Actor | None = None) -> SessionInfo | None:
        actor = actor or Actor.system()
        return self._run("expire", lambda e: e.expire(session_id, actor), actor, session_id)

    def dispute(self, session_id: UUID, actor: Actor, reason: str) -> SessionInfo:
        return self._run(
            "dispute", lambda e: e.dispute(session_id, actor, reason), actor, session_id
        )

    def resolve_dispute(self, session_id: UUID, actor: Actor, resolution: str) -> SessionInfo:
        return self._run(
            "resolve_dispute",
            lambda e: e.resolve_dispute(session_id, actor, resolution),
            actor,
            session_id,
        )

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_session(self, session_id: UUID) -> SessionInfo:
        with session_scope(self._factory) as session:
            info = SessionSelector(session).get(session_id)
        if info is None:
            raise SessionNotFoundError(str(session_id))
        return info

    def sessions_for_tester(
        self,
        tester_id: str,
        statuses: Sequence[SessionStatus] | None = None,
    ) -> list[SessionInfo]:
        with session_scope(self._factory) as session:
            return SessionSelector(session).list_for_tester(tester_id, statuses)

    def sessions_for_campaign(
        self,
        campaign_id: UUID,
        statuses: Sequence[SessionStatus] | None = None,
    ) -> list[SessionInfo]:
        with session_scope(self._factory) as session:
            return SessionSelector(session).list_for_campaign(campaign_id, statuses)

    def step_progress(self, session_id: UUID) -> list[StepProgressInfo]:
        with session_scope(self._factory) as session:
            return SessionSelector(session).step_progress(session_id)

    def progress_percentage(self, session_id: UUID) -> int:
        with session_scope(self._factory) as session:
            return self.build_engine(session).progress_percentage(session_id)

    def deadline_info(self, session_id: UUID) -> DeadlineInfo | None:
        with session_scope(self._factory) as session:
            return self.build_engine(session).deadline_info(session_id)

    def price_range(self, campaign_id: UUID) -> PriceRange:
        with session_scope(self._factory) as session:
            return self.build_engine(session).price_range(campaign_id)

    def settlements_for(self, session_id: UUID) -> list[SettlementInfo]:
        with session_scope(self._factory) as session:
            return SettlementSelector(session).for_session(session_id)

    def wallet_balance(self, tester_id: str):
        with session_scope(self._factory) as session:
            return SettlementSelector(session).wallet_balance(tester_id)
