"""
StepProgressTracker -- per-session completion of procedure steps.

Responsibility:
    Creates progress rows, records step completions in procedure order,
    records the validated price on price-validation steps, and answers
    whether every required step is done.

Architecture position:
    Kernel > Services -- flush-only.  Called by the lifecycle engine; never
    changes session status itself.

Invariants enforced:
    - A step is completed only after every lower-positioned step of the
      same procedure.  Price-validation steps are outside this ordering and
      outside the required set; they are completed by price validation.
    - The payload is validated against the step type before anything is
      written.
    - ``completed_at`` is written once; re-completion replaces the payload.
    - "All required complete" counts steps that are required AND belong to a
      required procedure.
    - Progress rows are never deleted.

Failure modes:
    - StepNotFoundError: unknown step, or step of another campaign.
    - PriceStepNotCompletableError: step is a PRICE_VALIDATION step.
    - StepOrderViolationError: an earlier step is not complete.
    - StepPayloadInvalidError: payload does not fit the step type.
"""

from decimal import Decimal
from uuid import UUID

from sqlalchemy import select

from trialflow_kernel.domain.clock import Clock
from trialflow_kernel.domain.dtos import StepProgressInfo, StepSubmission
from trialflow_kernel.domain.step_validation import validate_step_value
from trialflow_kernel.domain.values import StepType
from trialflow_kernel.exceptions import (
    PriceStepNotCompletableError,
    StepNotFoundError,
    StepOrderViolationError,
)
from trialflow_kernel.logging_config import get_logger
from trialflow_kernel.models.procedure import Procedure, Step
from trialflow_kernel.models.step_progress import StepProgress
from trialflow_kernel.selectors.session_selector import SessionSelector
from trialflow_kernel.services.base import BaseService

logger = get_logger("services.step_progress")


class StepProgressTracker(BaseService):
    def __init__(self, session, clock: Clock):
        super().__init__(session)
        self._clock = clock

    # ------------------------------------------------------------------
    # Queries over the campaign's steps
    # ------------------------------------------------------------------

    def _campaign_steps(self, campaign_id: UUID) -> list[tuple[Step, Procedure]]:
        rows = self.session.execute(
            select(Step, Procedure)
            .join(Procedure, Step.procedure_id == Procedure.id)
            .where(Procedure.campaign_id == campaign_id)
            .order_by(Procedure.position, Step.position, Step.id)
        ).all()
        return [(step, procedure) for step, procedure in rows]

    def _required_step_ids(self, campaign_id: UUID) -> set[UUID]:
        return {
            step.id
            for step, procedure in self._campaign_steps(campaign_id)
            if procedure.is_required
            and step.is_required
            and step.step_type != StepType.PRICE_VALIDATION
        }

    def _completed_step_ids(self, session_id: UUID) -> set[UUID]:
        return set(
            self.session.scalars(
                select(StepProgress.step_id).where(
                    StepProgress.session_id == session_id,
                    StepProgress.is_completed.is_(True),
                )
            )
        )

    def _progress_row(self, session_id: UUID, step_id: UUID) -> StepProgress | None:
        return self.session.execute(
            select(StepProgress).where(
                StepProgress.session_id == session_id,
                StepProgress.step_id == step_id,
            )
        ).scalar_one_or_none()

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def initialize(self, session_id: UUID, campaign_id: UUID) -> int:
        """
        Create one open progress row per step of the campaign.

        Existing rows are left alone.

        Returns:
            Number of rows created.
        """
        existing = set(
            self.session.scalars(
                select(StepProgress.step_id).where(StepProgress.session_id == session_id)
            )
        )
        created = 0
        for step, _ in self._campaign_steps(campaign_id):
            if step.id in existing:
                continue
            self.session.add(
                StepProgress(session_id=session_id, step_id=step.id, is_completed=False)
            )
            created += 1
        self.session.flush()
        logger.debug(
            "step_progress_initialized",
            extra={"session_id": str(session_id), "rows_created": created},
        )
        return created

    def complete(
        self,
        session_id: UUID,
        campaign_id: UUID,
        step_id: UUID,
        submission: StepSubmission,
    ) -> StepProgressInfo:
        """
        Mark ``step_id`` complete for the session.

        Preconditions:
            The caller has already checked the session status and actor.
        """
        step = self.session.get(Step, step_id)
        if step is None or step.procedure.campaign_id != campaign_id:
            raise StepNotFoundError(str(step_id))

        if step.step_type == StepType.PRICE_VALIDATION:
            raise PriceStepNotCompletableError(str(step_id))

        completed = self._completed_step_ids(session_id)
        for earlier in step.procedure.steps:
            if earlier.id == step.id or earlier.position >= step.position:
                continue
            if earlier.step_type == StepType.PRICE_VALIDATION:
                continue
            if earlier.id not in completed:
                raise StepOrderViolationError(str(step_id), str(earlier.id), earlier.title)

        validate_step_value(step.step_type, submission.response)

        row = self._progress_row(session_id, step_id)
        if row is None:
            row = StepProgress(session_id=session_id, step_id=step_id, is_completed=False)
            self.session.add(row)

        first_completion = not row.is_completed
        row.is_completed = True
        if row.completed_at is None:
            row.completed_at = self._clock.now_utc()
        row.submission = submission.to_payload()
        self.session.flush()

        logger.info(
            "step_completed",
            extra={
                "session_id": str(session_id),
                "step_id": str(step_id),
                "step_type": step.step_type,
                "first_completion": first_completion,
            },
        )
        return StepProgressInfo.from_model(row, step)

    def record_price(self, session_id: UUID, campaign_id: UUID, price: Decimal) -> int:
        """
        Complete every PRICE_VALIDATION step of the campaign with ``price``.

        Returns:
            Number of price steps recorded.
        """
        now = self._clock.now_utc()
        recorded = 0
        for step, _ in self._campaign_steps(campaign_id):
            if step.step_type != StepType.PRICE_VALIDATION:
                continue
            row = self._progress_row(session_id, step.id)
            if row is None:
                row = StepProgress(session_id=session_id, step_id=step.id, is_completed=False)
                self.session.add(row)
            row.is_completed = True
            if row.completed_at is None:
                row.completed_at = now
            row.validated_price = price
            row.submission = {"response": str(price), "comment": None, "attachments": []}
            recorded += 1
        self.session.flush()
        return recorded

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def has_required_steps(self, campaign_id: UUID) -> bool:
        return bool(self._required_step_ids(campaign_id))

    def all_required_complete(self, session_id: UUID, campaign_id: UUID) -> bool:
        """True iff every required step of every required procedure is done."""
        required = self._required_step_ids(campaign_id)
        return required <= self._completed_step_ids(session_id)

    def progress(self, session_id: UUID) -> list[StepProgressInfo]:
        return SessionSelector(self.session).step_progress(session_id)

    def completion_percentage(self, session_id: UUID) -> int:
        """Completed rows over all rows, rounded half-up; 0 with no rows."""
        rows = self.progress(session_id)
        if not rows:
            return 0
        done = sum(1 for r in rows if r.is_completed)
        return (done * 200 + len(rows)) // (2 * len(rows))
