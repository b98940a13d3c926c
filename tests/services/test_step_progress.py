"""Tests for StepProgressTracker: ordering, payload checks, completion rules."""

from datetime import datetime, timezone
from decimal import Decimal
from uuid import uuid4

import pytest

from trialflow_kernel.domain.dtos import StepSubmission
from trialflow_kernel.domain.values import SessionStatus, StepType
from trialflow_kernel.exceptions import (
    PriceStepNotCompletableError,
    StepNotFoundError,
    StepOrderViolationError,
    StepPayloadInvalidError,
)
from trialflow_kernel.models.session import TestSession
from trialflow_kernel.services.step_progress import StepProgressTracker

TEXT = StepSubmission(response="Looks good")


@pytest.fixture
def tracker(session, clock):
    return StepProgressTracker(session, clock)


def new_session(session, campaign_id, tester_id="tester-1"):
    row = TestSession(
        campaign_id=campaign_id,
        tester_id=tester_id,
        status=SessionStatus.ACCEPTED,
        applied_at=datetime(2024, 1, 1, tzinfo=timezone.utc),
    )
    session.add(row)
    session.flush()
    return row


class TestInitialize:
    def test_one_row_per_step(self, session, tracker, make_campaign, make_procedure):
        campaign = make_campaign(session)
        make_procedure(session, campaign.id, [(StepType.TEXT, True), (StepType.PHOTO, False)])
        make_procedure(
            session, campaign.id, [(StepType.PRICE_VALIDATION, True)], position=1, title="Price"
        )
        row = new_session(session, campaign.id)

        assert tracker.initialize(row.id, campaign.id) == 3
        assert tracker.initialize(row.id, campaign.id) == 0
        progress = tracker.progress(row.id)
        assert len(progress) == 3
        assert not any(p.is_completed for p in progress)

    def test_progress_ordered_by_procedure_then_step(
        self, session, tracker, make_campaign, make_procedure
    ):
        campaign = make_campaign(session)
        second = make_procedure(session, campaign.id, [(StepType.TEXT, True)], position=1, title="B")
        first = make_procedure(
            session, campaign.id, [(StepType.TEXT, True), (StepType.TEXT, True)], title="A"
        )
        row = new_session(session, campaign.id)
        tracker.initialize(row.id, campaign.id)

        ids = [p.step_id for p in tracker.progress(row.id)]
        assert ids == [first[0].id, first[1].id, second[0].id]


class TestComplete:
    def test_in_order(self, session, tracker, make_campaign, make_procedure):
        campaign = make_campaign(session)
        steps = make_procedure(session, campaign.id, [(StepType.TEXT, True), (StepType.TEXT, True)])
        row = new_session(session, campaign.id)
        tracker.initialize(row.id, campaign.id)

        info = tracker.complete(row.id, campaign.id, steps[0].id, TEXT)
        assert info.is_completed
        assert info.submission["response"] == "Looks good"

    def test_order_violation_names_blocking_step(
        self, session, tracker, make_campaign, make_procedure
    ):
        campaign = make_campaign(session)
        steps = make_procedure(session, campaign.id, [(StepType.TEXT, True), (StepType.TEXT, True)])
        row = new_session(session, campaign.id)
        tracker.initialize(row.id, campaign.id)

        with pytest.raises(StepOrderViolationError) as exc_info:
            tracker.complete(row.id, campaign.id, steps[1].id, TEXT)
        assert exc_info.value.blocking_step_id == str(steps[0].id)
        assert steps[0].title in str(exc_info.value)

    def test_optional_earlier_step_still_blocks(
        self, session, tracker, make_campaign, make_procedure
    ):
        campaign = make_campaign(session)
        steps = make_procedure(
            session, campaign.id, [(StepType.TEXT, False), (StepType.TEXT, True)]
        )
        row = new_session(session, campaign.id)

        with pytest.raises(StepOrderViolationError):
            tracker.complete(row.id, campaign.id, steps[1].id, TEXT)

    def test_ordering_is_per_procedure(self, session, tracker, make_campaign, make_procedure):
        campaign = make_campaign(session)
        make_procedure(session, campaign.id, [(StepType.TEXT, True)])
        other = make_procedure(session, campaign.id, [(StepType.TEXT, True)], position=1, title="B")
        row = new_session(session, campaign.id)

        info = tracker.complete(row.id, campaign.id, other[0].id, TEXT)
        assert info.is_completed

    def test_price_step_refused(self, session, tracker, make_campaign, make_procedure):
        campaign = make_campaign(session)
        steps = make_procedure(session, campaign.id, [(StepType.PRICE_VALIDATION, True)])
        row = new_session(session, campaign.id)

        with pytest.raises(PriceStepNotCompletableError):
            tracker.complete(row.id, campaign.id, steps[0].id, StepSubmission(response="20"))

    def test_price_step_does_not_block_later_steps(
        self, session, tracker, make_campaign, make_procedure
    ):
        campaign = make_campaign(session)
        steps = make_procedure(
            session, campaign.id, [(StepType.PRICE_VALIDATION, True), (StepType.TEXT, True)]
        )
        row = new_session(session, campaign.id)

        assert tracker.complete(row.id, campaign.id, steps[1].id, TEXT).is_completed

    def test_invalid_payload_writes_nothing(self, session, tracker, make_campaign, make_procedure):
        campaign = make_campaign(session)
        steps = make_procedure(session, campaign.id, [(StepType.PHOTO, True)])
        row = new_session(session, campaign.id)
        tracker.initialize(row.id, campaign.id)

        with pytest.raises(StepPayloadInvalidError):
            tracker.complete(row.id, campaign.id, steps[0].id, StepSubmission(response="nope"))
        assert not tracker.progress(row.id)[0].is_completed

    def test_unknown_step(self, session, tracker, make_campaign):
        campaign = make_campaign(session)
        row = new_session(session, campaign.id)

        with pytest.raises(StepNotFoundError):
            tracker.complete(row.id, campaign.id, uuid4(), TEXT)

    def test_step_of_another_campaign(self, session, tracker, make_campaign, make_procedure):
        campaign = make_campaign(session)
        other = make_campaign(session, title="Other")
        foreign = make_procedure(session, other.id, [(StepType.TEXT, True)])
        row = new_session(session, campaign.id)

        with pytest.raises(StepNotFoundError):
            tracker.complete(row.id, campaign.id, foreign[0].id, TEXT)

    def test_recompletion_keeps_first_timestamp(
        self, session, clock, tracker, make_campaign, make_procedure
    ):
        campaign = make_campaign(session)
        steps = make_procedure(session, campaign.id, [(StepType.TEXT, True)])
        row = new_session(session, campaign.id)

        first = tracker.complete(row.id, campaign.id, steps[0].id, TEXT)
        clock.advance(3600)
        again = tracker.complete(
            row.id, campaign.id, steps[0].id, StepSubmission(response="Changed my mind")
        )

        assert again.completed_at == first.completed_at
        assert again.submission["response"] == "Changed my mind"

    def test_completed_at_reloads_as_utc(
        self, session, clock, tracker, make_campaign, make_procedure
    ):
        campaign = make_campaign(session)
        steps = make_procedure(session, campaign.id, [(StepType.TEXT, True)])
        row = new_session(session, campaign.id)
        tracker.complete(row.id, campaign.id, steps[0].id, TEXT)

        session.expire_all()
        [progress] = tracker.progress(row.id)

        assert progress.completed_at == clock.now_utc()
        assert progress.completed_at.tzinfo is timezone.utc


class TestRequiredCompletion:
    def test_counts_only_required_steps_of_required_procedures(
        self, session, tracker, make_campaign, make_procedure
    ):
        campaign = make_campaign(session)
        required = make_procedure(
            session, campaign.id, [(StepType.TEXT, True), (StepType.TEXT, False)]
        )
        make_procedure(
            session, campaign.id, [(StepType.TEXT, True)], position=1, is_required=False, title="B"
        )
        make_procedure(
            session, campaign.id, [(StepType.PRICE_VALIDATION, True)], position=2, title="C"
        )
        row = new_session(session, campaign.id)

        assert tracker.has_required_steps(campaign.id)
        assert not tracker.all_required_complete(row.id, campaign.id)
        tracker.complete(row.id, campaign.id, required[0].id, TEXT)
        assert tracker.all_required_complete(row.id, campaign.id)

    def test_no_steps_means_complete(self, session, tracker, make_campaign):
        campaign = make_campaign(session)
        row = new_session(session, campaign.id)

        assert not tracker.has_required_steps(campaign.id)
        assert tracker.all_required_complete(row.id, campaign.id)


class TestRecordPrice:
    def test_completes_every_price_step(self, session, tracker, make_campaign, make_procedure):
        campaign = make_campaign(session)
        steps = make_procedure(
            session, campaign.id, [(StepType.TEXT, True), (StepType.PRICE_VALIDATION, True)]
        )
        row = new_session(session, campaign.id)
        tracker.initialize(row.id, campaign.id)

        assert tracker.record_price(row.id, campaign.id, Decimal("19.99")) == 1
        price_row = next(p for p in tracker.progress(row.id) if p.step_id == steps[1].id)
        assert price_row.is_completed
        assert price_row.validated_price == Decimal("19.99")


class TestCompletionPercentage:
    def test_zero_without_rows(self, session, tracker):
        assert tracker.completion_percentage(uuid4()) == 0

    def test_rounds_half_up(self, session, tracker, make_campaign, make_procedure):
        campaign = make_campaign(session)
        steps = make_procedure(
            session,
            campaign.id,
            [(StepType.TEXT, True), (StepType.TEXT, True), (StepType.TEXT, True)],
        )
        row = new_session(session, campaign.id)
        tracker.initialize(row.id, campaign.id)

        tracker.complete(row.id, campaign.id, steps[0].id, TEXT)
        assert tracker.completion_percentage(row.id) == 33
        tracker.complete(row.id, campaign.id, steps[1].id, TEXT)
        assert tracker.completion_percentage(row.id) == 67
        tracker.complete(row.id, campaign.id, steps[2].id, TEXT)
        assert tracker.completion_percentage(row.id) == 100
