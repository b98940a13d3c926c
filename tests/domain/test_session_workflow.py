"""
Structural tests for the session state graph.

Checks the declared Workflow value rather than the engine: allowed source
statuses, slot-return flags, and that no action skips an intermediate
status.
"""

import pytest

from trialflow_kernel.domain import session_workflow as wf
from trialflow_kernel.domain.values import PRE_PURCHASE_STATUSES, SessionStatus as S
from trialflow_kernel.domain.workflow import Transition, Workflow


class TestGraphShape:
    def test_initial_state_is_pending(self):
        assert wf.SESSION_WORKFLOW.initial_state == S.PENDING.value

    def test_terminal_states(self):
        assert set(wf.SESSION_WORKFLOW.terminal_states) == {
            S.REJECTED.value,
            S.COMPLETED.value,
            S.CANCELLED.value,
        }

    def test_every_status_is_declared(self):
        assert set(wf.SESSION_WORKFLOW.states) == {s.value for s in S}

    def test_unknown_state_rejected(self):
        with pytest.raises(ValueError):
            Workflow(
                name="broken",
                description="",
                initial_state="A",
                states=("A",),
                transitions=(Transition("A", "B", "go"),),
            )

    def test_terminal_states_only_leave_for_ratings_and_disputes(self):
        terminal = set(wf.SESSION_WORKFLOW.terminal_states)
        for t in wf.SESSION_WORKFLOW.transitions:
            if t.from_state in terminal:
                assert t.action in (wf.RATE_TESTER, wf.UPDATE_RATING, wf.DISPUTE), t


class TestSources:
    @pytest.mark.parametrize(
        ("action", "expected"),
        [
            (wf.ACCEPT, {S.PENDING}),
            (wf.REJECT, {S.PENDING}),
            (wf.VALIDATE_PRICE, {S.PROCEDURES_COMPLETED, S.ACCEPTED}),
            (wf.SUBMIT_PURCHASE, {S.PRICE_VALIDATED, S.PURCHASE_SUBMITTED}),
            (wf.VALIDATE_PURCHASE, {S.PURCHASE_SUBMITTED}),
            (wf.SUBMIT_TEST, {S.PURCHASE_VALIDATED, S.IN_PROGRESS}),
            (wf.VALIDATE_TEST, {S.SUBMITTED}),
            (wf.REQUEST_UGC, {S.SUBMITTED}),
            (wf.SUBMIT_UGC, {S.UGC_REQUESTED}),
            (wf.DECLINE_UGC, {S.UGC_REQUESTED}),
            (wf.VALIDATE_UGC, {S.UGC_SUBMITTED}),
            (wf.REJECT_UGC, {S.UGC_SUBMITTED}),
            (wf.CLOSE, {S.PENDING_CLOSURE}),
            (wf.RATE_TESTER, {S.IN_PROGRESS, S.SUBMITTED, S.COMPLETED}),
            (wf.RESOLVE_DISPUTE, {S.DISPUTED}),
            (wf.EXPIRE, set(PRE_PURCHASE_STATUSES)),
        ],
    )
    def test_sources(self, action, expected):
        assert set(wf.sources_for(action)) == expected

    def test_cancel_not_from_terminal_or_disputed(self):
        sources = set(wf.sources_for(wf.CANCEL))
        assert S.COMPLETED not in sources
        assert S.CANCELLED not in sources
        assert S.REJECTED not in sources
        assert S.DISPUTED not in sources
        assert S.PENDING_CLOSURE in sources

    def test_dispute_from_everything_but_disputed(self):
        assert set(wf.sources_for(wf.DISPUTE)) == set(S) - {S.DISPUTED}

    def test_update_rating_not_from_cancelled_or_rejected(self):
        sources = set(wf.sources_for(wf.UPDATE_RATING))
        assert S.CANCELLED not in sources
        assert S.REJECTED not in sources
        assert S.COMPLETED in sources


class TestNoSkippedStates:
    def test_purchase_submitted_only_after_price_validation(self):
        into = {
            S(t.from_state)
            for t in wf.SESSION_WORKFLOW.transitions
            if t.to_state == S.PURCHASE_SUBMITTED.value
        }
        assert into == {S.PRICE_VALIDATED, S.PURCHASE_SUBMITTED}

    def test_completed_only_from_submitted_or_pending_closure(self):
        into = {
            S(t.from_state)
            for t in wf.SESSION_WORKFLOW.transitions
            if t.to_state == S.COMPLETED.value and t.from_state != S.COMPLETED.value
        }
        assert into == {S.SUBMITTED, S.PENDING_CLOSURE}

    def test_settling_transitions(self):
        settling = {(t.from_state, t.action) for t in wf.SESSION_WORKFLOW.transitions if t.settles}
        assert settling == {
            (S.SUBMITTED.value, wf.VALIDATE_TEST),
            (S.SUBMITTED.value, wf.REQUEST_UGC),
            (S.PENDING_CLOSURE.value, wf.CLOSE),
        }

    def test_only_accept_reserves(self):
        reserving = {t.action for t in wf.SESSION_WORKFLOW.transitions if t.reserves_slot}
        assert reserving == {wf.ACCEPT}


class TestSlotFlags:
    def test_accept_reserves(self):
        assert wf.transition_for(wf.ACCEPT, S.PENDING).reserves_slot

    def test_lookup_by_target_picks_the_matching_edge(self):
        to_progress = wf.transition_for(wf.COMPLETE_STEP, S.ACCEPTED, S.IN_PROGRESS)
        to_done = wf.transition_for(wf.COMPLETE_STEP, S.ACCEPTED, S.PROCEDURES_COMPLETED)

        assert to_progress.to_state == S.IN_PROGRESS.value
        assert to_done.to_state == S.PROCEDURES_COMPLETED.value

    def test_lookup_by_unknown_target_is_none(self):
        assert wf.transition_for(wf.ACCEPT, S.PENDING, S.COMPLETED) is None

    @pytest.mark.parametrize("status", [S.ACCEPTED, S.IN_PROGRESS])
    def test_early_cancel_releases(self, status):
        assert wf.releases_slot(wf.CANCEL, status)

    @pytest.mark.parametrize(
        "status",
        [S.PENDING, S.PROCEDURES_COMPLETED, S.PRICE_VALIDATED, S.PURCHASE_SUBMITTED, S.SUBMITTED],
    )
    def test_late_cancel_keeps_slot(self, status):
        assert wf.is_allowed(wf.CANCEL, status)
        assert not wf.releases_slot(wf.CANCEL, status)

    @pytest.mark.parametrize("status", sorted(PRE_PURCHASE_STATUSES, key=lambda s: s.value))
    def test_expiry_releases_from_every_pre_purchase_status(self, status):
        assert wf.releases_slot(wf.EXPIRE, status)

    def test_not_allowed_means_no_release(self):
        assert not wf.releases_slot(wf.CANCEL, S.COMPLETED)
