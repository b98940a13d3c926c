"""
Session workflow (``trialflow_kernel.domain.session_workflow``).

Responsibility
--------------
The fixed state graph of a test session, declared once as a ``Workflow``
value.  The lifecycle engine consults it for every operation: the source
statuses an action may start from, the status it lands in, and the slot
and settlement flags of that edge.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.

Invariants enforced
-------------------
* No transition skips an intermediate state: PURCHASE_SUBMITTED is reachable
  only from PRICE_VALIDATED (or from itself on resubmission), and COMPLETED
  only from SUBMITTED or PENDING_CLOSURE.
* Cancellation releases a slot only from ACCEPTED or IN_PROGRESS; deadline
  expiry releases it from every pre-purchase status.
"""

from __future__ import annotations

from trialflow_kernel.domain.values import PRE_PURCHASE_STATUSES, SessionStatus
from trialflow_kernel.domain.workflow import Transition, Workflow

S = SessionStatus

# Actions
APPLY = "apply"
ACCEPT = "accept"
REJECT = "reject"
COMPLETE_STEP = "complete_step"
VALIDATE_PRICE = "validate_price"
SUBMIT_PURCHASE = "submit_purchase"
VALIDATE_PURCHASE = "validate_purchase"
REJECT_PURCHASE = "reject_purchase"
SUBMIT_TEST = "submit_test"
VALIDATE_TEST = "validate_test"
REQUEST_UGC = "request_ugc"
SUBMIT_UGC = "submit_ugc"
DECLINE_UGC = "decline_ugc"
VALIDATE_UGC = "validate_ugc"
REJECT_UGC = "reject_ugc"
CLOSE = "close"
RATE_TESTER = "rate_tester"
UPDATE_RATING = "update_rating"
CANCEL = "cancel"
EXPIRE = "expire"
DISPUTE = "dispute"
RESOLVE_DISPUTE = "resolve_dispute"

_CANCELLABLE = (
    S.PENDING,
    S.ACCEPTED,
    S.IN_PROGRESS,
    S.PROCEDURES_COMPLETED,
    S.PRICE_VALIDATED,
    S.PURCHASE_SUBMITTED,
    S.PURCHASE_VALIDATED,
    S.SUBMITTED,
    S.UGC_REQUESTED,
    S.UGC_SUBMITTED,
    S.PENDING_CLOSURE,
)

_SLOT_RETURNING_CANCEL = frozenset({S.ACCEPTED, S.IN_PROGRESS})


def _t(src: S, dst: S, action: str, **kwargs) -> Transition:
    return Transition(from_state=src.value, to_state=dst.value, action=action, **kwargs)


def _build_transitions() -> tuple[Transition, ...]:
    transitions = [
        _t(S.PENDING, S.ACCEPTED, ACCEPT, reserves_slot=True),
        _t(S.PENDING, S.REJECTED, REJECT),
        _t(S.ACCEPTED, S.IN_PROGRESS, COMPLETE_STEP),
        _t(S.IN_PROGRESS, S.IN_PROGRESS, COMPLETE_STEP),
        _t(S.PROCEDURES_COMPLETED, S.PROCEDURES_COMPLETED, COMPLETE_STEP),
        _t(S.PROCEDURES_COMPLETED, S.PRICE_VALIDATED, VALIDATE_PRICE),
        _t(S.ACCEPTED, S.PRICE_VALIDATED, VALIDATE_PRICE),
        _t(S.PRICE_VALIDATED, S.PURCHASE_SUBMITTED, SUBMIT_PURCHASE),
        # resubmission after a rejection
        _t(S.PURCHASE_SUBMITTED, S.PURCHASE_SUBMITTED, SUBMIT_PURCHASE),
        _t(S.PURCHASE_SUBMITTED, S.PURCHASE_VALIDATED, VALIDATE_PURCHASE),
        _t(S.PURCHASE_SUBMITTED, S.PURCHASE_SUBMITTED, REJECT_PURCHASE),
        _t(S.PURCHASE_VALIDATED, S.SUBMITTED, SUBMIT_TEST),
        _t(S.IN_PROGRESS, S.SUBMITTED, SUBMIT_TEST),
        _t(S.SUBMITTED, S.COMPLETED, VALIDATE_TEST, settles=True),
        _t(S.SUBMITTED, S.UGC_REQUESTED, REQUEST_UGC, settles=True),
        _t(S.UGC_REQUESTED, S.UGC_SUBMITTED, SUBMIT_UGC),
        _t(S.UGC_REQUESTED, S.PENDING_CLOSURE, DECLINE_UGC),
        _t(S.UGC_SUBMITTED, S.PENDING_CLOSURE, VALIDATE_UGC),
        _t(S.UGC_SUBMITTED, S.UGC_REQUESTED, REJECT_UGC),
        _t(S.PENDING_CLOSURE, S.COMPLETED, CLOSE, settles=True),
    ]
    # The PROCEDURES_COMPLETED hop is decided by the tracker, not the table
    for status in (S.ACCEPTED, S.IN_PROGRESS):
        transitions.append(_t(status, S.PROCEDURES_COMPLETED, COMPLETE_STEP))

    for status in (S.IN_PROGRESS, S.SUBMITTED, S.COMPLETED):
        transitions.append(_t(status, status, RATE_TESTER))

    for status in S:
        if status not in (S.CANCELLED, S.REJECTED):
            transitions.append(_t(status, status, UPDATE_RATING))

    for status in _CANCELLABLE:
        transitions.append(
            _t(status, S.CANCELLED, CANCEL, releases_slot=status in _SLOT_RETURNING_CANCEL)
        )

    for status in S:
        if status in PRE_PURCHASE_STATUSES:
            transitions.append(_t(status, S.CANCELLED, EXPIRE, releases_slot=True))

    for status in S:
        if status is not S.DISPUTED:
            transitions.append(_t(status, S.DISPUTED, DISPUTE))

    transitions.append(_t(S.DISPUTED, S.DISPUTED, RESOLVE_DISPUTE))
    return tuple(transitions)


SESSION_WORKFLOW = Workflow(
    name="test_session",
    description="One tester's participation in one product-testing campaign",
    initial_state=S.PENDING.value,
    states=tuple(s.value for s in S),
    transitions=_build_transitions(),
    terminal_states=(S.REJECTED.value, S.COMPLETED.value, S.CANCELLED.value),
)


def sources_for(action: str) -> tuple[SessionStatus, ...]:
    """Statuses ``action`` may start from."""
    return tuple(SessionStatus(s) for s in SESSION_WORKFLOW.sources_for(action))


def transition_for(
    action: str,
    current: SessionStatus,
    target: SessionStatus | None = None,
) -> Transition | None:
    """The transition for ``action`` out of ``current`` (into ``target``), if allowed."""
    return SESSION_WORKFLOW.find(action, current.value, target.value if target else None)


def is_allowed(action: str, current: SessionStatus) -> bool:
    return transition_for(action, current) is not None


def releases_slot(action: str, current: SessionStatus) -> bool:
    """Whether performing ``action`` from ``current`` returns a slot."""
    t = transition_for(action, current)
    return t is not None and t.releases_slot
