"""
Typed exception hierarchy for the trialflow kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Every rejection the lifecycle engine produces is synchronous and final for
that request: the caller must decide whether to refresh, retry, or abandon.
That decision cannot depend on message wording, so:

  1. Every error has a TYPED exception class (catch by type, not message).
  2. Every exception has a CODE attribute (machine-readable, API-safe).
  3. Exceptions carry structured DATA (session id, current status, ...).

Example:
    try:
        engine.validate_test(session_id, actor, rating=5)
    except InvalidSessionStateError as e:
        respond(409, code=e.code, current=e.current_status,
                required=e.required_statuses)

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    TrialflowError (base)
    |
    +-- NotFoundError
    |   +-- SessionNotFoundError
    |   +-- CampaignNotFoundError
    |   +-- StepNotFoundError
    |   +-- SettlementNotFoundError
    |
    +-- AccessDeniedError
    |
    +-- PreconditionFailedError
    |   +-- InvalidSessionStateError
    |   +-- CampaignNotActiveError
    |   +-- NoSlotsAvailableError
    |   +-- AlreadyAppliedError
    |   +-- NotEligibleError
    |   +-- StepOrderViolationError
    |   +-- PriceStepNotCompletableError
    |   +-- PriceAlreadyValidatedError
    |   +-- PriceOutOfRangeError
    |   +-- PriceMismatchError
    |   +-- PurchaseDeadlineExpiredError
    |   +-- WrongPurchaseDayError
    |   +-- AlreadyRatedError
    |   +-- NotRatedError
    |   +-- CampaignNotEndedError
    |
    +-- ValidationFailedError
    |   +-- StepPayloadInvalidError
    |   +-- MissingFieldError
    |   +-- InvalidRatingError
    |   +-- InvalidAmountError
    |
    +-- ConcurrencyError
    |   +-- OptimisticLockError
    |
    +-- SettlementError
        +-- SettlementFailedError

===============================================================================
DESIGN DECISIONS
===============================================================================

1. The four caller-facing categories (not-found, forbidden, precondition,
   validation) are base classes so a request layer can map each to one
   response status without knowing every subclass.

2. ``code`` is a class attribute: static per type, available without an
   instance.

3. Preconditions always name what was required and what was found, so a
   client can tell a stale view ("refresh and retry") from a misuse.
"""

from datetime import date
from decimal import Decimal
from typing import Iterable


class TrialflowError(Exception):
    """
    Base exception for all trialflow errors.

    All subclasses carry a ``code`` class attribute.
    """

    code: str = "TRIALFLOW_ERROR"


# =============================================================================
# Not found
# =============================================================================


class NotFoundError(TrialflowError):
    """Referenced entity does not exist."""

    code: str = "NOT_FOUND"


class SessionNotFoundError(NotFoundError):
    code: str = "SESSION_NOT_FOUND"

    def __init__(self, session_id: str):
        self.session_id = session_id
        super().__init__(f"Session not found: {session_id}")


class CampaignNotFoundError(NotFoundError):
    code: str = "CAMPAIGN_NOT_FOUND"

    def __init__(self, campaign_id: str):
        self.campaign_id = campaign_id
        super().__init__(f"Campaign not found: {campaign_id}")


class StepNotFoundError(NotFoundError):
    code: str = "STEP_NOT_FOUND"

    def __init__(self, step_id: str):
        self.step_id = step_id
        super().__init__(f"Step not found: {step_id}")


class SettlementNotFoundError(NotFoundError):
    code: str = "SETTLEMENT_NOT_FOUND"

    def __init__(self, settlement_id: str):
        self.settlement_id = settlement_id
        super().__init__(f"Settlement record not found: {settlement_id}")


# =============================================================================
# Forbidden
# =============================================================================


class AccessDeniedError(TrialflowError):
    """Actor is not allowed to perform this action on this session."""

    code: str = "ACCESS_DENIED"

    def __init__(self, actor_id: str, action: str, required: str):
        self.actor_id = actor_id
        self.action = action
        self.required = required
        super().__init__(
            f"Access denied: {action} requires {required} (actor {actor_id})"
        )


# =============================================================================
# Precondition failed
# =============================================================================


class PreconditionFailedError(TrialflowError):
    """The current state does not allow the requested operation."""

    code: str = "PRECONDITION_FAILED"


class InvalidSessionStateError(PreconditionFailedError):
    """Session status is not one the action may start from."""

    code: str = "INVALID_SESSION_STATE"

    def __init__(
        self,
        session_id: str,
        action: str,
        current_status: str,
        required_statuses: Iterable[str],
    ):
        self.session_id = session_id
        self.action = action
        self.current_status = current_status
        self.required_statuses = tuple(required_statuses)
        required = " or ".join(self.required_statuses)
        super().__init__(
            f"Session must be {required} to {action}, "
            f"current status is {current_status}"
        )


class CampaignNotActiveError(PreconditionFailedError):
    code: str = "CAMPAIGN_NOT_ACTIVE"

    def __init__(self, campaign_id: str, status: str):
        self.campaign_id = campaign_id
        self.status = status
        super().__init__(
            f"Campaign {campaign_id} must be ACTIVE, current status is {status}"
        )


class NoSlotsAvailableError(PreconditionFailedError):
    code: str = "NO_SLOTS_AVAILABLE"

    def __init__(self, campaign_id: str):
        self.campaign_id = campaign_id
        super().__init__(f"No slots available for campaign {campaign_id}")


class AlreadyAppliedError(PreconditionFailedError):
    code: str = "ALREADY_APPLIED"

    def __init__(self, campaign_id: str, tester_id: str):
        self.campaign_id = campaign_id
        self.tester_id = tester_id
        super().__init__(
            f"Tester {tester_id} already has a session for campaign {campaign_id}"
        )


class NotEligibleError(PreconditionFailedError):
    code: str = "NOT_ELIGIBLE"

    def __init__(self, campaign_id: str, tester_id: str, reasons: Iterable[str]):
        self.campaign_id = campaign_id
        self.tester_id = tester_id
        self.reasons = tuple(reasons)
        detail = "; ".join(self.reasons) or "criteria not met"
        super().__init__(
            f"Tester {tester_id} is not eligible for campaign {campaign_id}: {detail}"
        )


class StepOrderViolationError(PreconditionFailedError):
    code: str = "STEP_ORDER_VIOLATION"

    def __init__(self, step_id: str, blocking_step_id: str, blocking_step_title: str):
        self.step_id = step_id
        self.blocking_step_id = blocking_step_id
        self.blocking_step_title = blocking_step_title
        super().__init__(
            f'You must complete step "{blocking_step_title}" before this one'
        )


class PriceStepNotCompletableError(PreconditionFailedError):
    code: str = "PRICE_STEP_NOT_COMPLETABLE"

    def __init__(self, step_id: str):
        self.step_id = step_id
        super().__init__(
            f"Step {step_id} is a price validation step; "
            "submit the price through price validation instead"
        )


class PriceAlreadyValidatedError(PreconditionFailedError):
    code: str = "PRICE_ALREADY_VALIDATED"

    def __init__(self, session_id: str):
        self.session_id = session_id
        super().__init__(f"Product price already validated for session {session_id}")


class PriceOutOfRangeError(PreconditionFailedError):
    code: str = "PRICE_OUT_OF_RANGE"

    def __init__(self, session_id: str, price: Decimal, minimum: Decimal, maximum: Decimal):
        self.session_id = session_id
        self.price = price
        self.minimum = minimum
        self.maximum = maximum
        super().__init__(
            f"Price {price} is outside the accepted range "
            f"[{minimum:.2f}, {maximum:.2f}]"
        )


class PriceMismatchError(PreconditionFailedError):
    code: str = "PRICE_MISMATCH"

    def __init__(self, session_id: str, price: Decimal):
        self.session_id = session_id
        self.price = price
        super().__init__(
            f"Price {price} does not match the product price for session {session_id}"
        )


class PurchaseDeadlineExpiredError(PreconditionFailedError):
    code: str = "PURCHASE_DEADLINE_EXPIRED"

    def __init__(self, session_id: str, scheduled_date: date):
        self.session_id = session_id
        self.scheduled_date = scheduled_date
        super().__init__(
            f"Purchase deadline for {scheduled_date.isoformat()} has passed"
        )


class WrongPurchaseDayError(PreconditionFailedError):
    code: str = "WRONG_PURCHASE_DAY"

    def __init__(self, session_id: str, scheduled_date: date, today: date):
        self.session_id = session_id
        self.scheduled_date = scheduled_date
        self.today = today
        super().__init__(
            f"You must purchase the product on the scheduled date: "
            f"{scheduled_date.isoformat()} (today is {today.isoformat()})"
        )


class AlreadyRatedError(PreconditionFailedError):
    code: str = "ALREADY_RATED"

    def __init__(self, session_id: str):
        self.session_id = session_id
        super().__init__(f"Tester already rated for session {session_id}")


class NotRatedError(PreconditionFailedError):
    code: str = "NOT_RATED"

    def __init__(self, session_id: str):
        self.session_id = session_id
        super().__init__(f"No rating exists yet for session {session_id}")


class CampaignNotEndedError(PreconditionFailedError):
    code: str = "CAMPAIGN_NOT_ENDED"

    def __init__(self, campaign_id: str):
        self.campaign_id = campaign_id
        super().__init__(f"Campaign {campaign_id} has not ended yet")


# =============================================================================
# Validation failed
# =============================================================================


class ValidationFailedError(TrialflowError):
    """Submitted data is malformed or incomplete."""

    code: str = "VALIDATION_FAILED"


class StepPayloadInvalidError(ValidationFailedError):
    code: str = "STEP_PAYLOAD_INVALID"

    def __init__(self, step_type: str, value: object, detail: str):
        self.step_type = step_type
        self.value = repr(value)
        self.detail = detail
        super().__init__(
            f"Invalid value for {step_type} step: {detail} (received {value!r})"
        )


class MissingFieldError(ValidationFailedError):
    code: str = "MISSING_FIELD"

    def __init__(self, field_name: str, action: str):
        self.field_name = field_name
        self.action = action
        super().__init__(f"{field_name} is required to {action}")


class InvalidRatingError(ValidationFailedError):
    code: str = "INVALID_RATING"

    def __init__(self, rating: object):
        self.rating = rating
        super().__init__(f"Rating must be an integer between 1 and 5, got {rating!r}")


class InvalidAmountError(ValidationFailedError):
    code: str = "INVALID_AMOUNT"

    def __init__(self, field_name: str, value: object):
        self.field_name = field_name
        self.value = value
        super().__init__(f"{field_name} must be a non-negative amount, got {value!r}")


# =============================================================================
# Concurrency
# =============================================================================


class ConcurrencyError(TrialflowError):
    code: str = "CONCURRENCY_ERROR"


class OptimisticLockError(ConcurrencyError):
    """
    The session row changed between read and write.

    Expected under contention; the caller retries with fresh state.
    """

    code: str = "OPTIMISTIC_LOCK_CONFLICT"

    def __init__(self, session_id: str, action: str):
        self.session_id = session_id
        self.action = action
        super().__init__(
            f"Session {session_id} was modified concurrently during {action}; "
            "reload and retry"
        )


# =============================================================================
# Settlement
# =============================================================================


class SettlementError(TrialflowError):
    code: str = "SETTLEMENT_ERROR"


class SettlementFailedError(SettlementError):
    """Raised by payout collaborators when a transfer cannot be completed."""

    code: str = "SETTLEMENT_FAILED"

    def __init__(self, tester_id: str, amount: Decimal, reason: str):
        self.tester_id = tester_id
        self.amount = amount
        self.reason = reason
        super().__init__(f"Settlement of {amount} to {tester_id} failed: {reason}")
