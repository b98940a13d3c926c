"""
Step payload validation.

Responsibility:
    Accept or reject a tester's submitted value for one procedure step,
    dispatching on the step's declared type.

Architecture position:
    Kernel > Domain -- pure, stateless, zero I/O.

Invariants enforced:
    - TEXT: non-empty string after trimming.
    - PHOTO / VIDEO: string that parses as an absolute http(s) URL with a host.
    - CHECKLIST: non-empty list.
    - RATING: integer (bool excluded) in [1, 5].
    - Any other type accepts any value.

Failure modes:
    - StepPayloadInvalidError naming the step type and the received value.
"""

from collections.abc import Callable
from urllib.parse import urlparse

from trialflow_kernel.domain.values import StepType
from trialflow_kernel.exceptions import StepPayloadInvalidError

RATING_MIN = 1
RATING_MAX = 5


def _check_text(value: object) -> str | None:
    if not isinstance(value, str) or not value.strip():
        return "expected non-empty text"
    return None


def _check_url(value: object) -> str | None:
    if not isinstance(value, str):
        return "expected a URL string"
    parsed = urlparse(value.strip())
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        return "expected a well-formed http(s) URL"
    return None


def _check_checklist(value: object) -> str | None:
    if not isinstance(value, list) or not value:
        return "expected a non-empty list of checked items"
    return None


def _check_rating(value: object) -> str | None:
    if isinstance(value, bool) or not isinstance(value, int):
        return "expected an integer rating"
    if not RATING_MIN <= value <= RATING_MAX:
        return f"rating must be between {RATING_MIN} and {RATING_MAX}"
    return None


_VALIDATORS: dict[StepType, Callable[[object], str | None]] = {
    StepType.TEXT: _check_text,
    StepType.PHOTO: _check_url,
    StepType.VIDEO: _check_url,
    StepType.CHECKLIST: _check_checklist,
    StepType.RATING: _check_rating,
}


def validate_step_value(step_type: StepType | str, value: object) -> None:
    """
    Validate ``value`` against ``step_type``.

    Unknown type names are accepted as-is so newer step kinds do not break
    older engines.

    Raises:
        StepPayloadInvalidError: The value does not fit the declared type.
    """
    try:
        kind = StepType(step_type)
    except ValueError:
        return
    check = _VALIDATORS.get(kind)
    if check is None:
        return
    problem = check(value)
    if problem is not None:
        raise StepPayloadInvalidError(kind.value, value, problem)


def is_valid_rating(value: object) -> bool:
    """True when ``value`` is an integer rating in [1, 5]."""
    return _check_rating(value) is None
