"""
Purchase deadlines.

Responsibility:
    The enforceable deadline of a scheduled purchase day (the last instant of
    that UTC day) and the derived views callers need: expired, is-today, and
    time remaining.

Architecture position:
    Kernel > Domain -- pure, zero I/O.  "Now" is always passed in from a
    Clock.

Invariants enforced:
    - A deadline for day D has passed iff today (UTC) is after D.
    - Purchase submission is allowed iff today (UTC) equals D.
    These are independent checks and the engine runs both.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone

URGENT_WITHIN = timedelta(hours=24)


def purchase_deadline(scheduled: date) -> datetime:
    """Last instant (UTC, 23:59:59.999999) of the scheduled day."""
    return datetime.combine(scheduled, time.max, tzinfo=timezone.utc)


def is_deadline_expired(scheduled: date, today: date) -> bool:
    return today > scheduled


def is_purchase_day(scheduled: date, today: date) -> bool:
    return today == scheduled


@dataclass(frozen=True)
class DeadlineInfo:
    scheduled_date: date
    deadline: datetime
    is_expired: bool
    is_today: bool
    is_urgent: bool
    hours_remaining: int | None
    minutes_remaining: int | None


def deadline_info(scheduled: date | None, now: datetime) -> DeadlineInfo | None:
    """
    Summarize the purchase deadline relative to ``now``.

    Returns None when no purchase day is scheduled.  Remaining time is None
    once the deadline has passed; a deadline less than 24 hours away is
    urgent.
    """
    if scheduled is None:
        return None
    now_utc = now.astimezone(timezone.utc)
    deadline = purchase_deadline(scheduled)
    remaining = deadline - now_utc
    expired = is_deadline_expired(scheduled, now_utc.date())

    hours = minutes = None
    urgent = False
    if not expired and remaining > timedelta(0):
        total_minutes = int(remaining.total_seconds() // 60)
        hours, minutes = divmod(total_minutes, 60)
        urgent = remaining < URGENT_WITHIN

    return DeadlineInfo(
        scheduled_date=scheduled,
        deadline=deadline,
        is_expired=expired,
        is_today=is_purchase_day(scheduled, now_utc.date()),
        is_urgent=urgent,
        hours_remaining=hours,
        minutes_remaining=minutes,
    )
