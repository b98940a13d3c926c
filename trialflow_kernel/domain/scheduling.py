"""
Purchase-day scheduling (pure part of the distribution scheduler).

Responsibility:
    Turn a campaign's distribution rules into candidate purchase days with a
    capacity each, and pick the day a newly accepted session should buy on
    given how many sessions are already scheduled per day.

Architecture position:
    Kernel > Domain -- pure, zero I/O.  The per-day load is read by
    ``selectors.session_selector`` and supplied by
    ``services.distribution_scheduler``.

Invariants enforced:
    - Today is never a candidate.  A RECURRING rule whose weekday is today
      yields next week's occurrence first.
    - A SPECIFIC_DATE rule is a candidate only when strictly in the future.
    - When several rules land on the same day, the day holds as many
      sessions as the largest of their capacities.
    - Among days with spare capacity the earliest wins.

Weekday convention: 0 = Sunday, 1 = Monday ... 6 = Saturday.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from datetime import date, timedelta

from trialflow_kernel.domain.dtos import DistributionRule
from trialflow_kernel.domain.values import DistributionType


@dataclass(frozen=True)
class SchedulingPolicy:
    """How far ahead recurring rules are expanded."""

    lookahead_weeks: int = 4

    def __post_init__(self) -> None:
        if self.lookahead_weeks < 1:
            raise ValueError(
                f"lookahead_weeks must be at least 1, got {self.lookahead_weeks}"
            )


@dataclass(frozen=True)
class CandidateDay:
    day: date
    capacity: int


def weekday_index(day: date) -> int:
    """Day of week with Sunday as 0."""
    return day.isoweekday() % 7


def next_occurrence(day_of_week: int, as_of: date) -> date:
    """First date strictly after ``as_of`` falling on ``day_of_week``."""
    days_ahead = (day_of_week - weekday_index(as_of)) % 7
    if days_ahead == 0:
        days_ahead = 7
    return as_of + timedelta(days=days_ahead)


def candidate_days(
    rules: Iterable[DistributionRule],
    as_of: date,
    policy: SchedulingPolicy | None = None,
) -> list[CandidateDay]:
    """
    Expand rules into future candidate days, ordered by date.

    Inactive rules are ignored.
    """
    policy = policy or SchedulingPolicy()
    capacity: dict[date, int] = {}

    for rule in rules:
        if not rule.is_active:
            continue
        if rule.distribution_type == DistributionType.RECURRING:
            first = next_occurrence(rule.day_of_week, as_of)
            for week in range(policy.lookahead_weeks):
                day = first + timedelta(weeks=week)
                capacity[day] = max(capacity.get(day, 0), rule.max_units)
        elif rule.specific_date is not None and rule.specific_date > as_of:
            day = rule.specific_date
            capacity[day] = max(capacity.get(day, 0), rule.max_units)

    return [CandidateDay(day, capacity[day]) for day in sorted(capacity)]


def choose_purchase_day(
    candidates: Iterable[CandidateDay],
    load: Mapping[date, int],
) -> date | None:
    """
    Earliest candidate whose scheduled count is below its capacity.

    Returns None when there are no candidates or every day is full.
    """
    open_days = [c for c in candidates if load.get(c.day, 0) < c.capacity]
    if not open_days:
        return None
    return min(open_days, key=lambda c: c.day).day
