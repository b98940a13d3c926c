"""
Value types passed between sweep tasks, the executor and callers.

Frozen dataclasses only; collections are tuples.  A run's counters are
always derived from its item results, so ``checked`` equals
``succeeded + skipped + failed``.
"""

from __future__ import annotations

from collections import Counter
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any

from trialflow_kernel.domain.events import SessionEvent


class SweepItemStatus(str, Enum):
    SUCCEEDED = "succeeded"
    # Re-checked under the row lock and found no longer due
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass(frozen=True)
class SweepItem:
    """A candidate picked by ``prepare_items``, identified by ``item_key``."""

    item_index: int
    item_key: str


@dataclass(frozen=True)
class SweepItemResult:
    item_index: int
    item_key: str
    status: SweepItemStatus
    error_code: str | None = None
    error_message: str | None = None
    result_data: dict[str, Any] | None = None
    events: tuple[SessionEvent, ...] = ()
    duration_ms: int = 0


@dataclass(frozen=True)
class SweepRunResult:
    task_type: str
    checked: int
    succeeded: int
    skipped: int
    failed: int
    item_results: tuple[SweepItemResult, ...] = ()
    started_at: datetime | None = None
    completed_at: datetime | None = None
    duration_ms: int = 0
    correlation_id: str | None = None

    @classmethod
    def tally(
        cls,
        task_type: str,
        results: Sequence[SweepItemResult],
        **timing: Any,
    ) -> SweepRunResult:
        counts = Counter(r.status for r in results)
        return cls(
            task_type=task_type,
            checked=len(results),
            succeeded=counts[SweepItemStatus.SUCCEEDED],
            skipped=counts[SweepItemStatus.SKIPPED],
            failed=counts[SweepItemStatus.FAILED],
            item_results=tuple(results),
            **timing,
        )

    @property
    def is_clean(self) -> bool:
        return self.failed == 0

    @property
    def events(self) -> tuple[SessionEvent, ...]:
        """Events of every committed item, in item order."""
        return tuple(e for r in self.item_results for e in r.events)
