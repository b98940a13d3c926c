"""Pure sweep DTOs.  ZERO I/O."""

from trialflow_batch.domain.types import (
    SweepItem,
    SweepItemResult,
    SweepItemStatus,
    SweepRunResult,
)

__all__ = [
    "SweepItem",
    "SweepItemResult",
    "SweepItemStatus",
    "SweepRunResult",
]
