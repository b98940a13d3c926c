"""Sweep execution and scheduling."""

from trialflow_batch.services.executor import SweepExecutor
from trialflow_batch.services.scheduler import SweepScheduler

__all__ = ["SweepExecutor", "SweepScheduler"]
