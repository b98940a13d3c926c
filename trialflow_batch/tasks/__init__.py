"""Sweep tasks and the task registry."""

from trialflow_batch.tasks.base import SweepTask, SweepTaskResult, TaskRegistry
from trialflow_batch.tasks.deadline_tasks import ExpiredPurchaseDeadlineTask

__all__ = [
    "ExpiredPurchaseDeadlineTask",
    "SweepTask",
    "SweepTaskResult",
    "TaskRegistry",
]
