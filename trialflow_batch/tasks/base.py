"""
What a sweep task looks like, and where tasks are looked up.

A task finds its candidates once per run (``prepare_items``) and then
handles them one at a time (``execute_item``), each inside a transaction
the executor opened for that item.  Tasks never commit and never publish;
they hand their events back in the SweepTaskResult.
"""

from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Protocol, runtime_checkable

from sqlalchemy.orm import Session

from trialflow_batch.domain.types import SweepItem, SweepItemStatus
from trialflow_kernel.domain.events import SessionEvent


@dataclass(frozen=True)
class SweepTaskResult:
    status: SweepItemStatus
    result_data: dict[str, Any] | None = None
    events: tuple[SessionEvent, ...] = ()
    error_code: str | None = None
    error_message: str | None = None


@runtime_checkable
class SweepTask(Protocol):
    @property
    def task_type(self) -> str: ...

    @property
    def description(self) -> str: ...

    def prepare_items(self, session: Session, as_of: datetime) -> tuple[SweepItem, ...]: ...

    def execute_item(
        self,
        item: SweepItem,
        session: Session,
        as_of: datetime,
    ) -> SweepTaskResult: ...


class TaskRegistry:
    """Sweep tasks keyed by ``task_type``; one task per key."""

    def __init__(self) -> None:
        self._by_type: dict[str, SweepTask] = {}

    def register(self, task: SweepTask) -> None:
        key = task.task_type
        if key in self._by_type:
            raise ValueError(f"Task type '{key}' is already registered")
        self._by_type[key] = task

    def get(self, task_type: str) -> SweepTask:
        task = self._by_type.get(task_type)
        if task is None:
            available = ", ".join(self.list_tasks()) or "none"
            raise KeyError(f"No task registered for type '{task_type}' (available: {available})")
        return task

    def list_tasks(self) -> tuple[str, ...]:
        return tuple(sorted(self._by_type))

    def __iter__(self) -> Iterator[SweepTask]:
        return iter(self._by_type[key] for key in self.list_tasks())

    def __len__(self) -> int:
        return len(self._by_type)

    def __contains__(self, task_type: object) -> bool:
        return task_type in self._by_type
