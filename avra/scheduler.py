"""Deferred task queue owned by a game session.

Deferred effects (restoring stolen aura, lootbox spawns and despawns,
simulated duel responses) are stored as plain :class:`ScheduledTask` records.
Handlers are registered per task kind and receive the record when it comes
due, so they can look up the current account state instead of holding on to
objects captured when the task was created.
"""

from __future__ import annotations

import itertools
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

log = logging.getLogger(__name__)

TaskHandler = Callable[["ScheduledTask"], None]


@dataclass(slots=True)
class ScheduledTask:
    due_at: float
    kind: str
    account_id: Optional[str] = None
    payload: Dict[str, Any] = field(default_factory=dict)
    handle: int = 0


class SchedulerClosedError(RuntimeError):
    pass


class Scheduler:
    """Time ordered queue of deferred tasks executed one at a time."""

    def __init__(self) -> None:
        self.pending: List[ScheduledTask] = []
        self._handlers: Dict[str, TaskHandler] = {}
        self._counter = itertools.count(1)
        self._closed = False

    def __len__(self) -> int:
        return len(self.pending)

    @property
    def closed(self) -> bool:
        return self._closed

    def register(self, kind: str, handler: TaskHandler) -> None:
        self._handlers[kind] = handler

    def schedule(
        self,
        due_at: float,
        kind: str,
        *,
        account_id: Optional[str] = None,
        payload: Optional[Dict[str, Any]] = None,
    ) -> int:
        if self._closed:
            raise SchedulerClosedError("Cannot schedule tasks on a disposed scheduler")
        task = ScheduledTask(
            due_at=float(due_at),
            kind=kind,
            account_id=account_id,
            payload=dict(payload or {}),
            handle=next(self._counter),
        )
        self.pending.append(task)
        # Stable sort keeps tasks due at the same instant in insertion order.
        self.pending.sort(key=lambda item: item.due_at)
        log.debug("Scheduled %s task %s at %.3f", kind, task.handle, task.due_at)
        return task.handle

    def cancel(self, handle: int) -> bool:
        for index, task in enumerate(self.pending):
            if task.handle == handle:
                del self.pending[index]
                return True
        return False

    def cancel_kind(self, kind: str) -> int:
        before = len(self.pending)
        self.pending = [task for task in self.pending if task.kind != kind]
        return before - len(self.pending)

    def get(self, handle: int) -> Optional[ScheduledTask]:
        return next((task for task in self.pending if task.handle == handle), None)

    def pop_ready(self, now: float) -> List[ScheduledTask]:
        ready: List[ScheduledTask] = []
        while self.pending and self.pending[0].due_at <= now:
            ready.append(self.pending.pop(0))
        return ready

    def run_pending(self, now: float) -> int:
        """Run every task due at or before ``now``.

        Tasks scheduled by a handler for a time that has already passed run
        in the same call.  Returns the number of tasks executed.
        """

        executed = 0
        while not self._closed and self.pending and self.pending[0].due_at <= now:
            task = self.pending.pop(0)
            handler = self._handlers.get(task.kind)
            if handler is None:
                log.warning("No handler registered for %s task %s", task.kind, task.handle)
                continue
            try:
                handler(task)
            except Exception:
                log.exception("Scheduled %s task %s failed", task.kind, task.handle)
                continue
            executed += 1
        return executed

    def dispose(self) -> int:
        cancelled = len(self.pending)
        self.pending.clear()
        self._closed = True
        if cancelled:
            log.debug("Cancelled %d pending task(s) on dispose", cancelled)
        return cancelled


__all__ = ["ScheduledTask", "Scheduler", "SchedulerClosedError", "TaskHandler"]
