from __future__ import annotations

import logging
import sys
from pathlib import Path

import pytest

PROJECT_BASE = Path(__file__).resolve().parents[1]
if str(PROJECT_BASE) not in sys.path:
    sys.path.insert(0, str(PROJECT_BASE))

from avra.scheduler import Scheduler, SchedulerClosedError


@pytest.fixture
def scheduler() -> Scheduler:
    return Scheduler()


def _collect(scheduler: Scheduler, kind: str, seen: list) -> None:
    scheduler.register(kind, lambda task: seen.append((task.kind, task.payload.get("n"))))


def test_runs_tasks_in_due_order(scheduler: Scheduler) -> None:
    seen: list = []
    _collect(scheduler, "job", seen)
    scheduler.schedule(30, "job", payload={"n": 3})
    scheduler.schedule(10, "job", payload={"n": 1})
    scheduler.schedule(20, "job", payload={"n": 2})

    assert scheduler.run_pending(15) == 1
    assert scheduler.run_pending(30) == 2
    assert [n for _, n in seen] == [1, 2, 3]
    assert len(scheduler) == 0


def test_same_instant_keeps_insertion_order(scheduler: Scheduler) -> None:
    seen: list = []
    _collect(scheduler, "job", seen)
    for n in range(5):
        scheduler.schedule(100, "job", payload={"n": n})
    scheduler.run_pending(100)
    assert [n for _, n in seen] == [0, 1, 2, 3, 4]


def test_cancel_by_handle_and_kind(scheduler: Scheduler) -> None:
    seen: list = []
    _collect(scheduler, "job", seen)
    _collect(scheduler, "other", seen)
    keep = scheduler.schedule(5, "job", payload={"n": 1})
    drop = scheduler.schedule(5, "job", payload={"n": 2})
    scheduler.schedule(5, "other", payload={"n": 3})

    assert scheduler.cancel(drop)
    assert not scheduler.cancel(drop)
    assert scheduler.get(keep).payload == {"n": 1}
    assert scheduler.cancel_kind("other") == 1

    scheduler.run_pending(5)
    assert seen == [("job", 1)]


def test_handler_can_schedule_overdue_followups(scheduler: Scheduler) -> None:
    seen: list = []

    def chain(task) -> None:
        seen.append(task.payload["n"])
        if task.payload["n"] < 3:
            scheduler.schedule(task.due_at, "chain", payload={"n": task.payload["n"] + 1})

    scheduler.register("chain", chain)
    scheduler.schedule(1, "chain", payload={"n": 1})
    assert scheduler.run_pending(1) == 3
    assert seen == [1, 2, 3]


def test_failing_handler_is_logged_and_skipped(scheduler: Scheduler, caplog) -> None:
    seen: list = []
    _collect(scheduler, "job", seen)

    def explode(task) -> None:
        raise ValueError("broken")

    scheduler.register("boom", explode)
    scheduler.schedule(1, "boom")
    scheduler.schedule(2, "job", payload={"n": 1})
    scheduler.schedule(2, "unknown")

    with caplog.at_level(logging.WARNING, logger="avra.scheduler"):
        assert scheduler.run_pending(2) == 1
    assert seen == [("job", 1)]
    assert "boom task" in caplog.text
    assert "No handler registered for unknown" in caplog.text


def test_dispose_cancels_and_closes(scheduler: Scheduler) -> None:
    scheduler.register("job", lambda task: None)
    scheduler.schedule(1, "job")
    scheduler.schedule(2, "job")

    assert scheduler.dispose() == 2
    assert scheduler.closed
    assert scheduler.run_pending(10) == 0
    with pytest.raises(SchedulerClosedError):
        scheduler.schedule(3, "job")
