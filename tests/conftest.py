from __future__ import annotations

import random
import sys
from pathlib import Path
from typing import Callable, Iterable

import pytest

PROJECT_BASE = Path(__file__).resolve().parents[1]
if str(PROJECT_BASE) not in sys.path:
    sys.path.insert(0, str(PROJECT_BASE))

from avra.config import EngineConfig
from avra.events import EventBus, EventRecorder
from avra.session import GameSession
from avra.storage import MemoryStore

START = 1_700_000_000.0


class Clock:
    def __init__(self, now: float = START) -> None:
        self.now = float(now)

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> float:
        self.now += seconds
        return self.now


class StubRandom(random.Random):
    """``random()`` returns the queued values first, then falls back to the seed."""

    def __init__(self, values: Iterable[float] = (), seed: int = 7) -> None:
        super().__init__(seed)
        self.values = list(values)

    def random(self) -> float:
        if self.values:
            return self.values.pop(0)
        return super().random()

    def getrandbits(self, k: int) -> int:
        return super().getrandbits(k)


@pytest.fixture
def clock() -> Clock:
    return Clock()


@pytest.fixture
def stub_random() -> Callable[..., StubRandom]:
    return StubRandom


@pytest.fixture
def recorder() -> EventRecorder:
    return EventRecorder()


@pytest.fixture
def make_session(clock: Clock, recorder: EventRecorder) -> Callable[..., GameSession]:
    def factory(*, rng: random.Random | None = None, **config: float) -> GameSession:
        events = EventBus()
        events.subscribe("*", recorder)
        return GameSession(
            MemoryStore(),
            config=EngineConfig(**config),
            rng=rng or StubRandom(),
            events=events,
            clock=clock,
        )

    return factory
