"""Event publishing port used by the engine to reach the presentation layer."""

from __future__ import annotations

import logging
from collections import defaultdict
from typing import Any, Callable, DefaultDict, Dict, List, Mapping

log = logging.getLogger(__name__)

EventCallback = Callable[[str, Mapping[str, Any]], None]

EFFECT = "effect"
NAVIGATE = "navigate"
ACCOUNT_SAVED = "account_saved"
LOOTBOX_SPAWN = "lootbox_spawn"
LOOTBOX_DESPAWN = "lootbox_despawn"
LOOTBOX_WARNING = "lootbox_warning"


class EventBus:
    """Fire-and-forget publish/subscribe hub.

    Subscribers registered for ``"*"`` receive every event.  A failing
    subscriber is logged and does not stop delivery to the others.
    """

    def __init__(self) -> None:
        self._subscribers: DefaultDict[str, List[EventCallback]] = defaultdict(list)

    def subscribe(self, kind: str, callback: EventCallback) -> None:
        self._subscribers[kind].append(callback)

    def unsubscribe(self, kind: str, callback: EventCallback) -> None:
        callbacks = self._subscribers.get(kind)
        if callbacks and callback in callbacks:
            callbacks.remove(callback)

    def publish(self, kind: str, payload: Mapping[str, Any] | None = None) -> None:
        data: Dict[str, Any] = dict(payload or {})
        for callback in (*self._subscribers.get(kind, ()), *self._subscribers.get("*", ())):
            try:
                callback(kind, data)
            except Exception:
                log.exception("Event subscriber failed for %s", kind)

    def clear(self) -> None:
        self._subscribers.clear()


class EventRecorder:
    """Subscriber that keeps every event it sees, handy for hosts and tests."""

    def __init__(self) -> None:
        self.events: List[tuple[str, Dict[str, Any]]] = []

    def __call__(self, kind: str, payload: Mapping[str, Any]) -> None:
        self.events.append((kind, dict(payload)))

    def of_kind(self, kind: str) -> List[Dict[str, Any]]:
        return [payload for event_kind, payload in self.events if event_kind == kind]


__all__ = [
    "ACCOUNT_SAVED",
    "EFFECT",
    "EventBus",
    "EventCallback",
    "EventRecorder",
    "LOOTBOX_DESPAWN",
    "LOOTBOX_SPAWN",
    "LOOTBOX_WARNING",
    "NAVIGATE",
]
