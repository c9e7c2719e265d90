"""The structured result returned for every processed command."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional


class OutcomeType(str, Enum):
    SYSTEM = "system"
    CHAT = "chat"
    COMMAND = "command"
    COMBO = "combo"
    PROFILE = "profile"
    INVENTORY = "inventory"
    LEADERBOARD = "leaderboard"
    REWARD = "reward"
    ITEM = "item"
    GIFT = "gift"
    THEFT = "theft"
    DUEL = "duel"
    NAVIGATION = "navigation"
    QUEST_LIST = "quest_list"
    MINIGAME_LIST = "minigame_list"
    SHOP = "shop"


@dataclass(slots=True)
class Outcome:
    """Everything the presentation layer needs to render a command result.

    ``data`` carries handler specific fields (combo name, rewards, navigation
    target, remaining cooldown, ...).  ``to_dict`` flattens them next to the
    common fields.
    """

    success: bool
    message: str
    type: OutcomeType = OutcomeType.SYSTEM
    aura_gain: Optional[int] = None
    aura_loss: Optional[int] = None
    effect: Optional[str] = None
    data: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def ok(cls, message: str, type: OutcomeType = OutcomeType.SYSTEM, **kwargs: Any) -> "Outcome":
        return cls(True, message, type, **kwargs)

    @classmethod
    def fail(cls, message: str, type: OutcomeType = OutcomeType.SYSTEM, **kwargs: Any) -> "Outcome":
        return cls(False, message, type, **kwargs)

    def get(self, key: str, default: Any = None) -> Any:
        return self.data.get(key, default)

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = dict(self.data)
        payload.update(
            {
                "success": self.success,
                "message": self.message,
                "type": self.type.value,
            }
        )
        if self.aura_gain is not None:
            payload["aura_gain"] = self.aura_gain
        if self.aura_loss is not None:
            payload["aura_loss"] = self.aura_loss
        if self.effect is not None:
            payload["effect"] = self.effect
        return payload


__all__ = ["Outcome", "OutcomeType"]
