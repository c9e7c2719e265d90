"""Item, synergy and activity definitions plus owned item state."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Mapping, Optional, Tuple


class ItemCategory(str, Enum):
    DEFENSIVE = "defensive"
    OFFENSIVE = "offensive"
    UTILITY = "utility"
    LEGENDARY = "legendary"
    CONSUMABLE = "consumable"


class ItemRarity(str, Enum):
    COMMON = "common"
    UNCOMMON = "uncommon"
    RARE = "rare"
    EPIC = "epic"
    LEGENDARY = "legendary"

    @classmethod
    def from_value(cls, value: Any) -> "ItemRarity":
        if isinstance(value, cls):
            return value
        return cls(str(value).strip().lower())


# Categories whose items are activated for a period rather than used up.
DURATION_CATEGORIES = frozenset(
    {
        ItemCategory.DEFENSIVE,
        ItemCategory.OFFENSIVE,
        ItemCategory.UTILITY,
        ItemCategory.LEGENDARY,
    }
)


@dataclass(frozen=True, slots=True)
class ItemDefinition:
    item_id: str
    name: str
    description: str
    category: ItemCategory
    price: int
    rarity: ItemRarity
    effect: str
    duration: float = 0.0
    cooldown: float = 0.0
    usage_text: str = ""

    @property
    def is_consumable(self) -> bool:
        return self.category is ItemCategory.CONSUMABLE

    @property
    def is_timed(self) -> bool:
        return self.category in DURATION_CATEGORIES

    def matches(self, reference: str) -> bool:
        """Return ``True`` if ``reference`` names this item by id or display name."""

        needle = normalize_reference(reference)
        return needle in (normalize_reference(self.item_id), normalize_reference(self.name))


def normalize_reference(value: str) -> str:
    return " ".join(str(value).replace("_", " ").lower().split())


@dataclass(slots=True)
class ItemInstance:
    """One owned copy of a catalog item."""

    item_id: str
    acquired_at: float = 0.0
    uses_left: Optional[int] = None

    def __post_init__(self) -> None:
        self.item_id = str(self.item_id)
        self.acquired_at = float(self.acquired_at or 0.0)
        if self.uses_left is not None:
            self.uses_left = max(0, int(self.uses_left))

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "ItemInstance":
        uses = data.get("uses_left")
        return cls(
            item_id=str(data.get("item_id", "")),
            acquired_at=float(data.get("acquired_at", 0.0) or 0.0),
            uses_left=None if uses is None or int(uses) < 0 else int(uses),
        )

    def to_dict(self) -> dict[str, Any]:
        # TOML has no null, so unlimited uses are written as -1.
        return {
            "item_id": self.item_id,
            "acquired_at": self.acquired_at,
            "uses_left": -1 if self.uses_left is None else self.uses_left,
        }


@dataclass(slots=True)
class ActiveItem:
    item_id: str
    effect: str
    expires_at: float

    def __post_init__(self) -> None:
        self.item_id = str(self.item_id)
        self.effect = str(self.effect)
        self.expires_at = float(self.expires_at)

    def is_expired(self, now: float) -> bool:
        return now >= self.expires_at

    def remaining(self, now: float) -> float:
        return max(0.0, self.expires_at - now)

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "ActiveItem":
        return cls(
            item_id=str(data.get("item_id", "")),
            effect=str(data.get("effect", "")),
            expires_at=float(data.get("expires_at", 0.0) or 0.0),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "item_id": self.item_id,
            "effect": self.effect,
            "expires_at": self.expires_at,
        }


@dataclass(frozen=True, slots=True)
class Synergy:
    key: str
    name: str
    item_ids: Tuple[str, ...]
    description: str
    effect: str


@dataclass(frozen=True, slots=True)
class ComboDefinition:
    key: str
    name: str
    sequence: Tuple[str, ...]
    reward: int
    message: str
    effect: str

    def render(self, reward: int) -> str:
        return self.message.format(reward=reward)

    def hint(self) -> str:
        return " → ".join(self.sequence)


@dataclass(frozen=True, slots=True)
class QuestDefinition:
    quest_id: str
    name: str
    description: str
    difficulty: str
    reward: int
    level_requirement: int = 1


@dataclass(frozen=True, slots=True)
class MinigameDefinition:
    minigame_id: str
    name: str
    description: str
    reward_min: int
    reward_max: int
    keywords: Tuple[str, ...] = field(default_factory=tuple)

    @property
    def reward_text(self) -> str:
        return f"{self.reward_min}-{self.reward_max} Aura"


__all__ = [
    "ActiveItem",
    "ComboDefinition",
    "DURATION_CATEGORIES",
    "ItemCategory",
    "ItemDefinition",
    "ItemInstance",
    "ItemRarity",
    "MinigameDefinition",
    "QuestDefinition",
    "Synergy",
    "normalize_reference",
]
