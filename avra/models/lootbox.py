"""Lootbox value objects."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Tuple


class LootboxRarity(str, Enum):
    COMMON = "common"
    RARE = "rare"
    EPIC = "epic"


class RewardKind(str, Enum):
    AURA = "aura"
    ITEM = "item"


@dataclass(frozen=True, slots=True)
class LootReward:
    kind: RewardKind
    amount: int = 0
    item_id: Optional[str] = None

    @classmethod
    def aura(cls, amount: int) -> "LootReward":
        return cls(RewardKind.AURA, amount=int(amount))

    @classmethod
    def item(cls, item_id: str) -> "LootReward":
        return cls(RewardKind.ITEM, item_id=item_id)

    def to_dict(self) -> dict[str, object]:
        if self.kind is RewardKind.AURA:
            return {"type": self.kind.value, "amount": self.amount}
        return {"type": self.kind.value, "item_id": self.item_id}


@dataclass(frozen=True, slots=True)
class Lootbox:
    """A spawned container whose rewards are fixed when it is created."""

    rarity: LootboxRarity
    rewards: Tuple[LootReward, ...]
    spawned_at: float = 0.0

    @property
    def aura_total(self) -> int:
        return sum(reward.amount for reward in self.rewards if reward.kind is RewardKind.AURA)

    @property
    def item_ids(self) -> Tuple[str, ...]:
        return tuple(
            reward.item_id
            for reward in self.rewards
            if reward.kind is RewardKind.ITEM and reward.item_id is not None
        )


__all__ = ["LootReward", "Lootbox", "LootboxRarity", "RewardKind"]
