"""Lootbox generation."""

from __future__ import annotations

import logging
import random
from typing import Optional

from .catalog import ItemCatalog, default_catalog
from .constants import LOOTBOX_AURA_RANGES, LOOTBOX_ITEM_DROPS, LOOTBOX_RARITY_THRESHOLDS
from .models.lootbox import LootReward, Lootbox, LootboxRarity

log = logging.getLogger(__name__)


def roll_rarity(rng: random.Random) -> LootboxRarity:
    roll = rng.random()
    for rarity, threshold in LOOTBOX_RARITY_THRESHOLDS:
        if roll < threshold:
            return LootboxRarity(rarity)
    return LootboxRarity.EPIC


def roll_rewards(
    rarity: LootboxRarity, rng: random.Random, catalog: ItemCatalog
) -> tuple[LootReward, ...]:
    low, high = LOOTBOX_AURA_RANGES[rarity.value]
    rewards = [LootReward.aura(rng.randint(low, high))]
    for item_rarity, chance in LOOTBOX_ITEM_DROPS[rarity.value]:
        if rng.random() >= chance:
            continue
        pool = catalog.by_rarity(item_rarity)
        if not pool:
            log.debug("No %s items available for a %s lootbox", item_rarity, rarity.value)
            continue
        rewards.append(LootReward.item(rng.choice(pool).item_id))
    return tuple(rewards)


def spawn(
    rng: Optional[random.Random] = None,
    catalog: Optional[ItemCatalog] = None,
    *,
    now: float = 0.0,
) -> Lootbox:
    """Create a lootbox with its rarity and rewards fixed up front."""

    rng = rng or random.Random()
    catalog = catalog or default_catalog()
    rarity = roll_rarity(rng)
    return Lootbox(rarity=rarity, rewards=roll_rewards(rarity, rng, catalog), spawned_at=now)


__all__ = ["roll_rarity", "roll_rewards", "spawn"]
