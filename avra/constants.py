"""Shared game constants used by the economy, loot and command layers."""

from __future__ import annotations

from types import MappingProxyType

# Minimum aura required for each level, indexed by ``level - 1``.
LEVEL_THRESHOLDS = (0, 1_000, 5_000, 10_000, 25_000, 50_000, 100_000)
MAX_LEVEL = len(LEVEL_THRESHOLDS)

# Aura span used to report progress once the top level is reached.
TOP_LEVEL_SPAN = 100_000

RANK_TITLES = (
    "Novice Seeker",
    "Aura Adept",
    "Energy Channeler",
    "Aura Mystic",
    "Aetheric Master",
    "Void Walker",
    "Aura Lord",
)

# Daily bonus for each day of the weekly streak (day 1 first).
DAILY_REWARDS = (100, 150, 225, 300, 400, 500, 1_000)
MAX_STREAK = len(DAILY_REWARDS)

SECONDS_PER_MINUTE = 60
SECONDS_PER_HOUR = 60 * SECONDS_PER_MINUTE
SECONDS_PER_DAY = 24 * SECONDS_PER_HOUR

THEFT_COOLDOWN = SECONDS_PER_HOUR
DUEL_COOLDOWN = 10 * SECONDS_PER_MINUTE
RESTORE_DELAY = SECONDS_PER_HOUR
SHIELD_ARM_DURATION = SECONDS_PER_DAY
DEFAULT_ITEM_DURATION = SECONDS_PER_HOUR

THEFT_BASE_CHANCE = 0.40
THEFT_LEVEL_PENALTY = 0.05
THEFT_MAGNET_BONUS = 0.15
THEFT_LENS_BONUS = 0.10
THEFT_STEALTH_SET_BONUS = 0.10
THEFT_MASTER_THIEF_PER_LEVEL = 0.03
THEFT_MIN_CHANCE = 0.10
THEFT_MAX_CHANCE = 0.80
THEFT_STEAL_PERCENT = 10
THEFT_PENALTY_PERCENT = 5
THEFT_EXTRACTOR_MULTIPLIER = 1.5
THEFT_VOID_WALKER_MULTIPLIER = 1.1
THEFT_MAX_AMOUNT = 5_000

DUEL_STAKE_PERCENT = 5
DUEL_MIN_STAKE = 100
DUEL_MAX_STAKE = 5_000
DUEL_LEVEL_ADVANTAGE = 0.1

# Percentage bonuses added to every aura gain while the effect is active.
GAIN_BONUSES = MappingProxyType(
    {
        "boost_gains": 25,
        "crown_effect": 50,
    }
)
CATALYST_NETWORK_BONUS = 15

# Effects that make a player impossible to target with a theft.
UNTARGETABLE_EFFECTS = frozenset({"stealth", "crown_effect"})

LOOTBOX_RARITY_THRESHOLDS = (
    ("common", 0.70),
    ("rare", 0.95),
    ("epic", 1.0),
)

LOOTBOX_AURA_RANGES = MappingProxyType(
    {
        "common": (50, 200),
        "rare": (200, 500),
        "epic": (500, 1_000),
    }
)

# Independent drop chances, per lootbox rarity, for items of each item rarity.
LOOTBOX_ITEM_DROPS = MappingProxyType(
    {
        "common": (("common", 0.20),),
        "rare": (("common", 1.0), ("uncommon", 0.30)),
        "epic": (("uncommon", 1.0), ("rare", 0.50), ("epic", 0.10)),
    }
)

MAX_COMBO_BUFFER = 20
MAX_NOTIFICATIONS = 50
LEADERBOARD_SIZE = 10
