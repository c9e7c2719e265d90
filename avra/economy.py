"""Economy math: rewards, theft odds, duel stakes and gain multipliers.

Everything here is a pure function over account snapshots.  The functions
never mutate an account; :mod:`avra.game` applies the results.
"""

from __future__ import annotations

import math
from typing import TYPE_CHECKING, Optional

from .catalog import ItemCatalog, default_catalog
from .constants import (
    CATALYST_NETWORK_BONUS,
    DAILY_REWARDS,
    DUEL_LEVEL_ADVANTAGE,
    DUEL_MAX_STAKE,
    DUEL_MIN_STAKE,
    DUEL_STAKE_PERCENT,
    GAIN_BONUSES,
    MAX_STREAK,
    SECONDS_PER_DAY,
    THEFT_BASE_CHANCE,
    THEFT_EXTRACTOR_MULTIPLIER,
    THEFT_LENS_BONUS,
    THEFT_LEVEL_PENALTY,
    THEFT_MAGNET_BONUS,
    THEFT_MASTER_THIEF_PER_LEVEL,
    THEFT_MAX_AMOUNT,
    THEFT_MAX_CHANCE,
    THEFT_MIN_CHANCE,
    THEFT_PENALTY_PERCENT,
    THEFT_STEAL_PERCENT,
    THEFT_STEALTH_SET_BONUS,
    THEFT_VOID_WALKER_MULTIPLIER,
    UNTARGETABLE_EFFECTS,
)
from .models.progression import level_for_aura, level_progress, rank_for_level

if TYPE_CHECKING:
    from .models.players import PlayerAccount


def _catalog(catalog: Optional[ItemCatalog]) -> ItemCatalog:
    return catalog if catalog is not None else default_catalog()


# ---------------------------------------------------------------------------
# Gains
# ---------------------------------------------------------------------------


def gain_bonus_percent(
    account: "PlayerAccount", now: float, catalog: Optional[ItemCatalog] = None
) -> int:
    """Total percentage added to aura gains by active items and synergies."""

    bonus = sum(
        percent for effect, percent in GAIN_BONUSES.items() if account.has_effect(effect, now)
    )
    if _catalog(catalog).has_synergy(account, "catalyst_network", now):
        bonus += CATALYST_NETWORK_BONUS
    return bonus


def boost_amount(amount: int, bonus_percent: int) -> int:
    """Apply ``bonus_percent`` to ``amount``, rounding down."""

    return max(0, int(amount)) * (100 + max(0, int(bonus_percent))) // 100


def apply_gain_boost(
    amount: int,
    account: "PlayerAccount",
    now: float,
    catalog: Optional[ItemCatalog] = None,
) -> int:
    return boost_amount(amount, gain_bonus_percent(account, now, catalog))


# ---------------------------------------------------------------------------
# Daily bonus
# ---------------------------------------------------------------------------


def daily_reward(streak: int) -> int:
    if streak < 1 or streak > MAX_STREAK:
        raise ValueError(f"Streak must be between 1 and {MAX_STREAK}, got {streak}")
    return DAILY_REWARDS[streak - 1]


def next_streak(current: int, last_claim_at: Optional[float], now: float) -> int:
    """Streak value after claiming at ``now``.

    Missing more than one day drops the streak back a single day but never
    below day 2.  The weekly cycle wraps from day 7 back to day 1.
    """

    if not last_claim_at:
        return 1
    days_since = math.floor((now - last_claim_at) / SECONDS_PER_DAY)
    if days_since > 1:
        streak = max(2, current - 1)
    else:
        streak = current + 1
    if streak > MAX_STREAK:
        streak = 1
    return streak


# ---------------------------------------------------------------------------
# Cooldowns
# ---------------------------------------------------------------------------


def cooldown_duration(
    base: float,
    account: "PlayerAccount",
    now: float,
    catalog: Optional[ItemCatalog] = None,
) -> float:
    """Scale an activity cooldown by any active Time Crystal effects."""

    if not account.has_effect("reduce_cooldowns", now):
        return float(base)
    if _catalog(catalog).has_synergy(account, "time_weaver", now):
        return base * 0.25
    return base * 0.5


# ---------------------------------------------------------------------------
# Theft
# ---------------------------------------------------------------------------


def is_untargetable(account: "PlayerAccount", now: float) -> bool:
    return any(account.has_effect(effect, now) for effect in UNTARGETABLE_EFFECTS)


def theft_chance(
    thief: "PlayerAccount",
    target: "PlayerAccount",
    now: float,
    catalog: Optional[ItemCatalog] = None,
) -> float:
    catalog = _catalog(catalog)
    level_diff = target.level - thief.level
    chance = THEFT_BASE_CHANCE - level_diff * THEFT_LEVEL_PENALTY
    if thief.has_effect("boost_theft", now):
        chance += THEFT_MAGNET_BONUS
    if thief.has_effect("see_defenses", now):
        chance += THEFT_LENS_BONUS
    synergies = {synergy.key for synergy in catalog.active_synergies(thief, now)}
    if "stealth_set" in synergies:
        chance += THEFT_STEALTH_SET_BONUS
    if "master_thief" in synergies:
        chance += max(0, level_diff) * THEFT_MASTER_THIEF_PER_LEVEL
    return clamp_theft_chance(chance)


def clamp_theft_chance(chance: float) -> float:
    return max(THEFT_MIN_CHANCE, min(THEFT_MAX_CHANCE, chance))


def base_theft_chance(level_diff: int) -> float:
    """Chance without any items for a target ``level_diff`` levels above."""

    return clamp_theft_chance(THEFT_BASE_CHANCE - level_diff * THEFT_LEVEL_PENALTY)


def theft_amount(
    thief: "PlayerAccount",
    target: "PlayerAccount",
    now: float,
    catalog: Optional[ItemCatalog] = None,
) -> int:
    amount = target.aura * THEFT_STEAL_PERCENT // 100
    if thief.has_effect("amplify_theft", now):
        amount = math.floor(amount * THEFT_EXTRACTOR_MULTIPLIER)
    if _catalog(catalog).has_synergy(thief, "void_walker", now):
        amount = math.floor(amount * THEFT_VOID_WALKER_MULTIPLIER)
    return min(amount, THEFT_MAX_AMOUNT, target.aura)


def theft_penalty(aura: int) -> int:
    return max(0, int(aura)) * THEFT_PENALTY_PERCENT // 100


# ---------------------------------------------------------------------------
# Duels
# ---------------------------------------------------------------------------


def duel_stake(aura_a: int, aura_b: int) -> int:
    stake = min(aura_a, aura_b) * DUEL_STAKE_PERCENT // 100
    return max(DUEL_MIN_STAKE, min(DUEL_MAX_STAKE, stake))


def duel_win_probability(level_diff: int) -> float:
    """Probability that ``U1 + d > U2`` for independent uniforms.

    ``level_diff`` is the challenger's level minus the opponent's, and each
    level is worth :data:`DUEL_LEVEL_ADVANTAGE` of score.
    """

    d = level_diff * DUEL_LEVEL_ADVANTAGE
    if d >= 1:
        return 1.0
    if d <= -1:
        return 0.0
    if d >= 0:
        return 1 - (1 - d) ** 2 / 2
    return (1 + d) ** 2 / 2


def turn_keep_probability(level_diff: int) -> float:
    """Chance a turn-based exchange result stands before the level check."""

    return max(0.0, min(1.0, 0.5 + level_diff * DUEL_LEVEL_ADVANTAGE))


# ---------------------------------------------------------------------------
# Minigames
# ---------------------------------------------------------------------------


def minigame_reward(reward_min: int, reward_max: int, score: float, max_score: float) -> int:
    if max_score <= 0:
        fraction = 0.0
    else:
        fraction = max(0.0, min(1.0, score / max_score))
    return math.floor(reward_min + fraction * (reward_max - reward_min))


__all__ = [
    "apply_gain_boost",
    "base_theft_chance",
    "boost_amount",
    "clamp_theft_chance",
    "cooldown_duration",
    "daily_reward",
    "duel_stake",
    "duel_win_probability",
    "gain_bonus_percent",
    "is_untargetable",
    "level_for_aura",
    "level_progress",
    "minigame_reward",
    "next_streak",
    "rank_for_level",
    "theft_amount",
    "theft_chance",
    "theft_penalty",
    "turn_keep_probability",
]
