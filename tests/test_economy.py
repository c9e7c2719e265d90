from __future__ import annotations

import random
import sys
from pathlib import Path

import pytest

PROJECT_BASE = Path(__file__).resolve().parents[1]
if str(PROJECT_BASE) not in sys.path:
    sys.path.insert(0, str(PROJECT_BASE))

from avra import economy
from avra.constants import SECONDS_PER_DAY, SECONDS_PER_HOUR, THEFT_COOLDOWN
from avra.models.players import PlayerAccount

NOW = 1_700_000_000.0


def _account(account_id: str = "a", aura: int = 500, *items: tuple[str, str]) -> PlayerAccount:
    account = PlayerAccount(account_id=account_id, name=f"Player {account_id}", aura=aura)
    for item_id, effect in items:
        account.activate(item_id, effect, SECONDS_PER_HOUR, NOW)
    return account


@pytest.mark.parametrize(
    ("aura", "level"),
    [(0, 1), (999, 1), (1_000, 2), (4_999, 2), (5_000, 3), (99_999, 6), (100_000, 7), (10**9, 7)],
)
def test_level_breakpoints(aura: int, level: int) -> None:
    assert economy.level_for_aura(aura) == level


def test_rank_and_progress() -> None:
    assert economy.rank_for_level(1) == "Novice Seeker"
    assert economy.rank_for_level(7) == "Aura Lord"
    assert economy.rank_for_level(99) == "Aura Lord"
    assert economy.level_progress(500) == pytest.approx(0.5)
    assert economy.level_progress(3_000) == pytest.approx(0.5)
    assert economy.level_progress(10**9) == 1.0


def test_daily_reward_table() -> None:
    assert [economy.daily_reward(day) for day in range(1, 8)] == [100, 150, 225, 300, 400, 500, 1_000]
    with pytest.raises(ValueError):
        economy.daily_reward(0)


def test_next_streak_rules() -> None:
    assert economy.next_streak(0, None, NOW) == 1
    assert economy.next_streak(3, NOW - SECONDS_PER_DAY, NOW) == 4
    assert economy.next_streak(5, NOW - 3 * SECONDS_PER_DAY, NOW) == 4
    assert economy.next_streak(2, NOW - 5 * SECONDS_PER_DAY, NOW) == 2
    assert economy.next_streak(7, NOW - SECONDS_PER_DAY, NOW) == 1


def test_gain_boost_stacks_catalyst_and_crown() -> None:
    plain = _account()
    assert economy.apply_gain_boost(250, plain, NOW) == 250

    boosted = _account("b", 500, ("aura_catalyst", "boost_gains"))
    assert economy.gain_bonus_percent(boosted, NOW) == 25
    assert economy.apply_gain_boost(250, boosted, NOW) == 312

    crowned = _account("c", 500, ("aura_catalyst", "boost_gains"), ("aura_crown", "crown_effect"))
    assert economy.gain_bonus_percent(crowned, NOW) == 75


def test_catalyst_network_synergy_adds_bonus() -> None:
    account = _account(
        "d",
        500,
        ("aura_catalyst", "boost_gains"),
        ("time_crystal", "reduce_cooldowns"),
        ("lootbox_detector", "detect_lootbox"),
    )
    assert economy.gain_bonus_percent(account, NOW) == 40
    assert economy.apply_gain_boost(100, account, NOW) == 140


def test_cooldown_duration_with_time_crystal() -> None:
    assert economy.cooldown_duration(THEFT_COOLDOWN, _account(), NOW) == THEFT_COOLDOWN

    crystal = _account("e", 500, ("time_crystal", "reduce_cooldowns"))
    assert economy.cooldown_duration(THEFT_COOLDOWN, crystal, NOW) == THEFT_COOLDOWN / 2

    weaver = _account(
        "f", 500, ("time_crystal", "reduce_cooldowns"), ("temporal_anchor", "restore_stolen")
    )
    assert economy.cooldown_duration(THEFT_COOLDOWN, weaver, NOW) == THEFT_COOLDOWN / 4


def test_theft_chance_is_clamped_and_monotonic() -> None:
    chances = [economy.base_theft_chance(diff) for diff in range(-60, 61)]
    assert all(0.10 <= chance <= 0.80 for chance in chances)
    assert all(later <= earlier for earlier, later in zip(chances, chances[1:]))
    assert economy.base_theft_chance(50) == pytest.approx(0.10)
    assert economy.base_theft_chance(-50) == pytest.approx(0.80)
    assert economy.base_theft_chance(0) == pytest.approx(0.40)


def test_theft_chance_item_bonuses() -> None:
    target = _account("t", 500)
    thief = _account("x", 500, ("aura_magnet", "boost_theft"), ("precision_lens", "see_defenses"))
    assert economy.theft_chance(thief, target, NOW) == pytest.approx(0.65)

    sneaky = _account("y", 500, ("stealth_cloak", "stealth"), ("shadow_mask", "hide_identity"))
    assert economy.theft_chance(sneaky, target, NOW) == pytest.approx(0.50)


def test_master_thief_bonus_scales_with_level_gap() -> None:
    thief = _account(
        "m",
        500,
        ("aura_magnet", "boost_theft"),
        ("precision_lens", "see_defenses"),
        ("void_extractor", "amplify_theft"),
    )
    target = _account("rich", 25_000)
    # 0.40 - 4 * 0.05 + 0.15 + 0.10 + 4 * 0.03
    assert economy.theft_chance(thief, target, NOW) == pytest.approx(0.57)


def test_theft_amount_and_cap() -> None:
    thief = _account("x", 500)
    assert economy.theft_amount(thief, _account("t", 2_000), NOW) == 200
    assert economy.theft_amount(thief, _account("whale", 100_000), NOW) == 5_000

    extractor = _account("z", 500, ("void_extractor", "amplify_theft"))
    assert economy.theft_amount(extractor, _account("t", 2_000), NOW) == 300
    assert economy.theft_penalty(1_000) == 50
    assert economy.theft_penalty(19) == 0


def test_untargetable_effects() -> None:
    assert not economy.is_untargetable(_account(), NOW)
    assert economy.is_untargetable(_account("s", 500, ("stealth_cloak", "stealth")), NOW)
    assert economy.is_untargetable(_account("c", 500, ("aura_crown", "crown_effect")), NOW)


def test_duel_stake_bounds() -> None:
    assert economy.duel_stake(500, 500) == 100
    assert economy.duel_stake(40_000, 50_000) == 2_000
    assert economy.duel_stake(200_000, 300_000) == 5_000


def test_duel_win_probability_closed_form() -> None:
    assert economy.duel_win_probability(0) == pytest.approx(0.5)
    assert economy.duel_win_probability(2) == pytest.approx(0.68)
    assert economy.duel_win_probability(-2) == pytest.approx(0.32)
    assert economy.duel_win_probability(10) == 1.0
    assert economy.duel_win_probability(-10) == 0.0

    rng = random.Random(3)
    trials = 20_000
    wins = sum(1 for _ in range(trials) if rng.random() + 0.2 > rng.random())
    assert wins / trials == pytest.approx(0.68, abs=0.02)


def test_minigame_reward_scales_with_score() -> None:
    assert economy.minigame_reward(100, 300, 5, 10) == 200
    assert economy.minigame_reward(100, 300, 50, 10) == 300
    assert economy.minigame_reward(100, 300, -4, 10) == 100
    assert economy.minigame_reward(100, 300, 5, 0) == 100
