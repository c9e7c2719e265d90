from __future__ import annotations

import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

import pytest

PROJECT_BASE = Path(__file__).resolve().parents[1]
if str(PROJECT_BASE) not in sys.path:
    sys.path.insert(0, str(PROJECT_BASE))

from avra import game
from avra.constants import RESTORE_DELAY, SECONDS_PER_DAY, SECONDS_PER_HOUR, THEFT_COOLDOWN
from avra.errors import PreconditionError
from avra.models.players import PlayerAccount

NOW = 1_700_000_000.0


class RecordingSchedule:
    def __init__(self) -> None:
        self.calls: List[tuple[float, str, Optional[str], Dict[str, Any]]] = []

    def __call__(self, delay: float, kind: str, account_id: Optional[str], payload: Dict[str, Any]) -> int:
        self.calls.append((delay, kind, account_id, payload))
        return len(self.calls)


@pytest.fixture
def thief() -> PlayerAccount:
    return PlayerAccount(account_id="thief", name="Sly", aura=1_000)


@pytest.fixture
def target() -> PlayerAccount:
    return PlayerAccount(account_id="mark", name="Mark", aura=2_000)


def test_cannot_steal_from_self_or_missing(stub_random, thief: PlayerAccount) -> None:
    with pytest.raises(PreconditionError) as excinfo:
        game.attempt_theft(thief, thief, NOW, target_name="Sly", rng=stub_random())
    assert excinfo.value.message == "You cannot steal from yourself."
    with pytest.raises(PreconditionError):
        game.attempt_theft(thief, None, NOW, target_name="Ghost", rng=stub_random())
    assert "theft" not in thief.cooldowns


def test_cooldown_blocks_and_reports_minutes(stub_random, thief, target) -> None:
    thief.set_cooldown("theft", NOW + 61)
    with pytest.raises(PreconditionError) as excinfo:
        game.attempt_theft(thief, target, NOW, target_name="Mark", rng=stub_random())
    assert excinfo.value.details["remaining_minutes"] == 2
    assert target.aura == 2_000


def test_untargetable_target_sets_no_cooldown(stub_random, thief, target) -> None:
    target.activate("stealth_cloak", "stealth", 6 * SECONDS_PER_HOUR, NOW)
    with pytest.raises(PreconditionError):
        game.attempt_theft(thief, target, NOW, target_name="Mark", rng=stub_random())
    assert not thief.is_on_cooldown("theft", NOW)
    assert (thief.aura, target.aura) == (1_000, 2_000)


def test_mirror_ward_reflects_penalty(stub_random, thief, target) -> None:
    target.activate("mirror_ward", "reflect_theft", 3 * SECONDS_PER_HOUR, NOW)
    # The ward reflects even when an armed shield is also present.
    target.activate("aura_shield", "block_theft", SECONDS_PER_DAY, NOW)
    outcome = game.attempt_theft(thief, target, NOW, target_name="Mark", rng=stub_random([0.0]))
    assert not outcome.success
    assert outcome.effect == "theft_reflected"
    assert (thief.aura, target.aura) == (950, 2_050)
    assert thief.cooldowns["theft"] == NOW + THEFT_COOLDOWN
    assert target.has_effect("block_theft", NOW)


def test_shield_blocks_once(stub_random, thief, target) -> None:
    target.activate("aura_shield", "block_theft", SECONDS_PER_DAY, NOW)
    blocked = game.attempt_theft(thief, target, NOW, target_name="Mark", rng=stub_random([0.0]))
    assert blocked.effect == "theft_blocked"
    assert (thief.aura, target.aura) == (1_000, 2_000)
    assert not target.has_effect("block_theft", NOW)

    later = NOW + THEFT_COOLDOWN
    stolen = game.attempt_theft(thief, target, later, target_name="Mark", rng=stub_random([0.0]))
    assert stolen.success


def test_successful_theft(stub_random, thief, target) -> None:
    outcome = game.attempt_theft(thief, target, NOW, target_name="Mark", rng=stub_random([0.39]))
    assert outcome.success
    assert outcome.aura_gain == 200
    assert outcome.get("chance") == pytest.approx(0.40)
    assert (thief.aura, target.aura) == (1_200, 1_800)
    assert thief.stats.thefts_succeeded == 1
    assert not outcome.get("restore_scheduled")


def test_failed_theft_costs_penalty(stub_random, thief, target) -> None:
    outcome = game.attempt_theft(thief, target, NOW, target_name="Mark", rng=stub_random([0.41]))
    assert not outcome.success
    assert outcome.aura_loss == 50
    assert (thief.aura, target.aura) == (950, 2_000)
    assert thief.stats.thefts_failed == 1
    assert thief.is_on_cooldown("theft", NOW + THEFT_COOLDOWN - 1)


def test_penalty_never_drives_aura_negative(stub_random, target) -> None:
    broke = PlayerAccount(account_id="broke", name="Broke", aura=0)
    outcome = game.attempt_theft(broke, target, NOW, target_name="Mark", rng=stub_random([0.99]))
    assert outcome.aura_loss == 0
    assert broke.aura == 0


def test_time_crystal_halves_theft_cooldown(stub_random, thief, target) -> None:
    thief.activate("time_crystal", "reduce_cooldowns", 2 * SECONDS_PER_HOUR, NOW)
    game.attempt_theft(thief, target, NOW, target_name="Mark", rng=stub_random([0.99]))
    assert thief.cooldowns["theft"] == NOW + THEFT_COOLDOWN / 2


def test_temporal_anchor_schedules_restore(stub_random, thief, target) -> None:
    target.activate("temporal_anchor", "restore_stolen", SECONDS_PER_DAY, NOW)
    schedule = RecordingSchedule()
    outcome = game.attempt_theft(
        thief, target, NOW, target_name="Mark", rng=stub_random([0.0]), schedule=schedule
    )
    assert outcome.get("restore_scheduled")
    assert schedule.calls == [
        (RESTORE_DELAY, game.RESTORE_TASK, "mark", {"amount": 200, "thief_id": "thief"})
    ]

    restored = game.restore_stolen(target, 200)
    assert restored == 200
    assert target.aura == 2_000
    assert target.pop_notification().message == "Your Temporal Anchor has restored 200 stolen Aura."
