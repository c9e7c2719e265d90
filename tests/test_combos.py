from __future__ import annotations

import sys
from pathlib import Path

import pytest

PROJECT_BASE = Path(__file__).resolve().parents[1]
if str(PROJECT_BASE) not in sys.path:
    sys.path.insert(0, str(PROJECT_BASE))

from avra.combos import ComboTracker
from avra.constants import SECONDS_PER_HOUR
from avra.models.outcome import OutcomeType
from avra.models.players import PlayerAccount

NOW = 1_700_000_000.0


@pytest.fixture
def account() -> PlayerAccount:
    return PlayerAccount(account_id="1", name="Comboist", aura=500)


def _feed(tracker: ComboTracker, account: PlayerAccount, tokens, start: float = NOW):
    return [tracker.track(account, token, start + index) for index, token in enumerate(tokens)]


def test_energy_surge_in_order(account: PlayerAccount) -> None:
    outcomes = _feed(ComboTracker(), account, ["focus", "channel", "release"])
    combos = [outcome for outcome in outcomes if outcome.type is OutcomeType.COMBO]
    assert len(combos) == 1
    assert combos[0].aura_gain == 250
    assert combos[0].get("combo_name") == "Energy Surge"
    assert combos[0].message == "You performed an Energy Surge combo! +250 Aura"
    assert outcomes[0].message == "Command: focus"
    assert account.aura == 750
    assert account.stats.combos_performed == 1


def test_catalyst_boosts_combo_reward(account: PlayerAccount) -> None:
    account.activate("aura_catalyst", "boost_gains", 3 * SECONDS_PER_HOUR, NOW)
    outcomes = _feed(ComboTracker(), account, ["focus", "channel", "release"])
    assert outcomes[-1].aura_gain == 312
    assert account.aura == 812


def test_wrong_order_yields_no_combo(account: PlayerAccount) -> None:
    outcomes = _feed(ComboTracker(), account, ["channel", "focus", "release"])
    assert all(outcome.type is OutcomeType.COMMAND for outcome in outcomes)
    assert account.aura == 500


def test_unrelated_prefix_still_matches(account: PlayerAccount) -> None:
    tracker = ComboTracker()
    outcomes = _feed(tracker, account, ["meditate", "inspect", "focus", "channel", "release"])
    assert outcomes[-1].type is OutcomeType.COMBO
    assert list(tracker.buffer) == []


def test_idle_buffer_starts_fresh_chain(account: PlayerAccount) -> None:
    tracker = ComboTracker(window=10.0)
    tracker.track(account, "focus", NOW)
    tracker.track(account, "channel", NOW + 1)
    late = tracker.track(account, "release", NOW + 12)
    assert late.type is OutcomeType.COMMAND
    assert list(tracker.buffer) == ["release"]

    assert tracker.expire(NOW + 30)
    assert list(tracker.buffer) == []
    assert tracker.last_token_at is None


def test_buffer_is_bounded(account: PlayerAccount) -> None:
    tracker = ComboTracker(max_length=5)
    _feed(tracker, account, ["focus"] * 12)
    assert len(tracker.buffer) == 5
