from __future__ import annotations

import random
import sys
from pathlib import Path

import pytest

PROJECT_BASE = Path(__file__).resolve().parents[1]
if str(PROJECT_BASE) not in sys.path:
    sys.path.insert(0, str(PROJECT_BASE))

from avra import game
from avra.catalog import default_catalog
from avra.constants import SECONDS_PER_DAY, SECONDS_PER_HOUR
from avra.errors import PreconditionError, ValidationError
from avra.models.players import PlayerAccount

NOW = 1_700_000_000.0


@pytest.fixture
def account() -> PlayerAccount:
    return PlayerAccount(account_id="1", name="Collector", aura=500)


def test_reactivating_extends_remaining_time(account: PlayerAccount) -> None:
    account.add_item("stealth_cloak", NOW)
    account.add_item("stealth_cloak", NOW)
    duration = 6 * SECONDS_PER_HOUR

    first = game.use_item(account, "stealth cloak", NOW)
    assert first.get("expires_at") == NOW + duration
    assert not first.get("extended")

    later = NOW + 1_000
    remaining_before = account.active_item("stealth_cloak", later).remaining(later)
    second = game.use_item(account, "Stealth_Cloak", later)

    assert second.get("extended")
    assert second.get("expires_at") == later + remaining_before + duration
    assert len([entry for entry in account.active_items if entry.item_id == "stealth_cloak"]) == 1
    assert account.inventory == []


def test_unknown_or_missing_item(account: PlayerAccount) -> None:
    with pytest.raises(ValidationError):
        game.use_item(account, "   ", NOW)
    with pytest.raises(PreconditionError) as excinfo:
        game.use_item(account, "mirror ward", NOW)
    assert "mirror ward" in excinfo.value.message


def test_item_cooldown_starts_after_expiry(account: PlayerAccount) -> None:
    account.add_item("void_extractor", NOW)
    account.add_item("void_extractor", NOW)
    game.use_item(account, "void extractor", NOW)
    expires_at = NOW + 12 * SECONDS_PER_HOUR
    assert account.cooldowns["item:void_extractor"] == expires_at + 12 * SECONDS_PER_HOUR

    after_expiry = expires_at + 1
    with pytest.raises(PreconditionError) as excinfo:
        game.use_item(account, "void extractor", after_expiry)
    assert excinfo.value.details["cooldown"] == "item:void_extractor"
    assert len(account.inventory) == 1


def test_shield_is_consumed_and_armed(account: PlayerAccount) -> None:
    account.add_item("aura_shield", NOW, uses_left=1)
    outcome = game.use_item(account, "aura shield", NOW)
    assert outcome.get("consumed")
    assert outcome.effect == "shield_activate"
    assert account.inventory == []
    assert account.has_effect("block_theft", NOW)
    assert not account.has_effect("block_theft", NOW + SECONDS_PER_DAY)


def test_mystic_orb_reveals_a_combo(account: PlayerAccount) -> None:
    account.add_item("mystic_orb", NOW, uses_left=1)
    outcome = game.use_item(account, "mystic orb", NOW, rng=random.Random(4))
    combo_names = {combo.name for combo in default_catalog().combos}
    assert outcome.effect == "combo_reveal"
    assert outcome.get("combo")["name"] in combo_names
    assert account.inventory == []
    assert account.active_items == []


def test_purchase_requires_balance(account: PlayerAccount) -> None:
    outcome = game.purchase_item(account, "aura shield", NOW)
    assert outcome.aura_loss == 500
    assert account.aura == 0
    assert account.inventory[0].item_id == "aura_shield"
    assert account.inventory[0].uses_left == 1

    with pytest.raises(PreconditionError):
        game.purchase_item(account, "aura shield", NOW)
    with pytest.raises(PreconditionError):
        game.purchase_item(account, "golden goose", NOW)
    assert account.aura == 0


def test_gift_moves_aura_and_notifies() -> None:
    sender = PlayerAccount(account_id="1", name="Giver", aura=500)
    recipient = PlayerAccount(account_id="2", name="Taker", aura=100)
    outcome = game.gift_aura(sender, recipient, 200, target_name="Taker")
    assert outcome.success
    assert (sender.aura, recipient.aura) == (300, 300)
    note = recipient.pop_notification()
    assert note is not None
    assert note.message == "Giver has gifted you 200 Aura!"


def test_overdrawn_gift_changes_nothing() -> None:
    sender = PlayerAccount(account_id="1", name="Giver", aura=500)
    recipient = PlayerAccount(account_id="2", name="Taker", aura=100)
    with pytest.raises(PreconditionError):
        game.gift_aura(sender, recipient, 501, target_name="Taker")
    with pytest.raises(PreconditionError):
        game.gift_aura(sender, sender, 10, target_name="Giver")
    with pytest.raises(PreconditionError):
        game.gift_aura(sender, None, 10, target_name="Nobody")
    assert (sender.aura, recipient.aura) == (500, 100)
    assert recipient.pop_notification() is None


def test_missing_recipient_is_reported_before_balance() -> None:
    sender = PlayerAccount(account_id="1", name="Giver", aura=500)
    with pytest.raises(PreconditionError, match="not found"):
        game.gift_aura(sender, None, 99_999, target_name="Nobody")
    with pytest.raises(PreconditionError, match="yourself"):
        game.gift_aura(sender, sender, 99_999, target_name="Giver")


@pytest.mark.parametrize("raw", ["0", "-5", "abc", "1.5", "", "\u00b2", "\u0661\u0662"])
def test_parse_amount_rejects_bad_values(raw: str) -> None:
    with pytest.raises(ValidationError):
        game.parse_amount(raw)
