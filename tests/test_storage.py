from __future__ import annotations

import importlib.util
import sys
from pathlib import Path

import pytest
import tomllib

PROJECT_BASE = Path(__file__).resolve().parents[1]
if str(PROJECT_BASE) not in sys.path:
    sys.path.insert(0, str(PROJECT_BASE))

from avra.models.players import PlayerAccount
from avra.storage import (
    DataStore,
    MemoryStore,
    MissingMigrationError,
    resolve_storage_root,
    toml_dumps,
)

LEGACY_SCRIPT = PROJECT_BASE / "migrations" / "accounts" / "0002_legacy_layout.py"

LEGACY_SAVE = """\
id = "legacy-1"
name = "Old Timer"
aura = 1200
dailyStreak = 3
lastClaimDate = 1704110400000
theftCooldown = 1704114000000
questsCompleted = 4
theftsSuccessful = 2

[[inventory]]
id = "aura_shield"
type = "consumable"
acquiredAt = 1704100000000

[[inventory]]
id = "aura_magnet"
type = "offensive"
acquiredAt = 1704100000000

[[activeItems]]
id = "aura_catalyst"
effect = "boost_gains"
expiresAt = 1704120000000

[[notifications]]
type = "gift"
message = "Bob sent you 100 Aura!"
amount = 100
"""


def _load_legacy_module():
    spec = importlib.util.spec_from_file_location("legacy_layout", LEGACY_SCRIPT)
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module


def _account_payload() -> dict:
    account = PlayerAccount(account_id="123", name="Keeper", aura=1_500, created_at=10.0)
    account.add_item("aura_shield", 11.0, uses_left=1)
    account.add_item("aura_magnet", 12.0)
    account.set_cooldown("theft", 500.0)
    account.set_cooldown("item:void_extractor", 900.0)
    account.notify("gift", "Bob sent you 100 Aura!", amount=100)
    return account.to_dict()


def test_toml_dumps_quotes_non_bare_keys() -> None:
    text = toml_dumps({"cooldowns": {"item:void_extractor": 1.5, "theft": 2.0}, "skip": None})
    assert '"item:void_extractor" = 1.5' in text
    assert "skip" not in text
    assert tomllib.loads(text) == {"cooldowns": {"item:void_extractor": 1.5, "theft": 2.0}}


def test_resolve_storage_root_prefers_env(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("AVRA_DATA_ROOT", str(tmp_path))
    assert resolve_storage_root() == tmp_path.resolve()


def test_installed_package_uses_working_directory(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.delenv("AVRA_DATA_ROOT", raising=False)
    monkeypatch.chdir(tmp_path)
    installed = Path("/usr/lib/python3/site-packages/avra")
    assert resolve_storage_root(installed) == tmp_path.resolve()


def test_datastore_round_trip(tmp_path: Path) -> None:
    store = DataStore(tmp_path)
    payload = _account_payload()
    store.save("123", payload)

    path = store.path_for("123")
    assert path == tmp_path / "playerdata" / "accounts" / "123.toml"
    restored = PlayerAccount.from_dict(store.load("123"))
    assert restored.to_dict() == payload
    assert restored.inventory[1].uses_left is None

    version = tomllib.loads((tmp_path / "playerdata" / "schema_version.toml").read_text())
    assert version == {"collections": {"accounts": 2}}


def test_datastore_load_all_and_delete(tmp_path: Path) -> None:
    store = DataStore(tmp_path)
    store.save("a/b", {"account_id": "a/b", "name": "Slash", "aura": 1})
    store.save("c", {"account_id": "c", "name": "Plain", "aura": 2})

    assert sorted(store.load_all()) == ["a/b", "c"]
    assert store.load("missing") is None
    assert store.delete("c")
    assert not store.delete("c")
    assert sorted(store.load_all()) == ["a/b"]


def test_failed_write_keeps_previous_record(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    store = DataStore(tmp_path)
    store.save("1", {"account_id": "1", "name": "Safe", "aura": 100})

    def broken_replace(*args, **kwargs):
        raise OSError("disk full")

    monkeypatch.setattr("avra.storage.os.replace", broken_replace)
    with pytest.raises(OSError):
        store.save("1", {"account_id": "1", "name": "Safe", "aura": 999})
    monkeypatch.undo()

    assert store.load("1")["aura"] == 100
    assert list(store.path_for("1").parent.glob("*.tmp")) == []


def test_legacy_saves_are_migrated_on_first_access(tmp_path: Path) -> None:
    record = tmp_path / "playerdata" / "accounts" / "legacy-1.toml"
    record.parent.mkdir(parents=True)
    record.write_text(LEGACY_SAVE, encoding="utf8")

    store = DataStore(tmp_path)
    account = PlayerAccount.from_dict(store.load("legacy-1"))

    assert account.account_id == "legacy-1"
    assert account.aura == 1_200
    assert account.daily.streak == 3
    assert account.daily.last_claim_day == "2024-01-01"
    assert account.cooldowns == {"theft": 1_704_114_000.0}
    assert [item.uses_left for item in account.inventory] == [1, None]
    assert account.active_items[0].expires_at == 1_704_120_000.0
    assert account.stats.quests_completed == 4
    assert account.stats.thefts_succeeded == 2
    note = account.pop_notification()
    assert note.kind == "gift"
    assert note.data == {"amount": 100}


def test_converter_leaves_current_records_alone() -> None:
    module = _load_legacy_module()
    assert not module.is_legacy(_account_payload())
    assert module.is_legacy({"dailyStreak": 1})

    converted = module.convert({"createdAt": "2024-01-01T00:00:00Z"}, "fallback")
    assert converted["account_id"] == "fallback"
    assert converted["name"] == "AuraSeeker"
    assert converted["created_at"] == 1_704_067_200.0
    assert converted["daily"]["last_claim_day"] == ""


def test_missing_migration_step_is_reported(tmp_path: Path) -> None:
    config = tmp_path / "storage.toml"
    config.write_text(
        '[collections.accounts]\npath = "playerdata/accounts/{key}.toml"\n'
        'version = 3\nversion_scope = "playerdata"\n',
        encoding="utf8",
    )
    store = DataStore(tmp_path, config_path=config)
    with pytest.raises(MissingMigrationError):
        store.load("anyone")


def test_memory_store_copies_records() -> None:
    store = MemoryStore()
    payload = {"account_id": "1", "inventory": [{"item_id": "aura_shield"}]}
    store.save("1", payload)
    payload["inventory"].clear()

    loaded = store.load("1")
    assert loaded["inventory"] == [{"item_id": "aura_shield"}]
    loaded["inventory"].clear()
    assert store.load("1")["inventory"] == [{"item_id": "aura_shield"}]
    assert store.save_count == 1
