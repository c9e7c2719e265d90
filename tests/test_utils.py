from __future__ import annotations

import sys
from pathlib import Path

import pytest

PROJECT_BASE = Path(__file__).resolve().parents[1]
if str(PROJECT_BASE) not in sys.path:
    sys.path.insert(0, str(PROJECT_BASE))

from avra.storage import DataStore
from avra.utils import format_duration, format_number, main


@pytest.fixture
def data_root(tmp_path: Path) -> Path:
    store = DataStore(tmp_path)
    store.save("1", {"account_id": "1", "name": "Rich", "aura": 12_345})
    store.save("2", {"account_id": "2", "name": "Poor", "aura": 5})
    return tmp_path


def test_format_number_uses_apostrophes() -> None:
    assert format_number(0) == "0"
    assert format_number(1_234_567) == "1'234'567"
    assert format_number(-2_500) == "-2'500"


def test_format_duration() -> None:
    assert format_duration(0) == "0s"
    assert format_duration(59.2) == "1m 00s"
    assert format_duration(3_725) == "1h 02m"


def test_list_orders_by_aura(data_root: Path, capsys) -> None:
    assert main(["--data-root", str(data_root), "list"]) == 0
    out = capsys.readouterr().out
    assert out.index("Rich (12'345 Aura)") < out.index("Poor (5 Aura)")
    assert "2 account(s)" in out


def test_validate_reports_broken_records(data_root: Path, capsys) -> None:
    assert main(["--data-root", str(data_root), "validate"]) == 0
    assert "All account records parsed successfully." in capsys.readouterr().out

    DataStore(data_root).save("3", {"account_id": "3", "name": "", "aura": 1})
    DataStore(data_root).save("4", {"account_id": "other", "name": "Moved", "aura": 1})
    assert main(["--data-root", str(data_root), "lint"]) == 1
    out = capsys.readouterr().out
    assert "[ERROR] 3:" in out
    assert "[WARNING] 4: stored account_id does not match file name" in out


def test_delete_player_requires_confirmation(
    data_root: Path, capsys, monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.setattr("builtins.input", lambda prompt: "no")
    assert main(["--data-root", str(data_root), "delete-player", "--account", "2"]) == 3
    assert DataStore(data_root).load("2") is not None

    assert main(["--data-root", str(data_root), "delete-player", "--account", "2", "--force"]) == 0
    assert DataStore(data_root).load("2") is None
    assert main(["--data-root", str(data_root), "delete-player", "--account", "2", "--force"]) == 1


def test_simulate_prints_shares(capsys) -> None:
    assert main(["simulate-lootboxes", "--count", "1000", "--seed", "1"]) == 0
    out = capsys.readouterr().out
    assert "common:" in out


def test_play_runs_commands_until_quit(capsys, monkeypatch: pytest.MonkeyPatch) -> None:
    lines = iter(["/daily", "quit"])
    monkeypatch.setattr("builtins.input", lambda prompt="": next(lines))
    assert main(["play", "--name", "Tester", "--seed", "5"]) == 0
    out = capsys.readouterr().out
    assert "Playing as Tester (500 Aura)" in out
    assert "Daily bonus claimed! +100 Aura (Day 1 streak)" in out
