"""Formatting helpers and the administrative CLI for account data."""

from __future__ import annotations

import argparse
import logging
import random
import sys
from collections import Counter
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Sequence, SupportsInt

from .config import EngineConfig
from .loot import roll_rarity
from .models import ModelValidationError
from .models.players import PlayerAccount
from .session import GameSession
from .storage import DataStore, MemoryStore, MissingMigrationError, resolve_storage_root

PROJECT_BASE = Path(__file__).resolve().parent.parent


def format_number(value: SupportsInt) -> str:
    """Return ``value`` with ``'`` as the thousands separator."""

    integer = int(value)
    sign = "-" if integer < 0 else ""
    formatted = f"{abs(integer):,}".replace(",", "'")
    return f"{sign}{formatted}"


def format_duration(seconds: float) -> str:
    """Compact ``1h 05m`` style rendering, rounded up to whole seconds."""

    total = max(0, int(-(-float(seconds) // 1)))
    hours, remainder = divmod(total, 3600)
    minutes, secs = divmod(remainder, 60)
    if hours:
        return f"{hours}h {minutes:02d}m"
    if minutes:
        return f"{minutes}m {secs:02d}s"
    return f"{secs}s"


@dataclass(slots=True)
class ValidationIssue:
    level: str
    key: str
    message: str

    def display(self) -> str:
        return f"[{self.level.upper()}] {self.key}: {self.message}"


def _open_store(args: argparse.Namespace) -> DataStore:
    root = Path(args.data_root).expanduser() if args.data_root else resolve_storage_root(PROJECT_BASE)
    return DataStore(root)


def _command_list(args: argparse.Namespace) -> int:
    store = _open_store(args)
    records = store.load_all()
    print(f"Storage root: {store.root}")
    if not records:
        print("No accounts stored.")
        return 0
    ordered = sorted(
        records.items(), key=lambda item: -int(item[1].get("aura", 0) or 0)
    )
    for account_id, payload in ordered:
        name = payload.get("name", "?")
        aura = format_number(payload.get("aura", 0) or 0)
        print(f"  - {account_id}: {name} ({aura} Aura)")
    print(f"\n{len(records)} account(s)")
    return 0


def _command_validate(args: argparse.Namespace) -> int:
    store = _open_store(args)
    issues: list[ValidationIssue] = []
    for account_id, payload in store.load_all().items():
        try:
            account = PlayerAccount.from_dict(payload)
        except ModelValidationError as exc:
            issues.extend(ValidationIssue("error", account_id, message) for message in exc.errors)
            continue
        except (TypeError, ValueError) as exc:
            issues.append(ValidationIssue("error", account_id, str(exc)))
            continue
        if account.account_id != account_id:
            issues.append(
                ValidationIssue("warning", account_id, "stored account_id does not match file name")
            )

    if not issues:
        print("All account records parsed successfully.")
        return 0

    issues.sort(key=lambda issue: (issue.level != "error", issue.key))
    errors = sum(1 for issue in issues if issue.level == "error")
    for issue in issues:
        print(issue.display())
    print(f"\nValidation complete: {errors} error(s), {len(issues) - errors} warning(s)")
    return 1 if errors else 0


def _command_delete_player(args: argparse.Namespace) -> int:
    store = _open_store(args)
    account_id = str(args.account).strip()
    if not account_id:
        print("An account ID is required.", file=sys.stderr)
        return 2
    if store.load(account_id) is None:
        print(f"No account stored for {account_id}.", file=sys.stderr)
        return 1

    if not args.force:
        response = input(
            f"Delete account {account_id}? This cannot be undone. Type 'yes' to confirm: "
        ).strip()
        if response.lower() != "yes":
            print("Aborted.")
            return 3

    store.delete(account_id)
    print(f"Deleted account: {account_id}")
    return 0


def rarity_distribution(count: int, seed: int | None = None) -> Mapping[str, float]:
    rng = random.Random(seed)
    tally = Counter(roll_rarity(rng).value for _ in range(count))
    return {rarity: tally[rarity] / count for rarity in sorted(tally)}


def _command_simulate(args: argparse.Namespace) -> int:
    count = max(1, int(args.count))
    for rarity, share in rarity_distribution(count, args.seed).items():
        print(f"{rarity:>9}: {share:6.2%}")
    return 0


def _command_play(args: argparse.Namespace) -> int:
    store = _open_store(args) if args.persist else MemoryStore()
    rng = random.Random(args.seed)
    session = GameSession(store, config=EngineConfig.from_env(), rng=rng)
    account = session.ensure_account(args.account, args.name)
    if args.lootboxes:
        session.start_lootbox_cycle()
    print(f"Playing as {account.name} ({format_number(account.aura)} Aura). Type /help, or 'quit' to exit.")
    try:
        while True:
            try:
                line = input("> ")
            except EOFError:
                break
            if line.strip().lower() in {"quit", "exit"}:
                break
            session.tick()
            outcome = session.process(account.account_id, line)
            if outcome is not None:
                print(outcome.message)
            while (note := account.pop_notification()) is not None:
                print(f"* {note.message}")
            session.save_account(account)
    finally:
        session.dispose()
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Administrative utilities for AVRA account data.")
    parser.add_argument(
        "--data-root",
        help="Directory holding playerdata/ (default: AVRA_DATA_ROOT or the project root)",
    )

    subparsers = parser.add_subparsers(dest="command")

    list_parser = subparsers.add_parser("list", help="Show stored accounts by aura")
    list_parser.set_defaults(func=_command_list)

    validate_parser = subparsers.add_parser(
        "validate",
        aliases=["lint"],
        help="Parse every stored account and report structural issues",
    )
    validate_parser.set_defaults(func=_command_validate)

    delete_parser = subparsers.add_parser(
        "delete-player",
        help="Remove an account record",
    )
    delete_parser.add_argument("--account", required=True, help="Account ID to delete")
    delete_parser.add_argument(
        "--force",
        action="store_true",
        help="Skip the confirmation prompt",
    )
    delete_parser.set_defaults(func=_command_delete_player)

    simulate_parser = subparsers.add_parser(
        "simulate-lootboxes",
        help="Roll many lootboxes and print the rarity distribution",
    )
    simulate_parser.add_argument("--count", type=int, default=100_000)
    simulate_parser.add_argument("--seed", type=int, default=None)
    simulate_parser.set_defaults(func=_command_simulate)

    play_parser = subparsers.add_parser("play", help="Play in the terminal")
    play_parser.add_argument("--account", default="local", help="Account ID to play as")
    play_parser.add_argument("--name", default="AuraSeeker", help="Display name")
    play_parser.add_argument("--seed", type=int, default=None)
    play_parser.add_argument(
        "--persist",
        action="store_true",
        help="Save to the data root instead of keeping accounts in memory",
    )
    play_parser.add_argument(
        "--lootboxes",
        action="store_true",
        help="Spawn lootboxes while playing",
    )
    play_parser.set_defaults(func=_command_play)

    return parser


def main(argv: Sequence[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    if not getattr(args, "command", None):
        parser.print_help()
        return 0
    logging.basicConfig(level=logging.WARNING)
    try:
        return args.func(args)
    except MissingMigrationError as exc:
        print(f"Storage migration failed: {exc}", file=sys.stderr)
        return 1


__all__ = [
    "ValidationIssue",
    "build_parser",
    "format_duration",
    "format_number",
    "main",
    "rarity_distribution",
]


if __name__ == "__main__":  # pragma: no cover - CLI entry point
    raise SystemExit(main())
