"""Text command parsing, rate limiting and dispatch.

A :class:`CommandEngine` serves one player.  It only talks to the game
session through the narrow :class:`SessionPort` capability, so the session
owns engines and never the other way round.
"""

from __future__ import annotations

import functools
import logging
import random
import time
from collections import deque
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Deque, Dict, List, Mapping, Optional, Protocol

from . import game
from .catalog import ItemCatalog
from .combos import ComboTracker
from .config import EngineConfig
from .constants import LEADERBOARD_SIZE
from .errors import AvraError, PreconditionError, RateLimitError, ValidationError
from .models.items import ItemCategory
from .models.lootbox import Lootbox
from .models.outcome import Outcome, OutcomeType
from .models.players import PlayerAccount

log = logging.getLogger(__name__)

DUEL_TASK = "duel_resolve"


class SessionPort(Protocol):
    """What a command engine may ask of the session hosting it."""

    catalog: ItemCatalog
    config: EngineConfig
    rng: random.Random

    def get_account(self, account_id: str) -> PlayerAccount:
        ...

    def save_account(self, account: PlayerAccount, now: Optional[float] = None) -> None:
        ...

    def lookup_player_by_name(self, name: str) -> Optional[PlayerAccount]:
        ...

    def leaderboard_snapshot(
        self,
        limit: Optional[int] = LEADERBOARD_SIZE,
        *,
        viewer_id: Optional[str] = None,
        now: Optional[float] = None,
    ) -> List[Dict[str, Any]]:
        ...

    def take_lootbox(self, now: Optional[float] = None) -> Optional[Lootbox]:
        ...

    def schedule_timer(
        self,
        delay: float,
        kind: str,
        account_id: Optional[str] = None,
        payload: Optional[Dict[str, Any]] = None,
        *,
        now: Optional[float] = None,
    ) -> int:
        ...

    def show_effect(self, tag: str) -> None:
        ...

    def navigate_to(self, target: str, payload: Mapping[str, Any]) -> Dict[str, Any]:
        ...


class CommandGroup(str, Enum):
    INFO = "info"
    ECONOMY = "economy"
    NAVIGATION = "navigation"
    COMBO = "combo"


@dataclass(frozen=True, slots=True)
class CommandSpec:
    min_args: int
    max_args: Optional[int]
    usage: str
    description: str
    group: CommandGroup

    def accepts(self, count: int) -> bool:
        if count < self.min_args:
            return False
        return self.max_args is None or count <= self.max_args


def _combo(token: str) -> CommandSpec:
    return CommandSpec(0, 0, f"/{token}", "Combo step", CommandGroup.COMBO)


class CommandKind(str, Enum):
    HELP = "help"
    PROFILE = "profile"
    DAILY = "daily"
    INVENTORY = "inventory"
    SHOP = "shop"
    LEADERBOARD = "leaderboard"
    DUEL = "duel"
    STEAL = "steal"
    GIFT = "gift"
    USE = "use"
    BUY = "buy"
    GRAB = "grab"
    QUEST = "quest"
    MINIGAME = "minigame"
    FOCUS = "focus"
    CHANNEL = "channel"
    RELEASE = "release"
    INSPECT = "inspect"
    ANALYZE = "analyze"
    HARVEST = "harvest"
    MEDITATE = "meditate"
    VISUALIZE = "visualize"
    MANIFEST = "manifest"

    @classmethod
    def lookup(cls, name: str) -> Optional["CommandKind"]:
        try:
            return cls(name.lower())
        except ValueError:
            return None

    @property
    def spec(self) -> CommandSpec:
        return COMMAND_SPECS[self]


COMMAND_SPECS: Mapping[CommandKind, CommandSpec] = {
    CommandKind.HELP: CommandSpec(0, 0, "/help", "Show this help", CommandGroup.INFO),
    CommandKind.DAILY: CommandSpec(0, 0, "/daily", "Claim daily Aura bonus", CommandGroup.ECONOMY),
    CommandKind.PROFILE: CommandSpec(
        0, 0, "/profile", "View your profile and stats", CommandGroup.INFO
    ),
    CommandKind.INVENTORY: CommandSpec(
        0, 0, "/inventory", "Show your items", CommandGroup.INFO
    ),
    CommandKind.SHOP: CommandSpec(0, 0, "/shop", "Open the Aura shop", CommandGroup.NAVIGATION),
    CommandKind.BUY: CommandSpec(
        1, None, "/buy [item]", "Buy an item from the shop", CommandGroup.ECONOMY
    ),
    CommandKind.USE: CommandSpec(
        1, None, "/use [item]", "Use an item from your inventory", CommandGroup.ECONOMY
    ),
    CommandKind.GRAB: CommandSpec(
        0, 0, "/grab", "Grab a lootbox when available", CommandGroup.ECONOMY
    ),
    CommandKind.DUEL: CommandSpec(
        1, None, "/duel [player]", "Challenge player to an Aura duel", CommandGroup.ECONOMY
    ),
    CommandKind.STEAL: CommandSpec(
        1, None, "/steal [player]", "Attempt to steal Aura (risky)", CommandGroup.ECONOMY
    ),
    CommandKind.GIFT: CommandSpec(
        2, None, "/gift [player] [amount]", "Gift Aura to another player", CommandGroup.ECONOMY
    ),
    CommandKind.QUEST: CommandSpec(
        0, None, "/quest [name]", "Start a text adventure quest", CommandGroup.NAVIGATION
    ),
    CommandKind.MINIGAME: CommandSpec(
        0, None, "/minigame [type]", "Play a minigame", CommandGroup.NAVIGATION
    ),
    CommandKind.LEADERBOARD: CommandSpec(
        0, 0, "/leaderboard", "View top Aura holders", CommandGroup.INFO
    ),
    **{
        kind: _combo(kind.value)
        for kind in (
            CommandKind.FOCUS,
            CommandKind.CHANNEL,
            CommandKind.RELEASE,
            CommandKind.INSPECT,
            CommandKind.ANALYZE,
            CommandKind.HARVEST,
            CommandKind.MEDITATE,
            CommandKind.VISUALIZE,
            CommandKind.MANIFEST,
        )
    },
}

USAGE_EXAMPLES = {
    CommandKind.USE: "Please specify an item to use. Example: /use shield",
    CommandKind.BUY: "Please specify an item to buy. Example: /buy aura shield",
    CommandKind.DUEL: "Please specify a player to duel. Example: /duel AuraKnight",
    CommandKind.STEAL: "Please specify a player to steal from. Example: /steal AuraKnight",
    CommandKind.GIFT: "Please specify a player and amount. Example: /gift AuraKnight 100",
}

PODIUM = ("🥇", "🥈", "🥉")

INVENTORY_SECTIONS = (
    ItemCategory.DEFENSIVE,
    ItemCategory.OFFENSIVE,
    ItemCategory.UTILITY,
    ItemCategory.LEGENDARY,
    ItemCategory.CONSUMABLE,
)


@dataclass(frozen=True, slots=True)
class HistoryEntry:
    timestamp: float
    normalized_input: str


Handler = Callable[[PlayerAccount, List[str], float], Outcome]


class CommandEngine:
    def __init__(
        self,
        account_id: str,
        session: SessionPort,
        *,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.account_id = account_id
        self.session = session
        self.config = session.config
        self.clock = clock
        self.history: Deque[HistoryEntry] = deque(maxlen=self.config.history_size)
        self.last_command_at: Optional[float] = None
        self.combos = ComboTracker(session.catalog, window=self.config.combo_window)
        self._handlers: Dict[CommandKind, Handler] = {
            CommandKind.HELP: self._help,
            CommandKind.PROFILE: self._profile,
            CommandKind.DAILY: self._daily,
            CommandKind.INVENTORY: self._inventory,
            CommandKind.SHOP: self._shop,
            CommandKind.LEADERBOARD: self._leaderboard,
            CommandKind.DUEL: self._duel,
            CommandKind.STEAL: self._steal,
            CommandKind.GIFT: self._gift,
            CommandKind.USE: self._use,
            CommandKind.BUY: self._buy,
            CommandKind.GRAB: self._grab,
            CommandKind.QUEST: self._quest,
            CommandKind.MINIGAME: self._minigame,
        }

    @property
    def catalog(self) -> ItemCatalog:
        return self.session.catalog

    @property
    def account(self) -> PlayerAccount:
        return self.session.get_account(self.account_id)

    # ------------------------------------------------------------------
    # Entry point
    # ------------------------------------------------------------------

    def process(self, raw_input: Optional[str], now: Optional[float] = None) -> Optional[Outcome]:
        """Handle one line of player input.

        Returns ``None`` for blank input.  Every other call returns an
        outcome; errors never escape.
        """

        if raw_input is None or not str(raw_input).strip():
            return None
        now = self.clock() if now is None else float(now)
        text = str(raw_input).strip()

        try:
            self._check_rate_limit(now)
        except RateLimitError as error:
            log.debug("Rate limited %s: %r", self.account_id, text)
            return self._failure(error)

        self.last_command_at = now
        self.history.append(HistoryEntry(now, text.lower()))

        try:
            outcome = self._dispatch(text, now)
        except AvraError as error:
            return self._failure(error)
        except Exception:
            log.exception("Command %r failed for %s", text, self.account_id)
            return Outcome.fail(
                "Something went wrong while processing that command.",
                data={"error": "internal"},
            )

        if outcome.effect:
            self.session.show_effect(outcome.effect)
        return outcome

    def _check_rate_limit(self, now: float) -> None:
        if self.last_command_at is None:
            return
        if now - self.last_command_at < self.config.rate_limit_window:
            raise RateLimitError("Please slow down!")

    @staticmethod
    def _failure(error: AvraError) -> Outcome:
        return Outcome.fail(error.message, data={"error": error.kind, **error.details})

    def _dispatch(self, text: str, now: float) -> Outcome:
        account = self.account
        if not text.startswith("/"):
            return Outcome.ok(
                f"{account.name} says: {text}", OutcomeType.CHAT, data={"text": text}
            )

        parts = text[1:].split()
        if not parts:
            raise ValidationError("Type /help for available commands.")
        name, args = parts[0], parts[1:]
        kind = CommandKind.lookup(name)
        if kind is None:
            raise ValidationError(
                f"Unknown command: {name.lower()}. Type /help for available commands.",
                command=name.lower(),
            )
        spec = kind.spec
        if not spec.accepts(len(args)):
            hint = USAGE_EXAMPLES.get(kind, f"Usage: {spec.usage}")
            raise ValidationError(hint, command=kind.value, usage=spec.usage)

        if spec.group is CommandGroup.COMBO:
            outcome = self.combos.track(account, kind.value, now)
            if outcome.type is OutcomeType.COMBO:
                self.session.save_account(account, now)
            return outcome
        return self._handlers[kind](account, args, now)

    # ------------------------------------------------------------------
    # Informational handlers
    # ------------------------------------------------------------------

    def _help(self, account: PlayerAccount, args: List[str], now: float) -> Outcome:
        lines = ["Available commands:"]
        for kind, spec in COMMAND_SPECS.items():
            if spec.group is CommandGroup.COMBO:
                continue
            lines.append(f"- {spec.usage} - {spec.description}")
        return Outcome.ok("\n".join(lines), OutcomeType.SYSTEM)

    def _profile(self, account: PlayerAccount, args: List[str], now: float) -> Outcome:
        stats = account.stats
        message = "\n".join(
            (
                f"Player: {account.name}",
                f"Aura Level: {account.level} ({account.aura} Aura)",
                f"Rank: {account.rank}",
                f"Daily Streak: {account.daily.streak} days",
                f"Quests Completed: {stats.quests_completed}",
                f"Duels Won: {stats.duels_won}",
                f"Successful Thefts: {stats.thefts_succeeded}",
            )
        )
        return Outcome.ok(
            message,
            OutcomeType.PROFILE,
            data={
                "profile": {
                    "account_id": account.account_id,
                    "name": account.name,
                    "aura": account.aura,
                    "level": account.level,
                    "rank": account.rank,
                    "level_progress": account.level_progress,
                    "streak": account.daily.streak,
                    "stats": account.stats.to_dict(),
                }
            },
        )

    def _inventory(self, account: PlayerAccount, args: List[str], now: float) -> Outcome:
        active = list(account.iter_active(now))
        if not account.inventory and not active:
            return Outcome.ok(
                "Your inventory is empty. Visit the shop to buy items!", OutcomeType.INVENTORY
            )

        groups: Dict[str, Dict[str, Any]] = {}
        for item_id, count in account.item_counts().items():
            definition = self.catalog.get(item_id)
            groups[item_id] = {
                "name": definition.name if definition else item_id,
                "count": count,
                "description": definition.description if definition else "",
                "category": definition.category.value if definition else "unknown",
            }

        lines = ["== YOUR INVENTORY ==", ""]
        if active:
            lines.append("ACTIVE ITEMS:")
            for entry in active:
                name = self.catalog.names.get(entry.item_id, entry.item_id)
                minutes = game.format_minutes(entry.remaining(now))
                lines.append(f"- {name} ({minutes} min remaining)")
            lines.append("")
        for category in INVENTORY_SECTIONS:
            members = [group for group in groups.values() if group["category"] == category.value]
            if not members:
                continue
            lines.append(f"{category.value.upper()} ITEMS:")
            for group in members:
                lines.append(f"- {group['name']} (x{group['count']}): {group['description']}")
            lines.append("")
        synergies = self.catalog.active_synergies(account, now)
        if synergies:
            lines.append("ACTIVE SYNERGIES:")
            lines.extend(f"- {synergy.name}: {synergy.description}" for synergy in synergies)
        return Outcome.ok(
            "\n".join(lines).rstrip(),
            OutcomeType.INVENTORY,
            data={
                "inventory": groups,
                "active_items": [entry.to_dict() for entry in active],
                "synergies": [synergy.key for synergy in synergies],
            },
        )

    def _leaderboard(self, account: PlayerAccount, args: List[str], now: float) -> Outcome:
        top = self.session.leaderboard_snapshot(
            LEADERBOARD_SIZE, viewer_id=account.account_id, now=now
        )
        lines = ["== AURA LEADERBOARD ==", ""]
        for index, entry in enumerate(top):
            prefix = PODIUM[index] if index < len(PODIUM) else f"{index + 1}."
            lines.append(f"{prefix} {entry['name']}: {entry['aura']} Aura (Level {entry['level']})")
        if not any(entry["id"] == account.account_id for entry in top):
            ranking = self.session.leaderboard_snapshot(None, viewer_id=account.account_id, now=now)
            position = next(
                (index for index, entry in enumerate(ranking) if entry["id"] == account.account_id),
                None,
            )
            if position is not None:
                lines.extend(
                    (
                        "",
                        "...",
                        "",
                        f"{position + 1}. {account.name}: {account.aura} Aura (Level {account.level})",
                    )
                )
        return Outcome.ok("\n".join(lines), OutcomeType.LEADERBOARD, data={"leaderboard": top})

    # ------------------------------------------------------------------
    # Economy handlers
    # ------------------------------------------------------------------

    def _daily(self, account: PlayerAccount, args: List[str], now: float) -> Outcome:
        outcome = game.claim_daily(account, now, self.catalog)
        self.session.save_account(account, now)
        return outcome

    def _use(self, account: PlayerAccount, args: List[str], now: float) -> Outcome:
        outcome = game.use_item(account, " ".join(args), now, self.catalog, self.session.rng)
        self.session.save_account(account, now)
        return outcome

    def _buy(self, account: PlayerAccount, args: List[str], now: float) -> Outcome:
        outcome = game.purchase_item(account, " ".join(args), now, self.catalog)
        self.session.save_account(account, now)
        return outcome

    def _grab(self, account: PlayerAccount, args: List[str], now: float) -> Outcome:
        lootbox = self.session.take_lootbox(now)
        outcome = game.grab_lootbox(account, lootbox, now, self.catalog)
        self.session.save_account(account, now)
        return outcome

    def _gift(self, account: PlayerAccount, args: List[str], now: float) -> Outcome:
        amount = game.parse_amount(args[-1])
        target_name = " ".join(args[:-1])
        recipient = self.session.lookup_player_by_name(target_name)
        outcome = game.gift_aura(account, recipient, amount, target_name=target_name)
        self.session.save_account(account, now)
        if recipient is not None:
            self.session.save_account(recipient, now)
        return outcome

    def _steal(self, account: PlayerAccount, args: List[str], now: float) -> Outcome:
        target_name = " ".join(args)
        target = self.session.lookup_player_by_name(target_name)
        outcome = game.attempt_theft(
            account,
            target,
            now,
            target_name=target_name,
            rng=self.session.rng,
            catalog=self.catalog,
            schedule=functools.partial(self.session.schedule_timer, now=now),
        )
        self.session.save_account(account, now)
        if target is not None:
            self.session.save_account(target, now)
        return outcome

    def _duel(self, account: PlayerAccount, args: List[str], now: float) -> Outcome:
        target_name, action, found = self._split_duel_args(args)
        opponent = game.check_duel(account, found, now, target_name=target_name)

        delay = self.config.duel_response_delay
        if delay > 0:
            # The cooldown is held while the request is pending so it cannot be stacked.
            reserved_until = game.start_duel_cooldown(account, now, self.catalog)
            self.session.save_account(account, now)
            handle = self.session.schedule_timer(
                delay,
                DUEL_TASK,
                account.account_id,
                {
                    "opponent_id": opponent.account_id,
                    "action": action,
                    "reserved_until": reserved_until,
                },
                now=now,
            )
            return Outcome.ok(
                f"Duel request sent to {opponent.name}. Awaiting response...",
                OutcomeType.DUEL,
                effect="duel_request",
                data={"opponent_id": opponent.account_id, "handle": handle},
            )

        outcome = game.resolve_duel(
            account, opponent, now, rng=self.session.rng, catalog=self.catalog, action=action
        )
        self.session.save_account(account, now)
        self.session.save_account(opponent, now)
        return outcome

    def _split_duel_args(
        self, args: List[str]
    ) -> tuple[str, Optional[str], Optional[PlayerAccount]]:
        """Separate an optional trailing attack/defend/channel move from the name.

        Returns the name, the move and the matching account, if any.
        """

        full_name = " ".join(args)
        found = self.session.lookup_player_by_name(full_name)
        if len(args) < 2 or found is not None:
            return full_name, None, found
        last = args[-1].lower()
        if last in {action.value for action in game.DuelAction}:
            name = " ".join(args[:-1])
            return name, last, self.session.lookup_player_by_name(name)
        return full_name, None, None

    # ------------------------------------------------------------------
    # Navigation handlers
    # ------------------------------------------------------------------

    def _shop(self, account: PlayerAccount, args: List[str], now: float) -> Outcome:
        intent = self.session.navigate_to("shop", {"account_id": account.account_id})
        return Outcome.ok(
            "Opening shop...",
            OutcomeType.NAVIGATION,
            data={
                "intent": intent,
                "items": [
                    {"item_id": item.item_id, "name": item.name, "price": item.price}
                    for item in self.catalog.items.values()
                ],
            },
        )

    def _quest(self, account: PlayerAccount, args: List[str], now: float) -> Outcome:
        if not args:
            quests = self.catalog.available_quests(account.level)
            if not quests:
                raise PreconditionError(
                    "There are no quests available for you right now. Check back later!"
                )
            lines = ["== AVAILABLE QUESTS ==", ""]
            for quest in quests:
                lines.append(f"{quest.name}: {quest.description}")
                lines.append(f"Difficulty: {quest.difficulty} | Reward: {quest.reward} Aura")
                lines.append("")
            lines.append("To start a quest, type: /quest [quest name]")
            return Outcome.ok(
                "\n".join(lines),
                OutcomeType.QUEST_LIST,
                data={"quests": [quest.quest_id for quest in quests]},
            )

        quest_name = " ".join(args)
        quest = self.catalog.find_quest(quest_name)
        if quest is None:
            raise ValidationError(
                f'Quest "{quest_name}" not found. Type /quest to see available quests.',
                quest=quest_name,
            )
        if account.level < quest.level_requirement:
            raise PreconditionError(
                f"You need to be Aura Level {quest.level_requirement} to start this quest.",
                level_requirement=quest.level_requirement,
            )
        intent = self.session.navigate_to(
            "quest", {"account_id": account.account_id, "quest_id": quest.quest_id}
        )
        return Outcome.ok(
            f"Starting quest: {quest.name}", OutcomeType.NAVIGATION, data={"intent": intent}
        )

    def _minigame(self, account: PlayerAccount, args: List[str], now: float) -> Outcome:
        if not args:
            lines = ["== AVAILABLE MINIGAMES ==", ""]
            for minigame in self.catalog.minigames:
                lines.append(f"{minigame.name}: {minigame.description}")
                lines.append(f"Reward: {minigame.reward_text}")
                lines.append("")
            lines.append("To start a minigame, type: /minigame [name]")
            return Outcome.ok(
                "\n".join(lines),
                OutcomeType.MINIGAME_LIST,
                data={"minigames": [entry.minigame_id for entry in self.catalog.minigames]},
            )

        minigame_name = " ".join(args)
        minigame = self.catalog.find_minigame(minigame_name)
        if minigame is None:
            raise ValidationError(
                f'Minigame "{minigame_name.lower()}" not found. '
                "Type /minigame to see available games.",
                minigame=minigame_name,
            )
        intent = self.session.navigate_to(
            "minigame",
            {"account_id": account.account_id, "minigame_id": minigame.minigame_id},
        )
        return Outcome.ok(
            f"Starting minigame: {minigame.minigame_id}",
            OutcomeType.NAVIGATION,
            data={"intent": intent},
        )


__all__ = [
    "COMMAND_SPECS",
    "CommandEngine",
    "CommandGroup",
    "CommandKind",
    "CommandSpec",
    "DUEL_TASK",
    "HistoryEntry",
    "SessionPort",
]
