"""Game session: owns accounts, engines, the lootbox slot and deferred tasks."""

from __future__ import annotations

import logging
import random
import time
from typing import Any, Callable, Dict, Iterator, List, Mapping, Optional

from . import game, loot
from .catalog import ItemCatalog, default_catalog
from .config import EngineConfig
from .constants import LEADERBOARD_SIZE
from .engine import DUEL_TASK, CommandEngine
from .errors import PreconditionError
from .events import (
    ACCOUNT_SAVED,
    EFFECT,
    LOOTBOX_DESPAWN,
    LOOTBOX_SPAWN,
    LOOTBOX_WARNING,
    NAVIGATE,
    EventBus,
)
from .models.lootbox import Lootbox
from .models.outcome import Outcome
from .models.players import PlayerAccount
from .scheduler import ScheduledTask, Scheduler
from .storage import MemoryStore, PersistencePort

log = logging.getLogger(__name__)

SPAWN_TASK = "lootbox_spawn"
WARNING_TASK = "lootbox_warning"
DESPAWN_TASK = "lootbox_despawn"


class SessionDisposedError(RuntimeError):
    pass


def name_key(name: str) -> str:
    return " ".join(str(name).split()).casefold()


class GameSession:
    """Single-threaded host for every player's command engine.

    Accounts are cached after the first load and written through the
    persistence port on every save.  Deferred work goes through the session's
    :class:`~avra.scheduler.Scheduler`, and handlers look accounts up again
    when they run so that they act on current balances.
    """

    def __init__(
        self,
        store: Optional[PersistencePort] = None,
        *,
        catalog: Optional[ItemCatalog] = None,
        config: Optional[EngineConfig] = None,
        rng: Optional[random.Random] = None,
        events: Optional[EventBus] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.store: PersistencePort = store if store is not None else MemoryStore()
        self.catalog = catalog or default_catalog()
        self.config = config or EngineConfig()
        self.rng = rng or random.Random()
        self.events = events or EventBus()
        self.clock = clock
        self.scheduler = Scheduler()
        self.accounts: Dict[str, PlayerAccount] = {}
        self.engines: Dict[str, CommandEngine] = {}
        self.intents: List[Dict[str, Any]] = []
        self.active_lootbox: Optional[Lootbox] = None
        self._despawn_handle: Optional[int] = None
        self._lootbox_cycle = False
        self._disposed = False
        self._fully_loaded = False
        # Case-folded display name to account id.
        self._names: Dict[str, str] = {}
        self._name_keys: Dict[str, str] = {}

        self.scheduler.register(game.RESTORE_TASK, self._on_restore)
        self.scheduler.register(SPAWN_TASK, self._on_lootbox_spawn)
        self.scheduler.register(WARNING_TASK, self._on_lootbox_warning)
        self.scheduler.register(DESPAWN_TASK, self._on_lootbox_despawn)
        self.scheduler.register(DUEL_TASK, self._on_duel_response)

    @property
    def disposed(self) -> bool:
        return self._disposed

    def now(self) -> float:
        return float(self.clock())

    # ------------------------------------------------------------------
    # Accounts
    # ------------------------------------------------------------------

    def _restore(self, account_id: str, payload: Mapping[str, Any]) -> Optional[PlayerAccount]:
        try:
            account = PlayerAccount.from_dict(payload)
        except (TypeError, ValueError) as exc:
            log.warning("Ignoring invalid account record %s: %s", account_id, exc)
            return None
        self.accounts[account.account_id] = account
        self._index_name(account)
        return account

    def find_account(self, account_id: str) -> Optional[PlayerAccount]:
        account_id = str(account_id)
        account = self.accounts.get(account_id)
        if account is not None:
            return account
        payload = self.store.load(account_id)
        if payload is None:
            return None
        return self._restore(account_id, payload)

    def get_account(self, account_id: str) -> PlayerAccount:
        account = self.find_account(account_id)
        if account is None:
            raise KeyError(f"Unknown account: {account_id}")
        return account

    def ensure_account(
        self, account_id: str, name: str, now: Optional[float] = None
    ) -> PlayerAccount:
        """Return the account for ``account_id``, creating it on first contact.

        An existing account picks up a changed display name.
        """

        account = self.find_account(account_id)
        if account is not None:
            if name and name.strip() and account.name != name.strip():
                account.rename(name)
                self.save_account(account)
            return account

        account = PlayerAccount(
            account_id=str(account_id),
            name=name,
            aura=self.config.starting_aura,
            created_at=self.now() if now is None else float(now),
        )
        self.accounts[account.account_id] = account
        self.save_account(account)
        log.info("Created account %s (%s) with %d aura", account.account_id, account.name, account.aura)
        return account

    def save_account(self, account: PlayerAccount, now: Optional[float] = None) -> None:
        """Write ``account`` through to the store.

        Expired items and cooldowns are pruned against ``now``, which should
        be the time of the command that changed the account.
        """

        now = self.now() if now is None else float(now)
        account.prune_expired(now)
        account.clear_expired_cooldowns(now)
        self.accounts[account.account_id] = account
        self._index_name(account)
        self.store.save(account.account_id, account.to_dict())
        self.events.publish(ACCOUNT_SAVED, {"account_id": account.account_id, "aura": account.aura})

    def load_all(self) -> int:
        """Pull every stored account into the cache.  Returns the number loaded."""

        loaded = 0
        for account_id, payload in self.store.load_all().items():
            if account_id in self.accounts:
                continue
            if self._restore(account_id, payload) is not None:
                loaded += 1
        self._fully_loaded = True
        return loaded

    def iter_accounts(self) -> Iterator[PlayerAccount]:
        if not self._fully_loaded:
            self.load_all()
        yield from list(self.accounts.values())

    def _index_name(self, account: PlayerAccount) -> None:
        key = name_key(account.name)
        previous = self._name_keys.get(account.account_id)
        if previous == key:
            return
        if previous is not None:
            self._unindex_name(account.account_id)
        # The first account to claim a display name keeps it.
        if self._names.setdefault(key, account.account_id) == account.account_id:
            self._name_keys[account.account_id] = key

    def _unindex_name(self, account_id: str) -> None:
        key = self._name_keys.pop(account_id, None)
        if key is not None and self._names.get(key) == account_id:
            del self._names[key]

    def lookup_player_by_name(self, name: str) -> Optional[PlayerAccount]:
        wanted = name_key(name)
        if not wanted:
            return None
        if not self._fully_loaded:
            self.load_all()
        account_id = self._names.get(wanted)
        return self.accounts.get(account_id) if account_id is not None else None

    def leaderboard_snapshot(
        self,
        limit: Optional[int] = LEADERBOARD_SIZE,
        *,
        viewer_id: Optional[str] = None,
        now: Optional[float] = None,
    ) -> List[Dict[str, Any]]:
        """Accounts ordered by aura, highest first.

        Players hidden by a Stealth Cloak are left out for everyone except
        themselves.
        """

        now = self.now() if now is None else float(now)
        visible = [
            account
            for account in self.iter_accounts()
            if account.account_id == viewer_id or not account.has_effect("stealth", now)
        ]
        visible.sort(key=lambda account: (-account.aura, account.name.casefold()))
        if limit is not None:
            visible = visible[: max(0, int(limit))]
        return [
            {"id": account.account_id, "name": account.name, "aura": account.aura, "level": account.level}
            for account in visible
        ]

    def delete_account(self, account_id: str) -> bool:
        self._unindex_name(str(account_id))
        self.accounts.pop(str(account_id), None)
        self.engines.pop(str(account_id), None)
        return self.store.delete(str(account_id))

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    def engine_for(self, account_id: str) -> CommandEngine:
        account_id = str(account_id)
        engine = self.engines.get(account_id)
        if engine is None:
            self.get_account(account_id)
            engine = CommandEngine(account_id, self, clock=self.clock)
            self.engines[account_id] = engine
        return engine

    def process(
        self, account_id: str, text: Optional[str], now: Optional[float] = None
    ) -> Optional[Outcome]:
        if self._disposed:
            raise SessionDisposedError("This game session has been disposed")
        return self.engine_for(account_id).process(text, now)

    # ------------------------------------------------------------------
    # Presentation
    # ------------------------------------------------------------------

    def show_effect(self, tag: str) -> None:
        self.events.publish(EFFECT, {"tag": tag})

    def navigate_to(self, target: str, payload: Mapping[str, Any]) -> Dict[str, Any]:
        intent = {"target": target, "payload": dict(payload)}
        self.intents.append(intent)
        self.events.publish(NAVIGATE, intent)
        return intent

    # ------------------------------------------------------------------
    # Activity results
    # ------------------------------------------------------------------

    def complete_quest(
        self,
        account_id: str,
        quest_id: str,
        *,
        item_id: Optional[str] = None,
        now: Optional[float] = None,
    ) -> Outcome:
        """Credit a quest that the presentation layer reports as finished."""

        now = self.now() if now is None else float(now)
        account = self.get_account(account_id)
        quest = self.catalog.find_quest(quest_id)
        if quest is None:
            raise KeyError(f"Unknown quest: {quest_id}")
        outcome = game.complete_quest(account, quest, now, item_id=item_id, catalog=self.catalog)
        self.save_account(account, now)
        if outcome.effect:
            self.show_effect(outcome.effect)
        return outcome

    def complete_minigame(
        self,
        account_id: str,
        minigame_id: str,
        score: float,
        max_score: float,
        now: Optional[float] = None,
    ) -> Outcome:
        now = self.now() if now is None else float(now)
        account = self.get_account(account_id)
        minigame = self.catalog.find_minigame(minigame_id)
        if minigame is None:
            raise KeyError(f"Unknown minigame: {minigame_id}")
        outcome = game.complete_minigame(account, minigame, score, max_score, now, self.catalog)
        self.save_account(account, now)
        if outcome.effect:
            self.show_effect(outcome.effect)
        return outcome

    # ------------------------------------------------------------------
    # Timers
    # ------------------------------------------------------------------

    def schedule_timer(
        self,
        delay: float,
        kind: str,
        account_id: Optional[str] = None,
        payload: Optional[Dict[str, Any]] = None,
        *,
        now: Optional[float] = None,
    ) -> int:
        """Queue a ``kind`` task ``delay`` seconds after ``now``."""

        base = self.now() if now is None else float(now)
        return self.scheduler.schedule(
            base + max(0.0, float(delay)),
            kind,
            account_id=account_id,
            payload=payload,
        )

    def cancel_timer(self, handle: int) -> bool:
        return self.scheduler.cancel(handle)

    def tick(self, now: Optional[float] = None) -> int:
        """Run due tasks and expire idle combo buffers."""

        if self._disposed:
            return 0
        now = self.now() if now is None else float(now)
        executed = self.scheduler.run_pending(now)
        for engine in self.engines.values():
            engine.combos.expire(now)
        return executed

    def _on_restore(self, task: ScheduledTask) -> None:
        if task.account_id is None:
            return
        target = self.find_account(task.account_id)
        if target is None:
            log.warning("Dropping restore for missing account %s", task.account_id)
            return
        amount = int(task.payload.get("amount", 0))
        if amount <= 0:
            return
        game.restore_stolen(target, amount)
        self.save_account(target, task.due_at)

    def _on_duel_response(self, task: ScheduledTask) -> None:
        now = task.due_at
        challenger = self.find_account(task.account_id) if task.account_id else None
        opponent = self.find_account(str(task.payload.get("opponent_id", "")))
        reserved_until = task.payload.get("reserved_until")
        if challenger is None:
            log.warning("Dropping duel %s: the challenger no longer exists", task.handle)
            return
        if opponent is None:
            log.warning("Dropping duel %s: the opponent no longer exists", task.handle)
            challenger.release_cooldown("duel", reserved_until)
            self.save_account(challenger, now)
            return

        try:
            game.check_target(challenger, opponent, opponent.name, verb="duel")
        except PreconditionError as exc:
            challenger.release_cooldown("duel", reserved_until)
            challenger.notify("duel", exc.message, opponent=opponent.name)
            self.save_account(challenger, now)
            return

        if self.rng.random() >= self.config.duel_accept_chance:
            # A declined request costs nothing, so the held cooldown goes away.
            challenger.release_cooldown("duel", reserved_until)
            challenger.notify(
                "duel", f"{opponent.name} declined your duel request.", opponent=opponent.name
            )
            self.save_account(challenger, now)
            return

        outcome = game.resolve_duel(
            challenger,
            opponent,
            now,
            rng=self.rng,
            catalog=self.catalog,
            action=task.payload.get("action"),
        )
        challenger.notify("duel", outcome.message, **outcome.data, success=outcome.success)
        verdict = "lost" if outcome.success else "won"
        opponent.notify(
            "duel",
            f"You {verdict} a duel against {challenger.name}.",
            challenger=challenger.name,
        )
        self.save_account(challenger, now)
        self.save_account(opponent, now)
        if outcome.effect:
            self.show_effect(outcome.effect)

    # ------------------------------------------------------------------
    # Lootboxes
    # ------------------------------------------------------------------

    def start_lootbox_cycle(self, now: Optional[float] = None) -> int:
        """Begin spawning lootboxes.  Returns the handle of the first spawn."""

        self._lootbox_cycle = True
        return self._schedule_next_spawn(now)

    def stop_lootbox_cycle(self) -> None:
        self._lootbox_cycle = False
        for kind in (SPAWN_TASK, WARNING_TASK, DESPAWN_TASK):
            self.scheduler.cancel_kind(kind)
        self._despawn_handle = None

    def _schedule_next_spawn(self, now: Optional[float] = None) -> int:
        delay = self.rng.uniform(self.config.lootbox_spawn_min, self.config.lootbox_spawn_max)
        handle = self.schedule_timer(delay, SPAWN_TASK, now=now)
        lead = self.config.lootbox_warning
        if lead > 0:
            self.schedule_timer(
                max(0.0, delay - lead), WARNING_TASK, payload={"spawn_handle": handle}, now=now
            )
        return handle

    def spawn_lootbox(self, now: Optional[float] = None) -> Lootbox:
        now = self.now() if now is None else float(now)
        if self._despawn_handle is not None:
            self.scheduler.cancel(self._despawn_handle)
        lootbox = loot.spawn(self.rng, self.catalog, now=now)
        self.active_lootbox = lootbox
        self._despawn_handle = self.schedule_timer(
            self.config.lootbox_lifetime, DESPAWN_TASK, payload={"spawned_at": now}, now=now
        )
        log.info("A %s lootbox appeared", lootbox.rarity.value)
        self.events.publish(
            LOOTBOX_SPAWN,
            {"rarity": lootbox.rarity.value, "message": "A lootbox has appeared! Type /grab to claim it!"},
        )
        return lootbox

    def take_lootbox(self, now: Optional[float] = None) -> Optional[Lootbox]:
        """Empty the lootbox slot and hand back whatever was in it."""

        lootbox, self.active_lootbox = self.active_lootbox, None
        if lootbox is None:
            return None
        if self._despawn_handle is not None:
            self.scheduler.cancel(self._despawn_handle)
            self._despawn_handle = None
        if self._lootbox_cycle:
            self._schedule_next_spawn(now)
        return lootbox

    def _on_lootbox_spawn(self, task: ScheduledTask) -> None:
        self.spawn_lootbox(task.due_at)

    def _on_lootbox_warning(self, task: ScheduledTask) -> None:
        now = task.due_at
        message = "Your Lootbox Detector senses a lootbox approaching!"
        for account in self.iter_accounts():
            if account.has_effect("detect_lootbox", now):
                account.notify("lootbox", message)
                self.save_account(account, now)
        self.events.publish(LOOTBOX_WARNING, {"message": message})

    def _on_lootbox_despawn(self, task: ScheduledTask) -> None:
        if self.active_lootbox is None:
            return
        if task.payload.get("spawned_at") != self.active_lootbox.spawned_at:
            return
        log.info("The %s lootbox despawned unclaimed", self.active_lootbox.rarity.value)
        self.active_lootbox = None
        self._despawn_handle = None
        self.events.publish(LOOTBOX_DESPAWN, {"message": "The lootbox disappeared!"})
        if self._lootbox_cycle:
            self._schedule_next_spawn(task.due_at)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def dispose(self) -> int:
        """Cancel every pending task and refuse any further scheduling."""

        if self._disposed:
            return 0
        self._disposed = True
        self._lootbox_cycle = False
        self.active_lootbox = None
        self._despawn_handle = None
        cancelled = self.scheduler.dispose()
        log.info("Game session disposed, %d pending task(s) cancelled", cancelled)
        return cancelled


__all__ = [
    "DESPAWN_TASK",
    "GameSession",
    "SPAWN_TASK",
    "SessionDisposedError",
    "WARNING_TASK",
]
