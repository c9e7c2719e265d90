"""Player account model: aura ledger, items, cooldowns and notifications."""

from __future__ import annotations

import math
from collections import deque
from collections.abc import Mapping
from dataclasses import dataclass, field, fields
from typing import Any, ClassVar, Deque, Dict, Iterator, List, Optional

from ..constants import MAX_NOTIFICATIONS, MAX_STREAK
from ._validation import (
    FieldSpec,
    ModelValidationError,
    ModelValidator,
    is_non_empty_str,
    is_non_negative_number,
    is_sequence,
)
from .items import ActiveItem, ItemInstance, normalize_reference
from .progression import level_for_aura, level_progress, rank_for_level


@dataclass(slots=True)
class AccountStats:
    """Lifetime counters shown on the profile. They only ever go up."""

    quests_completed: int = 0
    duels_won: int = 0
    duels_lost: int = 0
    thefts_succeeded: int = 0
    thefts_failed: int = 0
    lootboxes_grabbed: int = 0
    combos_performed: int = 0

    def __post_init__(self) -> None:
        for spec in fields(self):
            setattr(self, spec.name, max(0, int(getattr(self, spec.name) or 0)))

    def increment(self, counter: str, amount: int = 1) -> int:
        if counter not in self.__dataclass_fields__:
            raise KeyError(f"Unknown counter: {counter}")
        value = getattr(self, counter) + max(0, int(amount))
        setattr(self, counter, value)
        return value

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any] | None) -> "AccountStats":
        data = data or {}
        known = {spec.name for spec in fields(cls)}
        return cls(**{key: value for key, value in data.items() if key in known})

    def to_dict(self) -> dict[str, int]:
        return {spec.name: getattr(self, spec.name) for spec in fields(self)}


@dataclass(slots=True)
class DailyClaim:
    last_claim_day: str = ""
    last_claim_at: float = 0.0
    streak: int = 0

    def __post_init__(self) -> None:
        self.last_claim_day = str(self.last_claim_day or "")
        self.last_claim_at = float(self.last_claim_at or 0.0)
        self.streak = min(MAX_STREAK, max(0, int(self.streak or 0)))

    @property
    def has_claimed(self) -> bool:
        return bool(self.last_claim_day)

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any] | None) -> "DailyClaim":
        data = data or {}
        return cls(
            last_claim_day=data.get("last_claim_day", ""),
            last_claim_at=data.get("last_claim_at", 0.0),
            streak=data.get("streak", 0),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "last_claim_day": self.last_claim_day,
            "last_claim_at": self.last_claim_at,
            "streak": self.streak,
        }


@dataclass(slots=True)
class Notification:
    kind: str
    message: str
    data: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "Notification":
        extra = data.get("data")
        return cls(
            kind=str(data.get("kind", "system")),
            message=str(data.get("message", "")),
            data=dict(extra) if isinstance(extra, Mapping) else {},
        )

    def to_dict(self) -> dict[str, Any]:
        return {"kind": self.kind, "message": self.message, "data": dict(self.data)}


class PlayerAccountValidator(ModelValidator):
    fields = {
        "account_id": FieldSpec(is_non_empty_str, "non-empty account id"),
        "name": FieldSpec(is_non_empty_str, "non-empty display name"),
        "aura": FieldSpec(is_non_negative_number, "non-negative aura", required=False),
        "inventory": FieldSpec(is_sequence, "list of owned items", required=False),
        "active_items": FieldSpec(is_sequence, "list of active items", required=False),
        "cooldowns": FieldSpec(Mapping, "mapping of cooldowns", required=False),
        "stats": FieldSpec(Mapping, "mapping of counters", required=False),
        "daily": FieldSpec(Mapping, "daily claim table", required=False),
        "notifications": FieldSpec(is_sequence, "list of notifications", required=False),
        "created_at": FieldSpec(float, "creation timestamp", required=False),
    }


@dataclass(slots=True)
class PlayerAccount:
    account_id: str
    name: str
    aura: int = 0
    inventory: List[ItemInstance] = field(default_factory=list)
    active_items: List[ActiveItem] = field(default_factory=list)
    cooldowns: Dict[str, float] = field(default_factory=dict)
    stats: AccountStats = field(default_factory=AccountStats)
    daily: DailyClaim = field(default_factory=DailyClaim)
    notifications: Deque[Notification] = field(default_factory=deque)
    created_at: float = 0.0

    validator: ClassVar[type[ModelValidator]] = PlayerAccountValidator

    def __post_init__(self) -> None:
        self.account_id = str(self.account_id)
        if not is_non_empty_str(self.name):
            raise ModelValidationError(type(self), ["Display name must not be empty"])
        self.name = self.name.strip()
        self.aura = max(0, int(self.aura))
        self.inventory = [
            entry if isinstance(entry, ItemInstance) else ItemInstance.from_mapping(entry)
            for entry in self.inventory
        ]
        active: dict[str, ActiveItem] = {}
        for entry in self.active_items:
            item = entry if isinstance(entry, ActiveItem) else ActiveItem.from_mapping(entry)
            current = active.get(item.item_id)
            if current is None or item.expires_at > current.expires_at:
                active[item.item_id] = item
        self.active_items = list(active.values())
        self.cooldowns = {str(key): float(value) for key, value in self.cooldowns.items()}
        if not isinstance(self.stats, AccountStats):
            self.stats = AccountStats.from_mapping(self.stats)
        if not isinstance(self.daily, DailyClaim):
            self.daily = DailyClaim.from_mapping(self.daily)
        self.notifications = deque(
            (
                entry if isinstance(entry, Notification) else Notification.from_mapping(entry)
                for entry in self.notifications
            ),
            maxlen=MAX_NOTIFICATIONS,
        )
        self.created_at = float(self.created_at or 0.0)

    # ------------------------------------------------------------------
    # Progression
    # ------------------------------------------------------------------

    @property
    def level(self) -> int:
        return level_for_aura(self.aura)

    @property
    def rank(self) -> str:
        return rank_for_level(self.level)

    @property
    def level_progress(self) -> float:
        return level_progress(self.aura)

    def rename(self, name: str) -> None:
        if not is_non_empty_str(name):
            raise ModelValidationError(type(self), ["Display name must not be empty"])
        self.name = name.strip()

    # ------------------------------------------------------------------
    # Aura ledger
    # ------------------------------------------------------------------

    def credit(self, amount: int) -> int:
        amount = max(0, int(amount))
        self.aura += amount
        return amount

    def deduct(self, amount: int) -> int:
        """Remove up to ``amount`` aura and return what was actually taken."""

        taken = min(self.aura, max(0, int(amount)))
        self.aura -= taken
        return taken

    def can_afford(self, amount: int) -> bool:
        return self.aura >= int(amount)

    # ------------------------------------------------------------------
    # Inventory
    # ------------------------------------------------------------------

    def add_item(
        self, item_id: str, now: float, *, uses_left: Optional[int] = None
    ) -> ItemInstance:
        instance = ItemInstance(item_id=item_id, acquired_at=now, uses_left=uses_left)
        self.inventory.append(instance)
        return instance

    def remove_item(self, instance: ItemInstance) -> None:
        for index, entry in enumerate(self.inventory):
            if entry is instance:
                del self.inventory[index]
                return
        raise ValueError(f"{instance.item_id!r} is not in {self.name}'s inventory")

    def find_item(self, reference: str, names: Mapping[str, str]) -> Optional[ItemInstance]:
        """Return the first owned instance whose id or display name matches.

        ``names`` maps item ids to display names so lookups by name work
        without the account knowing about the catalog.
        """

        needle = normalize_reference(reference)
        for entry in self.inventory:
            if normalize_reference(entry.item_id) == needle:
                return entry
            name = names.get(entry.item_id)
            if name is not None and normalize_reference(name) == needle:
                return entry
        return None

    def item_counts(self) -> dict[str, int]:
        counts: dict[str, int] = {}
        for entry in self.inventory:
            counts[entry.item_id] = counts.get(entry.item_id, 0) + 1
        return counts

    # ------------------------------------------------------------------
    # Active items
    # ------------------------------------------------------------------

    def prune_expired(self, now: float) -> list[ActiveItem]:
        expired = [entry for entry in self.active_items if entry.is_expired(now)]
        if expired:
            self.active_items = [entry for entry in self.active_items if not entry.is_expired(now)]
        return expired

    def iter_active(self, now: float) -> Iterator[ActiveItem]:
        self.prune_expired(now)
        return iter(list(self.active_items))

    def active_item(self, item_id: str, now: float) -> Optional[ActiveItem]:
        self.prune_expired(now)
        for entry in self.active_items:
            if entry.item_id == item_id:
                return entry
        return None

    def is_active(self, item_id: str, now: float) -> bool:
        return self.active_item(item_id, now) is not None

    def has_effect(self, effect: str, now: float) -> bool:
        self.prune_expired(now)
        return any(entry.effect == effect for entry in self.active_items)

    def activate(self, item_id: str, effect: str, duration: float, now: float) -> ActiveItem:
        """Activate ``item_id`` for ``duration`` seconds.

        Re-activating an item that is still running adds the full duration to
        whatever time it has left.
        """

        current = self.active_item(item_id, now)
        if current is not None:
            current.expires_at += float(duration)
            return current
        entry = ActiveItem(item_id=item_id, effect=effect, expires_at=now + float(duration))
        self.active_items.append(entry)
        return entry

    def consume_effect(self, effect: str, now: float) -> Optional[ActiveItem]:
        self.prune_expired(now)
        for index, entry in enumerate(self.active_items):
            if entry.effect == effect:
                del self.active_items[index]
                return entry
        return None

    # ------------------------------------------------------------------
    # Cooldowns
    # ------------------------------------------------------------------

    def set_cooldown(self, kind: str, available_at: float) -> None:
        self.cooldowns[kind] = float(available_at)

    def release_cooldown(self, kind: str, available_at: Optional[float] = None) -> bool:
        """Drop a cooldown, only if it still ends at ``available_at`` when given."""

        current = self.cooldowns.get(kind)
        if current is None or (available_at is not None and current != float(available_at)):
            return False
        del self.cooldowns[kind]
        return True

    def cooldown_remaining(self, kind: str, now: float) -> float:
        return max(0.0, self.cooldowns.get(kind, 0.0) - now)

    def cooldown_minutes(self, kind: str, now: float) -> int:
        return math.ceil(self.cooldown_remaining(kind, now) / 60)

    def is_on_cooldown(self, kind: str, now: float) -> bool:
        return self.cooldown_remaining(kind, now) > 0

    def clear_expired_cooldowns(self, now: float) -> None:
        self.cooldowns = {
            kind: until for kind, until in self.cooldowns.items() if until > now
        }

    # ------------------------------------------------------------------
    # Notifications
    # ------------------------------------------------------------------

    def notify(self, kind: str, message: str, **data: Any) -> Notification:
        entry = Notification(kind=kind, message=message, data=dict(data))
        self.notifications.append(entry)
        return entry

    def pop_notification(self) -> Optional[Notification]:
        if not self.notifications:
            return None
        return self.notifications.popleft()

    # ------------------------------------------------------------------
    # Serialisation
    # ------------------------------------------------------------------

    def to_dict(self) -> dict[str, Any]:
        return {
            "account_id": self.account_id,
            "name": self.name,
            "aura": self.aura,
            "inventory": [entry.to_dict() for entry in self.inventory],
            "active_items": [entry.to_dict() for entry in self.active_items],
            "cooldowns": dict(self.cooldowns),
            "stats": self.stats.to_dict(),
            "daily": self.daily.to_dict(),
            "notifications": [entry.to_dict() for entry in self.notifications],
            "created_at": self.created_at,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "PlayerAccount":
        payload = cls.validator.validate(data)
        return cls(
            account_id=payload["account_id"],
            name=payload["name"],
            aura=int(payload.get("aura", 0)),
            inventory=list(payload.get("inventory", ())),
            active_items=list(payload.get("active_items", ())),
            cooldowns=dict(payload.get("cooldowns", {})),
            stats=payload.get("stats", {}),
            daily=payload.get("daily", {}),
            notifications=list(payload.get("notifications", ())),
            created_at=float(payload.get("created_at", 0.0)),
        )


PlayerAccountValidator.model = PlayerAccount


__all__ = ["AccountStats", "DailyClaim", "Notification", "PlayerAccount"]
