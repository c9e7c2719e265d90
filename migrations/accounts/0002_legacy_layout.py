"""Convert camelCase browser saves into the account layout."""

from __future__ import annotations

from collections.abc import Mapping, MutableMapping, Sequence
from datetime import datetime, timezone
from typing import Any

FROM_VERSION = 1
TO_VERSION = 2
DESCRIPTION = "Rewrite legacy camelCase saves (millisecond timestamps) as account records"

_LEGACY_MARKERS: tuple[str, ...] = (
    "dailyStreak",
    "lastClaimDate",
    "activeItems",
    "theftCooldown",
    "duelCooldown",
    "createdAt",
)

_STAT_KEYS: tuple[tuple[str, str], ...] = (
    ("questsCompleted", "quests_completed"),
    ("duelsWon", "duels_won"),
    ("duelsLost", "duels_lost"),
    ("theftsSuccessful", "thefts_succeeded"),
    ("theftsFailed", "thefts_failed"),
)

_COOLDOWN_KEYS: tuple[tuple[str, str], ...] = (
    ("theftCooldown", "theft"),
    ("duelCooldown", "duel"),
)


def _seconds(value: Any) -> float:
    """Milliseconds (or an ISO timestamp) to epoch seconds."""

    if isinstance(value, bool) or value is None:
        return 0.0
    if isinstance(value, (int, float)):
        return max(0.0, float(value) / 1000.0)
    if isinstance(value, str) and value.strip():
        try:
            parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
        except ValueError:
            return 0.0
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=timezone.utc)
        return parsed.timestamp()
    return 0.0


def _day(seconds: float) -> str:
    if seconds <= 0:
        return ""
    return datetime.fromtimestamp(seconds, tz=timezone.utc).date().isoformat()


def _sequence(value: Any) -> list[Any]:
    if isinstance(value, Sequence) and not isinstance(value, (str, bytes)):
        return list(value)
    return []


def is_legacy(payload: Mapping[str, Any]) -> bool:
    return "account_id" not in payload and any(key in payload for key in _LEGACY_MARKERS)


def convert(payload: Mapping[str, Any], fallback_id: str) -> dict[str, Any]:
    inventory = []
    for entry in _sequence(payload.get("inventory")):
        if not isinstance(entry, Mapping) or not entry.get("id"):
            continue
        consumable = entry.get("type") == "consumable"
        inventory.append(
            {
                "item_id": str(entry["id"]),
                "acquired_at": _seconds(entry.get("acquiredAt")),
                "uses_left": 1 if consumable else -1,
            }
        )

    active_items = []
    for entry in _sequence(payload.get("activeItems")):
        if not isinstance(entry, Mapping) or not entry.get("id"):
            continue
        active_items.append(
            {
                "item_id": str(entry["id"]),
                "effect": str(entry.get("effect", "")),
                "expires_at": _seconds(entry.get("expiresAt")),
            }
        )

    cooldowns = {}
    for legacy_key, key in _COOLDOWN_KEYS:
        available_at = _seconds(payload.get(legacy_key))
        if available_at > 0:
            cooldowns[key] = available_at

    notifications = []
    for entry in _sequence(payload.get("notifications")):
        if not isinstance(entry, Mapping):
            continue
        extra = {
            str(key): value
            for key, value in entry.items()
            if key not in {"type", "message"} and value is not None
        }
        notifications.append(
            {
                "kind": str(entry.get("type", "system")),
                "message": str(entry.get("message", "")),
                "data": extra,
            }
        )

    last_claim_at = _seconds(payload.get("lastClaimDate") or payload.get("lastDailyClaim"))
    return {
        "account_id": str(payload.get("id") or fallback_id),
        "name": str(payload.get("name") or "AuraSeeker"),
        "aura": max(0, int(payload.get("aura", 0) or 0)),
        "inventory": inventory,
        "active_items": active_items,
        "cooldowns": cooldowns,
        "stats": {
            key: max(0, int(payload.get(legacy_key, 0) or 0)) for legacy_key, key in _STAT_KEYS
        },
        "daily": {
            "last_claim_day": _day(last_claim_at),
            "last_claim_at": last_claim_at,
            "streak": max(0, int(payload.get("dailyStreak", 0) or 0)),
        },
        "notifications": notifications,
        "created_at": _seconds(payload.get("createdAt")),
    }


def apply(context) -> None:  # type: ignore[override]
    converted = 0
    for path in context.iter_records():
        payload = context.read(path)
        if not isinstance(payload, MutableMapping) or not is_legacy(payload):
            continue
        context.write(path, convert(payload, path.stem))
        converted += 1

    if converted:
        context.log(f"converted {converted} legacy save(s)")
