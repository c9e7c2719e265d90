"""Rules that mutate player accounts.

Each resolver applies its effects synchronously and returns an
:class:`~avra.models.outcome.Outcome`.  Precondition failures raise
:class:`~avra.errors.PreconditionError` or :class:`~avra.errors.ValidationError`
before anything is changed; the command engine turns those into failure
outcomes.  Persisting the touched accounts is the caller's job.
"""

from __future__ import annotations

import logging
import math
import random
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, Optional

from .catalog import ItemCatalog, default_catalog
from .constants import (
    DUEL_COOLDOWN,
    RESTORE_DELAY,
    SHIELD_ARM_DURATION,
    THEFT_COOLDOWN,
)
from .economy import (
    apply_gain_boost,
    cooldown_duration,
    daily_reward,
    duel_stake,
    is_untargetable,
    minigame_reward,
    next_streak,
    theft_amount,
    theft_chance,
    theft_penalty,
    turn_keep_probability,
)
from .errors import PreconditionError, ValidationError
from .models.items import MinigameDefinition, QuestDefinition
from .models.lootbox import Lootbox, RewardKind
from .models.outcome import Outcome, OutcomeType
from .models.players import PlayerAccount

log = logging.getLogger(__name__)

# ``schedule(delay, kind, account_id, payload)`` returning a timer handle.
ScheduleFn = Callable[[float, str, Optional[str], Dict[str, Any]], Any]

RESTORE_TASK = "restore_stolen"

ACTIVATION_EFFECTS = {
    "aura_shield": "shield_activate",
    "stealth_cloak": "stealth_activate",
    "mirror_ward": "ward_activate",
    "aura_crown": "crown_activate",
}


def calendar_day(now: float) -> str:
    return datetime.fromtimestamp(now, tz=timezone.utc).date().isoformat()


def format_minutes(seconds: float) -> int:
    return max(1, math.ceil(seconds / 60))


# ---------------------------------------------------------------------------
# Daily bonus
# ---------------------------------------------------------------------------


def claim_daily(
    account: PlayerAccount, now: float, catalog: Optional[ItemCatalog] = None
) -> Outcome:
    today = calendar_day(now)
    if account.daily.last_claim_day == today:
        raise PreconditionError(
            "You already claimed your daily bonus today. Come back tomorrow!",
            claimed_day=today,
        )

    streak = next_streak(account.daily.streak, account.daily.last_claim_at, now)
    bonus = apply_gain_boost(daily_reward(streak), account, now, catalog)
    account.credit(bonus)
    account.daily.streak = streak
    account.daily.last_claim_day = today
    account.daily.last_claim_at = now
    return Outcome.ok(
        f"Daily bonus claimed! +{bonus} Aura (Day {streak} streak)",
        OutcomeType.REWARD,
        aura_gain=bonus,
        effect="daily_bonus",
        data={"streak": streak},
    )


# ---------------------------------------------------------------------------
# Items
# ---------------------------------------------------------------------------


def use_item(
    account: PlayerAccount,
    reference: str,
    now: float,
    catalog: Optional[ItemCatalog] = None,
    rng: Optional[random.Random] = None,
) -> Outcome:
    catalog = catalog or default_catalog()
    reference = reference.strip()
    if not reference:
        raise ValidationError("Please specify an item to use. Example: /use shield")

    instance = account.find_item(reference, catalog.names)
    if instance is None:
        raise PreconditionError(
            f'You don\'t have an item called "{reference}".', item=reference
        )
    definition = catalog.get(instance.item_id)
    if definition is None:
        raise PreconditionError(
            f'"{instance.item_id}" is not a known item.', item=instance.item_id
        )

    data: Dict[str, Any] = {"item_id": definition.item_id, "item_name": definition.name}
    effect_tag = ACTIVATION_EFFECTS.get(definition.item_id, "item_activate")

    if definition.is_consumable:
        account.remove_item(instance)
        data["consumed"] = True
        if definition.effect == "block_theft":
            entry = account.activate(
                definition.item_id,
                definition.effect,
                definition.duration or SHIELD_ARM_DURATION,
                now,
            )
            data["expires_at"] = entry.expires_at
            message = f"{definition.name} is armed and will block the next theft attempt."
        elif definition.effect == "reveal_combo":
            combo = catalog.random_combo(rng or random.Random())
            data["combo"] = {"name": combo.name, "sequence": list(combo.sequence)}
            effect_tag = "combo_reveal"
            message = f"{definition.usage_text}\nCombo revealed: {combo.name} ({combo.hint()})"
        else:
            message = definition.usage_text or f"You used {definition.name}."
        return Outcome.ok(message, OutcomeType.ITEM, effect=effect_tag, data=data)

    cooldown_key = f"item:{definition.item_id}"
    running = account.active_item(definition.item_id, now)
    if running is None and account.is_on_cooldown(cooldown_key, now):
        minutes = account.cooldown_minutes(cooldown_key, now)
        raise PreconditionError(
            f"{definition.name} is still recharging. Try again in {minutes} minutes.",
            remaining_minutes=minutes,
            cooldown=cooldown_key,
        )

    account.remove_item(instance)
    entry = account.activate(
        definition.item_id, definition.effect, definition.duration, now
    )
    if definition.cooldown:
        account.set_cooldown(cooldown_key, entry.expires_at + definition.cooldown)
    remaining = format_minutes(entry.remaining(now))
    data.update({"consumed": False, "expires_at": entry.expires_at, "extended": running is not None})
    prefix = definition.usage_text or f"You activated {definition.name}."
    if running is not None:
        message = f"{prefix}\n{definition.name} extended: {remaining} min remaining."
    else:
        message = f"{prefix}\n{definition.name} active for {remaining} min."
    return Outcome.ok(message, OutcomeType.ITEM, effect=effect_tag, data=data)


def purchase_item(
    account: PlayerAccount,
    reference: str,
    now: float,
    catalog: Optional[ItemCatalog] = None,
) -> Outcome:
    catalog = catalog or default_catalog()
    definition = catalog.resolve(reference)
    if definition is None:
        raise PreconditionError(f'Item "{reference}" is not sold in the shop.', item=reference)
    if not account.can_afford(definition.price):
        raise PreconditionError(
            f"You need {definition.price} Aura to buy {definition.name}.",
            deficit=definition.price - account.aura,
        )
    account.deduct(definition.price)
    account.add_item(
        definition.item_id, now, uses_left=1 if definition.is_consumable else None
    )
    return Outcome.ok(
        f"You purchased {definition.name} for {definition.price} Aura.",
        OutcomeType.SHOP,
        aura_loss=definition.price,
        effect="purchase",
        data={"item_id": definition.item_id},
    )


# ---------------------------------------------------------------------------
# Lootboxes and gifts
# ---------------------------------------------------------------------------


def grab_lootbox(
    account: PlayerAccount,
    lootbox: Optional[Lootbox],
    now: float,
    catalog: Optional[ItemCatalog] = None,
) -> Outcome:
    """Apply the rewards of a lootbox the caller has already taken from its slot."""

    catalog = catalog or default_catalog()
    if lootbox is None:
        raise PreconditionError("There are no lootboxes available right now.")

    lines: list[str] = []
    gained = 0
    for reward in lootbox.rewards:
        if reward.kind is RewardKind.AURA:
            gained += account.credit(reward.amount)
            lines.append(f"+{reward.amount} Aura")
        elif reward.item_id is not None:
            definition = catalog.get(reward.item_id)
            account.add_item(
                reward.item_id,
                now,
                uses_left=1 if definition is not None and definition.is_consumable else None,
            )
            name = definition.name if definition is not None else reward.item_id
            lines.append(f"New item: {name}")
    account.stats.increment("lootboxes_grabbed")
    summary = "\n".join(lines)
    return Outcome.ok(
        f"You grabbed a {lootbox.rarity.value} lootbox!\n\nRewards:\n{summary}",
        OutcomeType.REWARD,
        aura_gain=gained,
        effect="lootbox_open",
        data={
            "rarity": lootbox.rarity.value,
            "rewards": [reward.to_dict() for reward in lootbox.rewards],
        },
    )


def parse_amount(raw: str) -> int:
    text = raw.strip()
    if not (text.isascii() and text.isdigit()):
        raise ValidationError("Please specify a valid amount of Aura to gift.", amount=raw)
    amount = int(text)
    if amount <= 0:
        raise ValidationError("Please specify a valid amount of Aura to gift.", amount=raw)
    return amount


def gift_aura(
    sender: PlayerAccount,
    recipient: Optional[PlayerAccount],
    amount: int,
    *,
    target_name: str = "",
) -> Outcome:
    if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
        raise ValidationError("Please specify a valid amount of Aura to gift.", amount=amount)
    if recipient is None:
        raise PreconditionError(f'Player "{target_name}" not found.', target=target_name)
    if recipient.account_id == sender.account_id:
        raise PreconditionError("You cannot gift Aura to yourself.")
    if not sender.can_afford(amount):
        raise PreconditionError(
            f"You don't have {amount} Aura to gift.", deficit=amount - sender.aura
        )

    sender.deduct(amount)
    recipient.credit(amount)
    recipient.notify(
        "gift",
        f"{sender.name} has gifted you {amount} Aura!",
        sender=sender.name,
        amount=amount,
    )
    return Outcome.ok(
        f"You gifted {amount} Aura to {recipient.name}.",
        OutcomeType.GIFT,
        aura_loss=amount,
        effect="gift_sent",
        data={"recipient_id": recipient.account_id},
    )


# ---------------------------------------------------------------------------
# Theft
# ---------------------------------------------------------------------------


def check_target(
    actor: PlayerAccount,
    target: Optional[PlayerAccount],
    target_name: str,
    *,
    verb: str,
) -> PlayerAccount:
    if target is None:
        raise PreconditionError(f'Player "{target_name}" not found.', target=target_name)
    if target.account_id == actor.account_id:
        raise PreconditionError(f"You cannot {verb} yourself.")
    return target


def attempt_theft(
    thief: PlayerAccount,
    target: Optional[PlayerAccount],
    now: float,
    *,
    target_name: str = "",
    rng: Optional[random.Random] = None,
    catalog: Optional[ItemCatalog] = None,
    schedule: Optional[ScheduleFn] = None,
) -> Outcome:
    catalog = catalog or default_catalog()
    rng = rng or random.Random()
    target = check_target(thief, target, target_name or "", verb="steal from")
    if thief.is_on_cooldown("theft", now):
        minutes = thief.cooldown_minutes("theft", now)
        raise PreconditionError(
            f"You must wait {minutes} more minutes before attempting another theft.",
            remaining_minutes=minutes,
            cooldown="theft",
        )
    if is_untargetable(target, now):
        protection = "Crown of Luminescence" if target.has_effect("crown_effect", now) else "Stealth Cloak"
        raise PreconditionError(
            f"{target.name} is currently using a {protection} and cannot be targeted.",
            target=target.account_id,
        )

    cooldown_until = now + cooldown_duration(THEFT_COOLDOWN, thief, now, catalog)
    data: Dict[str, Any] = {"target_id": target.account_id}

    if target.has_effect("reflect_theft", now):
        lost = thief.deduct(theft_penalty(thief.aura))
        target.credit(lost)
        thief.set_cooldown("theft", cooldown_until)
        return Outcome.fail(
            f"{target.name}'s Mirror Ward reflected your theft attempt! "
            f"You lost {lost} Aura to them.",
            OutcomeType.THEFT,
            aura_loss=lost,
            effect="theft_reflected",
            data=data,
        )

    if target.consume_effect("block_theft", now) is not None:
        thief.set_cooldown("theft", cooldown_until)
        return Outcome.fail(
            f"{target.name}'s Aura Shield blocked your theft attempt!",
            OutcomeType.THEFT,
            effect="theft_blocked",
            data=data,
        )

    chance = theft_chance(thief, target, now, catalog)
    data["chance"] = chance
    succeeded = rng.random() < chance
    thief.set_cooldown("theft", cooldown_until)

    if not succeeded:
        penalty = thief.deduct(theft_penalty(thief.aura))
        thief.stats.increment("thefts_failed")
        return Outcome.fail(
            f"Your theft attempt on {target.name} failed! "
            f"You lost {penalty} Aura in the process.",
            OutcomeType.THEFT,
            aura_loss=penalty,
            effect="theft_failed",
            data=data,
        )

    amount = target.deduct(theft_amount(thief, target, now, catalog))
    thief.credit(amount)
    thief.stats.increment("thefts_succeeded")
    data["restore_scheduled"] = False
    if amount and schedule is not None and target.has_effect("restore_stolen", now):
        data["restore_handle"] = schedule(
            RESTORE_DELAY,
            RESTORE_TASK,
            target.account_id,
            {"amount": amount, "thief_id": thief.account_id},
        )
        data["restore_scheduled"] = True
        log.debug("Restoration of %d aura scheduled for %s", amount, target.account_id)
    return Outcome.ok(
        f"You successfully stole {amount} Aura from {target.name}!",
        OutcomeType.THEFT,
        aura_gain=amount,
        effect="theft_success",
        data=data,
    )


def restore_stolen(target: PlayerAccount, amount: int) -> int:
    """Return ``amount`` aura to ``target``, applied to its current balance."""

    restored = target.credit(amount)
    target.notify(
        "system",
        f"Your Temporal Anchor has restored {restored} stolen Aura.",
        amount=restored,
    )
    return restored


# ---------------------------------------------------------------------------
# Duels
# ---------------------------------------------------------------------------


class DuelAction(str, Enum):
    ATTACK = "attack"
    DEFEND = "defend"
    CHANNEL = "channel"

    @property
    def beats(self) -> "DuelAction":
        return _BEATS[self]


_BEATS = {
    DuelAction.ATTACK: DuelAction.CHANNEL,
    DuelAction.CHANNEL: DuelAction.DEFEND,
    DuelAction.DEFEND: DuelAction.ATTACK,
}


def check_duel(
    challenger: PlayerAccount,
    opponent: Optional[PlayerAccount],
    now: float,
    *,
    target_name: str = "",
) -> PlayerAccount:
    opponent = check_target(challenger, opponent, target_name, verb="duel")
    if challenger.is_on_cooldown("duel", now):
        minutes = challenger.cooldown_minutes("duel", now)
        raise PreconditionError(
            f"You must wait {minutes} more minutes before challenging another player.",
            remaining_minutes=minutes,
            cooldown="duel",
        )
    return opponent


def start_duel_cooldown(
    challenger: PlayerAccount, now: float, catalog: Optional[ItemCatalog] = None
) -> float:
    """Put the challenger on the duel cooldown.  Returns when it ends."""

    available_at = now + cooldown_duration(DUEL_COOLDOWN, challenger, now, catalog)
    challenger.set_cooldown("duel", available_at)
    return available_at


def resolve_duel(
    challenger: PlayerAccount,
    opponent: PlayerAccount,
    now: float,
    *,
    rng: Optional[random.Random] = None,
    catalog: Optional[ItemCatalog] = None,
    action: DuelAction | str | None = None,
) -> Outcome:
    """Decide a duel and settle the stake.

    Without ``action`` both sides draw a uniform score plus a tenth per level.
    With ``action`` a single attack/defend/channel exchange is played against
    a random opponent move, and the level check can overturn it.
    """

    rng = rng or random.Random()
    details: Dict[str, Any]
    if action is None:
        challenger_score = rng.random() + challenger.level * 0.1
        opponent_score = rng.random() + opponent.level * 0.1
        won = challenger_score > opponent_score
        details = {
            "mode": "instant",
            "challenger_score": challenger_score,
            "opponent_score": opponent_score,
        }
    else:
        try:
            move = DuelAction(str(action).lower())
        except ValueError as exc:
            raise ValidationError(
                "Duel actions are attack, defend or channel.", action=str(action)
            ) from exc
        reply = rng.choice(list(DuelAction))
        if move is reply:
            exchange_won = rng.random() < 0.5
        else:
            exchange_won = move.beats is reply
        keep = turn_keep_probability(challenger.level - opponent.level)
        won = exchange_won if rng.random() < keep else not exchange_won
        details = {"mode": "turn", "action": move.value, "opponent_action": reply.value}
    return settle_duel(challenger, opponent, won, now, catalog=catalog, details=details)


def settle_duel(
    challenger: PlayerAccount,
    opponent: PlayerAccount,
    challenger_won: bool,
    now: float,
    *,
    catalog: Optional[ItemCatalog] = None,
    details: Optional[Dict[str, Any]] = None,
) -> Outcome:
    stake = duel_stake(challenger.aura, opponent.aura)
    winner, loser = (challenger, opponent) if challenger_won else (opponent, challenger)
    transferred = loser.deduct(stake)
    winner.credit(transferred)
    winner.stats.increment("duels_won")
    loser.stats.increment("duels_lost")
    start_duel_cooldown(challenger, now, catalog)
    data = dict(details or {})
    data.update({"opponent_id": opponent.account_id, "stake": stake})
    if challenger_won:
        return Outcome.ok(
            f"You won the duel against {opponent.name}! You gained {transferred} Aura.",
            OutcomeType.DUEL,
            aura_gain=transferred,
            effect="duel_win",
            data=data,
        )
    return Outcome.fail(
        f"You lost the duel against {opponent.name}! You lost {transferred} Aura.",
        OutcomeType.DUEL,
        aura_loss=transferred,
        effect="duel_lose",
        data=data,
    )


# ---------------------------------------------------------------------------
# Quests and minigames
# ---------------------------------------------------------------------------


def complete_quest(
    account: PlayerAccount,
    quest: QuestDefinition,
    now: float,
    *,
    item_id: Optional[str] = None,
    catalog: Optional[ItemCatalog] = None,
) -> Outcome:
    catalog = catalog or default_catalog()
    if account.level < quest.level_requirement:
        raise PreconditionError(
            f"You need to be Aura Level {quest.level_requirement} to start this quest.",
            level_requirement=quest.level_requirement,
        )
    reward = apply_gain_boost(quest.reward, account, now, catalog)
    account.credit(reward)
    lines = [f"+{reward} Aura"]
    if item_id is not None:
        definition = catalog.require(item_id)
        account.add_item(item_id, now, uses_left=1 if definition.is_consumable else None)
        lines.append(definition.name)
    account.stats.increment("quests_completed")
    rewards = "\n".join(lines)
    return Outcome.ok(
        f"You completed {quest.name}!\nRewards:\n{rewards}",
        OutcomeType.REWARD,
        aura_gain=reward,
        effect="quest_complete",
        data={"quest_id": quest.quest_id, "item_id": item_id},
    )


def complete_minigame(
    account: PlayerAccount,
    minigame: MinigameDefinition,
    score: float,
    max_score: float,
    now: float,
    catalog: Optional[ItemCatalog] = None,
) -> Outcome:
    base = minigame_reward(minigame.reward_min, minigame.reward_max, score, max_score)
    reward = apply_gain_boost(base, account, now, catalog)
    account.credit(reward)
    return Outcome.ok(
        f"{minigame.name} finished with a score of {score:g}/{max_score:g}. Reward: {reward} Aura",
        OutcomeType.REWARD,
        aura_gain=reward,
        effect="minigame_complete",
        data={"minigame_id": minigame.minigame_id, "score": score},
    )


__all__ = [
    "DuelAction",
    "RESTORE_TASK",
    "attempt_theft",
    "calendar_day",
    "format_minutes",
    "check_duel",
    "check_target",
    "claim_daily",
    "complete_minigame",
    "complete_quest",
    "gift_aura",
    "grab_lootbox",
    "parse_amount",
    "purchase_item",
    "resolve_duel",
    "restore_stolen",
    "settle_duel",
    "start_duel_cooldown",
    "use_item",
]
