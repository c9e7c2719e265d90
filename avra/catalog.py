"""Static game data: items, synergies, combos, quests and minigames."""

from __future__ import annotations

import random
from types import MappingProxyType
from typing import TYPE_CHECKING, Iterable, Mapping, Optional, Sequence

from .constants import SECONDS_PER_DAY, SECONDS_PER_HOUR
from .models.items import (
    ComboDefinition,
    ItemCategory,
    ItemDefinition,
    ItemRarity,
    MinigameDefinition,
    QuestDefinition,
    Synergy,
    normalize_reference,
)

if TYPE_CHECKING:
    from .models.players import PlayerAccount


def _item(
    item_id: str,
    name: str,
    description: str,
    category: str,
    price: int,
    rarity: str,
    effect: str,
    *,
    duration: float = SECONDS_PER_HOUR,
    cooldown: float = 0.0,
    usage_text: str = "",
) -> ItemDefinition:
    return ItemDefinition(
        item_id=item_id,
        name=name,
        description=description,
        category=ItemCategory(category),
        price=price,
        rarity=ItemRarity(rarity),
        effect=effect,
        duration=float(duration),
        cooldown=float(cooldown),
        usage_text=usage_text,
    )


DEFAULT_ITEMS: tuple[ItemDefinition, ...] = (
    # Defensive
    _item(
        "aura_shield",
        "Aura Shield",
        "Blocks one theft attempt completely. Single-use, consumed on activation.",
        "consumable",
        500,
        "common",
        "block_theft",
        duration=SECONDS_PER_DAY,
        usage_text="Your Aura Shield activates, blocking the theft attempt!",
    ),
    _item(
        "stealth_cloak",
        "Stealth Cloak",
        "Makes you invisible on the leaderboard for 6 hours. Prevents theft attempts during this time.",
        "defensive",
        1_200,
        "uncommon",
        "stealth",
        duration=6 * SECONDS_PER_HOUR,
        usage_text="You fade from view, becoming untargetable for theft attempts.",
    ),
    _item(
        "mirror_ward",
        "Mirror Ward",
        "Reflects theft attempts for 3 hours. Attacker loses Aura instead.",
        "defensive",
        2_000,
        "rare",
        "reflect_theft",
        duration=3 * SECONDS_PER_HOUR,
        usage_text="A shimmering barrier surrounds your Aura, ready to reflect theft attempts.",
    ),
    _item(
        "temporal_anchor",
        "Temporal Anchor",
        "If Aura is stolen, automatically restores it after 1 hour. 24-hour duration.",
        "defensive",
        3_500,
        "epic",
        "restore_stolen",
        duration=SECONDS_PER_DAY,
        usage_text="You anchor your Aura to its current state, ensuring any losses will be recovered.",
    ),
    # Offensive
    _item(
        "aura_magnet",
        "Aura Magnet",
        "+15% success chance on theft attempts for 1 hour.",
        "offensive",
        800,
        "common",
        "boost_theft",
        usage_text="The Aura Magnet pulses with energy, ready to draw in Aura from your target.",
    ),
    _item(
        "shadow_mask",
        "Shadow Mask",
        "Hide your identity during theft attempts for 2 hours.",
        "offensive",
        1_500,
        "uncommon",
        "hide_identity",
        duration=2 * SECONDS_PER_HOUR,
        usage_text="You don a mask of shadows, concealing your identity during theft attempts.",
    ),
    _item(
        "precision_lens",
        "Precision Lens",
        "See other players' defensive items for 1 hour. +10% theft success chance.",
        "offensive",
        2_500,
        "rare",
        "see_defenses",
        usage_text="The Precision Lens activates, revealing the defensive measures of potential targets.",
    ),
    _item(
        "void_extractor",
        "Void Extractor",
        "Steal 50% more Aura on successful theft. 12-hour cooldown.",
        "offensive",
        4_000,
        "epic",
        "amplify_theft",
        duration=12 * SECONDS_PER_HOUR,
        cooldown=12 * SECONDS_PER_HOUR,
        usage_text="The Void Extractor hums with dark energy, ready to drain additional Aura from your targets.",
    ),
    # Utility
    _item(
        "aura_catalyst",
        "Aura Catalyst",
        "+25% Aura from all sources for 3 hours.",
        "utility",
        1_000,
        "uncommon",
        "boost_gains",
        duration=3 * SECONDS_PER_HOUR,
        usage_text="The Aura Catalyst activates, enhancing all Aura you receive.",
    ),
    _item(
        "lootbox_detector",
        "Lootbox Detector",
        "Get notified 30 seconds before lootbox spawns. Lasts 12 hours.",
        "utility",
        1_800,
        "uncommon",
        "detect_lootbox",
        duration=12 * SECONDS_PER_HOUR,
        usage_text="The Lootbox Detector begins scanning the area for upcoming lootbox spawns.",
    ),
    _item(
        "time_crystal",
        "Time Crystal",
        "Reduce theft and duel cooldowns by 50% for 2 hours.",
        "utility",
        3_000,
        "rare",
        "reduce_cooldowns",
        duration=2 * SECONDS_PER_HOUR,
        usage_text="The Time Crystal fractures reality around you, accelerating your recovery times.",
    ),
    _item(
        "mystic_orb",
        "Mystic Orb",
        "Reveals one random command combo. Single use.",
        "consumable",
        5_000,
        "epic",
        "reveal_combo",
        duration=0.0,
        usage_text="The Mystic Orb swirls with cosmic energy, revealing hidden knowledge.",
    ),
    # Legendary
    _item(
        "aura_crown",
        "Crown of Luminescence",
        "Legendary item. +50% Aura from all sources and immunity to theft for 1 hour. 7-day cooldown.",
        "legendary",
        25_000,
        "legendary",
        "crown_effect",
        cooldown=7 * SECONDS_PER_DAY,
        usage_text=(
            "The Crown of Luminescence blazes with power, making you untouchable "
            "and vastly increasing your Aura gains."
        ),
    ),
    _item(
        "void_siphon",
        "Void Siphon",
        "Legendary item. Marks you as a void siphoner for 1 hour. 14-day cooldown.",
        "legendary",
        30_000,
        "legendary",
        "mass_drain",
        cooldown=14 * SECONDS_PER_DAY,
        usage_text="The Void Siphon creates a massive pull, drawing Aura from countless sources into your reserves.",
    ),
)


DEFAULT_SYNERGIES: tuple[Synergy, ...] = (
    Synergy(
        "stealth_set",
        "Stealth Set",
        ("stealth_cloak", "shadow_mask"),
        "+10% theft success chance.",
        "stealth_synergy",
    ),
    Synergy(
        "catalyst_network",
        "Catalyst Network",
        ("aura_catalyst", "time_crystal", "lootbox_detector"),
        "+15% Aura from all sources.",
        "catalyst_synergy",
    ),
    Synergy(
        "guardian_protocol",
        "Guardian Protocol",
        ("aura_shield", "mirror_ward", "temporal_anchor"),
        "Every defensive layer is active at once.",
        "guardian_synergy",
    ),
    Synergy(
        "master_thief",
        "Master Thief",
        ("aura_magnet", "precision_lens", "void_extractor"),
        "+3% theft success chance per level your target is above you.",
        "thief_synergy",
    ),
    Synergy(
        "time_weaver",
        "Time Weaver",
        ("time_crystal", "temporal_anchor"),
        "Cooldowns reduced by 75% instead of 50%.",
        "time_synergy",
    ),
    Synergy(
        "void_walker",
        "Void Walker",
        ("void_extractor", "shadow_mask", "precision_lens"),
        "Stolen Aura is increased by a further 10%.",
        "void_synergy",
    ),
)


DEFAULT_COMBOS: tuple[ComboDefinition, ...] = (
    ComboDefinition(
        "energy_surge",
        "Energy Surge",
        ("focus", "channel", "release"),
        250,
        "You performed an Energy Surge combo! +{reward} Aura",
        "energy_burst",
    ),
    ComboDefinition(
        "aura_extraction",
        "Aura Extraction",
        ("inspect", "analyze", "harvest"),
        300,
        "You performed an Aura Extraction combo! +{reward} Aura",
        "extraction_spiral",
    ),
    ComboDefinition(
        "inner_awakening",
        "Inner Awakening",
        ("meditate", "visualize", "manifest"),
        400,
        "You performed an Inner Awakening combo! +{reward} Aura",
        "awakening_glow",
    ),
)


DEFAULT_QUESTS: tuple[QuestDefinition, ...] = (
    QuestDefinition(
        "q1",
        "Crystal Caverns",
        "Explore the ancient crystal caverns to find rare Aura crystals.",
        "Medium",
        500,
        1,
    ),
    QuestDefinition(
        "q2",
        "Shadow Realm",
        "Enter the shadow realm and overcome its challenges to gain Aura mastery.",
        "Hard",
        800,
        2,
    ),
    QuestDefinition(
        "q3",
        "Aura Temple",
        "Visit the mystical Aura temple and learn ancient techniques from the masters.",
        "Easy",
        300,
        1,
    ),
)


DEFAULT_MINIGAMES: tuple[MinigameDefinition, ...] = (
    MinigameDefinition(
        "wordscramble",
        "Word Unscramble",
        "Quickly unscramble Aura-related words",
        100,
        300,
        ("word", "scramble"),
    ),
    MinigameDefinition(
        "commandchain",
        "Command Chain",
        "Memorize and type command sequences",
        150,
        450,
        ("command", "chain"),
    ),
    MinigameDefinition(
        "aurapuzzle",
        "Aura Puzzle",
        "Solve text-based riddles",
        200,
        600,
        ("puzzle",),
    ),
    MinigameDefinition(
        "reaction",
        "Reaction Test",
        "Type commands instantly when prompted",
        50,
        150,
        ("reaction",),
    ),
)


class ItemCatalog:
    """Read-only lookup over the game's static definitions."""

    def __init__(
        self,
        items: Iterable[ItemDefinition] = DEFAULT_ITEMS,
        *,
        synergies: Iterable[Synergy] = DEFAULT_SYNERGIES,
        combos: Iterable[ComboDefinition] = DEFAULT_COMBOS,
        quests: Iterable[QuestDefinition] = DEFAULT_QUESTS,
        minigames: Iterable[MinigameDefinition] = DEFAULT_MINIGAMES,
    ) -> None:
        self._items = MappingProxyType({item.item_id: item for item in items})
        self.synergies: tuple[Synergy, ...] = tuple(synergies)
        self.combos: tuple[ComboDefinition, ...] = tuple(combos)
        self.quests: tuple[QuestDefinition, ...] = tuple(quests)
        self.minigames: tuple[MinigameDefinition, ...] = tuple(minigames)
        self.names: Mapping[str, str] = MappingProxyType(
            {item.item_id: item.name for item in self._items.values()}
        )

    @property
    def items(self) -> Mapping[str, ItemDefinition]:
        return self._items

    def __contains__(self, item_id: object) -> bool:
        return item_id in self._items

    def get(self, item_id: str) -> Optional[ItemDefinition]:
        return self._items.get(item_id)

    def require(self, item_id: str) -> ItemDefinition:
        try:
            return self._items[item_id]
        except KeyError as exc:
            raise KeyError(f"Unknown item: {item_id}") from exc

    def resolve(self, reference: str) -> Optional[ItemDefinition]:
        """Find an item by id or display name, ignoring case and underscores."""

        for item in self._items.values():
            if item.matches(reference):
                return item
        return None

    def by_rarity(self, rarity: ItemRarity | str) -> list[ItemDefinition]:
        rarity = ItemRarity.from_value(rarity)
        return [item for item in self._items.values() if item.rarity is rarity]

    def active_synergies(self, account: "PlayerAccount", now: float) -> list[Synergy]:
        active = {entry.item_id for entry in account.iter_active(now)}
        return [
            synergy
            for synergy in self.synergies
            if all(item_id in active for item_id in synergy.item_ids)
        ]

    def has_synergy(self, account: "PlayerAccount", key: str, now: float) -> bool:
        return any(synergy.key == key for synergy in self.active_synergies(account, now))

    def combo_for(self, buffer: Sequence[str]) -> Optional[ComboDefinition]:
        """Return the first registered combo that ``buffer`` ends with."""

        for combo in self.combos:
            size = len(combo.sequence)
            if size and len(buffer) >= size and tuple(buffer[-size:]) == combo.sequence:
                return combo
        return None

    def combo_tokens(self) -> frozenset[str]:
        return frozenset(token for combo in self.combos for token in combo.sequence)

    def random_combo(self, rng: random.Random) -> ComboDefinition:
        return rng.choice(self.combos)

    def available_quests(self, level: int) -> list[QuestDefinition]:
        return [quest for quest in self.quests if quest.level_requirement <= level]

    def find_quest(self, name: str) -> Optional[QuestDefinition]:
        needle = normalize_reference(name)
        for quest in self.quests:
            if needle in (normalize_reference(quest.name), normalize_reference(quest.quest_id)):
                return quest
        return None

    def find_minigame(self, name: str) -> Optional[MinigameDefinition]:
        needle = normalize_reference(name)
        for minigame in self.minigames:
            if needle == minigame.minigame_id:
                return minigame
        for minigame in self.minigames:
            if any(keyword in needle for keyword in minigame.keywords):
                return minigame
        return None


_DEFAULT_CATALOG: ItemCatalog | None = None


def default_catalog() -> ItemCatalog:
    global _DEFAULT_CATALOG
    if _DEFAULT_CATALOG is None:
        _DEFAULT_CATALOG = ItemCatalog()
    return _DEFAULT_CATALOG


__all__ = [
    "DEFAULT_COMBOS",
    "DEFAULT_ITEMS",
    "DEFAULT_MINIGAMES",
    "DEFAULT_QUESTS",
    "DEFAULT_SYNERGIES",
    "ItemCatalog",
    "default_catalog",
]
