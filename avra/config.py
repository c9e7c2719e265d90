"""Bot and engine configuration utilities."""

from __future__ import annotations

import os
from dataclasses import dataclass


def env(name: str, default: str | None = None) -> str:
    value = os.getenv(name, default)
    if value is None:
        raise RuntimeError(f"Missing required environment variable: {name}")
    return value


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError as exc:
        raise RuntimeError(f"Environment variable {name} must be a number") from exc


@dataclass(slots=True)
class EngineConfig:
    """Tunables for command processing, lootbox cadence and duels.

    All durations are expressed in seconds.
    """

    rate_limit_window: float = 0.2
    combo_window: float = 10.0
    history_size: int = 20
    starting_aura: int = 500
    lootbox_spawn_min: float = 15.0
    lootbox_spawn_max: float = 45.0
    lootbox_lifetime: float = 30.0
    lootbox_warning: float = 30.0
    duel_response_delay: float = 0.0
    duel_accept_chance: float = 0.7

    def __post_init__(self) -> None:
        self.rate_limit_window = max(0.0, float(self.rate_limit_window))
        self.combo_window = max(0.0, float(self.combo_window))
        self.history_size = max(1, int(self.history_size))
        self.starting_aura = max(0, int(self.starting_aura))
        if self.lootbox_spawn_min > self.lootbox_spawn_max:
            self.lootbox_spawn_min, self.lootbox_spawn_max = (
                self.lootbox_spawn_max,
                self.lootbox_spawn_min,
            )
        self.lootbox_spawn_min = max(0.0, float(self.lootbox_spawn_min))
        self.lootbox_spawn_max = max(self.lootbox_spawn_min, float(self.lootbox_spawn_max))
        self.lootbox_lifetime = max(0.0, float(self.lootbox_lifetime))
        self.duel_response_delay = max(0.0, float(self.duel_response_delay))
        self.duel_accept_chance = min(1.0, max(0.0, float(self.duel_accept_chance)))

    @classmethod
    def from_env(cls) -> "EngineConfig":
        return cls(
            rate_limit_window=_env_float("AVRA_RATE_LIMIT", 0.2),
            combo_window=_env_float("AVRA_COMBO_WINDOW", 10.0),
            history_size=int(os.getenv("AVRA_HISTORY_SIZE", "20")),
            starting_aura=int(os.getenv("AVRA_STARTING_AURA", "500")),
            lootbox_spawn_min=_env_float("AVRA_LOOTBOX_SPAWN_MIN", 15.0),
            lootbox_spawn_max=_env_float("AVRA_LOOTBOX_SPAWN_MAX", 45.0),
            lootbox_lifetime=_env_float("AVRA_LOOTBOX_LIFETIME", 30.0),
            lootbox_warning=_env_float("AVRA_LOOTBOX_WARNING", 30.0),
            duel_response_delay=_env_float("AVRA_DUEL_DELAY", 0.0),
            duel_accept_chance=_env_float("AVRA_DUEL_ACCEPT_CHANCE", 0.7),
        )


@dataclass(slots=True)
class BotConfig:
    token: str
    tick_interval: float = 1.0
    announce_channel_id: int | None = None
    engine: EngineConfig | None = None

    @classmethod
    def from_env(cls) -> "BotConfig":
        token = env("DISCORD_TOKEN")
        tick_interval = max(0.1, _env_float("AVRA_TICK_INTERVAL", 1.0))
        channel = os.getenv("AVRA_ANNOUNCE_CHANNEL", "").strip()
        return cls(
            token=token,
            tick_interval=tick_interval,
            announce_channel_id=int(channel) if channel else None,
            engine=EngineConfig.from_env(),
        )


__all__ = ["BotConfig", "EngineConfig", "env"]
