"""Aura levels and rank titles."""

from __future__ import annotations

from bisect import bisect_right

from ..constants import LEVEL_THRESHOLDS, MAX_LEVEL, RANK_TITLES, TOP_LEVEL_SPAN


def level_for_aura(aura: int) -> int:
    """Return the 1-based level for ``aura`` using the fixed breakpoints."""

    return max(1, bisect_right(LEVEL_THRESHOLDS, max(0, int(aura))))


def rank_for_level(level: int) -> str:
    index = min(max(int(level), 1), MAX_LEVEL) - 1
    return RANK_TITLES[index]


def next_level_threshold(level: int) -> int | None:
    if level >= MAX_LEVEL:
        return None
    return LEVEL_THRESHOLDS[level]


def level_progress(aura: int) -> float:
    """Fraction of the way from the current level's floor to the next one."""

    aura = max(0, int(aura))
    level = level_for_aura(aura)
    floor = LEVEL_THRESHOLDS[level - 1]
    ceiling = next_level_threshold(level)
    span = (ceiling - floor) if ceiling is not None else TOP_LEVEL_SPAN
    return min(1.0, (aura - floor) / span)


__all__ = ["level_for_aura", "level_progress", "next_level_threshold", "rank_for_level"]
