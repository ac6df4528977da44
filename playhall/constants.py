"""
playhall.constants — Shared Constants & Helpers
================================================

Single source of truth for badge ids, presentation constants and the
leveling formula.  Import from here instead of duplicating in cogs and
services.
"""

from __future__ import annotations

# ---------------------------------------------------------------------------
# Rarity presentation (lootbox items, bot replies)
# ---------------------------------------------------------------------------
RARITY_EMOJI: dict[str, str] = {
    "common": "\u26aa",        # ⚪
    "rare": "\U0001f535",      # 🔵
    "epic": "\U0001f7e3",      # 🟣
    "legendary": "\U0001f7e1", # 🟡
    "meme": "\U0001f3ad",      # 🎭
}

RANK_BADGES: list[str] = ["\U0001f947", "\U0001f948", "\U0001f949"]  # 🥇🥈🥉


# ---------------------------------------------------------------------------
# Badge ids granted by the engines
# ---------------------------------------------------------------------------
BADGE_QUIZ_PERFECT = "quiz_perfect"
BADGE_QUIZ_CHAMPION = "quiz_champion"
BADGE_QUIZ_HIGH_SCORER = "quiz_high_scorer"


# ---------------------------------------------------------------------------
# Leveling formula — the single canonical implementation
# ---------------------------------------------------------------------------
LEVEL_BASE = 100
LEVEL_FACTOR = 1.25


def xp_for_level(level: int) -> int:
    """XP required to leave *level*.

    Uses the exponential formula::

        required = LEVEL_BASE * (LEVEL_FACTOR ** level)
    """
    return int(LEVEL_BASE * (LEVEL_FACTOR ** level))


def level_for_xp(xp: int, start_level: int = 1) -> int:
    """Return the level reached with *xp* total, starting from *start_level*."""
    level = start_level
    while xp >= xp_for_level(level):
        level += 1
    return level
