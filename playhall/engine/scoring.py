"""
playhall.engine.scoring — Answer Scoring & End-of-Session Rewards
==================================================================

Pure calculation — no Discord I/O, no DB I/O.  Point values are
illustrative defaults; only their ordering matters to the engines.

Quiz payout per participant::

    participation base + accuracy bonus + score bonus + rank-tier bonus

Mini-game payout per participant::

    template reward (+25% for the top half when more than one player)
"""

from __future__ import annotations

import math
from collections.abc import Sequence
from dataclasses import dataclass, field

from playhall.constants import (
    BADGE_QUIZ_CHAMPION,
    BADGE_QUIZ_HIGH_SCORER,
    BADGE_QUIZ_PERFECT,
)

# ---------------------------------------------------------------------------
# Tuning
# ---------------------------------------------------------------------------
QUIZ_BASE_XP = 20
QUIZ_BASE_COINS = 10
QUIZ_ACCURACY_XP = 30
QUIZ_ACCURACY_COINS = 15
QUIZ_SCORE_XP_RATE = 0.5
QUIZ_SCORE_COIN_RATE = 0.2
QUIZ_HIGH_SCORE = 100

TIER_TOP = "top"
TIER_TOP_30 = "top_30"
TIER_TOP_50 = "top_50"

# (xp, coins) per tier — only the highest applicable tier is paid
TIER_BONUS: dict[str, tuple[int, int]] = {
    TIER_TOP: (50, 25),
    TIER_TOP_30: (30, 15),
    TIER_TOP_50: (15, 8),
}

MINI_GAME_TOP_HALF_BONUS = 0.25


# ---------------------------------------------------------------------------
# Per-answer scoring
# ---------------------------------------------------------------------------
def time_bonus(time_per_question: int) -> int:
    """Longer question timers earn a flat bonus: one point per 5 s above 10 s."""
    return max(0, (time_per_question - 10) // 5)


def answer_points(base_points: int, new_streak: int, time_per_question: int) -> int:
    """Points for a correct answer, *new_streak* already including this answer."""
    return base_points + new_streak * 2 + time_bonus(time_per_question)


# ---------------------------------------------------------------------------
# Ranking
# ---------------------------------------------------------------------------
def competition_positions(scores: Sequence[int]) -> list[int]:
    """1-based positions for *scores* sorted descending; ties share a position.

    ``[30, 30, 10]`` → ``[1, 1, 3]``
    """
    positions: list[int] = []
    for i, score in enumerate(scores):
        if i > 0 and score == scores[i - 1]:
            positions.append(positions[-1])
        else:
            positions.append(i + 1)
    return positions


def rank_tier(position: int, total: int, top_is_tied: bool) -> str | None:
    """Highest tier earned at *position* out of *total* participants.

    - top performer: sole holder of first place
    - top 30%: position ≤ floor(n × 0.3)
    - top 50%: position ≤ ceil(n × 0.5)

    Tiers only apply when more than one participant took part.
    """
    if total <= 1:
        return None
    if position == 1 and not top_is_tied:
        return TIER_TOP
    if position <= math.floor(total * 0.3):
        return TIER_TOP_30
    if position <= math.ceil(total * 0.5):
        return TIER_TOP_50
    return None


# ---------------------------------------------------------------------------
# Quiz rewards
# ---------------------------------------------------------------------------
@dataclass(slots=True)
class QuizReward:
    xp: int
    coins: int
    tier: str | None = None
    badges: list[str] = field(default_factory=list)


def quiz_reward(
    *,
    score: int,
    correct: int,
    total: int,
    position: int,
    participants: int,
    top_is_tied: bool,
) -> QuizReward:
    """Compute one participant's quiz payout and earned badges."""
    accuracy = correct / total if total else 0.0
    tier = rank_tier(position, participants, top_is_tied)
    tier_xp, tier_coins = TIER_BONUS.get(tier, (0, 0)) if tier else (0, 0)

    xp = (
        QUIZ_BASE_XP
        + int(QUIZ_ACCURACY_XP * accuracy)
        + int(score * QUIZ_SCORE_XP_RATE)
        + tier_xp
    )
    coins = (
        QUIZ_BASE_COINS
        + int(QUIZ_ACCURACY_COINS * accuracy)
        + int(score * QUIZ_SCORE_COIN_RATE)
        + tier_coins
    )

    badges: list[str] = []
    if total > 0 and correct == total:
        badges.append(BADGE_QUIZ_PERFECT)
    if tier == TIER_TOP:
        badges.append(BADGE_QUIZ_CHAMPION)
    if score >= QUIZ_HIGH_SCORE:
        badges.append(BADGE_QUIZ_HIGH_SCORER)

    return QuizReward(xp=xp, coins=coins, tier=tier, badges=badges)


# ---------------------------------------------------------------------------
# Mini-game rewards
# ---------------------------------------------------------------------------
def in_top_half(index: int, participants: int) -> bool:
    """True if the 0-based *index* falls in the top half of a multi-player field."""
    return participants > 1 and index < math.ceil(participants / 2)


def mini_game_reward(
    template_xp: int, template_coins: int, index: int, participants: int
) -> tuple[int, int]:
    """Template payout, boosted by 25% for the top half."""
    if in_top_half(index, participants):
        factor = 1 + MINI_GAME_TOP_HALF_BONUS
        return int(template_xp * factor), int(template_coins * factor)
    return template_xp, template_coins
