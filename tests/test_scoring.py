"""
tests/test_scoring.py — Scoring & Reward Formula Tests
=======================================================
Pure-function tests: no database, no event loop.
"""

from __future__ import annotations

from playhall.constants import BADGE_QUIZ_CHAMPION, BADGE_QUIZ_HIGH_SCORER, BADGE_QUIZ_PERFECT
from playhall.engine.scoring import (
    TIER_TOP,
    TIER_TOP_30,
    TIER_TOP_50,
    answer_points,
    competition_positions,
    in_top_half,
    mini_game_reward,
    quiz_reward,
    rank_tier,
    time_bonus,
)


class TestAnswerPoints:
    def test_time_bonus(self):
        assert time_bonus(10) == 0
        assert time_bonus(30) == 4
        assert time_bonus(300) == 58

    def test_streak_adds_two_per_answer(self):
        assert answer_points(10, 1, 10) == 12
        assert answer_points(10, 3, 10) == 16
        assert answer_points(10, 1, 30) == 16


class TestCompetitionPositions:
    def test_ties_share_position(self):
        assert competition_positions([30, 30, 10]) == [1, 1, 3]

    def test_distinct(self):
        assert competition_positions([5, 4, 3]) == [1, 2, 3]

    def test_empty(self):
        assert competition_positions([]) == []


class TestRankTier:
    def test_single_participant_has_no_tier(self):
        assert rank_tier(1, 1, top_is_tied=False) is None

    def test_sole_first_is_top(self):
        assert rank_tier(1, 10, top_is_tied=False) == TIER_TOP

    def test_tied_first_is_not_top(self):
        assert rank_tier(1, 2, top_is_tied=True) == TIER_TOP_50
        assert rank_tier(1, 10, top_is_tied=True) == TIER_TOP_30

    def test_top_30_and_50_bounds(self):
        assert rank_tier(3, 10, top_is_tied=False) == TIER_TOP_30
        assert rank_tier(4, 10, top_is_tied=False) == TIER_TOP_50
        assert rank_tier(5, 10, top_is_tied=False) == TIER_TOP_50
        assert rank_tier(6, 10, top_is_tied=False) is None

    def test_odd_field_rounds_half_up(self):
        assert rank_tier(2, 3, top_is_tied=False) == TIER_TOP_50
        assert rank_tier(3, 3, top_is_tied=False) is None


class TestQuizReward:
    def test_solo_perfect_run(self):
        reward = quiz_reward(score=48, correct=3, total=3, position=1, participants=1,
                             top_is_tied=False)
        assert reward.tier is None
        assert reward.badges == [BADGE_QUIZ_PERFECT]
        assert reward.xp == 20 + 30 + 24
        assert reward.coins == 10 + 15 + 9

    def test_champion_and_high_scorer(self):
        reward = quiz_reward(score=120, correct=4, total=5, position=1, participants=3,
                             top_is_tied=False)
        assert reward.tier == TIER_TOP
        assert BADGE_QUIZ_CHAMPION in reward.badges
        assert BADGE_QUIZ_HIGH_SCORER in reward.badges
        assert BADGE_QUIZ_PERFECT not in reward.badges

    def test_only_highest_tier_paid(self):
        top = quiz_reward(score=0, correct=0, total=5, position=1, participants=10,
                          top_is_tied=False)
        base = quiz_reward(score=0, correct=0, total=5, position=10, participants=10,
                           top_is_tied=False)
        assert top.xp - base.xp == 50
        assert top.coins - base.coins == 25

    def test_no_questions(self):
        reward = quiz_reward(score=0, correct=0, total=0, position=1, participants=1,
                             top_is_tied=False)
        assert reward.xp == 20
        assert reward.badges == []


class TestMiniGameReward:
    def test_top_half(self):
        assert in_top_half(0, 2) is True
        assert in_top_half(1, 2) is False
        assert in_top_half(1, 3) is True
        assert in_top_half(0, 1) is False

    def test_bonus_applies_to_top_half_only(self):
        assert mini_game_reward(20, 15, 0, 4) == (25, 18)
        assert mini_game_reward(20, 15, 2, 4) == (20, 15)
        assert mini_game_reward(20, 15, 0, 1) == (20, 15)
