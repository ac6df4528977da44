"""
tests/test_quiz_engine.py — Quiz Engine Tests
==============================================
Drives :class:`QuizEngine` against AsyncMock reward / ranking /
persistence ports and a manually advanced clock.
"""

from __future__ import annotations

import asyncio
from datetime import timedelta
from unittest.mock import AsyncMock, MagicMock, call

import pytest

from playhall.constants import BADGE_QUIZ_PERFECT
from playhall.engine.challenges import RequirementType
from playhall.engine.registry import Scope, SessionKind, SessionRegistry
from playhall.engine.scoring import TIER_TOP, TIER_TOP_50
from playhall.errors import ConflictError, DependencyError, NotFoundError, ValidationError
from playhall.services.quiz_service import QuizEngine

SCOPE = Scope(guild_id=1, channel_id=10)
EASY_PUBG = {
    "questionCount": 3, "timePerQuestion": 30, "category": "pubg", "difficulty": "easy",
    "allowMultipleAttempts": False,
}


def run_async(coro):
    """Run an async coroutine in a new event loop."""
    return asyncio.get_event_loop_policy().new_event_loop().run_until_complete(coro)


@pytest.fixture
def registry():
    return SessionRegistry()


@pytest.fixture
def challenges():
    mock = MagicMock()
    mock.update_challenge_progress = AsyncMock(return_value=[])
    return mock


@pytest.fixture
def engine(registry, ports, challenges, clock, rng):
    return QuizEngine(
        registry, ports.rewards, ports.ranking, ports.persistence,
        challenges=challenges, max_participants=3, clock=clock, rng=rng,
    )


def _answer_all(engine, session, answers: dict[int, list[bool]]):
    """Walk every question; ``answers[uid][i]`` says whether uid gets question i right."""
    results = {uid: [] for uid in answers}
    for i, question in enumerate(session.questions):
        assert engine.current_question(session.id) is question
        for uid, plan in answers.items():
            index = question.correct_index if plan[i] else (question.correct_index + 1) % 4
            results[uid].append(engine.submit_answer(session.id, uid, index))
        engine.advance_question(session.id)
    return results


# ---------------------------------------------------------------------------
# Start
# ---------------------------------------------------------------------------
class TestStartQuiz:
    def test_start_registers_and_persists(self, engine, registry, ports, clock):
        session = run_async(engine.start_quiz(SCOPE, host_id=99, settings=EASY_PUBG))

        assert registry.lookup_by_scope(SCOPE.key(SessionKind.QUIZ)) is session
        assert len(session.questions) == 3
        assert {q.id for q in session.questions} == {"pubg_1", "pubg_2", "pubg_3"}
        assert session.started_at == clock.now
        assert session.settings.time_per_question == 30
        ports.persistence.save_session_record.assert_awaited_once_with(session)

    def test_default_settings(self, engine):
        session = run_async(engine.start_quiz(SCOPE, host_id=99))
        assert session.settings.question_count == 10
        assert len(session.questions) == 10
        assert session.settings.show_correct_answer is True

    @pytest.mark.parametrize("settings", [
        {"questionCount": 0},
        {"question_count": 51},
        {"timePerQuestion": 5},
        {"category": "history"},
        {"difficulty": "extreme"},
        {"allowMultipleAttempts": "yes"},
        {"unknownKey": 1},
    ])
    def test_invalid_settings_rejected_before_mutation(self, engine, registry, ports, settings):
        with pytest.raises(ValidationError):
            run_async(engine.start_quiz(SCOPE, host_id=99, settings=settings))
        assert len(registry) == 0
        ports.persistence.save_session_record.assert_not_awaited()

    def test_quiz_longer_than_stale_window_rejected(self, engine, registry, ports):
        with pytest.raises(ValidationError) as err:
            run_async(engine.start_quiz(
                SCOPE, host_id=99, settings={"questionCount": 50, "timePerQuestion": 300},
            ))
        assert err.value.details == {"seconds": 15020}
        assert len(registry) == 0
        ports.persistence.save_session_record.assert_not_awaited()

    def test_quiz_within_stale_window_accepted(self, engine):
        session = run_async(engine.start_quiz(
            SCOPE, host_id=99, settings={"questionCount": 11, "timePerQuestion": 300},
        ))
        assert session.settings.question_count == 11

    def test_second_quiz_in_channel_conflicts(self, engine):
        run_async(engine.start_quiz(SCOPE, host_id=99))
        with pytest.raises(ConflictError):
            run_async(engine.start_quiz(SCOPE, host_id=98))

    def test_concurrent_starts_only_one_wins(self, engine, registry):
        async def scenario():
            return await asyncio.gather(
                engine.start_quiz(SCOPE, host_id=1),
                engine.start_quiz(SCOPE, host_id=2),
                return_exceptions=True,
            )

        results = run_async(scenario())
        errors = [r for r in results if isinstance(r, ConflictError)]
        assert len(errors) == 1
        assert len(registry) == 1

    def test_other_channel_is_independent(self, engine, registry):
        run_async(engine.start_quiz(SCOPE, host_id=1))
        run_async(engine.start_quiz(Scope(guild_id=1, channel_id=11), host_id=1))
        assert len(registry) == 2

    def test_persistence_failure_rolls_back(self, engine, registry, ports):
        ports.persistence.save_session_record.side_effect = RuntimeError("db down")
        with pytest.raises(DependencyError):
            run_async(engine.start_quiz(SCOPE, host_id=99))
        assert len(registry) == 0

        ports.persistence.save_session_record.side_effect = None
        assert run_async(engine.start_quiz(SCOPE, host_id=99)) is not None


# ---------------------------------------------------------------------------
# Join
# ---------------------------------------------------------------------------
class TestJoinQuiz:
    def test_join_is_idempotent(self, engine):
        session = run_async(engine.start_quiz(SCOPE, host_id=99))
        first = engine.join_quiz(session.id, 1, "alice")
        again = engine.join_quiz(session.id, 1, "alice")
        assert first is again
        assert len(session.participants) == 1

    def test_no_join_after_first_question(self, engine):
        session = run_async(engine.start_quiz(SCOPE, host_id=99))
        engine.join_quiz(session.id, 1, "alice")
        engine.advance_question(session.id)
        with pytest.raises(ConflictError):
            engine.join_quiz(session.id, 2, "bob")
        # existing participants are still returned
        assert engine.join_quiz(session.id, 1, "alice").user_id == 1

    def test_capacity(self, engine):
        session = run_async(engine.start_quiz(SCOPE, host_id=99))
        for uid in (1, 2, 3):
            engine.join_quiz(session.id, uid, f"user{uid}")
        with pytest.raises(ConflictError):
            engine.join_quiz(session.id, 4, "late")

    def test_unknown_session(self, engine):
        with pytest.raises(NotFoundError):
            engine.join_quiz("quiz_missing", 1, "alice")


# ---------------------------------------------------------------------------
# Answers
# ---------------------------------------------------------------------------
class TestSubmitAnswer:
    def _started(self, engine, settings=EASY_PUBG):
        session = run_async(engine.start_quiz(SCOPE, host_id=99, settings=settings))
        engine.join_quiz(session.id, 1, "alice")
        return session

    def test_correct_answer_scores_with_streak(self, engine):
        session = self._started(engine)
        results = _answer_all(engine, session, {1: [True, True, True]})[1]
        assert [r.points_awarded for r in results] == [16, 18, 20]
        assert [r.new_streak for r in results] == [1, 2, 3]
        participant = session.participants[1]
        assert participant.score == 54
        assert participant.best_streak == 3
        assert participant.accuracy == 1.0

    def test_wrong_answer_resets_streak(self, engine):
        session = self._started(engine)
        results = _answer_all(engine, session, {1: [True, False, True]})[1]
        assert [r.correct for r in results] == [True, False, True]
        assert [r.new_streak for r in results] == [1, 0, 1]
        participant = session.participants[1]
        assert participant.score == 32
        assert participant.best_streak == 1
        assert (participant.correct_answers, participant.total_answers) == (2, 3)

    def test_duplicate_answer_ignored(self, engine):
        session = self._started(engine)
        question = session.current_question
        assert engine.submit_answer(session.id, 1, question.correct_index).correct
        assert engine.submit_answer(session.id, 1, question.correct_index) is None
        assert session.participants[1].total_answers == 1

    def test_multiple_attempts_allowed(self, engine):
        session = self._started(engine, {**EASY_PUBG, "allowMultipleAttempts": True})
        question = session.current_question
        wrong = (question.correct_index + 1) % 4
        assert engine.submit_answer(session.id, 1, wrong).correct is False
        assert engine.submit_answer(session.id, 1, question.correct_index).correct is True
        assert session.participants[1].total_answers == 2

    def test_inapplicable_answers_return_none(self, engine):
        session = self._started(engine)
        assert engine.submit_answer(session.id, 2, 0) is None  # not a participant
        assert engine.submit_answer(session.id, 1, 4) is None  # out of range
        assert engine.submit_answer(session.id, 1, -1) is None
        assert engine.submit_answer("quiz_missing", 1, 0) is None
        for _ in session.questions:
            engine.advance_question(session.id)
        assert engine.current_question(session.id) is None
        assert engine.submit_answer(session.id, 1, 0) is None

    def test_advance_stops_at_end(self, engine):
        session = self._started(engine)
        assert engine.advance_question(session.id) is session.questions[1]
        assert engine.advance_question(session.id) is session.questions[2]
        assert engine.advance_question(session.id) is None
        assert engine.advance_question(session.id) is None
        assert session.current_index == 3


# ---------------------------------------------------------------------------
# End
# ---------------------------------------------------------------------------
class TestEndQuiz:
    def test_tied_leaders_share_top_half(self, engine, registry, ports, challenges):
        session = run_async(engine.start_quiz(SCOPE, host_id=99, settings=EASY_PUBG))
        engine.join_quiz(session.id, 1, "alice")
        engine.join_quiz(session.id, 2, "bob")
        _answer_all(engine, session, {1: [True] * 3, 2: [True] * 3})

        result = run_async(engine.end_quiz(session.id))

        assert [s.rank for s in result.standings] == [1, 1]
        assert [p.streak for p in session.participants.values()] == [3, 3]
        for standing in result.standings:
            assert standing.score == 54
            assert standing.tier == TIER_TOP_50
            assert standing.badges == [BADGE_QUIZ_PERFECT]
            assert (standing.xp, standing.coins) == (92, 43)
            assert standing.reward_error is None

        ports.rewards.grant_experience.assert_has_awaits(
            [call(1, 92, display_name="alice"), call(2, 92, display_name="bob")],
            any_order=True,
        )
        ports.rewards.grant_badge.assert_has_awaits(
            [call(1, BADGE_QUIZ_PERFECT), call(2, BADGE_QUIZ_PERFECT)], any_order=True
        )
        challenges.update_challenge_progress.assert_has_awaits(
            [call(1, RequirementType.QUIZ_SCORE, 54, guild_id=1),
             call(2, RequirementType.QUIZ_SCORE, 54, guild_id=1)],
            any_order=True,
        )
        ports.ranking.record_quiz_result.assert_has_awaits(
            [call(SCOPE, 1, 54, 3, 3), call(SCOPE, 2, 54, 3, 3)], any_order=True
        )
        assert ports.persistence.save_session_result.await_count == 2
        ports.persistence.close_session_record.assert_awaited_once()
        assert len(registry) == 0

    def test_sole_leader_is_top(self, engine):
        session = run_async(engine.start_quiz(SCOPE, host_id=99, settings=EASY_PUBG))
        engine.join_quiz(session.id, 1, "alice")
        engine.join_quiz(session.id, 2, "bob")
        _answer_all(engine, session, {1: [True] * 3, 2: [False, True, True]})

        result = run_async(engine.end_quiz(session.id))
        assert [s.user_id for s in result.standings] == [1, 2]
        assert result.standings[0].tier == TIER_TOP
        assert result.winner.user_id == 1
        assert result.standings[1].tier is None

    def test_zero_score_skips_challenge_progress(self, engine, challenges):
        session = run_async(engine.start_quiz(SCOPE, host_id=99, settings=EASY_PUBG))
        engine.join_quiz(session.id, 1, "alice")
        result = run_async(engine.end_quiz(session.id))
        assert result.standings[0].score == 0
        assert result.winner is None
        challenges.update_challenge_progress.assert_not_awaited()

    def test_end_is_idempotent(self, engine, ports):
        session = run_async(engine.start_quiz(SCOPE, host_id=99))
        engine.join_quiz(session.id, 1, "alice")
        assert run_async(engine.end_quiz(session.id)) is not None
        assert run_async(engine.end_quiz(session.id)) is None
        assert ports.rewards.grant_experience.await_count == 1

    def test_concurrent_end_pays_once(self, engine, ports):
        session = run_async(engine.start_quiz(SCOPE, host_id=99))
        engine.join_quiz(session.id, 1, "alice")

        async def scenario():
            return await asyncio.gather(engine.end_quiz(session.id), engine.end_quiz(session.id))

        results = run_async(scenario())
        assert sum(r is not None for r in results) == 1
        assert ports.rewards.grant_experience.await_count == 1

    def test_payout_failure_is_isolated(self, engine, registry, ports):
        async def flaky(user_id, amount, *, display_name=None):
            if user_id == 1:
                raise RuntimeError("reward service down")

        ports.rewards.grant_experience.side_effect = flaky
        session = run_async(engine.start_quiz(SCOPE, host_id=99, settings=EASY_PUBG))
        engine.join_quiz(session.id, 1, "alice")
        engine.join_quiz(session.id, 2, "bob")

        result = run_async(engine.end_quiz(session.id))

        errors = {s.user_id: s.reward_error for s in result.standings}
        assert errors == {1: "reward service down", 2: None}
        ports.ranking.record_quiz_result.assert_awaited_once_with(SCOPE, 2, 0, 0, 3)
        ports.persistence.close_session_record.assert_awaited_once()
        assert len(registry) == 0

    def test_close_failure_still_settles(self, engine, registry, ports):
        ports.persistence.close_session_record.side_effect = RuntimeError("db down")
        session = run_async(engine.start_quiz(SCOPE, host_id=99))
        engine.join_quiz(session.id, 1, "alice")
        result = run_async(engine.end_quiz(session.id))
        assert len(result.standings) == 1
        assert len(registry) == 0

    def test_empty_quiz(self, engine):
        session = run_async(engine.start_quiz(SCOPE, host_id=99))
        result = run_async(engine.end_quiz(session.id))
        assert result.standings == []
        assert result.kind == SessionKind.QUIZ

    def test_unknown_session(self, engine):
        assert run_async(engine.end_quiz("quiz_missing")) is None


class TestStaleQuiz:
    def test_cleanup_after_stale_window(self, engine, registry, clock):
        session = run_async(engine.start_quiz(SCOPE, host_id=99))
        assert registry.cleanup(clock.now + timedelta(minutes=59)) == []
        assert registry.cleanup(clock.now + timedelta(minutes=61)) == [session.id]
        assert not session.active

    def test_swept_quiz_rejects_late_calls(self, engine, registry, clock):
        session = run_async(engine.start_quiz(SCOPE, host_id=99))
        engine.join_quiz(session.id, 1, "alice")
        registry.cleanup(clock.now + timedelta(minutes=61))

        with pytest.raises(NotFoundError):
            engine.advance_question(session.id)
        assert run_async(engine.end_quiz(session.id)) is None
        assert run_async(engine.start_quiz(SCOPE, host_id=99)).active
