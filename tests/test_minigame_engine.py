"""
tests/test_minigame_engine.py — Mini-Game Engine Tests
=======================================================
Session lifecycle around the state machines: start / scope conflicts,
the end timer, event routing, ranking, payouts and end listeners.

Every scenario runs inside one event loop because ``start_mini_game``
arms an ``asyncio`` timer; each ends with ``engine.shutdown()``.
"""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock, MagicMock, call

import pytest

from playhall.engine.challenges import RequirementType
from playhall.engine.minigames import DEFAULT_MINI_GAMES, MiniGameDefinition, RewardTemplate
from playhall.engine.registry import Scope, SessionKind, SessionRegistry
from playhall.errors import ConflictError, DependencyError, NotFoundError, UnknownGameType
from playhall.services.minigame_service import MiniGameEngine

SCOPE = Scope(guild_id=1, channel_id=10)

FLASH = MiniGameDefinition(
    id="flash_drop", name="Flash Drop", description="", game_type="airdrop",
    difficulty="easy", duration=0, rewards=RewardTemplate(xp=5, coins=5),
)
BROKEN = MiniGameDefinition(
    id="broken", name="Broken", description="", game_type="chess",
    difficulty="hard", duration=60, rewards=RewardTemplate(),
)
QUICK_LOOT = MiniGameDefinition(
    id="quick_loot", name="Quick Loot", description="", game_type="lootbox",
    difficulty="easy", duration=1, rewards=RewardTemplate(xp=5, coins=5),
)


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
    return MiniGameEngine(
        registry, ports.rewards, ports.ranking, ports.persistence,
        challenges=challenges,
        definitions=(*DEFAULT_MINI_GAMES, FLASH, BROKEN, QUICK_LOOT),
        clock=clock, rng=rng,
    )


class TestStart:
    def test_start_arms_timer(self, engine, registry, ports, clock):
        async def scenario():
            session = await engine.start_mini_game("reaction_test", SCOPE, host_id=99)
            assert engine.pending_timers == 1
            await engine.shutdown()
            return session

        session = run_async(scenario())
        assert session.game_type == "reaction"
        assert (session.ends_at - session.started_at).total_seconds() == 30
        assert registry.lookup_by_scope(SCOPE.key(SessionKind.MINI_GAME)) is session
        ports.persistence.save_session_record.assert_awaited_once_with(session)
        assert engine.pending_timers == 0

    @pytest.mark.parametrize("game_id", ["chess", "broken"])
    def test_unknown_game(self, engine, registry, game_id):
        with pytest.raises(UnknownGameType):
            run_async(engine.start_mini_game(game_id, SCOPE, host_id=99))
        assert len(registry) == 0

    def test_scope_conflict(self, engine, registry):
        async def scenario():
            await engine.start_mini_game("lootbox", SCOPE, host_id=99)
            try:
                with pytest.raises(ConflictError):
                    await engine.start_mini_game("airdrop", SCOPE, host_id=98)
                await engine.start_mini_game("airdrop", Scope(guild_id=1, channel_id=11), host_id=98)
            finally:
                await engine.shutdown()

        run_async(scenario())
        assert len(registry) == 2

    def test_persistence_failure_rolls_back(self, engine, registry, ports):
        ports.persistence.save_session_record.side_effect = RuntimeError("db down")
        with pytest.raises(DependencyError):
            run_async(engine.start_mini_game("lootbox", SCOPE, host_id=99))
        assert len(registry) == 0
        assert engine.pending_timers == 0

    def test_catalog(self, engine):
        ids = [d.id for d in engine.list_mini_game_definitions()]
        assert ids[:6] == [
            "reaction_test", "typing_race", "math_challenge",
            "memory_game", "lootbox", "airdrop",
        ]


class TestPlay:
    def test_lootbox_round(self, engine, registry, ports, challenges):
        async def scenario():
            session = await engine.start_mini_game("lootbox", SCOPE, host_id=99)
            for uid in (1, 2, 3, 4):
                played = await engine.play(session.id, uid, f"user{uid}", "open", uid)
                assert played.outcome.accepted
                assert played.finished is None

            rejected = await engine.play(session.id, 6, "user6", "open", 1)
            assert rejected.outcome.reason == "box_already_opened"
            assert rejected.participant is None
            assert 6 not in session.participants

            last = await engine.play(session.id, 5, "user5", "open", 5)
            with pytest.raises(NotFoundError):
                await engine.play(session.id, 6, "user6", "open", 1)
            await engine.shutdown()
            return session, last

        session, last = run_async(scenario())
        result = last.finished
        assert result is not None
        assert not session.active
        assert len(registry) == 0

        standings = result.standings
        assert {s.user_id for s in standings} == {1, 2, 3, 4, 5}
        scores = [s.score for s in standings]
        assert scores == sorted(scores, reverse=True)
        # top half of five is three players, each +25%
        assert [(s.xp, s.coins) for s in standings] == [(25, 18)] * 3 + [(20, 15)] * 2

        assert challenges.update_challenge_progress.await_count == 5
        challenges.update_challenge_progress.assert_any_await(
            standings[0].user_id, RequirementType.MINI_GAME_WINS, 1, guild_id=1
        )
        won_flags = [c.args[4] for c in ports.ranking.record_mini_game_result.await_args_list]
        assert won_flags == [True, False, False, False, False]

    def test_airdrop_winner_gets_badge(self, engine, ports, clock):
        async def scenario():
            session = await engine.start_mini_game("airdrop", SCOPE, host_id=99)
            early = await engine.play(session.id, 1, "alice", "claim")
            assert early.outcome.reason == "not_dropped"
            clock.advance(16)
            won = await engine.play(session.id, 2, "bob", "claim")
            await engine.shutdown()
            return won

        won = run_async(scenario())
        assert won.outcome.points == 100
        result = won.finished
        assert [s.user_id for s in result.standings] == [2]
        assert result.winner.badges == ["airdrop_hunter"]
        assert (result.winner.xp, result.winner.coins) == (30, 20)
        ports.rewards.grant_badge.assert_awaited_once_with(2, "airdrop_hunter")
        ports.ranking.record_mini_game_result.assert_awaited_once_with(SCOPE, 2, "airdrop", 100, True)

    def test_join_without_playing(self, engine):
        async def scenario():
            session = await engine.start_mini_game("typing_race", SCOPE, host_id=99)
            first = engine.join_mini_game(session.id, 1, "alice")
            again = engine.join_mini_game(session.id, 1, "alice")
            result = await engine.end_mini_game(session.id)
            await engine.shutdown()
            return first, again, result

        first, again, result = run_async(scenario())
        assert first is again
        standing = result.standings[0]
        assert standing.score == 0
        assert standing.badges == []
        assert result.winner is None


class TestEnd:
    def test_end_is_idempotent(self, engine, ports):
        async def scenario():
            session = await engine.start_mini_game("lootbox", SCOPE, host_id=99)
            await engine.play(session.id, 1, "alice", "open", 1)
            first = await engine.end_mini_game(session.id)
            second = await engine.end_mini_game(session.id)
            await engine.shutdown()
            return first, second

        first, second = run_async(scenario())
        assert first is not None
        assert second is None
        assert ports.rewards.grant_experience.await_count == 1
        ports.persistence.close_session_record.assert_awaited_once()

    def test_timer_ends_session(self, engine, registry):
        ended = []

        async def listener(session, result):
            ended.append((session.id, result))

        engine.add_end_listener(listener)

        async def scenario():
            session = await engine.start_mini_game("flash_drop", SCOPE, host_id=99)
            await asyncio.sleep(0.05)
            return session

        session = run_async(scenario())
        assert len(ended) == 1
        assert ended[0][0] == session.id
        assert ended[0][1].standings == []
        assert not session.active
        assert len(registry) == 0
        assert engine.pending_timers == 0

    def test_timer_counts_from_start_despite_slow_persistence(
        self, engine, registry, ports, clock
    ):
        async def slow_save(session):
            clock.advance(seconds=0.4)
            await asyncio.sleep(0.4)

        ports.persistence.save_session_record.side_effect = slow_save

        async def scenario():
            session = await engine.start_mini_game("quick_loot", SCOPE, host_id=99)
            await engine.play(session.id, 1, "alice", "open", 1)
            await asyncio.sleep(0.8)
            clock.advance(seconds=0.8)
            swept = registry.cleanup(clock())
            await engine.shutdown()
            return session, swept

        session, swept = run_async(scenario())
        assert clock() > session.ends_at
        assert swept == []
        assert not session.active
        assert ports.rewards.grant_experience.await_count == 1
        ports.persistence.close_session_record.assert_awaited_once()

    def test_listener_failure_is_logged(self, engine):
        engine.add_end_listener(AsyncMock(side_effect=RuntimeError("discord down")))
        calls = []

        async def second(session, result):
            calls.append(result)

        engine.add_end_listener(second)

        async def scenario():
            session = await engine.start_mini_game("lootbox", SCOPE, host_id=99)
            result = await engine.end_mini_game(session.id)
            await engine.shutdown()
            return result

        result = run_async(scenario())
        assert calls == [result]

    def test_payout_failure_is_isolated(self, engine, ports):
        ports.rewards.grant_currency.side_effect = RuntimeError("ledger down")

        async def scenario():
            session = await engine.start_mini_game("lootbox", SCOPE, host_id=99)
            await engine.play(session.id, 1, "alice", "open", 1)
            await engine.play(session.id, 2, "bob", "open", 2)
            result = await engine.end_mini_game(session.id)
            await engine.shutdown()
            return result

        result = run_async(scenario())
        assert all(s.reward_error == "ledger down" for s in result.standings)
        ports.persistence.close_session_record.assert_awaited_once()

    def test_shutdown_cancels_timers(self, engine, registry):
        async def scenario():
            await engine.start_mini_game("memory_game", SCOPE, host_id=99)
            await engine.start_mini_game("airdrop", Scope(guild_id=1, channel_id=11), host_id=99)
            assert engine.pending_timers == 2
            await engine.shutdown()

        run_async(scenario())
        assert engine.pending_timers == 0
        # cancelling timers does not settle sessions
        assert len(registry) == 2


class TestRecordedCalls:
    def test_grants_use_display_name(self, engine, ports):
        async def scenario():
            session = await engine.start_mini_game("lootbox", SCOPE, host_id=99)
            await engine.play(session.id, 7, "gina", "open", 3)
            await engine.end_mini_game(session.id)
            await engine.shutdown()

        run_async(scenario())
        ports.rewards.grant_experience.assert_has_awaits([call(7, 20, display_name="gina")])
        ports.rewards.grant_currency.assert_has_awaits([call(7, 15, display_name="gina")])
