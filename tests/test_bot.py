"""
tests/test_bot.py — Bot Layer Tests
====================================
Embed builders, answer parsing and the cog listeners that bridge Discord
events into the engines.  The bot is a MagicMock carrying a real
:class:`GameHub` wired to AsyncMock ports.
"""

from __future__ import annotations

import asyncio
from datetime import timedelta
from unittest.mock import AsyncMock, MagicMock

import discord
import pytest

from playhall.bot.cogs.challenges import Challenges
from playhall.bot.cogs.minigames import ACTIONS, REJECTIONS, MiniGames
from playhall.bot.cogs.quiz import parse_option
from playhall.bot.embeds import (
    challenges_embed,
    definitions_embed,
    error_embed,
    loot_line,
    question_embed,
    standings_embed,
)
from playhall.engine.challenges import ChallengeProgress
from playhall.engine.minigames import DEFAULT_MINI_GAMES, GAME_TYPES
from playhall.engine.questions import DEFAULT_QUESTIONS
from playhall.engine.registry import Scope, SessionKind
from playhall.engine.sessions import SessionResult, Standing
from playhall.errors import ConflictError
from playhall.services.game_hub import GameHub


def run_async(coro):
    """Run an async coroutine in a new event loop."""
    return asyncio.get_event_loop_policy().new_event_loop().run_until_complete(coro)


def _result(*scores: int) -> SessionResult:
    return SessionResult(
        session_id="quiz_abc",
        kind=SessionKind.QUIZ,
        scope=Scope(1, 10),
        standings=[
            Standing(user_id=i, display_name=f"user{i}", rank=i, score=s, xp=10, coins=5,
                     badges=["quiz_perfect"] if i == 1 else [])
            for i, s in enumerate(scores, start=1)
        ],
    )


@pytest.fixture
def bot(ports, clock):
    mock_bot = MagicMock()
    mock_bot.hub = GameHub(ports.rewards, ports.ranking, ports.persistence, clock=clock)
    mock_bot.cfg.admin_role_id = 777
    mock_bot.announce = AsyncMock()
    return mock_bot


# ---------------------------------------------------------------------------
# Parsing & embeds
# ---------------------------------------------------------------------------
class TestParseOption:
    @pytest.mark.parametrize("raw,expected", [
        ("A", 0), ("b", 1), (" d ", 3), ("1", 0), ("4", 3), ("z", None), ("", None),
    ])
    def test_parse(self, raw, expected):
        assert parse_option(raw) == expected


class TestEmbeds:
    def test_question_embed_lists_options(self):
        question = DEFAULT_QUESTIONS[0]
        embed = question_embed(question, 1, 5)
        assert embed.title.endswith("1/5")
        for option in question.options:
            assert option in embed.description
        assert "10 pts" in embed.footer.text

    def test_standings_medals_and_badges(self):
        embed = standings_embed("Results", _result(40, 30, 20, 10))
        lines = embed.description.splitlines()
        assert len(lines) == 4
        assert lines[0].startswith("\U0001f947")
        assert "quiz_perfect" in lines[0]
        assert lines[3].startswith("`#4`")

    def test_empty_standings(self):
        assert "Nobody" in standings_embed("Results", _result()).description

    def test_definitions_embed(self):
        embed = definitions_embed(list(DEFAULT_MINI_GAMES))
        assert len(embed.fields) == len(DEFAULT_MINI_GAMES)

    def test_error_embed(self):
        embed = error_embed(ConflictError("A quiz is already running in this channel."))
        assert embed.description == "A quiz is already running in this channel."
        assert embed.color == discord.Color.red()

    def test_loot_line(self):
        assert loot_line("Groza", "epic") == "\U0001f7e3 **Groza** (epic)"

    def test_challenges_embed_shows_progress(self, bot):
        hub = bot.hub
        report = run_async(hub.run_scheduled_tick(1))
        daily = next(c for c in report.created if c.period == "daily")
        rtype = daily.requirements[0].type
        progress = ChallengeProgress(user_id=5, challenge_id=daily.id, values={str(rtype): 1})

        embed = challenges_embed(hub.list_active_challenges(1), {daily.id: progress})
        field = next(f for f in embed.fields if daily.name in f.name)
        assert f"{rtype}: 1/" in field.value
        assert daily.id in field.value

    def test_no_challenges(self):
        assert "No active" in challenges_embed([]).description


class TestGameCatalog:
    def test_every_game_type_has_an_action_hint(self):
        assert set(ACTIONS) == set(GAME_TYPES)

    def test_rejection_messages_are_known_reasons(self):
        assert "box_already_opened" in REJECTIONS
        assert "not_dropped" in REJECTIONS


# ---------------------------------------------------------------------------
# Listeners
# ---------------------------------------------------------------------------
def _message(user_id: int, guild_id: int = 1, is_bot: bool = False) -> MagicMock:
    message = MagicMock()
    message.author.id = user_id
    message.author.bot = is_bot
    message.guild.id = guild_id
    return message


class TestMessageTracking:
    def _hub_with_socializer(self, bot, clock):
        return run_async(bot.hub.create_challenge({
            "name": "Socializer",
            "description": "Send 3 messages.",
            "period": "special",
            "category": "social",
            "requirements": [{"type": "messages", "target": 3}],
            "rewards": {"xp": 75, "coins": 30},
            "startDate": clock.now,
            "endDate": clock.now + timedelta(days=1),
        }, 1))

    def test_completion_announced_once(self, bot, clock):
        challenge = self._hub_with_socializer(bot, clock)
        cog = Challenges(bot)

        for _ in range(5):
            run_async(cog.on_message(_message(42)))

        bot.announce.assert_awaited_once()
        embed = bot.announce.await_args.args[0]
        assert challenge.id in embed.description
        (_, progress), = bot.hub.get_user_challenge_progress(42)
        assert progress.values == {"messages": 5}

    def test_bots_and_dms_ignored(self, bot, clock):
        self._hub_with_socializer(bot, clock)
        cog = Challenges(bot)

        run_async(cog.on_message(_message(42, is_bot=True)))
        dm = _message(43)
        dm.guild = None
        run_async(cog.on_message(dm))

        assert bot.hub.get_user_challenge_progress(42) == []
        assert bot.hub.get_user_challenge_progress(43) == []


class TestGameEndPosting:
    def test_results_posted_to_session_channel(self, bot):
        channel = MagicMock()
        channel.send = AsyncMock()
        bot.get_channel.return_value = channel
        MiniGames(bot)
        hub = bot.hub

        async def scenario():
            session = await hub.start_mini_game("lootbox", Scope(1, 10), 99)
            await hub.play(session.id, 1, "alice", "open", 1)
            await hub.end_mini_game(session.id)
            await hub.shutdown()

        run_async(scenario())
        bot.get_channel.assert_called_with(10)
        embed = channel.send.await_args.kwargs["embed"]
        assert "Virtual Lootbox" in embed.title
        assert "alice" in embed.description
