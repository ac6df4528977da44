"""
playhall.bot.cogs.quiz — Trivia Quiz Commands
==============================================

Hybrid commands:
- /quiz-start — open a quiz in this channel (join window, then questions)
- /quiz-join  — join the open quiz
- /quiz-answer — answer the current question (A–D or 1–4)
- /quiz-end   — end early (host or admin)

The cog drives the question cursor: one background task per quiz posts
each question, waits ``time_per_question`` seconds, then advances.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

import discord
from discord import app_commands
from discord.ext import commands

from playhall.bot.embeds import OPTION_LETTERS, error_embed, question_embed, standings_embed
from playhall.engine.registry import Scope
from playhall.engine.sessions import QUIZ_JOIN_WINDOW
from playhall.errors import GameError

if TYPE_CHECKING:
    from playhall.bot.core import PlayhallBot
    from playhall.engine.sessions import QuizSession

logger = logging.getLogger(__name__)

JOIN_WINDOW_SECONDS = int(QUIZ_JOIN_WINDOW.total_seconds())


def parse_option(raw: str) -> int | None:
    """``"B"`` / ``"b"`` / ``"2"`` → 1.  None if unparseable."""
    raw = raw.strip().upper()
    if raw in OPTION_LETTERS:
        return OPTION_LETTERS.index(raw)
    if raw.isdigit():
        return int(raw) - 1
    return None


class Quiz(commands.Cog, name="Quiz"):
    """Channel-scoped trivia quizzes."""

    def __init__(self, bot: PlayhallBot) -> None:
        self.bot = bot
        # session id → runner task
        self._runners: dict[str, asyncio.Task] = {}

    async def cog_unload(self) -> None:
        for task in self._runners.values():
            task.cancel()
        self._runners.clear()

    @staticmethod
    def _scope(ctx: commands.Context) -> Scope:
        return Scope(guild_id=ctx.guild.id if ctx.guild else 0, channel_id=ctx.channel.id)

    def _is_admin(self, member: discord.abc.User) -> bool:
        roles = getattr(member, "roles", [])
        return any(role.id == self.bot.cfg.admin_role_id for role in roles)

    # -------------------------------------------------------------------
    # Runner
    # -------------------------------------------------------------------
    async def _run(self, session: QuizSession, channel: discord.abc.Messageable) -> None:
        hub = self.bot.hub
        try:
            await asyncio.sleep(JOIN_WINDOW_SECONDS)
            total = len(session.questions)
            question = hub.current_question(session.id)
            while question is not None and session.active:
                await channel.send(
                    embed=question_embed(question, session.current_index + 1, total)
                )
                await asyncio.sleep(session.settings.time_per_question)
                if session.settings.show_correct_answer and session.active:
                    letter = OPTION_LETTERS[question.correct_index]
                    await channel.send(
                        f"✅ The answer was **{letter}. {question.correct_option}**"
                    )
                question = hub.advance_question(session.id)

            result = await hub.end_quiz(session.id)
            if result is not None:
                await channel.send(embed=standings_embed("\U0001f3c6 Quiz Results", result))
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("Quiz runner crashed", extra={"session": session.id})
            await hub.end_quiz(session.id)
        finally:
            self._runners.pop(session.id, None)

    # -------------------------------------------------------------------
    # /quiz-start
    # -------------------------------------------------------------------
    @commands.hybrid_command(  # type: ignore[arg-type]
        name="quiz-start",
        description="Start a trivia quiz in this channel.",
    )
    @app_commands.describe(
        questions="Number of questions (1–50)",
        seconds="Seconds per question (10–300)",
        category="Question category",
        difficulty="Question difficulty",
    )
    @app_commands.choices(
        category=[
            app_commands.Choice(name=c.title(), value=c)
            for c in ("mixed", "pubg", "general", "gaming", "esports")
        ],
        difficulty=[
            app_commands.Choice(name=d.title(), value=d)
            for d in ("mixed", "easy", "medium", "hard")
        ],
    )
    async def quiz_start(
        self,
        ctx: commands.Context,
        questions: int = 10,
        seconds: int = 30,
        category: str = "mixed",
        difficulty: str = "mixed",
    ) -> None:
        settings = {
            "question_count": questions,
            "time_per_question": seconds,
            "category": category,
            "difficulty": difficulty,
        }
        try:
            session = await self.bot.hub.start_quiz(self._scope(ctx), ctx.author.id, settings)
        except GameError as exc:
            await ctx.send(embed=error_embed(exc), ephemeral=True)
            return

        self.bot.hub.join_quiz(session.id, ctx.author.id, ctx.author.display_name)
        embed = discord.Embed(
            title="\U0001f9e0 Quiz starting!",
            description=(
                f"**{len(session.questions)}** questions • "
                f"**{session.settings.time_per_question}s** each • "
                f"{session.settings.category} / {session.settings.difficulty}\n\n"
                f"Use `/quiz-join` in the next {JOIN_WINDOW_SECONDS} seconds!"
            ),
            color=discord.Color.blurple(),
        )
        embed.set_footer(text=f"Hosted by {ctx.author.display_name}")
        await ctx.send(embed=embed)
        self._runners[session.id] = asyncio.create_task(
            self._run(session, ctx.channel), name=f"quiz-runner:{session.id}"
        )

    # -------------------------------------------------------------------
    # /quiz-join
    # -------------------------------------------------------------------
    @commands.hybrid_command(  # type: ignore[arg-type]
        name="quiz-join",
        description="Join the quiz running in this channel.",
    )
    async def quiz_join(self, ctx: commands.Context) -> None:
        session = self.bot.hub.quizzes.session_for_scope(self._scope(ctx))
        if session is None:
            await ctx.send("There's no quiz in this channel.", ephemeral=True)
            return
        try:
            self.bot.hub.join_quiz(session.id, ctx.author.id, ctx.author.display_name)
        except GameError as exc:
            await ctx.send(embed=error_embed(exc), ephemeral=True)
            return
        await ctx.send(
            f"✅ **{ctx.author.display_name}** joined "
            f"({len(session.participants)} player(s))."
        )

    # -------------------------------------------------------------------
    # /quiz-answer
    # -------------------------------------------------------------------
    @commands.hybrid_command(  # type: ignore[arg-type]
        name="quiz-answer",
        description="Answer the current quiz question.",
    )
    @app_commands.describe(option="A, B, C, D (or 1–4)")
    async def quiz_answer(self, ctx: commands.Context, option: str) -> None:
        session = self.bot.hub.quizzes.session_for_scope(self._scope(ctx))
        index = parse_option(option)
        if session is None or index is None:
            await ctx.send("That answer doesn't count.", ephemeral=True)
            return

        result = self.bot.hub.submit_answer(session.id, ctx.author.id, index)
        if result is None:
            await ctx.send(
                "That answer doesn't count (not joined, already answered, or invalid option).",
                ephemeral=True,
            )
        elif result.correct:
            await ctx.send(
                f"✅ Correct! +{result.points_awarded} pts "
                f"(streak \U0001f525 {result.new_streak})",
                ephemeral=True,
            )
        else:
            await ctx.send("❌ Wrong answer — streak reset.", ephemeral=True)

    # -------------------------------------------------------------------
    # /quiz-end
    # -------------------------------------------------------------------
    @commands.hybrid_command(  # type: ignore[arg-type]
        name="quiz-end",
        description="End the quiz in this channel now.",
    )
    async def quiz_end(self, ctx: commands.Context) -> None:
        session = self.bot.hub.quizzes.session_for_scope(self._scope(ctx))
        if session is None:
            await ctx.send("There's no quiz in this channel.", ephemeral=True)
            return
        if ctx.author.id != session.host_id and not self._is_admin(ctx.author):
            await ctx.send("Only the host or an admin can end the quiz.", ephemeral=True)
            return

        runner = self._runners.pop(session.id, None)
        if runner is not None:
            runner.cancel()
        result = await self.bot.hub.end_quiz(session.id)
        if result is None:
            await ctx.send("That quiz already ended.", ephemeral=True)
            return
        await ctx.send(embed=standings_embed("\U0001f3c6 Quiz Results", result))


async def setup(bot: PlayhallBot) -> None:
    await bot.add_cog(Quiz(bot))
