"""
playhall.bot.cogs.challenges — Challenge Commands & Activity Listeners
=======================================================================

Commands:
- /challenges        — active challenges with your progress
- /claim             — claim rewards for a completed challenge
- /challenge-create  — admin: create a special challenge
- /leaderboard       — top players by combined game score

Listeners feed ``messages`` and ``voice_minutes`` progress into the
Challenge Engine.
"""

from __future__ import annotations

import logging
import time
from datetime import timedelta
from typing import TYPE_CHECKING

import discord
from discord import app_commands
from discord.ext import commands

from playhall.bot.embeds import challenges_embed, error_embed
from playhall.constants import RANK_BADGES
from playhall.database.engine import run_db
from playhall.engine.challenges import Category, PeriodKind, RequirementType
from playhall.engine.sessions import utcnow
from playhall.errors import GameError
from playhall.services.ranking_service import get_leaderboard

if TYPE_CHECKING:
    from playhall.bot.core import PlayhallBot

logger = logging.getLogger(__name__)


def is_admin():
    """Decorator that checks if the user has the configured admin role."""
    async def predicate(interaction: discord.Interaction) -> bool:
        bot: PlayhallBot = interaction.client  # type: ignore[assignment]
        if not interaction.user or not hasattr(interaction.user, "roles"):
            return False
        return any(role.id == bot.cfg.admin_role_id for role in interaction.user.roles)
    return app_commands.check(predicate)


class Challenges(commands.Cog, name="Challenges"):
    """Daily / weekly / monthly challenges and activity tracking."""

    def __init__(self, bot: PlayhallBot) -> None:
        self.bot = bot
        # user id → monotonic time they joined voice
        self._voice_joined: dict[int, float] = {}

    # -------------------------------------------------------------------
    # Listeners
    # -------------------------------------------------------------------
    @commands.Cog.listener()
    async def on_message(self, message: discord.Message) -> None:
        if message.author.bot or message.guild is None:
            return
        await self._track(message.author, RequirementType.MESSAGES, 1, message.guild.id)

    @commands.Cog.listener()
    async def on_voice_state_update(
        self,
        member: discord.Member,
        before: discord.VoiceState,
        after: discord.VoiceState,
    ) -> None:
        if member.bot:
            return
        if before.channel is None and after.channel is not None:
            self._voice_joined[member.id] = time.monotonic()
            return
        if before.channel is not None and after.channel is None:
            joined = self._voice_joined.pop(member.id, None)
            if joined is None:
                return
            minutes = int((time.monotonic() - joined) // 60)
            if minutes > 0:
                await self._track(member, RequirementType.VOICE_MINUTES, minutes, member.guild.id)

    async def _track(
        self, member: discord.abc.User, rtype: RequirementType, amount: int, guild_id: int
    ) -> None:
        """Feed progress and announce challenges this update completed."""
        hub = self.bot.hub
        done_before = {
            p.challenge_id for _, p in hub.get_user_challenge_progress(member.id) if p.completed
        }
        try:
            touched = await hub.update_challenge_progress(member.id, rtype, amount, guild_id)
        except GameError:
            logger.exception("Progress update failed", extra={"requirement": str(rtype)})
            return

        for progress in touched:
            if not progress.completed or progress.challenge_id in done_before:
                continue
            challenge = hub.challenges.get_challenge(progress.challenge_id)
            if challenge is None:
                continue
            await self.bot.announce(discord.Embed(
                title="\U0001f3af Challenge Complete!",
                description=(
                    f"<@{member.id}> completed **{challenge.name}**!\n"
                    f"Use `/claim {challenge.id}` to collect the reward."
                ),
                color=discord.Color.green(),
            ))

    # -------------------------------------------------------------------
    # /challenges
    # -------------------------------------------------------------------
    @commands.hybrid_command(  # type: ignore[arg-type]
        name="challenges",
        description="Show active challenges and your progress.",
    )
    async def challenges(self, ctx: commands.Context) -> None:
        guild_id = ctx.guild.id if ctx.guild else None
        active = self.bot.hub.list_active_challenges(guild_id)
        mine = {c.id: p for c, p in self.bot.hub.get_user_challenge_progress(ctx.author.id)}
        await ctx.send(embed=challenges_embed(active, mine), ephemeral=True)

    # -------------------------------------------------------------------
    # /claim
    # -------------------------------------------------------------------
    @commands.hybrid_command(  # type: ignore[arg-type]
        name="claim",
        description="Claim the reward for a completed challenge.",
    )
    @app_commands.describe(challenge_id="The challenge id shown in /challenges")
    async def claim(self, ctx: commands.Context, challenge_id: str) -> None:
        try:
            rewards = await self.bot.hub.claim_challenge_rewards(ctx.author.id, challenge_id)
        except GameError as exc:
            await ctx.send(embed=error_embed(exc), ephemeral=True)
            return
        text = f"\U0001f381 Claimed! +{rewards.xp} XP, +{rewards.coins} \U0001fa99"
        if rewards.badges:
            text += "\nBadges: " + ", ".join(rewards.badges)
        await ctx.send(text, ephemeral=True)

    # -------------------------------------------------------------------
    # /challenge-create (admin)
    # -------------------------------------------------------------------
    @app_commands.command(name="challenge-create", description="Create a custom challenge.")
    @app_commands.describe(
        name="Challenge name",
        description="What members need to do",
        requirement="What to count",
        target="How many (1–10000)",
        days="How long it runs",
        xp="XP reward",
        coins="Coin reward",
        category="Challenge category",
    )
    @app_commands.choices(
        requirement=[app_commands.Choice(name=r.value, value=r.value) for r in RequirementType],
        category=[app_commands.Choice(name=c.value, value=c.value) for c in Category],
    )
    @is_admin()
    async def challenge_create(
        self,
        interaction: discord.Interaction,
        name: str,
        description: str,
        requirement: str,
        target: int,
        days: int = 7,
        xp: int = 100,
        coins: int = 50,
        category: str = Category.PARTICIPATION.value,
    ) -> None:
        start = utcnow()
        data = {
            "name": name,
            "description": description,
            "period": PeriodKind.SPECIAL,
            "category": category,
            "requirements": [{"type": requirement, "target": target}],
            "rewards": {"xp": xp, "coins": coins},
            "start_date": start,
            "end_date": start + timedelta(days=days),
        }
        try:
            challenge = await self.bot.hub.create_challenge(data, interaction.guild_id or 0)
        except GameError as exc:
            await interaction.response.send_message(embed=error_embed(exc), ephemeral=True)
            return
        await interaction.response.send_message(
            f"✅ Created **{challenge.name}** (`{challenge.id}`).", ephemeral=True
        )
        await self.bot.announce(challenges_embed([challenge]))

    # -------------------------------------------------------------------
    # /leaderboard
    # -------------------------------------------------------------------
    @commands.hybrid_command(  # type: ignore[arg-type]
        name="leaderboard",
        description="Top players by quiz + mini-game score.",
    )
    async def leaderboard(self, ctx: commands.Context) -> None:
        guild_id = ctx.guild.id if ctx.guild else 0
        rows = await run_db(get_leaderboard, self.bot.engine, guild_id, 10)
        if not rows:
            await ctx.send("No games played yet!", ephemeral=True)
            return
        lines = [
            f"{RANK_BADGES[r.rank - 1] if r.rank <= len(RANK_BADGES) else f'`#{r.rank}`'} "
            f"**{r.display_name}** — {r.total_score} pts • {r.mini_game_wins} wins"
            for r in rows
        ]
        embed = discord.Embed(
            title=f"\U0001f3c6 {self.bot.cfg.community_name} Leaderboard",
            description="\n".join(lines),
            color=discord.Color.gold(),
        )
        await ctx.send(embed=embed)


async def setup(bot: PlayhallBot) -> None:
    await bot.add_cog(Challenges(bot))
