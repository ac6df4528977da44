"""
playhall.bot.cogs.minigames — Mini-Game Commands
=================================================

Hybrid commands:
- /games       — list available mini-games
- /game-start  — start a mini-game in this channel
- /game-join   — join without playing yet
- /play        — send an action to the running game
- /game-status — current public state
- /game-end    — end early (host or admin)

Results are posted by an end listener registered on the engine, so
games ended by their timer are announced too.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import discord
from discord import app_commands
from discord.ext import commands

from playhall.bot.embeds import definitions_embed, error_embed, loot_line, standings_embed
from playhall.engine.registry import Scope
from playhall.errors import GameError

if TYPE_CHECKING:
    from playhall.bot.core import PlayhallBot
    from playhall.engine.sessions import GameSession, SessionResult

logger = logging.getLogger(__name__)

# game type → (action, hint shown at start)
ACTIONS: dict[str, tuple[str, str]] = {
    "reaction": ("press", "Wait for the signal, then `/play press`!"),
    "typing": ("submit", "Type the phrase exactly with `/play submit <text>`."),
    "math": ("answer", "Solve with `/play answer <number>`."),
    "memory": ("repeat", "Repeat the sequence with `/play repeat <symbols>`."),
    "lootbox": ("open", "Open a box with `/play open <number>`."),
    "airdrop": ("claim", "When the crate lands, `/play claim` it first!"),
}

REJECTIONS: dict[str, str] = {
    "too_early": "⏳ Too early! Wait for the signal.",
    "closed": "⌛ Too late — the window closed.",
    "already_pressed": "You already reacted.",
    "already_finished": "You already finished.",
    "mismatch": "That doesn't match the phrase exactly.",
    "finished": "All problems are done.",
    "not_a_number": "Answers must be whole numbers.",
    "wrong_answer": "❌ Not quite.",
    "eliminated": "You've been eliminated.",
    "already_submitted": "You already answered this round.",
    "invalid_box": "There's no box with that number.",
    "box_already_opened": "That box was already opened.",
    "not_dropped": "The airdrop hasn't landed yet!",
    "already_claimed": "Someone already claimed the airdrop.",
    "unknown_action": "That action doesn't exist for this game.",
}


class MiniGames(commands.Cog, name="MiniGames"):
    """Short channel-scoped skill games."""

    def __init__(self, bot: PlayhallBot) -> None:
        self.bot = bot
        # session id → channel to post results in
        self._channels: dict[str, int] = {}
        bot.hub.mini_games.add_end_listener(self._on_game_end)

    @staticmethod
    def _scope(ctx: commands.Context) -> Scope:
        return Scope(guild_id=ctx.guild.id if ctx.guild else 0, channel_id=ctx.channel.id)

    def _is_admin(self, member: discord.abc.User) -> bool:
        roles = getattr(member, "roles", [])
        return any(role.id == self.bot.cfg.admin_role_id for role in roles)

    async def _on_game_end(self, session: GameSession, result: SessionResult) -> None:
        channel_id = self._channels.pop(session.id, session.scope.channel_id)
        channel = self.bot.get_channel(channel_id)
        if channel is None or not hasattr(channel, "send"):
            logger.warning("Channel %d unavailable for %s results", channel_id, session.id)
            return
        name = self.bot.hub.mini_games.definition_for(session).name
        await channel.send(embed=standings_embed(f"\U0001f3c1 {name} — Results", result))

    # -------------------------------------------------------------------
    # /games
    # -------------------------------------------------------------------
    @commands.hybrid_command(  # type: ignore[arg-type]
        name="games",
        description="List the available mini-games.",
    )
    async def games(self, ctx: commands.Context) -> None:
        await ctx.send(
            embed=definitions_embed(self.bot.hub.list_mini_game_definitions()),
            ephemeral=True,
        )

    # -------------------------------------------------------------------
    # /game-start
    # -------------------------------------------------------------------
    @commands.hybrid_command(  # type: ignore[arg-type]
        name="game-start",
        description="Start a mini-game in this channel.",
    )
    @app_commands.describe(game="Mini-game id (see /games)")
    async def game_start(self, ctx: commands.Context, game: str) -> None:
        try:
            session = await self.bot.hub.start_mini_game(game, self._scope(ctx), ctx.author.id)
        except GameError as exc:
            await ctx.send(embed=error_embed(exc), ephemeral=True)
            return

        self._channels[session.id] = ctx.channel.id
        definition = self.bot.hub.mini_games.definition_for(session)
        _, hint = ACTIONS.get(session.game_type, ("", ""))
        view = self.bot.hub.mini_games.game_type_for(session).view(session, session.started_at)

        embed = discord.Embed(
            title=f"\U0001f3ae {definition.name}",
            description=f"{definition.description}\n\n{hint}",
            color=discord.Color.purple(),
        )
        if "phrase" in view:
            embed.add_field(name="Phrase", value=f"`{view['phrase']}`", inline=False)
        if view.get("problem"):
            embed.add_field(name="Problem 1", value=f"**{view['problem']} = ?**", inline=False)
        if view.get("sequence"):
            embed.add_field(name="Memorize", value=" ".join(view["sequence"]), inline=False)
        if "boxes" in view:
            embed.add_field(name="Boxes", value=" ".join("\U0001f4e6" * view["boxes"]), inline=False)
        embed.set_footer(text=f"Ends in {definition.duration}s")
        await ctx.send(embed=embed)

    # -------------------------------------------------------------------
    # /game-join
    # -------------------------------------------------------------------
    @commands.hybrid_command(  # type: ignore[arg-type]
        name="game-join",
        description="Join the mini-game running in this channel.",
    )
    async def game_join(self, ctx: commands.Context) -> None:
        session = self.bot.hub.mini_games.session_for_scope(self._scope(ctx))
        if session is None:
            await ctx.send("There's no mini-game in this channel.", ephemeral=True)
            return
        try:
            self.bot.hub.join_mini_game(session.id, ctx.author.id, ctx.author.display_name)
        except GameError as exc:
            await ctx.send(embed=error_embed(exc), ephemeral=True)
            return
        await ctx.send(f"✅ **{ctx.author.display_name}** is in!", ephemeral=True)

    # -------------------------------------------------------------------
    # /play
    # -------------------------------------------------------------------
    @commands.hybrid_command(  # type: ignore[arg-type]
        name="play",
        description="Act in the running mini-game.",
    )
    @app_commands.describe(
        action="press, submit, answer, repeat, open or claim",
        value="Your answer, phrase, sequence or box number",
    )
    async def play(self, ctx: commands.Context, action: str, *, value: str | None = None) -> None:
        session = self.bot.hub.mini_games.session_for_scope(self._scope(ctx))
        if session is None:
            await ctx.send("There's no mini-game in this channel.", ephemeral=True)
            return
        try:
            played = await self.bot.hub.play(
                session.id, ctx.author.id, ctx.author.display_name, action.lower(), value
            )
        except GameError as exc:
            await ctx.send(embed=error_embed(exc), ephemeral=True)
            return

        outcome = played.outcome
        if not outcome.accepted:
            await ctx.send(REJECTIONS.get(outcome.reason, "That didn't count."), ephemeral=True)
            return

        name = ctx.author.display_name
        if "item" in outcome.data:
            await ctx.send(
                f"\U0001f4e6 **{name}** opened box {outcome.data['box']}: "
                f"{loot_line(outcome.data['item'], outcome.data['rarity'])}"
            )
        elif outcome.reason == "winner":
            await ctx.send(f"\U0001f3c6 **{name}** got there first! (+{outcome.points})")
        elif outcome.reason == "claimed":
            await ctx.send(f"\U0001fa82 **{name}** claimed the airdrop!")
        elif outcome.reason == "wrong_sequence":
            await ctx.send(f"\U0001f4a5 **{name}** is out!")
        else:
            await ctx.send(f"✅ +{outcome.points} pts", ephemeral=True)

    # -------------------------------------------------------------------
    # /game-status
    # -------------------------------------------------------------------
    @commands.hybrid_command(  # type: ignore[arg-type]
        name="game-status",
        description="Show the state of the running mini-game.",
    )
    async def game_status(self, ctx: commands.Context) -> None:
        session = self.bot.hub.mini_games.session_for_scope(self._scope(ctx))
        if session is None:
            await ctx.send("There's no mini-game in this channel.", ephemeral=True)
            return
        view = self.bot.hub.mini_games.game_type_for(session).view(session, discord.utils.utcnow())
        lines = [f"**{key}**: {value}" for key, value in view.items() if value is not None]
        lines.append(f"**players**: {len(session.participants)}")
        await ctx.send("\n".join(lines), ephemeral=True)

    # -------------------------------------------------------------------
    # /game-end
    # -------------------------------------------------------------------
    @commands.hybrid_command(  # type: ignore[arg-type]
        name="game-end",
        description="End the mini-game in this channel now.",
    )
    async def game_end(self, ctx: commands.Context) -> None:
        session = self.bot.hub.mini_games.session_for_scope(self._scope(ctx))
        if session is None:
            await ctx.send("There's no mini-game in this channel.", ephemeral=True)
            return
        if ctx.author.id != session.host_id and not self._is_admin(ctx.author):
            await ctx.send("Only the host or an admin can end the game.", ephemeral=True)
            return
        if await self.bot.hub.end_mini_game(session.id) is None:
            await ctx.send("That game already ended.", ephemeral=True)
            return
        await ctx.send("\U0001f6d1 Game ended.", ephemeral=True)


async def setup(bot: PlayhallBot) -> None:
    await bot.add_cog(MiniGames(bot))
