"""
playhall.bot.core — Bot Instance & Cog Loader
==============================================

:class:`PlayhallBot` subclasses ``commands.Bot`` and carries the shared
state every cog needs:

- ``bot.cfg`` — parsed :class:`PlayhallConfig`
- ``bot.engine`` — SQLAlchemy engine
- ``bot.hub`` — the :class:`GameHub` with the live session registry

On startup it loads the cogs in :data:`EXTENSIONS`, bootstraps the
challenge index from the database and syncs the slash-command tree.
On shutdown it settles every live session before disconnecting.
"""

from __future__ import annotations

import logging
import os

import discord
from discord.ext import commands
from sqlalchemy import Engine

from playhall.config import PlayhallConfig
from playhall.services.game_hub import GameHub

logger = logging.getLogger(__name__)

# Cog modules to load on startup.
EXTENSIONS: list[str] = [
    "playhall.bot.cogs.quiz",
    "playhall.bot.cogs.minigames",
    "playhall.bot.cogs.challenges",
    "playhall.bot.cogs.tasks",
]


class PlayhallBot(commands.Bot):
    """Custom Bot subclass that carries project-wide state."""

    def __init__(self, cfg: PlayhallConfig, engine: Engine, hub: GameHub | None = None) -> None:
        intents = discord.Intents.default()
        intents.message_content = True    # Privileged: prefix commands
        intents.members = True            # Privileged: display names
        intents.presences = False

        super().__init__(
            command_prefix=cfg.bot_prefix,
            intents=intents,
            description=f"{cfg.community_name} — quizzes, mini-games & challenges",
        )

        self.cfg = cfg
        self.engine = engine
        self.hub = hub or GameHub.from_engine(engine, cfg)

    # -----------------------------------------------------------------------
    # Lifecycle hooks
    # -----------------------------------------------------------------------
    async def setup_hook(self) -> None:
        """Load cogs and the persisted challenge index before connecting."""
        for ext in EXTENSIONS:
            try:
                await self.load_extension(ext)
                logger.info("Loaded extension: %s", ext)
            except Exception as exc:
                logger.error("Failed to load extension %s: %s", ext, exc)

        try:
            await self.hub.load()
        except Exception:
            logger.exception("Challenge bootstrap failed — starting with an empty index")

    async def on_ready(self) -> None:
        assert self.user is not None
        logger.info("Logged in as %s (ID: %s)", self.user.name, self.user.id)

        dev_guild_id = os.getenv("DEV_GUILD_ID")
        if dev_guild_id:
            guild = discord.Object(id=int(dev_guild_id))
            self.tree.copy_global_to(guild=guild)
            synced = await self.tree.sync(guild=guild)
            logger.info("Synced %d commands to dev guild %s", len(synced), dev_guild_id)
        else:
            synced = await self.tree.sync()
            logger.info("Synced %d commands globally", len(synced))

    async def close(self) -> None:
        """Graceful shutdown — settle live sessions, then disconnect."""
        logger.info("Bot shutting down…")
        try:
            await self.hub.shutdown()
        except Exception:
            logger.exception("Error while settling live sessions")
        await super().close()

    async def announce(self, embed: discord.Embed) -> None:
        """Post *embed* to the configured announce channel, if any."""
        channel_id = self.cfg.announce_channel_id
        if not channel_id:
            return
        channel = self.get_channel(channel_id)
        if channel is None or not hasattr(channel, "send"):
            logger.warning("Announce channel %d not found", channel_id)
            return
        try:
            await channel.send(embed=embed)
        except discord.HTTPException:
            logger.exception("Failed to post announcement to %d", channel_id)
