"""
playhall.bot.cogs.tasks — Periodic Background Tasks
====================================================

Scheduled jobs that run on ``discord.ext.tasks`` loops:

- **Challenge scheduler** — hourly; expires finished challenges and
  creates the daily / weekly / monthly ones that are due.  Boundaries are
  re-evaluated on every tick, so a missed tick catches up on the next.
- **Registry cleanup** — every few minutes (``cleanup_interval_minutes``);
  drops sessions that outlived their end time or staleness window.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from discord.ext import commands, tasks

from playhall.bot.embeds import challenges_embed

if TYPE_CHECKING:
    from playhall.bot.core import PlayhallBot

logger = logging.getLogger(__name__)


class PeriodicTasks(commands.Cog):
    """Cog for scheduled background maintenance tasks."""

    def __init__(self, bot: PlayhallBot) -> None:
        self.bot = bot

    async def cog_load(self) -> None:
        """Start task loops when the cog is loaded."""
        self.cleanup_loop.change_interval(minutes=self.bot.cfg.cleanup_interval_minutes)
        self.scheduler_loop.start()
        self.cleanup_loop.start()

    async def cog_unload(self) -> None:
        """Cancel task loops on unload."""
        self.scheduler_loop.cancel()
        self.cleanup_loop.cancel()

    # -------------------------------------------------------------------
    # Challenge scheduler — runs every hour
    # -------------------------------------------------------------------
    @tasks.loop(hours=1)
    async def scheduler_loop(self):
        """Expire and create challenges for the primary guild."""
        try:
            report = await self.bot.hub.run_scheduled_tick(self.bot.cfg.guild_id)
        except Exception:
            logger.exception("Challenge scheduler tick failed", extra={"task": "scheduler"})
            return

        if report.created:
            logger.info(
                "Scheduler created %d challenge(s): %s",
                len(report.created), ", ".join(c.name for c in report.created),
            )
            await self.bot.announce(challenges_embed(report.created))

    @scheduler_loop.before_loop
    async def _wait_scheduler(self):
        await self.bot.wait_until_ready()

    # -------------------------------------------------------------------
    # Registry cleanup — every cleanup_interval_minutes
    # -------------------------------------------------------------------
    @tasks.loop(minutes=5)
    async def cleanup_loop(self):
        """Drop stale sessions from the live registry."""
        try:
            removed = self.bot.hub.cleanup()
        except Exception:
            logger.exception("Registry cleanup failed", extra={"task": "cleanup"})
            return
        if removed:
            logger.debug("Cleanup removed %d session(s)", len(removed))

    @cleanup_loop.before_loop
    async def _wait_cleanup(self):
        await self.bot.wait_until_ready()


async def setup(bot: PlayhallBot) -> None:
    await bot.add_cog(PeriodicTasks(bot))
