"""
playhall.bot.embeds — Discord embed builders
=============================================

All embed construction lives here so the cogs only supply engine
objects — no layout concerns in command handlers.
"""

from __future__ import annotations

import discord

from playhall.constants import RANK_BADGES, RARITY_EMOJI
from playhall.engine.challenges import Challenge, ChallengeProgress
from playhall.engine.minigames import MiniGameDefinition
from playhall.engine.questions import QuizQuestion
from playhall.engine.sessions import SessionResult
from playhall.errors import GameError

OPTION_LETTERS = ("A", "B", "C", "D", "E", "F")


def error_embed(exc: GameError) -> discord.Embed:
    return discord.Embed(
        title="❌ Can't do that",
        description=exc.message,
        color=discord.Color.red(),
    )


def question_embed(question: QuizQuestion, number: int, total: int) -> discord.Embed:
    options = "\n".join(
        f"**{OPTION_LETTERS[i]}.** {text}" for i, text in enumerate(question.options)
    )
    embed = discord.Embed(
        title=f"❓ Question {number}/{total}",
        description=f"{question.prompt}\n\n{options}",
        color=discord.Color.blurple(),
    )
    embed.set_footer(
        text=f"{question.category} • {question.difficulty} • {question.points} pts"
    )
    return embed


def standings_embed(title: str, result: SessionResult, limit: int = 10) -> discord.Embed:
    embed = discord.Embed(title=title, color=discord.Color.gold())
    if not result.standings:
        embed.description = "Nobody played this round."
        return embed

    lines = []
    for i, standing in enumerate(result.standings[:limit]):
        medal = RANK_BADGES[i] if i < len(RANK_BADGES) else f"`#{standing.rank}`"
        line = (
            f"{medal} **{standing.display_name}** — {standing.score} pts "
            f"(+{standing.xp} XP, +{standing.coins} \U0001fa99)"
        )
        if standing.badges:
            line += " \U0001f3c5 " + ", ".join(standing.badges)
        lines.append(line)
    embed.description = "\n".join(lines)
    return embed


def definitions_embed(definitions: list[MiniGameDefinition]) -> discord.Embed:
    embed = discord.Embed(title="\U0001f3ae Mini-Games", color=discord.Color.purple())
    for d in definitions:
        embed.add_field(
            name=f"{d.name} (`{d.id}`)",
            value=(
                f"{d.description}\n"
                f"⏱ {d.duration}s • {d.difficulty} • "
                f"+{d.rewards.xp} XP / +{d.rewards.coins} \U0001fa99"
            ),
            inline=False,
        )
    return embed


def loot_line(item: str, rarity: str) -> str:
    return f"{RARITY_EMOJI.get(rarity, '')} **{item}** ({rarity})"


def challenges_embed(
    challenges: list[Challenge],
    progress: dict[str, ChallengeProgress] | None = None,
) -> discord.Embed:
    embed = discord.Embed(title="\U0001f3af Active Challenges", color=discord.Color.teal())
    if not challenges:
        embed.description = "No active challenges right now."
        return embed
    progress = progress or {}
    for c in challenges:
        mine = progress.get(c.id)
        reqs = []
        for r in c.requirements:
            current = mine.values.get(str(r.type), 0) if mine else 0
            reqs.append(f"{r.type}: {min(current, r.target)}/{r.target}")
        status = ""
        if mine and mine.claimed:
            status = " ✅ claimed"
        elif mine and mine.completed:
            status = " \U0001f381 ready to claim"
        embed.add_field(
            name=f"[{c.period}] {c.name}{status}",
            value=(
                f"{c.description}\n"
                f"{' • '.join(reqs)}\n"
                f"Reward: +{c.rewards.xp} XP / +{c.rewards.coins} \U0001fa99 • "
                f"ends <t:{int(c.end_date.timestamp())}:R>\n"
                f"`{c.id}`"
            ),
            inline=False,
        )
    return embed
