"""
playhall.services.ranking_service — SQL Ranking Port & Leaderboard
===================================================================

Accumulates per-guild counters in ``game_stats`` and reads them back as a
leaderboard ordered by combined quiz + mini-game score.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from sqlalchemy import select
from sqlalchemy.orm import Session

from playhall.database.engine import run_db
from playhall.database.models import GameStat, User

if TYPE_CHECKING:
    from sqlalchemy import Engine

    from playhall.engine.registry import Scope


def _get_or_create_stat(session: Session, guild_id: int, user_id: int) -> GameStat:
    stat = session.get(GameStat, (guild_id, user_id))
    if stat is None:
        stat = GameStat(
            guild_id=guild_id, user_id=user_id,
            quizzes_played=0, quiz_score=0, quiz_correct=0, quiz_questions=0,
            mini_games_played=0, mini_game_wins=0, mini_game_score=0,
        )
        session.add(stat)
    return stat


def record_quiz_result(
    engine: Engine, guild_id: int, user_id: int, score: int, correct: int, total: int
) -> None:
    with Session(engine) as session:
        stat = _get_or_create_stat(session, guild_id, user_id)
        stat.quizzes_played += 1
        stat.quiz_score += score
        stat.quiz_correct += correct
        stat.quiz_questions += total
        session.commit()


def record_mini_game_result(
    engine: Engine, guild_id: int, user_id: int, score: int, won: bool
) -> None:
    with Session(engine) as session:
        stat = _get_or_create_stat(session, guild_id, user_id)
        stat.mini_games_played += 1
        stat.mini_game_score += score
        if won:
            stat.mini_game_wins += 1
        session.commit()


@dataclass(frozen=True, slots=True)
class LeaderboardEntry:
    rank: int
    user_id: int
    display_name: str
    total_score: int
    quizzes_played: int
    mini_game_wins: int


def get_leaderboard(engine: Engine, guild_id: int, limit: int = 10) -> list[LeaderboardEntry]:
    """Top *limit* members of *guild_id* by combined score."""
    total = (GameStat.quiz_score + GameStat.mini_game_score).label("total")
    stmt = (
        select(GameStat, User.display_name, total)
        .outerjoin(User, User.id == GameStat.user_id)
        .where(GameStat.guild_id == guild_id)
        .order_by(total.desc(), GameStat.user_id)
        .limit(limit)
    )
    with Session(engine) as session:
        rows = session.execute(stmt).all()
    return [
        LeaderboardEntry(
            rank=i,
            user_id=stat.user_id,
            display_name=name or str(stat.user_id),
            total_score=score,
            quizzes_played=stat.quizzes_played,
            mini_game_wins=stat.mini_game_wins,
        )
        for i, (stat, name, score) in enumerate(rows, start=1)
    ]


class SqlRankingPort:
    """Ranking port backed by ``game_stats``."""

    def __init__(self, engine: Engine) -> None:
        self.engine = engine

    async def record_quiz_result(
        self, scope: Scope, user_id: int, score: int, correct: int, total: int
    ) -> None:
        await run_db(record_quiz_result, self.engine, scope.guild_id, user_id, score, correct, total)

    async def record_mini_game_result(
        self, scope: Scope, user_id: int, game_type: str, score: int, won: bool
    ) -> None:
        await run_db(record_mini_game_result, self.engine, scope.guild_id, user_id, score, won)

    async def get_leaderboard(self, guild_id: int, limit: int = 10) -> list[LeaderboardEntry]:
        return await run_db(get_leaderboard, self.engine, guild_id, limit)
