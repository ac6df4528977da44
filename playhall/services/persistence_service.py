"""
playhall.services.persistence_service — SQL Persistence Port
=============================================================

Write-through storage for challenges, challenge progress and session
records.  Converts between engine dataclasses and ORM rows; the engines
never see a SQLAlchemy object.

SQLite (tests) drops tzinfo on the way back, so every datetime read here
is normalized to UTC.
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from playhall.database.engine import run_db
from playhall.database.models import ChallengeRecord, ProgressRecord, ResultRecord, SessionRecord
from playhall.engine.challenges import (
    Category,
    Challenge,
    ChallengeProgress,
    ChallengeRequirement,
    PeriodKind,
    RequirementType,
)
from playhall.engine.minigames import RewardTemplate
from playhall.engine.sessions import GameSession, QuizSession, Standing
from playhall.services.reward_service import upsert_user_currency

if TYPE_CHECKING:
    from sqlalchemy import Engine

    from playhall.engine.registry import SessionKind

logger = logging.getLogger(__name__)


def _utc(value: datetime | None) -> datetime | None:
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=UTC)


# ---------------------------------------------------------------------------
# Challenges
# ---------------------------------------------------------------------------
def _challenge_to_row(challenge: Challenge) -> ChallengeRecord:
    return ChallengeRecord(
        id=challenge.id,
        guild_id=challenge.guild_id,
        name=challenge.name,
        description=challenge.description,
        period=str(challenge.period),
        category=str(challenge.category),
        requirements=[{"type": str(r.type), "target": r.target} for r in challenge.requirements],
        rewards={
            "xp": challenge.rewards.xp,
            "coins": challenge.rewards.coins,
            "badges": list(challenge.rewards.badges),
        },
        start_date=challenge.start_date,
        end_date=challenge.end_date,
        active=challenge.active,
    )


def _row_to_challenge(row: ChallengeRecord) -> Challenge:
    rewards = row.rewards or {}
    return Challenge(
        id=row.id,
        guild_id=row.guild_id,
        name=row.name,
        description=row.description,
        period=PeriodKind(row.period),
        category=Category(row.category),
        requirements=tuple(
            ChallengeRequirement(RequirementType(r["type"]), int(r["target"]))
            for r in row.requirements
        ),
        rewards=RewardTemplate(
            xp=int(rewards.get("xp", 0)),
            coins=int(rewards.get("coins", 0)),
            badges=tuple(rewards.get("badges") or ()),
        ),
        start_date=_utc(row.start_date),
        end_date=_utc(row.end_date),
        active=row.active,
    )


def save_challenge(engine: Engine, challenge: Challenge) -> None:
    with Session(engine) as session:
        session.merge(_challenge_to_row(challenge))
        session.commit()


def load_active_challenges(engine: Engine, guild_id: int | None = None) -> list[Challenge]:
    stmt = select(ChallengeRecord).where(ChallengeRecord.active.is_(True))
    if guild_id is not None:
        stmt = stmt.where(ChallengeRecord.guild_id == guild_id)
    with Session(engine) as session:
        return [_row_to_challenge(row) for row in session.scalars(stmt)]


def deactivate_challenge(engine: Engine, challenge_id: str) -> None:
    with Session(engine) as session:
        session.execute(
            update(ChallengeRecord)
            .where(ChallengeRecord.id == challenge_id)
            .values(active=False)
        )
        session.commit()


def save_challenge_progress(engine: Engine, progress: ChallengeProgress) -> None:
    with Session(engine) as session:
        session.merge(ProgressRecord(
            user_id=progress.user_id,
            challenge_id=progress.challenge_id,
            values=dict(progress.values),
            completed=progress.completed,
            completed_at=progress.completed_at,
            claimed=progress.claimed,
            claimed_at=progress.claimed_at,
        ))
        session.commit()


def load_challenge_progress(engine: Engine) -> list[ChallengeProgress]:
    """Progress rows for every still-active challenge."""
    stmt = (
        select(ProgressRecord)
        .join(ChallengeRecord, ChallengeRecord.id == ProgressRecord.challenge_id)
        .where(ChallengeRecord.active.is_(True))
    )
    with Session(engine) as session:
        return [
            ChallengeProgress(
                user_id=row.user_id,
                challenge_id=row.challenge_id,
                values={k: int(v) for k, v in (row.values or {}).items()},
                completed=row.completed,
                completed_at=_utc(row.completed_at),
                claimed=row.claimed,
                claimed_at=_utc(row.claimed_at),
            )
            for row in session.scalars(stmt)
        ]


# ---------------------------------------------------------------------------
# Sessions
# ---------------------------------------------------------------------------
def save_session_record(engine: Engine, session_obj: QuizSession | GameSession) -> None:
    if isinstance(session_obj, QuizSession):
        game_id = None
        settings = session_obj.settings.model_dump()
        settings["question_ids"] = [q.id for q in session_obj.questions]
    else:
        game_id = session_obj.game_id
        settings = {"game_type": session_obj.game_type, "ends_at": session_obj.ends_at.isoformat()}

    with Session(engine) as session:
        session.add(SessionRecord(
            id=session_obj.id,
            kind=str(session_obj.scope_key.kind),
            game_id=game_id,
            guild_id=session_obj.scope.guild_id,
            channel_id=session_obj.scope.channel_id,
            host_id=session_obj.host_id,
            settings=settings,
            started_at=session_obj.started_at,
        ))
        session.commit()


def close_session_record(engine: Engine, session_id: str, ended_at: datetime) -> None:
    with Session(engine) as session:
        session.execute(
            update(SessionRecord)
            .where(SessionRecord.id == session_id)
            .values(ended_at=ended_at)
        )
        session.commit()


def save_session_result(
    engine: Engine, session_id: str, kind: SessionKind, standing: Standing
) -> None:
    with Session(engine) as session:
        session.add(ResultRecord(
            session_id=session_id,
            kind=str(kind),
            user_id=standing.user_id,
            display_name=standing.display_name,
            rank=standing.rank,
            score=standing.score,
            xp=standing.xp,
            coins=standing.coins,
            badges=list(standing.badges),
            details={
                "tier": standing.tier,
                "correct_answers": standing.correct_answers,
                "total_answers": standing.total_answers,
            },
        ))
        session.commit()


def get_session_results(engine: Engine, session_id: str) -> list[ResultRecord]:
    stmt = (
        select(ResultRecord)
        .where(ResultRecord.session_id == session_id)
        .order_by(ResultRecord.rank, ResultRecord.id)
    )
    with Session(engine, expire_on_commit=False) as session:
        rows = list(session.scalars(stmt))
        for row in rows:
            session.expunge(row)
        return rows


# ---------------------------------------------------------------------------
# Port adapter
# ---------------------------------------------------------------------------
class SqlPersistence:
    """Persistence port backed by PostgreSQL (or SQLite in tests)."""

    def __init__(self, engine: Engine) -> None:
        self.engine = engine

    async def save_challenge(self, challenge: Challenge) -> None:
        await run_db(save_challenge, self.engine, challenge)

    async def load_active_challenges(self, guild_id: int | None = None) -> list[Challenge]:
        return await run_db(load_active_challenges, self.engine, guild_id)

    async def deactivate_challenge(self, challenge_id: str) -> None:
        await run_db(deactivate_challenge, self.engine, challenge_id)
        logger.debug("Challenge %s deactivated", challenge_id)

    async def save_challenge_progress(self, progress: ChallengeProgress) -> None:
        await run_db(save_challenge_progress, self.engine, progress)

    async def load_challenge_progress(self) -> list[ChallengeProgress]:
        return await run_db(load_challenge_progress, self.engine)

    async def save_session_record(self, session: QuizSession | GameSession) -> None:
        await run_db(save_session_record, self.engine, session)

    async def close_session_record(self, session_id: str, ended_at: datetime) -> None:
        await run_db(close_session_record, self.engine, session_id, ended_at)

    async def save_session_result(
        self, session_id: str, kind: SessionKind, standing: Standing
    ) -> None:
        await run_db(save_session_result, self.engine, session_id, kind, standing)

    async def upsert_user_currency(self, user_id: int, amount: int) -> int:
        return await run_db(upsert_user_currency, self.engine, user_id, amount)
