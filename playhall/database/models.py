"""
playhall.database.models — SQLAlchemy 2.0 Data Models
=======================================================

Durable mirror of the in-memory engines.

Tables:
- users              — Member profiles with XP, level and coin balance
- user_badges        — Earned badge ids
- challenges         — Daily / weekly / monthly / special challenges
- challenge_progress — Per-(user, challenge) accumulated values and claim state
- session_records    — One row per quiz or mini-game session
- session_results    — Final standing per participant per session
- game_stats         — Per-guild quiz / mini-game counters for leaderboards
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import (
    BigInteger,
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


# ---------------------------------------------------------------------------
# Base
# ---------------------------------------------------------------------------
class Base(DeclarativeBase):
    """Shared base for all Playhall ORM models."""


# ---------------------------------------------------------------------------
# Users — one row per Discord member
# ---------------------------------------------------------------------------
class User(Base):
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True)
    display_name: Mapped[str] = mapped_column(String(100), nullable=False)
    xp: Mapped[int] = mapped_column(Integer, default=0)
    level: Mapped[int] = mapped_column(Integer, default=1)
    coins: Mapped[int] = mapped_column(Integer, default=0)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    badges: Mapped[list[UserBadge]] = relationship(
        back_populates="user", cascade="all, delete-orphan"
    )

    __table_args__ = (
        Index("ix_users_xp_desc", "xp"),
    )

    def __repr__(self) -> str:
        return f"<User id={self.id} name={self.display_name!r} lvl={self.level}>"


class UserBadge(Base):
    __tablename__ = "user_badges"

    user_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("users.id", ondelete="CASCADE"), primary_key=True
    )
    badge_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    earned_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    user: Mapped[User] = relationship(back_populates="badges")

    def __repr__(self) -> str:
        return f"<UserBadge user={self.user_id} badge={self.badge_id!r}>"


# ---------------------------------------------------------------------------
# Challenges
# ---------------------------------------------------------------------------
class ChallengeRecord(Base):
    __tablename__ = "challenges"

    id: Mapped[str] = mapped_column(String(40), primary_key=True)
    guild_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    period: Mapped[str] = mapped_column(String(16), nullable=False)
    category: Mapped[str] = mapped_column(String(16), nullable=False)
    # [{"type": "kills", "target": 5}, ...]
    requirements: Mapped[list] = mapped_column(JSONB, nullable=False)
    # {"xp": 100, "coins": 50, "badges": [...]}
    rewards: Mapped[dict] = mapped_column(JSONB, nullable=False)
    start_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    end_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    active: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    progress: Mapped[list[ProgressRecord]] = relationship(
        back_populates="challenge", cascade="all, delete-orphan"
    )

    __table_args__ = (
        Index("ix_challenges_guild_active", "guild_id", "active"),
    )

    def __repr__(self) -> str:
        return f"<ChallengeRecord id={self.id!r} period={self.period} active={self.active}>"


class ProgressRecord(Base):
    __tablename__ = "challenge_progress"

    user_id: Mapped[int] = mapped_column(BigInteger, primary_key=True)
    challenge_id: Mapped[str] = mapped_column(
        String(40), ForeignKey("challenges.id", ondelete="CASCADE"), primary_key=True
    )
    # requirement type → accumulated value
    values: Mapped[dict] = mapped_column(JSONB, nullable=False, default=dict)
    completed: Mapped[bool] = mapped_column(Boolean, default=False)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    claimed: Mapped[bool] = mapped_column(Boolean, default=False)
    claimed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    challenge: Mapped[ChallengeRecord] = relationship(back_populates="progress")

    def __repr__(self) -> str:
        return (
            f"<ProgressRecord user={self.user_id} challenge={self.challenge_id!r} "
            f"completed={self.completed} claimed={self.claimed}>"
        )


# ---------------------------------------------------------------------------
# Sessions
# ---------------------------------------------------------------------------
class SessionRecord(Base):
    __tablename__ = "session_records"

    id: Mapped[str] = mapped_column(String(40), primary_key=True)
    kind: Mapped[str] = mapped_column(String(16), nullable=False)
    game_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    guild_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    channel_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    host_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    settings: Mapped[dict] = mapped_column(JSONB, nullable=False, default=dict)
    started_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    ended_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    results: Mapped[list[ResultRecord]] = relationship(
        back_populates="session", cascade="all, delete-orphan"
    )

    __table_args__ = (
        Index("ix_session_records_scope", "guild_id", "channel_id"),
    )

    def __repr__(self) -> str:
        return f"<SessionRecord id={self.id!r} kind={self.kind} ended={self.ended_at}>"


class ResultRecord(Base):
    __tablename__ = "session_results"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    session_id: Mapped[str] = mapped_column(
        String(40), ForeignKey("session_records.id", ondelete="CASCADE"), nullable=False
    )
    kind: Mapped[str] = mapped_column(String(16), nullable=False)
    user_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    display_name: Mapped[str] = mapped_column(String(100), nullable=False)
    rank: Mapped[int] = mapped_column(Integer, nullable=False)
    score: Mapped[int] = mapped_column(Integer, default=0)
    xp: Mapped[int] = mapped_column(Integer, default=0)
    coins: Mapped[int] = mapped_column(Integer, default=0)
    badges: Mapped[list] = mapped_column(JSONB, nullable=False, default=list)
    # tier, correct/total answers, reward error if any
    details: Mapped[dict] = mapped_column(JSONB, nullable=False, default=dict)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    session: Mapped[SessionRecord] = relationship(back_populates="results")

    __table_args__ = (
        UniqueConstraint("session_id", "user_id", name="uq_session_results_user"),
        Index("ix_session_results_user", "user_id"),
    )

    def __repr__(self) -> str:
        return f"<ResultRecord session={self.session_id!r} user={self.user_id} rank={self.rank}>"


# ---------------------------------------------------------------------------
# GameStat — per-guild leaderboard counters
# ---------------------------------------------------------------------------
class GameStat(Base):
    __tablename__ = "game_stats"

    guild_id: Mapped[int] = mapped_column(BigInteger, primary_key=True)
    user_id: Mapped[int] = mapped_column(BigInteger, primary_key=True)
    quizzes_played: Mapped[int] = mapped_column(Integer, default=0)
    quiz_score: Mapped[int] = mapped_column(Integer, default=0)
    quiz_correct: Mapped[int] = mapped_column(Integer, default=0)
    quiz_questions: Mapped[int] = mapped_column(Integer, default=0)
    mini_games_played: Mapped[int] = mapped_column(Integer, default=0)
    mini_game_wins: Mapped[int] = mapped_column(Integer, default=0)
    mini_game_score: Mapped[int] = mapped_column(Integer, default=0)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    @property
    def total_score(self) -> int:
        return (self.quiz_score or 0) + (self.mini_game_score or 0)

    def __repr__(self) -> str:
        return (
            f"<GameStat guild={self.guild_id} user={self.user_id} "
            f"quiz={self.quiz_score} mini={self.mini_game_score}>"
        )
