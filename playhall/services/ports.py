"""
playhall.services.ports — Collaborator Interfaces
==================================================

The engines never talk to the database or the chat platform directly.
They call three narrow async ports:

- :class:`RewardPort` — XP, currency and badges
- :class:`RankingPort` — per-guild game statistics for leaderboards
- :class:`PersistencePort` — durable challenges, progress and session records

SQLAlchemy implementations live in :mod:`playhall.services.reward_service`,
:mod:`playhall.services.ranking_service` and
:mod:`playhall.services.persistence_service`.  Tests substitute
``AsyncMock`` objects.
"""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from playhall.engine.challenges import Challenge, ChallengeProgress
    from playhall.engine.registry import Scope, SessionKind
    from playhall.engine.sessions import GameSession, QuizSession, Standing


class RewardPort(Protocol):
    async def grant_experience(
        self, user_id: int, amount: int, *, display_name: str | None = None
    ) -> None: ...

    async def grant_currency(
        self, user_id: int, amount: int, *, display_name: str | None = None
    ) -> None: ...

    async def grant_badge(self, user_id: int, badge_id: str) -> None: ...


class RankingPort(Protocol):
    async def record_quiz_result(
        self, scope: Scope, user_id: int, score: int, correct: int, total: int
    ) -> None: ...

    async def record_mini_game_result(
        self, scope: Scope, user_id: int, game_type: str, score: int, won: bool
    ) -> None: ...


class PersistencePort(Protocol):
    # challenges
    async def save_challenge(self, challenge: Challenge) -> None: ...
    async def load_active_challenges(self, guild_id: int | None = None) -> list[Challenge]: ...
    async def deactivate_challenge(self, challenge_id: str) -> None: ...
    async def save_challenge_progress(self, progress: ChallengeProgress) -> None: ...
    async def load_challenge_progress(self) -> list[ChallengeProgress]: ...

    # sessions
    async def save_session_record(self, session: QuizSession | GameSession) -> None: ...
    async def close_session_record(self, session_id: str, ended_at: datetime) -> None: ...
    async def save_session_result(
        self, session_id: str, kind: SessionKind, standing: Standing
    ) -> None: ...

    # balances
    async def upsert_user_currency(self, user_id: int, amount: int) -> int: ...
