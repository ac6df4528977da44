"""
playhall.services.game_hub — Engine Façade
===========================================

One object wiring the shared :class:`SessionRegistry` to the three
engines and exposing every caller-facing operation.  The bot holds a
single ``GameHub``; tests build one with mock ports.

Usage::

    hub = GameHub.from_engine(engine, cfg)
    await hub.load()
    session = await hub.start_quiz(Scope(guild_id, channel_id), host_id, {"questionCount": 5})
"""

from __future__ import annotations

import logging
import random
from collections.abc import Callable, Iterable, Mapping
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Any

from playhall.engine.challenges import (
    Challenge,
    ChallengeCreate,
    ChallengeProgress,
    ProgressStore,
    RequirementType,
)
from playhall.engine.minigames import DEFAULT_MINI_GAMES, MiniGameDefinition, RewardTemplate
from playhall.engine.questions import QuestionBank, QuizQuestion
from playhall.engine.registry import Scope, SessionKind, SessionRegistry
from playhall.engine.sessions import (
    AnswerResult,
    GameParticipant,
    GameSession,
    QuizParticipant,
    QuizSession,
    QuizSettings,
    SessionResult,
    utcnow,
)
from playhall.services.challenge_service import ChallengeEngine, TickReport
from playhall.services.minigame_service import MiniGameEngine, PlayResult
from playhall.services.quiz_service import QuizEngine

if TYPE_CHECKING:
    from sqlalchemy import Engine

    from playhall.config import PlayhallConfig
    from playhall.services.ports import PersistencePort, RankingPort, RewardPort

logger = logging.getLogger(__name__)


class GameHub:
    """Façade over the quiz, mini-game and challenge engines."""

    def __init__(
        self,
        rewards: RewardPort,
        ranking: RankingPort,
        persistence: PersistencePort,
        *,
        config: PlayhallConfig | None = None,
        bank: QuestionBank | None = None,
        definitions: Iterable[MiniGameDefinition] = DEFAULT_MINI_GAMES,
        progress_store: ProgressStore | None = None,
        clock: Callable[[], datetime] = utcnow,
        rng: random.Random | None = None,
    ) -> None:
        rng = rng or random.Random()
        if config is not None and config.mini_games:
            # same-id entries replace the built-in definition
            definitions = (*definitions, *config.mini_games)
        self.registry = SessionRegistry()
        self.challenges = ChallengeEngine(
            rewards,
            persistence,
            store=progress_store,
            weekly_anchor_weekday=config.weekly_anchor_weekday if config else 0,
            clock=clock,
            rng=rng,
        )
        quiz_kwargs: dict[str, Any] = {}
        if config is not None:
            quiz_kwargs["max_participants"] = config.quiz_max_participants
            quiz_kwargs["stale_after"] = timedelta(minutes=config.quiz_stale_after_minutes)
        self.quizzes = QuizEngine(
            self.registry, rewards, ranking, persistence,
            challenges=self.challenges, bank=bank, clock=clock, rng=rng, **quiz_kwargs,
        )
        self.mini_games = MiniGameEngine(
            self.registry, rewards, ranking, persistence,
            challenges=self.challenges, definitions=definitions, clock=clock, rng=rng,
        )
        self._clock = clock

    @classmethod
    def from_engine(cls, engine: Engine, config: PlayhallConfig | None = None, **kwargs: Any) -> GameHub:
        """Build a hub backed by the SQLAlchemy port implementations."""
        from playhall.services.persistence_service import SqlPersistence
        from playhall.services.ranking_service import SqlRankingPort
        from playhall.services.reward_service import SqlRewardPort

        return cls(
            SqlRewardPort(engine),
            SqlRankingPort(engine),
            SqlPersistence(engine),
            config=config,
            **kwargs,
        )

    async def load(self) -> None:
        await self.challenges.load()

    # -------------------------------------------------------------------
    # Quiz
    # -------------------------------------------------------------------
    async def start_quiz(
        self, scope: Scope, host_id: int, settings: QuizSettings | Mapping[str, Any] | None = None
    ) -> QuizSession:
        return await self.quizzes.start_quiz(scope, host_id, settings)

    def join_quiz(self, session_id: str, user_id: int, display_name: str) -> QuizParticipant:
        return self.quizzes.join_quiz(session_id, user_id, display_name)

    def submit_answer(self, session_id: str, user_id: int, answer_index: int) -> AnswerResult | None:
        return self.quizzes.submit_answer(session_id, user_id, answer_index)

    def current_question(self, session_id: str) -> QuizQuestion | None:
        return self.quizzes.current_question(session_id)

    def advance_question(self, session_id: str) -> QuizQuestion | None:
        return self.quizzes.advance_question(session_id)

    async def end_quiz(self, session_id: str) -> SessionResult | None:
        return await self.quizzes.end_quiz(session_id)

    def get_quiz_session(self, session_id: str) -> QuizSession | None:
        return self.quizzes.get_quiz_session(session_id)

    # -------------------------------------------------------------------
    # Mini-games
    # -------------------------------------------------------------------
    async def start_mini_game(self, game_id: str, scope: Scope, host_id: int) -> GameSession:
        return await self.mini_games.start_mini_game(game_id, scope, host_id)

    def join_mini_game(self, session_id: str, user_id: int, display_name: str) -> GameParticipant:
        return self.mini_games.join_mini_game(session_id, user_id, display_name)

    async def play(
        self, session_id: str, user_id: int, display_name: str, action: str, value: Any = None
    ) -> PlayResult:
        return await self.mini_games.play(session_id, user_id, display_name, action, value)

    async def end_mini_game(self, session_id: str) -> SessionResult | None:
        return await self.mini_games.end_mini_game(session_id)

    def get_mini_game_session(self, session_id: str) -> GameSession | None:
        return self.mini_games.get_mini_game_session(session_id)

    def list_mini_game_definitions(self) -> list[MiniGameDefinition]:
        return self.mini_games.list_mini_game_definitions()

    # -------------------------------------------------------------------
    # Challenges
    # -------------------------------------------------------------------
    async def create_challenge(
        self, data: ChallengeCreate | Mapping[str, Any], guild_id: int
    ) -> Challenge:
        return await self.challenges.create_challenge(data, guild_id)

    def list_active_challenges(self, guild_id: int | None = None) -> list[Challenge]:
        return self.challenges.list_active_challenges(guild_id)

    def get_user_challenge_progress(self, user_id: int) -> list[tuple[Challenge, ChallengeProgress]]:
        return self.challenges.get_user_challenge_progress(user_id)

    async def update_challenge_progress(
        self,
        user_id: int,
        requirement_type: RequirementType | str,
        increment: int,
        guild_id: int | None = None,
    ) -> list[ChallengeProgress]:
        return await self.challenges.update_challenge_progress(
            user_id, requirement_type, increment, guild_id
        )

    async def claim_challenge_rewards(self, user_id: int, challenge_id: str) -> RewardTemplate:
        return await self.challenges.claim_challenge_rewards(user_id, challenge_id)

    async def run_scheduled_tick(self, guild_id: int, now: datetime | None = None) -> TickReport:
        return await self.challenges.run_scheduled_tick(guild_id, now)

    # -------------------------------------------------------------------
    # Housekeeping
    # -------------------------------------------------------------------
    def cleanup(self, now: datetime | None = None) -> list[str]:
        """Drop stale sessions from the registry (no payouts)."""
        return self.registry.cleanup(now or self._clock())

    async def shutdown(self) -> None:
        """Cancel end timers and settle every live session."""
        await self.mini_games.shutdown()
        for session in self.registry.sessions(SessionKind.MINI_GAME):
            await self.mini_games.end_mini_game(session.id)
        for session in self.registry.sessions(SessionKind.QUIZ):
            await self.quizzes.end_quiz(session.id)
        logger.info("Game hub shut down.")
