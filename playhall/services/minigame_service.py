"""
playhall.services.minigame_service — Mini-Game Engine
======================================================

Session lifecycle shared by every mini-game type::

    start_mini_game → (join_mini_game | play)* → end_mini_game

Game-specific behaviour is delegated to the :class:`GameType` registered
for the definition's ``game_type`` tag (see :mod:`playhall.engine.minigames`).

Each session gets exactly one ``asyncio`` timer that calls
:meth:`MiniGameEngine.end_mini_game` at ``start + duration``.  The timer is
never rescheduled or cancelled by a manual end; the second caller simply
finds the session inactive and gets ``None``.
"""

from __future__ import annotations

import asyncio
import logging
import random
import uuid
from collections.abc import Awaitable, Callable, Iterable, Mapping
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Any

from playhall.engine.challenges import RequirementType
from playhall.engine.minigames import (
    DEFAULT_MINI_GAMES,
    GAME_TYPES,
    EventOutcome,
    GameEvent,
    GameType,
    MiniGameDefinition,
)
from playhall.engine.registry import Scope, SessionKind, SessionRegistry
from playhall.engine.scoring import competition_positions, mini_game_reward
from playhall.engine.sessions import (
    GameParticipant,
    GameSession,
    SessionResult,
    Standing,
    utcnow,
)
from playhall.errors import ConflictError, DependencyError, NotFoundError, UnknownGameType

if TYPE_CHECKING:
    from playhall.services.challenge_service import ChallengeEngine
    from playhall.services.ports import PersistencePort, RankingPort, RewardPort

logger = logging.getLogger(__name__)


EndListener = Callable[[GameSession, SessionResult], Awaitable[None]]


def new_game_id() -> str:
    return f"game_{uuid.uuid4().hex[:12]}"


@dataclass(slots=True)
class PlayResult:
    """What :meth:`MiniGameEngine.play` did with one event."""

    outcome: EventOutcome
    participant: GameParticipant | None = None
    finished: SessionResult | None = None


class MiniGameEngine:
    """Run pluggable mini-games bound to a (guild, channel) scope."""

    def __init__(
        self,
        registry: SessionRegistry,
        rewards: RewardPort,
        ranking: RankingPort,
        persistence: PersistencePort,
        *,
        challenges: ChallengeEngine | None = None,
        definitions: Iterable[MiniGameDefinition] = DEFAULT_MINI_GAMES,
        game_types: Mapping[str, GameType] = GAME_TYPES,
        clock: Callable[[], datetime] = utcnow,
        rng: random.Random | None = None,
    ) -> None:
        self._registry = registry
        self._rewards = rewards
        self._ranking = ranking
        self._persistence = persistence
        self._challenges = challenges
        self._definitions: dict[str, MiniGameDefinition] = {d.id: d for d in definitions}
        self._game_types = dict(game_types)
        self._clock = clock
        self._rng = rng or random.Random()
        self._timers: dict[str, asyncio.Task] = {}
        self._end_listeners: list[EndListener] = []

    def add_end_listener(self, listener: EndListener) -> None:
        """Call *listener* after every settled session, however it ended."""
        self._end_listeners.append(listener)

    # -------------------------------------------------------------------
    # Catalog & lookup
    # -------------------------------------------------------------------
    def list_mini_game_definitions(self) -> list[MiniGameDefinition]:
        return list(self._definitions.values())

    def get_mini_game_session(self, session_id: str) -> GameSession | None:
        session = self._registry.lookup_by_id(session_id)
        return session if isinstance(session, GameSession) else None

    def session_for_scope(self, scope: Scope) -> GameSession | None:
        session = self._registry.lookup_by_scope(scope.key(SessionKind.MINI_GAME))
        return session if isinstance(session, GameSession) else None

    def _require(self, session_id: str) -> GameSession:
        session = self.get_mini_game_session(session_id)
        if session is None:
            raise NotFoundError(f"No mini-game session {session_id!r}.")
        return session

    def game_type_for(self, session: GameSession) -> GameType:
        return self._game_types[session.game_type]

    def definition_for(self, session: GameSession) -> MiniGameDefinition:
        return self._definitions[session.game_id]

    @property
    def pending_timers(self) -> int:
        return len(self._timers)

    # -------------------------------------------------------------------
    # Start
    # -------------------------------------------------------------------
    async def start_mini_game(self, game_id: str, scope: Scope, host_id: int) -> GameSession:
        """Create a session for definition *game_id* and arm its end timer.

        Raises
        ------
        UnknownGameType
            No such definition, or its game type has no state machine.
        ConflictError
            A mini-game is already live in this channel.
        DependencyError
            The session record could not be persisted; nothing stays registered.
        """
        definition = self._definitions.get(game_id)
        if definition is None or definition.game_type not in self._game_types:
            raise UnknownGameType(f"Unknown mini-game: {game_id!r}")
        key = scope.key(SessionKind.MINI_GAME)
        if self._registry.lookup_by_scope(key) is not None:
            raise ConflictError("A mini-game is already running in this channel.")

        now = self._clock()
        session = GameSession(
            id=new_game_id(),
            game_id=definition.id,
            game_type=definition.game_type,
            scope=scope,
            host_id=host_id,
            started_at=now,
            ends_at=now + timedelta(seconds=definition.duration),
        )
        session.payload = self._game_types[definition.game_type].initialize(
            definition, now, self._rng
        )
        if not self._registry.register(key, session):
            raise ConflictError("A mini-game is already running in this channel.")

        try:
            await self._persistence.save_session_record(session)
        except Exception as exc:
            self._registry.remove(session.id)
            logger.exception(
                "Failed to persist mini-game %s", session.id, extra={"session": session.id}
            )
            raise DependencyError("Could not start the mini-game.") from exc

        remaining = max(0.0, (session.ends_at - self._clock()).total_seconds())
        self._timers[session.id] = asyncio.get_running_loop().create_task(
            self._auto_end(session.id, remaining),
            name=f"mini-game-end:{session.id}",
        )
        logger.info(
            "Mini-game %s (%s) started in %s/%s for %ds",
            session.id, definition.id, scope.guild_id, scope.channel_id, definition.duration,
        )
        return session

    async def _auto_end(self, session_id: str, delay: float) -> None:
        try:
            await asyncio.sleep(delay)
            await self.end_mini_game(session_id)
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("Automatic end failed for %s", session_id, extra={"session": session_id})
        finally:
            self._timers.pop(session_id, None)

    # -------------------------------------------------------------------
    # Join / play
    # -------------------------------------------------------------------
    def join_mini_game(self, session_id: str, user_id: int, display_name: str) -> GameParticipant:
        session = self._require(session_id)
        existing = session.participants.get(user_id)
        if existing is not None:
            return existing
        if not session.active:
            raise ConflictError("This mini-game has ended.")
        participant = GameParticipant(
            user_id=user_id, display_name=display_name, joined_at=self._clock()
        )
        session.participants[user_id] = participant
        return participant

    async def play(
        self,
        session_id: str,
        user_id: int,
        display_name: str,
        action: str,
        value: Any = None,
    ) -> PlayResult:
        """Route one player event to the session's state machine.

        The player is joined only if the event is accepted.  When the event
        completes the game, the session is settled before returning.
        """
        session = self._require(session_id)
        if not session.active:
            raise ConflictError("This mini-game has ended.")

        game_type = self.game_type_for(session)
        now = self._clock()
        outcome = game_type.handle_event(
            session, GameEvent(action=action, user_id=user_id, at=now, value=value)
        )
        if not outcome.accepted:
            return PlayResult(outcome=outcome, participant=session.participants.get(user_id))

        participant = self.join_mini_game(session_id, user_id, display_name)
        participant.score += outcome.points
        participant.data.update(outcome.data)

        finished = None
        if game_type.is_complete(session, now):
            finished = await self.end_mini_game(session_id)
        return PlayResult(outcome=outcome, participant=participant, finished=finished)

    # -------------------------------------------------------------------
    # End
    # -------------------------------------------------------------------
    async def end_mini_game(self, session_id: str) -> SessionResult | None:
        """Settle the mini-game.  Returns None if unknown or already ended."""
        session = self.get_mini_game_session(session_id)
        if session is None or not session.active:
            return None
        session.active = False

        try:
            result = self._rank(session)
            for index, standing in enumerate(result.standings):
                try:
                    await self._pay_out(session, standing, won=index == 0 and standing.score > 0)
                except Exception as exc:
                    standing.reward_error = str(exc) or type(exc).__name__
                    logger.exception(
                        "Mini-game payout failed for user %s", standing.user_id,
                        extra={"session": session.id},
                    )
            try:
                await self._persistence.close_session_record(session.id, self._clock())
            except Exception:
                logger.exception(
                    "Failed to close mini-game record %s", session.id,
                    extra={"session": session.id},
                )
            winner = result.winner
            logger.info(
                "Mini-game %s ended: %d participant(s), winner %s",
                session.id, len(result.standings), winner.user_id if winner else None,
            )
        finally:
            self._registry.remove(session.id)

        for listener in self._end_listeners:
            try:
                await listener(session, result)
            except Exception:
                logger.exception("End listener failed for %s", session.id, extra={"session": session.id})
        return result

    def _rank(self, session: GameSession) -> SessionResult:
        definition = self.definition_for(session)
        scores = self.game_type_for(session).compute_scores(session)
        for user_id, participant in session.participants.items():
            participant.score = scores.get(user_id, 0)

        ranked = sorted(session.participants.values(), key=lambda p: p.score, reverse=True)
        positions = competition_positions([p.score for p in ranked])
        standings = []
        for index, (participant, position) in enumerate(zip(ranked, positions)):
            xp, coins = mini_game_reward(
                definition.rewards.xp, definition.rewards.coins, index, len(ranked)
            )
            winner = index == 0 and participant.score > 0
            standings.append(Standing(
                user_id=participant.user_id,
                display_name=participant.display_name,
                rank=position,
                score=participant.score,
                xp=xp,
                coins=coins,
                badges=list(definition.rewards.badges) if winner else [],
            ))
        return SessionResult(
            session_id=session.id,
            kind=SessionKind.MINI_GAME,
            scope=session.scope,
            standings=standings,
        )

    async def _pay_out(self, session: GameSession, standing: Standing, *, won: bool) -> None:
        uid, name = standing.user_id, standing.display_name
        await self._rewards.grant_experience(uid, standing.xp, display_name=name)
        await self._rewards.grant_currency(uid, standing.coins, display_name=name)
        for badge in standing.badges:
            await self._rewards.grant_badge(uid, badge)
        await self._persistence.save_session_result(session.id, SessionKind.MINI_GAME, standing)
        if self._challenges is not None and standing.score > 0:
            await self._challenges.update_challenge_progress(
                uid, RequirementType.MINI_GAME_WINS, 1, guild_id=session.scope.guild_id
            )
        await self._ranking.record_mini_game_result(
            session.scope, uid, session.game_type, standing.score, won
        )

    # -------------------------------------------------------------------
    # Shutdown
    # -------------------------------------------------------------------
    async def shutdown(self) -> None:
        """Cancel every pending end timer."""
        timers = list(self._timers.values())
        for task in timers:
            task.cancel()
        if timers:
            await asyncio.gather(*timers, return_exceptions=True)
        self._timers.clear()
