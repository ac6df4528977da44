"""
playhall.services.quiz_service — Quiz Engine
=============================================

Lifecycle of timed multiple-choice quizzes::

    start_quiz → join_quiz* → (submit_answer* → advance_question)* → end_quiz

The question cursor is host-driven: callers decide when to move on
(typically after ``time_per_question`` seconds).  The engine enforces
participation rules and computes payouts; it never sleeps.

Ordering discipline: every invariant check and its mutation happen
without an intervening ``await``.  ``start_quiz`` registers the session
before persisting it, and ``end_quiz`` flips ``active`` before paying
anyone, so concurrent callers observe a consistent registry.
"""

from __future__ import annotations

import logging
import random
import uuid
from collections.abc import Callable, Mapping
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Any

from playhall.engine.challenges import RequirementType
from playhall.engine.questions import QuestionBank, QuizQuestion
from playhall.engine.registry import Scope, SessionKind, SessionRegistry
from playhall.engine.scoring import answer_points, competition_positions, quiz_reward
from playhall.engine.sessions import (
    QUIZ_JOIN_WINDOW,
    QUIZ_MAX_PARTICIPANTS,
    QUIZ_STALE_AFTER,
    AnswerResult,
    QuizParticipant,
    QuizSession,
    QuizSettings,
    SessionResult,
    Standing,
    parse_quiz_settings,
    utcnow,
)
from playhall.errors import ConflictError, DependencyError, NotFoundError, ValidationError

if TYPE_CHECKING:
    from playhall.services.challenge_service import ChallengeEngine
    from playhall.services.ports import PersistencePort, RankingPort, RewardPort

logger = logging.getLogger(__name__)


def new_quiz_id() -> str:
    return f"quiz_{uuid.uuid4().hex[:12]}"


class QuizEngine:
    """Start, run and settle quizzes bound to a (guild, channel) scope."""

    def __init__(
        self,
        registry: SessionRegistry,
        rewards: RewardPort,
        ranking: RankingPort,
        persistence: PersistencePort,
        *,
        challenges: ChallengeEngine | None = None,
        bank: QuestionBank | None = None,
        max_participants: int = QUIZ_MAX_PARTICIPANTS,
        stale_after: timedelta = QUIZ_STALE_AFTER,
        clock: Callable[[], datetime] = utcnow,
        rng: random.Random | None = None,
    ) -> None:
        self._registry = registry
        self._rewards = rewards
        self._ranking = ranking
        self._persistence = persistence
        self._challenges = challenges
        self._bank = bank or QuestionBank()
        self._max_participants = max_participants
        self._stale_after = stale_after
        self._clock = clock
        self._rng = rng or random.Random()

    # -------------------------------------------------------------------
    # Lookup
    # -------------------------------------------------------------------
    def get_quiz_session(self, session_id: str) -> QuizSession | None:
        session = self._registry.lookup_by_id(session_id)
        return session if isinstance(session, QuizSession) else None

    def _require(self, session_id: str) -> QuizSession:
        session = self.get_quiz_session(session_id)
        if session is None:
            raise NotFoundError(f"No quiz session {session_id!r}.")
        return session

    def session_for_scope(self, scope: Scope) -> QuizSession | None:
        session = self._registry.lookup_by_scope(scope.key(SessionKind.QUIZ))
        return session if isinstance(session, QuizSession) else None

    # -------------------------------------------------------------------
    # Start / join
    # -------------------------------------------------------------------
    async def start_quiz(
        self,
        scope: Scope,
        host_id: int,
        settings: QuizSettings | Mapping[str, Any] | None = None,
    ) -> QuizSession:
        """Create and register a quiz for *scope*.

        Raises
        ------
        ValidationError
            Settings out of bounds, or the quiz could not finish before
            the registry sweeps it as stale.
        ConflictError
            A quiz is already live in this channel.
        NoQuestionsAvailable
            The question bank is empty.
        DependencyError
            The session record could not be persisted; nothing stays registered.
        """
        settings = parse_quiz_settings(settings)
        running_time = QUIZ_JOIN_WINDOW + timedelta(
            seconds=settings.question_count * settings.time_per_question
        )
        if running_time > self._stale_after:
            raise ValidationError(
                "Quiz would outlast the staleness window.",
                details={"seconds": int(running_time.total_seconds())},
            )
        key = scope.key(SessionKind.QUIZ)
        if self._registry.lookup_by_scope(key) is not None:
            raise ConflictError("A quiz is already running in this channel.")

        questions = self._bank.select(
            settings.question_count,
            settings.category,
            settings.difficulty,
            rng=self._rng,
        )
        session = QuizSession(
            id=new_quiz_id(),
            scope=scope,
            host_id=host_id,
            questions=questions,
            settings=settings,
            started_at=self._clock(),
            stale_after=self._stale_after,
        )
        if not self._registry.register(key, session):
            raise ConflictError("A quiz is already running in this channel.")

        try:
            await self._persistence.save_session_record(session)
        except Exception as exc:
            self._registry.remove(session.id)
            logger.exception("Failed to persist quiz %s", session.id, extra={"session": session.id})
            raise DependencyError("Could not start the quiz.") from exc

        logger.info(
            "Quiz %s started in %s/%s with %d question(s)",
            session.id, scope.guild_id, scope.channel_id, len(questions),
        )
        return session

    def join_quiz(self, session_id: str, user_id: int, display_name: str) -> QuizParticipant:
        """Add *user_id* to the quiz.  Joining twice returns the same participant."""
        session = self._require(session_id)
        existing = session.participants.get(user_id)
        if existing is not None:
            return existing
        if not session.active:
            raise ConflictError("This quiz has ended.")
        if session.current_index > 0:
            raise ConflictError("This quiz is already under way.")
        if len(session.participants) >= self._max_participants:
            raise ConflictError("This quiz is full.")

        participant = QuizParticipant(user_id=user_id, display_name=display_name)
        session.participants[user_id] = participant
        return participant

    # -------------------------------------------------------------------
    # Play
    # -------------------------------------------------------------------
    def submit_answer(self, session_id: str, user_id: int, answer_index: int) -> AnswerResult | None:
        """Score one answer to the current question.

        Returns None when the answer does not apply: unknown or inactive
        session, non-participant, no current question, out-of-range index,
        or a repeat answer when multiple attempts are off.
        """
        session = self.get_quiz_session(session_id)
        if session is None or not session.active:
            return None
        participant = session.participants.get(user_id)
        question = session.current_question
        if participant is None or question is None:
            return None
        if not 0 <= answer_index < len(question.options):
            return None

        ledger_key = (user_id, session.current_index)
        if ledger_key in session.answered and not session.settings.allow_multiple_attempts:
            return None
        session.answered.add(ledger_key)

        participant.total_answers += 1
        participant.last_answer_at = self._clock()
        if answer_index != question.correct_index:
            participant.streak = 0
            return AnswerResult(correct=False, points_awarded=0, new_streak=0)

        participant.streak += 1
        participant.best_streak = max(participant.best_streak, participant.streak)
        participant.correct_answers += 1
        points = answer_points(
            question.points, participant.streak, session.settings.time_per_question
        )
        participant.score += points
        return AnswerResult(correct=True, points_awarded=points, new_streak=participant.streak)

    def current_question(self, session_id: str) -> QuizQuestion | None:
        return self._require(session_id).current_question

    def advance_question(self, session_id: str) -> QuizQuestion | None:
        """Move the cursor forward.  Returns the new question, or None when done."""
        session = self._require(session_id)
        if not session.active:
            return None
        if session.current_index < len(session.questions):
            session.current_index += 1
        return session.current_question

    # -------------------------------------------------------------------
    # End
    # -------------------------------------------------------------------
    async def end_quiz(self, session_id: str) -> SessionResult | None:
        """Settle the quiz.  Returns None if it is unknown or already ended."""
        session = self.get_quiz_session(session_id)
        if session is None or not session.active:
            return None
        session.active = False

        try:
            result = self._rank(session)
            for standing in result.standings:
                try:
                    await self._pay_out(session, standing)
                except Exception as exc:
                    standing.reward_error = str(exc) or type(exc).__name__
                    logger.exception(
                        "Quiz payout failed for user %s", standing.user_id,
                        extra={"session": session.id},
                    )
            try:
                await self._persistence.close_session_record(session.id, self._clock())
            except Exception:
                logger.exception(
                    "Failed to close quiz record %s", session.id, extra={"session": session.id}
                )
            logger.info("Quiz %s ended with %d participant(s)", session.id, len(result.standings))
            return result
        finally:
            self._registry.remove(session.id)

    def _rank(self, session: QuizSession) -> SessionResult:
        ranked = sorted(session.participants.values(), key=lambda p: p.score, reverse=True)
        positions = competition_positions([p.score for p in ranked])
        top_is_tied = len(ranked) > 1 and ranked[0].score == ranked[1].score
        total = len(session.questions)

        standings = []
        for participant, position in zip(ranked, positions):
            reward = quiz_reward(
                score=participant.score,
                correct=participant.correct_answers,
                total=total,
                position=position,
                participants=len(ranked),
                top_is_tied=top_is_tied,
            )
            standings.append(Standing(
                user_id=participant.user_id,
                display_name=participant.display_name,
                rank=position,
                score=participant.score,
                xp=reward.xp,
                coins=reward.coins,
                badges=reward.badges,
                tier=reward.tier,
                correct_answers=participant.correct_answers,
                total_answers=participant.total_answers,
            ))
        return SessionResult(
            session_id=session.id,
            kind=SessionKind.QUIZ,
            scope=session.scope,
            standings=standings,
        )

    async def _pay_out(self, session: QuizSession, standing: Standing) -> None:
        uid, name = standing.user_id, standing.display_name
        await self._rewards.grant_experience(uid, standing.xp, display_name=name)
        await self._rewards.grant_currency(uid, standing.coins, display_name=name)
        for badge in standing.badges:
            await self._rewards.grant_badge(uid, badge)
        await self._persistence.save_session_result(session.id, SessionKind.QUIZ, standing)
        if self._challenges is not None and standing.score > 0:
            await self._challenges.update_challenge_progress(
                uid, RequirementType.QUIZ_SCORE, standing.score, guild_id=session.scope.guild_id
            )
        await self._ranking.record_quiz_result(
            session.scope, uid, standing.score, standing.correct_answers, len(session.questions)
        )
