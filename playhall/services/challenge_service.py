"""
playhall.services.challenge_service — Challenge Engine & Scheduler Tick
========================================================================

Owns the index of live challenges and the (user, challenge) progress
store.  Three producers feed it:

- the Quiz Engine (``quiz_score``) and Mini-Game Engine (``mini_game_wins``)
- bot listeners for messages / voice time
- external game results (kills, wins, games)

all through :meth:`ChallengeEngine.update_challenge_progress`.

Every check-then-mutate step (lazy progress creation, completion, claim)
runs synchronously before the first await; the persistence port is a
write-through mirror.
"""

from __future__ import annotations

import logging
import random
import uuid
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING, Any

from playhall.engine.challenges import (
    SAME_PERIOD,
    Challenge,
    ChallengeCreate,
    ChallengeProgress,
    InMemoryProgressStore,
    PeriodKind,
    ProgressStore,
    RequirementType,
    challenge_from_template,
    draw_template,
    parse_challenge_create,
)
from playhall.engine.minigames import RewardTemplate
from playhall.engine.sessions import utcnow
from playhall.errors import ConflictError, DependencyError, NotFoundError, ValidationError

if TYPE_CHECKING:
    from playhall.services.ports import PersistencePort, RewardPort

logger = logging.getLogger(__name__)


def new_challenge_id() -> str:
    return f"challenge_{uuid.uuid4().hex[:12]}"


@dataclass(slots=True)
class TickReport:
    """What one scheduler tick changed."""

    expired: list[str] = field(default_factory=list)
    created: list[Challenge] = field(default_factory=list)


class ChallengeEngine:
    """Challenge lifecycle, progress tracking and reward claims."""

    def __init__(
        self,
        rewards: RewardPort,
        persistence: PersistencePort,
        *,
        store: ProgressStore | None = None,
        weekly_anchor_weekday: int = 0,
        clock: Callable[[], datetime] = utcnow,
        rng: random.Random | None = None,
    ) -> None:
        self._rewards = rewards
        self._persistence = persistence
        self._store: ProgressStore = store if store is not None else InMemoryProgressStore()
        self._anchor = weekly_anchor_weekday
        self._clock = clock
        self._rng = rng or random.Random()
        # every challenge seen by this process; inactive ones stay claimable
        self._challenges: dict[str, Challenge] = {}

    # -------------------------------------------------------------------
    # Bootstrap
    # -------------------------------------------------------------------
    async def load(self) -> int:
        """Rebuild the index and progress store from durable storage."""
        challenges = await self._persistence.load_active_challenges()
        for challenge in challenges:
            self._challenges[challenge.id] = challenge
        for progress in await self._persistence.load_challenge_progress():
            self._store.put(progress)
        logger.info("Loaded %d active challenge(s)", len(challenges))
        return len(challenges)

    # -------------------------------------------------------------------
    # Creation
    # -------------------------------------------------------------------
    async def create_challenge(
        self, data: ChallengeCreate | Mapping[str, Any], guild_id: int
    ) -> Challenge:
        """Validate *data*, index the challenge as active and persist it.

        Raises
        ------
        ValidationError
            Bad name/description length, period, category, requirement,
            reward bound or date window.
        DependencyError
            The persistence port failed; the challenge is not indexed.
        """
        parsed = parse_challenge_create(data)
        challenge = Challenge.from_create(new_challenge_id(), guild_id, parsed)
        await self._index_and_save(challenge)
        logger.info("Challenge created: %s (%s) in guild %s", challenge.name, challenge.id, guild_id)
        return challenge

    async def _index_and_save(self, challenge: Challenge) -> None:
        self._challenges[challenge.id] = challenge
        try:
            await self._persistence.save_challenge(challenge)
        except Exception as exc:
            self._challenges.pop(challenge.id, None)
            logger.exception(
                "Failed to persist challenge %s", challenge.id,
                extra={"challenge": challenge.id},
            )
            raise DependencyError("Could not save the challenge.") from exc

    # -------------------------------------------------------------------
    # Scheduler
    # -------------------------------------------------------------------
    def _due_periods(self, now: datetime) -> list[PeriodKind]:
        due = [PeriodKind.DAILY]
        if now.weekday() == self._anchor:
            due.append(PeriodKind.WEEKLY)
        if now.day == 1:
            due.append(PeriodKind.MONTHLY)
        return due

    def _has_current(self, guild_id: int, period: PeriodKind, now: datetime) -> bool:
        same_period = SAME_PERIOD[period]
        return any(
            c.active and c.guild_id == guild_id and c.period == period
            and same_period(c.start_date, now)
            for c in self._challenges.values()
        )

    async def run_scheduled_tick(self, guild_id: int, now: datetime | None = None) -> TickReport:
        """Expire finished challenges, then create any that are due.

        Boundary conditions are re-evaluated on every tick, so a missed
        tick is caught up on the next one.
        """
        now = now or self._clock()
        report = TickReport()

        for challenge in list(self._challenges.values()):
            if challenge.active and challenge.is_expired(now):
                challenge.active = False
                report.expired.append(challenge.id)

        for challenge_id in report.expired:
            try:
                await self._persistence.deactivate_challenge(challenge_id)
            except Exception:
                logger.exception(
                    "Failed to deactivate challenge %s", challenge_id,
                    extra={"challenge": challenge_id},
                )

        for period in self._due_periods(now):
            if self._has_current(guild_id, period, now):
                continue
            challenge = challenge_from_template(
                draw_template(period, self._rng),
                challenge_id=new_challenge_id(),
                guild_id=guild_id,
                period=period,
                start=now,
            )
            try:
                await self._index_and_save(challenge)
            except DependencyError:
                continue
            report.created.append(challenge)
            logger.info("Scheduled %s challenge: %s", period, challenge.name)

        if report.expired:
            logger.info("Expired %d challenge(s)", len(report.expired))
        return report

    # -------------------------------------------------------------------
    # Progress
    # -------------------------------------------------------------------
    async def update_challenge_progress(
        self,
        user_id: int,
        requirement_type: RequirementType | str,
        increment: int,
        guild_id: int | None = None,
    ) -> list[ChallengeProgress]:
        """Add *increment* to every active challenge tracking *requirement_type*.

        Returns the progress records touched.  ``completed`` is set on the
        first crossing of the target and never cleared.
        """
        try:
            rtype = RequirementType(requirement_type)
        except ValueError as exc:
            raise ValidationError(f"Unknown requirement type: {requirement_type!r}") from exc
        if increment < 0:
            raise ValidationError("Progress increments must be non-negative.")
        if increment == 0:
            return []

        now = self._clock()
        touched: list[ChallengeProgress] = []
        for challenge in self._challenges.values():
            if not challenge.active or challenge.is_expired(now):
                continue
            if guild_id is not None and challenge.guild_id != guild_id:
                continue
            if not challenge.tracks(rtype):
                continue

            progress = self._store.get(user_id, challenge.id)
            if progress is None:
                progress = ChallengeProgress(user_id=user_id, challenge_id=challenge.id)
                self._store.put(progress)
            progress.values[str(rtype)] = progress.values.get(str(rtype), 0) + increment
            if not progress.completed and progress.meets(challenge):
                progress.completed = True
                progress.completed_at = now
                logger.info("User %s completed challenge %s", user_id, challenge.name)
            touched.append(progress)

        for progress in touched:
            try:
                await self._persistence.save_challenge_progress(progress)
            except Exception:
                logger.exception(
                    "Failed to persist progress for user %s", user_id,
                    extra={"challenge": progress.challenge_id},
                )
        return touched

    async def claim_challenge_rewards(self, user_id: int, challenge_id: str) -> RewardTemplate:
        """Mark the progress claimed, then issue the challenge rewards once.

        Raises
        ------
        NotFoundError
            No progress (or unknown challenge) for this user.
        ConflictError
            Not completed yet, or already claimed.
        DependencyError
            A reward port call failed after the claim was recorded.
        """
        progress = self._store.get(user_id, challenge_id)
        challenge = self._challenges.get(challenge_id)
        if progress is None or challenge is None:
            raise NotFoundError("No progress recorded for this challenge.")
        if not progress.completed:
            raise ConflictError("Challenge is not completed yet.")
        if progress.claimed:
            raise ConflictError("Rewards for this challenge were already claimed.")

        progress.claimed = True
        progress.claimed_at = self._clock()

        rewards = challenge.rewards
        try:
            if rewards.xp:
                await self._rewards.grant_experience(user_id, rewards.xp)
            if rewards.coins:
                await self._rewards.grant_currency(user_id, rewards.coins)
            for badge in rewards.badges:
                await self._rewards.grant_badge(user_id, badge)
        except Exception as exc:
            logger.exception(
                "Reward issuance failed for claim by user %s", user_id,
                extra={"challenge": challenge_id},
            )
            raise DependencyError("Could not issue challenge rewards.") from exc
        finally:
            try:
                await self._persistence.save_challenge_progress(progress)
            except Exception:
                logger.exception(
                    "Failed to persist claim for user %s", user_id,
                    extra={"challenge": challenge_id},
                )

        logger.info("User %s claimed %s (+%d XP, +%d coins)",
                    user_id, challenge.name, rewards.xp, rewards.coins)
        return rewards

    # -------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------
    def list_active_challenges(self, guild_id: int | None = None) -> list[Challenge]:
        now = self._clock()
        active = [
            c for c in self._challenges.values()
            if c.active and not c.is_expired(now)
            and (guild_id is None or c.guild_id == guild_id)
        ]
        return sorted(active, key=lambda c: c.end_date)

    def get_user_challenge_progress(self, user_id: int) -> list[tuple[Challenge, ChallengeProgress]]:
        """Pair each of the user's progress records with its challenge."""
        pairs = []
        for progress in self._store.for_user(user_id):
            challenge = self._challenges.get(progress.challenge_id)
            if challenge is not None:
                pairs.append((challenge, progress))
        return sorted(pairs, key=lambda pair: pair[0].end_date)

    def get_challenge(self, challenge_id: str) -> Challenge | None:
        return self._challenges.get(challenge_id)
