"""
playhall.engine.challenges — Challenge Model, Catalogs & Calendar
==================================================================

Everything about challenges that does not touch a port:

- :class:`ChallengeCreate` — pydantic schema validated before any mutation
- :class:`Challenge` / :class:`ChallengeProgress` — live state
- daily / weekly / monthly catalogs drawn from by the scheduler
- calendar helpers for the scheduler's boundary checks
- :class:`ProgressStore` — injected (user, challenge) → progress store

Progress completion is one-way: once ``completed`` is set it is never
cleared, and ``claimed`` gates reward issuance.
"""

from __future__ import annotations

import calendar
import enum
import random
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from typing import Any, Protocol

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic import ValidationError as PydanticValidationError
from pydantic.alias_generators import to_camel

from playhall.engine.minigames import RewardTemplate
from playhall.errors import ValidationError

TARGET_MAX = 10_000
REWARD_MAX = 10_000


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------
class RequirementType(enum.StrEnum):
    """Closed set of measurable activities a challenge can track."""
    KILLS = "kills"
    WINS = "wins"
    GAMES = "games"
    MESSAGES = "messages"
    VOICE_MINUTES = "voice_minutes"
    QUIZ_SCORE = "quiz_score"
    MINI_GAME_WINS = "mini_game_wins"


class PeriodKind(enum.StrEnum):
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    SPECIAL = "special"


class Category(enum.StrEnum):
    PUBG = "pubg"
    SOCIAL = "social"
    GAMING = "gaming"
    PARTICIPATION = "participation"


# ---------------------------------------------------------------------------
# Input schema
# ---------------------------------------------------------------------------
class _Schema(BaseModel):
    model_config = ConfigDict(
        extra="forbid",
        alias_generator=to_camel,
        populate_by_name=True,
    )


class RequirementIn(_Schema):
    type: RequirementType
    target: int = Field(ge=1, le=TARGET_MAX)


class RewardsIn(_Schema):
    xp: int = Field(default=0, ge=0, le=REWARD_MAX)
    coins: int = Field(default=0, ge=0, le=REWARD_MAX)
    badges: list[str] = Field(default_factory=list)


class ChallengeCreate(_Schema):
    """Validated payload for :meth:`ChallengeEngine.create_challenge`."""

    name: str = Field(min_length=1, max_length=100)
    description: str = Field(min_length=1, max_length=500)
    period: PeriodKind
    category: Category
    requirements: list[RequirementIn] = Field(min_length=1)
    rewards: RewardsIn = Field(default_factory=RewardsIn)
    start_date: datetime
    end_date: datetime

    @field_validator("start_date", "end_date")
    @classmethod
    def _assume_utc(cls, value: datetime) -> datetime:
        return value if value.tzinfo else value.replace(tzinfo=UTC)

    @model_validator(mode="after")
    def _check_window(self) -> ChallengeCreate:
        if self.end_date <= self.start_date:
            raise ValueError("end_date must be after start_date")
        return self


def parse_challenge_create(data: ChallengeCreate | Mapping[str, Any]) -> ChallengeCreate:
    """Coerce *data* into :class:`ChallengeCreate` or raise our ValidationError."""
    if isinstance(data, ChallengeCreate):
        return data
    try:
        return ChallengeCreate.model_validate(dict(data))
    except PydanticValidationError as exc:
        raise ValidationError(
            "Invalid challenge.",
            details={"errors": exc.errors(include_url=False, include_context=False)},
        ) from exc


# ---------------------------------------------------------------------------
# Live state
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class ChallengeRequirement:
    type: RequirementType
    target: int


@dataclass(slots=True)
class Challenge:
    id: str
    guild_id: int
    name: str
    description: str
    period: PeriodKind
    category: Category
    requirements: tuple[ChallengeRequirement, ...]
    rewards: RewardTemplate
    start_date: datetime
    end_date: datetime
    active: bool = True

    def tracks(self, requirement_type: RequirementType) -> bool:
        return any(r.type == requirement_type for r in self.requirements)

    def is_expired(self, now: datetime) -> bool:
        return self.end_date <= now

    @classmethod
    def from_create(cls, challenge_id: str, guild_id: int, data: ChallengeCreate) -> Challenge:
        return cls(
            id=challenge_id,
            guild_id=guild_id,
            name=data.name,
            description=data.description,
            period=data.period,
            category=data.category,
            requirements=tuple(
                ChallengeRequirement(type=r.type, target=r.target) for r in data.requirements
            ),
            rewards=RewardTemplate(
                xp=data.rewards.xp,
                coins=data.rewards.coins,
                badges=tuple(data.rewards.badges),
            ),
            start_date=data.start_date,
            end_date=data.end_date,
        )


@dataclass(slots=True)
class ChallengeProgress:
    user_id: int
    challenge_id: str
    values: dict[str, int] = field(default_factory=dict)
    completed: bool = False
    completed_at: datetime | None = None
    claimed: bool = False
    claimed_at: datetime | None = None

    def meets(self, challenge: Challenge) -> bool:
        """True when every requirement has reached its target."""
        return all(self.values.get(r.type, 0) >= r.target for r in challenge.requirements)


# ---------------------------------------------------------------------------
# Progress store
# ---------------------------------------------------------------------------
class ProgressStore(Protocol):
    def get(self, user_id: int, challenge_id: str) -> ChallengeProgress | None: ...
    def put(self, progress: ChallengeProgress) -> None: ...
    def for_user(self, user_id: int) -> list[ChallengeProgress]: ...


class InMemoryProgressStore:
    """Process-local store keyed by (user, challenge)."""

    def __init__(self) -> None:
        self._items: dict[tuple[int, str], ChallengeProgress] = {}

    def get(self, user_id: int, challenge_id: str) -> ChallengeProgress | None:
        return self._items.get((user_id, challenge_id))

    def put(self, progress: ChallengeProgress) -> None:
        self._items[(progress.user_id, progress.challenge_id)] = progress

    def for_user(self, user_id: int) -> list[ChallengeProgress]:
        return [p for (uid, _), p in self._items.items() if uid == user_id]

    def __len__(self) -> int:
        return len(self._items)


# ---------------------------------------------------------------------------
# Catalogs
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class ChallengeTemplate:
    name: str
    description: str
    category: Category
    requirements: tuple[ChallengeRequirement, ...]
    rewards: RewardTemplate


def _template(
    name: str,
    description: str,
    category: Category,
    rtype: RequirementType,
    target: int,
    xp: int,
    coins: int,
    badges: tuple[str, ...] = (),
) -> ChallengeTemplate:
    return ChallengeTemplate(
        name=name,
        description=description,
        category=category,
        requirements=(ChallengeRequirement(rtype, target),),
        rewards=RewardTemplate(xp=xp, coins=coins, badges=badges),
    )


DAILY_CATALOG: tuple[ChallengeTemplate, ...] = (
    _template("Daily Hunter", "Get 5 kills in PUBG matches today.",
              Category.PUBG, RequirementType.KILLS, 5, 100, 50),
    _template("Socializer", "Send 20 messages in the community today.",
              Category.SOCIAL, RequirementType.MESSAGES, 20, 75, 30),
    _template("Quiz Master", "Score 10 points in quizzes today.",
              Category.PARTICIPATION, RequirementType.QUIZ_SCORE, 10, 125, 60),
)

WEEKLY_CATALOG: tuple[ChallengeTemplate, ...] = (
    _template("Weekly Warrior", "Win 3 PUBG matches this week.",
              Category.PUBG, RequirementType.WINS, 3, 300, 150, ("weekly_winner",)),
    _template("Voice Regular", "Spend 120 minutes in voice channels this week.",
              Category.SOCIAL, RequirementType.VOICE_MINUTES, 120, 250, 100),
)

MONTHLY_CATALOG: tuple[ChallengeTemplate, ...] = (
    _template("Monthly Legend", "Play 50 games this month.",
              Category.GAMING, RequirementType.GAMES, 50, 1000, 500, ("monthly_legend",)),
    _template("Game Master", "Win 20 mini-games this month.",
              Category.PARTICIPATION, RequirementType.MINI_GAME_WINS, 20, 800, 400,
              ("game_master",)),
)

CATALOGS: dict[PeriodKind, tuple[ChallengeTemplate, ...]] = {
    PeriodKind.DAILY: DAILY_CATALOG,
    PeriodKind.WEEKLY: WEEKLY_CATALOG,
    PeriodKind.MONTHLY: MONTHLY_CATALOG,
}


def draw_template(period: PeriodKind, rng: random.Random) -> ChallengeTemplate:
    return rng.choice(CATALOGS[period])


def challenge_from_template(
    template: ChallengeTemplate,
    *,
    challenge_id: str,
    guild_id: int,
    period: PeriodKind,
    start: datetime,
) -> Challenge:
    return Challenge(
        id=challenge_id,
        guild_id=guild_id,
        name=template.name,
        description=template.description,
        period=period,
        category=template.category,
        requirements=template.requirements,
        rewards=template.rewards,
        start_date=start,
        end_date=period_end(period, start),
    )


# ---------------------------------------------------------------------------
# Calendar helpers
# ---------------------------------------------------------------------------
def add_month(dt: datetime) -> datetime:
    """Same day-of-month one calendar month later, clamped to month length."""
    year, month = (dt.year + 1, 1) if dt.month == 12 else (dt.year, dt.month + 1)
    day = min(dt.day, calendar.monthrange(year, month)[1])
    return dt.replace(year=year, month=month, day=day)


def period_end(period: PeriodKind, start: datetime) -> datetime:
    if period == PeriodKind.DAILY:
        return start + timedelta(hours=24)
    if period == PeriodKind.WEEKLY:
        return start + timedelta(days=7)
    if period == PeriodKind.MONTHLY:
        return add_month(start)
    raise ValueError(f"No default window for {period!r} challenges")


def same_day(a: datetime, b: datetime) -> bool:
    return a.date() == b.date()


def same_iso_week(a: datetime, b: datetime) -> bool:
    return a.isocalendar()[:2] == b.isocalendar()[:2]


def same_month(a: datetime, b: datetime) -> bool:
    return (a.year, a.month) == (b.year, b.month)


SAME_PERIOD = {
    PeriodKind.DAILY: same_day,
    PeriodKind.WEEKLY: same_iso_week,
    PeriodKind.MONTHLY: same_month,
}
