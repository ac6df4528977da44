"""
playhall.engine.sessions — Live Session Models
===============================================

Plain dataclasses for the mutable in-memory state of quizzes and
mini-games, plus the validated :class:`QuizSettings` schema.

No I/O lives here.  Engines in :mod:`playhall.services` own mutation; the
:class:`~playhall.engine.registry.SessionRegistry` owns existence.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, StrictBool
from pydantic import ValidationError as PydanticValidationError
from pydantic.alias_generators import to_camel

from playhall.engine.questions import QuizQuestion
from playhall.engine.registry import Scope, ScopeKey, SessionKind
from playhall.errors import ValidationError

QUIZ_STALE_AFTER = timedelta(hours=1)
QUIZ_MAX_PARTICIPANTS = 50
QUIZ_JOIN_WINDOW = timedelta(seconds=20)  # lobby before the first question


def utcnow() -> datetime:
    return datetime.now(UTC)


# ---------------------------------------------------------------------------
# Quiz settings (validated before any state mutation)
# ---------------------------------------------------------------------------
class QuizSettings(BaseModel):
    """Host-chosen quiz parameters.

    Accepts snake_case or camelCase keys (``time_per_question`` or
    ``timePerQuestion``).
    """

    model_config = ConfigDict(
        frozen=True,
        extra="forbid",
        alias_generator=to_camel,
        populate_by_name=True,
    )

    question_count: int = Field(default=10, ge=1, le=50)
    time_per_question: int = Field(default=30, ge=10, le=300)
    category: Literal["pubg", "general", "gaming", "esports", "mixed"] = "mixed"
    difficulty: Literal["easy", "medium", "hard", "mixed"] = "mixed"
    allow_multiple_attempts: StrictBool = False
    show_correct_answer: StrictBool = True


def parse_quiz_settings(data: QuizSettings | Mapping[str, Any] | None) -> QuizSettings:
    """Coerce *data* into :class:`QuizSettings` or raise our ValidationError."""
    if isinstance(data, QuizSettings):
        return data
    try:
        return QuizSettings.model_validate(dict(data or {}))
    except PydanticValidationError as exc:
        raise ValidationError(
            "Invalid quiz settings.",
            details={"errors": exc.errors(include_url=False)},
        ) from exc


# ---------------------------------------------------------------------------
# Quiz
# ---------------------------------------------------------------------------
@dataclass(slots=True)
class QuizParticipant:
    user_id: int
    display_name: str
    score: int = 0
    correct_answers: int = 0
    total_answers: int = 0
    streak: int = 0
    best_streak: int = 0
    last_answer_at: datetime | None = None

    @property
    def accuracy(self) -> float:
        if self.total_answers == 0:
            return 0.0
        return self.correct_answers / self.total_answers


@dataclass(slots=True)
class QuizSession:
    id: str
    scope: Scope
    host_id: int
    questions: list[QuizQuestion]
    settings: QuizSettings
    started_at: datetime = field(default_factory=utcnow)
    current_index: int = 0
    active: bool = True
    participants: dict[int, QuizParticipant] = field(default_factory=dict)
    # (user_id, question_index) pairs already answered
    answered: set[tuple[int, int]] = field(default_factory=set)
    stale_after: timedelta = QUIZ_STALE_AFTER

    @property
    def scope_key(self) -> ScopeKey:
        return self.scope.key(SessionKind.QUIZ)

    @property
    def expires_at(self) -> datetime:
        return self.started_at + self.stale_after

    @property
    def current_question(self) -> QuizQuestion | None:
        if 0 <= self.current_index < len(self.questions):
            return self.questions[self.current_index]
        return None


@dataclass(frozen=True, slots=True)
class AnswerResult:
    correct: bool
    points_awarded: int
    new_streak: int


# ---------------------------------------------------------------------------
# Mini-game
# ---------------------------------------------------------------------------
@dataclass(slots=True)
class GameParticipant:
    user_id: int
    display_name: str
    joined_at: datetime = field(default_factory=utcnow)
    score: int = 0
    data: dict[str, Any] = field(default_factory=dict)


@dataclass(slots=True)
class GameSession:
    id: str
    game_id: str
    game_type: str
    scope: Scope
    host_id: int
    started_at: datetime
    ends_at: datetime
    payload: Any = None  # owned by the game-type state machine
    active: bool = True
    participants: dict[int, GameParticipant] = field(default_factory=dict)

    @property
    def scope_key(self) -> ScopeKey:
        return self.scope.key(SessionKind.MINI_GAME)

    @property
    def expires_at(self) -> datetime:
        return self.ends_at


# ---------------------------------------------------------------------------
# End-of-session results
# ---------------------------------------------------------------------------
@dataclass(slots=True)
class Standing:
    """One participant's final position and payout."""

    user_id: int
    display_name: str
    rank: int
    score: int
    xp: int = 0
    coins: int = 0
    badges: list[str] = field(default_factory=list)
    tier: str | None = None
    correct_answers: int = 0
    total_answers: int = 0
    reward_error: str | None = None


@dataclass(slots=True)
class SessionResult:
    session_id: str
    kind: SessionKind
    scope: Scope
    standings: list[Standing] = field(default_factory=list)

    @property
    def winner(self) -> Standing | None:
        if self.standings and self.standings[0].score > 0:
            return self.standings[0]
        return None
