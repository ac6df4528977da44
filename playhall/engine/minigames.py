"""
playhall.engine.minigames — Mini-Game Definitions & State Machines
===================================================================

Handler-registry implementation of the mini-game types.  Each game-type
tag maps to a :class:`GameType` state machine with the capability set::

    initialize → handle_event* → is_complete → compute_scores

The session lifecycle in :mod:`playhall.services.minigame_service` never
inspects a payload; new games are added by registering a new
:class:`GameType`, not by editing the lifecycle.

State machines are clock-driven: every phase boundary (reaction signal,
math problem timeout, memory round) is a timestamp stored in the payload
and evaluated against the event's ``at`` time.  The only engine timer is
the end-of-game timer.

This module is pure calculation — no database I/O, no Discord I/O.
"""

from __future__ import annotations

import enum
import random
from abc import ABC, abstractmethod
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Any, ClassVar

if TYPE_CHECKING:
    from playhall.engine.sessions import GameSession


# ---------------------------------------------------------------------------
# Definitions
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class RewardTemplate:
    xp: int = 0
    coins: int = 0
    badges: tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class MiniGameDefinition:
    """Immutable description of a playable mini-game."""

    id: str
    name: str
    description: str
    game_type: str
    difficulty: str
    duration: int  # seconds
    rewards: RewardTemplate
    options: Mapping[str, Any] = field(default_factory=dict)


DEFAULT_MINI_GAMES: tuple[MiniGameDefinition, ...] = (
    MiniGameDefinition(
        id="reaction_test", name="Reaction Test",
        description="Be the first to hit the button when the signal appears!",
        game_type="reaction", difficulty="easy", duration=30,
        rewards=RewardTemplate(xp=25, coins=10),
    ),
    MiniGameDefinition(
        id="typing_race", name="Typing Race",
        description="Type the phrase exactly, as fast as you can!",
        game_type="typing", difficulty="medium", duration=60,
        rewards=RewardTemplate(xp=50, coins=25),
    ),
    MiniGameDefinition(
        id="math_challenge", name="Math Challenge",
        description="Solve the arithmetic problems before anyone else!",
        game_type="math", difficulty="medium", duration=75,
        rewards=RewardTemplate(xp=40, coins=20),
        options={"problem_count": 5},
    ),
    MiniGameDefinition(
        id="memory_game", name="Memory Game",
        description="Memorize the growing emoji sequence and repeat it!",
        game_type="memory", difficulty="hard", duration=90,
        rewards=RewardTemplate(xp=75, coins=40),
        options={"initial_length": 3},
    ),
    MiniGameDefinition(
        id="lootbox", name="Virtual Lootbox",
        description="Open the boxes before they're gone!",
        game_type="lootbox", difficulty="easy", duration=60,
        rewards=RewardTemplate(xp=20, coins=15),
        options={"box_count": 5},
    ),
    MiniGameDefinition(
        id="airdrop", name="Airdrop",
        description="A care package is inbound. First to claim it wins.",
        game_type="airdrop", difficulty="easy", duration=60,
        rewards=RewardTemplate(xp=30, coins=20, badges=("airdrop_hunter",)),
    ),
)


def load_definitions(raw: Iterable[Mapping[str, Any]]) -> tuple[MiniGameDefinition, ...]:
    """Build definitions from config dicts (e.g. a ``mini_games:`` YAML list)."""
    definitions = []
    for entry in raw:
        rewards = entry.get("rewards") or {}
        definitions.append(MiniGameDefinition(
            id=entry["id"],
            name=entry["name"],
            description=entry.get("description", ""),
            game_type=entry["game_type"],
            difficulty=entry.get("difficulty", "medium"),
            duration=int(entry["duration"]),
            rewards=RewardTemplate(
                xp=int(rewards.get("xp", 0)),
                coins=int(rewards.get("coins", 0)),
                badges=tuple(rewards.get("badges") or ()),
            ),
            options=dict(entry.get("options") or {}),
        ))
    return tuple(definitions)


# ---------------------------------------------------------------------------
# Events & outcomes
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class GameEvent:
    """One player interaction routed to a state machine."""

    action: str
    user_id: int
    at: datetime
    value: Any = None


@dataclass(frozen=True, slots=True)
class EventOutcome:
    """Result of :meth:`GameType.handle_event`.

    ``accepted`` is False when the event was rejected without side effects.
    ``data`` is merged into the participant's payload by the engine.
    """

    accepted: bool
    reason: str
    points: int = 0
    data: dict[str, Any] = field(default_factory=dict)


def _accept(reason: str = "ok", points: int = 0, **data: Any) -> EventOutcome:
    return EventOutcome(accepted=True, reason=reason, points=points, data=data)


def _reject(reason: str) -> EventOutcome:
    return EventOutcome(accepted=False, reason=reason)


def _ms_between(start: datetime, end: datetime) -> int:
    return int((end - start) / timedelta(milliseconds=1))


# ---------------------------------------------------------------------------
# Capability interface
# ---------------------------------------------------------------------------
class GameType(ABC):
    """A pluggable mini-game state machine."""

    tag: ClassVar[str]

    @abstractmethod
    def initialize(
        self, definition: MiniGameDefinition, started_at: datetime, rng: random.Random
    ) -> Any:
        """Return the fresh payload for a new session."""

    @abstractmethod
    def handle_event(self, session: GameSession, event: GameEvent) -> EventOutcome:
        """Apply one player event to ``session.payload``."""

    @abstractmethod
    def is_complete(self, session: GameSession, now: datetime) -> bool:
        """True once nothing else can happen before the duration cap."""

    @abstractmethod
    def compute_scores(self, session: GameSession) -> dict[int, int]:
        """Final score per user id.  Users absent from the dict score 0."""

    def view(self, session: GameSession, now: datetime) -> dict[str, Any]:
        """Public snapshot for renderers.  Never leaks answers."""
        return {}


# ---------------------------------------------------------------------------
# reaction: waiting → armed → signaled → closed
# ---------------------------------------------------------------------------
class ReactionPhase(enum.StrEnum):
    WAITING = "waiting"
    ARMED = "armed"
    SIGNALED = "signaled"
    CLOSED = "closed"


@dataclass(slots=True)
class ReactionState:
    armed_at: datetime
    signal_at: datetime
    close_at: datetime
    emoji: str
    latencies: dict[int, int] = field(default_factory=dict)  # user → ms, press order
    false_starts: set[int] = field(default_factory=set)

    def phase(self, now: datetime) -> ReactionPhase:
        if now < self.armed_at:
            return ReactionPhase.WAITING
        if now < self.signal_at:
            return ReactionPhase.ARMED
        if now < self.close_at:
            return ReactionPhase.SIGNALED
        return ReactionPhase.CLOSED


class ReactionGame(GameType):
    """Press after the signal; fastest press wins.

    Players get a short lobby before the round arms.  The signal then fires
    after a random 3–8 s delay and the window stays open for 10 s.  Any
    press before the signal is a false start and is rejected.
    """

    tag = "reaction"
    LOBBY = timedelta(seconds=3)
    MIN_DELAY = 3.0
    MAX_DELAY = 8.0
    WINDOW = timedelta(seconds=10)
    WINNER_BONUS = 50
    EMOJIS = ("\U0001f525", "⚡", "\U0001f4a5", "\U0001f3af", "\U0001f680")

    def initialize(self, definition, started_at, rng):
        armed_at = started_at + self.LOBBY
        signal_at = armed_at + timedelta(seconds=rng.uniform(self.MIN_DELAY, self.MAX_DELAY))
        return ReactionState(
            armed_at=armed_at,
            signal_at=signal_at,
            close_at=signal_at + self.WINDOW,
            emoji=rng.choice(self.EMOJIS),
        )

    @staticmethod
    def latency_points(latency_ms: int) -> int:
        return max(10, 100 - latency_ms // 50)

    def handle_event(self, session, event):
        state: ReactionState = session.payload
        if event.action != "press":
            return _reject("unknown_action")
        phase = state.phase(event.at)
        if phase in (ReactionPhase.WAITING, ReactionPhase.ARMED):
            state.false_starts.add(event.user_id)
            return _reject("too_early")
        if phase == ReactionPhase.CLOSED:
            return _reject("closed")
        if event.user_id in state.latencies:
            return _reject("already_pressed")

        latency = _ms_between(state.signal_at, event.at)
        first = not state.latencies
        state.latencies[event.user_id] = latency
        points = self.latency_points(latency) + (self.WINNER_BONUS if first else 0)
        return _accept("winner" if first else "recorded", points, latency_ms=latency)

    def is_complete(self, session, now):
        return session.payload.phase(now) == ReactionPhase.CLOSED

    def compute_scores(self, session):
        state: ReactionState = session.payload
        scores: dict[int, int] = {}
        for i, (user_id, latency) in enumerate(state.latencies.items()):
            scores[user_id] = self.latency_points(latency) + (self.WINNER_BONUS if i == 0 else 0)
        return scores

    def view(self, session, now):
        state: ReactionState = session.payload
        view: dict[str, Any] = {
            "phase": str(state.phase(now)),
            "signal_in_ms": max(0, _ms_between(now, state.signal_at)),
        }
        if now >= state.signal_at:
            view["emoji"] = state.emoji
        return view


# ---------------------------------------------------------------------------
# typing: first exact match wins
# ---------------------------------------------------------------------------
TYPING_PHRASES: tuple[str, ...] = (
    "The quick brown fox jumps over the lazy dog",
    "Winner winner chicken dinner",
    "Good luck and have fun on the battlegrounds",
    "Loot fast, rotate early, and always watch the zone",
)


@dataclass(slots=True)
class TypingState:
    phrase: str
    started_at: datetime
    finishers: dict[int, tuple[int, int]] = field(default_factory=dict)  # user → (ms, wpm)


class TypingGame(GameType):
    tag = "typing"
    WINNER_BONUS = 50

    def initialize(self, definition, started_at, rng):
        phrases = tuple(definition.options.get("phrases") or TYPING_PHRASES)
        return TypingState(phrase=rng.choice(phrases), started_at=started_at)

    @staticmethod
    def words_per_minute(phrase: str, elapsed_ms: int) -> int:
        minutes = max(elapsed_ms, 1) / 60_000
        return round(len(phrase) / 5 / minutes)

    @staticmethod
    def finish_points(wpm: int, first: bool) -> int:
        return max(10, min(wpm, 200)) + (TypingGame.WINNER_BONUS if first else 0)

    def handle_event(self, session, event):
        state: TypingState = session.payload
        if event.action != "submit":
            return _reject("unknown_action")
        if event.user_id in state.finishers:
            return _reject("already_finished")
        if str(event.value or "").strip() != state.phrase:
            return _reject("mismatch")

        elapsed = _ms_between(state.started_at, event.at)
        wpm = self.words_per_minute(state.phrase, elapsed)
        first = not state.finishers
        state.finishers[event.user_id] = (elapsed, wpm)
        return _accept(
            "winner" if first else "finished",
            self.finish_points(wpm, first),
            time_ms=elapsed,
            wpm=wpm,
        )

    def is_complete(self, session, now):
        state: TypingState = session.payload
        if not state.finishers:
            return False
        return all(uid in state.finishers for uid in session.participants)

    def compute_scores(self, session):
        state: TypingState = session.payload
        return {
            uid: self.finish_points(wpm, i == 0)
            for i, (uid, (_ms, wpm)) in enumerate(state.finishers.items())
        }

    def view(self, session, now):
        state: TypingState = session.payload
        return {"phrase": state.phrase, "finished": len(state.finishers)}


# ---------------------------------------------------------------------------
# math: sequential problems, 15 s each
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class MathProblem:
    text: str
    answer: int


@dataclass(slots=True)
class MathState:
    problems: list[MathProblem]
    problem_started_at: datetime
    current: int = 0
    solved_by: dict[int, int] = field(default_factory=dict)  # problem index → user
    skipped: list[int] = field(default_factory=list)
    scores: dict[int, int] = field(default_factory=dict)


def generate_math_problems(count: int, rng: random.Random) -> list[MathProblem]:
    problems = []
    for _ in range(count):
        a, b = rng.randint(1, 50), rng.randint(1, 50)
        op = rng.choice("+-*")
        if op == "+":
            problems.append(MathProblem(f"{a} + {b}", a + b))
        elif op == "-":
            hi, lo = max(a, b), min(a, b)
            problems.append(MathProblem(f"{hi} - {lo}", hi - lo))
        else:
            problems.append(MathProblem(f"{a} × {b}", a * b))
    return problems


class MathGame(GameType):
    tag = "math"
    PROBLEM_WINDOW = timedelta(seconds=15)

    def initialize(self, definition, started_at, rng):
        count = int(definition.options.get("problem_count", 5))
        return MathState(
            problems=generate_math_problems(count, rng),
            problem_started_at=started_at,
        )

    @staticmethod
    def answer_points(response_ms: int) -> int:
        return max(100 - response_ms // 100, 10)

    def _advance(self, state: MathState, now: datetime) -> None:
        """Skip every problem whose window closed unanswered."""
        while (
            state.current < len(state.problems)
            and now >= state.problem_started_at + self.PROBLEM_WINDOW
        ):
            state.skipped.append(state.current)
            state.current += 1
            state.problem_started_at += self.PROBLEM_WINDOW

    def handle_event(self, session, event):
        state: MathState = session.payload
        if event.action != "answer":
            return _reject("unknown_action")
        self._advance(state, event.at)
        if state.current >= len(state.problems):
            return _reject("finished")
        try:
            value = int(str(event.value).strip())
        except (TypeError, ValueError):
            return _reject("not_a_number")
        problem = state.problems[state.current]
        if value != problem.answer:
            return _reject("wrong_answer")

        response = _ms_between(state.problem_started_at, event.at)
        points = self.answer_points(response)
        state.solved_by[state.current] = event.user_id
        state.scores[event.user_id] = state.scores.get(event.user_id, 0) + points
        state.current += 1
        state.problem_started_at = event.at
        return _accept("solved", points, response_ms=response)

    def is_complete(self, session, now):
        state: MathState = session.payload
        self._advance(state, now)
        return state.current >= len(state.problems)

    def compute_scores(self, session):
        return dict(session.payload.scores)

    def view(self, session, now):
        state: MathState = session.payload
        self._advance(state, now)
        if state.current >= len(state.problems):
            return {"problem": None, "remaining": 0}
        return {
            "problem": state.problems[state.current].text,
            "number": state.current + 1,
            "remaining": len(state.problems) - state.current,
        }


# ---------------------------------------------------------------------------
# memory: the sequence grows by one symbol per round
# ---------------------------------------------------------------------------
MEMORY_SYMBOLS: tuple[str, ...] = (
    "\U0001f3af", "\U0001f3ae", "\U0001f3c6", "⚡",
    "\U0001f525", "\U0001f48e", "\U0001f31f", "\U0001f38a",
)


@dataclass(slots=True)
class MemoryState:
    sequence: list[str]
    round_started_at: datetime
    rng: random.Random
    round: int = 1
    submitted: set[int] = field(default_factory=set)
    eliminated: set[int] = field(default_factory=set)
    scores: dict[int, int] = field(default_factory=dict)

    def grow(self, at: datetime) -> None:
        self.sequence.append(self.rng.choice(MEMORY_SYMBOLS))
        self.round += 1
        self.submitted.clear()
        self.round_started_at = at


class MemoryGame(GameType):
    """Reproduce the sequence in order; a mistake eliminates the player.

    Each round shows the sequence for 3 s + 1 s per symbol, then leaves a
    15 s answer window.  A round also ends early once every remaining
    player has answered.  The game runs until the duration cap or until
    every player is eliminated.
    """

    tag = "memory"
    ANSWER_WINDOW = 15
    POINTS_PER_SYMBOL = 10

    def initialize(self, definition, started_at, rng):
        length = int(definition.options.get("initial_length", 3))
        child = random.Random(rng.random())
        return MemoryState(
            sequence=[child.choice(MEMORY_SYMBOLS) for _ in range(length)],
            round_started_at=started_at,
            rng=child,
        )

    def round_length(self, state: MemoryState) -> timedelta:
        return timedelta(seconds=3 + len(state.sequence) + self.ANSWER_WINDOW)

    def _advance(self, state: MemoryState, now: datetime) -> None:
        while now >= state.round_started_at + self.round_length(state):
            state.grow(state.round_started_at + self.round_length(state))

    @staticmethod
    def _tokens(value: Any) -> list[str]:
        if isinstance(value, str):
            return value.replace(",", " ").split()
        return [str(v) for v in value or ()]

    def handle_event(self, session, event):
        state: MemoryState = session.payload
        if event.action != "repeat":
            return _reject("unknown_action")
        self._advance(state, event.at)
        uid = event.user_id
        if uid in state.eliminated:
            return _reject("eliminated")
        if uid in state.submitted:
            return _reject("already_submitted")

        state.submitted.add(uid)
        if self._tokens(event.value) == state.sequence:
            points = len(state.sequence) * self.POINTS_PER_SYMBOL
            state.scores[uid] = state.scores.get(uid, 0) + points
            outcome = _accept("correct", points, round=state.round)
        else:
            state.eliminated.add(uid)
            outcome = _accept("wrong_sequence", 0, round=state.round, eliminated=True)

        remaining = (set(session.participants) | {uid}) - state.eliminated
        if remaining and remaining <= state.submitted:
            state.grow(event.at)
        return outcome

    def is_complete(self, session, now):
        state: MemoryState = session.payload
        players = set(session.participants)
        return bool(players) and players <= state.eliminated

    def compute_scores(self, session):
        return dict(session.payload.scores)

    def view(self, session, now):
        state: MemoryState = session.payload
        self._advance(state, now)
        showing = now < state.round_started_at + timedelta(seconds=3 + len(state.sequence))
        return {
            "round": state.round,
            "length": len(state.sequence),
            "sequence": list(state.sequence) if showing else None,
        }


# ---------------------------------------------------------------------------
# lootbox: each box resolves once
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class LootItem:
    name: str
    rarity: str
    points: int


LOOT_TABLE: tuple[LootItem, ...] = (
    LootItem("AKM", "common", 10),
    LootItem("M416", "common", 10),
    LootItem("Med Kit", "common", 10),
    LootItem("Energy Drink", "common", 10),
    LootItem("AWM", "rare", 25),
    LootItem("Level 3 Helmet", "rare", 25),
    LootItem("Level 3 Vest", "rare", 25),
    LootItem("Groza", "epic", 50),
    LootItem("Ghillie Suit", "legendary", 100),
    LootItem("Pan", "meme", 5),
)


@dataclass(slots=True)
class LootboxState:
    box_count: int
    rng: random.Random
    opened: dict[int, tuple[int, LootItem]] = field(default_factory=dict)  # box → (user, item)


class LootboxGame(GameType):
    tag = "lootbox"

    def initialize(self, definition, started_at, rng):
        return LootboxState(
            box_count=int(definition.options.get("box_count", 5)),
            rng=random.Random(rng.random()),
        )

    def handle_event(self, session, event):
        state: LootboxState = session.payload
        if event.action != "open":
            return _reject("unknown_action")
        try:
            box = int(event.value)
        except (TypeError, ValueError):
            return _reject("invalid_box")
        if not 1 <= box <= state.box_count:
            return _reject("invalid_box")
        if box in state.opened:
            return _reject("box_already_opened")

        item = state.rng.choice(LOOT_TABLE)
        state.opened[box] = (event.user_id, item)
        return _accept("opened", item.points, item=item.name, rarity=item.rarity, box=box)

    def is_complete(self, session, now):
        state: LootboxState = session.payload
        return len(state.opened) >= state.box_count

    def compute_scores(self, session):
        scores: dict[int, int] = {}
        for user_id, item in session.payload.opened.values():
            scores[user_id] = scores.get(user_id, 0) + item.points
        return scores

    def view(self, session, now):
        state: LootboxState = session.payload
        return {
            "boxes": state.box_count,
            "opened": sorted(state.opened),
        }


# ---------------------------------------------------------------------------
# airdrop: one prize, first claim wins
# ---------------------------------------------------------------------------
@dataclass(slots=True)
class AirdropState:
    drop_at: datetime
    winner: int | None = None
    claim_ms: int | None = None


class AirdropGame(GameType):
    tag = "airdrop"
    MIN_DELAY = 5.0
    MAX_DELAY = 15.0
    PRIZE_POINTS = 100

    def initialize(self, definition, started_at, rng):
        delay = rng.uniform(self.MIN_DELAY, self.MAX_DELAY)
        return AirdropState(drop_at=started_at + timedelta(seconds=delay))

    def handle_event(self, session, event):
        state: AirdropState = session.payload
        if event.action != "claim":
            return _reject("unknown_action")
        if event.at < state.drop_at:
            return _reject("not_dropped")
        if state.winner is not None:
            return _reject("already_claimed")
        state.winner = event.user_id
        state.claim_ms = _ms_between(state.drop_at, event.at)
        return _accept("claimed", self.PRIZE_POINTS, claim_ms=state.claim_ms)

    def is_complete(self, session, now):
        return session.payload.winner is not None

    def compute_scores(self, session):
        state: AirdropState = session.payload
        return {state.winner: self.PRIZE_POINTS} if state.winner is not None else {}

    def view(self, session, now):
        state: AirdropState = session.payload
        return {"dropped": now >= state.drop_at, "claimed": state.winner is not None}


# ---------------------------------------------------------------------------
# Handler registry
# ---------------------------------------------------------------------------
GAME_TYPES: dict[str, GameType] = {
    game.tag: game
    for game in (
        ReactionGame(),
        TypingGame(),
        MathGame(),
        MemoryGame(),
        LootboxGame(),
        AirdropGame(),
    )
}
