"""
playhall.engine.registry — In-Memory Session Registry
======================================================

The shared index of every live quiz and mini-game session.

Sessions are stored in an arena keyed by id, with a secondary index keyed
by :class:`ScopeKey` (session kind + guild + channel).  Quiz and mini-game
uniqueness are therefore independent per channel.

Every method here is synchronous.  ``register`` performs the existence
check and the insert in one call, so two concurrently dispatched
``start_*`` coroutines can never both claim the same scope.
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Protocol

logger = logging.getLogger(__name__)


class SessionKind(enum.StrEnum):
    QUIZ = "quiz"
    MINI_GAME = "mini_game"


@dataclass(frozen=True, slots=True)
class Scope:
    """The (guild, channel) pair a session is bound to."""

    guild_id: int
    channel_id: int

    def key(self, kind: SessionKind) -> ScopeKey:
        return ScopeKey(kind=kind, guild_id=self.guild_id, channel_id=self.channel_id)


@dataclass(frozen=True, slots=True)
class ScopeKey:
    kind: SessionKind
    guild_id: int
    channel_id: int


class LiveSession(Protocol):
    """What the registry needs from a session."""

    id: str
    scope_key: ScopeKey
    active: bool

    @property
    def expires_at(self) -> datetime: ...


class SessionRegistry:
    """Arena of live sessions indexed by id and by scope.

    Removal is always explicit: ``remove`` from the owning engine on
    session end, or ``cleanup`` as a leak guard for sessions that never
    ended properly.
    """

    def __init__(self) -> None:
        self._by_id: dict[str, LiveSession] = {}
        self._by_scope: dict[ScopeKey, str] = {}

    def register(self, scope_key: ScopeKey, session: LiveSession) -> bool:
        """Insert *session* under *scope_key*.

        Returns False (and leaves the registry untouched) if the scope is
        already occupied or the id is already known.
        """
        if scope_key in self._by_scope or session.id in self._by_id:
            return False
        self._by_id[session.id] = session
        self._by_scope[scope_key] = session.id
        return True

    def lookup_by_scope(self, scope_key: ScopeKey) -> LiveSession | None:
        session_id = self._by_scope.get(scope_key)
        if session_id is None:
            return None
        return self._by_id.get(session_id)

    def lookup_by_id(self, session_id: str) -> LiveSession | None:
        return self._by_id.get(session_id)

    def remove(self, session_id: str) -> LiveSession | None:
        """Drop *session_id* from both indexes.  Returns the removed session."""
        session = self._by_id.pop(session_id, None)
        if session is None:
            return None
        if self._by_scope.get(session.scope_key) == session_id:
            del self._by_scope[session.scope_key]
        return session

    def sessions(self, kind: SessionKind | None = None) -> list[LiveSession]:
        """Snapshot of live sessions, optionally filtered by kind."""
        return [
            s for s in self._by_id.values()
            if kind is None or s.scope_key.kind == kind
        ]

    def cleanup(self, now: datetime | None = None) -> list[str]:
        """Remove every session whose ``expires_at`` has passed.

        Mini-games expire at their end time, quizzes one hour after start.
        This only frees memory; reward accounting belongs to the engines.
        Swept sessions are marked inactive so late callers see them as ended.
        """
        now = now or datetime.now(UTC)
        stale = [sid for sid, s in self._by_id.items() if s.expires_at < now]
        for sid in stale:
            session = self.remove(sid)
            session.active = False
        if stale:
            logger.info("Registry cleanup removed %d stale session(s): %s", len(stale), stale)
        return stale

    def __len__(self) -> int:
        return len(self._by_id)

    def __contains__(self, session_id: object) -> bool:
        return session_id in self._by_id
