"""
playhall.errors — Typed Failure Taxonomy
=========================================

Every engine operation either returns a result object or raises one of
these.  Callers (cogs, dashboards) map them to user-facing replies.

- :class:`ValidationError` — malformed input, raised before any mutation.
- :class:`ConflictError` — the request clashes with current state
  (occupied scope, late join, already claimed).
- :class:`NotFoundError` — unknown session, game type, or challenge.
- :class:`DependencyError` — a reward / ranking / persistence port failed.
"""

from __future__ import annotations


class GameError(Exception):
    """Base class for all engine failures."""

    code = "game_error"

    def __init__(self, message: str, *, details: dict | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}


class ValidationError(GameError):
    code = "validation_error"


class ConflictError(GameError):
    code = "conflict"


class NotFoundError(GameError):
    code = "not_found"


class NoQuestionsAvailable(NotFoundError):
    code = "no_questions_available"


class UnknownGameType(NotFoundError):
    code = "unknown_game_type"


class DependencyError(GameError):
    code = "dependency_error"
