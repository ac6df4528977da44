"""
playhall.services.reward_service — SQL Reward Port
===================================================

Applies XP, coins and badges to ``users`` / ``user_badges``.

The module-level functions are synchronous and take an ``Engine``; the
:class:`SqlRewardPort` adapter awaits them through ``run_db`` so the bot
and the tests share one implementation.

XP grants re-run the level formula from :mod:`playhall.constants`; a
level-up is logged but never blocks the grant.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from sqlalchemy.orm import Session

from playhall.constants import level_for_xp
from playhall.database.engine import run_db
from playhall.database.models import User, UserBadge

if TYPE_CHECKING:
    from sqlalchemy import Engine

logger = logging.getLogger(__name__)


def get_or_create_user(session: Session, user_id: int, display_name: str | None = None) -> User:
    """Fetch or insert a User row, refreshing the display name when given."""
    user = session.get(User, user_id)
    if user is None:
        user = User(id=user_id, display_name=display_name or str(user_id), xp=0, level=1, coins=0)
        session.add(user)
        session.flush()
    elif display_name:
        user.display_name = display_name
    return user


def grant_experience(
    engine: Engine, user_id: int, amount: int, display_name: str | None = None
) -> User:
    """Add *amount* XP and recompute the level.  Returns the detached user."""
    with Session(engine, expire_on_commit=False) as session:
        user = get_or_create_user(session, user_id, display_name)
        user.xp += amount
        new_level = level_for_xp(user.xp)
        if new_level > user.level:
            logger.info("User %s levelled up: %d → %d", user_id, user.level, new_level)
            user.level = new_level
        session.commit()
        session.refresh(user)
        session.expunge(user)
        return user


def upsert_user_currency(
    engine: Engine, user_id: int, amount: int, display_name: str | None = None
) -> int:
    """Add *amount* coins (creating the user if needed).  Returns the new balance."""
    with Session(engine) as session:
        user = get_or_create_user(session, user_id, display_name)
        user.coins += amount
        balance = user.coins
        session.commit()
        return balance


def grant_badge(engine: Engine, user_id: int, badge_id: str) -> bool:
    """Record *badge_id* for *user_id*.  Returns False if already held."""
    with Session(engine) as session:
        get_or_create_user(session, user_id)
        if session.get(UserBadge, (user_id, badge_id)) is not None:
            return False
        session.add(UserBadge(user_id=user_id, badge_id=badge_id))
        session.commit()
        logger.info("Badge %r granted to user %s", badge_id, user_id)
        return True


def get_user_badges(engine: Engine, user_id: int) -> list[str]:
    with Session(engine) as session:
        user = session.get(User, user_id)
        if user is None:
            return []
        return sorted(b.badge_id for b in user.badges)


class SqlRewardPort:
    """Reward port backed by the ``users`` and ``user_badges`` tables."""

    def __init__(self, engine: Engine) -> None:
        self.engine = engine

    async def grant_experience(
        self, user_id: int, amount: int, *, display_name: str | None = None
    ) -> None:
        await run_db(grant_experience, self.engine, user_id, amount, display_name)

    async def grant_currency(
        self, user_id: int, amount: int, *, display_name: str | None = None
    ) -> None:
        await run_db(upsert_user_currency, self.engine, user_id, amount, display_name)

    async def grant_badge(self, user_id: int, badge_id: str) -> None:
        await run_db(grant_badge, self.engine, user_id, badge_id)
