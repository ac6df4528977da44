"""
playhall.database.engine — Database Connection & Async Helper
==============================================================

SQLAlchemy + psycopg2 is synchronous while the bot runs on an ``asyncio``
event loop.  Every port implementation therefore writes plain sync
functions and awaits them through :func:`run_db`, which hands them to
``asyncio.to_thread``.  The loop never blocks on a query and there is no
async driver to manage.

Usage::

    from playhall.database.engine import create_db_engine, init_db, run_db

    engine = create_db_engine()          # reads DATABASE_URL from .env
    init_db(engine)                      # CREATE TABLE IF NOT EXISTS …

    # Inside an async port method:
    balance = await run_db(upsert_user_currency, engine, user_id, 50)
"""

from __future__ import annotations

import asyncio
import logging
import os
from collections.abc import Callable
from contextlib import contextmanager
from typing import ParamSpec, TypeVar

from sqlalchemy import Engine, create_engine
from sqlalchemy.orm import Session

from playhall.database.models import Base

logger = logging.getLogger(__name__)

P = ParamSpec("P")
T = TypeVar("T")


def create_db_engine(url: str | None = None) -> Engine:
    """Build an :class:`Engine` from *url* or the ``DATABASE_URL`` env var.

    Raises
    ------
    RuntimeError
        If no URL is given and ``DATABASE_URL`` is not set.
    """
    url = url or os.getenv("DATABASE_URL")
    if not url:
        raise RuntimeError(
            "DATABASE_URL is not set.  "
            "Copy .env.example → .env and set a valid PostgreSQL URL."
        )

    engine = create_engine(
        url,
        echo=False,
        pool_size=5,
        max_overflow=10,
        pool_pre_ping=True,
        pool_timeout=10,
        pool_recycle=3600,
    )
    logger.info("Database engine created → %s", engine.url.host)
    return engine


def init_db(engine: Engine) -> None:
    """Create any missing tables.

    Production schemas are managed by Alembic (``alembic upgrade head``);
    this is the fallback for dev and test databases.
    """
    Base.metadata.create_all(engine)
    logger.info("Database tables verified / created.")


@contextmanager
def get_session(engine: Engine):
    """Yield a :class:`Session` that commits on success and rolls back on error."""
    session = Session(engine)
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


async def run_db(func: Callable[P, T], *args: P.args, **kwargs: P.kwargs) -> T:
    """Run a synchronous database function on a background thread."""
    return await asyncio.to_thread(func, *args, **kwargs)
