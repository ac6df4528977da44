"""
playhall.config — YAML Configuration Loader
============================================

Reads ``config.yaml`` for identity and gameplay-tuning settings.  Secrets
(``DISCORD_TOKEN``, ``DATABASE_URL``) stay in ``.env`` and are never
written here.

Usage::

    from playhall.config import load_config

    cfg = load_config()          # reads ./config.yaml by default
    print(cfg.community_name)    # "Hawk Arena"
    print(cfg.quiz_max_participants)  # 50
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

import yaml

from playhall.engine.minigames import MiniGameDefinition, load_definitions


# ---------------------------------------------------------------------------
# Typed settings object
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class PlayhallConfig:
    """Immutable configuration loaded from ``config.yaml``.

    Identity and Discord keys are required.  Gameplay knobs fall back to
    the defaults below when absent.
    """

    # Identity
    community_name: str

    # Discord
    bot_prefix: str
    guild_id: int  # Primary guild snowflake (challenge scheduler scope)
    admin_role_id: int  # Role allowed to force-end sessions / create challenges

    # Optional
    announce_channel_id: int | None = None  # Where challenge completions are posted

    # Gameplay
    quiz_max_participants: int = 50
    quiz_stale_after_minutes: int = 60
    cleanup_interval_minutes: int = 5
    weekly_anchor_weekday: int = 0  # Monday; matches datetime.weekday()

    # Extra or overriding mini-game definitions (``mini_games:`` list)
    mini_games: tuple[MiniGameDefinition, ...] = ()


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------
def load_config(path: str | Path = "config.yaml") -> PlayhallConfig:
    """Read *path* and return a :class:`PlayhallConfig` instance.

    Parameters
    ----------
    path:
        Filesystem path to the YAML configuration file.
        Defaults to ``config.yaml`` in the current working directory.

    Raises
    ------
    FileNotFoundError
        If the YAML file doesn't exist.
    KeyError
        If a required key is missing from the YAML file or from a
        ``mini_games`` entry.
    ValueError
        If ``weekly_anchor_weekday`` is outside 0–6.
    """
    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(
            f"Configuration file not found: {config_path.resolve()}\n"
            "Hint: copy config.yaml.example → config.yaml and edit it."
        )

    with open(config_path, encoding="utf-8") as fh:
        raw: dict = yaml.safe_load(fh) or {}

    gameplay: dict = raw.get("gameplay") or {}
    anchor = int(gameplay.get("weekly_anchor_weekday", 0))
    if not 0 <= anchor <= 6:
        raise ValueError(f"weekly_anchor_weekday must be 0-6, got {anchor}")

    return PlayhallConfig(
        community_name=raw["community_name"],
        bot_prefix=raw["bot_prefix"],
        guild_id=int(raw["guild_id"]),
        admin_role_id=int(raw["admin_role_id"]),
        announce_channel_id=(
            int(raw["announce_channel_id"]) if raw.get("announce_channel_id") else None
        ),
        quiz_max_participants=int(gameplay.get("quiz_max_participants", 50)),
        quiz_stale_after_minutes=int(gameplay.get("quiz_stale_after_minutes", 60)),
        cleanup_interval_minutes=int(gameplay.get("cleanup_interval_minutes", 5)),
        weekly_anchor_weekday=anchor,
        mini_games=load_definitions(raw.get("mini_games") or ()),
    )
