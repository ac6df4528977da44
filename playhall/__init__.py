"""
Playhall — Quiz, Mini-Game & Challenge Engine for Discord
==========================================================
Runs many independent, time-bounded game sessions per community: timed
trivia quizzes, short skill mini-games, and daily / weekly / monthly
challenges.  Enforces one live session of each kind per channel, pays
out performance-based XP, coins and badges, and drives an hourly
challenge scheduler — all on a single asyncio event loop.

Package layout::

    playhall/
    ├── config.py          # YAML → typed Python config
    ├── constants.py       # Level formula, badge ids, presentation
    ├── errors.py          # Typed failure taxonomy
    ├── engine/            # Pure logic — no I/O
    │   ├── registry.py    # Live session arena + scope index
    │   ├── sessions.py    # Session dataclasses + QuizSettings
    │   ├── questions.py   # Question bank + selection
    │   ├── scoring.py     # Answer points + payouts
    │   ├── minigames.py   # Pluggable mini-game state machines
    │   └── challenges.py  # Challenge model, catalogs, calendar
    ├── services/          # Async orchestration + SQL ports
    │   ├── ports.py       # Reward / Ranking / Persistence protocols
    │   ├── quiz_service.py
    │   ├── minigame_service.py
    │   ├── challenge_service.py
    │   ├── game_hub.py    # Façade over all engines
    │   ├── reward_service.py
    │   ├── ranking_service.py
    │   └── persistence_service.py
    ├── database/
    │   ├── engine.py      # SQLAlchemy engine + run_db bridge
    │   └── models.py      # ORM models
    └── bot/
        ├── core.py        # Bot subclass, cog loader
        ├── embeds.py      # Embed builders
        └── cogs/          # quiz, minigames, challenges, tasks
"""

__version__ = "0.1.0"
