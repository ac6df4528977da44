"""Create users, challenge, session and game-stat tables

Revision ID: 5e2c7a9d1b40
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""
from collections.abc import Sequence

import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "5e2c7a9d1b40"
down_revision: str | Sequence[str] | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def _created_at(name: str = "created_at") -> sa.Column:
    return sa.Column(
        name, sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()
    )


def upgrade() -> None:
    """Create the full Playhall schema."""
    op.create_table(
        "users",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column("display_name", sa.String(100), nullable=False),
        sa.Column("xp", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("level", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("coins", sa.Integer(), nullable=False, server_default="0"),
        _created_at(),
        _created_at("updated_at"),
    )
    op.create_index("ix_users_xp_desc", "users", ["xp"])

    op.create_table(
        "user_badges",
        sa.Column(
            "user_id", sa.BigInteger(),
            sa.ForeignKey("users.id", ondelete="CASCADE"), primary_key=True,
        ),
        sa.Column("badge_id", sa.String(64), primary_key=True),
        _created_at("earned_at"),
    )

    op.create_table(
        "challenges",
        sa.Column("id", sa.String(40), primary_key=True),
        sa.Column("guild_id", sa.BigInteger(), nullable=False),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("period", sa.String(16), nullable=False),
        sa.Column("category", sa.String(16), nullable=False),
        sa.Column("requirements", postgresql.JSONB(), nullable=False),
        sa.Column("rewards", postgresql.JSONB(), nullable=False),
        sa.Column("start_date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("end_date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("active", sa.Boolean(), nullable=False, server_default=sa.true()),
        _created_at(),
    )
    op.create_index("ix_challenges_guild_active", "challenges", ["guild_id", "active"])

    op.create_table(
        "challenge_progress",
        sa.Column("user_id", sa.BigInteger(), primary_key=True),
        sa.Column(
            "challenge_id", sa.String(40),
            sa.ForeignKey("challenges.id", ondelete="CASCADE"), primary_key=True,
        ),
        sa.Column("values", postgresql.JSONB(), nullable=False, server_default="{}"),
        sa.Column("completed", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("claimed", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("claimed_at", sa.DateTime(timezone=True), nullable=True),
    )

    op.create_table(
        "session_records",
        sa.Column("id", sa.String(40), primary_key=True),
        sa.Column("kind", sa.String(16), nullable=False),
        sa.Column("game_id", sa.String(64), nullable=True),
        sa.Column("guild_id", sa.BigInteger(), nullable=False),
        sa.Column("channel_id", sa.BigInteger(), nullable=False),
        sa.Column("host_id", sa.BigInteger(), nullable=False),
        sa.Column("settings", postgresql.JSONB(), nullable=False, server_default="{}"),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("ended_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_session_records_scope", "session_records", ["guild_id", "channel_id"])

    op.create_table(
        "session_results",
        sa.Column("id", sa.BigInteger(), primary_key=True, autoincrement=True),
        sa.Column(
            "session_id", sa.String(40),
            sa.ForeignKey("session_records.id", ondelete="CASCADE"), nullable=False,
        ),
        sa.Column("kind", sa.String(16), nullable=False),
        sa.Column("user_id", sa.BigInteger(), nullable=False),
        sa.Column("display_name", sa.String(100), nullable=False),
        sa.Column("rank", sa.Integer(), nullable=False),
        sa.Column("score", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("xp", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("coins", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("badges", postgresql.JSONB(), nullable=False, server_default="[]"),
        sa.Column("details", postgresql.JSONB(), nullable=False, server_default="{}"),
        _created_at(),
        sa.UniqueConstraint("session_id", "user_id", name="uq_session_results_user"),
    )
    op.create_index("ix_session_results_user", "session_results", ["user_id"])

    op.create_table(
        "game_stats",
        sa.Column("guild_id", sa.BigInteger(), primary_key=True),
        sa.Column("user_id", sa.BigInteger(), primary_key=True),
        sa.Column("quizzes_played", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("quiz_score", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("quiz_correct", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("quiz_questions", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("mini_games_played", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("mini_game_wins", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("mini_game_score", sa.Integer(), nullable=False, server_default="0"),
        _created_at("updated_at"),
    )


def downgrade() -> None:
    """Drop every Playhall table."""
    op.drop_table("game_stats")
    op.drop_index("ix_session_results_user", table_name="session_results")
    op.drop_table("session_results")
    op.drop_index("ix_session_records_scope", table_name="session_records")
    op.drop_table("session_records")
    op.drop_table("challenge_progress")
    op.drop_index("ix_challenges_guild_active", table_name="challenges")
    op.drop_table("challenges")
    op.drop_table("user_badges")
    op.drop_index("ix_users_xp_desc", table_name="users")
    op.drop_table("users")
