"""Create user_stats, xp_logs, badges and user_badges

Revision ID: 0001
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = "0001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "user_stats",
        sa.Column("user_id", sa.String(64), primary_key=True),
        sa.Column("display_name", sa.String(100), nullable=False),
        sa.Column("total_xp", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("level", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("streak_days", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("last_checkin_date", sa.Date(), nullable=True),
        sa.Column("night_streak", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("early_streak", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("lucky_value", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("total_draws", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("total_registrations", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("total_removals", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_user_stats_total_xp", "user_stats", ["total_xp"])

    op.create_table(
        "xp_logs",
        sa.Column("id", sa.Integer(), autoincrement=True, primary_key=True),
        sa.Column(
            "user_id",
            sa.String(64),
            sa.ForeignKey("user_stats.user_id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("amount", sa.Integer(), nullable=False),
        sa.Column("action_type", sa.String(20), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("timestamp", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint("amount > 0", name="ck_xp_logs_amount_positive"),
    )
    op.create_index("ix_xp_logs_user_time", "xp_logs", ["user_id", "timestamp"])
    op.create_index("ix_xp_logs_timestamp", "xp_logs", ["timestamp"])
    op.create_index("ix_xp_logs_action_time", "xp_logs", ["action_type", "timestamp"])

    op.create_table(
        "badges",
        sa.Column("id", sa.Integer(), autoincrement=True, primary_key=True),
        sa.Column("code", sa.String(50), nullable=False, unique=True),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("icon", sa.String(16), nullable=True),
        sa.Column("rarity", sa.String(8), nullable=False, server_default="R"),
        sa.Column("condition_type", sa.String(20), nullable=False),
        sa.Column("condition_value", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("xp_reward", sa.Integer(), nullable=False, server_default="0"),
    )

    op.create_table(
        "user_badges",
        sa.Column("id", sa.Integer(), autoincrement=True, primary_key=True),
        sa.Column(
            "user_id",
            sa.String(64),
            sa.ForeignKey("user_stats.user_id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "badge_id",
            sa.Integer(),
            sa.ForeignKey("badges.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("earned_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint("user_id", "badge_id", name="uq_user_badges_user_badge"),
    )


def downgrade() -> None:
    op.drop_table("user_badges")
    op.drop_table("badges")
    op.drop_index("ix_xp_logs_action_time", table_name="xp_logs")
    op.drop_index("ix_xp_logs_timestamp", table_name="xp_logs")
    op.drop_index("ix_xp_logs_user_time", table_name="xp_logs")
    op.drop_table("xp_logs")
    op.drop_index("ix_user_stats_total_xp", table_name="user_stats")
    op.drop_table("user_stats")
