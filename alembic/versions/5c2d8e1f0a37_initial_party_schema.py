"""Initial party schema

Revision ID: 5c2d8e1f0a37
Revises:
Create Date: 2026-10-19 12:00:00.000000

"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = "5c2d8e1f0a37"
down_revision = None
branch_labels = None
depends_on = None

_NOW = sa.text("(strftime('%Y-%m-%dT%H:%M:%fZ', 'now'))")


def upgrade() -> None:
    """Create events, lanes, signups, party_logs, classes and characters."""
    op.create_table(
        "events",
        sa.Column("id", sa.String(16), primary_key=True),
        sa.Column("guild_id", sa.String(32), nullable=False),
        sa.Column("channel_id", sa.String(32), nullable=False),
        sa.Column("message_id", sa.String(32), server_default=""),
        sa.Column("thread_id", sa.String(32), server_default=""),
        sa.Column("voice_channel_id", sa.String(32), server_default=""),
        sa.Column("template_id", sa.String(64), nullable=False),
        sa.Column("title", sa.String(200), nullable=False),
        sa.Column("description", sa.Text, nullable=True),
        sa.Column("image_url", sa.Text, nullable=True),
        sa.Column("start_time_utc", sa.String(40), nullable=False),
        sa.Column("reminder_offset_m", sa.Integer, server_default="10"),
        sa.Column("status", sa.String(16), nullable=False, server_default="open"),
        sa.Column("creator_id", sa.String(32), nullable=False),
        sa.Column("min_gear_score", sa.Integer, nullable=True),
        sa.Column("created_at_utc", sa.String(40), server_default=_NOW),
        sa.Column("updated_at_utc", sa.String(40), server_default=_NOW),
    )
    op.create_index("ix_events_guild_status", "events", ["guild_id", "status"])
    op.create_index("ix_events_thread", "events", ["thread_id"])

    op.create_table(
        "lanes",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("event_id", sa.String(16), sa.ForeignKey("events.id"), nullable=False),
        sa.Column("lane_key", sa.String(32), nullable=False),
        sa.Column("name", sa.String(80), nullable=False),
        sa.Column("emoji", sa.String(64), server_default=""),
        sa.Column("capacity", sa.Integer, server_default="0"),
        sa.Column("sort_order", sa.Integer, server_default="0"),
        sa.UniqueConstraint("event_id", "lane_key", name="uq_lanes_event_key"),
    )

    op.create_table(
        "signups",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("event_id", sa.String(16), sa.ForeignKey("events.id"), nullable=False),
        sa.Column("lane_id", sa.Integer, sa.ForeignKey("lanes.id"), nullable=False),
        sa.Column("user_id", sa.String(32), nullable=False),
        sa.Column("gear_score", sa.Integer, nullable=True),
        sa.Column("joined_at_utc", sa.String(40), server_default=_NOW),
        sa.UniqueConstraint("event_id", "user_id", name="uq_signups_event_user"),
    )
    op.create_index("ix_signups_lane", "signups", ["lane_id"])

    op.create_table(
        "party_logs",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("guild_id", sa.String(32), nullable=False),
        sa.Column("party_id", sa.String(16), nullable=False),
        sa.Column("action", sa.String(16), nullable=False),
        sa.Column("actor_nickname", sa.String(100), nullable=False),
        sa.Column("member_nickname", sa.String(100), nullable=False),
        sa.Column("reason", sa.Text, nullable=True),
        sa.Column("created_at_utc", sa.String(40), server_default=_NOW),
    )
    op.create_index("ix_party_logs_party", "party_logs", ["party_id"])

    op.create_table(
        "classes",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(80), nullable=False),
        sa.Column("sub_class", sa.String(80), server_default=""),
        sa.Column("role", sa.String(32), nullable=False),
        sa.UniqueConstraint("name", "sub_class", name="uq_classes_name_sub"),
    )

    op.create_table(
        "characters",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.String(32), nullable=False),
        sa.Column("guild_id", sa.String(32), nullable=False),
        sa.Column("class_id", sa.Integer, sa.ForeignKey("classes.id"), nullable=False),
        sa.Column("nickname", sa.String(100), nullable=True),
        sa.Column("gear_score", sa.Integer, server_default="0"),
        sa.Column("is_main", sa.Integer, server_default="0"),
        sa.Column("updated_at_utc", sa.String(40), server_default=_NOW),
        sa.UniqueConstraint("user_id", "guild_id", "class_id", name="uq_characters_user_class"),
    )
    op.create_index("ix_characters_user_guild", "characters", ["user_id", "guild_id"])


def downgrade() -> None:
    """Drop every party table."""
    op.drop_index("ix_characters_user_guild", table_name="characters")
    op.drop_table("characters")
    op.drop_table("classes")
    op.drop_index("ix_party_logs_party", table_name="party_logs")
    op.drop_table("party_logs")
    op.drop_index("ix_signups_lane", table_name="signups")
    op.drop_table("signups")
    op.drop_table("lanes")
    op.drop_index("ix_events_thread", table_name="events")
    op.drop_index("ix_events_guild_status", table_name="events")
    op.drop_table("events")
