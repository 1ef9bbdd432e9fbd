"""
rally.database.models — SQLAlchemy 2.0 Data Models
===================================================

The schema of record.  The services talk to the store through the
gateway with plain SQL (the remote store only speaks "execute one
statement"), but the tables are declared here so that DDL, Alembic and
the test fixtures all come from one place.

Tables:
- events      — One scheduled party (soft-closed, never deleted)
- lanes       — Role slot groups, fixed at creation
- signups     — A user's current lane; unique per (event, user)
- party_logs  — Append-only audit trail of signup actions
- classes     — Playable classes and the role each one fills
- characters  — Member rosters (gear score, main flag)

Discord snowflakes are stored as TEXT; timestamps as ISO-8601 TEXT, which
is what the D1 HTTP API round-trips without loss.
"""

from __future__ import annotations

import enum

from sqlalchemy import (
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    text,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


# ---------------------------------------------------------------------------
# Base
# ---------------------------------------------------------------------------
class Base(DeclarativeBase):
    """Shared base for all Rally ORM models."""


_NOW = text("(strftime('%Y-%m-%dT%H:%M:%fZ', 'now'))")


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------
class EventStatus(enum.StrEnum):
    """Persisted party states.  ``open`` → ``closed`` only."""
    OPEN = "open"
    CLOSED = "closed"


class PartyAction(enum.StrEnum):
    """Signup-affecting actions recorded in party_logs."""
    JOIN = "join"
    LEAVE = "leave"
    REMOVE = "remove"
    SWITCH = "switch"


# ---------------------------------------------------------------------------
# Events — one row per party
# ---------------------------------------------------------------------------
class Event(Base):
    __tablename__ = "events"

    id: Mapped[str] = mapped_column(String(16), primary_key=True)
    guild_id: Mapped[str] = mapped_column(String(32), nullable=False)
    channel_id: Mapped[str] = mapped_column(String(32), nullable=False)
    # Platform pointers, '' until the listing/thread/voice channel exist
    message_id: Mapped[str] = mapped_column(String(32), server_default="")
    thread_id: Mapped[str] = mapped_column(String(32), server_default="")
    voice_channel_id: Mapped[str] = mapped_column(String(32), server_default="")
    template_id: Mapped[str] = mapped_column(String(64), nullable=False)
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, default=None)
    image_url: Mapped[str | None] = mapped_column(Text, default=None)
    start_time_utc: Mapped[str] = mapped_column(String(40), nullable=False)
    reminder_offset_m: Mapped[int] = mapped_column(Integer, server_default="10")
    status: Mapped[str] = mapped_column(
        String(16), nullable=False, server_default=EventStatus.OPEN.value
    )
    creator_id: Mapped[str] = mapped_column(String(32), nullable=False)
    min_gear_score: Mapped[int | None] = mapped_column(Integer, default=None)
    created_at_utc: Mapped[str] = mapped_column(String(40), server_default=_NOW)
    updated_at_utc: Mapped[str] = mapped_column(String(40), server_default=_NOW)

    lanes: Mapped[list[Lane]] = relationship(back_populates="event")

    __table_args__ = (
        Index("ix_events_guild_status", "guild_id", "status"),
        Index("ix_events_thread", "thread_id"),
    )

    def __repr__(self) -> str:
        return f"<Event id={self.id} title={self.title!r} status={self.status}>"


# ---------------------------------------------------------------------------
# Lanes — immutable after the event is created
# ---------------------------------------------------------------------------
class Lane(Base):
    __tablename__ = "lanes"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    event_id: Mapped[str] = mapped_column(
        String(16), ForeignKey("events.id"), nullable=False
    )
    lane_key: Mapped[str] = mapped_column(String(32), nullable=False)
    name: Mapped[str] = mapped_column(String(80), nullable=False)
    emoji: Mapped[str] = mapped_column(String(64), server_default="")
    capacity: Mapped[int] = mapped_column(Integer, server_default="0")  # 0 = unlimited
    sort_order: Mapped[int] = mapped_column(Integer, server_default="0")

    event: Mapped[Event] = relationship(back_populates="lanes")

    __table_args__ = (
        UniqueConstraint("event_id", "lane_key", name="uq_lanes_event_key"),
    )

    def __repr__(self) -> str:
        return f"<Lane id={self.id} key={self.lane_key} cap={self.capacity}>"


# ---------------------------------------------------------------------------
# Signups — the (event, user) uniqueness is the one-lane-per-user invariant
# ---------------------------------------------------------------------------
class Signup(Base):
    __tablename__ = "signups"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    event_id: Mapped[str] = mapped_column(
        String(16), ForeignKey("events.id"), nullable=False
    )
    lane_id: Mapped[int] = mapped_column(Integer, ForeignKey("lanes.id"), nullable=False)
    user_id: Mapped[str] = mapped_column(String(32), nullable=False)
    gear_score: Mapped[int | None] = mapped_column(Integer, default=None)
    joined_at_utc: Mapped[str] = mapped_column(String(40), server_default=_NOW)

    __table_args__ = (
        UniqueConstraint("event_id", "user_id", name="uq_signups_event_user"),
        Index("ix_signups_lane", "lane_id"),
    )

    def __repr__(self) -> str:
        return f"<Signup event={self.event_id} lane={self.lane_id} user={self.user_id}>"


# ---------------------------------------------------------------------------
# PartyLog — append-only audit trail
# ---------------------------------------------------------------------------
class PartyLog(Base):
    __tablename__ = "party_logs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    guild_id: Mapped[str] = mapped_column(String(32), nullable=False)
    party_id: Mapped[str] = mapped_column(String(16), nullable=False)
    action: Mapped[str] = mapped_column(String(16), nullable=False)
    actor_nickname: Mapped[str] = mapped_column(String(100), nullable=False)
    member_nickname: Mapped[str] = mapped_column(String(100), nullable=False)
    reason: Mapped[str | None] = mapped_column(Text, default=None)
    created_at_utc: Mapped[str] = mapped_column(String(40), server_default=_NOW)

    __table_args__ = (
        Index("ix_party_logs_party", "party_id"),
    )


# ---------------------------------------------------------------------------
# Classes & Characters — the gear score source
# ---------------------------------------------------------------------------
class GameClass(Base):
    __tablename__ = "classes"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(80), nullable=False)
    sub_class: Mapped[str] = mapped_column(String(80), server_default="")
    role: Mapped[str] = mapped_column(String(32), nullable=False)  # matches a lane key

    __table_args__ = (
        UniqueConstraint("name", "sub_class", name="uq_classes_name_sub"),
    )


class Character(Base):
    __tablename__ = "characters"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(32), nullable=False)
    guild_id: Mapped[str] = mapped_column(String(32), nullable=False)
    class_id: Mapped[int] = mapped_column(Integer, ForeignKey("classes.id"), nullable=False)
    nickname: Mapped[str | None] = mapped_column(String(100), default=None)
    gear_score: Mapped[int] = mapped_column(Integer, server_default="0")
    is_main: Mapped[int] = mapped_column(Integer, server_default="0")
    updated_at_utc: Mapped[str] = mapped_column(String(40), server_default=_NOW)

    __table_args__ = (
        UniqueConstraint("user_id", "guild_id", "class_id", name="uq_characters_user_class"),
        Index("ix_characters_user_guild", "user_id", "guild_id"),
    )

    def __repr__(self) -> str:
        return f"<Character id={self.id} user={self.user_id} gs={self.gear_score}>"
