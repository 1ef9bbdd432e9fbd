"""
rally.services.party_service — Event row persistence
=====================================================

Synchronous reads and writes for the ``events`` and ``lanes`` tables.
Every function takes a gateway and is called through ``run_db()``.
Orchestration (Discord side effects, ordering) lives in
:mod:`rally.services.lifecycle`.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from rally.config import EventTemplate
from rally.constants import STATUS_CLOSED, STATUS_OPEN, short_id, utc_now_iso
from rally.database.engine import Gateway

logger = logging.getLogger(__name__)

_EVENT_COLUMNS = (
    "id, guild_id, channel_id, message_id, thread_id, voice_channel_id, "
    "template_id, title, description, image_url, start_time_utc, status, "
    "creator_id, min_gear_score, created_at_utc, updated_at_utc"
)

# 36**4 ids; a few retries make a collision practically impossible.
_ID_ATTEMPTS = 5


@dataclass(frozen=True, slots=True)
class PartyDraft:
    """Everything needed to persist a new party."""

    guild_id: str
    channel_id: str
    creator_id: str
    template: EventTemplate
    start: datetime
    description: str | None = None
    min_gear_score: int | None = None


def get_event(gateway: Gateway, event_id: str) -> dict[str, Any] | None:
    rows = gateway.execute(f"SELECT {_EVENT_COLUMNS} FROM events WHERE id = ?;", [event_id])
    return rows[0] if rows else None


def find_event_by_thread(gateway: Gateway, thread_id: str) -> dict[str, Any] | None:
    rows = gateway.execute(
        f"SELECT {_EVENT_COLUMNS} FROM events WHERE thread_id = ? AND thread_id != '';",
        [thread_id],
    )
    return rows[0] if rows else None


def list_open_events(gateway: Gateway, guild_id: str, limit: int = 25) -> list[dict[str, Any]]:
    """Newest open parties in a guild (for the close autocomplete)."""
    return gateway.execute(
        "SELECT id, title, start_time_utc, channel_id FROM events "
        "WHERE guild_id = ? AND status = ? ORDER BY created_at_utc DESC LIMIT ?;",
        [guild_id, STATUS_OPEN, limit],
    )


def _unused_event_id(gateway: Gateway) -> str:
    for _ in range(_ID_ATTEMPTS):
        candidate = short_id("evt")
        if not gateway.execute("SELECT 1 AS taken FROM events WHERE id = ?;", [candidate]):
            return candidate
    raise RuntimeError("Could not allocate a unique event id")


def insert_party(gateway: Gateway, draft: PartyDraft) -> str:
    """Persist the event row and all its lanes; return the new event id.

    Lanes go in with one multi-row INSERT, in template order.
    """
    event_id = _unused_event_id(gateway)
    now = utc_now_iso()
    start_iso = draft.start.isoformat().replace("+00:00", "Z")

    gateway.execute(
        "INSERT INTO events (id, guild_id, channel_id, message_id, thread_id, "
        "voice_channel_id, template_id, title, description, image_url, "
        "start_time_utc, reminder_offset_m, status, creator_id, created_at_utc, "
        "updated_at_utc, min_gear_score) "
        "VALUES (?, ?, ?, '', '', '', ?, ?, ?, ?, ?, 10, ?, ?, ?, ?, ?);",
        [
            event_id,
            draft.guild_id,
            draft.channel_id,
            draft.template.id,
            draft.template.name,
            draft.description,
            draft.template.image_url,
            start_iso,
            STATUS_OPEN,
            draft.creator_id,
            now,
            now,
            draft.min_gear_score,
        ],
    )

    values: list[str] = []
    params: list[Any] = []
    for order, lane in enumerate(draft.template.lanes):
        values.append("(?, ?, ?, ?, ?, ?)")
        params.extend([event_id, lane.key, lane.name, lane.emoji or "", lane.capacity, order])
    gateway.execute(
        "INSERT INTO lanes (event_id, lane_key, name, emoji, capacity, sort_order) "
        f"VALUES {', '.join(values)};",
        params,
    )
    logger.info(
        "Party %s (%s) created by %s with %d lanes",
        event_id, draft.template.id, draft.creator_id, len(draft.template.lanes),
    )
    return event_id


def set_pointers(
    gateway: Gateway,
    event_id: str,
    *,
    message_id: str,
    thread_id: str = "",
    voice_channel_id: str = "",
) -> None:
    gateway.execute(
        "UPDATE events SET message_id = ?, thread_id = ?, voice_channel_id = ?, "
        "updated_at_utc = ? WHERE id = ?;",
        [message_id, thread_id, voice_channel_id, utc_now_iso(), event_id],
    )


def mark_closed(gateway: Gateway, event_id: str) -> bool:
    """Flip ``open`` → ``closed``; return True if *this* call did it.

    Conditional on the row still being open, then verified by re-reading
    ``updated_at_utc`` — two racing closes cannot both report success.
    """
    stamp = utc_now_iso()
    gateway.execute(
        "UPDATE events SET status = ?, updated_at_utc = ? WHERE id = ? AND status = ?;",
        [STATUS_CLOSED, stamp, event_id, STATUS_OPEN],
    )
    rows = gateway.execute(
        "SELECT status, updated_at_utc FROM events WHERE id = ?;", [event_id]
    )
    return bool(rows) and rows[0]["status"] == STATUS_CLOSED and rows[0]["updated_at_utc"] == stamp


def signed_up_user_ids(gateway: Gateway, event_id: str) -> list[str]:
    """Everyone signed up for *event_id*, in join order."""
    rows = gateway.execute(
        "SELECT user_id FROM signups WHERE event_id = ? ORDER BY joined_at_utc ASC, id ASC;",
        [event_id],
    )
    return [str(r["user_id"]) for r in rows if r["user_id"]]
