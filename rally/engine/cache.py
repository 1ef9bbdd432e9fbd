"""
rally.engine.cache — In-Memory Display Cache
=============================================

Keeps the static, rarely-changing fields of a party listing (title, art,
start time, host, message pointers, minimum gear score) so a button click
does not need an extra round trip just to redraw the embed.

It is a projection, not a source of truth:

* populated lazily by the router and eagerly on create,
* refreshed when the message pointers are written,
* dropped when the party closes,
* **never** consulted for status, capacity or occupancy.

No lock: all access happens on the bot's event loop, and no method here
awaits, so each read or write completes between suspension points.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Any

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class EventDisplay:
    """Static display fields for one party."""

    event_id: str
    title: str
    description: str | None
    image_url: str | None
    unix: int
    creator_id: str
    channel_id: str
    message_id: str = ""
    min_gear_score: int | None = None

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> EventDisplay:
        """Build from an ``events`` row (as returned by the gateway)."""
        return cls(
            event_id=str(row["id"]),
            title=row["title"],
            description=row.get("description") or None,
            image_url=row.get("image_url") or None,
            unix=iso_to_unix(row["start_time_utc"]),
            creator_id=str(row["creator_id"]),
            channel_id=str(row.get("channel_id") or ""),
            message_id=str(row.get("message_id") or ""),
            min_gear_score=row.get("min_gear_score"),
        )

    def with_message(self, message_id: str) -> EventDisplay:
        return replace(self, message_id=message_id)


def iso_to_unix(value: str) -> int:
    """ISO-8601 (``Z`` or offset) → unix seconds."""
    return int(datetime.fromisoformat(value.replace("Z", "+00:00")).timestamp())


class DisplayCache:
    """event id → :class:`EventDisplay`.  No TTL; see module docstring."""

    def __init__(self) -> None:
        self._entries: dict[str, EventDisplay] = {}

    def get(self, event_id: str) -> EventDisplay | None:
        return self._entries.get(event_id)

    def put(self, display: EventDisplay) -> None:
        self._entries[display.event_id] = display

    def invalidate(self, event_id: str) -> None:
        if self._entries.pop(event_id, None) is not None:
            logger.debug("Display cache entry dropped: %s", event_id)

    def __contains__(self, event_id: object) -> bool:
        return event_id in self._entries

    def __len__(self) -> int:
        return len(self._entries)
