"""
rally.constants — Shared Constants & Helpers
=============================================

Single source of truth for presentation constants and small helpers.
Import from here instead of duplicating in cogs and services.
"""

from __future__ import annotations

import secrets
from datetime import UTC, datetime

# ---------------------------------------------------------------------------
# Party status presentation (used by the listing embed)
# ---------------------------------------------------------------------------
STATUS_OPEN = "open"
STATUS_CLOSED = "closed"
# Rendered only; nothing ever persists this status.
STATUS_CANCELLED = "cancelled"

STATUS_PREFIX: dict[str, str] = {
    STATUS_OPEN: "\U0001f7e2 ",              # 🟢
    STATUS_CLOSED: "\U0001f512 CLOSED - ",   # 🔒
    STATUS_CANCELLED: "❌ ",             # ❌
}

STATUS_COLOR: dict[str, int] = {
    STATUS_OPEN: 0x00B0FF,
    STATUS_CLOSED: 0x6B7280,
    STATUS_CANCELLED: 0x777777,
}

# ---------------------------------------------------------------------------
# Lifecycle limits
# ---------------------------------------------------------------------------
MIN_LEAD_SECONDS = 30          # start time must be at least this far out
THREAD_AUTO_ARCHIVE_MINUTES = 1440
MAX_GEAR_SCORE = 50_000

# Discord component limits
MAX_SELECT_OPTIONS = 25
MAX_COMPONENT_ROWS = 5
CALLOUT_CHUNK_CHARS = 1500

# Placeholder value carried by the disabled "no players" select option
EMPTY_SELECT_VALUE = "none"

# ---------------------------------------------------------------------------
# Ids
# ---------------------------------------------------------------------------
_ID_ALPHABET = "abcdefghijklmnopqrstuvwxyz0123456789"


def short_id(prefix: str = "evt", length: int = 4) -> str:
    """Return ``<prefix>_`` followed by *length* random base-36 chars."""
    return f"{prefix}_" + "".join(secrets.choice(_ID_ALPHABET) for _ in range(length))


def utc_now_iso() -> str:
    """Current UTC time as sortable ISO-8601 text (``...Z``)."""
    return datetime.now(UTC).isoformat(timespec="microseconds").replace("+00:00", "Z")
