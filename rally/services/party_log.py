"""
rally.services.party_log — Append-only signup audit trail
==========================================================

One ``party_logs`` row per join / leave / switch / remove.  Logging must
never block the member's action, so a failed insert is reported to the
application log and otherwise ignored.
"""

from __future__ import annotations

import logging

from rally.constants import utc_now_iso
from rally.database.engine import Gateway
from rally.database.models import PartyAction

logger = logging.getLogger(__name__)


def log_party_action(
    gateway: Gateway,
    *,
    guild_id: str,
    party_id: str,
    action: PartyAction,
    actor_nickname: str,
    member_nickname: str,
    reason: str | None = None,
) -> bool:
    """Append one audit row.  Returns False (never raises) on failure."""
    try:
        gateway.execute(
            "INSERT INTO party_logs (guild_id, party_id, action, actor_nickname, "
            "member_nickname, reason, created_at_utc) VALUES (?, ?, ?, ?, ?, ?, ?);",
            [
                guild_id,
                party_id,
                str(action),
                actor_nickname,
                member_nickname,
                reason,
                utc_now_iso(),
            ],
        )
    except Exception:
        logger.exception(
            "Failed to log party action %s on %s (%s → %s)",
            action, party_id, actor_nickname, member_nickname,
        )
        return False
    return True
