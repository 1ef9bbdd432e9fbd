"""
rally.services.character_service — Member rosters & gear score lookups
=======================================================================

Backs ``/character`` and supplies the two numbers the party core needs:
the member's **main** character (role + score, used to auto-enroll the
host and to check a host against their own minimum) and the member's
**best gear score for a role** (used to gate joins).

Roles are compared case-insensitively against lane keys.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from rally.constants import utc_now_iso
from rally.database.engine import Gateway

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class MainCharacter:
    gear_score: int
    role: str


def class_label(name: str, sub_class: str | None) -> str:
    return f"{name} | {sub_class}" if sub_class else name


# ---------------------------------------------------------------------------
# Lookups consumed by the party core
# ---------------------------------------------------------------------------
def get_main_character(gateway: Gateway, user_id: str, guild_id: str) -> MainCharacter | None:
    rows = gateway.execute(
        "SELECT c.gear_score AS gs, LOWER(cl.role) AS role "
        "FROM characters AS c JOIN classes AS cl ON cl.id = c.class_id "
        "WHERE c.user_id = ? AND c.guild_id = ? AND c.is_main = 1 LIMIT 1;",
        [user_id, guild_id],
    )
    if not rows:
        return None
    return MainCharacter(gear_score=int(rows[0]["gs"] or 0), role=rows[0]["role"] or "")


def best_gear_score(
    gateway: Gateway, user_id: str, guild_id: str, role: str | None = None,
) -> int:
    """Highest gear score among the member's characters (optionally for *role*).

    Returns 0 when the member has no matching character.
    """
    sql = (
        "SELECT MAX(c.gear_score) AS best FROM characters AS c "
        "JOIN classes AS cl ON cl.id = c.class_id "
        "WHERE c.user_id = ? AND c.guild_id = ?"
    )
    params: list[Any] = [user_id, guild_id]
    if role:
        sql += " AND LOWER(cl.role) = LOWER(?)"
        params.append(role)
    rows = gateway.execute(sql + ";", params)
    best = rows[0]["best"] if rows else None
    return max(int(best or 0), 0)


# ---------------------------------------------------------------------------
# Roster management (/character)
# ---------------------------------------------------------------------------
def search_classes(gateway: Gateway, query: str, limit: int = 25) -> list[dict[str, Any]]:
    like = f"%{query.strip()}%"
    return gateway.execute(
        "SELECT id, name, sub_class, role FROM classes "
        "WHERE name LIKE ? OR sub_class LIKE ? OR role LIKE ? "
        "ORDER BY role, name, sub_class LIMIT ?;",
        [like, like, like, limit],
    )


def list_characters(gateway: Gateway, user_id: str, guild_id: str) -> list[dict[str, Any]]:
    return gateway.execute(
        "SELECT c.id, cl.name, cl.sub_class, cl.role, c.gear_score, c.is_main "
        "FROM characters AS c JOIN classes AS cl ON cl.id = c.class_id "
        "WHERE c.user_id = ? AND c.guild_id = ? "
        "ORDER BY c.is_main DESC, cl.role, cl.name;",
        [user_id, guild_id],
    )


def add_character(
    gateway: Gateway,
    *,
    user_id: str,
    guild_id: str,
    class_id: int,
    gear_score: int,
    is_main: bool,
    nickname: str | None = None,
) -> tuple[bool, str]:
    """Register a character.  Returns ``(success, message)``."""
    cls_rows = gateway.execute(
        "SELECT id, name, sub_class, role FROM classes WHERE id = ? LIMIT 1;", [class_id]
    )
    if not cls_rows:
        return False, "❌ Unknown class selection. Please pick from the autocomplete list."
    cls = cls_rows[0]
    label = class_label(cls["name"], cls["sub_class"])

    if gateway.execute(
        "SELECT 1 AS dup FROM characters WHERE user_id = ? AND guild_id = ? AND class_id = ?;",
        [user_id, guild_id, class_id],
    ):
        return False, (
            f"⚠️ You already have **{label}** registered. Use **/character setgs** "
            "to update GS or **/character main** to change your main."
        )

    if is_main:
        gateway.execute(
            "UPDATE characters SET is_main = 0 WHERE user_id = ? AND guild_id = ?;",
            [user_id, guild_id],
        )
    gateway.execute(
        "INSERT INTO characters (user_id, guild_id, class_id, nickname, gear_score, "
        "is_main, updated_at_utc) VALUES (?, ?, ?, ?, ?, ?, ?) "
        "ON CONFLICT(user_id, guild_id, class_id) DO NOTHING;",
        [user_id, guild_id, class_id, nickname, gear_score, 1 if is_main else 0, utc_now_iso()],
    )
    main_note = " • marked as main" if is_main else ""
    return True, f"✅ Added **{label}** ({cls['role']}) — GS **{gear_score}**{main_note}."


def get_owned_character(
    gateway: Gateway, character_id: int, user_id: str, guild_id: str,
) -> dict[str, Any] | None:
    """The character if it belongs to *user_id* in *guild_id*, else None."""
    rows = gateway.execute(
        "SELECT c.id, cl.name, cl.sub_class, cl.role, c.gear_score, c.is_main "
        "FROM characters AS c JOIN classes AS cl ON cl.id = c.class_id "
        "WHERE c.id = ? AND c.user_id = ? AND c.guild_id = ? LIMIT 1;",
        [character_id, user_id, guild_id],
    )
    return rows[0] if rows else None


def _owned(gateway: Gateway, character_id: int, user_id: str, guild_id: str) -> bool:
    return get_owned_character(gateway, character_id, user_id, guild_id) is not None


def remove_character(gateway: Gateway, character_id: int, user_id: str, guild_id: str) -> bool:
    if not _owned(gateway, character_id, user_id, guild_id):
        return False
    gateway.execute(
        "DELETE FROM characters WHERE id = ? AND user_id = ? AND guild_id = ?;",
        [character_id, user_id, guild_id],
    )
    return True


def set_gear_score(
    gateway: Gateway, character_id: int, user_id: str, guild_id: str, gear_score: int,
) -> bool:
    if gear_score < 0 or not _owned(gateway, character_id, user_id, guild_id):
        return False
    gateway.execute(
        "UPDATE characters SET gear_score = ?, updated_at_utc = ? "
        "WHERE id = ? AND user_id = ? AND guild_id = ?;",
        [gear_score, utc_now_iso(), character_id, user_id, guild_id],
    )
    return True


def set_main(gateway: Gateway, character_id: int, user_id: str, guild_id: str) -> bool:
    """Make *character_id* the member's only main."""
    if not _owned(gateway, character_id, user_id, guild_id):
        return False
    gateway.execute(
        "UPDATE characters SET is_main = CASE WHEN id = ? THEN 1 ELSE 0 END, "
        "updated_at_utc = ? WHERE user_id = ? AND guild_id = ?;",
        [character_id, utc_now_iso(), user_id, guild_id],
    )
    return True
