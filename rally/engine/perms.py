"""
rally.engine.perms — Party management authorization
====================================================

Three fixed tiers may manage a party (close it, remove players):

1. the member who created it,
2. anyone holding the guild Administrator permission,
3. anyone listed in ``admin_ids`` in ``config.yaml``.

There is no other delegation mechanism.
"""

from __future__ import annotations

from collections.abc import Collection


def is_manager(
    user_id: int | str,
    creator_id: int | str | None,
    *,
    is_guild_admin: bool = False,
    admin_ids: Collection[int] = frozenset(),
) -> bool:
    """Return True if *user_id* may manage a party created by *creator_id*."""
    uid = str(user_id)
    if creator_id is not None and uid == str(creator_id):
        return True
    if is_guild_admin:
        return True
    return uid in {str(a) for a in admin_ids}
