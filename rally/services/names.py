"""
rally.services.names — Member display-name lookups
===================================================

The manage panel and the party log show members by name, not by mention.
Names are resolved from the guild member cache first, then with one
``fetch_member`` call, and remembered per ``guild:user``.  A member that
cannot be fetched is shown by raw id.
"""

from __future__ import annotations

import logging

import discord

logger = logging.getLogger(__name__)


class NameResolver:
    """Per-(guild, user) display-name cache."""

    def __init__(self) -> None:
        self._names: dict[str, str] = {}

    async def resolve(self, guild: discord.Guild | None, user_id: int | str) -> str:
        uid = str(user_id)
        if guild is None:
            return uid
        key = f"{guild.id}:{uid}"
        cached = self._names.get(key)
        if cached is not None:
            return cached

        member = guild.get_member(int(uid)) if uid.isdigit() else None
        if member is None and uid.isdigit():
            try:
                member = await guild.fetch_member(int(uid))
            except discord.HTTPException as exc:
                logger.debug("Could not fetch member %s in %s: %s", uid, guild.id, exc)
        if member is None:
            return uid

        name = member.display_name or member.name or uid
        self._names[key] = name
        return name

    async def resolve_many(
        self, guild: discord.Guild | None, user_ids: list[str],
    ) -> dict[str, str]:
        return {uid: await self.resolve(guild, uid) for uid in user_ids}

    def remember(self, guild_id: int | str | None, user_id: int | str, name: str) -> None:
        """Seed the cache from a member object already in hand."""
        if guild_id is None or not name:
            return
        self._names[f"{guild_id}:{user_id}"] = name

    def __len__(self) -> int:
        return len(self._names)
