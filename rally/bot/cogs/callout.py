"""
rally.bot.cogs.callout — /callout inside a party thread
========================================================

Pings everyone signed up for the party the current thread belongs to.

The header (title, start, voice channel, host) is sent with mentions
disabled; the member mentions follow in chunks of at most
``CALLOUT_CHUNK_CHARS`` characters, each with an allowed-mentions list
naming exactly the members in that chunk.  One callout per party per
``callout_cooldown_seconds``.
"""

from __future__ import annotations

import logging
import time
from typing import TYPE_CHECKING, Any

import discord
from discord import app_commands
from discord.ext import commands

from rally.constants import CALLOUT_CHUNK_CHARS, STATUS_OPEN
from rally.database.engine import run_db
from rally.engine.cache import iso_to_unix
from rally.services import party_service

if TYPE_CHECKING:
    from rally.bot.core import RallyBot

logger = logging.getLogger(__name__)


def callout_header(event: dict[str, Any]) -> str:
    unix = iso_to_unix(event["start_time_utc"])
    lines = [f"📣 **Callout** — **{event.get('title') or 'Party'}** starts <t:{unix}:R>"]
    if event.get("voice_channel_id"):
        lines.append(f"Join VC: <#{event['voice_channel_id']}>")
    lines.append(f"Host: <@{event['creator_id']}>")
    return "\n".join(lines) + "\n\n**Signed-up players:**"


def chunk_mentions(
    user_ids: list[str], *, first_offset: int = 0, limit: int = CALLOUT_CHUNK_CHARS,
) -> list[list[str]]:
    """Group ids so each space-joined mention line stays within *limit*.

    *first_offset* counts characters already spent (the header) against
    the first chunk.
    """
    chunks: list[list[str]] = []
    current: list[str] = []
    length = first_offset
    for uid in user_ids:
        mention_len = len(f"<@{uid}>")
        if current and length + mention_len + 1 > limit:
            chunks.append(current)
            current, length = [], 0
        current.append(uid)
        length += mention_len + (1 if len(current) > 1 else 0)
    if current:
        chunks.append(current)
    return chunks


def format_wait(seconds: float) -> str:
    remaining = max(int(seconds + 0.999), 1)
    minutes, secs = divmod(remaining, 60)
    return f"{minutes}m {secs}s" if minutes else f"{secs}s"


class CalloutCooldown:
    """Per-party timestamp of the last callout (monotonic clock)."""

    def __init__(self, seconds: int, clock=time.monotonic) -> None:
        self.seconds = seconds
        self._clock = clock
        self._last: dict[str, float] = {}

    def remaining(self, event_id: str) -> float:
        last = self._last.get(event_id)
        if last is None:
            return 0.0
        return max(self.seconds - (self._clock() - last), 0.0)

    def mark(self, event_id: str) -> None:
        now = self._clock()
        # Drop windows that have expired
        self._last = {eid: t for eid, t in self._last.items() if now - t < self.seconds}
        self._last[event_id] = now

    def __len__(self) -> int:
        return len(self._last)


class Callout(commands.Cog, name="Callout"):
    """Tag a party's sign-ups from its thread."""

    def __init__(self, bot: RallyBot) -> None:
        self.bot = bot
        self.cooldown = CalloutCooldown(bot.cfg.callout_cooldown_seconds)

    @app_commands.command(
        name="callout",
        description="Tag everyone signed up for this party (use inside the party thread only)",
    )
    async def callout(self, interaction: discord.Interaction) -> None:
        await interaction.response.defer(ephemeral=True)
        channel = interaction.channel
        if interaction.guild is None or not isinstance(channel, discord.Thread):
            await interaction.followup.send("❌ Use this **inside the party's thread**.", ephemeral=True)
            return

        try:
            await self._callout(interaction, channel)
        except discord.Forbidden:
            await interaction.followup.send(
                "⛔ I need **Send Messages in Threads** here.", ephemeral=True,
            )
        except Exception:
            logger.exception("/callout failed in thread %s", channel.id)
            await interaction.followup.send(
                "❌ Callout failed. Check bot permissions & logs.", ephemeral=True,
            )

    async def _callout(self, interaction: discord.Interaction, thread: discord.Thread) -> None:
        event = await run_db(party_service.find_event_by_thread, self.bot.gateway, str(thread.id))
        if event is None:
            await interaction.followup.send("❌ This thread isn't linked to any party.", ephemeral=True)
            return
        if event["status"] != STATUS_OPEN:
            await interaction.followup.send(
                "🔒 This party is not open. Callout aborted.", ephemeral=True,
            )
            return

        wait = self.cooldown.remaining(event["id"])
        if wait > 0:
            await interaction.followup.send(
                f"⏳ Please wait **{format_wait(wait)}** before calling out again.",
                ephemeral=True,
            )
            return
        self.cooldown.mark(event["id"])

        user_ids = await run_db(party_service.signed_up_user_ids, self.bot.gateway, event["id"])
        if not user_ids:
            await interaction.followup.send("ℹ️ No one has signed up yet.", ephemeral=True)
            return

        header = callout_header(event)
        await thread.send(header, allowed_mentions=discord.AllowedMentions.none())
        for chunk in chunk_mentions(user_ids, first_offset=len(header)):
            await thread.send(
                " ".join(f"<@{uid}>" for uid in chunk),
                allowed_mentions=discord.AllowedMentions(
                    everyone=False,
                    roles=False,
                    users=[discord.Object(id=int(uid)) for uid in chunk],
                ),
            )
        logger.info("Callout for %s pinged %d member(s)", event["id"], len(user_ids))
        await interaction.followup.send(
            f"✅ Called out {len(user_ids)} player(s).", ephemeral=True,
        )


async def setup(bot: RallyBot) -> None:
    await bot.add_cog(Callout(bot))
