"""
rally.services.lifecycle — Party creation & closing
====================================================

**Why this file exists:**
Creating or closing a party touches the store *and* Discord (listing
message, discussion thread, voice channel).  The store is authoritative
and always written first; Discord side effects are best-effort and never
undo a committed write.  A party whose thread or voice channel could not
be created is still a valid party.

Create::

    template → start time → host eligibility → event + lanes
             → host auto-enroll → publish listing
             → thread ∥ voice channel → pointers + display cache

Close::

    load → authorize → still open? → conditional close (verified)
         → delete voice channel, archive + lock thread
         → final listing without buttons → drop display cache entry

Expected denials are raised as :class:`PartyRejection`; the cogs turn
them into ephemeral replies.
"""

from __future__ import annotations

import asyncio
import logging
import re
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta, timezone
from typing import Any

import discord

from rally.config import RallyConfig, TemplateCatalog
from rally.constants import (
    MIN_LEAD_SECONDS,
    STATUS_CLOSED,
    STATUS_OPEN,
    THREAD_AUTO_ARCHIVE_MINUTES,
)
from rally.database.engine import Gateway, run_db
from rally.engine import signups
from rally.engine.cache import DisplayCache, EventDisplay
from rally.engine.outcomes import PartyRejection, RejectionKind
from rally.engine.perms import is_manager
from rally.services import character_service, party_service
from rally.services.embeds import build_party_embed, build_party_view

logger = logging.getLogger(__name__)

_OFFSET_RE = re.compile(r"^([+-])(\d{1,2})(?::?(\d{2}))?$")
_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")
_TIME_RE = re.compile(r"^\d{1,2}:\d{2}$")


# ---------------------------------------------------------------------------
# Inputs / outputs
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class PartyRequest:
    """The ``/party create`` options, as typed by the host."""

    template_id: str
    date: str
    time: str
    tz_offset: str
    min_gear_score: int | None = None
    description: str | None = None


@dataclass(frozen=True, slots=True)
class Actor:
    """Who is asking, with the bits authorization needs."""

    user_id: str
    display_name: str
    is_guild_admin: bool = False

    @classmethod
    def from_interaction(cls, interaction: discord.Interaction) -> Actor:
        user = interaction.user
        perms = getattr(user, "guild_permissions", None)
        return cls(
            user_id=str(user.id),
            display_name=getattr(user, "display_name", None) or user.name,
            is_guild_admin=bool(perms and perms.administrator),
        )


@dataclass(slots=True)
class PartyCreated:
    event_id: str
    message_id: str
    notices: list[str] = field(default_factory=list)


# ---------------------------------------------------------------------------
# Start time parsing
# ---------------------------------------------------------------------------
def parse_utc_offset(raw: str | None) -> timedelta:
    """``+13`` / ``-05`` / ``+08:30`` / ``+0545`` → :class:`timedelta`.

    Hours 0–14; minutes 00, 15, 30 or 45.
    """
    match = _OFFSET_RE.match((raw or "").strip())
    if match is not None:
        sign = -1 if match.group(1) == "-" else 1
        hours = int(match.group(2))
        minutes = int(match.group(3) or 0)
        if 0 <= hours <= 14 and minutes in (0, 15, 30, 45):
            return sign * timedelta(hours=hours, minutes=minutes)
    raise PartyRejection(
        RejectionKind.VALIDATION,
        "❌ Invalid UTC offset. Use e.g. `+13`, `+08:30`, `-05`.",
    )


def parse_start_time(
    date: str,
    time: str,
    tz_offset: str,
    *,
    now: datetime | None = None,
) -> datetime:
    """Combine the host's local date, time and offset into a UTC datetime.

    Raises
    ------
    PartyRejection
        VALIDATION for malformed input or a start less than
        ``MIN_LEAD_SECONDS`` from *now*.
    """
    date, time = (date or "").strip(), (time or "").strip()
    offset = parse_utc_offset(tz_offset)
    if not _DATE_RE.match(date) or not _TIME_RE.match(time):
        raise PartyRejection(
            RejectionKind.VALIDATION,
            "❌ Invalid date/time. Use **YYYY-MM-DD** and **HH:mm** (24h).",
        )
    try:
        local = datetime.strptime(f"{date} {time}", "%Y-%m-%d %H:%M")
    except ValueError as exc:
        raise PartyRejection(RejectionKind.VALIDATION, "❌ Invalid date/time.") from exc

    start = local.replace(tzinfo=timezone(offset)).astimezone(UTC)
    now = now or datetime.now(UTC)
    if start < now + timedelta(seconds=MIN_LEAD_SECONDS):
        raise PartyRejection(RejectionKind.VALIDATION, "❌ Start time must be in the future.")
    return start


# ---------------------------------------------------------------------------
# Discord helpers shared with the router
# ---------------------------------------------------------------------------
async def fetch_channel(client: discord.Client, channel_id: str | int | None) -> Any:
    """Channel from cache, else from the API.  None for an empty pointer."""
    if not channel_id or not str(channel_id).isdigit():
        return None
    channel = client.get_channel(int(channel_id))
    if channel is None:
        channel = await client.fetch_channel(int(channel_id))
    return channel


async def load_display(
    gateway: Gateway, cache: DisplayCache, event_id: str,
) -> EventDisplay | None:
    """Read-through display lookup; None if the party row is gone."""
    display = cache.get(event_id)
    if display is not None:
        return display
    row = await run_db(party_service.get_event, gateway, event_id)
    if row is None:
        return None
    display = EventDisplay.from_row(row)
    cache.put(display)
    return display


async def edit_listing(
    client: discord.Client,
    display: EventDisplay,
    rosters: list[signups.LaneRoster],
    *,
    status: str = STATUS_OPEN,
) -> bool:
    """Redraw the public listing by pointer.  Returns False on failure."""
    if not display.message_id:
        logger.warning("Party %s has no listing message to edit", display.event_id)
        return False
    embed = build_party_embed(display, rosters, status)
    view = build_party_view(display.event_id, rosters) if status == STATUS_OPEN else None
    try:
        channel = await fetch_channel(client, display.channel_id)
        message = await channel.fetch_message(int(display.message_id))
        await message.edit(embed=embed, view=view)
    except (discord.HTTPException, AttributeError) as exc:
        logger.warning("Could not edit listing for %s: %s", display.event_id, exc)
        return False
    return True


# ---------------------------------------------------------------------------
# Lifecycle manager
# ---------------------------------------------------------------------------
class PartyLifecycle:
    """Creates and closes parties.  One instance per bot."""

    def __init__(
        self,
        gateway: Gateway,
        catalog: TemplateCatalog,
        display_cache: DisplayCache,
        cfg: RallyConfig,
    ) -> None:
        self.gateway = gateway
        self.catalog = catalog
        self.display_cache = display_cache
        self.cfg = cfg

    # -------------------------------------------------------------------
    # Create
    # -------------------------------------------------------------------
    async def _check_host(
        self, user_id: str, guild_id: str, min_gs: int | None,
    ) -> character_service.MainCharacter | None:
        main = await run_db(character_service.get_main_character, self.gateway, user_id, guild_id)
        if min_gs is None:
            return main
        if main is None:
            raise PartyRejection(
                RejectionKind.ELIGIBILITY,
                f"⛔ You set a Minimum GS of **{min_gs}**, but you don't have a **main** "
                "character.\nAdd one with **/character add** (tick `main`) or remove the minimum.",
            )
        if main.gear_score < min_gs:
            best = await run_db(character_service.best_gear_score, self.gateway, user_id, guild_id)
            raise PartyRejection(
                RejectionKind.ELIGIBILITY,
                f"⛔ Your main character's GS is **{main.gear_score}**, below the Min GS "
                f"**{min_gs}**.\nYour highest character GS is **{best}**. Set that one as "
                "main with **/character main**, update it with **/character setgs**, "
                "or lower the minimum.",
            )
        return main

    async def _enroll_host(
        self,
        event_id: str,
        user_id: str,
        main: character_service.MainCharacter | None,
        lane_keys: list[str],
    ) -> str | None:
        """Sign the host up for their main's lane; return a notice if not."""
        if main is None:
            return (
                "ℹ️ Party created. You don't have a **main** character set. "
                "Use `/character add ... main:True` to mark one."
            )
        lane_key = next((k for k in lane_keys if k.lower() == main.role), None)
        if lane_key is None:
            return (
                f"ℹ️ Party created. Your main's role (**{main.role}**) has no lane "
                "here, so you weren't signed up."
            )
        result = await run_db(
            signups.join, self.gateway, event_id, user_id, lane_key, main.gear_score,
        )
        if not result.ok:
            logger.info("Host auto-enroll in %s declined: %s", event_id, result.outcome)
            return f"ℹ️ Party created, but you weren't signed up: {result.message()}"
        return None

    async def create(
        self, interaction: discord.Interaction, request: PartyRequest,
    ) -> PartyCreated:
        """Create a party on an already-deferred, public interaction."""
        template = self.catalog.resolve(request.template_id)
        start = parse_start_time(request.date, request.time, request.tz_offset)

        guild = interaction.guild
        if guild is None:
            raise PartyRejection(RejectionKind.VALIDATION, "❌ Parties can only be created in a server.")
        actor = Actor.from_interaction(interaction)
        guild_id = str(guild.id)
        main = await self._check_host(actor.user_id, guild_id, request.min_gear_score)

        draft = party_service.PartyDraft(
            guild_id=guild_id,
            channel_id=str(interaction.channel_id),
            creator_id=actor.user_id,
            template=template,
            start=start,
            description=(request.description or "").strip() or None,
            min_gear_score=request.min_gear_score,
        )
        event_id = await run_db(party_service.insert_party, self.gateway, draft)

        notices: list[str] = []
        notice = await self._enroll_host(
            event_id, actor.user_id, main, [lane.key for lane in template.lanes],
        )
        if notice:
            notices.append(notice)

        display = EventDisplay(
            event_id=event_id,
            title=template.name,
            description=draft.description,
            image_url=template.image_url,
            unix=int(start.timestamp()),
            creator_id=actor.user_id,
            channel_id=draft.channel_id,
            min_gear_score=request.min_gear_score,
        )
        self.display_cache.put(display)

        # From here on the party exists; failures degrade, never roll back.
        rosters = await run_db(signups.snapshot, self.gateway, event_id)
        message = await interaction.edit_original_response(
            embed=build_party_embed(display, rosters),
            view=build_party_view(event_id, rosters),
        )

        thread_id, voice_id = await self._open_side_channels(
            guild, message, event_id, f"{actor.display_name}'s – {template.name}",
        )
        await run_db(
            party_service.set_pointers,
            self.gateway,
            event_id,
            message_id=str(message.id),
            thread_id=thread_id,
            voice_channel_id=voice_id,
        )
        self.display_cache.put(display.with_message(str(message.id)))
        return PartyCreated(event_id=event_id, message_id=str(message.id), notices=notices)

    async def _open_side_channels(
        self,
        guild: discord.Guild,
        message: discord.Message,
        event_id: str,
        voice_name: str,
    ) -> tuple[str, str]:
        """Create the thread and voice channel concurrently; '' for failures."""
        category = None
        if self.cfg.voice_category_id:
            category = guild.get_channel(self.cfg.voice_category_id)
            if not isinstance(category, discord.CategoryChannel):
                logger.warning("Voice category %s not found", self.cfg.voice_category_id)
                category = None

        thread_res, voice_res = await asyncio.gather(
            message.create_thread(
                name=f"party-{event_id}",
                auto_archive_duration=THREAD_AUTO_ARCHIVE_MINUTES,
            ),
            guild.create_voice_channel(voice_name[:100], category=category),
            return_exceptions=True,
        )
        thread_id = voice_id = ""
        if isinstance(thread_res, BaseException):
            logger.warning("Thread creation failed for %s: %s", event_id, thread_res)
        else:
            thread_id = str(thread_res.id)
        if isinstance(voice_res, BaseException):
            logger.warning("Voice channel creation failed for %s: %s", event_id, voice_res)
        else:
            voice_id = str(voice_res.id)
        return thread_id, voice_id

    # -------------------------------------------------------------------
    # Close
    # -------------------------------------------------------------------
    async def close(self, client: discord.Client, event_id: str, actor: Actor) -> str:
        """Close *event_id* on behalf of *actor*; return the party title."""
        row = await run_db(party_service.get_event, self.gateway, event_id)
        if row is None:
            raise PartyRejection(RejectionKind.NOT_FOUND, "❌ Party not found.")
        if not is_manager(
            actor.user_id,
            row["creator_id"],
            is_guild_admin=actor.is_guild_admin,
            admin_ids=self.cfg.admin_ids,
        ):
            raise PartyRejection(
                RejectionKind.AUTHORIZATION,
                "⛔ You don't have permission to close this party.",
            )
        if row["status"] != STATUS_OPEN:
            raise PartyRejection(
                RejectionKind.STATE, f"ℹ️ This party is already **{row['status']}**.",
            )
        if not await run_db(party_service.mark_closed, self.gateway, event_id):
            raise PartyRejection(RejectionKind.STATE, "ℹ️ This party is already **closed**.")
        logger.info("Party %s closed by %s", event_id, actor.user_id)

        await self._tear_down(client, row)

        rosters = await run_db(signups.snapshot, self.gateway, event_id)
        await edit_listing(client, EventDisplay.from_row(row), rosters, status=STATUS_CLOSED)
        self.display_cache.invalidate(event_id)
        return row["title"]

    async def _tear_down(self, client: discord.Client, row: dict[str, Any]) -> None:
        """Delete the voice channel; archive and lock the thread."""
        try:
            voice = await fetch_channel(client, row.get("voice_channel_id"))
            if voice is not None:
                await voice.delete(reason="Party closed")
        except discord.HTTPException as exc:
            logger.warning("Could not delete voice channel for %s: %s", row["id"], exc)

        try:
            thread = await fetch_channel(client, row.get("thread_id"))
            if isinstance(thread, discord.Thread):
                await thread.edit(archived=True, locked=True, reason="Party closed")
        except discord.HTTPException as exc:
            logger.warning("Could not archive thread for %s: %s", row["id"], exc)
