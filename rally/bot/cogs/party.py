"""
rally.bot.cogs.party — /party create & /party close
====================================================

Thin command layer over :class:`~rally.services.lifecycle.PartyLifecycle`:
parse options, defer, delegate, turn :class:`PartyRejection` into a reply.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import TYPE_CHECKING

import discord
from discord import app_commands
from discord.ext import commands

from rally.bot.checks import allowed_channel, in_party_channel, reply_check_failure
from rally.constants import MAX_GEAR_SCORE
from rally.database.engine import run_db
from rally.engine.outcomes import PartyRejection
from rally.services import party_service
from rally.services.lifecycle import Actor, PartyRequest

if TYPE_CHECKING:
    from rally.bot.core import RallyBot

logger = logging.getLogger(__name__)


def close_choice_label(row: dict, channel_name: str) -> str:
    """``"<title> — <when> • #<channel> • <id>"`` (Discord caps at 100)."""
    try:
        when = datetime.fromisoformat(
            str(row["start_time_utc"]).replace("Z", "+00:00")
        ).strftime("%Y-%m-%d %H:%M UTC")
    except ValueError:
        when = str(row["start_time_utc"])
    return f"{row['title']} — {when} • #{channel_name} • {row['id']}"[:100]


class Party(commands.Cog, name="Party"):
    """Create and close parties."""

    party = app_commands.Group(name="party", description="Create or close a party")

    def __init__(self, bot: RallyBot) -> None:
        self.bot = bot

    # -------------------------------------------------------------------
    # /party create
    # -------------------------------------------------------------------
    @party.command(name="create", description="Create a party from a template")
    @app_commands.describe(
        event="Party template",
        date="Date (YYYY-MM-DD)",
        time="Start time, 24h (HH:mm)",
        tz_offset="Your UTC offset, e.g. +13, +13:45, +08, -05",
        min_gs="Minimum Gear Score required to join (blank = no minimum)",
        description="Optional description",
    )
    @in_party_channel()
    async def create(
        self,
        interaction: discord.Interaction,
        event: str,
        date: str,
        time: str,
        tz_offset: str,
        min_gs: app_commands.Range[int, 0, MAX_GEAR_SCORE] | None = None,
        description: str | None = None,
    ) -> None:
        await interaction.response.defer()
        request = PartyRequest(
            template_id=event,
            date=date,
            time=time,
            tz_offset=tz_offset,
            min_gear_score=min_gs,
            description=description,
        )
        try:
            created = await self.bot.lifecycle.create(interaction, request)
        except PartyRejection as rejection:
            await interaction.edit_original_response(content=rejection.message)
            return
        except Exception:
            logger.exception(
                "/party create failed (template=%s, user=%s)", event, interaction.user.id,
            )
            await interaction.edit_original_response(content="❌ Failed to create party. Check logs.")
            return

        for notice in created.notices:
            await interaction.followup.send(notice, ephemeral=True)

    @create.autocomplete("event")
    async def _template_autocomplete(
        self, interaction: discord.Interaction, current: str,
    ) -> list[app_commands.Choice[str]]:
        needle = current.lower()
        return [
            app_commands.Choice(name=name[:100], value=template_id)
            for name, template_id in self.bot.catalog.choices()
            if needle in name.lower() or needle in template_id.lower()
        ][:25]

    # -------------------------------------------------------------------
    # /party close
    # -------------------------------------------------------------------
    @party.command(name="close", description="Close a party (delete VC, lock thread, disable sign-ups)")
    @app_commands.describe(event="Select the party to close")
    @in_party_channel()
    async def close(self, interaction: discord.Interaction, event: str) -> None:
        await interaction.response.defer(ephemeral=True)
        try:
            title = await self.bot.lifecycle.close(
                interaction.client, event, Actor.from_interaction(interaction),
            )
        except PartyRejection as rejection:
            await interaction.followup.send(rejection.message, ephemeral=True)
            return
        except Exception:
            logger.exception("/party close failed (event=%s, user=%s)", event, interaction.user.id)
            await interaction.followup.send("❌ Failed to close party. Check logs.", ephemeral=True)
            return
        await interaction.followup.send(f"✅ Closed **{title}**.", ephemeral=True)

    @close.autocomplete("event")
    async def _close_autocomplete(
        self, interaction: discord.Interaction, current: str,
    ) -> list[app_commands.Choice[str]]:
        """Newest open parties in this guild, filtered by what's typed."""
        if interaction.guild_id is None or not allowed_channel(self.bot, interaction.channel_id):
            return []
        rows = await run_db(
            party_service.list_open_events, self.bot.gateway, str(interaction.guild_id),
        )
        needle = current.lower()
        choices: list[app_commands.Choice[str]] = []
        for row in rows:
            channel = self.bot.get_channel(int(row["channel_id"])) if str(row["channel_id"]).isdigit() else None
            label = close_choice_label(row, getattr(channel, "name", None) or "unknown")
            if needle in label.lower():
                choices.append(app_commands.Choice(name=label, value=row["id"]))
        return choices[:25]

    # -------------------------------------------------------------------
    # Errors
    # -------------------------------------------------------------------
    async def cog_app_command_error(
        self, interaction: discord.Interaction, error: app_commands.AppCommandError
    ) -> None:
        if not await reply_check_failure(interaction, error):
            raise error


async def setup(bot: RallyBot) -> None:
    await bot.add_cog(Party(bot))
