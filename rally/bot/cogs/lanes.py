"""
rally.bot.cogs.lanes — Listing button & select router
======================================================

**Why this file exists:**
Every button and select on a party listing (and on the ephemeral manage
panel) lands here through one ``on_interaction`` listener:

1. Parse the custom_id once (:func:`parse_component_id`).  Ids that are
   not ours are ignored without acknowledging, so other handlers keep
   them.
2. Acknowledge (deferred update) before touching the store.
3. Read-through the display cache for the static listing fields.
4. Dispatch on the action type:

   - ``join`` / ``leave`` → signup engine; redraw the listing from a
     fresh snapshot; ephemeral reply; party log row.
   - ``mgr``  → authorize; ephemeral panel with one select per lane.
   - ``msel`` → authorize; remove; redraw listing; refresh the panel.

Unexpected errors are logged with the action and user, and answered with
a generic ephemeral failure.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import discord
from discord.ext import commands

from rally.database.engine import run_db
from rally.database.models import PartyAction
from rally.engine import signups
from rally.engine.cache import EventDisplay
from rally.engine.components import (
    ComponentAction,
    JoinAction,
    LeaveAction,
    MalformedComponentId,
    ManageAction,
    RemovalSubmit,
    parse_component_id,
)
from rally.engine.outcomes import PartyRejection, SignupOutcome
from rally.engine.perms import is_manager
from rally.services import character_service
from rally.services.embeds import (
    MANAGE_PANEL_CONTENT,
    build_manage_view,
    build_party_embed,
    build_party_view,
)
from rally.services.lifecycle import Actor, edit_listing, load_display
from rally.services.party_log import log_party_action

if TYPE_CHECKING:
    from rally.bot.core import RallyBot

logger = logging.getLogger(__name__)

GENERIC_FAILURE = "❌ Something went wrong processing your action."
REMOVAL_FAILURE = "❌ Failed to process removal. Please try again."
PARTY_GONE = "❌ This party no longer exists."
NO_MANAGE_PERMISSION = "⛔ You don't have permission to manage this party."


class Lanes(commands.Cog, name="Lanes"):
    """Routes listing components to the signup engine."""

    def __init__(self, bot: RallyBot) -> None:
        self.bot = bot

    # -------------------------------------------------------------------
    # Entry point
    # -------------------------------------------------------------------
    @commands.Cog.listener()
    async def on_interaction(self, interaction: discord.Interaction) -> None:
        if interaction.type is not discord.InteractionType.component:
            return
        custom_id = (interaction.data or {}).get("custom_id")
        try:
            action = parse_component_id(custom_id)
        except MalformedComponentId:
            return
        await self.route(interaction, action)

    async def route(self, interaction: discord.Interaction, action: ComponentAction) -> None:
        await interaction.response.defer()
        try:
            display = await load_display(self.bot.gateway, self.bot.display_cache, action.event_id)
            if display is None:
                await self._reply(interaction, PARTY_GONE)
                return
            match action:
                case JoinAction():
                    await self._join(interaction, display, action)
                case LeaveAction():
                    await self._leave(interaction, display)
                case ManageAction():
                    await self._manage(interaction, display)
                case RemovalSubmit():
                    await self._remove(interaction, display, action)
        except Exception:
            logger.exception(
                "Component %s failed for user %s", type(action).__name__, interaction.user.id,
            )
            failure = REMOVAL_FAILURE if isinstance(action, RemovalSubmit) else GENERIC_FAILURE
            try:
                await self._reply(interaction, failure)
            except discord.HTTPException:
                logger.warning("Could not deliver failure notice to %s", interaction.user.id)

    # -------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------
    @staticmethod
    async def _reply(interaction: discord.Interaction, content: str) -> None:
        await interaction.followup.send(content, ephemeral=True)

    def _may_manage(self, actor: Actor, display: EventDisplay) -> bool:
        return is_manager(
            actor.user_id,
            display.creator_id,
            is_guild_admin=actor.is_guild_admin,
            admin_ids=self.bot.cfg.admin_ids,
        )

    async def _redraw_here(self, interaction: discord.Interaction, display: EventDisplay) -> None:
        """Redraw the listing the clicked button belongs to."""
        rosters = await run_db(signups.snapshot, self.bot.gateway, display.event_id)
        try:
            await interaction.edit_original_response(
                embed=build_party_embed(display, rosters),
                view=build_party_view(display.event_id, rosters),
            )
        except discord.HTTPException as exc:
            logger.warning("Could not redraw listing for %s: %s", display.event_id, exc)

    async def _log(
        self,
        interaction: discord.Interaction,
        display: EventDisplay,
        action: PartyAction,
        actor: Actor,
        member_name: str,
    ) -> None:
        await run_db(
            log_party_action,
            self.bot.gateway,
            guild_id=str(interaction.guild_id or ""),
            party_id=display.event_id,
            action=action,
            actor_nickname=actor.display_name,
            member_nickname=member_name,
        )

    # -------------------------------------------------------------------
    # join / leave
    # -------------------------------------------------------------------
    async def _join(
        self, interaction: discord.Interaction, display: EventDisplay, action: JoinAction,
    ) -> None:
        actor = Actor.from_interaction(interaction)
        self.bot.names.remember(interaction.guild_id, actor.user_id, actor.display_name)
        gear_score = await run_db(
            character_service.best_gear_score,
            self.bot.gateway,
            actor.user_id,
            str(interaction.guild_id or ""),
            action.lane_key,
        )
        result = await run_db(
            signups.join, self.bot.gateway, display.event_id, actor.user_id,
            action.lane_key, gear_score,
        )
        if result.ok:
            await self._redraw_here(interaction, display)
            kind = PartyAction.SWITCH if result.outcome is SignupOutcome.SWITCHED else PartyAction.JOIN
            await self._log(interaction, display, kind, actor, actor.display_name)
        else:
            logger.info(
                "Join %s/%s by %s declined: %s (%s)",
                display.event_id, action.lane_key, actor.user_id, result.outcome, result.kind,
            )
        await self._reply(interaction, result.message())

    async def _leave(self, interaction: discord.Interaction, display: EventDisplay) -> None:
        actor = Actor.from_interaction(interaction)
        self.bot.names.remember(interaction.guild_id, actor.user_id, actor.display_name)
        result = await run_db(signups.leave, self.bot.gateway, display.event_id, actor.user_id)
        if result.ok:
            await self._redraw_here(interaction, display)
            await self._log(interaction, display, PartyAction.LEAVE, actor, actor.display_name)
        await self._reply(interaction, result.message())

    # -------------------------------------------------------------------
    # Manage panel
    # -------------------------------------------------------------------
    async def _panel(
        self, interaction: discord.Interaction, event_id: str,
    ) -> tuple[list[signups.LaneRoster], discord.ui.View]:
        rosters = await run_db(signups.snapshot, self.bot.gateway, event_id)
        user_ids = [o.user_id for roster in rosters for o in roster.occupants]
        names = await self.bot.names.resolve_many(interaction.guild, user_ids)
        return rosters, build_manage_view(event_id, rosters, names)

    async def _manage(self, interaction: discord.Interaction, display: EventDisplay) -> None:
        if not self._may_manage(Actor.from_interaction(interaction), display):
            await self._reply(interaction, NO_MANAGE_PERMISSION)
            return
        _, view = await self._panel(interaction, display.event_id)
        await interaction.followup.send(MANAGE_PANEL_CONTENT, view=view, ephemeral=True)

    async def _remove(
        self, interaction: discord.Interaction, display: EventDisplay, action: RemovalSubmit,
    ) -> None:
        actor = Actor.from_interaction(interaction)
        if not self._may_manage(actor, display):
            await self._reply(interaction, NO_MANAGE_PERMISSION)
            return

        values = (interaction.data or {}).get("values") or []
        try:
            removed = await run_db(
                signups.remove_many, self.bot.gateway, display.event_id, action.lane_id, values,
            )
        except PartyRejection as rejection:
            await interaction.edit_original_response(content=rejection.message, view=None)
            return

        rosters, view = await self._panel(interaction, display.event_id)
        if removed:
            await edit_listing(interaction.client, display, rosters)
        try:
            await interaction.edit_original_response(content=MANAGE_PANEL_CONTENT, view=view)
        except discord.HTTPException as exc:
            logger.warning("Could not refresh manage panel for %s: %s", display.event_id, exc)

        for user_id in removed:
            member_name = await self.bot.names.resolve(interaction.guild, user_id)
            await self._log(interaction, display, PartyAction.REMOVE, actor, member_name)
        if removed:
            logger.info(
                "%s removed %d member(s) from %s lane %s",
                actor.user_id, len(removed), display.event_id, action.lane_id,
            )


async def setup(bot: RallyBot) -> None:
    await bot.add_cog(Lanes(bot))
