"""
rally.services.embeds — Party listing & manage panel rendering
===============================================================

Pure builders: they take a :class:`~rally.engine.cache.EventDisplay` and
a fresh lane snapshot and return discord.py objects.  Nothing here reads
the store.

Listing layout::

    🟢 <title>                      (colour by status)
    <description>
    Time   <t:unix:F>  ( <t:unix:R> )
    Host   @creator
    Min GS 1600                     (only when set)
    🛡️ Tank (1/1)  ⚔️ DPS (3/4)  ✚ Healer (0/1)   ← inline, padded to 3
    <image>

Views carry components only; clicks are routed by custom_id in the
``lanes`` cog, never by view callbacks.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence

import discord

from rally.constants import (
    EMPTY_SELECT_VALUE,
    MAX_COMPONENT_ROWS,
    MAX_SELECT_OPTIONS,
    STATUS_COLOR,
    STATUS_OPEN,
    STATUS_PREFIX,
)
from rally.engine.cache import EventDisplay
from rally.engine.components import JoinAction, LeaveAction, ManageAction, RemovalSubmit
from rally.engine.signups import LaneRoster, Occupant

logger = logging.getLogger(__name__)

_BLANK = "\u200b"
_BUTTONS_PER_ROW = 5

MANAGE_PANEL_CONTENT = (
    "⚙️ **Manage Party** — select players to remove. Changes update instantly."
)


# ---------------------------------------------------------------------------
# Listing embed
# ---------------------------------------------------------------------------
def _occupant_line(occupant: Occupant) -> str:
    if occupant.gear_score:
        return f"<@{occupant.user_id}> · GS {occupant.gear_score}"
    return f"<@{occupant.user_id}>"


def lane_field_name(roster: LaneRoster) -> str:
    return f"{roster.lane.label} ({roster.count}/{roster.capacity})"


def build_party_embed(
    display: EventDisplay,
    rosters: Sequence[LaneRoster],
    status: str = STATUS_OPEN,
) -> discord.Embed:
    """Render the public listing for *display* with the given occupancy."""
    embed = discord.Embed(
        title=f"{STATUS_PREFIX.get(status, '')}{display.title}",
        color=STATUS_COLOR.get(status, STATUS_COLOR[STATUS_OPEN]),
    )
    if display.description and display.description.strip():
        embed.description = display.description.strip()

    if display.unix:
        embed.add_field(
            name="Time",
            value=f"<t:{display.unix}:F>  ( <t:{display.unix}:R> )",
            inline=False,
        )
    if display.creator_id:
        embed.add_field(name="Host", value=f"<@{display.creator_id}>", inline=False)
    if display.min_gear_score:
        embed.add_field(name="Min GS", value=str(display.min_gear_score), inline=False)

    for roster in rosters:
        body = "\n".join(_occupant_line(o) for o in roster.occupants) or "_No players_"
        embed.add_field(name=lane_field_name(roster), value=body, inline=True)

    # Keep lane columns aligned in rows of three
    remainder = len(rosters) % 3
    if remainder:
        for _ in range(3 - remainder):
            embed.add_field(name=_BLANK, value=_BLANK, inline=True)

    if display.image_url and display.image_url.strip():
        embed.set_image(url=display.image_url.strip())
    return embed


# ---------------------------------------------------------------------------
# Listing buttons
# ---------------------------------------------------------------------------
def build_party_view(event_id: str, rosters: Sequence[LaneRoster]) -> discord.ui.View:
    """One join button per lane (disabled when full), then Leave / Manage."""
    view = discord.ui.View(timeout=None)
    join_rows = MAX_COMPONENT_ROWS - 1
    for index, roster in enumerate(rosters[: join_rows * _BUTTONS_PER_ROW]):
        view.add_item(discord.ui.Button(
            style=discord.ButtonStyle.primary,
            label=roster.lane.label or "Role",
            custom_id=JoinAction(event_id, roster.lane.key).custom_id(),
            disabled=roster.is_full,
            row=index // _BUTTONS_PER_ROW,
        ))
    if len(rosters) > join_rows * _BUTTONS_PER_ROW:
        logger.warning("Party %s has more lanes than join buttons fit", event_id)

    controls_row = min(
        (len(rosters) + _BUTTONS_PER_ROW - 1) // _BUTTONS_PER_ROW, join_rows
    )
    view.add_item(discord.ui.Button(
        style=discord.ButtonStyle.secondary,
        label="Leave",
        custom_id=LeaveAction(event_id).custom_id(),
        row=controls_row,
    ))
    view.add_item(discord.ui.Button(
        style=discord.ButtonStyle.secondary,
        label="⚙️ Manage",
        custom_id=ManageAction(event_id).custom_id(),
        row=controls_row,
    ))
    return view


# ---------------------------------------------------------------------------
# Manage panel
# ---------------------------------------------------------------------------
def build_manage_view(
    event_id: str,
    rosters: Sequence[LaneRoster],
    names: Mapping[str, str],
) -> discord.ui.View:
    """One removal select per lane; empty lanes get a disabled placeholder."""
    view = discord.ui.View(timeout=None)
    for roster in rosters[:MAX_COMPONENT_ROWS]:
        lane = roster.lane
        custom_id = RemovalSubmit(event_id, lane.id).custom_id()
        if not roster.occupants:
            view.add_item(discord.ui.Select(
                custom_id=custom_id,
                placeholder=f"{lane.label} — no players",
                min_values=1,
                max_values=1,
                disabled=True,
                options=[discord.SelectOption(label="No players to remove", value=EMPTY_SELECT_VALUE)],
            ))
            continue

        occupants = roster.occupants[:MAX_SELECT_OPTIONS]
        view.add_item(discord.ui.Select(
            custom_id=custom_id,
            placeholder=f"{lane.label} — remove players",
            min_values=1,
            max_values=len(occupants),
            options=[
                discord.SelectOption(
                    label=f"{i}) {names.get(o.user_id, o.user_id)}"[:100],
                    description=f"Remove {o.user_id}",
                    value=o.user_id,
                )
                for i, o in enumerate(occupants, start=1)
            ],
        ))
    if len(rosters) > MAX_COMPONENT_ROWS:
        logger.warning("Manage panel for %s shows only the first %d lanes", event_id, MAX_COMPONENT_ROWS)
    return view
