"""
rally.bot.cogs.characters — /character roster commands
=======================================================

Members register characters (class + gear score) and pick one **main**.
The main decides which lane a host is auto-enrolled into; the best score
per role gates joins on parties with a minimum.

- /character add     — class (autocomplete), gs, main
- /character list    — your characters, ⭐ marks the main
- /character remove  — delete one of yours
- /character setgs   — update a gear score
- /character main    — switch your main
- /character help
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import discord
from discord import app_commands
from discord.ext import commands

from rally.bot.checks import in_party_channel, reply_check_failure
from rally.constants import MAX_GEAR_SCORE
from rally.database.engine import run_db
from rally.services import character_service
from rally.services.character_service import class_label

if TYPE_CHECKING:
    from rally.bot.core import RallyBot

logger = logging.getLogger(__name__)

NOT_YOURS = "❌ Character not found or not yours."

HELP_TEXT = "\n".join([
    "**/character add** — Add a character",
    "• `class` *(list of classes)*",
    "• `gs` *(gear score, 0 or more)*",
    "• `main` *(true/false, if true, sets as your main)*",
    "",
    "**/character list** — Show only *your* characters",
    "",
    "**/character remove** — Delete one of your characters",
    "• `character` *(choose one)*",
    "",
    "**/character setgs** — Update gear score",
    "• `character` *(choose one)*",
    "• `gs` *(gear score, 0 or more)*",
    "",
    "**/character main** — Set your main character",
    "• `character` *(choose one)*",
])


def format_roster(rows: list[dict]) -> str:
    """Numbered list, ``N. ⭐ **Name | Sub** (role) — GS **x**``."""
    if not rows:
        return "ℹ️ You have no characters yet."
    return "\n".join(
        f"{i}. {'⭐ ' if r['is_main'] else ''}**{class_label(r['name'], r['sub_class'])}** "
        f"({r['role']}) — GS **{r['gear_score']}**"
        for i, r in enumerate(rows, start=1)
    )


def _parse_id(raw: str) -> int | None:
    return int(raw) if raw and raw.strip().isdigit() else None


class Characters(commands.Cog, name="Characters"):
    """Character roster management."""

    character = app_commands.Group(name="character", description="Manage your characters")

    def __init__(self, bot: RallyBot) -> None:
        self.bot = bot

    # -------------------------------------------------------------------
    # /character add
    # -------------------------------------------------------------------
    @character.command(name="add", description="Add a character")
    @app_commands.describe(
        class_="Pick a class (autocomplete)",
        gs="Gear Score",
        main="Mark as main",
    )
    @app_commands.rename(class_="class")
    @in_party_channel()
    async def add(
        self,
        interaction: discord.Interaction,
        class_: str,
        gs: app_commands.Range[int, 0, MAX_GEAR_SCORE],
        main: bool = False,
    ) -> None:
        await interaction.response.defer(ephemeral=True)
        class_id = _parse_id(class_)
        if class_id is None:
            await interaction.followup.send(
                "❌ Unknown class selection. Please pick from the autocomplete list.",
                ephemeral=True,
            )
            return
        _, message = await run_db(
            character_service.add_character,
            self.bot.gateway,
            user_id=str(interaction.user.id),
            guild_id=str(interaction.guild_id or ""),
            class_id=class_id,
            gear_score=gs,
            is_main=main,
            nickname=getattr(interaction.user, "display_name", None),
        )
        await interaction.followup.send(message, ephemeral=True)

    @add.autocomplete("class_")
    async def _class_autocomplete(
        self, interaction: discord.Interaction, current: str,
    ) -> list[app_commands.Choice[str]]:
        rows = await run_db(character_service.search_classes, self.bot.gateway, current)
        return [
            app_commands.Choice(
                name=f"{class_label(r['name'], r['sub_class'])} — {r['role']}"[:100],
                value=str(r["id"]),
            )
            for r in rows
        ][:25]

    # -------------------------------------------------------------------
    # /character list
    # -------------------------------------------------------------------
    @character.command(name="list", description="List your characters")
    @in_party_channel()
    async def list_(self, interaction: discord.Interaction) -> None:
        await interaction.response.defer(ephemeral=True)
        rows = await run_db(
            character_service.list_characters,
            self.bot.gateway,
            str(interaction.user.id),
            str(interaction.guild_id or ""),
        )
        await interaction.followup.send(format_roster(rows), ephemeral=True)

    # -------------------------------------------------------------------
    # /character remove | setgs | main
    # -------------------------------------------------------------------
    @character.command(name="remove", description="Remove one of your characters")
    @app_commands.describe(character="Select your character")
    @in_party_channel()
    async def remove(self, interaction: discord.Interaction, character: str) -> None:
        await interaction.response.defer(ephemeral=True)
        char_id = _parse_id(character)
        done = char_id is not None and await run_db(
            character_service.remove_character,
            self.bot.gateway,
            char_id,
            str(interaction.user.id),
            str(interaction.guild_id or ""),
        )
        await interaction.followup.send("🗑️ Removed." if done else NOT_YOURS, ephemeral=True)

    @character.command(name="setgs", description="Update a character's GS")
    @app_commands.describe(character="Select your character", gs="New Gear Score")
    @in_party_channel()
    async def setgs(
        self,
        interaction: discord.Interaction,
        character: str,
        gs: app_commands.Range[int, 0, MAX_GEAR_SCORE],
    ) -> None:
        await interaction.response.defer(ephemeral=True)
        char_id = _parse_id(character)
        done = char_id is not None and await run_db(
            character_service.set_gear_score,
            self.bot.gateway,
            char_id,
            str(interaction.user.id),
            str(interaction.guild_id or ""),
            gs,
        )
        await interaction.followup.send(
            f"✅ Updated GS to **{gs}**." if done else NOT_YOURS, ephemeral=True,
        )

    @character.command(name="main", description="Set one of your characters as main")
    @app_commands.describe(character="Select your character")
    @in_party_channel()
    async def main(self, interaction: discord.Interaction, character: str) -> None:
        await interaction.response.defer(ephemeral=True)
        user_id, guild_id = str(interaction.user.id), str(interaction.guild_id or "")
        char_id = _parse_id(character)
        row = None
        if char_id is not None:
            row = await run_db(
                character_service.get_owned_character, self.bot.gateway, char_id, user_id, guild_id,
            )
        if row is None or not await run_db(
            character_service.set_main, self.bot.gateway, char_id, user_id, guild_id,
        ):
            await interaction.followup.send(NOT_YOURS, ephemeral=True)
            return
        await interaction.followup.send(
            f"✅ Set **{class_label(row['name'], row['sub_class'])}** as your main.",
            ephemeral=True,
        )

    @remove.autocomplete("character")
    @setgs.autocomplete("character")
    @main.autocomplete("character")
    async def _own_character_autocomplete(
        self, interaction: discord.Interaction, current: str,
    ) -> list[app_commands.Choice[str]]:
        """Only the caller's characters, mains first."""
        rows = await run_db(
            character_service.list_characters,
            self.bot.gateway,
            str(interaction.user.id),
            str(interaction.guild_id or ""),
        )
        needle = current.lower()
        choices: list[app_commands.Choice[str]] = []
        for r in rows:
            label = (
                f"{'⭐ ' if r['is_main'] else ''}{class_label(r['name'], r['sub_class'])}"
                f" — {r['role']} — GS {r['gear_score']}"
            )
            if needle and needle not in label.lower():
                continue
            choices.append(app_commands.Choice(name=label[:100], value=str(r["id"])))
        return choices[:25]

    # -------------------------------------------------------------------
    # /character help
    # -------------------------------------------------------------------
    @character.command(name="help", description="Show help for character commands")
    async def help_(self, interaction: discord.Interaction) -> None:
        await interaction.response.send_message(HELP_TEXT, ephemeral=True)

    async def cog_app_command_error(
        self, interaction: discord.Interaction, error: app_commands.AppCommandError
    ) -> None:
        if not await reply_check_failure(interaction, error):
            raise error


async def setup(bot: RallyBot) -> None:
    await bot.add_cog(Characters(bot))
