"""
rally.bot.checks — App-command checks shared by cogs
=====================================================
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import discord
from discord import app_commands

if TYPE_CHECKING:
    from rally.bot.core import RallyBot


class WrongChannel(app_commands.CheckFailure):
    """Raised when a party command is used outside the party channel."""

    def __init__(self, channel_id: int) -> None:
        self.channel_id = channel_id
        super().__init__(f"⛔ This command can only be used in <#{channel_id}>.")


def allowed_channel(bot: RallyBot, channel_id: int | None) -> bool:
    """True when no party channel is configured or *channel_id* is it."""
    restricted = bot.cfg.party_channel_id
    return restricted is None or channel_id == restricted


def in_party_channel():
    """Decorator limiting a command to ``party_channel_id`` when configured."""
    async def predicate(interaction: discord.Interaction) -> bool:
        bot: RallyBot = interaction.client  # type: ignore[assignment]
        if not allowed_channel(bot, interaction.channel_id):
            raise WrongChannel(bot.cfg.party_channel_id or 0)
        return True
    return app_commands.check(predicate)


async def reply_check_failure(
    interaction: discord.Interaction, error: app_commands.AppCommandError,
) -> bool:
    """Answer a failed check ephemerally; False if *error* is something else."""
    if not isinstance(error, app_commands.CheckFailure):
        return False
    message = str(error) if isinstance(error, WrongChannel) else "⛔ You can't use this command here."
    if interaction.response.is_done():
        await interaction.followup.send(message, ephemeral=True)
    else:
        await interaction.response.send_message(message, ephemeral=True)
    return True
