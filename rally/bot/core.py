"""
rally.bot.core — Bot Instance & Cog Loader
===========================================

**Why this file exists:**
Defines :class:`RallyBot`, a ``commands.Bot`` subclass that:

1. Stores the shared state every cog needs (``bot.cfg``, ``bot.gateway``,
   ``bot.catalog``, ``bot.display_cache``, ``bot.names``,
   ``bot.lifecycle``).
2. Loads every cog listed in :data:`EXTENSIONS`.
3. Syncs the slash-command tree on startup (guild-scoped for dev, global
   for production — controlled by the ``DEV_GUILD_ID`` env var).
"""

from __future__ import annotations

import logging
import os

import discord
from discord.ext import commands

from rally.config import RallyConfig, TemplateCatalog
from rally.database.engine import Gateway
from rally.engine.cache import DisplayCache
from rally.services.lifecycle import PartyLifecycle
from rally.services.names import NameResolver

logger = logging.getLogger(__name__)

# Cog modules to load on startup.
EXTENSIONS: list[str] = [
    "rally.bot.cogs.party",
    "rally.bot.cogs.lanes",
    "rally.bot.cogs.characters",
    "rally.bot.cogs.callout",
]


class RallyBot(commands.Bot):
    """Custom Bot subclass that carries project-wide state.

    Parameters
    ----------
    cfg:
        The parsed :class:`RallyConfig` from ``config.yaml``.
    gateway:
        The party store (D1 or a SQLAlchemy engine).
    catalog:
        Party templates and the class list.
    """

    def __init__(self, cfg: RallyConfig, gateway: Gateway, catalog: TemplateCatalog) -> None:
        # No privileged intents: members are fetched on demand for names.
        intents = discord.Intents.default()
        intents.message_content = False
        intents.presences = False

        super().__init__(
            command_prefix=cfg.bot_prefix,
            intents=intents,
            description=f"{cfg.community_name} — party sign-ups",
        )

        self.cfg = cfg
        self.gateway = gateway
        self.catalog = catalog
        self.display_cache = DisplayCache()
        self.names = NameResolver()
        self.lifecycle = PartyLifecycle(gateway, catalog, self.display_cache, cfg)

    # -----------------------------------------------------------------------
    # Lifecycle hooks
    # -----------------------------------------------------------------------
    async def setup_hook(self) -> None:
        """Load all cog extensions; one broken cog doesn't stop the rest."""
        for ext in EXTENSIONS:
            try:
                await self.load_extension(ext)
                logger.info("Loaded extension: %s", ext)
            except Exception as exc:
                logger.error("Failed to load extension %s: %s", ext, exc)

    async def on_ready(self) -> None:
        """Fired when the bot has connected and the cache is populated."""
        assert self.user is not None  # guaranteed after on_ready
        logger.info("Logged in as %s (ID: %s)", self.user.name, self.user.id)

        dev_guild_id = os.getenv("DEV_GUILD_ID")
        if dev_guild_id:
            guild = discord.Object(id=int(dev_guild_id))
            self.tree.copy_global_to(guild=guild)
            synced = await self.tree.sync(guild=guild)
            logger.info("Synced %d commands to dev guild %s", len(synced), dev_guild_id)
        else:
            synced = await self.tree.sync()
            logger.info("Synced %d commands globally", len(synced))

    async def close(self) -> None:
        """Graceful shutdown — release the gateway's HTTP client if any."""
        logger.info("Bot shutting down…")
        closer = getattr(self.gateway, "close", None)
        if callable(closer):
            closer()
        await super().close()
