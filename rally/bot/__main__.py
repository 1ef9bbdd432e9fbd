"""
rally.bot.__main__ — Entry point for ``python -m rally.bot``
============================================================

Wiring:
1. Load .env (secrets).
2. Load config.yaml (soft settings) and templates.json.
3. Pick the database gateway and ensure tables exist.
4. Seed the class catalog (idempotent).
5. Create the RallyBot and hand it config + gateway + templates.
6. Start the bot (blocking — runs the asyncio event loop).

Run with::

    python -m rally.bot
"""

from __future__ import annotations

import logging
import os
import sys

from dotenv import load_dotenv

from rally.bot.core import RallyBot
from rally.config import load_config, load_templates
from rally.database.engine import create_gateway, init_db
from rally.database.seed import seed_classes

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s │ %(levelname)-8s │ %(name)s │ %(message)s",
    datefmt="%H:%M:%S",
)
logger = logging.getLogger("rally")


def main() -> None:
    """Bootstrap and run the Rally bot."""

    # 1. Environment variables (secrets).
    load_dotenv()

    token = os.getenv("DISCORD_TOKEN")
    if not token or token == "your-discord-bot-token-here":
        logger.critical(
            "DISCORD_TOKEN is not set.  "
            "Copy .env.example → .env and paste your bot token."
        )
        sys.exit(1)

    # 2. Soft configuration and templates.
    cfg = load_config()
    logger.info("Config loaded — Community: %s", cfg.community_name)
    catalog = load_templates(cfg.templates_path)

    # 3. Database.
    gateway = create_gateway()
    init_db(gateway)

    # 4. Class catalog for /character.
    seed_classes(gateway, catalog.classes)

    # 5. Bot.
    bot = RallyBot(cfg=cfg, gateway=gateway, catalog=catalog)

    # 6. Run (blocks until Ctrl+C or SIGTERM).
    logger.info("Starting Rally bot…")
    try:
        bot.run(token, log_handler=None)
    except KeyboardInterrupt:
        logger.info("Shutting down gracefully…")


if __name__ == "__main__":
    main()
