"""
Entry point: run the WhatsApp status scheduler bot.

Usage::

    python run.py
"""

import asyncio
import logging
import sys

from dotenv import load_dotenv

load_dotenv()

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-8s %(name)s | %(message)s",
    datefmt="%H:%M:%S",
)
logger = logging.getLogger("run")


async def main() -> None:
    from statusbot.bot import StatusBot
    from statusbot.config import get_settings, validate_env
    from statusbot.exceptions import ConfigurationError

    settings = get_settings()
    validate_env(strict=False)
    if not settings.gateway_url:
        raise ConfigurationError("WHATSAPP_GATEWAY_URL (or gateway_url in settings.yaml) is required")
    logging.getLogger().setLevel(settings.log_level.upper())

    bot = StatusBot.from_settings(settings)
    logger.info(
        "Starting status scheduler bot (tz=%s, prefix=%s, storage=%s)",
        settings.timezone,
        settings.command_prefix,
        settings.storage_path,
    )
    await bot.run()


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        logger.info("Interrupted")
        sys.exit(0)
