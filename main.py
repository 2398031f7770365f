"""Entry point for the game meetup Telegram bot.

This module wires configuration, logging, scheduler, and the Telegram
Application lifecycle together.
"""
from __future__ import annotations

import asyncio
import logging
import sys
from logging import Logger

from meetbot.config import load_settings
from meetbot.handlers import BotApp
from meetbot.scheduler import BotScheduler


async def main_async() -> None:
    """Run the bot in an asyncio event loop.

    Initializes configuration, the scheduler, builds the Telegram Application
    and starts long polling. Blocks until interrupted, then shuts down
    gracefully.
    """
    settings = load_settings()

    # Logging
    level = getattr(logging, settings.log_level.upper(), logging.INFO)
    logging.basicConfig(level=level, format='[%(asctime)s] %(levelname)s %(name)s: %(message)s')
    log: Logger = logging.getLogger("meetbot")

    if not settings.telegram_bot_token:
        log.error("No BOT_TOKEN set in env")
        sys.exit(1)

    scheduler = BotScheduler(timezone=settings.tzinfo())
    bot_app = BotApp(settings, scheduler)
    application = bot_app.build()

    # Explicit Application lifecycle to ensure an event loop exists (Python 3.12)
    await application.initialize()
    try:
        # Ensure scheduler is running even if post_init hook changes in PTB
        scheduler.start()
        await application.start()
        await application.updater.start_polling()
        log.info("bot started, timezone %s", settings.tz)
        # Block until interrupted (Ctrl+C) or process exit
        try:
            await asyncio.Event().wait()
        except (KeyboardInterrupt, SystemExit):
            pass
    finally:
        # Ensure updater is stopped before shutting down the application
        try:
            await application.updater.stop()
        except RuntimeError:
            pass
        await application.stop()
        await application.shutdown()
        scheduler.shutdown()


def main() -> None:
    """Synchronous entrypoint delegating to the async main.

    Uses asyncio.run to manage the event loop.
    """
    asyncio.run(main_async())


if __name__ == "__main__":
    main()
