"""
Telegram bot entry point

Run with `python -m lifesync.bot.main` (or the `lifesync-bot` script).
"""

import asyncio

import structlog
from aiogram import Bot, Dispatcher

from lifesync.bot.menu import MenuExpiry
from lifesync.bot.router import build_router
from lifesync.config import get_settings
from lifesync.core import create_app_components


logger = structlog.get_logger("lifesync.bot")


async def main() -> None:
    """
    Entry point of the Telegram bot.

    1. Build the command core (Google Sheets store if configured)
    2. Load every table into local state
    3. Register the router and start polling
    """
    telegram = get_settings().telegram
    core, _ = create_app_components()
    await core.load()

    bot = Bot(token=telegram.bot_token)
    dp = Dispatcher()
    menus = MenuExpiry(bot.delete_message, timeout_seconds=telegram.menu_timeout_seconds)
    dp.include_router(build_router(core, menus, owner_id=telegram.owner_id))

    logger.info("bot_started", owner_id=telegram.owner_id)
    await dp.start_polling(bot)


def run() -> None:
    asyncio.run(main())


if __name__ == "__main__":
    run()
