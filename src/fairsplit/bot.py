from __future__ import annotations

import asyncio

from aiogram import Bot, Dispatcher
from aiogram.client.default import DefaultBotProperties
from aiogram.enums import ParseMode

from fairsplit.config import get_settings
from fairsplit.handlers import basic_router, expenses_router, payments_router, requests_router
from fairsplit.ledger import open_ledger, set_global_ledger
from fairsplit.logging import configure_logging, get_logger


async def main() -> None:
    settings = get_settings()
    configure_logging(settings.log_level)
    if not settings.bot_token:
        raise SystemExit("BOT_TOKEN is not set")

    bot = Bot(token=settings.bot_token, default=DefaultBotProperties(parse_mode=ParseMode.HTML))
    dp = Dispatcher()
    ledger, db = await open_ledger(settings)

    dp.include_router(basic_router)
    dp.include_router(expenses_router)
    dp.include_router(requests_router)
    dp.include_router(payments_router)

    set_global_ledger(ledger)

    log = get_logger(__name__)
    log.info("bot.start", serialize_balances=settings.serialize_balances)
    try:
        await dp.start_polling(bot)
    finally:
        if db is not None:
            await db.close()
        await bot.session.close()
        log.info("bot.stop")


def run() -> None:
    asyncio.run(main())


if __name__ == "__main__":
    run()
