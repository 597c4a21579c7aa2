import asyncio
import logging
import sys
from pathlib import Path

from aiogram import Bot, Dispatcher
from aiogram.client.default import DefaultBotProperties
from aiogram.fsm.storage.memory import MemoryStorage

from event_bot.config import settings
from event_bot.db import SessionLocal, init_db
from event_bot.handlers import common_router, errors_router, group_router, my_registrations_router
from event_bot.middleware import DbSessionMiddleware, RegistrationTimeoutMiddleware
from event_bot.services.scheduler import schedule_jobs
from event_bot.webapp.server import start_admin_server


def setup_logging() -> None:
    # ./logs next to this file
    logs_dir = Path(__file__).resolve().parent / "logs"
    logs_dir.mkdir(exist_ok=True)
    log_file = logs_dir / "bot.log"

    logging.basicConfig(
        level=settings.LOG_LEVEL,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        handlers=[
            logging.StreamHandler(sys.stdout),
            logging.FileHandler(log_file, encoding="utf-8"),
        ],
        force=True,
    )
    logging.getLogger("aiogram").setLevel(logging.INFO)
    logging.getLogger("apscheduler").setLevel(logging.WARNING)


async def main():
    setup_logging()
    logging.info("Bot starting…")

    await init_db()

    bot = Bot(token=settings.BOT_TOKEN, default=DefaultBotProperties(parse_mode="HTML"))
    dp = Dispatcher(storage=MemoryStorage())

    # Middleware
    dp.update.middleware(DbSessionMiddleware(session_pool=SessionLocal))
    timeout = RegistrationTimeoutMiddleware(ttl_seconds=settings.REGISTRATION_TTL_MINUTES * 60)
    # outer: must run before state filters pick a handler
    dp.message.outer_middleware(timeout)
    dp.callback_query.outer_middleware(timeout)

    # Routers
    dp.include_router(common_router)
    dp.include_router(my_registrations_router)
    dp.include_router(group_router)
    dp.include_router(errors_router)

    scheduler = schedule_jobs()
    runner = await start_admin_server(SessionLocal, bot)

    try:
        await dp.start_polling(bot)
    finally:
        scheduler.shutdown(wait=False)
        await runner.cleanup()
        await bot.session.close()


def run() -> None:
    asyncio.run(main())


if __name__ == "__main__":
    run()
