import asyncio
import logging

from aiogram import Bot, Dispatcher
from aiogram.client.default import DefaultBotProperties
from aiogram.enums import ParseMode
from aiogram.types import BotCommand

from ktp_bot.config import load_config
from ktp_bot.handlers import scan_ktp, start
from ktp_bot.services import ocr_engine


async def set_commands(bot: Bot) -> None:
    await bot.set_my_commands([
        BotCommand(command="start", description="Mulai"),
        BotCommand(command="cancel", description="Batalkan"),
    ])


async def run() -> None:
    config = load_config()
    logging.basicConfig(level=config.log_level)
    ocr_engine.configure(config.tesseract_cmd)

    bot = Bot(
        token=config.bot_token,
        default=DefaultBotProperties(parse_mode=ParseMode.HTML)
    )

    dp = Dispatcher(config=config)
    dp.include_router(start.router)
    dp.include_router(scan_ktp.router)

    await set_commands(bot)
    logging.info("🤖 Bot started.")
    await dp.start_polling(bot)


def main() -> None:
    asyncio.run(run())


if __name__ == "__main__":
    main()
