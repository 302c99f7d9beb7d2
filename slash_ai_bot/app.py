from __future__ import annotations

import asyncio
import logging

from .config import Settings
from .discord.client import SlashAIDiscordBot
from .memory.store import MemoryStore
from .services.gemini_client import GeminiClient

logger = logging.getLogger("slash_ai_bot")


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
    )
    logging.getLogger("discord.gateway").setLevel(logging.WARNING)
    logging.getLogger("discord.client").setLevel(logging.WARNING)


def build_bot(settings: Settings) -> SlashAIDiscordBot:
    memory = MemoryStore(settings.sqlite_path)
    llm = GeminiClient(
        api_key=settings.gemini_api_key,
        model=settings.gemini_model,
        timeout_seconds=settings.gemini_timeout_seconds,
        temperature=settings.gemini_temperature,
        max_output_tokens=settings.gemini_max_output_tokens,
        base_url=settings.gemini_base_url,
    )
    return SlashAIDiscordBot(settings=settings, memory=memory, llm=llm)


async def _run_bot(settings: Settings) -> None:
    bot = build_bot(settings)
    async with bot:
        await bot.start(settings.discord_token)


def main() -> None:
    settings = Settings.from_env()
    configure_logging(settings.log_level)
    settings.validate()
    try:
        asyncio.run(_run_bot(settings))
    except KeyboardInterrupt:
        logger.info("Shutdown requested, exiting.")
