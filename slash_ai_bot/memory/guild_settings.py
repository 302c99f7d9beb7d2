from __future__ import annotations

import asyncio
import logging
from collections import defaultdict
from dataclasses import fields

from ..errors import SettingsPersistenceError, StoreError
from ..models import GuildSettings, SettingsUpdate, SlashCommandMode
from .store import MemoryStore

logger = logging.getLogger("slash_ai_bot")

_LIST_FIELDS = {"allowed_channels", "activated_channels"}


def merge_settings(existing: GuildSettings | None, update: SettingsUpdate) -> GuildSettings:
    """Overlay the fields set on ``update`` onto ``existing``.

    A missing record starts from the documented defaults of ``GuildSettings``.
    Fields left as ``None`` on the update inherit the stored (or default) value,
    so a partial write never drops data it did not mention.
    """
    base = existing if existing is not None else GuildSettings(guild_id=update.guild_id)
    values: dict[str, object] = {}
    for item in fields(GuildSettings):
        if item.name == "guild_id":
            values["guild_id"] = update.guild_id
            continue
        incoming = getattr(update, item.name)
        value = getattr(base, item.name) if incoming is None else incoming
        if item.name in _LIST_FIELDS:
            value = list(value)
        values[item.name] = value
    return GuildSettings(**values)


class SettingsResolver:
    def __init__(self, memory: MemoryStore) -> None:
        self.memory = memory
        self.guild_locks: dict[str, asyncio.Lock] = defaultdict(asyncio.Lock)

    async def resolve(self, guild_id: str) -> GuildSettings | None:
        try:
            return await self.memory.get_guild_settings(guild_id)
        except StoreError as exc:
            raise SettingsPersistenceError() from exc

    async def upsert(self, update: SettingsUpdate) -> GuildSettings:
        async with self.guild_locks[update.guild_id]:
            existing = await self.resolve(update.guild_id)
            return await self._write(existing, update)

    async def activate_channel(self, guild_id: str, channel_id: str) -> GuildSettings:
        async with self.guild_locks[guild_id]:
            existing = await self.resolve(guild_id)
            activated = list(existing.activated_channels) if existing is not None else []
            if channel_id not in activated:
                activated.append(channel_id)
            update = SettingsUpdate(
                guild_id=guild_id,
                activated_channels=activated,
                slash_command_mode=SlashCommandMode.ACTIVATED,
            )
            return await self._write(existing, update)

    async def deactivate_channel(self, guild_id: str, channel_id: str) -> GuildSettings | None:
        """Drop ``channel_id`` from the activated list; ``None`` when the guild has no record."""
        async with self.guild_locks[guild_id]:
            existing = await self.resolve(guild_id)
            if existing is None:
                return None
            remaining = [item for item in existing.activated_channels if item != channel_id]
            update = SettingsUpdate(guild_id=guild_id, activated_channels=remaining)
            return await self._write(existing, update)

    async def _write(self, existing: GuildSettings | None, update: SettingsUpdate) -> GuildSettings:
        merged = merge_settings(existing, update)
        try:
            saved = await self.memory.save_guild_settings(merged)
        except StoreError as exc:
            raise SettingsPersistenceError() from exc
        logger.info(
            "%s settings for guild=%s (mode=%s)",
            "Created" if existing is None else "Updated",
            saved.guild_id,
            saved.slash_command_mode.value,
        )
        return saved
