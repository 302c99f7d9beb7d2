from __future__ import annotations

from typing import Optional

import aiosqlite

from ...models import GuildSettings, ResponseLength, SlashCommandMode
from .utils import _dump_id_list, _load_id_list, _sqlite_memory_connection


def _row_to_settings(row: aiosqlite.Row) -> GuildSettings:
    return GuildSettings(
        guild_id=str(row["guild_id"]),
        prefix=str(row["prefix"] or ""),
        response_length=ResponseLength(str(row["response_length"])),
        personality=str(row["personality"]),
        code_format=bool(row["code_format"]),
        allowed_channels=_load_id_list(row["allowed_channels"]),
        channel_mode=str(row["channel_mode"]),
        slash_command_mode=SlashCommandMode(str(row["slash_command_mode"])),
        activated_channels=_load_id_list(row["activated_channels"]),
    )


class MemorySettingsMixin:
    async def get_guild_settings(self, guild_id: str) -> Optional[GuildSettings]:
        async with _sqlite_memory_connection(self.db_path) as db:
            db.row_factory = aiosqlite.Row
            async with db.execute(
                """
                SELECT guild_id, prefix, response_length, personality, code_format,
                       allowed_channels, channel_mode, slash_command_mode, activated_channels
                FROM guild_settings
                WHERE guild_id = ?
                """,
                (guild_id,),
            ) as cursor:
                row = await cursor.fetchone()
        if row is None:
            return None
        return _row_to_settings(row)

    async def save_guild_settings(self, settings: GuildSettings) -> GuildSettings:
        async with _sqlite_memory_connection(self.db_path) as db:
            await db.execute(
                """
                INSERT INTO guild_settings (
                    guild_id, prefix, response_length, personality, code_format,
                    allowed_channels, channel_mode, slash_command_mode, activated_channels, updated_at
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, CURRENT_TIMESTAMP)
                ON CONFLICT(guild_id) DO UPDATE SET
                    prefix = excluded.prefix,
                    response_length = excluded.response_length,
                    personality = excluded.personality,
                    code_format = excluded.code_format,
                    allowed_channels = excluded.allowed_channels,
                    channel_mode = excluded.channel_mode,
                    slash_command_mode = excluded.slash_command_mode,
                    activated_channels = excluded.activated_channels,
                    updated_at = CURRENT_TIMESTAMP
                """,
                (
                    settings.guild_id,
                    settings.prefix,
                    ResponseLength(settings.response_length).value,
                    settings.personality,
                    1 if settings.code_format else 0,
                    _dump_id_list(settings.allowed_channels),
                    settings.channel_mode,
                    SlashCommandMode(settings.slash_command_mode).value,
                    _dump_id_list(settings.activated_channels),
                ),
            )
            await db.commit()
        return settings
