from __future__ import annotations

from typing import Optional

import aiosqlite

from ...models import Conversation
from .utils import _sqlite_memory_connection

_SELECT_CONVERSATION = """
    SELECT conversation_id, user_id, channel_id, guild_id
    FROM conversations
    WHERE channel_id = ? AND user_id = ?
"""


def _row_to_conversation(row: aiosqlite.Row) -> Conversation:
    guild_id = row["guild_id"]
    return Conversation(
        id=int(row["conversation_id"]),
        user_id=str(row["user_id"]),
        channel_id=str(row["channel_id"]),
        guild_id=str(guild_id) if guild_id is not None else None,
    )


class MemoryConversationsMixin:
    async def get_conversation(self, channel_id: str, user_id: str) -> Optional[Conversation]:
        async with _sqlite_memory_connection(self.db_path) as db:
            db.row_factory = aiosqlite.Row
            async with db.execute(_SELECT_CONVERSATION, (channel_id, user_id)) as cursor:
                row = await cursor.fetchone()
        if row is None:
            return None
        return _row_to_conversation(row)

    async def create_conversation(self, channel_id: str, user_id: str, guild_id: str | None) -> Conversation:
        async with _sqlite_memory_connection(self.db_path) as db:
            db.row_factory = aiosqlite.Row
            await db.execute(
                """
                INSERT INTO conversations (user_id, channel_id, guild_id, created_at)
                VALUES (?, ?, ?, CURRENT_TIMESTAMP)
                ON CONFLICT(channel_id, user_id) DO NOTHING
                """,
                (user_id, channel_id, guild_id),
            )
            await db.commit()
            async with db.execute(_SELECT_CONVERSATION, (channel_id, user_id)) as cursor:
                row = await cursor.fetchone()
        return _row_to_conversation(row)
