from __future__ import annotations

from typing import List

import aiosqlite

from ...models import Message, MessageRole
from .utils import _sqlite_memory_connection


class MemoryMessagesMixin:
    async def create_message(self, conversation_id: int, role: MessageRole, content: str) -> Message:
        async with _sqlite_memory_connection(self.db_path) as db:
            cursor = await db.execute(
                """
                INSERT INTO messages (conversation_id, role, content)
                VALUES (?, ?, ?)
                """,
                (int(conversation_id), MessageRole(role).value, content),
            )
            await db.commit()
            message_id = int(cursor.lastrowid)
        return Message(
            id=message_id,
            conversation_id=int(conversation_id),
            role=MessageRole(role),
            content=content,
        )

    async def get_recent_messages(self, conversation_id: int, limit: int) -> List[Message]:
        async with _sqlite_memory_connection(self.db_path) as db:
            db.row_factory = aiosqlite.Row
            async with db.execute(
                """
                SELECT message_id, conversation_id, role, content, created_at
                FROM messages
                WHERE conversation_id = ?
                ORDER BY message_id DESC
                LIMIT ?
                """,
                (int(conversation_id), max(1, int(limit))),
            ) as cursor:
                rows = await cursor.fetchall()

        ordered = list(reversed(rows))
        return [
            Message(
                id=int(row["message_id"]),
                conversation_id=int(row["conversation_id"]),
                role=MessageRole(str(row["role"])),
                content=str(row["content"]),
                created_at=str(row["created_at"]),
            )
            for row in ordered
        ]

    async def count_messages(self, conversation_id: int) -> int:
        async with _sqlite_memory_connection(self.db_path) as db:
            async with db.execute(
                "SELECT COUNT(*) FROM messages WHERE conversation_id = ?",
                (int(conversation_id),),
            ) as cursor:
                row = await cursor.fetchone()
        return int(row[0]) if row else 0
