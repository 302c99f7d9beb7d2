from __future__ import annotations

from typing import Optional

import aiosqlite

from ...models import User
from .utils import _sqlite_memory_connection


def _row_to_user(row: aiosqlite.Row) -> User:
    return User(
        id=int(row["user_pk"]),
        platform_id=str(row["platform_id"]),
        username=str(row["username"]),
    )


class MemoryIdentityMixin:
    async def get_user_by_platform_id(self, platform_id: str) -> Optional[User]:
        async with _sqlite_memory_connection(self.db_path) as db:
            db.row_factory = aiosqlite.Row
            async with db.execute(
                "SELECT user_pk, platform_id, username FROM users WHERE platform_id = ?",
                (platform_id,),
            ) as cursor:
                row = await cursor.fetchone()
        if row is None:
            return None
        return _row_to_user(row)

    async def create_user(self, platform_id: str, username: str) -> User:
        # A concurrent creator may win the race; the stored row is authoritative.
        async with _sqlite_memory_connection(self.db_path) as db:
            db.row_factory = aiosqlite.Row
            await db.execute(
                """
                INSERT INTO users (platform_id, username, created_at)
                VALUES (?, ?, CURRENT_TIMESTAMP)
                ON CONFLICT(platform_id) DO NOTHING
                """,
                (platform_id, username),
            )
            await db.commit()
            async with db.execute(
                "SELECT user_pk, platform_id, username FROM users WHERE platform_id = ?",
                (platform_id,),
            ) as cursor:
                row = await cursor.fetchone()
        return _row_to_user(row)
