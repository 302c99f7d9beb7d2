from __future__ import annotations

from ...models import BotStats
from .utils import _sqlite_memory_connection


class MemoryStatsMixin:
    async def get_bot_stats(self) -> BotStats:
        async with _sqlite_memory_connection(self.db_path) as db:
            async with db.execute(
                "SELECT total_messages, api_calls FROM bot_stats WHERE stats_id = 1"
            ) as cursor:
                row = await cursor.fetchone()
        if row is None:
            return BotStats()
        return BotStats(total_messages=int(row[0]), api_calls=int(row[1]))

    async def increment_bot_stats(self, total_messages: int, api_calls: int) -> BotStats:
        # Single statement so concurrent commands never overwrite each other's counts.
        async with _sqlite_memory_connection(self.db_path) as db:
            await db.execute(
                """
                INSERT INTO bot_stats (stats_id, total_messages, api_calls, updated_at)
                VALUES (1, ?, ?, CURRENT_TIMESTAMP)
                ON CONFLICT(stats_id) DO UPDATE SET
                    total_messages = bot_stats.total_messages + excluded.total_messages,
                    api_calls = bot_stats.api_calls + excluded.api_calls,
                    updated_at = CURRENT_TIMESTAMP
                """,
                (int(total_messages), int(api_calls)),
            )
            await db.commit()
            async with db.execute(
                "SELECT total_messages, api_calls FROM bot_stats WHERE stats_id = 1"
            ) as cursor:
                row = await cursor.fetchone()
        return BotStats(total_messages=int(row[0]), api_calls=int(row[1]))
