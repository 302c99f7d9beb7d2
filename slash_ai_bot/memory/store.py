from __future__ import annotations

from .storage.conversations import MemoryConversationsMixin
from .storage.identity import MemoryIdentityMixin
from .storage.messages import MemoryMessagesMixin
from .storage.schema import MemorySchemaMixin
from .storage.settings import MemorySettingsMixin
from .storage.stats import MemoryStatsMixin
from .storage.utils import _sqlite_memory_connection


class MemoryStore(
    MemorySchemaMixin,
    MemoryIdentityMixin,
    MemoryConversationsMixin,
    MemoryMessagesMixin,
    MemorySettingsMixin,
    MemoryStatsMixin,
):
    """SQLite store for users, per-channel conversations, guild settings and bot counters."""

    async def ping(self) -> None:
        async with _sqlite_memory_connection(self.db_path) as db:
            await db.execute("SELECT 1")
