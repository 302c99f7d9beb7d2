from __future__ import annotations

import logging
from typing import List

from ..models import BotStats, Conversation, Message, MessageRole, User
from .store import MemoryStore

logger = logging.getLogger("slash_ai_bot")

DEFAULT_HISTORY_WINDOW = 10


class ConversationStore:
    """Get-or-create access to users and per-(channel, user) conversations."""

    def __init__(self, memory: MemoryStore, history_window: int = DEFAULT_HISTORY_WINDOW) -> None:
        self.memory = memory
        self.history_window = max(1, int(history_window))

    async def ensure_user(self, platform_id: str, display_name: str) -> User:
        user = await self.memory.get_user_by_platform_id(platform_id)
        if user is not None:
            return user
        user = await self.memory.create_user(platform_id, display_name)
        logger.info("Registered user %s (%s)", user.username, user.platform_id)
        return user

    async def ensure_conversation(self, channel_id: str, user_id: str, guild_id: str | None) -> Conversation:
        conversation = await self.memory.get_conversation(channel_id, user_id)
        if conversation is not None:
            return conversation
        conversation = await self.memory.create_conversation(channel_id, user_id, guild_id)
        logger.info(
            "Started conversation id=%s channel=%s user=%s guild=%s",
            conversation.id,
            channel_id,
            user_id,
            guild_id,
        )
        return conversation

    async def append_message(self, conversation_id: int, role: MessageRole, content: str) -> Message:
        return await self.memory.create_message(conversation_id, MessageRole(role), content)

    async def recent_history(self, conversation_id: int, window_size: int | None = None) -> List[Message]:
        limit = self.history_window if window_size is None else int(window_size)
        if limit < 1:
            return []
        return await self.memory.get_recent_messages(conversation_id, limit)

    async def increment_stats(self, delta_messages: int = 1, delta_api_calls: int = 1) -> BotStats:
        return await self.memory.increment_bot_stats(delta_messages, delta_api_calls)
