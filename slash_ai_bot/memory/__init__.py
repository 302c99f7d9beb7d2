from .conversations import ConversationStore
from .guild_settings import SettingsResolver, merge_settings
from .store import MemoryStore

__all__ = ["ConversationStore", "MemoryStore", "SettingsResolver", "merge_settings"]
