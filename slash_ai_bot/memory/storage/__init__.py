from .conversations import MemoryConversationsMixin
from .identity import MemoryIdentityMixin
from .messages import MemoryMessagesMixin
from .schema import MemorySchemaMixin
from .settings import MemorySettingsMixin
from .stats import MemoryStatsMixin

__all__ = [
    "MemorySchemaMixin",
    "MemoryIdentityMixin",
    "MemoryConversationsMixin",
    "MemoryMessagesMixin",
    "MemorySettingsMixin",
    "MemoryStatsMixin",
]
