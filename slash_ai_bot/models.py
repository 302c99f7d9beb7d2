from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

DM_SENTINEL = "DM"


class MessageRole(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"


class SlashCommandMode(str, Enum):
    DISABLED = "disabled"
    ENABLED = "enabled"
    REQUIRED = "required"
    ACTIVATED = "activated"


class ResponseLength(str, Enum):
    SHORT = "short"
    MEDIUM = "medium"
    LONG = "long"


@dataclass(slots=True)
class User:
    id: int
    platform_id: str
    username: str


@dataclass(slots=True)
class Conversation:
    id: int
    user_id: str
    channel_id: str
    guild_id: str | None = None


@dataclass(slots=True)
class Message:
    id: int
    conversation_id: int
    role: MessageRole
    content: str
    created_at: str = ""

    def as_turn(self) -> dict[str, str]:
        return {"role": self.role.value, "content": self.content}


@dataclass(slots=True)
class GuildSettings:
    guild_id: str
    prefix: str = ""
    response_length: ResponseLength = ResponseLength.MEDIUM
    personality: str = "helpful"
    code_format: bool = True
    allowed_channels: list[str] = field(default_factory=list)
    channel_mode: str = "all"
    slash_command_mode: SlashCommandMode = SlashCommandMode.ENABLED
    activated_channels: list[str] = field(default_factory=list)


@dataclass(slots=True)
class SettingsUpdate:
    """Partial settings write. ``None`` on any field means "keep what is stored"."""

    guild_id: str
    prefix: str | None = None
    response_length: ResponseLength | None = None
    personality: str | None = None
    code_format: bool | None = None
    allowed_channels: list[str] | None = None
    channel_mode: str | None = None
    slash_command_mode: SlashCommandMode | None = None
    activated_channels: list[str] | None = None


@dataclass(slots=True)
class BotStats:
    total_messages: int = 0
    api_calls: int = 0
