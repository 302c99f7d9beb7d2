from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Dict, List, Protocol

from ..errors import GenerationError, MissingArgumentError
from ..memory.conversations import ConversationStore
from ..memory.guild_settings import SettingsResolver
from ..models import DM_SENTINEL, MessageRole, SettingsUpdate, SlashCommandMode
from .common import MESSAGE_CHAR_LIMIT, chunk_text
from .replies import CommandTransport, ReplyTracker

logger = logging.getLogger("slash_ai_bot")

GENERIC_ERROR_TEXT = "Sorry, I encountered an error while processing your command."
GENERATION_ERROR_TEXT = "Sorry, I encountered an error while generating a response."
UNKNOWN_COMMAND_TEXT = "Unknown command. Available commands: /ai, /activate, /deactivate, /aimode"
NO_SETTINGS_TEXT = "No settings found for this server."
ACTIVATE_ERROR_TEXT = "Sorry, I encountered an error while activating this channel."
DEACTIVATE_ERROR_TEXT = "Sorry, I encountered an error while deactivating this channel."
ACTIVATED_TEXT = (
    "✅ AI responses activated in this channel!\n\n"
    "I will now respond to all messages in this channel. Use `/deactivate` to stop responses."
)
DEACTIVATED_TEXT = (
    "✅ AI responses deactivated in this channel!\n\n"
    "I will no longer respond to messages in this channel. Use `/activate` to enable responses again."
)

MODE_DESCRIPTIONS: Dict[SlashCommandMode, str] = {
    SlashCommandMode.DISABLED: "The bot will respond to all messages normally (no slash command required)",
    SlashCommandMode.ENABLED: "The bot will respond to both regular messages and slash commands",
    SlashCommandMode.REQUIRED: "The bot will ONLY respond when summoned via /ai command",
    SlashCommandMode.ACTIVATED: "The bot will only respond in channels activated with /activate command",
}


def describe_mode(mode: SlashCommandMode) -> str:
    description = MODE_DESCRIPTIONS[SlashCommandMode(mode)]
    return (
        f"✅ AI mode updated!\n\n**{description}**\n\n"
        "Use `/ai [your prompt]` to interact with the AI assistant."
    )


class ResponseGenerator(Protocol):
    async def generate(
        self,
        prompt: str,
        history: List[Dict[str, str]],
        personality: str | None = None,
        length: str | None = None,
    ) -> str: ...


@dataclass(slots=True)
class CommandInvocation:
    name: str
    user_id: str
    user_name: str
    channel_id: str | None = None
    guild_id: str | None = None
    options: Dict[str, str] = field(default_factory=dict)

    @property
    def channel_key(self) -> str:
        return self.channel_id or DM_SENTINEL

    @property
    def guild_key(self) -> str:
        return self.guild_id or DM_SENTINEL

    def require(self, argument: str) -> str:
        value = self.options.get(argument)
        if value is None or not str(value).strip():
            raise MissingArgumentError(self.name, argument)
        return str(value)


Handler = Callable[[CommandInvocation, ReplyTracker], Awaitable[None]]


class CommandDispatcher:
    def __init__(
        self,
        conversations: ConversationStore,
        guild_settings: SettingsResolver,
        generator: ResponseGenerator,
        *,
        max_message_chars: int = MESSAGE_CHAR_LIMIT,
    ) -> None:
        self.conversations = conversations
        self.guild_settings = guild_settings
        self.generator = generator
        self.max_message_chars = max_message_chars
        self._routes: Dict[str, Handler] = {
            "ai": self._handle_ask,
            "aimode": self._handle_mode,
            "activate": self._handle_activate,
            "deactivate": self._handle_deactivate,
        }

    @property
    def command_names(self) -> tuple[str, ...]:
        return tuple(self._routes)

    async def dispatch(self, invocation: CommandInvocation, transport: CommandTransport) -> ReplyTracker:
        replies = ReplyTracker(transport)
        logger.info(
            "Received /%s from %s (%s) channel=%s guild=%s",
            invocation.name,
            invocation.user_name,
            invocation.user_id,
            invocation.channel_key,
            invocation.guild_key,
        )
        try:
            handler = self._routes.get(invocation.name)
            if handler is None:
                logger.warning("Unknown command /%s from %s", invocation.name, invocation.user_id)
                await replies.reply(UNKNOWN_COMMAND_TEXT, ephemeral=True)
                return replies
            await handler(invocation, replies)
        except Exception:
            logger.exception("Command /%s failed for user=%s (%s)", invocation.name, invocation.user_name, invocation.user_id)
            await self._send_error_reply(invocation, replies)
        return replies

    async def _send_error_reply(self, invocation: CommandInvocation, replies: ReplyTracker) -> None:
        try:
            await replies.fail(GENERIC_ERROR_TEXT)
        except Exception:
            logger.exception(
                "Failed to send error reply for /%s user=%s (state=%s)",
                invocation.name,
                invocation.user_id,
                replies.state.value,
            )

    async def _handle_ask(self, invocation: CommandInvocation, replies: ReplyTracker) -> None:
        prompt = invocation.require("prompt")
        await replies.defer()

        user = await self.conversations.ensure_user(invocation.user_id, invocation.user_name)
        conversation = await self.conversations.ensure_conversation(
            invocation.channel_key,
            user.platform_id,
            invocation.guild_id,
        )
        prompt_message = await self.conversations.append_message(conversation.id, MessageRole.USER, prompt)
        window = await self.conversations.recent_history(conversation.id)
        # The prompt is sent separately; the window only supplies earlier turns.
        history = [message.as_turn() for message in window if message.id != prompt_message.id]

        settings = await self.guild_settings.resolve(invocation.guild_key)
        personality = settings.personality if settings is not None else None
        length = settings.response_length.value if settings is not None else None

        try:
            response = await self.generator.generate(prompt, history, personality=personality, length=length)
            if not response or not response.strip():
                raise GenerationError("generation backend returned an empty response")
        except Exception:
            logger.exception("Generation failed for /%s user=%s (%s)", invocation.name, invocation.user_name, invocation.user_id)
            await replies.edit(GENERATION_ERROR_TEXT)
            return

        await self.conversations.append_message(conversation.id, MessageRole.ASSISTANT, response)
        await self.conversations.increment_stats(1, 1)

        chunks = chunk_text(response, self.max_message_chars)
        await replies.deliver(chunks)
        logger.info(
            "Answered /%s for %s in conversation=%s (%s chars, %s parts)",
            invocation.name,
            invocation.user_id,
            conversation.id,
            len(response),
            len(chunks),
        )

    async def _handle_mode(self, invocation: CommandInvocation, replies: ReplyTracker) -> None:
        mode = SlashCommandMode(invocation.require("mode"))
        await self.guild_settings.upsert(
            SettingsUpdate(guild_id=invocation.guild_key, slash_command_mode=mode)
        )
        await replies.reply(describe_mode(mode), ephemeral=True)

    async def _handle_activate(self, invocation: CommandInvocation, replies: ReplyTracker) -> None:
        try:
            await self.guild_settings.activate_channel(invocation.guild_key, invocation.channel_key)
        except Exception:
            logger.exception("Failed to activate channel=%s guild=%s", invocation.channel_key, invocation.guild_key)
            await replies.reply(ACTIVATE_ERROR_TEXT, ephemeral=True)
            return
        await replies.reply(ACTIVATED_TEXT, ephemeral=True)

    async def _handle_deactivate(self, invocation: CommandInvocation, replies: ReplyTracker) -> None:
        try:
            settings = await self.guild_settings.deactivate_channel(invocation.guild_key, invocation.channel_key)
        except Exception:
            logger.exception("Failed to deactivate channel=%s guild=%s", invocation.channel_key, invocation.guild_key)
            await replies.reply(DEACTIVATE_ERROR_TEXT, ephemeral=True)
            return
        if settings is None:
            await replies.reply(NO_SETTINGS_TEXT, ephemeral=True)
            return
        await replies.reply(DEACTIVATED_TEXT, ephemeral=True)
