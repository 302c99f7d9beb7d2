from __future__ import annotations

import asyncio
import logging
from typing import Dict

import discord
from discord import app_commands

from ..config import Settings
from ..memory.conversations import ConversationStore
from ..memory.guild_settings import SettingsResolver
from ..memory.store import MemoryStore
from ..models import SlashCommandMode
from ..services.gemini_client import GeminiClient
from .dispatcher import CommandDispatcher, CommandInvocation

logger = logging.getLogger("slash_ai_bot")

MODE_CHOICE_LABELS: Dict[SlashCommandMode, str] = {
    SlashCommandMode.DISABLED: "Always respond to all messages",
    SlashCommandMode.ENABLED: "Respond to both messages and slash commands",
    SlashCommandMode.REQUIRED: "Only respond to slash commands",
    SlashCommandMode.ACTIVATED: "Only respond in activated channels",
}


class InteractionTransport:
    def __init__(self, interaction: discord.Interaction) -> None:
        self.interaction = interaction

    async def send_reply(self, content: str, *, ephemeral: bool = False) -> None:
        await self.interaction.response.send_message(content, ephemeral=ephemeral)

    async def defer(self) -> None:
        await self.interaction.response.defer(thinking=True)

    async def edit_reply(self, content: str) -> None:
        await self.interaction.edit_original_response(content=content)

    async def send_followup(self, content: str) -> None:
        await self.interaction.followup.send(content)


def invocation_from_interaction(
    interaction: discord.Interaction,
    name: str,
    options: Dict[str, str] | None = None,
) -> CommandInvocation:
    return CommandInvocation(
        name=name,
        user_id=str(interaction.user.id),
        user_name=str(interaction.user.name),
        channel_id=str(interaction.channel_id) if interaction.channel_id is not None else None,
        guild_id=str(interaction.guild_id) if interaction.guild_id is not None else None,
        options=dict(options or {}),
    )


class SlashCommandTree(app_commands.CommandTree):
    async def on_error(self, interaction: discord.Interaction, error: app_commands.AppCommandError) -> None:
        # Stale registrations still reach us; let the dispatcher answer them.
        if isinstance(error, app_commands.CommandNotFound) and isinstance(self.client, SlashAIDiscordBot):
            await self.client.dispatch_interaction(interaction, error.name)
            return
        await super().on_error(interaction, error)


class SlashAIDiscordBot(discord.Client):
    def __init__(
        self,
        settings: Settings,
        memory: MemoryStore,
        llm: GeminiClient,
    ) -> None:
        super().__init__(intents=discord.Intents.default())

        self.settings = settings
        self.memory = memory
        self.llm = llm
        self.conversations = ConversationStore(memory, history_window=settings.max_history_messages)
        self.guild_settings = SettingsResolver(memory)
        self.dispatcher = CommandDispatcher(
            self.conversations,
            self.guild_settings,
            llm,
            max_message_chars=settings.max_message_chars,
        )
        self.tree = SlashCommandTree(self)
        self._commands_registered = False
        self._setup_commands()

    def _setup_commands(self) -> None:
        @self.tree.command(name="ai", description="Ask the AI assistant a question")
        @app_commands.describe(prompt="Your question or prompt for the AI")
        async def ai_command(interaction: discord.Interaction, prompt: str) -> None:
            await self.dispatch_interaction(interaction, "ai", {"prompt": prompt})

        @self.tree.command(name="activate", description="Activate AI responses in this channel")
        async def activate_command(interaction: discord.Interaction) -> None:
            await self.dispatch_interaction(interaction, "activate")

        @self.tree.command(name="deactivate", description="Deactivate AI responses in this channel")
        async def deactivate_command(interaction: discord.Interaction) -> None:
            await self.dispatch_interaction(interaction, "deactivate")

        @self.tree.command(name="aimode", description="Configure AI response mode for this server")
        @app_commands.describe(mode="Response mode")
        @app_commands.choices(
            mode=[app_commands.Choice(name=label, value=mode.value) for mode, label in MODE_CHOICE_LABELS.items()]
        )
        async def aimode_command(interaction: discord.Interaction, mode: app_commands.Choice[str]) -> None:
            await self.dispatch_interaction(interaction, "aimode", {"mode": mode.value})

    async def dispatch_interaction(
        self,
        interaction: discord.Interaction,
        name: str,
        options: Dict[str, str] | None = None,
    ) -> None:
        invocation = invocation_from_interaction(interaction, name, options)
        await self.dispatcher.dispatch(invocation, InteractionTransport(interaction))

    async def setup_hook(self) -> None:
        await self.memory.init()
        await self.llm.start()

    async def on_ready(self) -> None:
        if self.user:
            logger.info("Connected as %s (%s)", self.user, self.user.id)
        if not self._commands_registered:
            self._commands_registered = True
            await self.register_slash_commands()

    async def register_slash_commands(self) -> None:
        logger.info("Registering slash commands...")
        try:
            synced = await self.tree.sync()
        except discord.HTTPException as exc:
            logger.error("Error registering slash commands: %s", exc)
            return
        logger.info("Registered %s global slash commands", len(synced))

        if not self.settings.sync_guild_commands:
            return
        for guild in list(self.guilds):
            try:
                self.tree.copy_global_to(guild=guild)
                await self.tree.sync(guild=guild)
                logger.info("Registered slash commands for guild: %s", guild.name)
            except discord.HTTPException as exc:
                logger.error("Error registering commands for guild %s: %s", guild.name, exc)

    async def close(self) -> None:
        await self._run_shutdown_step("llm.close", self.llm.close(), timeout=6.0)
        await self._run_shutdown_step("discord.Client.close", super().close(), timeout=6.0)

    async def _run_shutdown_step(self, label: str, coro: object, *, timeout: float) -> None:
        try:
            await asyncio.wait_for(coro, timeout=timeout)  # type: ignore[arg-type]
        except asyncio.TimeoutError:
            logger.warning("Shutdown step timed out: %s", label)
        except Exception as exc:
            logger.warning("Shutdown step failed: %s (%s)", label, exc)
