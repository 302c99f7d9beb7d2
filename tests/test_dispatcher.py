from __future__ import annotations

import asyncio
import math
import sys
from pathlib import Path
from typing import Dict, List

import pytest


PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from slash_ai_bot.discord.dispatcher import (  # noqa: E402
    ACTIVATE_ERROR_TEXT,
    ACTIVATED_TEXT,
    DEACTIVATE_ERROR_TEXT,
    DEACTIVATED_TEXT,
    GENERATION_ERROR_TEXT,
    GENERIC_ERROR_TEXT,
    NO_SETTINGS_TEXT,
    UNKNOWN_COMMAND_TEXT,
    CommandDispatcher,
    CommandInvocation,
)
from slash_ai_bot.discord.replies import ReplyState  # noqa: E402
from slash_ai_bot.errors import StoreError  # noqa: E402
from slash_ai_bot.memory.conversations import ConversationStore  # noqa: E402
from slash_ai_bot.memory.guild_settings import SettingsResolver  # noqa: E402
from slash_ai_bot.memory.store import MemoryStore  # noqa: E402
from slash_ai_bot.models import (  # noqa: E402
    GuildSettings,
    MessageRole,
    ResponseLength,
    SettingsUpdate,
    SlashCommandMode,
)


class _FakeTransport:
    def __init__(self, *, fail_on: set[str] | None = None) -> None:
        self.calls: list[tuple[str, object]] = []
        self.fail_on = fail_on or set()

    async def _record(self, kind: str, payload: object) -> None:
        if kind in self.fail_on:
            raise RuntimeError(f"{kind} failed")
        self.calls.append((kind, payload))

    async def send_reply(self, content: str, *, ephemeral: bool = False) -> None:
        await self._record("reply", (content, ephemeral))

    async def defer(self) -> None:
        await self._record("defer", None)

    async def edit_reply(self, content: str) -> None:
        await self._record("edit", content)

    async def send_followup(self, content: str) -> None:
        await self._record("followup", content)

    def kinds(self) -> list[str]:
        return [kind for kind, _ in self.calls]


class _FakeGenerator:
    def __init__(self, response: str = "Hi there!", *, error: Exception | None = None) -> None:
        self.response = response
        self.error = error
        self.calls: list[dict[str, object]] = []

    async def generate(
        self,
        prompt: str,
        history: List[Dict[str, str]],
        personality: str | None = None,
        length: str | None = None,
    ) -> str:
        self.calls.append(
            {"prompt": prompt, "history": list(history), "personality": personality, "length": length}
        )
        if self.error is not None:
            raise self.error
        return self.response


def _build(tmp_path: Path, generator: _FakeGenerator, memory: MemoryStore | None = None):
    memory = memory or MemoryStore(tmp_path / "memory.db")
    asyncio.run(memory.init())
    dispatcher = CommandDispatcher(ConversationStore(memory), SettingsResolver(memory), generator)
    return dispatcher, memory


def _ask(prompt: str | None, *, user: str = "alice", channel: str | None = "C1", guild: str | None = "G1"):
    options = {} if prompt is None else {"prompt": prompt}
    return CommandInvocation(
        name="ai",
        user_id=user,
        user_name=user,
        channel_id=channel,
        guild_id=guild,
        options=options,
    )


def _command(name: str, *, guild: str | None = "G1", channel: str = "C1", **options: str) -> CommandInvocation:
    return CommandInvocation(
        name=name,
        user_id="alice",
        user_name="alice",
        channel_id=channel,
        guild_id=guild,
        options=dict(options),
    )


def test_ask_end_to_end_for_new_user(tmp_path: Path) -> None:
    generator = _FakeGenerator("Hello, alice!")
    dispatcher, memory = _build(tmp_path, generator)
    transport = _FakeTransport()

    tracker = asyncio.run(dispatcher.dispatch(_ask("hello"), transport))

    assert transport.calls == [("defer", None), ("edit", "Hello, alice!")]
    assert tracker.state is ReplyState.EDITED
    assert tracker.followups_sent == 0
    assert generator.calls == [{"prompt": "hello", "history": [], "personality": None, "length": None}]

    async def inspect():
        user = await memory.get_user_by_platform_id("alice")
        conversation = await memory.get_conversation("C1", "alice")
        messages = await memory.get_recent_messages(conversation.id, 10)
        stats = await memory.get_bot_stats()
        return user, conversation, messages, stats

    user, conversation, messages, stats = asyncio.run(inspect())
    assert user is not None and user.username == "alice"
    assert conversation.guild_id == "G1"
    assert [(m.role, m.content) for m in messages] == [
        (MessageRole.USER, "hello"),
        (MessageRole.ASSISTANT, "Hello, alice!"),
    ]
    assert (stats.total_messages, stats.api_calls) == (1, 1)


def test_ask_passes_prior_turns_and_guild_hints(tmp_path: Path) -> None:
    generator = _FakeGenerator("ok")
    dispatcher, memory = _build(tmp_path, generator)
    resolver = SettingsResolver(memory)
    asyncio.run(
        resolver.upsert(SettingsUpdate(guild_id="G1", personality="sarcastic", response_length=ResponseLength.SHORT))
    )

    async def scenario() -> None:
        await dispatcher.dispatch(_ask("first"), _FakeTransport())
        await dispatcher.dispatch(_ask("second"), _FakeTransport())

    asyncio.run(scenario())

    last = generator.calls[-1]
    assert last["prompt"] == "second"
    assert last["history"] == [
        {"role": "user", "content": "first"},
        {"role": "assistant", "content": "ok"},
    ]
    assert last["personality"] == "sarcastic"
    assert last["length"] == "short"


def test_history_window_is_bounded(tmp_path: Path) -> None:
    generator = _FakeGenerator("ok")
    dispatcher, _ = _build(tmp_path, generator)

    async def scenario() -> None:
        for i in range(8):
            await dispatcher.dispatch(_ask(f"q{i}"), _FakeTransport())

    asyncio.run(scenario())
    # Window of 10 includes the new prompt, which is passed separately.
    assert len(generator.calls[-1]["history"]) == 9
    assert generator.calls[-1]["history"][-1] == {"role": "assistant", "content": "ok"}


def test_same_pair_reuses_conversation_and_other_user_gets_new_one(tmp_path: Path) -> None:
    dispatcher, memory = _build(tmp_path, _FakeGenerator("ok"))

    async def scenario():
        await dispatcher.dispatch(_ask("a"), _FakeTransport())
        first = await memory.get_conversation("C1", "alice")
        await dispatcher.dispatch(_ask("b"), _FakeTransport())
        again = await memory.get_conversation("C1", "alice")
        await dispatcher.dispatch(_ask("c", user="bob"), _FakeTransport())
        other = await memory.get_conversation("C1", "bob")
        return first, again, other

    first, again, other = asyncio.run(scenario())
    assert first.id == again.id
    assert other.id != first.id


def test_long_response_is_edited_then_followed_up(tmp_path: Path) -> None:
    response = "".join(chr(ord("a") + (i // 1000)) for i in range(5000))
    dispatcher, _ = _build(tmp_path, _FakeGenerator(response))
    transport = _FakeTransport()

    tracker = asyncio.run(dispatcher.dispatch(_ask("write a lot"), transport))

    expected_followups = math.ceil(5000 / 1900) - 1
    assert transport.kinds() == ["defer", "edit"] + ["followup"] * expected_followups
    edited = transport.calls[1][1]
    assert len(edited) <= 1900
    assert response.startswith(edited)
    assert edited + "".join(payload for _, payload in transport.calls[2:]) == response
    assert tracker.followups_sent == expected_followups


def test_direct_message_uses_sentinel_channel(tmp_path: Path) -> None:
    dispatcher, memory = _build(tmp_path, _FakeGenerator("ok"))

    asyncio.run(dispatcher.dispatch(_ask("hi", channel=None, guild=None), _FakeTransport()))

    conversation = asyncio.run(memory.get_conversation("DM", "alice"))
    assert conversation is not None
    assert conversation.guild_id is None


def test_backend_failure_edits_deferred_reply(tmp_path: Path) -> None:
    dispatcher, memory = _build(tmp_path, _FakeGenerator(error=RuntimeError("quota exceeded")))
    transport = _FakeTransport()

    asyncio.run(dispatcher.dispatch(_ask("hello"), transport))

    assert transport.calls == [("defer", None), ("edit", GENERATION_ERROR_TEXT)]
    stats = asyncio.run(memory.get_bot_stats())
    assert stats.api_calls == 0


def test_blank_backend_response_is_treated_as_failure(tmp_path: Path) -> None:
    dispatcher, _ = _build(tmp_path, _FakeGenerator("   "))
    transport = _FakeTransport()

    asyncio.run(dispatcher.dispatch(_ask("hello"), transport))

    assert transport.calls[-1] == ("edit", GENERATION_ERROR_TEXT)


class _FailingMessagesStore(MemoryStore):
    async def create_message(self, conversation_id, role, content):  # type: ignore[override]
        raise StoreError("database is locked")


def test_store_failure_after_defer_edits_generic_apology(tmp_path: Path) -> None:
    memory = _FailingMessagesStore(tmp_path / "memory.db")
    generator = _FakeGenerator("never")
    dispatcher, _ = _build(tmp_path, generator, memory)
    transport = _FakeTransport()

    tracker = asyncio.run(dispatcher.dispatch(_ask("hello"), transport))

    assert transport.calls == [("defer", None), ("edit", GENERIC_ERROR_TEXT)]
    assert tracker.state is ReplyState.EDITED
    assert generator.calls == []


def test_missing_prompt_replies_with_generic_apology(tmp_path: Path) -> None:
    dispatcher, _ = _build(tmp_path, _FakeGenerator())
    transport = _FakeTransport()

    asyncio.run(dispatcher.dispatch(_ask(None), transport))

    assert transport.calls == [("reply", (GENERIC_ERROR_TEXT, True))]


def test_failure_while_sending_error_reply_is_swallowed(tmp_path: Path) -> None:
    memory = _FailingMessagesStore(tmp_path / "memory.db")
    dispatcher, _ = _build(tmp_path, _FakeGenerator(), memory)
    transport = _FakeTransport(fail_on={"edit"})

    tracker = asyncio.run(dispatcher.dispatch(_ask("hello"), transport))

    assert transport.calls == [("defer", None)]
    assert tracker.state is ReplyState.DEFERRED


def test_mode_command_creates_settings_and_replies_privately(tmp_path: Path) -> None:
    dispatcher, memory = _build(tmp_path, _FakeGenerator())
    transport = _FakeTransport()

    asyncio.run(dispatcher.dispatch(_command("aimode", mode="required"), transport))

    [(kind, (content, ephemeral))] = transport.calls
    assert kind == "reply"
    assert ephemeral is True
    assert "ONLY respond when summoned" in content

    stored = asyncio.run(memory.get_guild_settings("G1"))
    assert stored is not None
    assert stored.slash_command_mode is SlashCommandMode.REQUIRED
    assert stored.response_length is ResponseLength.MEDIUM
    assert stored.personality == "helpful"
    assert stored.code_format is True
    assert stored.channel_mode == "all"


def test_mode_command_preserves_other_fields(tmp_path: Path) -> None:
    dispatcher, memory = _build(tmp_path, _FakeGenerator())
    asyncio.run(
        memory.save_guild_settings(
            GuildSettings(guild_id="G1", personality="casual", activated_channels=["C7"])
        )
    )

    asyncio.run(dispatcher.dispatch(_command("aimode", mode="disabled"), _FakeTransport()))

    stored = asyncio.run(memory.get_guild_settings("G1"))
    assert stored.slash_command_mode is SlashCommandMode.DISABLED
    assert stored.personality == "casual"
    assert stored.activated_channels == ["C7"]


@pytest.mark.parametrize(
    ("mode", "fragment"),
    [
        ("disabled", "respond to all messages normally"),
        ("enabled", "both regular messages and slash commands"),
        ("activated", "channels activated with /activate"),
    ],
)
def test_mode_descriptions(tmp_path: Path, mode: str, fragment: str) -> None:
    dispatcher, _ = _build(tmp_path, _FakeGenerator())
    transport = _FakeTransport()

    asyncio.run(dispatcher.dispatch(_command("aimode", mode=mode), transport))

    assert fragment in transport.calls[0][1][0]


def test_invalid_mode_value_gets_generic_apology(tmp_path: Path) -> None:
    dispatcher, memory = _build(tmp_path, _FakeGenerator())
    transport = _FakeTransport()

    asyncio.run(dispatcher.dispatch(_command("aimode", mode="sometimes"), transport))

    assert transport.calls == [("reply", (GENERIC_ERROR_TEXT, True))]
    assert asyncio.run(memory.get_guild_settings("G1")) is None


def test_activate_and_deactivate_channel(tmp_path: Path) -> None:
    dispatcher, memory = _build(tmp_path, _FakeGenerator())
    activate = _FakeTransport()
    deactivate = _FakeTransport()

    asyncio.run(dispatcher.dispatch(_command("activate"), activate))
    stored = asyncio.run(memory.get_guild_settings("G1"))
    assert stored.activated_channels == ["C1"]
    assert stored.slash_command_mode is SlashCommandMode.ACTIVATED
    assert activate.calls == [("reply", (ACTIVATED_TEXT, True))]

    asyncio.run(dispatcher.dispatch(_command("deactivate"), deactivate))
    stored = asyncio.run(memory.get_guild_settings("G1"))
    assert stored.activated_channels == []
    assert deactivate.calls == [("reply", (DEACTIVATED_TEXT, True))]


def test_deactivate_without_settings_does_not_write(tmp_path: Path) -> None:
    dispatcher, memory = _build(tmp_path, _FakeGenerator())
    transport = _FakeTransport()

    asyncio.run(dispatcher.dispatch(_command("deactivate"), transport))

    assert transport.calls == [("reply", (NO_SETTINGS_TEXT, True))]
    assert asyncio.run(memory.get_guild_settings("G1")) is None


class _FailingSettingsStore(MemoryStore):
    async def save_guild_settings(self, settings):  # type: ignore[override]
        raise StoreError("readonly database")


def test_activate_store_failure_gets_specific_apology(tmp_path: Path) -> None:
    memory = _FailingSettingsStore(tmp_path / "memory.db")
    dispatcher, _ = _build(tmp_path, _FakeGenerator(), memory)
    transport = _FakeTransport()

    asyncio.run(dispatcher.dispatch(_command("activate"), transport))

    assert transport.calls == [("reply", (ACTIVATE_ERROR_TEXT, True))]


class _CorruptSettingsStore(MemoryStore):
    async def get_guild_settings(self, guild_id):  # type: ignore[override]
        raise ValueError("'sometimes' is not a valid SlashCommandMode")


def test_deactivate_unexpected_failure_gets_specific_apology(tmp_path: Path) -> None:
    memory = _CorruptSettingsStore(tmp_path / "memory.db")
    dispatcher, _ = _build(tmp_path, _FakeGenerator(), memory)
    transport = _FakeTransport()

    asyncio.run(dispatcher.dispatch(_command("deactivate"), transport))

    assert transport.calls == [("reply", (DEACTIVATE_ERROR_TEXT, True))]


def test_activate_unexpected_failure_gets_specific_apology(tmp_path: Path) -> None:
    memory = _CorruptSettingsStore(tmp_path / "memory.db")
    dispatcher, _ = _build(tmp_path, _FakeGenerator(), memory)
    transport = _FakeTransport()

    asyncio.run(dispatcher.dispatch(_command("activate"), transport))

    assert transport.calls == [("reply", (ACTIVATE_ERROR_TEXT, True))]


def test_mode_store_failure_gets_generic_apology(tmp_path: Path) -> None:
    memory = _FailingSettingsStore(tmp_path / "memory.db")
    dispatcher, _ = _build(tmp_path, _FakeGenerator(), memory)
    transport = _FakeTransport()

    asyncio.run(dispatcher.dispatch(_command("aimode", mode="enabled"), transport))

    assert transport.calls == [("reply", (GENERIC_ERROR_TEXT, True))]


def test_unknown_command_gets_help_text(tmp_path: Path) -> None:
    dispatcher, _ = _build(tmp_path, _FakeGenerator())
    transport = _FakeTransport()

    asyncio.run(dispatcher.dispatch(_command("weather"), transport))

    assert transport.calls == [("reply", (UNKNOWN_COMMAND_TEXT, True))]
    assert dispatcher.command_names == ("ai", "aimode", "activate", "deactivate")


def test_commands_run_concurrently(tmp_path: Path) -> None:
    class _SlowGenerator(_FakeGenerator):
        def __init__(self) -> None:
            super().__init__("done")
            self.in_flight = 0
            self.peak = 0

        async def generate(self, prompt, history, personality=None, length=None):  # type: ignore[override]
            self.in_flight += 1
            self.peak = max(self.peak, self.in_flight)
            await asyncio.sleep(0.05)
            self.in_flight -= 1
            return await super().generate(prompt, history, personality, length)

    generator = _SlowGenerator()
    dispatcher, memory = _build(tmp_path, generator)

    async def scenario():
        await asyncio.gather(
            *(dispatcher.dispatch(_ask(f"q{i}", user=f"user{i}"), _FakeTransport()) for i in range(4))
        )
        return await memory.get_bot_stats()

    stats = asyncio.run(scenario())
    assert generator.peak > 1
    assert stats.api_calls == 4
