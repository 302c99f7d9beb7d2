from __future__ import annotations

import logging
from enum import Enum
from typing import Protocol, Sequence

from ..errors import ReplyStateError

logger = logging.getLogger("slash_ai_bot")


class CommandTransport(Protocol):
    """Reply primitives offered by the platform for one slash-command invocation."""

    async def send_reply(self, content: str, *, ephemeral: bool = False) -> None: ...

    async def defer(self) -> None: ...

    async def edit_reply(self, content: str) -> None: ...

    async def send_followup(self, content: str) -> None: ...


class ReplyState(str, Enum):
    PENDING = "pending"
    REPLIED = "replied"
    DEFERRED = "deferred"
    EDITED = "edited"


class ReplyTracker:
    """Owns the reply lifecycle of a single invocation.

    PENDING -> REPLIED, or PENDING -> DEFERRED -> EDITED. Follow-ups are only
    allowed once a primary reply exists. Any other transition raises
    ``ReplyStateError`` before the transport is touched.
    """

    def __init__(self, transport: CommandTransport) -> None:
        self.transport = transport
        self.state = ReplyState.PENDING
        self.followups_sent = 0

    def _require(self, action: str, *allowed: ReplyState) -> None:
        if self.state not in allowed:
            raise ReplyStateError(f"cannot {action} while reply is {self.state.value}")

    async def reply(self, content: str, *, ephemeral: bool = False) -> None:
        self._require("reply", ReplyState.PENDING)
        await self.transport.send_reply(content, ephemeral=ephemeral)
        self.state = ReplyState.REPLIED

    async def defer(self) -> None:
        self._require("defer", ReplyState.PENDING)
        await self.transport.defer()
        self.state = ReplyState.DEFERRED

    async def edit(self, content: str) -> None:
        self._require("edit", ReplyState.DEFERRED)
        await self.transport.edit_reply(content)
        self.state = ReplyState.EDITED

    async def follow_up(self, content: str) -> None:
        self._require("send follow-up", ReplyState.REPLIED, ReplyState.EDITED)
        await self.transport.send_followup(content)
        self.followups_sent += 1

    async def deliver(self, chunks: Sequence[str]) -> None:
        """Fill the deferred placeholder with the first chunk, then follow up with the rest in order."""
        if not chunks:
            raise ValueError("nothing to deliver")
        await self.edit(chunks[0])
        for chunk in chunks[1:]:
            await self.follow_up(chunk)

    async def fail(self, content: str) -> None:
        """Surface ``content`` through whichever primitive the current state still allows."""
        if self.state is ReplyState.PENDING:
            await self.reply(content, ephemeral=True)
        elif self.state is ReplyState.DEFERRED:
            await self.edit(content)
        else:
            await self.follow_up(content)
