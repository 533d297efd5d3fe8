"""Shared pieces of the command handlers."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

from joebot.assistant.util.text import cut_text

if TYPE_CHECKING:
    from joebot.assistant.connection.base import Messenger
    from joebot.assistant.models.command import Command
    from joebot.assistant.models.message import Message

PLAN_SIZE = 400
SEPARATOR_PLAN = "\n[...SKIP...]\n"
CUT_TEXT = "_(The text in the preview above has been cut)_"

QUERY_EXPLAIN = "EXPLAIN (FORMAT TEXT) "
QUERY_EXPLAIN_ANALYZE = "EXPLAIN (ANALYZE, COSTS, VERBOSE, BUFFERS, FORMAT JSON) "
QUERY_EXPLAIN_ANALYZE_SETTINGS = "EXPLAIN (ANALYZE, COSTS, VERBOSE, BUFFERS, FORMAT JSON, SETTINGS TRUE) "

TIMING_ESTIMATOR_DOC_LINK = "https://postgres.ai/docs/database-lab/timing-estimator"


@runtime_checkable
class Executor(Protocol):
    async def execute(self) -> None: ...


class BaseCommand:
    """A handler bound to one command record, its output message and the session pool."""

    def __init__(self, command: Command, message: Message, pool: Any, messenger: Messenger) -> None:
        self.command = command
        self.message = message
        self.pool = pool
        self.messenger = messenger

    async def append(self, text: str) -> None:
        self.message.append_text(text)
        await self.messenger.update_text(self.message)

    async def upload(self, title: str, content: str) -> str:
        return await self.messenger.add_artifact(title, content, self.message.channel_id, self.message.message_id)


def preview(text: str) -> tuple[str, str]:
    """Cut ``text`` for the chat and return ``(preview, details_suffix)``."""
    cut, truncated = cut_text(text, PLAN_SIZE, SEPARATOR_PLAN)
    return cut, f" {CUT_TEXT}" if truncated else ""
