"""Contracts every chat transport implements.

A transport ("assistant") owns one ``ProcessingService`` per channel.  The
services are transport-agnostic: they talk to the chat only through the
``Messenger`` and accept input only after the ``MessageValidator`` passed it.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from joebot.assistant.models.enums import MessageStatus
    from joebot.assistant.models.message import IncomingMessage, Message


@runtime_checkable
class Messenger(Protocol):
    """Publishes output messages and artifacts to one transport."""

    async def publish(self, message: Message) -> None:
        """Post a new message; assigns ``message.message_id``."""
        ...

    async def update_text(self, message: Message) -> None:
        """Replace the text of an already published message."""
        ...

    async def update_status(self, message: Message, status: MessageStatus) -> None: ...

    async def fail(self, message: Message, text: str) -> None:
        """Append ``ERROR: <text>`` and move the message to the error state."""
        ...

    async def ok(self, message: Message) -> None: ...

    async def add_artifact(self, title: str, content: str, channel_id: str, message_id: str) -> str:
        """Upload a text attachment and return its permalink."""
        ...

    async def download_artifact(self, url: str) -> bytes: ...


@runtime_checkable
class MessageValidator(Protocol):
    def validate(self, incoming: IncomingMessage) -> None:
        """Raise ``ValidationError`` when the event must not be processed."""
        ...
