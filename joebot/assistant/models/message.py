"""Inbound and outbound chat message models."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone

from joebot.assistant.models.enums import MessageStatus, MessageType

CHAT_APPEND_SEPARATOR = "\n\n"


def _now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class IncomingMessage:
    """Transport-normalized input event."""

    text: str = ""
    user_id: str = ""
    channel_id: str = ""
    channel_type: str = ""
    thread_id: str = ""
    timestamp: str = ""
    subtype: str = ""
    snippet_url: str = ""
    direct: bool = False
    session_id: str = ""
    command_id: str = ""


@dataclass
class Message:
    """Output envelope published through a messenger.

    ``message_id`` is assigned by the messenger on first publish; the message
    is considered published from then on.
    """

    channel_id: str = ""
    message_id: str = ""
    thread_id: str = ""
    user_id: str = ""
    text: str = ""
    status: MessageStatus = MessageStatus.NONE
    message_type: MessageType = MessageType.DEFAULT
    session_id: str = ""
    command_id: str = ""
    created_at: datetime = field(default_factory=_now)
    notify_at: datetime | None = None

    @classmethod
    def from_incoming(cls, incoming: IncomingMessage) -> Message:
        return cls(
            channel_id=incoming.channel_id,
            session_id=incoming.session_id,
            command_id=incoming.command_id,
        )

    @property
    def is_published(self) -> bool:
        return self.message_id != ""

    def set_text(self, text: str) -> None:
        self.text = text

    def append_text(self, text: str) -> None:
        if not self.text:
            self.text = text
            return
        self.text = self.text + CHAT_APPEND_SEPARATOR + text

    def set_notify_at(self, min_notify_duration: timedelta) -> None:
        self.notify_at = self.created_at + min_notify_duration

    def should_notify(self, now: datetime | None = None) -> bool:
        """Whether a finished long-running request should mention its author."""
        if not self.user_id or self.notify_at is None:
            return False
        return (now or _now()) >= self.notify_at
