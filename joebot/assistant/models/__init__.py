"""Domain models for the assistant."""

from joebot.assistant.models.clone import (
    Clone,
    CloneDB,
    CloneMetadata,
    CloneRequest,
    CloneStatusInfo,
    ConnectionParams,
    DatabaseRequest,
    Snapshot,
)
from joebot.assistant.models.command import Command, Tip
from joebot.assistant.models.enums import (
    CloneStatus,
    CommunicationType,
    Edition,
    MessageStatus,
    MessageType,
)
from joebot.assistant.models.message import CHAT_APPEND_SEPARATOR, IncomingMessage, Message
from joebot.assistant.models.user import Audit, Quota, User, UserInfo, UserSession

__all__ = [
    "CHAT_APPEND_SEPARATOR",
    "Audit",
    "Clone",
    "CloneDB",
    "CloneMetadata",
    "CloneRequest",
    "CloneStatus",
    "CloneStatusInfo",
    "Command",
    "CommunicationType",
    "ConnectionParams",
    "DatabaseRequest",
    "Edition",
    "IncomingMessage",
    "Message",
    "MessageStatus",
    "MessageType",
    "Quota",
    "Snapshot",
    "Tip",
    "User",
    "UserInfo",
    "UserSession",
]
