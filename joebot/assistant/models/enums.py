"""Shared enumerations used across the assistant."""

from __future__ import annotations

from enum import StrEnum

# -- Messages ----------------------------------------------------------------


class MessageType(StrEnum):
    DEFAULT = "default"
    THREAD = "thread"
    EPHEMERAL = "ephemeral"


class MessageStatus(StrEnum):
    """Lifecycle of an output message: none -> running -> (ok | error)."""

    NONE = ""
    RUNNING = "running"
    ERROR = "error"
    OK = "ok"


# -- Transports --------------------------------------------------------------


class CommunicationType(StrEnum):
    SLACK = "slack"
    SLACK_RTM = "slackrtm"
    SLACK_SM = "slacksm"
    WEBUI = "webui"


# -- Editions ----------------------------------------------------------------


class Edition(StrEnum):
    CE = "ce"
    EE = "ee"


# -- Database Lab ------------------------------------------------------------


class CloneStatus(StrEnum):
    """Status codes reported by the Database Lab API.  Only ``OK`` is usable."""

    OK = "OK"
    CREATING = "CREATING"
    RESETTING = "RESETTING"
    DELETING = "DELETING"
    FATAL = "FATAL"
