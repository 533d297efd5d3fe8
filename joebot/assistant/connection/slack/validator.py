"""Filters for Slack message events."""

from __future__ import annotations

from typing import TYPE_CHECKING

from joebot.assistant.errors import ValidationError

if TYPE_CHECKING:
    from joebot.assistant.models import IncomingMessage

SUBTYPE_GENERAL = ""
SUBTYPE_FILE_SHARE = "file_share"

SUPPORTED_SUBTYPES = frozenset({SUBTYPE_GENERAL, SUBTYPE_FILE_SHARE})


class SlackMessageValidator:
    def validate(self, incoming: IncomingMessage) -> None:
        if not incoming.user_id:
            msg = "userID must not be empty"
            raise ValidationError(msg)
        if incoming.thread_id:
            msg = "skip message in thread"
            raise ValidationError(msg)
        if incoming.subtype not in SUPPORTED_SUBTYPES:
            msg = f"subtype {incoming.subtype!r} is not supported"
            raise ValidationError(msg)
        if not incoming.channel_id:
            msg = "bad channelID specified"
            raise ValidationError(msg)
