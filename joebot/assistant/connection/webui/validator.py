from __future__ import annotations

from typing import TYPE_CHECKING

from joebot.assistant.errors import ValidationError

if TYPE_CHECKING:
    from joebot.assistant.models import IncomingMessage


class WebUIMessageValidator:
    """Web UI commands must be bound to a Platform session and command."""

    def validate(self, incoming: IncomingMessage) -> None:
        if not incoming.user_id:
            msg = "userID must not be empty"
            raise ValidationError(msg)
        if not incoming.channel_id:
            msg = "bad channelID specified"
            raise ValidationError(msg)
        if not incoming.session_id:
            msg = "bad sessionID specified"
            raise ValidationError(msg)
        if not incoming.command_id:
            msg = "bad commandID specified"
            raise ValidationError(msg)
