"""Slack Events API transport.

Slack POSTs events to ``/slack``; the router hands the raw request to
``SlackAssistant.handle_request`` of the workspace whose signing secret
matches.
"""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING, Any

from joebot.assistant.connection.assistant import BaseAssistant
from joebot.assistant.connection.slack import events
from joebot.assistant.connection.slack.api import SlackAPI
from joebot.assistant.connection.slack.informer import SlackUserInformer
from joebot.assistant.connection.slack.messenger import SlackMessenger
from joebot.assistant.connection.slack.validator import SlackMessageValidator
from joebot.assistant.connection.slack.verifier import SIGNATURE_HEADER, TIMESTAMP_HEADER, verify_request
from joebot.assistant.errors import FatalConfigError, ValidationError
from joebot.assistant.models.enums import CommunicationType

if TYPE_CHECKING:
    from collections.abc import Mapping

logger = logging.getLogger(__name__)

EVENT_URL_VERIFICATION = "url_verification"
EVENT_CALLBACK = "event_callback"


class SlackEventsMixin:
    """Routes Slack ``event_callback`` inner events to the channel processors."""

    def handle_event(self, event: dict[str, Any]) -> None:
        event_type = event.get("type")

        if event_type == events.EVENT_APP_MENTION:
            logger.debug("Event type: AppMention")
            self.dispatch_app_mention(events.app_mention_event_to_incoming(event))
        elif event_type == events.EVENT_MESSAGE:
            logger.debug("Event type: Message")
            if event.get("bot_id"):
                return
            self.dispatch_message(events.message_event_to_incoming(event))
        else:
            logger.debug("Event filtered: inner event type %r not supported", event_type)


class SlackAssistant(SlackEventsMixin, BaseAssistant):
    name = CommunicationType.SLACK

    def __init__(self, *args: Any, api: SlackAPI | None = None, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        credentials = self.workspace.credentials
        self.api = api or SlackAPI(credentials.access_token)
        self.messenger = SlackMessenger(self.api)
        self.validator = SlackMessageValidator()
        self.informer = SlackUserInformer(self.api)

    def validate_credentials(self) -> None:
        credentials = self.workspace.credentials
        if not credentials.access_token or not credentials.signing_secret:
            msg = 'invalid credentials given: "accessToken" and "signingSecret" must not be empty'
            raise FatalConfigError(msg)

    async def deregister(self) -> None:
        await super().deregister()
        await self.api.close()

    def verify(self, headers: Mapping[str, str], body: bytes) -> None:
        verify_request(
            self.workspace.credentials.signing_secret,
            headers.get(TIMESTAMP_HEADER, ""),
            headers.get(SIGNATURE_HEADER, ""),
            body,
        )

    def handle_request(self, body: bytes) -> str | None:
        """Process a verified Events API request.  Returns the challenge for URL verification."""
        try:
            payload = json.loads(body)
        except ValueError as e:
            msg = f"event parse error: {e}"
            raise ValidationError(msg) from e

        payload_type = payload.get("type")
        if payload_type == EVENT_URL_VERIFICATION:
            logger.debug("Event type: URL verification")
            return payload.get("challenge", "")

        if payload_type == EVENT_CALLBACK:
            self.handle_event(payload.get("event") or {})
        else:
            logger.debug("Event filtered: event type %r not supported", payload_type)
        return None
