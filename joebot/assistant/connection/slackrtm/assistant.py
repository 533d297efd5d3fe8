"""Slack RTM transport (classic apps): raw events over a websocket."""

from __future__ import annotations

import asyncio
import logging
from typing import Any

import websockets

from joebot.assistant.connection.assistant import BaseAssistant
from joebot.assistant.connection.slack.api import SlackAPI
from joebot.assistant.connection.slack.assistant import SlackEventsMixin
from joebot.assistant.connection.slack.informer import SlackUserInformer
from joebot.assistant.connection.slack.messenger import SlackMessenger
from joebot.assistant.connection.slack.validator import SlackMessageValidator
from joebot.assistant.connection.websocket import EVENT_BUFFER_SIZE, consume_events, decode_frame
from joebot.assistant.errors import FatalConfigError, IntegrationError
from joebot.assistant.models.enums import CommunicationType

logger = logging.getLogger(__name__)


class RTMAssistant(SlackEventsMixin, BaseAssistant):
    name = CommunicationType.SLACK_RTM

    def __init__(self, *args: Any, api: SlackAPI | None = None, connect: Any = None, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self.api = api or SlackAPI(self.workspace.credentials.access_token)
        self.messenger = SlackMessenger(self.api)
        self.validator = SlackMessageValidator()
        self.informer = SlackUserInformer(self.api)
        self._connect = connect or websockets.connect

    def validate_credentials(self) -> None:
        if not self.workspace.credentials.access_token:
            msg = 'invalid credentials given: "accessToken" must not be empty'
            raise FatalConfigError(msg)

    async def register(self) -> None:
        try:
            url = await self.api.rtm_connect()
        except IntegrationError as e:
            msg = f"failed to connect to Slack RTM: {e}"
            raise FatalConfigError(msg) from e

        self.spawn(self._run(url))

    async def deregister(self) -> None:
        await super().deregister()
        await self.api.close()

    async def _run(self, url: str) -> None:
        # TODO: reconnect with a fresh rtm.connect URL when the socket drops.
        queue: asyncio.Queue[dict[str, Any]] = asyncio.Queue(maxsize=EVENT_BUFFER_SIZE)
        consumer = asyncio.create_task(consume_events(queue, self._handle_event))
        try:
            async with self._connect(url) as ws:
                logger.debug("Connected to Slack RTM")
                async for raw in ws:
                    if (event := decode_frame(raw)) is not None:
                        await queue.put(event)
        except (OSError, websockets.ConnectionClosed) as e:
            logger.error("Slack RTM connection lost: %s", e)
        finally:
            consumer.cancel()

    async def _handle_event(self, event: dict[str, Any]) -> None:
        self.handle_event(event)
