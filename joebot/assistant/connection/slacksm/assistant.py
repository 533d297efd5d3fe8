"""Slack Socket Mode transport.

Events arrive over a websocket opened with the app-level token; every
envelope is acknowledged before it is queued.  Slack rotates Socket Mode
connections, so the reader reconnects whenever the socket closes.
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any

import websockets

from joebot.assistant.connection.assistant import BaseAssistant
from joebot.assistant.connection.slack.api import SlackAPI
from joebot.assistant.connection.slack.assistant import EVENT_CALLBACK, SlackEventsMixin
from joebot.assistant.connection.slack.informer import SlackUserInformer
from joebot.assistant.connection.slack.messenger import SlackMessenger
from joebot.assistant.connection.slack.validator import SlackMessageValidator
from joebot.assistant.connection.websocket import EVENT_BUFFER_SIZE, consume_events, decode_frame
from joebot.assistant.errors import FatalConfigError, IntegrationError
from joebot.assistant.models.enums import CommunicationType

logger = logging.getLogger(__name__)

ENVELOPE_HELLO = "hello"
ENVELOPE_DISCONNECT = "disconnect"
ENVELOPE_EVENTS_API = "events_api"

RECONNECT_DELAY = 5.0


class SocketModeAssistant(SlackEventsMixin, BaseAssistant):
    name = CommunicationType.SLACK_SM

    def __init__(self, *args: Any, api: SlackAPI | None = None, connect: Any = None, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        credentials = self.workspace.credentials
        self.api = api or SlackAPI(credentials.access_token, app_level_token=credentials.app_level_token)
        self.messenger = SlackMessenger(self.api)
        self.validator = SlackMessageValidator()
        self.informer = SlackUserInformer(self.api)
        self._connect = connect or websockets.connect

    def validate_credentials(self) -> None:
        credentials = self.workspace.credentials
        if not credentials.access_token or not credentials.app_level_token:
            msg = 'invalid credentials given: "accessToken" and "appLevelToken" must not be empty'
            raise FatalConfigError(msg)

    async def register(self) -> None:
        try:
            await self.api.auth_test()
            url = await self.api.open_socket_connection()
        except IntegrationError as e:
            msg = f"failed to init slack socket mode: {e}"
            raise FatalConfigError(msg) from e

        self.spawn(self._run(url))

    async def deregister(self) -> None:
        await super().deregister()
        await self.api.close()

    async def _run(self, url: str) -> None:
        queue: asyncio.Queue[dict[str, Any]] = asyncio.Queue(maxsize=EVENT_BUFFER_SIZE)
        consumer = asyncio.create_task(consume_events(queue, self._handle_payload))
        try:
            while True:
                try:
                    async with self._connect(url) as ws:
                        logger.debug("Connected to Slack with Socket Mode")
                        await self._read(ws, queue)
                except (OSError, websockets.ConnectionClosed) as e:
                    logger.warning("Socket Mode connection lost: %s", e)

                await asyncio.sleep(RECONNECT_DELAY)
                try:
                    url = await self.api.open_socket_connection()
                except IntegrationError as e:
                    logger.error("Failed to reopen Socket Mode connection: %s", e)
        finally:
            consumer.cancel()

    async def _read(self, ws: Any, queue: asyncio.Queue[dict[str, Any]]) -> None:
        async for raw in ws:
            envelope = decode_frame(raw)
            if envelope is None:
                continue

            if envelope_id := envelope.get("envelope_id"):
                await ws.send(json.dumps({"envelope_id": envelope_id}))

            envelope_type = envelope.get("type")
            if envelope_type == ENVELOPE_HELLO:
                logger.debug("Socket Mode: hello received")
            elif envelope_type == ENVELOPE_DISCONNECT:
                logger.debug("Socket Mode: disconnect requested (%s)", envelope.get("reason", ""))
                return
            elif envelope_type == ENVELOPE_EVENTS_API:
                await queue.put(envelope.get("payload") or {})
            else:
                logger.debug("Ignore envelope type: %s", envelope_type)

    async def _handle_payload(self, payload: dict[str, Any]) -> None:
        if payload.get("type") != EVENT_CALLBACK:
            logger.debug("unsupported Events API event received")
            return

        event = payload.get("event") or {}
        self.handle_event(event)
