"""Slack messenger: messages, status reactions, file artifacts."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from joebot.assistant.errors import IntegrationError
from joebot.assistant.models import Message, MessageStatus, MessageType

if TYPE_CHECKING:
    from joebot.assistant.connection.slack.api import SlackAPI

logger = logging.getLogger(__name__)

ERROR_NOT_PUBLISHED = "Message not published yet"

REACTION_RUNNING = "hourglass_flowing_sand"
REACTION_ERROR = "x"
REACTION_OK = "white_check_mark"

STATUS_REACTIONS = {
    MessageStatus.RUNNING: REACTION_RUNNING,
    MessageStatus.ERROR: REACTION_ERROR,
    MessageStatus.OK: REACTION_OK,
}

CONTENT_TYPE_TEXT = "text/plain"


class SlackMessenger:
    def __init__(self, api: SlackAPI) -> None:
        self.api = api

    async def publish(self, message: Message) -> None:
        if message.message_type == MessageType.DEFAULT:
            message.message_id = await self.api.post_message(message.channel_id, message.text)
        elif message.message_type == MessageType.THREAD:
            await self.api.post_message(message.channel_id, message.text, thread_ts=message.thread_id)
        elif message.message_type == MessageType.EPHEMERAL:
            message.message_id = await self.api.post_ephemeral(message.channel_id, message.user_id, message.text)
        else:
            msg = f"unknown message type: {message.message_type}"
            raise IntegrationError(msg)

    async def update_text(self, message: Message) -> None:
        if not message.is_published:
            raise IntegrationError(ERROR_NOT_PUBLISHED)
        message.message_id = await self.api.update_message(message.channel_id, message.message_id, message.text)

    async def update_status(self, message: Message, status: MessageStatus) -> None:
        """Swap the status reaction of a published message."""
        if not message.is_published:
            raise IntegrationError(ERROR_NOT_PUBLISHED)
        if status == message.status:
            return

        reaction = STATUS_REACTIONS.get(status)
        if reaction is None:
            msg = f"unknown status given: {status}"
            raise IntegrationError(msg)

        try:
            await self.api.add_reaction(reaction, message.channel_id, message.message_id)
        except IntegrationError:
            message.status = MessageStatus.NONE
            raise

        if old_reaction := STATUS_REACTIONS.get(message.status):
            await self.api.remove_reaction(old_reaction, message.channel_id, message.message_id)

        message.status = status

    async def fail(self, message: Message, text: str) -> None:
        error_text = f"ERROR: {text}"
        if message.is_published:
            message.append_text(error_text)
            await self.update_text(message)
        else:
            message.set_text(error_text)
            await self.publish(message)

        await self.update_status(message, MessageStatus.ERROR)
        await self._notify_about_request_finish(message)

    async def ok(self, message: Message) -> None:
        await self.update_status(message, MessageStatus.OK)
        await self._notify_about_request_finish(message)

    async def add_artifact(self, title: str, content: str, channel_id: str, message_id: str) -> str:
        name = title.replace(" ", "-").lower()
        try:
            return await self.api.upload_file(
                title=title,
                filename=f"{name}.txt",
                content=content,
                channel=channel_id,
                thread_ts=message_id,
            )
        except IntegrationError as e:
            logger.error("File upload failed: %s", e)
            raise

    async def download_artifact(self, url: str) -> bytes:
        logger.debug("Downloading snippet...")
        resp = await self.api.download(url)

        content_type = resp.headers.get("Content-Type", "")
        if resp.status_code == 401 or CONTENT_TYPE_TEXT not in content_type:
            msg = f"unauthorized to download snippet: response code {resp.status_code}"
            raise IntegrationError(msg)
        if resp.status_code != 200:
            msg = f"cannot download snippet: response code {resp.status_code}"
            raise IntegrationError(msg)
        return resp.content

    async def _notify_about_request_finish(self, message: Message) -> None:
        """Mention the author in the thread once a long-running request ends."""
        if not message.should_notify():
            return

        mention = Message(
            channel_id=message.channel_id,
            thread_id=message.message_id,
            user_id=message.user_id,
            message_type=MessageType.THREAD,
            text=f"<@{message.user_id}> :point_up_2:",
        )
        await self.publish(mention)
