"""Messenger that stores every message update on the Platform.

The web UI renders messages from the Platform history, so publishing,
editing and status changes are all the same ``joe_message_post`` call.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from joebot.assistant.errors import IntegrationError
from joebot.assistant.models import Message, MessageStatus
from joebot.assistant.services.platform import ArtifactUpload, PostMessage

if TYPE_CHECKING:
    from joebot.assistant.services.platform import PlatformClient


class PlatformMessenger:
    def __init__(self, platform: PlatformClient) -> None:
        self.platform = platform

    async def _post(self, message: Message) -> None:
        request = PostMessage(
            command_id=message.command_id,
            message_id=message.message_id,
            text=message.text,
            status=str(message.status),
            session_id=message.session_id,
        )
        try:
            message_id = await self.platform.post_message(request)
        except IntegrationError as e:
            msg = f"failed to post a message to Platform: {e}"
            raise IntegrationError(msg) from e

        if not message.message_id:
            message.message_id = message_id

    async def publish(self, message: Message) -> None:
        await self._post(message)

    async def update_text(self, message: Message) -> None:
        await self._post(message)

    async def update_status(self, message: Message, status: MessageStatus) -> None:
        message.status = status
        await self._post(message)

    async def fail(self, message: Message, text: str) -> None:
        error_text = f"ERROR: {text}"
        if message.is_published:
            message.append_text(error_text)
        else:
            message.set_text(error_text)
        message.status = MessageStatus.ERROR
        await self._post(message)

    async def ok(self, message: Message) -> None:
        message.status = MessageStatus.OK
        await self._post(message)

    async def add_artifact(self, title: str, content: str, channel_id: str, message_id: str) -> str:
        return await self.platform.add_artifact(ArtifactUpload(message_id=message_id, title=title, content=content))

    async def download_artifact(self, url: str) -> bytes:
        msg = "artifact downloading is not supported"
        raise IntegrationError(msg)
