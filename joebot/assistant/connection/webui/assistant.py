"""Web UI transport.

The Platform forwards console commands to ``POST /webui/command``.  Every
command is direct: its replies are bound to the Platform session and command
ids instead of a chat thread.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from joebot.assistant.connection.assistant import BaseAssistant
from joebot.assistant.connection.webui.informer import WebUIUserInformer
from joebot.assistant.connection.webui.messenger import PlatformMessenger
from joebot.assistant.connection.webui.validator import WebUIMessageValidator
from joebot.assistant.connection.webui.verifier import VERIFICATION_HEADER, verify_signature
from joebot.assistant.errors import FatalConfigError, IntegrationError, ValidationError
from joebot.assistant.models import IncomingMessage
from joebot.assistant.models.enums import CommunicationType
from joebot.assistant.services.platform import RegisterApplicationRequest

if TYPE_CHECKING:
    from collections.abc import Mapping

    from joebot.assistant.config import Channel

logger = logging.getLogger(__name__)


class WebCommand(BaseModel):
    """A command as posted by the Platform."""

    session_id: str = ""
    command_id: str = ""
    text: str = ""
    channel_id: str = ""
    user_id: str = ""
    timestamp: str = ""

    def to_incoming(self) -> IncomingMessage:
        return IncomingMessage(
            text=self.text,
            channel_id=self.channel_id,
            user_id=self.user_id,
            timestamp=self.timestamp,
            session_id=self.session_id,
            command_id=self.command_id,
            direct=True,
        )


class WebUIAssistant(BaseAssistant):
    name = CommunicationType.WEBUI

    def __init__(self, *args: Any, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self.messenger = PlatformMessenger(self.platform)
        self.validator = WebUIMessageValidator()
        self.informer = WebUIUserInformer()
        self.instance_id: int | None = None

    def validate_credentials(self) -> None:
        if not self.workspace.credentials.signing_secret:
            msg = 'invalid credentials given: "signingSecret" must not be empty'
            raise FatalConfigError(msg)

    async def register(self) -> None:
        """Announce this instance to the Platform so the web console can reach it."""
        if not self.config.platform.token or not self.config.app.url:
            logger.debug("Platform registration skipped: platform token or app url not configured")
            return

        request = RegisterApplicationRequest(
            url=self.config.app.url,
            token=self.workspace.credentials.signing_secret,
            project=self.config.platform.project,
        )
        try:
            self.instance_id = await self.platform.register_application(request)
        except IntegrationError as e:
            msg = f"failed to register the application on Platform: {e}"
            raise FatalConfigError(msg) from e

    async def deregister(self) -> None:
        await super().deregister()
        if self.instance_id is None:
            return

        try:
            await self.platform.deregister_application(self.instance_id)
        except IntegrationError as e:
            logger.error("Failed to deregister the application: %s", e)
        self.instance_id = None

    def verify(self, headers: Mapping[str, str], body: bytes) -> None:
        verify_signature(self.workspace.credentials.signing_secret, headers.get(VERIFICATION_HEADER, ""), body)

    def list_channels(self) -> list[Channel]:
        return list(self.workspace.channels)

    def handle_command(self, body: bytes) -> None:
        """Start processing a command.  Raises ``ValidationError`` for bad payloads or unknown channels."""
        try:
            command = WebCommand.model_validate_json(body)
        except PydanticValidationError as e:
            msg = f"failed to unmarshal the request body: {e.error_count()} errors"
            raise ValidationError(msg) from e

        if self.get_processor(command.channel_id) is None:
            msg = f"message processor for {command.channel_id!r} channel not found"
            raise ValidationError(msg)

        self.dispatch_message(command.to_incoming())
