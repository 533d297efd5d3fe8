"""``reset``: roll the clone back to its snapshot."""

from __future__ import annotations

import logging
from datetime import timedelta
from typing import TYPE_CHECKING

from joebot.assistant.commands.base import BaseCommand
from joebot.assistant.errors import SessionError
from joebot.assistant.foreword import Foreword

if TYPE_CHECKING:
    from joebot.assistant.connection.base import Messenger
    from joebot.assistant.models.command import Command
    from joebot.assistant.models.message import Message
    from joebot.assistant.models.user import UserSession
    from joebot.assistant.services.clones import CloneManager

logger = logging.getLogger(__name__)

MSG_RESETTING = "Resetting the state of the database..."
MSG_RESET_DONE = "The state of the database has been reset."


class ResetCmd(BaseCommand):
    """Resets the clone and republishes the foreword.

    If the reset fails the session is destroyed, so the next command starts
    on a fresh clone.
    """

    def __init__(
        self,
        command: Command,
        message: Message,
        session: UserSession,
        messenger: Messenger,
        clones: CloneManager,
        *,
        app_version: str,
        edition: str,
    ) -> None:
        super().__init__(command, message, session.pool, messenger)
        self.session = session
        self.clones = clones
        self.app_version = app_version
        self.edition = edition

    async def execute(self) -> None:
        await self.append(MSG_RESETTING)

        try:
            clone = await self.clones.reset_clone(self.session)
        except SessionError:
            logger.exception("Reset failed, destroying the session")
            try:
                await self.clones.destroy_session(self.session)
            except SessionError as e:
                logger.error("Failed to destroy the session: %s", e)
                await self.clones.stop_session(self.session)
            raise

        foreword = Foreword(
            session_id=clone.id,
            duration=timedelta(minutes=clone.metadata.max_idle_minutes),
            app_version=self.app_version,
            edition=self.edition,
            db_name=self.session.connection_params.name,
            dsa=clone.data_state_at,
        )
        await foreword.enrich(self.session.pool)

        self.command.response = MSG_RESET_DONE
        await self.append(foreword.render())
