"""Session housekeeping of a processing service: the idle reaper and restore."""

from __future__ import annotations

from collections import defaultdict
from typing import TYPE_CHECKING

from loguru import logger

from joebot.assistant.errors import JoeError
from joebot.assistant.models import Message, MessageStatus

if TYPE_CHECKING:
    from joebot.assistant.connection.base import Messenger
    from joebot.assistant.models import UserSession
    from joebot.assistant.msgproc.service import ProcessingConfig
    from joebot.assistant.services.clones import CloneManager
    from joebot.assistant.services.usermanager import UserManager

MSG_STOPPED_IDLE_SESSIONS = "Stopped idle sessions for: "
MSG_STOPPED_IDLE_SESSION = "Stopped idle session"


class SessionManagementMixin:
    messenger: Messenger
    users: UserManager
    clones: CloneManager
    config: ProcessingConfig

    async def check_idle_sessions(self) -> None:
        """Stop sessions idle for longer than their clone allows and tell their owners.

        A user whose clone Database Lab still reports as active is left alone.
        Users busy with a command are skipped until the next tick, and the
        idle condition is checked again under the user's lock because a
        command may have refreshed or replaced the clone meanwhile.
        """
        channels_to_notify: dict[str, list[str]] = defaultdict(list)
        direct_to_notify: list[str] = []

        for user in self.users.users().values():
            session = user.session
            clone = session.clone
            if clone is None or user.lock.locked() or not self._owns(session):
                continue

            max_idle = clone.metadata.max_idle_minutes
            if session.minutes_idle() < max_idle:
                continue

            if await self.clones.is_active(clone.id):
                continue

            async with user.lock:
                if session.clone is None or session.clone.id != clone.id or session.minutes_idle() < max_idle:
                    continue

                logger.debug("Session idle: user {}, clone {}", user.id, clone.id)
                session_id = session.session_id
                await self.clones.stop_session(session)

            if session.direct:
                direct_to_notify.append(session_id)
            else:
                channels_to_notify[session.channel_id].append(user.id)

        await self.notify_directly(direct_to_notify)
        await self.notify_channels(channels_to_notify)

    def _owns(self, session: UserSession) -> bool:
        """Whether the session was started in the channel this service serves."""
        return not self.config.channel_id or session.channel_id == self.config.channel_id

    async def notify_channels(self, channels: dict[str, list[str]]) -> None:
        for channel_id, user_ids in channels.items():
            if not user_ids:
                continue

            message = Message(channel_id=channel_id)
            message.set_text(MSG_STOPPED_IDLE_SESSIONS + ", ".join(f"<@{user_id}>" for user_id in user_ids))
            try:
                await self.messenger.publish(message)
            except JoeError as e:
                logger.error("Bot: cannot publish a message: {}", e)

    async def notify_directly(self, session_ids: list[str]) -> None:
        for session_id in session_ids:
            message = Message(session_id=session_id, status=MessageStatus.OK)
            message.set_text(MSG_STOPPED_IDLE_SESSION)
            try:
                await self.messenger.publish(message)
            except JoeError as e:
                logger.error("Bot: cannot publish a direct message: {}", e)

    # -- Persistence -----------------------------------------------------------

    async def restore_sessions(self) -> None:
        """Revalidate the sessions loaded from storage and reconnect to their clones."""
        restored = 0
        for user in self.users.users().values():
            if user.session.clone is None or not self._owns(user.session):
                continue
            async with user.lock:
                if await self.clones.restore(user.session):
                    restored += 1
        logger.debug("Restored {} of {} user sessions", restored, len(self.users))

    async def _destroy_quietly(self, session: UserSession, clones: CloneManager | None = None) -> None:
        clones = clones or self.clones
        try:
            await clones.destroy_session(session)
        except JoeError as e:
            logger.error("Failed to destroy the session: {}", e)
            await clones.stop_session(session)
