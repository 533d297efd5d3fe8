"""Per-channel message processing pipeline.

One ``ProcessingService`` serves one channel of one transport.  It validates
an incoming event, resolves the user, makes sure the user's session holds a
clone, dispatches the command and reports the outcome through the
transport's ``Messenger``.  Events of one user are serialised by the user's
lock; different users proceed concurrently.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import timedelta
from typing import TYPE_CHECKING

from loguru import logger

from joebot.assistant.commands.exec import ExecCmd
from joebot.assistant.commands.explain import ExplainCmd
from joebot.assistant.commands.hypo import HypoCmd
from joebot.assistant.commands.plan import PlanCmd
from joebot.assistant.commands.psql import PsqlCmd, SubprocessPsqlRunner
from joebot.assistant.commands.reset import ResetCmd
from joebot.assistant.config import AppConfig, EnterpriseConfig, ExplainConfig, PlatformConfig
from joebot.assistant.errors import CloneConnectionError, IntegrationError, JoeError, QuotaError, ValidationError
from joebot.assistant.foreword import Foreword
from joebot.assistant.log import audit
from joebot.assistant.models import Audit, Command, IncomingMessage, Message, MessageStatus, MessageType
from joebot.assistant.msgproc import parser
from joebot.assistant.msgproc.sessions import SessionManagementMixin
from joebot.assistant.services.platform import PlatformSession

if TYPE_CHECKING:
    from collections.abc import Callable

    from joebot.assistant.commands.base import Executor
    from joebot.assistant.commands.psql import PsqlRunner
    from joebot.assistant.config import EstimatorConfig
    from joebot.assistant.connection.base import MessageValidator, Messenger
    from joebot.assistant.features.definition import Pack
    from joebot.assistant.models import User, UserSession
    from joebot.assistant.services.clones import CloneManager
    from joebot.assistant.services.dblab import DBLabInstance
    from joebot.assistant.services.platform import PlatformClient
    from joebot.assistant.services.usermanager import UserManager

MSG_SESSION_STARTING = "Starting new session...\n"
MSG_SESSION_CLOSED = "Session was closed by Database Lab.\n"

# A command hit by a lost connection is re-run at most this many times,
# and only while Database Lab still reports the clone as active.
MAX_RETRY_COUNTER = 1


@dataclass
class ProcessingConfig:
    dblab: DBLabInstance
    app: AppConfig = field(default_factory=AppConfig)
    platform: PlatformConfig = field(default_factory=PlatformConfig)
    explain: ExplainConfig = field(default_factory=ExplainConfig)
    enterprise: EnterpriseConfig = field(default_factory=EnterpriseConfig)
    project: str = ""
    channel_id: str = ""
    """Channel served; sessions started here are reaped and restored here."""


class ProcessingService(SessionManagementMixin):
    def __init__(
        self,
        messenger: Messenger,
        validator: MessageValidator,
        users: UserManager,
        clones: CloneManager,
        platform: PlatformClient,
        config: ProcessingConfig,
        pack: Pack,
        *,
        psql_runner: PsqlRunner | None = None,
        clones_of_channel: Callable[[str], CloneManager | None] | None = None,
    ) -> None:
        self.messenger = messenger
        self.validator = validator
        self.users = users
        self.clones = clones
        self.platform = platform
        self.config = config
        self.pack = pack
        self.psql_runner = psql_runner or SubprocessPsqlRunner()
        self._clones_of_channel = clones_of_channel

    @property
    def estimator(self) -> EstimatorConfig | None:
        return self.config.enterprise.estimator if self.pack.estimator_enabled else None

    @property
    def edition(self) -> str:
        return self.pack.entertainer.get_edition()

    def _owning_clones(self, session: UserSession) -> CloneManager:
        """Clone manager of the channel the session was started in."""
        if self._clones_of_channel is not None:
            clones = self._clones_of_channel(session.channel_id)
            if clones is not None:
                return clones
        return self.clones

    # -- Events ----------------------------------------------------------------

    async def process_message_event(self, incoming: IncomingMessage) -> None:
        try:
            self.validator.validate(incoming)
        except ValidationError as e:
            logger.debug("Message filtered: {}", e)
            return

        try:
            user = await self.users.get_or_create(incoming.user_id)
        except JoeError as e:
            logger.error("Failed to get user {}: {}", incoming.user_id, e)
            await self._fail_quietly(Message.from_incoming(incoming), str(e))
            return

        async with user.lock:
            await self._process(user, incoming)

    async def process_app_mention_event(self, incoming: IncomingMessage) -> None:
        message = Message.from_incoming(incoming)
        message.set_text(parser.APP_MENTION_REPLY)
        try:
            await self.messenger.publish(message)
        except JoeError as e:
            logger.error("Bot: cannot publish a message: {}", e)

    # -- Pipeline --------------------------------------------------------------

    async def _process(self, user: User, incoming: IncomingMessage) -> None:
        session = user.session

        if session.clone is not None and session.channel_id and session.channel_id != incoming.channel_id:
            logger.info("User {} moved to channel {}, destroying the previous session", user.id, incoming.channel_id)
            await self._destroy_quietly(session, self._owning_clones(session))

        session.channel_id = incoming.channel_id
        session.direct = incoming.direct

        text = parser.normalize(incoming.text)
        if incoming.snippet_url:
            logger.debug("Using attached file as message")
            try:
                snippet = await self.messenger.download_artifact(incoming.snippet_url)
            except JoeError as e:
                logger.error("Failed to download the snippet: {}", e)
                await self._fail_quietly(Message.from_incoming(incoming), str(e))
                return
            text = snippet.decode(errors="replace").strip()

        if not text:
            logger.debug("Message filtered: empty")
            return

        command_name, query = parser.parse_command(text)
        await self._show_hints(incoming, command_name, query)

        if not parser.is_supported(command_name):
            logger.debug("Message filtered: not a command")
            return

        try:
            user.request_quota()
        except QuotaError as e:
            logger.info("Quota exceeded for user {}", user.id)
            await self._fail_quietly(Message.from_incoming(incoming), str(e))
            return

        if self.config.enterprise.audit.enabled:
            record = Audit(
                id=user.user_info.id,
                name=user.user_info.name,
                real_name=user.user_info.real_name,
                command=command_name,
                query=query,
            )
            audit(record.model_dump_json(by_alias=True))

        preview = parser.query_preview(command_name, query)

        if command_name == parser.COMMAND_HELP:
            await self._show_help(user, incoming, preview)
            return

        try:
            await self.run_session(user, incoming)
        except JoeError:
            return

        message = Message.from_incoming(incoming)
        message.set_text(preview + parser.session_line(session.session_id))
        try:
            await self.messenger.publish(message)
        except JoeError as e:
            logger.error("Bot: cannot publish a message: {}", e)
            return

        message.set_notify_at(timedelta(minutes=self.config.app.min_notify_duration))
        message.user_id = user.id
        await self._update_status_quietly(message, MessageStatus.RUNNING)

        command = Command(
            session_id=session.platform_session_id,
            command=command_name,
            query=query,
            timestamp=incoming.timestamp,
        )

        ok = await self._dispatch(user, incoming, command, message)

        if self.platform.history_enabled:
            try:
                result = await self.platform.post_command(command)
            except IntegrationError as e:
                logger.error("Failed to post the command: {}", e)
                if ok:
                    await self._fail_quietly(message, str(e))
                return

            if ok and command_name == parser.COMMAND_EXPLAIN and result.permalink:
                message.append_text(f"Details: {result.permalink}")
                try:
                    await self.messenger.update_text(message)
                except JoeError as e:
                    logger.warning("Failed to append the permalink: {}", e)

        if not ok:
            return

        session.touch()
        try:
            await self.messenger.ok(message)
        except JoeError as e:
            logger.error("Failed to finish the message: {}", e)

    async def _dispatch(self, user: User, incoming: IncomingMessage, command: Command, message: Message) -> bool:
        """Run the command, retrying once on a lost connection.  Returns whether it succeeded."""
        session = user.session

        for iteration in range(MAX_RETRY_COUNTER + 1):
            try:
                executor = self._build_executor(command, message, session)
                await executor.execute()
                return True
            except CloneConnectionError as e:
                active = session.clone is not None and await self.clones.is_active(session.clone.id)
                if active and iteration < MAX_RETRY_COUNTER:
                    logger.info("Connection to clone {} lost, retrying: {}", session.clone.id, e)
                    continue

                if not active:
                    await self._close_lost_session(user, incoming, message)
                    command.fail(str(e))
                    await self._fail_quietly(message, str(e))
                    return False

                await self._fail_command(command, message, e)
                return False
            except Exception as e:
                await self._fail_command(command, message, e)
                return False
        return False

    def _build_executor(self, command: Command, message: Message, session: UserSession) -> Executor:
        name = command.command
        pool = session.pool

        if name == parser.COMMAND_EXPLAIN:
            return ExplainCmd(command, message, pool, self.messenger, self.config.explain, self.estimator)
        if name == parser.COMMAND_PLAN:
            return PlanCmd(command, message, pool, self.messenger)
        if name == parser.COMMAND_EXEC:
            return ExecCmd(command, message, pool, self.messenger, self.estimator)
        if name == parser.COMMAND_RESET:
            return ResetCmd(
                command,
                message,
                session,
                self.messenger,
                self.clones,
                app_version=self.config.app.version,
                edition=self.edition,
            )
        if name == parser.COMMAND_HYPO:
            return HypoCmd(command, message, pool, self.messenger)
        if name == parser.COMMAND_ACTIVITY:
            return self.pack.builder.build_activity_cmd(command, message, pool, self.messenger)
        if name == parser.COMMAND_TERMINATE:
            return self.pack.builder.build_terminate_cmd(command, message, pool, self.messenger)
        if parser.is_psql_command(name):
            return PsqlCmd(command, message, session.connection_params, self.messenger, self.psql_runner)

        msg = f"unsupported command: {name}"
        raise ValidationError(msg)

    async def _fail_command(self, command: Command, message: Message, exc: Exception) -> None:
        if not isinstance(exc, JoeError):
            logger.exception("Command {} failed", command.command)
        else:
            logger.info("Command {} failed: {}", command.command, exc)
        command.fail(str(exc))
        await self._fail_quietly(message, str(exc))

    async def _close_lost_session(self, user: User, incoming: IncomingMessage, message: Message) -> None:
        """Report a clone that disappeared, drop the session and prepare a new one."""
        message.append_text(MSG_SESSION_CLOSED)
        try:
            await self.messenger.update_text(message)
        except JoeError as e:
            logger.error("Failed to append message on session close: {}", e)

        await self.clones.stop_session(user.session)

        try:
            await self.run_session(user, incoming)
        except JoeError as e:
            logger.error("Failed to start a new session for user {}: {}", user.id, e)

    # -- Session start ---------------------------------------------------------

    async def run_session(self, user: User, incoming: IncomingMessage) -> None:
        """Make sure the user holds a live clone, starting a new session if needed.

        Failures are reported to the chat and re-raised.
        """
        session = user.session

        if session.clone is not None:
            if await self.clones.is_active(session.clone.id):
                if session.pool is None:
                    try:
                        await self.clones.reopen_pool(session)
                    except JoeError as e:
                        await self._fail_quietly(Message.from_incoming(incoming), str(e))
                        raise
                return

            logger.info("Clone {} of user {} is not active anymore", session.clone.id, user.id)
            await self.clones.stop_session(session)

        message = Message.from_incoming(incoming)
        message.set_text(MSG_SESSION_STARTING)
        try:
            await self.messenger.publish(message)
        except JoeError as e:
            logger.error("Bot: cannot publish a message: {}", e)
            raise

        await self._update_status_quietly(message, MessageStatus.RUNNING)

        try:
            if self.platform.history_enabled:
                session.platform_session_id = await self.platform.create_platform_session(
                    PlatformSession(
                        access_token=self.config.platform.token,
                        user_id=user.id,
                        user_name=user.user_info.name,
                        channel_id=incoming.channel_id,
                    )
                )

            await self.clones.ensure_clone(session, self.config.dblab.params, user_name=user.user_info.name)

            message.set_text(MSG_SESSION_STARTING + parser.session_line(session.session_id))
            await self.messenger.update_text(message)

            clone = session.clone
            foreword = Foreword(
                session_id=clone.id,
                duration=timedelta(minutes=clone.metadata.max_idle_minutes),
                app_version=self.config.app.version,
                edition=self.edition,
                db_name=session.connection_params.name,
                dsa=clone.data_state_at,
            )
            try:
                await foreword.enrich(session.pool)
            except JoeError as e:
                logger.warning("Failed to enrich the foreword: {}", e)

            message.append_text(foreword.render())
            await self.messenger.update_text(message)
        except JoeError as e:
            logger.error("Failed to start a session for user {}: {}", user.id, e)
            await self._fail_quietly(message, str(e))
            raise

        session.touch()
        try:
            await self.messenger.ok(message)
        except JoeError as e:
            logger.error("Failed to finish the session message: {}", e)

    # -- Help & hints ----------------------------------------------------------

    async def _show_help(self, user: User, incoming: IncomingMessage, preview: str) -> None:
        entertainer = self.pack.entertainer
        text = parser.help_text(
            preview,
            entertainer.get_enterprise_help_message(),
            self.config.app.version,
            entertainer.get_edition(),
        )
        message = Message.from_incoming(incoming)
        message.set_text(text + parser.session_line(user.session.session_id))
        try:
            await self.messenger.publish(message)
        except JoeError as e:
            logger.error("Bot: cannot publish a message: {}", e)

    async def _show_hints(self, incoming: IncomingMessage, command: str, query: str) -> None:
        for hint in parser.hints(command, query):
            message = Message.from_incoming(incoming)
            message.message_type = MessageType.EPHEMERAL
            message.user_id = incoming.user_id
            message.set_text(hint)
            try:
                await self.messenger.publish(message)
            except JoeError as e:
                logger.error("Failed to publish a hint: {}", e)

    # -- Helpers ---------------------------------------------------------------

    async def _fail_quietly(self, message: Message, text: str) -> None:
        try:
            await self.messenger.fail(message, text)
        except JoeError as e:
            logger.error("Failed to report an error to the chat: {}", e)

    async def _update_status_quietly(self, message: Message, status: MessageStatus) -> None:
        try:
            await self.messenger.update_status(message, status)
        except JoeError as e:
            logger.error("Failed to update the message status: {}", e)

