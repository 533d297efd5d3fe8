"""Behaviour shared by every transport: the channel -> processor registry.

Each channel gets its own ``ProcessingService``.  All channels of a
transport share one user registry, so a user holds at most one session
across them; channels served by the same Database Lab server share one
``CloneManager``.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Coroutine
from typing import TYPE_CHECKING, Any

from joebot.assistant.errors import FatalConfigError
from joebot.assistant.msgproc import ProcessingConfig, ProcessingService
from joebot.assistant.services.clones import CloneManager, open_pool
from joebot.assistant.services.usermanager import UserManager

if TYPE_CHECKING:
    from joebot.assistant.commands.psql import PsqlRunner
    from joebot.assistant.config import Config, Workspace
    from joebot.assistant.connection.base import MessageValidator, Messenger
    from joebot.assistant.features.definition import Pack
    from joebot.assistant.models import IncomingMessage, User
    from joebot.assistant.services.clones import PoolFactory
    from joebot.assistant.services.dblab import DBLabInstance
    from joebot.assistant.services.platform import PlatformClient
    from joebot.assistant.services.storage import SessionStorage
    from joebot.assistant.services.usermanager import UserInformer

logger = logging.getLogger(__name__)


class BaseAssistant:
    """Common part of the transports; subclasses provide the chat plumbing."""

    name: str = ""

    messenger: Messenger
    validator: MessageValidator
    informer: UserInformer

    def __init__(
        self,
        workspace: Workspace,
        config: Config,
        pack: Pack,
        platform: PlatformClient,
        storage: SessionStorage,
        *,
        psql_runner: PsqlRunner | None = None,
        pool_factory: PoolFactory | None = None,
    ) -> None:
        self.workspace = workspace
        self.config = config
        self.pack = pack
        self.platform = platform
        self.storage = storage
        self.psql_runner = psql_runner
        self.pool_factory = pool_factory or open_pool

        self.users: UserManager | None = None
        self._processors: dict[str, ProcessingService] = {}
        self._clone_managers: dict[str, CloneManager] = {}
        self._channel_clones: dict[str, CloneManager] = {}
        self._tasks: set[asyncio.Task] = set()

    # -- Lifecycle -------------------------------------------------------------

    def validate_credentials(self) -> None:
        """Raise ``FatalConfigError`` when the workspace credentials are incomplete."""

    async def init(self) -> None:
        self.validate_credentials()
        if not self._processors:
            msg = f"{self.name}: no message processor set"
            raise FatalConfigError(msg)

    async def register(self) -> None:
        pass

    async def deregister(self) -> None:
        await self.cancel_tasks()

    async def cancel_tasks(self) -> None:
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    # -- Channels --------------------------------------------------------------

    def add_channel(self, channel_id: str, project: str, dblab: DBLabInstance) -> None:
        if self.users is None:
            self.users = UserManager(self.informer, self.config.enterprise.quota)

        stored = self.storage.get_users(self.name, channel_id)
        for user in stored.values():
            user.session.channel_id = user.session.channel_id or channel_id
        self.users.add_users(stored)

        clones = self._clone_managers.get(dblab.name)
        if clones is None:
            clones = self._clone_managers[dblab.name] = CloneManager(dblab.client, pool_factory=self.pool_factory)
        self._channel_clones[channel_id] = clones

        processing_config = ProcessingConfig(
            dblab=dblab,
            app=self.config.app,
            platform=self.config.platform,
            explain=self.config.explain,
            enterprise=self.config.enterprise,
            project=project,
            channel_id=channel_id,
        )
        self._processors[channel_id] = ProcessingService(
            self.messenger,
            self.validator,
            self.users,
            clones,
            self.platform,
            processing_config,
            self.pack,
            psql_runner=self.psql_runner,
            clones_of_channel=self.clones_of_channel,
        )
        logger.debug("%s: channel %s attached to Database Lab %s", self.name, channel_id, dblab.name)

    def get_processor(self, channel_id: str) -> ProcessingService | None:
        return self._processors.get(channel_id)

    def clones_of_channel(self, channel_id: str) -> CloneManager | None:
        """Clone manager of the Database Lab server serving ``channel_id``."""
        return self._channel_clones.get(channel_id)

    @property
    def channels(self) -> list[str]:
        return list(self._processors)

    # -- Events ----------------------------------------------------------------

    def dispatch_message(self, incoming: IncomingMessage) -> asyncio.Task | None:
        """Process a message event on its own task."""
        processor = self.get_processor(incoming.channel_id)
        if processor is None:
            logger.error("message processor for %r channel not found", incoming.channel_id)
            return None
        return self.spawn(processor.process_message_event(incoming))

    def dispatch_app_mention(self, incoming: IncomingMessage) -> asyncio.Task | None:
        processor = self.get_processor(incoming.channel_id)
        if processor is None:
            logger.error("message processor for %r channel not found", incoming.channel_id)
            return None
        return self.spawn(processor.process_app_mention_event(incoming))

    def spawn(self, coro: Coroutine[Any, Any, None]) -> asyncio.Task:
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._task_done)
        return task

    def _task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if not task.cancelled() and (exc := task.exception()) is not None:
            logger.error("%s: event processing failed", self.name, exc_info=exc)

    # -- Sessions --------------------------------------------------------------

    async def check_idle_sessions(self) -> None:
        logger.debug("%s: check idle sessions", self.name)
        for processor in list(self._processors.values()):
            await processor.check_idle_sessions()

    async def restore_sessions(self) -> None:
        logger.debug("%s: restore sessions", self.name)
        for processor in list(self._processors.values()):
            await processor.restore_sessions()

    def dump_sessions(self) -> None:
        """Store users under the channel of their session."""
        logger.debug("%s: dump sessions", self.name)
        by_channel: dict[str, dict[str, User]] = {channel_id: {} for channel_id in self._processors}
        users = self.users.users() if self.users is not None else {}
        for user_id, user in users.items():
            channel = by_channel.get(user.session.channel_id)
            if channel is None:
                logger.debug("%s: user %s has no known channel, not stored", self.name, user_id)
                continue
            channel[user_id] = user

        for channel_id, channel_users in by_channel.items():
            self.storage.set_users(self.name, channel_id, channel_users)

    async def close_pools(self) -> None:
        """Close the connection pools of live sessions; clones stay up for the next start."""
        users = self.users.users() if self.users is not None else {}
        for user in users.values():
            pool, user.session.pool = user.session.pool, None
            if pool is None:
                continue
            try:
                await pool.close()
            except Exception:
                logger.warning("%s: failed to close the pool of user %s", self.name, user.id, exc_info=True)
