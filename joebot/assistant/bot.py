"""Application core: Database Lab instances, transports and their lifecycle.

``App`` is created once per process by the FastAPI lifespan.  Startup order
matters: the session storage is loaded before channels are attached (each
channel registry is seeded from it), and sessions are restored only once
every transport is initialised.
"""

from __future__ import annotations

import asyncio
import dataclasses
from typing import TYPE_CHECKING

from loguru import logger
from pydantic import BaseModel

from joebot.assistant.connection.slack import SlackAssistant
from joebot.assistant.connection.slackrtm import RTMAssistant
from joebot.assistant.connection.slacksm import SocketModeAssistant
from joebot.assistant.connection.webui import WebUIAssistant
from joebot.assistant.errors import FatalConfigError, IntegrationError, JoeError
from joebot.assistant.models.enums import CommunicationType
from joebot.assistant.services.dblab import DBLabClient, DBLabInstance

if TYPE_CHECKING:
    from joebot.assistant.commands.psql import PsqlRunner
    from joebot.assistant.config import Config, Workspace
    from joebot.assistant.connection.assistant import BaseAssistant
    from joebot.assistant.features.definition import Pack
    from joebot.assistant.services.clones import PoolFactory
    from joebot.assistant.services.platform import PlatformClient
    from joebot.assistant.services.storage import SessionStorage

IDLE_CHECK_INTERVAL = 60.0
"""Seconds between two idle-session sweeps."""

ASSISTANT_TYPES: dict[CommunicationType, type[BaseAssistant]] = {
    CommunicationType.SLACK: SlackAssistant,
    CommunicationType.SLACK_RTM: RTMAssistant,
    CommunicationType.SLACK_SM: SocketModeAssistant,
    CommunicationType.WEBUI: WebUIAssistant,
}


class HealthResponse(BaseModel):
    version: str
    edition: str
    communication_types: list[str]


class App:
    def __init__(
        self,
        config: Config,
        pack: Pack,
        platform: PlatformClient,
        storage: SessionStorage,
        *,
        psql_runner: PsqlRunner | None = None,
        pool_factory: PoolFactory | None = None,
        idle_check_interval: float = IDLE_CHECK_INTERVAL,
    ) -> None:
        self.config = config
        self.pack = pack
        self.platform = platform
        self.storage = storage
        self.psql_runner = psql_runner
        self.pool_factory = pool_factory
        self.idle_check_interval = idle_check_interval

        self.dblab_instances: dict[str, DBLabInstance] = {}
        self.assistants: list[BaseAssistant] = []
        self._idle_task: asyncio.Task | None = None

    # -- Startup ---------------------------------------------------------------

    def init_dblab_instances(self) -> None:
        servers = self.config.channel_mapping.dblab_servers
        limit = self.config.enterprise.dblab.instance_limit
        if len(servers) > limit:
            msg = (
                f"limit on Database Lab instances exceeded: {len(servers)} > {limit}. "
                "Upgrade to Enterprise edition to run more instances"
            )
            raise FatalConfigError(msg)

        for name, server in servers.items():
            try:
                client = DBLabClient.from_config(server)
            except IntegrationError as e:
                msg = f"failed to init {name!r}: {e}"
                raise FatalConfigError(msg) from e
            self.dblab_instances[name] = DBLabInstance(name=name, client=client)

    def build_assistant(self, communication_type: CommunicationType, workspace: Workspace) -> BaseAssistant:
        assistant_type = ASSISTANT_TYPES.get(communication_type)
        if assistant_type is None:
            msg = f"unknown workspace type given: {communication_type}"
            raise FatalConfigError(msg)

        return assistant_type(
            workspace,
            self.config,
            self.pack,
            self.platform,
            self.storage,
            psql_runner=self.psql_runner,
            pool_factory=self.pool_factory,
        )

    def setup_channels(self, assistant: BaseAssistant, workspace: Workspace) -> None:
        for channel in workspace.channels:
            instance = self.dblab_instances.get(channel.dblab_id)
            if instance is None:
                msg = f"failed to find a configuration of the Database Lab client: {channel.dblab_id!r}"
                raise FatalConfigError(msg)

            # Channels sharing a server keep the client but differ in database params.
            channel_instance = dataclasses.replace(instance, params=channel.dblab_params)
            assistant.add_channel(channel.channel_id, self.config.platform.project, channel_instance)
            logger.debug("Set up channel: {}", channel.channel_id)

    async def start(self) -> None:
        self.init_dblab_instances()
        await self.storage.load()

        for communication_type, workspaces in self.config.channel_mapping.communication_types.items():
            for workspace in workspaces:
                logger.debug("Initialize the {} assistant: {}", communication_type, workspace.name)
                assistant = self.build_assistant(communication_type, workspace)
                self.setup_channels(assistant, workspace)
                await assistant.init()
                await assistant.register()
                self.assistants.append(assistant)

        for assistant in self.assistants:
            await assistant.restore_sessions()

        self._idle_task = asyncio.create_task(self._idle_loop())
        logger.info("Started {} assistant(s) ({})", len(self.assistants), self.pack.entertainer.get_edition())

    # -- Runtime ---------------------------------------------------------------

    def assistants_of(self, communication_type: CommunicationType) -> list[BaseAssistant]:
        return [a for a in self.assistants if a.name == communication_type]

    async def check_idle_sessions(self) -> None:
        for assistant in self.assistants:
            try:
                await assistant.check_idle_sessions()
            except JoeError as e:
                logger.error("Idle session check failed for {}: {}", assistant.name, e)
            except Exception:
                logger.exception("Idle session check failed for {}", assistant.name)

    async def _idle_loop(self) -> None:
        while True:
            await asyncio.sleep(self.idle_check_interval)
            await self.check_idle_sessions()

    def health(self) -> HealthResponse:
        return HealthResponse(
            version=self.config.app.version,
            edition=self.pack.entertainer.get_edition(),
            communication_types=[str(t) for t in self.config.channel_mapping.communication_types],
        )

    # -- Shutdown --------------------------------------------------------------

    async def save_sessions(self) -> None:
        for assistant in self.assistants:
            assistant.dump_sessions()
        await self.storage.save()

    async def shutdown(self) -> None:
        if self._idle_task is not None:
            self._idle_task.cancel()
            await asyncio.gather(self._idle_task, return_exceptions=True)
            self._idle_task = None

        if self.assistants:
            try:
                await self.save_sessions()
            except OSError as e:
                logger.error("Unable to dump session storage data: {}", e)

            for assistant in self.assistants:
                await assistant.close_pools()

            results = await asyncio.gather(*(a.deregister() for a in self.assistants), return_exceptions=True)
            for assistant, result in zip(self.assistants, results, strict=True):
                if isinstance(result, Exception):
                    logger.error("Failed to deregister the {} assistant: {}", assistant.name, result)

        for instance in self.dblab_instances.values():
            await instance.client.close()
        await self.platform.close()
        logger.info("Assistant stopped")
