"""Enterprise edition: activity inspection, backend termination, the timing estimator."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from joebot.assistant.commands.activity import ActivityCmd, TerminateCmd
from joebot.assistant.features.definition import Pack
from joebot.assistant.models.enums import Edition

if TYPE_CHECKING:
    from joebot.assistant.commands.base import Executor
    from joebot.assistant.config import Config
    from joebot.assistant.connection.base import Messenger
    from joebot.assistant.models.command import Command
    from joebot.assistant.models.message import Message

EDITION = "Enterprise Edition"


class EnterpriseBuilder:
    def build_activity_cmd(self, command: Command, message: Message, pool: Any, messenger: Messenger) -> Executor:
        return ActivityCmd(command, message, pool, messenger)

    def build_terminate_cmd(self, command: Command, message: Message, pool: Any, messenger: Messenger) -> Executor:
        return TerminateCmd(command, message, pool, messenger)


class EnterpriseEntertainer:
    def get_edition(self) -> str:
        return EDITION

    def get_enterprise_help_message(self) -> str:
        return ""


class EnterpriseOptions:
    """Keeps the configured enterprise options."""

    def apply(self, config: Config) -> Config:
        return config


def enterprise_pack() -> Pack:
    return Pack(
        edition=Edition.EE,
        builder=EnterpriseBuilder(),
        entertainer=EnterpriseEntertainer(),
        options=EnterpriseOptions(),
        estimator_enabled=True,
    )
