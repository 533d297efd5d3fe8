"""Community edition: enterprise commands are locked, options are fixed."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from joebot.assistant.commands.activity import LockedCmd
from joebot.assistant.config import AuditConfig, DBLabLimitConfig, QuotaConfig
from joebot.assistant.features.definition import Pack
from joebot.assistant.models.enums import Edition

if TYPE_CHECKING:
    from joebot.assistant.commands.base import Executor
    from joebot.assistant.config import Config
    from joebot.assistant.connection.base import Messenger
    from joebot.assistant.models.command import Command
    from joebot.assistant.models.message import Message

EDITION = "Community Edition"
ENTERPRISE_HELP_MESSAGE = (
    "\n*Enterprise edition commands*:\n"
    "• `activity` — show currently running sessions in Postgres "
    "(states: `active`, `idle in transaction`, `disabled`). Not supported in CE version\n"
    "• `terminate [pid]` — terminate Postgres backend that has the specified PID. Not supported in CE version\n"
)

# Changing these values requires an active Enterprise subscription.
DEFAULT_QUOTA_LIMIT = 10
DEFAULT_QUOTA_INTERVAL = 60
DEFAULT_AUDIT = False
DEFAULT_DBLAB_LIMIT = 1


class CommunityBuilder:
    def build_activity_cmd(self, command: Command, message: Message, pool: Any, messenger: Messenger) -> Executor:
        return LockedCmd()

    def build_terminate_cmd(self, command: Command, message: Message, pool: Any, messenger: Messenger) -> Executor:
        return LockedCmd()


class CommunityEntertainer:
    def get_edition(self) -> str:
        return EDITION

    def get_enterprise_help_message(self) -> str:
        return ENTERPRISE_HELP_MESSAGE


class CommunityOptions:
    def apply(self, config: Config) -> Config:
        enterprise = config.enterprise.model_copy(
            update={
                "quota": QuotaConfig(limit=DEFAULT_QUOTA_LIMIT, interval=DEFAULT_QUOTA_INTERVAL),
                "audit": AuditConfig(enabled=DEFAULT_AUDIT),
                "dblab": DBLabLimitConfig(instance_limit=DEFAULT_DBLAB_LIMIT),
            }
        )
        return config.model_copy(update={"enterprise": enterprise})


def community_pack() -> Pack:
    return Pack(
        edition=Edition.CE,
        builder=CommunityBuilder(),
        entertainer=CommunityEntertainer(),
        options=CommunityOptions(),
    )
