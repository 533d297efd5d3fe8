"""Hooks an edition plugs into the core."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

if TYPE_CHECKING:
    from joebot.assistant.commands.base import Executor
    from joebot.assistant.config import Config
    from joebot.assistant.connection.base import Messenger
    from joebot.assistant.models.command import Command
    from joebot.assistant.models.enums import Edition
    from joebot.assistant.models.message import Message


@runtime_checkable
class CommandBuilder(Protocol):
    """Builds the commands whose implementation depends on the edition."""

    def build_activity_cmd(self, command: Command, message: Message, pool: Any, messenger: Messenger) -> Executor: ...

    def build_terminate_cmd(self, command: Command, message: Message, pool: Any, messenger: Messenger) -> Executor: ...


@runtime_checkable
class Entertainer(Protocol):
    def get_edition(self) -> str:
        """Human-readable edition name shown in ``help``."""
        ...

    def get_enterprise_help_message(self) -> str: ...


@runtime_checkable
class OptionProvider(Protocol):
    def apply(self, config: Config) -> Config:
        """Return ``config`` with the edition's enterprise options enforced."""
        ...


@dataclass(frozen=True)
class Pack:
    edition: Edition
    builder: CommandBuilder
    entertainer: Entertainer
    options: OptionProvider
    estimator_enabled: bool = False
