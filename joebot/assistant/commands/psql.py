"""psql meta commands (``\\d``, ``\\l`` and friends).

The command is passed to a local ``psql`` binary connected to the clone, so
its output matches what users see in a terminal.  Input is restricted to a
single meta command with at most one argument.
"""

from __future__ import annotations

import asyncio
import logging
import os
from typing import TYPE_CHECKING, Protocol

from joebot.assistant.commands.base import BaseCommand, preview
from joebot.assistant.errors import QueryError, UserFacingError

if TYPE_CHECKING:
    from joebot.assistant.connection.base import Messenger
    from joebot.assistant.models.clone import ConnectionParams
    from joebot.assistant.models.command import Command
    from joebot.assistant.models.message import Message

logger = logging.getLogger(__name__)

RESTRICTED_CHARACTERS = "\n;\\ "
MSG_RESTRICTED = "query should not contain semicolons, new lines, spaces, and excess backslashes"

PSQL_BINARY = "psql"
PSQL_TIMEOUT = 60.0


class PsqlRunner(Protocol):
    async def run(self, params: ConnectionParams, command: str) -> str: ...


class SubprocessPsqlRunner:
    """Runs ``psql -c <command>`` against the clone described by ``params``."""

    def __init__(self, binary: str = PSQL_BINARY, timeout: float = PSQL_TIMEOUT) -> None:
        self.binary = binary
        self.timeout = timeout

    def _env(self, params: ConnectionParams) -> dict[str, str]:
        env = dict(os.environ)
        env.update({
            "PGHOST": params.host,
            "PGPORT": params.port,
            "PGUSER": params.username,
            "PGDATABASE": params.name,
            "PGPASSWORD": params.password,
        })
        if params.ssl_mode:
            env["PGSSLMODE"] = params.ssl_mode
        return env

    async def run(self, params: ConnectionParams, command: str) -> str:
        logger.debug("psql: %s", command)
        try:
            proc = await asyncio.create_subprocess_exec(
                self.binary,
                "-X",
                "-c",
                command,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                env=self._env(params),
            )
        except OSError as e:
            msg = f"Psql error: {e}"
            raise QueryError(msg) from e

        try:
            stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=self.timeout)
        except asyncio.TimeoutError as e:
            proc.kill()
            await proc.wait()
            msg = f"Psql error: timed out after {self.timeout:g} seconds"
            raise QueryError(msg) from e

        if stderr:
            msg = f"Psql error: {stderr.decode(errors='replace').strip()}"
            raise QueryError(msg)
        return stdout.decode(errors="replace")


def prepare_command(command: str, query: str) -> str:
    """Validate a meta command argument and build the psql input."""
    if any(ch in RESTRICTED_CHARACTERS for ch in query):
        raise UserFacingError(MSG_RESTRICTED)
    return f"{command} {query}".strip()


class PsqlCmd(BaseCommand):
    def __init__(
        self,
        command: Command,
        message: Message,
        params: ConnectionParams,
        messenger: Messenger,
        runner: PsqlRunner,
    ) -> None:
        super().__init__(command, message, None, messenger)
        self.params = params
        self.runner = runner

    async def execute(self) -> None:
        psql_command = prepare_command(self.command.command, self.command.query)
        output = await self.runner.run(self.params, psql_command)
        self.command.response = output

        output_preview, details = preview(output)
        await self.append(f"*Command output:*\n```{output_preview}```")

        link = await self.upload("command", output)
        await self.append(f"<{link}|Full command output>{details}\n")
