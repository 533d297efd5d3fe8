"""``exec``: run an arbitrary statement and report its duration."""

from __future__ import annotations

import time
from typing import TYPE_CHECKING, Any

from joebot.assistant.commands import querier
from joebot.assistant.commands.base import BaseCommand
from joebot.assistant.commands.profiling import ESTIMATION_DESCRIPTION, Profiling
from joebot.assistant.errors import UserFacingError
from joebot.assistant.util.text import format_elapsed

if TYPE_CHECKING:
    from joebot.assistant.config import EstimatorConfig
    from joebot.assistant.connection.base import Messenger
    from joebot.assistant.models.command import Command
    from joebot.assistant.models.message import Message

MSG_EXEC_OPTION_REQ = "Use `exec` to run query, e.g. `exec drop index some_index_name`"


class ExecCmd(BaseCommand):
    def __init__(
        self,
        command: Command,
        message: Message,
        pool: Any,
        messenger: Messenger,
        estimator_cfg: EstimatorConfig | None = None,
    ) -> None:
        super().__init__(command, message, pool, messenger)
        self.estimator_cfg = estimator_cfg

    async def execute(self) -> None:
        if not self.command.query:
            raise UserFacingError(MSG_EXEC_OPTION_REQ)

        profiling = Profiling(self.estimator_cfg)

        async with querier.connection(self.pool) as conn:
            pid = await querier.backend_pid(conn) if self.estimator_cfg else 0
            async with profiling.watch(self.pool, pid):
                start = time.monotonic()
                await querier.execute(conn, self.command.query)
                elapsed = time.monotonic() - start

        total_time = format_elapsed(elapsed)
        estimation_time = description = ""

        result = profiling.result()
        if result.is_enough_stat:
            self.message.append_text(f"```{result.rendered_stat}```")
            estimation_time = result.est_time
            total_time = f"{result.total_time:.3f} s"
            description = ESTIMATION_DESCRIPTION

        response = f"The query has been executed. Duration: {total_time}{estimation_time}"
        self.command.response = response
        await self.append(response + description)
