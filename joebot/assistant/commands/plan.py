"""``plan``: show the query plan without executing the query."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from joebot.assistant.commands import querier
from joebot.assistant.commands.base import QUERY_EXPLAIN, BaseCommand, preview
from joebot.assistant.errors import QueryError, UserFacingError

if TYPE_CHECKING:
    from psycopg import AsyncConnection

logger = logging.getLogger(__name__)

MSG_PLAN_OPTION_REQ = "Use `plan` to see the query's plan without execution, e.g. `plan select 1`"


async def list_hypo_indexes(conn: AsyncConnection) -> list[str]:
    rows = await querier.query_table(conn, "SELECT indexname FROM hypopg_list_indexes()")
    return [row[0] for row in rows[1:]]


def is_hypo_index_involved(explain_result: str, hypo_indexes: list[str]) -> bool:
    return any(index in explain_result for index in hypo_indexes)


class PlanCmd(BaseCommand):
    async def execute(self) -> None:
        if not self.command.query:
            raise UserFacingError(MSG_PLAN_OPTION_REQ)

        async with querier.connection(self.pool) as conn:
            await self.explain_without_execution(conn)

    async def explain_without_execution(self, conn: AsyncConnection) -> str:
        """Publish the plan and return the message text to build the next section on.

        When hypothetical indexes take part in the plan, the plan without them
        is published as well.
        """
        explain_result = await querier.query_text(conn, QUERY_EXPLAIN + self.command.query)
        self.command.plan_text = explain_result
        plan_preview, details = preview(explain_result)

        include_hypo = False
        title = ""
        try:
            hypo_indexes = await list_hypo_indexes(conn)
        except QueryError as e:
            logger.debug("HypoPG indexes are not available: %s", e)
            hypo_indexes = []
        if hypo_indexes and is_hypo_index_involved(explain_result, hypo_indexes):
            title = " (HypoPG involved :ghost:)"
            include_hypo = True

        msg_init_text = self.message.text
        await self.append(f"*Plan{title}:*\n```{plan_preview}```")
        permalink = await self.upload("plan-wo-execution-text", explain_result)

        if include_hypo:
            try:
                without_hypo = await self._explain_without_hypo(conn)
            except QueryError as e:
                logger.error("Failed to get a plan without hypothetical indexes: %s", e)
            else:
                plan_preview, details = preview(without_hypo)
                await self.append(f"*Plan without HypoPG indexes:*\n```{plan_preview}```")
                msg_init_text = self.message.text
                await self.upload("plan-wo-execution-wo-hypo-text", without_hypo)

        await self.append(f"<{permalink}|Full plan (w/o execution)>{details}")
        return msg_init_text

    async def _explain_without_hypo(self, conn: AsyncConnection) -> str:
        async with querier.translate_errors(), conn.transaction():
            await querier.execute(conn, "set local hypopg.enabled to false")
            return await querier.query_text(conn, QUERY_EXPLAIN + self.command.query.strip(";"))
