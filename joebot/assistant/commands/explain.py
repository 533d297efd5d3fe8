"""``explain``: plan, execute with ``EXPLAIN ANALYZE`` and analyse the result."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from joebot.assistant.commands import querier
from joebot.assistant.commands.base import (
    QUERY_EXPLAIN_ANALYZE,
    QUERY_EXPLAIN_ANALYZE_SETTINGS,
    BaseCommand,
    preview,
)
from joebot.assistant.commands.plan import PlanCmd
from joebot.assistant.commands.profiling import ESTIMATION_DESCRIPTION, Profiling
from joebot.assistant.errors import UserFacingError
from joebot.assistant.pgexplain import get_tips, parse_explain, render_recommendations

if TYPE_CHECKING:
    from psycopg import AsyncConnection

    from joebot.assistant.config import EstimatorConfig, ExplainConfig
    from joebot.assistant.connection.base import Messenger
    from joebot.assistant.models.command import Command
    from joebot.assistant.models.message import Message

logger = logging.getLogger(__name__)

MSG_EXPLAIN_OPTION_REQ = "Use `explain` to see the query's plan, e.g. `explain select 1`"

# EXPLAIN (SETTINGS) appeared in PostgreSQL 12.
SETTINGS_MIN_VERSION = 120000


async def analyze_query(conn: AsyncConnection, query: str) -> str:
    version = await querier.query_value(conn, "select current_setting('server_version_num')::int")
    prefix = QUERY_EXPLAIN_ANALYZE_SETTINGS if (version or 0) >= SETTINGS_MIN_VERSION else QUERY_EXPLAIN_ANALYZE
    return await querier.query_text(conn, prefix + query)


class ExplainCmd(BaseCommand):
    def __init__(
        self,
        command: Command,
        message: Message,
        pool: Any,
        messenger: Messenger,
        explain_cfg: ExplainConfig,
        estimator_cfg: EstimatorConfig | None = None,
    ) -> None:
        super().__init__(command, message, pool, messenger)
        self.explain_cfg = explain_cfg
        self.estimator_cfg = estimator_cfg

    async def execute(self) -> None:
        if not self.command.query:
            raise UserFacingError(MSG_EXPLAIN_OPTION_REQ)

        profiling = Profiling(self.estimator_cfg)

        async with querier.connection(self.pool) as conn:
            pid = await querier.backend_pid(conn)
            plan = PlanCmd(self.command, self.message, self.pool, self.messenger)
            msg_init_text = await plan.explain_without_execution(conn)

            async with profiling.watch(self.pool, pid):
                explain_analyze = await analyze_query(conn, self.command.query)

        self.command.plan_exec_json = explain_analyze
        explain = parse_explain(explain_analyze)

        plan_text = explain.render_plan_text()
        self.command.plan_exec_text = plan_text
        plan_preview, details = preview(plan_text)

        self.message.set_text(msg_init_text)
        await self.append(f"*Plan with execution:*\n```{plan_preview}```")

        await self.upload("plan-json", explain_analyze)
        plan_permalink = await self.upload("plan-text", plan_text)
        await self.append(
            f"<{plan_permalink}|Full execution plan>{details} \n_Other artifacts are provided in the thread_"
        )

        recommendations = render_recommendations(get_tips(explain, self.explain_cfg))
        self.command.recommendations = recommendations
        await self.append("*Recommendations:*\n" + recommendations)

        description = ""
        result = profiling.result()
        if result.is_enough_stat:
            self.message.append_text(f"*Profiling of wait events:*\n```{result.rendered_stat}```\n")
            explain.estimation_time = result.est_time
            description = ESTIMATION_DESCRIPTION

        stats = explain.render_stats()
        self.command.stats = stats
        await self.append(f"*Summary:*\n```{stats}```{description}")
