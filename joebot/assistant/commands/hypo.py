"""``hypo``: manage hypothetical indexes through the HypoPG extension.

Sub-commands::

    hypo create index on t (col)   create a hypothetical index
    hypo desc [indexrelid]         list hypothetical indexes, or describe one
    hypo drop <indexrelid>         drop one hypothetical index
    hypo reset                     drop all hypothetical indexes
"""

from __future__ import annotations

from joebot.assistant.commands import querier
from joebot.assistant.commands.base import BaseCommand
from joebot.assistant.errors import QueryError, UserFacingError

HYPO_CREATE = "create"
HYPO_DESC = "desc"
HYPO_DROP = "drop"
HYPO_RESET = "reset"

HYPOPG_CAPTION = "*HypoPG response:*\n"

HYPOPG_EXCEPTION_MESSAGE = (
    ":warning: Cannot init the HypoPG extension.\n"
    "Make sure that the extension has been installed in your Postgres image for Database Lab: "
    "https://postgres.ai/docs/database-lab/supported_databases.\n"
    "For a quick start, you can use prepared images: "
    "https://hub.docker.com/repository/docker/postgresai/extended-postgres created by *Postgres.ai*, "
    "or prepare your own."
)


class HypoCmd(BaseCommand):
    def parse_query(self) -> tuple[str, str]:
        sub, _, tail = self.command.query.partition(" ")
        return sub.lower(), tail

    async def execute(self) -> None:
        sub, tail = self.parse_query()

        async with querier.connection(self.pool) as conn:
            try:
                await querier.execute(conn, "create extension if not exists hypopg")
            except QueryError as e:
                if e.sqlstate == querier.UNDEFINED_FILE_ERROR_CODE:
                    await self.append(HYPOPG_EXCEPTION_MESSAGE)
                    return
                msg = f"failed to init extension: {e}"
                raise QueryError(msg, sqlstate=e.sqlstate) from e

            if sub == HYPO_CREATE:
                rows = await querier.query_table(
                    conn, "select indexrelid::text, indexname from hypopg_create_index(%s)", (self.command.query,)
                )
                await self.append(HYPOPG_CAPTION + querier.render_table(rows))
            elif sub == HYPO_DESC:
                await self._describe(conn, tail.strip())
            elif sub == HYPO_DROP:
                await self._drop(conn, tail.strip())
            elif sub == HYPO_RESET:
                await querier.execute(conn, "select * from hypopg_reset()")
            else:
                msg = "invalid args given for the `hypo` command"
                raise UserFacingError(msg)

    async def _describe(self, conn, index_id: str) -> None:
        if index_id:
            rows = await querier.query_table(
                conn,
                "select indexrelid::text, indexname, hypopg_get_indexdef(indexrelid), "
                "pg_size_pretty(hypopg_relation_size(indexrelid)) "
                "from hypopg_list_indexes() where indexrelid = %s",
                (index_id,),
            )
        else:
            rows = await querier.query_table(
                conn, "select indexrelid::text, indexname, nspname, relname, amname from hypopg_list_indexes()"
            )
        await self.append(HYPOPG_CAPTION + querier.render_table(rows))

    async def _drop(self, conn, index_id: str) -> None:
        if not index_id:
            msg = "failed to drop a hypothetical index: indexrelid required"
            raise UserFacingError(msg)
        await querier.query_table(conn, "select * from hypopg_drop_index(%s)", (index_id,))
