"""``activity`` and ``terminate``: inspect and stop backends of the clone."""

from __future__ import annotations

from joebot.assistant.commands import querier
from joebot.assistant.commands.base import BaseCommand
from joebot.assistant.errors import UserFacingError

ACTIVITY_CAPTION = "*Activity response:*\n"
TERMINATE_CAPTION = "*Terminate response:*\n"

MSG_FEATURE_LOCKED = "feature is locked. Not supported in CE version. Upgrade plan"

ACTIVITY_QUERY = """select
  pid::text,
  (case when (query <> '' and length(query) > 100) then left(query, 100) || '...' else query end) as query,
  coalesce(state, '') as state,
  coalesce(wait_event, '') as wait_event,
  coalesce(wait_event_type, '') as wait_event_type,
  coalesce((clock_timestamp() - query_start)::text, '') as query_duration,
  coalesce((clock_timestamp() - state_change)::text, '') as state_changed_ago
from pg_stat_activity
where state in ('active', 'idle in transaction', 'disabled') and pid <> pg_backend_pid()"""


class ActivityCmd(BaseCommand):
    async def execute(self) -> None:
        async with querier.connection(self.pool) as conn:
            rows = await querier.query_table(conn, ACTIVITY_QUERY)
        await self.append(ACTIVITY_CAPTION + querier.render_table(rows))


class TerminateCmd(BaseCommand):
    async def execute(self) -> None:
        try:
            pid = int(self.command.query.strip())
        except ValueError as e:
            msg = f"invalid pid given: {self.command.query.strip()!r}"
            raise UserFacingError(msg) from e

        async with querier.connection(self.pool) as conn:
            rows = await querier.query_table(conn, "select pg_terminate_backend(%s)::text", (pid,))
        await self.append(TERMINATE_CAPTION + querier.render_table(rows))


class LockedCmd:
    """Stand-in for commands the linked edition does not provide."""

    async def execute(self) -> None:
        raise UserFacingError(MSG_FEATURE_LOCKED)
