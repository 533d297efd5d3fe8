"""Session foreword: the summary shown when a session starts or is reset."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING

from loguru import logger

from joebot.assistant.commands import querier
from joebot.assistant.util.text import format_duration

if TYPE_CHECKING:
    from psycopg_pool import AsyncConnectionPool

NA = "N/A"

FOREWORD_TEMPLATE = (
    "Say `help` to see the full list of commands.\n"
    "Made with :hearts: by Postgres.ai. Bug reports, ideas, and merge requests are welcome: "
    "https://gitlab.com/postgres-ai/joe \n"
    "```\n"
    "Session started: {session_id}\n"
    "Idle session timeout: {duration}\n"
    "Postgres version: {db_version}\n"
    "Joe version: {app_version} ({edition})\n"
    "Database: {db_name}\n"
    "Database size: {db_size}\n"
    "Database state at: {dsa} ({dsa_diff} ago)\n"
    "```"
)

DSA_FORMAT = "%Y-%m-%d %H:%M:%S UTC"


def parse_data_state_at(value: str) -> datetime | None:
    """Parse a snapshot timestamp in either the legacy or the ISO 8601 form."""
    try:
        return datetime.strptime(value, DSA_FORMAT).replace(tzinfo=timezone.utc)
    except ValueError:
        pass
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


@dataclass
class Foreword:
    session_id: str
    duration: timedelta
    app_version: str
    edition: str
    db_name: str
    dsa: str = ""
    dsa_diff: str = "-"
    db_size: str = NA
    db_version: str = NA

    async def enrich(self, pool: AsyncConnectionPool, now: datetime | None = None) -> None:
        """Fill the Postgres version, database size and snapshot age."""
        async with querier.connection(pool) as conn:
            rows = await querier.query_table(
                conn,
                "select current_setting('server_version'), pg_size_pretty(pg_database_size(%s))",
                (self.db_name,),
            )
        if len(rows) > 1:
            self.db_version, self.db_size = rows[1][0], rows[1][1]

        dsa_time = parse_data_state_at(self.dsa)
        if dsa_time is None:
            logger.warning("Failed to parse the 'data state at' timestamp of the snapshot: {!r}", self.dsa)
            return

        age = (now or datetime.now(timezone.utc)) - dsa_time
        self.dsa_diff = format_duration(timedelta(minutes=round(age.total_seconds() / 60)))

    def render(self) -> str:
        return FOREWORD_TEMPLATE.format(
            session_id=self.session_id,
            duration=format_duration(self.duration),
            db_version=self.db_version,
            app_version=self.app_version,
            edition=self.edition,
            db_name=self.db_name,
            db_size=self.db_size,
            dsa=self.dsa,
            dsa_diff=self.dsa_diff,
        )
