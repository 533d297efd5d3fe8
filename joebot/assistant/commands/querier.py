"""SQL helpers shared by the command handlers.

All access to a clone goes through these functions so psycopg and pool
failures reach the pipeline as ``QueryError`` / ``CloneConnectionError``.
"""

from __future__ import annotations

import io
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, Any

import psycopg
from psycopg_pool import PoolClosed, PoolTimeout
from rich import box
from rich.console import Console
from rich.table import Table

from joebot.assistant.errors import CloneConnectionError, QueryError

if TYPE_CHECKING:
    from psycopg import AsyncConnection
    from psycopg_pool import AsyncConnectionPool

logger = logging.getLogger(__name__)

SYNTAX_ERROR_CODE = "42601"
UNDEFINED_FILE_ERROR_CODE = "58P01"

NON_BREAKING_SPACE = "\xa0"
NON_BREAKING_SPACE_HINT = "\n\nHint: the query contains non-breaking spaces. Please replace them with regular spaces."

# SQLSTATE classes that mean the backend or the link to it is gone.
_CONNECTION_SQLSTATE_PREFIXES = ("08", "57P")

Rows = list[list[str]]


def is_connection_error(exc: BaseException) -> bool:
    if isinstance(exc, (PoolTimeout, PoolClosed, OSError, psycopg.InterfaceError)):
        return True
    if isinstance(exc, psycopg.OperationalError):
        sqlstate = exc.sqlstate
        return sqlstate is None or sqlstate.startswith(_CONNECTION_SQLSTATE_PREFIXES)
    return False


def clarify_error(exc: Exception, query: str = "") -> QueryError:
    """Translate a driver or pool failure into the assistant's error kinds."""
    if is_connection_error(exc):
        return CloneConnectionError(str(exc) or type(exc).__name__)

    sqlstate = getattr(exc, "sqlstate", None)
    text = str(exc).strip()
    if sqlstate == SYNTAX_ERROR_CODE and NON_BREAKING_SPACE in query:
        text += NON_BREAKING_SPACE_HINT
    return QueryError(text, sqlstate=sqlstate)


@asynccontextmanager
async def translate_errors(query: str = "") -> AsyncIterator[None]:
    try:
        yield
    except (psycopg.Error, PoolTimeout, PoolClosed, OSError) as e:
        logger.debug("DB query failed: %s", e)
        raise clarify_error(e, query) from e


@asynccontextmanager
async def connection(pool: AsyncConnectionPool) -> AsyncIterator[AsyncConnection]:
    """Borrow a connection from the session pool."""
    async with translate_errors(), pool.connection() as conn:
        yield conn


# -- Queries -----------------------------------------------------------------


async def query_text(conn: AsyncConnection, query: str, params: Any = None) -> str:
    """Run ``query`` and join the first column of every row, one per line."""
    logger.debug("DB query: %s", query)
    async with translate_errors(query):
        cur = await conn.execute(query, params)
        rows = await cur.fetchall()
    return "".join(f"{_text(row[0])}\n" for row in rows)


async def query_table(conn: AsyncConnection, query: str, params: Any = None) -> Rows:
    """Run ``query`` and return a table whose first row is the header.

    An empty result yields an empty table, without a header.
    """
    logger.debug("DB table query: %s", query)
    async with translate_errors(query):
        cur = await conn.execute(query, params)
        rows = await cur.fetchall()
        columns = [col.name for col in cur.description or []]

    if not rows:
        return []
    return [columns, *([_text(value) for value in row] for row in rows)]


async def execute(conn: AsyncConnection, query: str, params: Any = None) -> None:
    logger.debug("DB exec: %s", query)
    async with translate_errors(query):
        await conn.execute(query, params)


async def query_value(conn: AsyncConnection, query: str, params: Any = None) -> Any:
    async with translate_errors(query):
        cur = await conn.execute(query, params)
        row = await cur.fetchone()
    return row[0] if row else None


async def backend_pid(conn: AsyncConnection) -> int:
    return int(await query_value(conn, "select pg_backend_pid()"))


# -- Rendering ---------------------------------------------------------------


def render_table(rows: Rows) -> str:
    """Render a query result as a fenced, borderless, left-aligned text table."""
    if not rows:
        return "```No results.\n```"

    table = Table(*rows[0], box=box.ASCII2, show_edge=False, pad_edge=False, safe_box=True)
    for row in rows[1:]:
        table.add_row(*row)

    buf = io.StringIO()
    Console(file=buf, width=1000, color_system=None, markup=False, highlight=False).print(table)
    lines = [line.rstrip() for line in buf.getvalue().splitlines()]
    return "```" + "\n".join(lines) + "\n```"


def _text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "t" if value else "f"
    return str(value)
