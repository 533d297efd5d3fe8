"""Clone lifecycle for user sessions.

``CloneManager`` acquires a clone from Database Lab when a session needs
one, opens the session's connection pool against it, verifies it and
releases it.  It keeps ``session.pool`` and ``session.clone`` in lockstep:
both are set or both are ``None``.
"""

from __future__ import annotations

import re
import secrets
import uuid
from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING, Any
from urllib.parse import urlsplit

from loguru import logger
from psycopg.conninfo import make_conninfo
from psycopg.types.string import TextLoader
from psycopg_pool import AsyncConnectionPool

from joebot.assistant.errors import IntegrationError, SessionError
from joebot.assistant.models.clone import Clone, CloneRequest, ConnectionParams, DatabaseRequest

if TYPE_CHECKING:
    from psycopg import AsyncConnection

    from joebot.assistant.config import DBLabParams
    from joebot.assistant.models.user import UserSession
    from joebot.assistant.services.dblab import DBLabClient

PoolFactory = Callable[[ConnectionParams], Awaitable[Any]]

USERNAME_PREFIX = "joe_"
POOL_MIN_SIZE = 1
POOL_MAX_SIZE = 4
POOL_OPEN_TIMEOUT = 30.0


async def _configure_connection(conn: AsyncConnection) -> None:
    # EXPLAIN (FORMAT JSON) must reach the renderer as the server's text.
    conn.adapters.register_loader("json", TextLoader)
    conn.adapters.register_loader("jsonb", TextLoader)


async def open_pool(params: ConnectionParams) -> AsyncConnectionPool:
    """Open an autocommit pool against a clone, waiting for the first connection."""
    pool = AsyncConnectionPool(
        make_conninfo(**params.as_conninfo_kwargs()),
        min_size=POOL_MIN_SIZE,
        max_size=POOL_MAX_SIZE,
        kwargs={"autocommit": True},
        configure=_configure_connection,
        open=False,
    )
    try:
        await pool.open(wait=True, timeout=POOL_OPEN_TIMEOUT)
    except BaseException:
        await pool.close()
        raise
    return pool


def _username(user_name: str) -> str:
    cleaned = re.sub(r"[^a-z0-9_]", "_", user_name.lower())
    return USERNAME_PREFIX + (cleaned or secrets.token_hex(4))


class CloneManager:
    """Acquires, verifies and releases clones of one Database Lab server."""

    def __init__(self, dblab: DBLabClient, *, pool_factory: PoolFactory = open_pool) -> None:
        self._dblab = dblab
        self._pool_factory = pool_factory

    @property
    def dblab(self) -> DBLabClient:
        return self._dblab

    async def ensure_clone(self, session: UserSession, params: DBLabParams, *, user_name: str = "") -> bool:
        """Make sure ``session`` holds a usable clone with an open pool.

        Returns ``True`` when a new clone was created, ``False`` when the
        existing one was kept.  A clone that fails the health check is
        released first and replaced.
        """
        if session.clone is not None:
            if await self.is_active(session.clone.id):
                if session.pool is None:
                    session.pool = await self._open(session.connection_params)
                return False

            logger.info("Clone {} is gone, acquiring a new one", session.clone.id)
            await self.stop_session(session)

        username = _username(user_name)
        password = secrets.token_urlsafe(18)
        request = CloneRequest(
            id=uuid.uuid4().hex[:20],
            db=DatabaseRequest(username=username, password=password, restricted=True),
        )

        try:
            clone = await self._dblab.create_clone(request)
        except IntegrationError as e:
            msg = f"failed to create a new clone: {e}"
            raise SessionError(msg) from e

        conn_params = ConnectionParams(
            name=params.dbname,
            host=clone.db.host or urlsplit(self._dblab.url).hostname or "",
            port=clone.db.port,
            username=username,
            password=password,
            ssl_mode=params.sslmode,
        )

        try:
            pool = await self._open(conn_params)
        except SessionError:
            await self._destroy_quietly(clone)
            raise

        session.clone = clone
        session.connection_params = conn_params
        session.pool = pool
        session.idle_limit_minutes = clone.metadata.max_idle_minutes
        logger.info("Clone {} acquired (idle limit {} min)", clone.id, clone.metadata.max_idle_minutes)
        return True

    async def is_active(self, clone_id: str) -> bool:
        """True only when Database Lab reports the clone as ``OK``."""
        try:
            clone = await self._dblab.get_clone(clone_id)
        except IntegrationError as e:
            logger.debug("Clone {} status check failed: {}", clone_id, e)
            return False
        return clone.is_ok

    async def stop_session(self, session: UserSession) -> None:
        """Release local resources: close the pool, forget the clone and platform session."""
        pool, session.pool = session.pool, None
        session.clone = None
        session.connection_params = ConnectionParams()
        session.platform_session_id = ""

        if pool is not None:
            await pool.close()

    async def destroy_session(self, session: UserSession) -> None:
        """Destroy the clone on Database Lab and release the session."""
        if session.clone is None:
            return

        logger.debug("Destroying session of clone {}", session.clone.id)
        try:
            await self._dblab.destroy_clone(session.clone.id)
        except IntegrationError as e:
            msg = f"failed to destroy clone: {e}"
            raise SessionError(msg) from e
        await self.stop_session(session)

    async def reset_clone(self, session: UserSession) -> Clone:
        """Reset the clone to its snapshot and reopen the pool."""
        if session.clone is None:
            msg = "no active session to reset"
            raise SessionError(msg)

        try:
            clone = await self._dblab.reset_clone(session.clone.id)
        except IntegrationError as e:
            msg = f"failed to reset session: {e}"
            raise SessionError(msg) from e

        session.clone = clone
        await self.reopen_pool(session)
        return clone

    async def reopen_pool(self, session: UserSession) -> None:
        pool, session.pool = session.pool, None
        if pool is not None:
            await pool.close()
        session.pool = await self._open(session.connection_params)

    async def restore(self, session: UserSession) -> bool:
        """Revalidate a persisted session after a restart.

        Returns ``False`` (and clears the session) when the clone is gone or
        its connection parameters no longer match what Database Lab reports.
        """
        if session.clone is None:
            return False

        try:
            clone = await self._dblab.get_clone(session.clone.id)
        except IntegrationError as e:
            logger.info("Dropping restored session of clone {}: {}", session.clone.id, e)
            await self.stop_session(session)
            return False

        stored = session.connection_params
        if not clone.is_ok or (clone.db.port and clone.db.port != stored.port):
            logger.info("Dropping restored session of clone {}: clone changed", clone.id)
            await self.stop_session(session)
            return False

        try:
            session.pool = await self._open(stored)
        except SessionError as e:
            logger.warning("Dropping restored session of clone {}: {}", clone.id, e)
            await self.stop_session(session)
            return False

        session.clone = clone
        return True

    # -- Internals -------------------------------------------------------------

    async def _open(self, params: ConnectionParams) -> Any:
        try:
            return await self._pool_factory(params)
        except Exception as e:
            msg = f"failed to connect to the clone: {e}"
            raise SessionError(msg) from e

    async def _destroy_quietly(self, clone: Clone) -> None:
        try:
            await self._dblab.destroy_clone(clone.id)
        except IntegrationError as e:
            logger.warning("Failed to destroy unusable clone {}: {}", clone.id, e)
