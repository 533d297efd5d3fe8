"""User, session and quota models.

A ``User`` owns exactly one ``UserSession``; the session owns the clone
handle and the SQL pool.  Only identity and session values are persisted,
the pool is rebuilt on restore.
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, PrivateAttr

from joebot.assistant.errors import QuotaError
from joebot.assistant.models.clone import Clone, ConnectionParams

DEFAULT_QUOTA_LIMIT = 10
DEFAULT_QUOTA_INTERVAL = 60  # seconds


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _plural(count: int, singular: str) -> str:
    return f"{count} {singular}" if count == 1 else f"{count} {singular}s"


class UserInfo(BaseModel):
    """Identity snapshot taken on the first message from a user."""

    model_config = ConfigDict(frozen=True)

    id: str
    name: str = ""
    real_name: str = ""


class Quota(BaseModel):
    """Per-user request window, refilled when the interval expires."""

    window_start: datetime = Field(default_factory=_now)
    count: int = 0
    limit: int = DEFAULT_QUOTA_LIMIT
    interval: int = DEFAULT_QUOTA_INTERVAL

    def request(self, now: datetime | None = None) -> None:
        """Charge one request.  Raises ``QuotaError`` when the window is exhausted."""
        now = now or _now()
        elapsed = (now - self.window_start).total_seconds()

        if elapsed < self.interval:
            if self.count >= self.limit:
                msg = (
                    f"You have reached the limit of requests per {_plural(self.interval, 'second')} "
                    f"({self.limit}). Please wait before trying again"
                )
                raise QuotaError(msg)
            self.count += 1
            return

        self.count = 1
        self.window_start = now


class UserSession(BaseModel):
    model_config = ConfigDict(arbitrary_types_allowed=True)

    platform_session_id: str = ""
    channel_id: str = ""
    direct: bool = False
    quota: Quota = Field(default_factory=Quota)
    last_action_at: datetime = Field(default_factory=_now)
    idle_limit_minutes: int = 0

    clone: Clone | None = None
    connection_params: ConnectionParams = Field(default_factory=ConnectionParams)
    pool: Any = Field(default=None, exclude=True)
    """Owned ``AsyncConnectionPool``; non-null exactly when ``clone`` is set."""

    @property
    def session_id(self) -> str:
        """Platform session id if known, clone id otherwise, empty without a clone."""
        if self.clone is None or not self.clone.id:
            return ""
        return self.platform_session_id or self.clone.id

    def touch(self, now: datetime | None = None) -> None:
        self.last_action_at = now or _now()

    def minutes_idle(self, now: datetime | None = None) -> float:
        return ((now or _now()) - self.last_action_at).total_seconds() / 60


class User(BaseModel):
    user_info: UserInfo
    session: UserSession = Field(default_factory=UserSession)

    _lock: asyncio.Lock = PrivateAttr(default_factory=asyncio.Lock)

    @property
    def id(self) -> str:
        return self.user_info.id

    @property
    def lock(self) -> asyncio.Lock:
        """Serialises command processing and reaping for this user."""
        return self._lock

    def request_quota(self, now: datetime | None = None) -> None:
        self.session.quota.request(now)


class Audit(BaseModel):
    """Structured audit record emitted through the logger."""

    id: str
    name: str
    real_name: str = Field(serialization_alias="realName")
    command: str
    query: str
