"""In-process user registry.

Maps external user ids to ``User`` records (identity + session).  Every
transport owns one registry shared by all of its channels, seeded from the
session storage on startup.
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, Protocol, runtime_checkable

from loguru import logger

from joebot.assistant.models.user import Quota, User

if TYPE_CHECKING:
    from joebot.assistant.config import QuotaConfig
    from joebot.assistant.models.user import UserInfo


@runtime_checkable
class UserInformer(Protocol):
    """Resolves identity details of a chat user."""

    async def get_user_info(self, user_id: str) -> UserInfo: ...


class UserManager:
    """Registry of users known to one transport.

    Lookups are lock-free: they run on the event loop without suspending, so
    they always observe a consistent mapping.  Insertion is serialised by an
    ``asyncio.Lock`` because resolving the identity suspends, and two
    concurrent first messages from one user must still yield one ``User``.
    """

    def __init__(
        self,
        informer: UserInformer,
        quota: QuotaConfig,
        users: dict[str, User] | None = None,
    ) -> None:
        self._informer = informer
        self._quota = quota
        self._users: dict[str, User] = dict(users or {})
        self._lock = asyncio.Lock()

    async def get_or_create(self, user_id: str) -> User:
        if (user := self._users.get(user_id)) is not None:
            return user

        async with self._lock:
            if (user := self._users.get(user_id)) is not None:
                return user

            info = await self._informer.get_user_info(user_id)
            user = User(user_info=info)
            user.session.quota = Quota(limit=self._quota.limit, interval=self._quota.interval)
            self._users[user_id] = user
            logger.debug("UserManager: created user {} ({})", user_id, info.name)
            return user

    def get(self, user_id: str) -> User | None:
        return self._users.get(user_id)

    def users(self) -> dict[str, User]:
        """Point-in-time copy of the mapping, safe to iterate across awaits."""
        return dict(self._users)

    def add_users(self, users: dict[str, User]) -> None:
        """Merge restored users.  Users already present are kept as-is."""
        for user_id, user in users.items():
            self._users.setdefault(user_id, user)

    def __len__(self) -> int:
        return len(self._users)
