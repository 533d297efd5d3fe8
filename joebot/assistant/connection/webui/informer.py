from __future__ import annotations

from joebot.assistant.models import UserInfo


class WebUIUserInformer:
    """The Platform sends opaque user ids; there is nothing more to resolve."""

    async def get_user_info(self, user_id: str) -> UserInfo:
        return UserInfo(id=user_id, name=user_id, real_name=user_id)
