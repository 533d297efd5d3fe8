from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from joebot.assistant.connection.slack.api import SlackAPI
    from joebot.assistant.models import UserInfo


class SlackUserInformer:
    """Resolves Slack user ids through ``users.info``."""

    def __init__(self, api: SlackAPI) -> None:
        self.api = api

    async def get_user_info(self, user_id: str) -> UserInfo:
        return await self.api.users_info(user_id)
