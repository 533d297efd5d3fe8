"""Minimal async Slack Web API client.

Only the methods the assistant needs.  Every call is a form-encoded POST
with a bearer token; Slack reports failures as ``{"ok": false, "error": ...}``
with HTTP 200, which is raised as ``IntegrationError``.
"""

from __future__ import annotations

import json
import logging
from typing import Any

import httpx

from joebot.assistant.errors import IntegrationError
from joebot.assistant.models.user import UserInfo

logger = logging.getLogger(__name__)

SLACK_API_URL = "https://slack.com/api"
DEFAULT_TIMEOUT = 30.0


class SlackAPI:
    def __init__(
        self,
        token: str,
        *,
        app_level_token: str = "",
        base_url: str = SLACK_API_URL,
        transport: httpx.AsyncBaseTransport | None = None,
        timeout: float = DEFAULT_TIMEOUT,
    ) -> None:
        self.token = token
        self.app_level_token = app_level_token
        self._http = httpx.AsyncClient(base_url=base_url, timeout=timeout, transport=transport)

    async def close(self) -> None:
        await self._http.aclose()

    async def call(self, method: str, params: dict[str, Any] | None = None, *, token: str = "") -> dict[str, Any]:
        data = {k: v for k, v in (params or {}).items() if v not in (None, "")}
        headers = {"Authorization": f"Bearer {token or self.token}"}
        try:
            resp = await self._http.post(f"/{method}", data=data, headers=headers)
            resp.raise_for_status()
        except httpx.HTTPError as e:
            msg = f"slack {method} request failed: {e}"
            raise IntegrationError(msg) from e

        payload = resp.json()
        if not payload.get("ok"):
            msg = f"slack {method} failed: {payload.get('error', 'unknown error')}"
            raise IntegrationError(msg)
        return payload

    # -- Auth & connections ----------------------------------------------------

    async def auth_test(self) -> dict[str, Any]:
        return await self.call("auth.test")

    async def open_socket_connection(self) -> str:
        """``apps.connections.open``: websocket URL for Socket Mode."""
        if not self.app_level_token:
            msg = "app-level token required for Socket Mode"
            raise IntegrationError(msg)
        payload = await self.call("apps.connections.open", token=self.app_level_token)
        return payload["url"]

    async def rtm_connect(self) -> str:
        payload = await self.call("rtm.connect")
        return payload["url"]

    # -- Messages --------------------------------------------------------------

    async def post_message(self, channel: str, text: str, *, thread_ts: str = "") -> str:
        payload = await self.call("chat.postMessage", {"channel": channel, "text": text, "thread_ts": thread_ts})
        return payload.get("ts", "")

    async def post_ephemeral(self, channel: str, user: str, text: str) -> str:
        payload = await self.call("chat.postEphemeral", {"channel": channel, "user": user, "text": text})
        return payload.get("message_ts", "")

    async def update_message(self, channel: str, ts: str, text: str) -> str:
        payload = await self.call("chat.update", {"channel": channel, "ts": ts, "text": text})
        return payload.get("ts", ts)

    async def add_reaction(self, name: str, channel: str, ts: str) -> None:
        await self.call("reactions.add", {"name": name, "channel": channel, "timestamp": ts})

    async def remove_reaction(self, name: str, channel: str, ts: str) -> None:
        await self.call("reactions.remove", {"name": name, "channel": channel, "timestamp": ts})

    # -- Files -----------------------------------------------------------------

    async def upload_file(self, *, title: str, filename: str, content: str, channel: str, thread_ts: str = "") -> str:
        """Upload a text file into a thread and return its permalink."""
        body = content.encode()
        ticket = await self.call("files.getUploadURLExternal", {"filename": filename, "length": len(body)})

        try:
            resp = await self._http.post(ticket["upload_url"], content=body)
            resp.raise_for_status()
        except httpx.HTTPError as e:
            msg = f"failed to upload a file: {e}"
            raise IntegrationError(msg) from e

        payload = await self.call(
            "files.completeUploadExternal",
            {
                "files": json.dumps([{"id": ticket["file_id"], "title": title}]),
                "channel_id": channel,
                "thread_ts": thread_ts,
            },
        )
        files = payload.get("files") or [{}]
        return files[0].get("permalink", "")

    async def download(self, url: str) -> httpx.Response:
        try:
            return await self._http.get(url, headers={"Authorization": f"Bearer {self.token}"})
        except httpx.HTTPError as e:
            msg = f"cannot download snippet: {e}"
            raise IntegrationError(msg) from e

    # -- Users -----------------------------------------------------------------

    async def users_info(self, user_id: str) -> UserInfo:
        payload = await self.call("users.info", {"user": user_id})
        user = payload.get("user", {})
        logger.debug("Slack user %s resolved", user_id)
        return UserInfo(id=user.get("id", user_id), name=user.get("name", ""), real_name=user.get("real_name", ""))
