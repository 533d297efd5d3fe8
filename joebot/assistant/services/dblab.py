"""Database Lab REST client.

Thin async wrapper over the clone endpoints::

    POST   /clone              create (the clone starts in CREATING)
    GET    /clone/{id}         status and connection info
    POST   /clone/{id}/reset   roll the clone back to its snapshot
    DELETE /clone/{id}         destroy

Creation and reset are asynchronous on the server side, so both poll
``GET /clone/{id}`` until the clone reports ``OK``.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field

import httpx
from loguru import logger

from joebot.assistant.config import DBLabParams, DBLabServer
from joebot.assistant.errors import IntegrationError
from joebot.assistant.models.clone import Clone, CloneRequest
from joebot.assistant.models.enums import CloneStatus

DEFAULT_REQUEST_TIMEOUT = 30.0
CLONE_POLL_INTERVAL = 2.0
CLONE_READY_TIMEOUT = 600.0


class DBLabClient:
    """Async client for one Database Lab server."""

    def __init__(
        self,
        url: str,
        token: str,
        *,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        poll_interval: float = CLONE_POLL_INTERVAL,
        ready_timeout: float = CLONE_READY_TIMEOUT,
    ) -> None:
        self._url = url.rstrip("/")
        self._poll_interval = poll_interval
        self._ready_timeout = ready_timeout
        self._http = httpx.AsyncClient(
            base_url=self._url,
            headers={"Verification-Token": token},
            timeout=timeout or DEFAULT_REQUEST_TIMEOUT,
            transport=transport,
        )

    @classmethod
    def from_config(cls, server: DBLabServer) -> DBLabClient:
        if not server.url or not server.token:
            msg = "invalid DBLab Instance config given"
            raise IntegrationError(msg)
        return cls(server.url, server.token, timeout=server.request_timeout or None)

    @property
    def url(self) -> str:
        return self._url

    async def close(self) -> None:
        await self._http.aclose()

    # -- Clones ----------------------------------------------------------------

    async def create_clone(self, request: CloneRequest) -> Clone:
        """Request a clone and wait until it is ready."""
        body = request.model_dump(mode="json", by_alias=True)
        clone = Clone.model_validate(await self._request("POST", "/clone", json=body))
        logger.info("DBLab: clone {} requested ({})", clone.id, clone.status.code)
        return await self._wait_ready(clone)

    async def get_clone(self, clone_id: str) -> Clone:
        return Clone.model_validate(await self._request("GET", f"/clone/{clone_id}"))

    async def reset_clone(self, clone_id: str) -> Clone:
        """Reset the clone to its snapshot and wait until it is usable again."""
        await self._request("POST", f"/clone/{clone_id}/reset")
        return await self._wait_ready(await self.get_clone(clone_id))

    async def destroy_clone(self, clone_id: str) -> None:
        await self._request("DELETE", f"/clone/{clone_id}")
        logger.info("DBLab: clone {} destroyed", clone_id)

    # -- Internals -------------------------------------------------------------

    async def _wait_ready(self, clone: Clone) -> Clone:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self._ready_timeout

        while not clone.is_ok:
            if clone.status.code == CloneStatus.FATAL:
                msg = f"clone {clone.id} failed: {clone.status.message}"
                raise IntegrationError(msg)
            if loop.time() >= deadline:
                msg = f"clone {clone.id} is not ready after {self._ready_timeout:.0f} seconds"
                raise IntegrationError(msg)

            await asyncio.sleep(self._poll_interval)
            clone = await self.get_clone(clone.id)

        return clone

    async def _request(self, method: str, path: str, **kwargs) -> dict:
        try:
            resp = await self._http.request(method, path, **kwargs)
        except httpx.HTTPError as e:
            msg = f"failed to call Database Lab {method} {path}: {e}"
            raise IntegrationError(msg) from e

        if resp.is_error:
            msg = f"Database Lab {method} {path} failed: {_error_text(resp)}"
            raise IntegrationError(msg)

        if not resp.content:
            return {}
        return resp.json()


def _error_text(resp: httpx.Response) -> str:
    try:
        payload = resp.json()
    except ValueError:
        return f"response code {resp.status_code}"
    if isinstance(payload, dict) and payload.get("message"):
        detail = payload.get("detail")
        return f"{payload['message']} ({detail})" if detail else payload["message"]
    return f"response code {resp.status_code}"


@dataclass
class DBLabInstance:
    """A configured Database Lab server together with its client."""

    name: str
    client: DBLabClient
    params: DBLabParams = field(default_factory=DBLabParams)
