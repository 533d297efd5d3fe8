"""Postgres.ai Platform client.

The Platform keeps the history of sessions, commands, messages and
artifacts.  Every call is a JSON ``POST /rpc/<function>`` authenticated with
the ``Access-Token`` header.  A response carrying a non-empty ``code`` or
``message`` is an error even with HTTP 200.
"""

from __future__ import annotations

from typing import TypeVar

import httpx
from loguru import logger
from pydantic import BaseModel, ConfigDict, field_validator

from joebot.assistant.config import PlatformConfig
from joebot.assistant.errors import IntegrationError
from joebot.assistant.models.command import Command

DEFAULT_TIMEOUT = 30.0

ACCESS_TOKEN_HEADER = "Access-Token"


# -- Requests ----------------------------------------------------------------


class PlatformSession(BaseModel):
    project_name: str = ""
    access_token: str = ""
    user_id: str = ""
    user_name: str = ""
    channel_id: str = ""


class PostMessage(BaseModel):
    command_id: str = ""
    message_id: str = ""
    text: str = ""
    status: str = ""
    session_id: str = ""


class ArtifactUpload(BaseModel):
    message_id: str = ""
    title: str = ""
    content: str = ""


class RegisterApplicationRequest(BaseModel):
    org_id: int = 0
    url: str = ""
    token: str = ""
    project: str = ""
    ssh_server_url: str = ""
    use_tunnel: bool = False
    dry_run: bool = False


# -- Responses ---------------------------------------------------------------


class APIResponse(BaseModel):
    model_config = ConfigDict(extra="ignore")

    hint: str | None = None
    details: str | None = None
    code: str | None = None
    message: str | None = None

    @property
    def is_error(self) -> bool:
        return bool(self.code or self.message)


class CreateSessionResponse(APIResponse):
    session_id: int = 0


class PostCommandResponse(APIResponse):
    command_id: int = 0
    permalink: str = ""


class PostMessageResponse(APIResponse):
    message_id: str = ""

    @field_validator("message_id", mode="before")
    @classmethod
    def _stringify(cls, v: object) -> str:
        return "" if v is None else str(v)


class AddArtifactResponse(APIResponse):
    artifact_id: int = 0
    artifact_link: str = ""


class RegisterApplicationResponse(APIResponse):
    id: int = 0


class DeregisterApplicationResponse(APIResponse):
    result: int = 0


ResponseT = TypeVar("ResponseT", bound=APIResponse)


class CommandPostResult(BaseModel):
    command_id: str
    permalink: str = ""


# -- Client ------------------------------------------------------------------


class PlatformClient:
    """Async client for the Platform RPC API."""

    def __init__(
        self,
        cfg: PlatformConfig,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
        timeout: float = DEFAULT_TIMEOUT,
    ) -> None:
        self._cfg = cfg
        self._http = httpx.AsyncClient(
            base_url=cfg.url.rstrip("/"),
            headers={ACCESS_TOKEN_HEADER: cfg.token},
            timeout=timeout,
            transport=transport,
        )

    @property
    def history_enabled(self) -> bool:
        return self._cfg.history_enabled

    @property
    def project(self) -> str:
        return self._cfg.project

    async def close(self) -> None:
        await self._http.aclose()

    # -- History ---------------------------------------------------------------

    async def create_platform_session(self, session: PlatformSession) -> str:
        session = session.model_copy(update={"project_name": self._cfg.project})
        resp = await self._post("/rpc/joe_session_create", session.model_dump(), CreateSessionResponse)
        logger.debug("Platform: session {} created", resp.session_id)
        return str(resp.session_id)

    async def post_command(self, command: Command) -> CommandPostResult:
        payload = command.model_dump(by_alias=True)
        resp = await self._post("/rpc/joe_session_command_post", payload, PostCommandResponse)
        logger.debug("Platform: command {} posted", resp.command_id)
        return CommandPostResult(command_id=str(resp.command_id), permalink=resp.permalink)

    async def post_message(self, message: PostMessage) -> str:
        resp = await self._post("/rpc/joe_message_post", message.model_dump(), PostMessageResponse)
        return resp.message_id

    async def add_artifact(self, upload: ArtifactUpload) -> str:
        resp = await self._post("/rpc/joe_message_artifact_post", upload.model_dump(), AddArtifactResponse)
        logger.debug("Platform: artifact uploaded: {}", resp.artifact_link)
        return resp.artifact_link

    # -- Registration ----------------------------------------------------------

    async def register_application(self, request: RegisterApplicationRequest) -> int:
        resp = await self._post("/rpc/joe_instance_create", request.model_dump(), RegisterApplicationResponse)
        logger.info("Platform: application registered as instance {}", resp.id)
        return resp.id

    async def deregister_application(self, instance_id: int) -> None:
        await self._post("/rpc/joe_instance_destroy", {"instance_id": instance_id}, DeregisterApplicationResponse)
        logger.info("Platform: instance {} deregistered", instance_id)

    # -- Internals -------------------------------------------------------------

    async def _post(self, path: str, payload: dict, response_type: type[ResponseT]) -> ResponseT:
        try:
            resp = await self._http.post(path, json=payload)
        except httpx.HTTPError as e:
            msg = f"failed to make a request to {path}: {e}"
            raise IntegrationError(msg) from e

        if resp.status_code != httpx.codes.OK:
            logger.debug("Platform: {} response: {}", path, resp.text)
            msg = f"unsuccessful status given: {resp.status_code}"
            raise IntegrationError(msg)

        data = resp.json()
        if isinstance(data, list):
            data = data[0] if data else {}
        result = response_type.model_validate(data)
        if result.is_error:
            msg = f"error: {result.message or result.code} {result.details or ''}".rstrip()
            raise IntegrationError(msg)
        return result
