"""FastAPI dependency injection for the running ``App`` and its transports.

Usage in route handlers::

    @router.get("/channels")
    async def channels(assistant: VerifiedWebUI) -> list[dict]:
        ...

Transport dependencies check the request signature against every configured
workspace of that transport and hand the matching assistant to the route.
"""

from __future__ import annotations

from typing import Annotated

from fastapi import Depends, HTTPException, Request, status
from loguru import logger

from joebot.assistant.bot import App
from joebot.assistant.connection.slack import SlackAssistant
from joebot.assistant.connection.webui import WebUIAssistant
from joebot.assistant.errors import ValidationError
from joebot.assistant.models.enums import CommunicationType


def get_app(request: Request) -> App:
    bot: App | None = getattr(request.app.state, "bot", None)
    if bot is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Assistant is not running.",
        )
    return bot


BotApp = Annotated[App, Depends(get_app)]
"""Annotated dependency: the running application core."""


async def verified_slack(request: Request, bot: BotApp) -> SlackAssistant:
    """Return the Slack workspace whose signing secret signed this request."""
    body = await request.body()
    for assistant in bot.assistants_of(CommunicationType.SLACK):
        try:
            assistant.verify(request.headers, body)
        except ValidationError as e:
            logger.debug("Slack signature mismatch for workspace {}: {}", assistant.workspace.name, e)
            continue
        return assistant

    raise HTTPException(status.HTTP_403_FORBIDDEN, detail="Signature verification failed.")


async def verified_webui(request: Request, bot: BotApp) -> WebUIAssistant:
    assistants = bot.assistants_of(CommunicationType.WEBUI)
    if not assistants:
        raise HTTPException(status.HTTP_404_NOT_FOUND, detail="Web UI is not configured.")

    body = await request.body()
    for assistant in assistants:
        try:
            assistant.verify(request.headers, body)
        except ValidationError as e:
            logger.debug("Message filtered due to the signature verification failed: {}", e)
            continue
        return assistant

    raise HTTPException(status.HTTP_403_FORBIDDEN, detail="Signature verification failed.")


VerifiedSlack = Annotated[SlackAssistant, Depends(verified_slack)]
VerifiedWebUI = Annotated[WebUIAssistant, Depends(verified_webui)]
