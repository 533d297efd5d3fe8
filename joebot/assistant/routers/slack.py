"""Slack Events API endpoint."""

from __future__ import annotations

from fastapi import APIRouter, HTTPException, Request, Response, status
from fastapi.responses import PlainTextResponse
from loguru import logger

from joebot.assistant.deps import BotApp, verified_slack
from joebot.assistant.errors import ValidationError

RETRY_HEADER = "X-Slack-Retry-Num"

router = APIRouter(tags=["slack"])


@router.post("/slack")
async def slack_events(request: Request, bot: BotApp) -> Response:
    """Receive an Events API callback.

    Retries are acknowledged and dropped: the first delivery is already being
    processed on its own task.
    """
    if request.headers.get(RETRY_HEADER):
        logger.debug("Message filtered: Slack Retry")
        return Response(status_code=status.HTTP_200_OK)

    assistant = await verified_slack(request, bot)

    try:
        challenge = assistant.handle_request(await request.body())
    except ValidationError as e:
        raise HTTPException(status.HTTP_400_BAD_REQUEST, detail=str(e)) from None

    if challenge is not None:
        return PlainTextResponse(challenge)
    return Response(status_code=status.HTTP_200_OK)
