"""Endpoints the Platform calls on behalf of the web console.

Every route requires a valid ``Verification-Signature``.
"""

from __future__ import annotations

import json
from typing import Any

from fastapi import APIRouter, HTTPException, Request, status
from loguru import logger

from joebot.assistant.deps import VerifiedWebUI
from joebot.assistant.errors import ValidationError

router = APIRouter(prefix="/webui", tags=["webui"])


@router.post("/verify")
async def verify(request: Request, _assistant: VerifiedWebUI) -> dict[str, str]:
    """Echo the Platform's challenge to prove we hold the shared secret."""
    try:
        payload = json.loads(await request.body())
    except ValueError as e:
        logger.error("Challenge parse error: {}", e)
        raise HTTPException(status.HTTP_400_BAD_REQUEST, detail="Invalid challenge payload.") from None

    challenge = payload.get("challenge", "") if isinstance(payload, dict) else ""
    return {"challenge": challenge}


@router.get("/channels")
async def list_channels(assistant: VerifiedWebUI) -> list[dict[str, Any]]:
    return [channel.model_dump(by_alias=True) for channel in assistant.list_channels()]


@router.post("/command")
async def post_command(request: Request, assistant: VerifiedWebUI) -> dict[str, str]:
    """Accept a console command; processing continues in the background."""
    try:
        assistant.handle_command(await request.body())
    except ValidationError as e:
        logger.error("Failed to accept a web UI command: {}", e)
        raise HTTPException(status.HTTP_400_BAD_REQUEST, detail=str(e)) from None
    return {"status": "accepted"}
