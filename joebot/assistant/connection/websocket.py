"""Plumbing shared by the websocket transports.

A reader task decodes frames into a bounded queue; a consumer drains the
queue and hands each event to the transport, which processes it on its own
task.  A slow pipeline therefore backs up the reader rather than memory.
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Awaitable, Callable
from typing import Any

logger = logging.getLogger(__name__)

EVENT_BUFFER_SIZE = 20

EventHandler = Callable[[dict[str, Any]], Awaitable[None]]


def decode_frame(raw: str | bytes) -> dict[str, Any] | None:
    try:
        frame = json.loads(raw)
    except ValueError:
        logger.warning("Skipping a malformed websocket frame")
        return None
    return frame if isinstance(frame, dict) else None


async def consume_events(queue: asyncio.Queue[dict[str, Any]], handle: EventHandler) -> None:
    while True:
        event = await queue.get()
        try:
            await handle(event)
        except Exception:
            logger.exception("Failed to handle a websocket event")
        finally:
            queue.task_done()
