"""Conversion of Slack Events API payloads to ``IncomingMessage``."""

from __future__ import annotations

from typing import Any

from joebot.assistant.models import IncomingMessage
from joebot.assistant.msgproc.parser import unfurl_links

EVENT_MESSAGE = "message"
EVENT_APP_MENTION = "app_mention"


def message_event_to_incoming(event: dict[str, Any]) -> IncomingMessage:
    incoming = IncomingMessage(
        subtype=event.get("subtype", ""),
        text=unfurl_links(event.get("text", "")),
        channel_id=event.get("channel", ""),
        channel_type=event.get("channel_type", ""),
        user_id=event.get("user", ""),
        timestamp=event.get("ts", ""),
        thread_id=event.get("thread_ts", ""),
    )

    # Messages posted by bots are dropped by the validator.
    if event.get("bot_id"):
        incoming.user_id = ""

    if files := event.get("files"):
        incoming.snippet_url = files[0].get("url_private", "")
    return incoming


def app_mention_event_to_incoming(event: dict[str, Any]) -> IncomingMessage:
    return IncomingMessage(
        text=event.get("text", ""),
        channel_id=event.get("channel", ""),
        user_id=event.get("user", ""),
        timestamp=event.get("ts", ""),
        thread_id=event.get("thread_ts", ""),
    )
