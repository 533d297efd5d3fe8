"""Slack Events API transport, plus the pieces the other Slack transports reuse."""

from joebot.assistant.connection.slack.api import SlackAPI
from joebot.assistant.connection.slack.assistant import SlackAssistant
from joebot.assistant.connection.slack.messenger import SlackMessenger
from joebot.assistant.connection.slack.validator import SlackMessageValidator

__all__ = ["SlackAPI", "SlackAssistant", "SlackMessageValidator", "SlackMessenger"]
