"""Web UI transport: commands arrive from the Platform, replies go back to it."""

from joebot.assistant.connection.webui.assistant import WebCommand, WebUIAssistant
from joebot.assistant.connection.webui.messenger import PlatformMessenger
from joebot.assistant.connection.webui.verifier import VERIFICATION_HEADER, compute_signature, verify_signature

__all__ = [
    "VERIFICATION_HEADER",
    "PlatformMessenger",
    "WebCommand",
    "WebUIAssistant",
    "compute_signature",
    "verify_signature",
]
