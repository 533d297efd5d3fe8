from joebot.assistant.connection.slacksm.assistant import SocketModeAssistant

__all__ = ["SocketModeAssistant"]
