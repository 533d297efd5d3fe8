from joebot.assistant.connection.slackrtm.assistant import RTMAssistant

__all__ = ["RTMAssistant"]
