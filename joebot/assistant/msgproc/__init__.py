"""Message processing: parsing, the per-channel pipeline and the idle reaper."""

from joebot.assistant.msgproc.service import ProcessingConfig, ProcessingService

__all__ = ["ProcessingConfig", "ProcessingService"]
