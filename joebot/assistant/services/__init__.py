"""Collaborator clients and session services."""

from joebot.assistant.services.clones import CloneManager
from joebot.assistant.services.dblab import DBLabClient, DBLabInstance
from joebot.assistant.services.platform import PlatformClient
from joebot.assistant.services.storage import JSONSessionStorage, MemorySessionStorage, SessionStorage
from joebot.assistant.services.usermanager import UserInformer, UserManager

__all__ = [
    "CloneManager",
    "DBLabClient",
    "DBLabInstance",
    "JSONSessionStorage",
    "MemorySessionStorage",
    "PlatformClient",
    "SessionStorage",
    "UserInformer",
    "UserManager",
]
