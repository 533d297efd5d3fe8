"""Edition capability packs.

Exactly one pack is linked at startup, chosen by ``JOE_EDITION``.  Core code
only knows the protocols in ``joebot.assistant.features.definition``.
"""

from __future__ import annotations

from joebot.assistant.features.ce import community_pack
from joebot.assistant.features.definition import CommandBuilder, Entertainer, OptionProvider, Pack
from joebot.assistant.features.ee import enterprise_pack
from joebot.assistant.models.enums import Edition


def get_pack(edition: Edition | str) -> Pack:
    if Edition(edition) == Edition.EE:
        return enterprise_pack()
    return community_pack()


__all__ = [
    "CommandBuilder",
    "Entertainer",
    "OptionProvider",
    "Pack",
    "get_pack",
]
