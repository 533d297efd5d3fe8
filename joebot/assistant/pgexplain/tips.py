"""Recommendations derived from a parsed plan."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from joebot.assistant.config import ExplainConfig
    from joebot.assistant.models.command import Tip
    from joebot.assistant.pgexplain.explain import Explain

logger = logging.getLogger(__name__)

SEQSCAN_USED = "SEQSCAN_USED"
BUFFERS_READ_BIG = "BUFFERS_READ_BIG"
BUFFERS_HIT_BIG = "BUFFERS_HIT_BIG"


def get_tips(explain: Explain, cfg: ExplainConfig) -> list[Tip]:
    """Return the configured tips whose condition holds for ``explain``."""
    codes = []
    if explain.contains_seq_scan:
        codes.append(SEQSCAN_USED)
    if explain.shared_read_blocks > cfg.params.buffers_read_big_max:
        codes.append(BUFFERS_READ_BIG)
    if explain.shared_hit_blocks > cfg.params.buffers_hit_big_max:
        codes.append(BUFFERS_HIT_BIG)

    by_code = {tip.code: tip for tip in cfg.tips}
    tips = []
    for code in codes:
        if code not in by_code:
            logger.warning("Tip %s is not configured", code)
            continue
        tips.append(by_code[code])
    return tips


def render_recommendations(tips: list[Tip]) -> str:
    if not tips:
        return ":white_check_mark: Looks good"
    return "".join(f":exclamation: {tip.name} – {tip.description} <{tip.details_url}|Show details>\n" for tip in tips)
