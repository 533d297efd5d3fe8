"""EXPLAIN JSON analysis: parsing, text rendering, stats and tips."""

from joebot.assistant.pgexplain.explain import Explain, ExplainError, Plan, blocks_to_bytes, parse_explain
from joebot.assistant.pgexplain.tips import get_tips, render_recommendations

__all__ = [
    "Explain",
    "ExplainError",
    "Plan",
    "blocks_to_bytes",
    "get_tips",
    "parse_explain",
    "render_recommendations",
]
