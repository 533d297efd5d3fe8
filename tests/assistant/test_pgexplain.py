"""Unit tests for EXPLAIN parsing, rendering, tips and the timing estimator."""

from __future__ import annotations

import json

import pytest
from fakes import EXPLAIN_JSON

from joebot.assistant.config import ExplainConfig, ExplainParams
from joebot.assistant.pgexplain import ExplainError, blocks_to_bytes, get_tips, parse_explain, render_recommendations
from joebot.assistant.services.estimator import Timing

NESTED = json.dumps([
    {
        "Plan": {
            "Node Type": "Hash Join",
            "Join Type": "Left",
            "Startup Cost": 1.0,
            "Total Cost": 10.0,
            "Plan Rows": 10,
            "Plan Width": 8,
            "Actual Startup Time": 0.1,
            "Actual Total Time": 2.0,
            "Actual Rows": 100,
            "Actual Loops": 1,
            "Hash Cond": "(o.user_id = u.id)",
            "Shared Read Blocks": 500,
            "Plans": [
                {
                    "Node Type": "Index Scan",
                    "Index Name": "orders_pkey",
                    "Relation Name": "orders",
                    "Schema": "public",
                    "Alias": "o",
                    "Startup Cost": 0.0,
                    "Total Cost": 4.0,
                    "Plan Rows": 10,
                    "Plan Width": 8,
                    "Actual Startup Time": 0.01,
                    "Actual Total Time": 0.5,
                    "Actual Rows": 10,
                    "Actual Loops": 1,
                },
                {
                    "Node Type": "Hash",
                    "Startup Cost": 0.0,
                    "Total Cost": 5.0,
                    "Plan Rows": 50,
                    "Plan Width": 4,
                    "Actual Startup Time": 0.2,
                    "Actual Total Time": 1.0,
                    "Actual Rows": 50,
                    "Actual Loops": 1,
                },
            ],
        },
        "Planning Time": 0.5,
        "Execution Time": 2.5,
    }
])


def test_parse_simple_plan() -> None:
    explain = parse_explain(EXPLAIN_JSON)

    assert explain.contains_seq_scan
    assert explain.shared_hit_blocks == 10
    assert explain.total_time == pytest.approx(0.4)
    assert explain.plan.actual_duration == pytest.approx(0.205)


def test_render_plan_text() -> None:
    text = parse_explain(NESTED).render_plan_text()
    lines = text.splitlines()

    assert lines[0].startswith(" Hash Left Join  (cost=1.00..10.00 rows=10 width=8)")
    assert lines[1] == "   Hash Cond: (o.user_id = u.id)"
    assert lines[2] == "   Buffers: shared read=500"
    assert lines[3].startswith("   ->  Index Scan using orders_pkey on public.orders o  (cost=0.00..4.00")
    assert any(line.startswith("   ->  Hash  (cost=") for line in lines)


def test_render_plan_text_without_costs() -> None:
    text = parse_explain(NESTED).render_plan_text(with_costs=False)
    assert "cost=" not in text
    assert "Index Scan using orders_pkey on public.orders o\n" in text


def test_derived_values() -> None:
    explain = parse_explain(NESTED)
    root = explain.plan

    # Children are subtracted from the parent node.
    assert root.actual_duration == pytest.approx(0.5)
    assert root.actual_cost == pytest.approx(1.0)
    assert root.planner_row_estimate_direction == "Under"
    assert root.planner_row_estimate_factor == pytest.approx(10)
    assert root.largest
    assert not explain.contains_seq_scan


def test_render_stats() -> None:
    stats = parse_explain(NESTED).render_stats()

    assert "Time: 3.000 ms" in stats
    assert "  - planning: 0.500 ms" in stats
    assert "    - I/O read: N/A" in stats
    assert "  - reads: 500 (~3.9 MiB) from the OS file cache, including disk I/O" in stats
    assert "Local buffers" not in stats


@pytest.mark.parametrize("payload", ["", "{}", "[]", '[{"Plan": 1}]'])
def test_parse_errors(payload: str) -> None:
    with pytest.raises(ExplainError):
        parse_explain(payload)


@pytest.mark.parametrize(
    ("blocks", "expected"),
    [
        (0, "0 B"),
        (1, "8.0 KiB"),
        (100, "800 KiB"),
        (10_000, "78 MiB"),
    ],
)
def test_blocks_to_bytes(blocks: int, expected: str) -> None:
    assert blocks_to_bytes(blocks) == expected


# ---------------------------------------------------------------------------
# Tips
# ---------------------------------------------------------------------------


def test_tips_for_seq_scan() -> None:
    tips = get_tips(parse_explain(EXPLAIN_JSON), ExplainConfig())
    assert [tip.code for tip in tips] == ["SEQSCAN_USED"]

    rendered = render_recommendations(tips)
    assert rendered.startswith(":exclamation: SeqScan is used – Consider adding an index")
    assert "|Show details>" in rendered


def test_tips_for_buffers() -> None:
    cfg = ExplainConfig(params=ExplainParams(buffers_read_big_max=100, buffers_hit_big_max=1000))
    tips = get_tips(parse_explain(NESTED), cfg)
    assert [tip.code for tip in tips] == ["BUFFERS_READ_BIG"]


def test_unconfigured_tips_are_skipped() -> None:
    tips = get_tips(parse_explain(EXPLAIN_JSON), ExplainConfig(tips=[]))
    assert tips == []
    assert render_recommendations(tips) == ":white_check_mark: Looks good"


# ---------------------------------------------------------------------------
# Timing estimator
# ---------------------------------------------------------------------------


def test_timing_range() -> None:
    timing = Timing({"Running": 50.0, "IO.DataFileRead": 40.0, "IO.WALWrite": 10.0}, read_ratio=2.0, write_ratio=1.0)

    assert timing.calc_min(10) == pytest.approx(6.0)
    assert timing.calc_max(10) == pytest.approx(8.0)
    assert timing.est_time(10) == " (estimated* for prod: 6.000...8.000 s)"


def test_timing_collapses_narrow_range() -> None:
    timing = Timing({"Running": 99.0, "IO.DataFileRead": 1.0}, read_ratio=1.0, write_ratio=1.0)
    assert timing.est_time(1) == " (estimated* for prod: 1.000 s)"
