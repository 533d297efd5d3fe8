"""Unit tests for message parsing and the text helpers."""

from __future__ import annotations

from datetime import timedelta

import pytest

from joebot.assistant.msgproc import parser
from joebot.assistant.util.text import cut_text, format_duration, format_elapsed

# ---------------------------------------------------------------------------
# Normalisation
# ---------------------------------------------------------------------------


def test_normalize_strips_code_fences_and_entities() -> None:
    assert parser.normalize("```explain select 1 &gt; 0```") == "explain select 1 > 0"


def test_normalize_replaces_smart_quotes() -> None:
    assert parser.normalize("exec select ‘a’, “b”") == "exec select 'a', \"b\""


def test_unfurl_links() -> None:
    text = "explain select * from t where d = '<http://x.io|x.io>' and m = '<mailto:a@b.c|a@b.c>'"
    assert parser.unfurl_links(text) == "explain select * from t where d = 'x.io' and m = 'a@b.c'"


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


@pytest.mark.parametrize(
    ("text", "expected"),
    [
        ("EXPLAIN select 1", ("explain", "select 1")),
        ("plan\nselect\n  1", ("plan", "select\n  1")),
        ("help", ("help", "")),
        ("\\dt+ public.*", ("\\dt+", "public.*")),
    ],
)
def test_parse_command(text: str, expected: tuple[str, str]) -> None:
    assert parser.parse_command(text) == expected


def test_supported_commands() -> None:
    assert parser.is_supported("explain")
    assert parser.is_supported("\\d+")
    assert not parser.is_supported("select")
    assert parser.is_psql_command("\\l")
    assert not parser.is_psql_command("exec")


@pytest.mark.parametrize(
    ("command", "query", "expected"),
    [
        ("select", "1", [parser.HINT_EXPLAIN]),
        ("with", "x as (select 1) select * from x", [parser.HINT_EXPLAIN]),
        ("exec", "update t set a = 1", [parser.HINT_EXPLAIN]),
        ("exec", "create index on t (a)", []),
        ("create", "index on t (a)", [parser.HINT_EXEC]),
        ("explain", "select 1", []),
    ],
)
def test_hints(command: str, query: str, expected: list[str]) -> None:
    assert parser.hints(command, query) == expected


def test_query_preview_flattens_and_cuts() -> None:
    assert parser.query_preview("plan", "select\n\t1") == "```plan select  1```\n"

    long = parser.query_preview("exec", "x" * 1000)
    assert long.endswith(parser.SEPARATOR_ELLIPSIS + "```\n")
    assert len(long) == len("```exec ") + parser.QUERY_PREVIEW_SIZE + len("```\n")


def test_session_line() -> None:
    assert parser.session_line("abc") == "Session: `abc`\n"
    assert parser.session_line("") == "No session\n"


# ---------------------------------------------------------------------------
# Text helpers
# ---------------------------------------------------------------------------


def test_cut_text() -> None:
    assert cut_text("short", 10, "...") == ("short", False)
    assert cut_text("0123456789abc", 10, "...") == ("0123456...", True)


@pytest.mark.parametrize(
    ("value", "expected"),
    [
        (timedelta(seconds=1), "1 second"),
        (timedelta(seconds=45), "45 seconds"),
        (timedelta(minutes=20), "20 minutes"),
        (timedelta(hours=1, minutes=5, seconds=30), "1 hour 5 minutes"),
        (timedelta(days=2, minutes=1), "2 days 1 minute"),
    ],
)
def test_format_duration(value: timedelta, expected: str) -> None:
    assert format_duration(value) == expected


def test_format_elapsed() -> None:
    assert format_elapsed(0.0123) == "12.300 ms"
    assert format_elapsed(2.5) == "2.500 s"
    assert format_elapsed(90) == "1.500 min"
