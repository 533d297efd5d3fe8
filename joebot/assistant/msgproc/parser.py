"""Turning chat text into ``(command, query)`` and the texts around it."""

from __future__ import annotations

import html
import re

from joebot.assistant.util.text import cut_text

# -- Commands ----------------------------------------------------------------

COMMAND_EXPLAIN = "explain"
COMMAND_PLAN = "plan"
COMMAND_EXEC = "exec"
COMMAND_RESET = "reset"
COMMAND_HELP = "help"
COMMAND_HYPO = "hypo"
COMMAND_ACTIVITY = "activity"
COMMAND_TERMINATE = "terminate"

PSQL_COMMANDS = (
    "\\d",
    "\\d+",
    "\\dt",
    "\\dt+",
    "\\di",
    "\\di+",
    "\\l",
    "\\l+",
    "\\dv",
    "\\dv+",
    "\\dm",
    "\\dm+",
)

SUPPORTED_COMMANDS = frozenset({
    COMMAND_EXPLAIN,
    COMMAND_PLAN,
    COMMAND_EXEC,
    COMMAND_RESET,
    COMMAND_HELP,
    COMMAND_HYPO,
    COMMAND_ACTIVITY,
    COMMAND_TERMINATE,
    *PSQL_COMMANDS,
})

# -- Texts -------------------------------------------------------------------

QUERY_PREVIEW_SIZE = 400
SEPARATOR_ELLIPSIS = "…"

HINT_EXPLAIN = "Consider using `explain` command for DML statements. See `help` for details."
HINT_EXEC = "Consider using `exec` command for DDL statements. See `help` for details."

DML_WORDS = frozenset({"insert", "select", "update", "delete", "with"})
DDL_WORDS = frozenset({"alter", "create", "drop", "set"})

HELP_MESSAGE = (
    "• `explain` — analyze your query (SELECT, INSERT, DELETE, UPDATE or WITH) and generate recommendations\n"
    "• `plan` — analyze your query (SELECT, INSERT, DELETE, UPDATE or WITH) without execution\n"
    "• `exec` — execute any query (for example, CREATE INDEX)\n"
    "• `reset` — revert the database to the initial state (usually takes less than a minute, "
    ":warning: all changes will be lost)\n"
    "• `\\d`, `\\d+`, `\\dt`, `\\dt+`, `\\di`, `\\di+`, `\\l`, `\\l+`, `\\dv`, `\\dv+`, `\\dm`, `\\dm+` — "
    "psql meta information commands\n"
    "• `hypo` — create hypothetical indexes using the HypoPG extension\n"
    "• `help` — this message\n"
)

APP_MENTION_REPLY = "What's up? Send `help` to see the list of available commands."

_SMART_QUOTES = str.maketrans({"“": '"', "”": '"', "‘": "'", "’": "'"})

_LINK_RE = re.compile(r"<https?://[^|>]+\|([^>]+)>")
_MAILTO_RE = re.compile(r"<mailto:[^|>]+\|([^>]+)>")
_WHITESPACE_RE = re.compile(r"\s+")


def unfurl_links(text: str) -> str:
    """Replace chat link markup (``<http://x.io|x.io>``) with the link text."""
    if "<http" in text:
        text = _LINK_RE.sub(r"\1", text)
    if "<mailto:" in text:
        text = _MAILTO_RE.sub(r"\1", text)
    return text


def normalize(text: str) -> str:
    """Strip code fences and undo the chat's escaping and typographic substitutions."""
    text = text.strip().strip("`")
    text = html.unescape(text)
    return text.translate(_SMART_QUOTES).strip()


def parse_command(text: str) -> tuple[str, str]:
    """Split a message into a lowercased command and the rest of it.

    >>> parse_command("EXPLAIN  select\\n  1")
    ('explain', 'select\\n  1')
    """
    parts = _WHITESPACE_RE.split(text.strip(), maxsplit=1)
    command = parts[0].lower()
    query = parts[1] if len(parts) > 1 else ""
    return command, query


def is_supported(command: str) -> bool:
    return command in SUPPORTED_COMMANDS


def is_psql_command(command: str) -> bool:
    return command in PSQL_COMMANDS


def hints(command: str, query: str) -> list[str]:
    """Usage hints for a parsed message, in the order they are shown."""
    result = []
    first_word = query.split(maxsplit=1)[0].lower() if query.strip() else ""

    if command in DML_WORDS or (command == COMMAND_EXEC and first_word in DML_WORDS):
        result.append(HINT_EXPLAIN)
    if command in DDL_WORDS:
        result.append(HINT_EXEC)
    return result


def query_preview(command: str, query: str) -> str:
    preview = query.replace("\n", " ").replace("\t", " ")
    preview, _ = cut_text(preview, QUERY_PREVIEW_SIZE, SEPARATOR_ELLIPSIS)
    return f"```{command} {preview}```\n"


def session_line(session_id: str) -> str:
    return f"Session: `{session_id}`\n" if session_id else "No session\n"


def help_text(preview: str, enterprise_help: str, version: str, edition: str) -> str:
    return f"{preview}{HELP_MESSAGE}{enterprise_help}Version: {version} ({edition})\n"
