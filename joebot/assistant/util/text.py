"""Text helpers shared by command handlers and the message pipeline."""

from __future__ import annotations

from datetime import timedelta


def cut_text(text: str, size: int, separator: str) -> tuple[str, bool]:
    """Cut ``text`` to ``size`` characters, ending with ``separator`` when cut.

    Returns the (possibly shortened) text and whether it was truncated.
    """
    if len(text) > size:
        return text[: size - len(separator)] + separator, True
    return text, False


def format_duration(value: timedelta) -> str:
    """Render a duration for humans, e.g. ``"1 hour 5 minutes"``.

    Seconds are dropped once the duration reaches a minute.
    """
    total = int(value.total_seconds())
    if total < 60:
        return _unit(total, "second")

    days, rest = divmod(total, 86400)
    hours, rest = divmod(rest, 3600)
    minutes = rest // 60

    parts = [_unit(n, name) for n, name in ((days, "day"), (hours, "hour"), (minutes, "minute")) if n]
    return " ".join(parts)


def format_elapsed(seconds: float) -> str:
    """Render an elapsed SQL execution time: ms below a second, minutes above one."""
    if seconds < 1:
        return f"{seconds * 1000:.3f} ms"
    if seconds < 60:
        return f"{seconds:.3f} s"
    return f"{seconds / 60:.3f} min"


def format_milliseconds(value: float) -> str:
    return format_elapsed(value / 1000)


def _unit(count: int, name: str) -> str:
    return f"{count} {name}" if count == 1 else f"{count} {name}s"
