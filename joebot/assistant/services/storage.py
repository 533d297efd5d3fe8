"""Durable storage of user sessions across restarts.

The blob is a single JSON document::

    {
      "slack-CXXXXXXXX": {
        "U123": {"user_info": {...}, "session": {...}}
      }
    }

Only identity and session values are written; connection pools are rebuilt
by the assistants on restore.
"""

from __future__ import annotations

import contextlib
import json
import os
import tempfile
from functools import partial
from pathlib import Path
from typing import Protocol, runtime_checkable

from anyio import to_thread
from loguru import logger
from pydantic import TypeAdapter

from joebot.assistant.models.user import User

_USERS_ADAPTER = TypeAdapter(dict[str, dict[str, User]])


def storage_key(transport: str, channel_id: str) -> str:
    return f"{transport}-{channel_id}"


@runtime_checkable
class SessionStorage(Protocol):
    """Keeps user maps grouped by ``(transport, channel)``."""

    def get_users(self, transport: str, channel_id: str) -> dict[str, User]:
        """Return the stored users of a channel (empty when unknown)."""
        ...

    def set_users(self, transport: str, channel_id: str, users: dict[str, User]) -> None:
        """Replace the stored users of a channel."""
        ...

    async def load(self) -> None:
        """Read persisted state.  A missing blob means empty state."""
        ...

    async def save(self) -> None:
        """Persist the current state, replacing the whole blob."""
        ...


class MemorySessionStorage:
    """Non-durable storage: ``load`` and ``save`` are no-ops."""

    def __init__(self) -> None:
        self._state: dict[str, dict[str, User]] = {}

    def get_users(self, transport: str, channel_id: str) -> dict[str, User]:
        return dict(self._state.get(storage_key(transport, channel_id), {}))

    def set_users(self, transport: str, channel_id: str, users: dict[str, User]) -> None:
        self._state[storage_key(transport, channel_id)] = dict(users)

    def keys(self) -> list[str]:
        return list(self._state)

    async def load(self) -> None:
        return None

    async def save(self) -> None:
        return None


class JSONSessionStorage(MemorySessionStorage):
    """File-backed storage.  Writes are atomic and owner-readable only.

    Storage layout:
        {path}   single JSON document keyed by ``"{transport}-{channel_id}"``
    """

    def __init__(self, path: str | Path) -> None:
        super().__init__()
        self._path = Path(path)

    @property
    def path(self) -> Path:
        return self._path

    async def load(self) -> None:
        raw = await to_thread.run_sync(partial(_read_file, self._path))
        if raw is None or not raw.strip():
            logger.info("Session storage: no saved sessions at {}", self._path)
            self._state = {}
            return

        self._state = _USERS_ADAPTER.validate_json(raw)
        total = sum(len(users) for users in self._state.values())
        logger.info("Session storage: loaded {} user(s) from {}", total, self._path)

    async def save(self) -> None:
        data = json.dumps(_USERS_ADAPTER.dump_python(self._state, mode="json"), indent=2)
        await to_thread.run_sync(partial(_atomic_write, self._path, data))
        logger.info("Session storage: saved sessions to {}", self._path)


# -- Sync helpers (run in thread pool) -----------------------------------------


def _atomic_write(path: Path, data: str) -> None:
    """Write ``data`` via a temp file in the same directory and rename it in place.

    ``mkstemp`` creates the file with mode 0600, which the rename preserves.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_path = tempfile.mkstemp(dir=path.parent, suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(data)
        os.chmod(tmp_path, 0o600)
        os.rename(tmp_path, path)
    except BaseException:
        with contextlib.suppress(OSError):
            os.unlink(tmp_path)
        raise


def _read_file(path: Path) -> str | None:
    try:
        return path.read_text(encoding="utf-8")
    except FileNotFoundError:
        return None
