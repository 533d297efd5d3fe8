"""Unit tests for session storage."""

from __future__ import annotations

import stat
from pathlib import Path

from joebot.assistant.models import Clone, ConnectionParams, User, UserInfo
from joebot.assistant.services.storage import JSONSessionStorage, MemorySessionStorage, storage_key


def _user(user_id: str, clone_id: str = "") -> User:
    user = User(user_info=UserInfo(id=user_id, name=user_id.lower()))
    if clone_id:
        user.session.clone = Clone(id=clone_id)
        user.session.connection_params = ConnectionParams(name="app", host="10.0.0.5", port="6000")
        user.session.pool = object()
    return user


def test_storage_key() -> None:
    assert storage_key("slack", "C1") == "slack-C1"


async def test_memory_storage() -> None:
    storage = MemorySessionStorage()
    assert storage.get_users("slack", "C1") == {}

    storage.set_users("slack", "C1", {"U1": _user("U1")})
    await storage.save()

    assert list(storage.get_users("slack", "C1")) == ["U1"]
    assert storage.keys() == ["slack-C1"]


async def test_json_storage_round_trip(tmp_path: Path) -> None:
    path = tmp_path / "data" / "sessions.json"
    storage = JSONSessionStorage(path)
    storage.set_users("slack", "C1", {"U1": _user("U1", "clone-1")})
    storage.set_users("webui", "C2", {"U2": _user("U2")})
    await storage.save()

    assert stat.S_IMODE(path.stat().st_mode) == 0o600
    assert "pool" not in path.read_text()

    loaded = JSONSessionStorage(path)
    await loaded.load()

    user = loaded.get_users("slack", "C1")["U1"]
    assert user.user_info.name == "u1"
    assert user.session.clone.id == "clone-1"
    assert user.session.connection_params.port == "6000"
    assert user.session.pool is None
    assert sorted(loaded.keys()) == ["slack-C1", "webui-C2"]


async def test_json_storage_missing_file_is_empty(tmp_path: Path) -> None:
    storage = JSONSessionStorage(tmp_path / "missing.json")
    await storage.load()
    assert storage.keys() == []


async def test_json_storage_save_replaces_blob(tmp_path: Path) -> None:
    path = tmp_path / "sessions.json"
    storage = JSONSessionStorage(path)
    storage.set_users("slack", "C1", {"U1": _user("U1")})
    await storage.save()

    storage.set_users("slack", "C1", {})
    await storage.save()

    loaded = JSONSessionStorage(path)
    await loaded.load()
    assert loaded.get_users("slack", "C1") == {}
    assert list(tmp_path.iterdir()) == [path]
