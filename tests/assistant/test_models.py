"""Unit tests for users, quotas, sessions and messages."""

from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone

import pytest
from fakes import FakeInformer

from joebot.assistant.config import QuotaConfig
from joebot.assistant.errors import QuotaError
from joebot.assistant.models import Clone, Message, Quota, User, UserInfo, UserSession
from joebot.assistant.services.usermanager import UserManager

T0 = datetime(2026, 10, 17, 12, 0, tzinfo=timezone.utc)

# ---------------------------------------------------------------------------
# Quota
# ---------------------------------------------------------------------------


def test_quota_allows_up_to_limit_within_window() -> None:
    quota = Quota(window_start=T0, limit=2, interval=60)
    quota.request(T0 + timedelta(seconds=1))
    quota.request(T0 + timedelta(seconds=2))

    with pytest.raises(QuotaError, match=r"per 60 seconds \(2\)"):
        quota.request(T0 + timedelta(seconds=3))


def test_quota_refills_after_interval() -> None:
    quota = Quota(window_start=T0, count=2, limit=2, interval=60)
    later = T0 + timedelta(seconds=61)

    quota.request(later)

    assert quota.count == 1
    assert quota.window_start == later


def test_quota_message_uses_singular() -> None:
    quota = Quota(window_start=T0, count=1, limit=1, interval=1)
    with pytest.raises(QuotaError, match=r"per 1 second \(1\)"):
        quota.request(T0)


# ---------------------------------------------------------------------------
# Session
# ---------------------------------------------------------------------------


def test_session_id_prefers_platform_session() -> None:
    session = UserSession()
    assert session.session_id == ""

    session.clone = Clone(id="clone-1")
    assert session.session_id == "clone-1"

    session.platform_session_id = "42"
    assert session.session_id == "42"


def test_minutes_idle() -> None:
    session = UserSession()
    session.touch(T0)
    assert session.minutes_idle(T0 + timedelta(minutes=30)) == 30


def test_user_round_trip_drops_pool() -> None:
    user = User(user_info=UserInfo(id="U1", name="alice"))
    user.session.clone = Clone(id="clone-1")
    user.session.pool = object()

    restored = User.model_validate_json(user.model_dump_json())

    assert restored.session.clone.id == "clone-1"
    assert restored.session.pool is None
    assert restored.lock is not user.lock


# ---------------------------------------------------------------------------
# Message
# ---------------------------------------------------------------------------


def test_append_text() -> None:
    message = Message()
    message.append_text("first")
    message.append_text("second")
    assert message.text == "first\n\nsecond"


def test_should_notify() -> None:
    message = Message(user_id="U1", created_at=T0)
    assert not message.should_notify(T0 + timedelta(hours=1))

    message.set_notify_at(timedelta(minutes=1))
    assert not message.should_notify(T0 + timedelta(seconds=30))
    assert message.should_notify(T0 + timedelta(minutes=2))


# ---------------------------------------------------------------------------
# UserManager
# ---------------------------------------------------------------------------


class SlowInformer(FakeInformer):
    def __init__(self) -> None:
        self.calls = 0

    async def get_user_info(self, user_id: str) -> UserInfo:
        self.calls += 1
        await asyncio.sleep(0.01)
        return await super().get_user_info(user_id)


async def test_concurrent_first_messages_create_one_user() -> None:
    informer = SlowInformer()
    manager = UserManager(informer, QuotaConfig(limit=3, interval=30))

    first, second = await asyncio.gather(manager.get_or_create("U1"), manager.get_or_create("U1"))

    assert first is second
    assert informer.calls == 1
    assert first.user_info.name == "u1"
    assert first.session.quota.limit == 3
    assert first.session.quota.interval == 30


async def test_add_users_keeps_existing() -> None:
    manager = UserManager(FakeInformer(), QuotaConfig())
    existing = await manager.get_or_create("U1")

    manager.add_users({
        "U1": User(user_info=UserInfo(id="U1", name="stale")),
        "U2": User(user_info=UserInfo(id="U2")),
    })

    assert manager.get("U1") is existing
    assert manager.get("U2") is not None
    assert len(manager) == 2
    assert set(manager.users()) == {"U1", "U2"}
