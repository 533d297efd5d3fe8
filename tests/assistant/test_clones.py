"""Unit tests for the clone lifecycle of user sessions."""

from __future__ import annotations

import pytest
from fakes import FakeDBLab, FakePoolFactory

from joebot.assistant.config import DBLabParams
from joebot.assistant.errors import SessionError
from joebot.assistant.models import UserSession
from joebot.assistant.services.clones import CloneManager

PARAMS = DBLabParams(dbname="app", sslmode="disable")


async def test_ensure_clone_creates_once(clones: CloneManager, dblab: FakeDBLab, pools: FakePoolFactory) -> None:
    session = UserSession()

    assert await clones.ensure_clone(session, PARAMS, user_name="Alice.Smith")
    assert not await clones.ensure_clone(session, PARAMS, user_name="Alice.Smith")

    assert len(dblab.created) == 1
    assert session.clone.id == dblab.created[0]
    assert session.pool is pools.pools[0]
    assert session.idle_limit_minutes == 20

    params = session.connection_params
    assert params.username == "joe_alice_smith"
    assert params.name == "app"
    assert params.ssl_mode == "disable"
    assert params.host == "10.0.0.5"
    assert params.port == "6000"
    assert pools.pools[0].params == params


async def test_ensure_clone_replaces_a_lost_clone(clones: CloneManager, dblab: FakeDBLab) -> None:
    session = UserSession()
    await clones.ensure_clone(session, PARAMS)
    dblab.lose(session.clone.id)

    assert await clones.ensure_clone(session, PARAMS)
    assert len(dblab.created) == 2
    assert session.clone.id == dblab.created[1]


async def test_unreachable_clone_is_destroyed(clones: CloneManager, dblab: FakeDBLab, pools: FakePoolFactory) -> None:
    pools.fail = True
    session = UserSession()

    with pytest.raises(SessionError, match="failed to connect to the clone: connection refused"):
        await clones.ensure_clone(session, PARAMS)

    assert dblab.destroyed == dblab.created
    assert session.clone is None
    assert session.pool is None


async def test_stop_session_keeps_the_clone(clones: CloneManager, dblab: FakeDBLab, pools: FakePoolFactory) -> None:
    session = UserSession(platform_session_id="7")
    await clones.ensure_clone(session, PARAMS)

    await clones.stop_session(session)

    assert session.clone is None
    assert session.pool is None
    assert session.platform_session_id == ""
    assert session.connection_params.is_empty
    assert pools.pools[0].closed
    assert dblab.destroyed == []


async def test_destroy_session(clones: CloneManager, dblab: FakeDBLab) -> None:
    session = UserSession()
    await clones.ensure_clone(session, PARAMS)
    clone_id = session.clone.id

    await clones.destroy_session(session)

    assert dblab.destroyed == [clone_id]
    assert session.clone is None


async def test_reset_without_session(clones: CloneManager) -> None:
    with pytest.raises(SessionError, match="no active session"):
        await clones.reset_clone(UserSession())


async def test_restore(clones: CloneManager, dblab: FakeDBLab, pools: FakePoolFactory) -> None:
    live, moved, gone = UserSession(), UserSession(), UserSession()
    for session in (live, moved, gone):
        await clones.ensure_clone(session, PARAMS)
        session.pool = None

    moved.connection_params = moved.connection_params.model_copy(update={"port": "7000"})
    dblab.lose(gone.clone.id)

    assert await clones.restore(live)
    assert not await clones.restore(moved)
    assert not await clones.restore(gone)

    assert live.pool is pools.pools[-1]
    assert moved.clone is None
    assert gone.clone is None


def test_manager_exposes_its_server() -> None:
    dblab = FakeDBLab()
    assert CloneManager(dblab).dblab is dblab
