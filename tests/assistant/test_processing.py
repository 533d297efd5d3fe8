"""End-to-end behaviour of the message pipeline against in-memory collaborators."""

from __future__ import annotations

import asyncio
import json
from datetime import datetime, timedelta, timezone

import pytest
from fakes import PLAN_TEXT, incoming
from loguru import logger

from joebot.assistant.commands.activity import MSG_FEATURE_LOCKED
from joebot.assistant.commands.psql import MSG_RESTRICTED
from joebot.assistant.config import QuotaConfig
from joebot.assistant.models import Edition, MessageStatus, MessageType, User
from joebot.assistant.msgproc import parser
from joebot.assistant.msgproc.service import MSG_SESSION_CLOSED, MSG_SESSION_STARTING
from joebot.assistant.msgproc.sessions import MSG_STOPPED_IDLE_SESSION, MSG_STOPPED_IDLE_SESSIONS


def _starting_messages(messenger) -> list:
    return [m for m in messenger.published if m.text.startswith(MSG_SESSION_STARTING)]


# ---------------------------------------------------------------------------
# Session start
# ---------------------------------------------------------------------------


async def test_first_command_starts_a_session(service, messenger, dblab, pools) -> None:
    await service.process_message_event(incoming("plan select 1"))

    assert len(dblab.created) == 1
    clone_id = dblab.created[0]

    start, command = messenger.published
    assert start.text.startswith(MSG_SESSION_STARTING)
    assert f"Session: `{clone_id}`" in start.text
    assert f"Session started: {clone_id}" in start.text
    assert "Postgres version: 16.4" in start.text
    assert "Idle session timeout: 20 minutes" in start.text
    assert "Joe version: v1.0.0 (Enterprise Edition)" in start.text
    assert start.status == MessageStatus.OK

    assert command.text.startswith("```plan select 1```\n")
    assert "*Plan:*" in command.text
    assert PLAN_TEXT in command.text
    assert command.status == MessageStatus.OK

    user = service.users.get("U1")
    assert user.session.clone.id == clone_id
    assert user.session.pool is pools.pools[0]
    assert user.session.connection_params.name == "app"


async def test_session_is_reused_between_commands(service, messenger, dblab) -> None:
    await service.process_message_event(incoming("plan select 1"))
    await service.process_message_event(incoming("plan select 2"))

    assert len(dblab.created) == 1
    assert len(_starting_messages(messenger)) == 1
    assert messenger.published[-1].status == MessageStatus.OK


async def test_session_start_failure_is_reported(service, messenger, dblab) -> None:
    dblab.fail_create = True

    await service.process_message_event(incoming("plan select 1"))

    (start,) = messenger.published
    assert start.status == MessageStatus.ERROR
    assert "ERROR: failed to create a new clone: no free disk space" in start.text
    assert service.users.get("U1").session.clone is None


async def test_channel_switch_destroys_previous_session(service, dblab) -> None:
    await service.process_message_event(incoming("plan select 1", channel="C1"))
    first = dblab.created[0]

    await service.process_message_event(incoming("plan select 1", channel="C2"))

    assert dblab.destroyed == [first]
    assert len(dblab.created) == 2
    session = service.users.get("U1").session
    assert session.channel_id == "C2"
    assert session.clone.id == dblab.created[1]


async def test_platform_session_is_created_with_history(make_service, platform, messenger) -> None:
    platform.history_enabled = True
    service = make_service()

    await service.process_message_event(incoming("plan select 1"))

    (session_request,) = platform.sessions
    assert session_request.user_id == "U1"
    assert session_request.channel_id == "C1"
    assert service.users.get("U1").session.session_id == "1"
    assert "Session: `1`" in messenger.published[-1].text


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


async def test_help_does_not_start_a_session(service, messenger, dblab) -> None:
    await service.process_message_event(incoming("help"))

    assert dblab.created == []
    (message,) = messenger.published
    assert message.text.startswith("```help ```\n")
    assert parser.HELP_MESSAGE in message.text
    assert "Version: v1.0.0 (Enterprise Edition)" in message.text
    assert message.text.endswith("No session\n")


async def test_explain_records_history_and_permalink(make_service, platform, messenger) -> None:
    platform.history_enabled = True
    service = make_service()

    await service.process_message_event(incoming("explain select * from orders"))

    message = messenger.published[-1]
    assert message.status == MessageStatus.OK
    assert "*Plan with execution:*" in message.text
    assert "Seq Scan on orders" in message.text
    assert "SeqScan is used" in message.text
    assert "*Summary:*" in message.text
    assert message.text.endswith(f"Details: {platform.permalink}")

    (command,) = platform.commands
    assert command.command == "explain"
    assert command.query == "select * from orders"
    assert command.session_id == "1"
    assert command.plan_text.startswith(PLAN_TEXT)
    assert '"Node Type": "Seq Scan"' in command.plan_exec_json
    assert command.error == ""

    titles = [title for title, _ in messenger.artifacts]
    assert titles == ["plan-wo-execution-text", "plan-json", "plan-text"]


async def test_permalink_is_appended_only_for_explain(make_service, platform, messenger) -> None:
    platform.history_enabled = True
    service = make_service()

    await service.process_message_event(incoming("plan select 1"))

    assert platform.commands[0].command == "plan"
    assert "Details:" not in messenger.published[-1].text


async def test_failed_command_is_recorded_with_error(make_service, platform, messenger) -> None:
    platform.history_enabled = True
    service = make_service()

    await service.process_message_event(incoming("terminate abc"))

    message = messenger.published[-1]
    assert message.status == MessageStatus.ERROR
    assert "ERROR: invalid pid given: 'abc'" in message.text
    assert platform.commands[0].error == "invalid pid given: 'abc'"


async def test_community_edition_locks_enterprise_commands(make_service, messenger) -> None:
    service = make_service(edition=Edition.CE)

    await service.process_message_event(incoming("activity"))

    message = messenger.published[-1]
    assert message.status == MessageStatus.ERROR
    assert f"ERROR: {MSG_FEATURE_LOCKED}" in message.text


async def test_reset_rolls_the_clone_back(service, messenger, dblab, pools) -> None:
    await service.process_message_event(incoming("plan select 1"))
    await service.process_message_event(incoming("reset"))

    clone_id = dblab.created[0]
    assert dblab.resets == [clone_id]
    assert len(pools.pools) == 2
    assert pools.pools[0].closed

    message = messenger.published[-1]
    assert message.status == MessageStatus.OK
    assert "Resetting the state of the database..." in message.text
    assert f"Session started: {clone_id}" in message.text


async def test_psql_command_is_passed_through(service, messenger, psql) -> None:
    await service.process_message_event(incoming(r"\dt+ public.*"))

    assert psql.commands == [r"\dt+ public.*"]
    message = messenger.published[-1]
    assert message.status == MessageStatus.OK
    assert "*Command output:*" in message.text
    assert "Full command output" in message.text


@pytest.mark.parametrize(
    "text",
    [
        r"\d users; drop table users",
        r"\d users \! rm -rf /",
        "\\d users\nselect 1",
    ],
)
async def test_psql_input_is_sanitised(service, messenger, psql, text: str) -> None:
    await service.process_message_event(incoming(text))

    assert psql.commands == []
    message = messenger.published[-1]
    assert message.status == MessageStatus.ERROR
    assert MSG_RESTRICTED in message.text


# ---------------------------------------------------------------------------
# Lost clones
# ---------------------------------------------------------------------------


async def test_lost_connection_is_retried_once(service, messenger, dblab, pools) -> None:
    await service.process_message_event(incoming("plan select 1"))
    pool = pools.pools[0]
    pool.fail_with = lambda query: OSError("connection reset by peer")
    pool.queries.clear()

    await service.process_message_event(incoming("plan select 2"))

    assert pool.queries == ["EXPLAIN (FORMAT TEXT) select 2"] * 2
    message = messenger.published[-1]
    assert message.status == MessageStatus.ERROR
    assert "ERROR: connection reset by peer" in message.text
    # The clone is still alive, so the session is kept.
    assert service.users.get("U1").session.clone.id == dblab.created[0]


async def test_clone_lost_during_command_starts_new_session(service, messenger, dblab, pools) -> None:
    await service.process_message_event(incoming("plan select 1"))
    first = dblab.created[0]

    def crash(query: str) -> Exception:
        dblab.lose(first)
        return OSError("server closed the connection unexpectedly")

    pools.pools[0].fail_with = crash

    await service.process_message_event(incoming("plan select 2"))

    failed = next(m for m in messenger.published if m.text.startswith("```plan select 2```"))
    assert failed.status == MessageStatus.ERROR
    assert MSG_SESSION_CLOSED in failed.text
    assert "ERROR: server closed the connection unexpectedly" in failed.text

    assert len(dblab.created) == 2
    assert len(_starting_messages(messenger)) == 2
    assert pools.pools[0].closed
    assert service.users.get("U1").session.clone.id == dblab.created[1]


async def test_inactive_clone_is_replaced_before_the_command(service, messenger, dblab) -> None:
    await service.process_message_event(incoming("plan select 1"))
    dblab.lose(dblab.created[0])

    await service.process_message_event(incoming("plan select 2"))

    assert len(dblab.created) == 2
    assert messenger.published[-1].status == MessageStatus.OK


# ---------------------------------------------------------------------------
# Filtering, hints and quota
# ---------------------------------------------------------------------------


async def test_dml_without_command_gets_a_hint(service, messenger, dblab) -> None:
    await service.process_message_event(incoming("select 1"))

    (hint,) = messenger.published
    assert hint.message_type == MessageType.EPHEMERAL
    assert hint.user_id == "U1"
    assert hint.text == parser.HINT_EXPLAIN
    assert dblab.created == []


async def test_thread_replies_are_ignored(service, messenger) -> None:
    await service.process_message_event(incoming("help", thread_id="1700000000.000001"))

    assert messenger.published == []
    assert len(service.users) == 0


async def test_snippet_is_used_as_message(service, messenger, dblab) -> None:
    url = "https://files.slack.com/snippet.sql"
    messenger.snippets[url] = b"plan select 1\n"

    await service.process_message_event(incoming("", snippet_url=url, subtype="file_share"))

    assert len(dblab.created) == 1
    assert messenger.published[-1].text.startswith("```plan select 1```")


async def test_quota_exceeded(make_service, messenger) -> None:
    service = make_service(quota=QuotaConfig(limit=2, interval=60))

    for _ in range(3):
        await service.process_message_event(incoming("help"))

    message = messenger.published[-1]
    assert message.status == MessageStatus.ERROR
    assert message.text == (
        "ERROR: You have reached the limit of requests per 60 seconds (2). Please wait before trying again"
    )
    assert sum(parser.HELP_MESSAGE in text for text in messenger.texts) == 2


async def test_audit_record_is_logged(make_service) -> None:
    records: list[str] = []
    sink = logger.add(records.append, format="{message}", filter=lambda r: bool(r["extra"].get("audit")))
    try:
        service = make_service(audit=True)
        await service.process_message_event(incoming("help"))
    finally:
        logger.remove(sink)

    (record,) = records
    assert json.loads(record) == {"id": "U1", "name": "u1", "realName": "User U1", "command": "help", "query": ""}


async def test_app_mention_gets_a_reply(service, messenger) -> None:
    await service.process_app_mention_event(incoming("<@UBOT> hi"))

    (reply,) = messenger.published
    assert reply.text == parser.APP_MENTION_REPLY


# ---------------------------------------------------------------------------
# Idle sessions
# ---------------------------------------------------------------------------


def _age(session, minutes: int) -> None:
    session.touch(datetime.now(timezone.utc) - timedelta(minutes=minutes))


async def test_idle_sessions_are_stopped_and_reported(service, messenger, dblab) -> None:
    await service.process_message_event(incoming("plan select 1", user="U1"))
    await service.process_message_event(incoming("plan select 1", user="U2"))
    u1 = service.users.get("U1")
    u2 = service.users.get("U2")
    _age(u1.session, 60)
    dblab.lose(u1.session.clone.id)

    await service.check_idle_sessions()

    assert u1.session.clone is None
    assert u1.session.pool is None
    assert u2.session.clone is not None
    assert messenger.published[-1].channel_id == "C1"
    assert messenger.published[-1].text == MSG_STOPPED_IDLE_SESSIONS + "<@U1>"


async def test_reaper_leaves_fresh_and_live_sessions(service, messenger, dblab) -> None:
    await service.process_message_event(incoming("plan select 1", user="U1"))
    await service.process_message_event(incoming("plan select 1", user="U2"))
    published = len(messenger.published)

    # U1 is idle but Database Lab still serves its clone; U2 is fresh but its clone is gone.
    _age(service.users.get("U1").session, 60)
    dblab.lose(service.users.get("U2").session.clone.id)

    await service.check_idle_sessions()

    assert service.users.get("U1").session.clone is not None
    assert service.users.get("U2").session.clone is not None
    assert len(messenger.published) == published


async def test_reaper_skips_busy_users(service, dblab) -> None:
    await service.process_message_event(incoming("plan select 1"))
    user = service.users.get("U1")
    _age(user.session, 60)
    dblab.lose(user.session.clone.id)

    async with user.lock:
        await service.check_idle_sessions()

    assert user.session.clone is not None


async def test_reaper_keeps_clone_replaced_during_status_check(service, messenger, dblab, monkeypatch) -> None:
    await service.process_message_event(incoming("plan select 1"))
    user = service.users.get("U1")
    _age(user.session, 60)
    dblab.lose(user.session.clone.id)

    gate = asyncio.Event()
    calls = 0
    get_clone = dblab.get_clone

    async def slow_get_clone(clone_id: str):
        nonlocal calls
        calls += 1
        if calls == 1:
            await gate.wait()
        return await get_clone(clone_id)

    monkeypatch.setattr(dblab, "get_clone", slow_get_clone)

    reaper = asyncio.create_task(service.check_idle_sessions())
    while calls < 1:
        await asyncio.sleep(0)

    # the user comes back while the status of the old clone is being checked
    await service.process_message_event(incoming("plan select 2"))
    gate.set()
    await reaper

    assert user.session.clone is not None
    assert user.session.clone.id == dblab.created[1]
    assert dblab.destroyed == []
    assert not any(text.startswith(MSG_STOPPED_IDLE_SESSIONS) for text in messenger.texts)


async def test_direct_sessions_are_notified_by_session(service, messenger, dblab) -> None:
    await service.process_message_event(incoming("plan select 1", direct=True))
    session = service.users.get("U1").session
    session_id = session.session_id
    _age(session, 60)
    dblab.lose(session.clone.id)

    await service.check_idle_sessions()

    notice = messenger.published[-1]
    assert notice.session_id == session_id
    assert notice.text == MSG_STOPPED_IDLE_SESSION
    assert notice.status == MessageStatus.OK


# ---------------------------------------------------------------------------
# Persistence
# ---------------------------------------------------------------------------


async def test_restore_sessions_reconnects_live_clones(service, make_service, dblab, pools) -> None:
    await service.process_message_event(incoming("plan select 1", user="U1"))
    await service.process_message_event(incoming("plan select 1", user="U2"))
    dumped = {uid: User.model_validate_json(user.model_dump_json()) for uid, user in service.users.users().items()}
    dblab.lose(dumped["U2"].session.clone.id)

    restored = make_service(users=dumped)
    await restored.restore_sessions()

    u1 = restored.users.get("U1").session
    u2 = restored.users.get("U2").session
    assert u1.clone.id == dblab.created[0]
    assert u1.pool is pools.pools[-1]
    assert u2.clone is None
    assert u2.pool is None
