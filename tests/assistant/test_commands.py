"""Command handlers driven through the pipeline: ``exec``, ``hypo`` and ``plan`` with HypoPG."""

from __future__ import annotations

from typing import Any

import psycopg
import pytest
from fakes import PLAN_TEXT, FakePoolFactory, default_responder, incoming

from joebot.assistant.commands.exec import MSG_EXEC_OPTION_REQ
from joebot.assistant.commands.hypo import HYPOPG_CAPTION, HYPOPG_EXCEPTION_MESSAGE
from joebot.assistant.config import QuotaConfig
from joebot.assistant.models import Edition, MessageStatus

HYPO_OID = "13675"
HYPO_INDEX = "<13675>btree_orders_customer_id"
HYPO_PLAN = f"Index Scan using {HYPO_INDEX} on orders  (cost=0.04..8.06 rows=1 width=4)"


class HypoPG:
    """Answers HypoPG calls the way a clone with the extension installed would."""

    def __init__(self) -> None:
        self.indexes: dict[str, str] = {}
        self.disabled = False
        self.installed = True

    def __call__(self, query: str, params: Any) -> tuple[list[str], list[tuple]]:
        q = query.strip()
        if q == "create extension if not exists hypopg":
            if not self.installed:
                msg = 'could not open extension control file "/usr/share/postgresql/16/extension/hypopg.control"'
                raise psycopg.errors.UndefinedFile(msg)
            return [], []
        if q == "set local hypopg.enabled to false":
            self.disabled = True
            return [], []
        if q.startswith("select indexrelid::text, indexname from hypopg_create_index"):
            self.indexes[HYPO_OID] = HYPO_INDEX
            return ["indexrelid", "indexname"], [(HYPO_OID, HYPO_INDEX)]
        if q.startswith("select indexrelid::text, indexname, nspname"):
            rows = [(oid, name, "public", "orders", "btree") for oid, name in self.indexes.items()]
            return ["indexrelid", "indexname", "nspname", "relname", "amname"], rows
        if q == "SELECT indexname FROM hypopg_list_indexes()":
            return ["indexname"], [(name,) for name in self.indexes.values()]
        if q.startswith("select * from hypopg_drop_index"):
            self.indexes.pop(params[0], None)
            return ["hypopg_drop_index"], [(True,)]
        if q == "select * from hypopg_reset()":
            self.indexes.clear()
            return ["hypopg_reset"], [("",)]
        if q.startswith("EXPLAIN (FORMAT TEXT)") and self.indexes:
            # "set local" ends with the transaction
            disabled, self.disabled = self.disabled, False
            if not disabled:
                return ["QUERY PLAN"], [(HYPO_PLAN,)]
        return default_responder(query, params)


@pytest.fixture
def hypopg() -> HypoPG:
    return HypoPG()


@pytest.fixture
def pools(hypopg: HypoPG) -> FakePoolFactory:
    return FakePoolFactory(hypopg)


def _queries(pools: FakePoolFactory) -> list[str]:
    return [q for pool in pools.pools for q in pool.queries]


# ---------------------------------------------------------------------------
# exec
# ---------------------------------------------------------------------------


async def test_exec_runs_the_statement(service, messenger, pools) -> None:
    await service.process_message_event(incoming("exec create index i_orders_customer on orders (customer_id)"))

    message = messenger.published[-1]
    assert message.status == MessageStatus.OK
    assert "The query has been executed. Duration: " in message.text
    assert "create index i_orders_customer on orders (customer_id)" in _queries(pools)


async def test_exec_without_statement(service, messenger) -> None:
    await service.process_message_event(incoming("exec"))

    message = messenger.published[-1]
    assert message.status == MessageStatus.ERROR
    assert message.text.endswith(f"ERROR: {MSG_EXEC_OPTION_REQ}")


async def test_exec_community_edition_skips_profiling(make_service, messenger, pools) -> None:
    service = make_service(edition=Edition.CE)

    await service.process_message_event(incoming("exec vacuum analyze orders"))

    assert messenger.published[-1].status == MessageStatus.OK
    assert not any("joe profile" in q for q in _queries(pools))
    assert "select pg_backend_pid()" not in _queries(pools)


async def test_exec_rate_limit(make_service, messenger) -> None:
    service = make_service(quota=QuotaConfig(limit=10, interval=60))

    for _ in range(11):
        await service.process_message_event(incoming("exec select 1"))

    executed = [t for t in messenger.texts if "The query has been executed." in t]
    assert len(executed) == 10
    assert messenger.published[-1].text == (
        "ERROR: You have reached the limit of requests per 60 seconds (10). Please wait before trying again"
    )


# ---------------------------------------------------------------------------
# hypo
# ---------------------------------------------------------------------------


async def test_hypo_create_and_describe(service, messenger, hypopg) -> None:
    await service.process_message_event(incoming("hypo create index on orders (customer_id)"))

    created = messenger.published[-1]
    assert created.status == MessageStatus.OK
    assert HYPOPG_CAPTION in created.text
    assert HYPO_INDEX in created.text
    assert hypopg.indexes == {HYPO_OID: HYPO_INDEX}

    await service.process_message_event(incoming("hypo desc"))

    described = messenger.published[-1]
    assert described.status == MessageStatus.OK
    assert "amname" in described.text
    assert HYPO_INDEX in described.text


async def test_hypo_create_passes_the_whole_statement(service, pools) -> None:
    await service.process_message_event(incoming("hypo create index on orders (customer_id)"))

    pool = pools.pools[0]
    assert pool.queries[-2] == "create extension if not exists hypopg"
    assert pool.queries[-1].startswith("select indexrelid::text, indexname from hypopg_create_index")


async def test_hypo_drop_and_reset(service, messenger, hypopg) -> None:
    await service.process_message_event(incoming("hypo create index on orders (customer_id)"))
    await service.process_message_event(incoming(f"hypo drop {HYPO_OID}"))

    assert messenger.published[-1].status == MessageStatus.OK
    assert hypopg.indexes == {}

    await service.process_message_event(incoming("hypo create index on orders (customer_id)"))
    await service.process_message_event(incoming("hypo reset"))

    assert messenger.published[-1].status == MessageStatus.OK
    assert hypopg.indexes == {}


async def test_hypo_desc_without_indexes(service, messenger) -> None:
    await service.process_message_event(incoming("hypo desc"))

    assert messenger.published[-1].text.endswith(HYPOPG_CAPTION + "```No results.\n```")


async def test_hypo_drop_requires_index_id(service, messenger) -> None:
    await service.process_message_event(incoming("hypo drop"))

    message = messenger.published[-1]
    assert message.status == MessageStatus.ERROR
    assert message.text.endswith("ERROR: failed to drop a hypothetical index: indexrelid required")


async def test_hypo_unknown_subcommand(service, messenger) -> None:
    await service.process_message_event(incoming("hypo explain"))

    assert messenger.published[-1].text.endswith("ERROR: invalid args given for the `hypo` command")


async def test_hypo_extension_missing(service, messenger, hypopg, pools) -> None:
    hypopg.installed = False

    await service.process_message_event(incoming("hypo create index on orders (customer_id)"))

    message = messenger.published[-1]
    assert message.status == MessageStatus.OK
    assert HYPOPG_EXCEPTION_MESSAGE in message.text
    assert not any("hypopg_create_index" in q for q in _queries(pools))


# ---------------------------------------------------------------------------
# plan with hypothetical indexes
# ---------------------------------------------------------------------------


async def test_plan_shows_plan_without_hypothetical_indexes(service, messenger, pools) -> None:
    await service.process_message_event(incoming("hypo create index on orders (customer_id)"))
    await service.process_message_event(incoming("plan select * from orders where customer_id = 7"))

    message = messenger.published[-1]
    assert message.status == MessageStatus.OK
    assert "*Plan (HypoPG involved :ghost:):*" in message.text
    assert HYPO_PLAN in message.text
    assert "*Plan without HypoPG indexes:*" in message.text
    assert PLAN_TEXT in message.text
    assert message.text.index(HYPO_PLAN) < message.text.index(PLAN_TEXT)

    titles = [title for title, _ in messenger.artifacts]
    assert titles == ["plan-wo-execution-text", "plan-wo-execution-wo-hypo-text"]
    assert messenger.artifacts[1][1] == PLAN_TEXT + "\n"
    assert "set local hypopg.enabled to false" in _queries(pools)


async def test_plan_without_hypothetical_indexes_is_single(service, messenger, pools) -> None:
    await service.process_message_event(incoming("plan select * from orders where customer_id = 7"))

    message = messenger.published[-1]
    assert "HypoPG" not in message.text
    assert [title for title, _ in messenger.artifacts] == ["plan-wo-execution-text"]
    assert "set local hypopg.enabled to false" not in _queries(pools)
