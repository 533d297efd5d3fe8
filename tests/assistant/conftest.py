"""Fixtures wiring a ``ProcessingService`` to in-memory collaborators."""

from __future__ import annotations

from collections.abc import Callable

import pytest
from fakes import FakeDBLab, FakeInformer, FakeMessenger, FakePlatform, FakePoolFactory, FakePsqlRunner

from joebot.assistant.config import AppConfig, AuditConfig, DBLabParams, EnterpriseConfig, QuotaConfig
from joebot.assistant.connection.slack import SlackMessageValidator
from joebot.assistant.features import get_pack
from joebot.assistant.models import Edition, User
from joebot.assistant.msgproc import ProcessingConfig, ProcessingService
from joebot.assistant.services.clones import CloneManager
from joebot.assistant.services.dblab import DBLabInstance
from joebot.assistant.services.usermanager import UserManager


@pytest.fixture
def dblab() -> FakeDBLab:
    return FakeDBLab()


@pytest.fixture
def pools() -> FakePoolFactory:
    return FakePoolFactory()


@pytest.fixture
def clones(dblab: FakeDBLab, pools: FakePoolFactory) -> CloneManager:
    return CloneManager(dblab, pool_factory=pools)


@pytest.fixture
def messenger() -> FakeMessenger:
    return FakeMessenger()


@pytest.fixture
def platform() -> FakePlatform:
    return FakePlatform()


@pytest.fixture
def psql() -> FakePsqlRunner:
    return FakePsqlRunner()


@pytest.fixture
def make_service(
    messenger: FakeMessenger,
    clones: CloneManager,
    platform: FakePlatform,
    psql: FakePsqlRunner,
    dblab: FakeDBLab,
) -> Callable[..., ProcessingService]:
    """Build a processing service for channel ``C1`` of a Slack workspace."""

    def _make(
        *,
        edition: Edition = Edition.EE,
        quota: QuotaConfig | None = None,
        audit: bool = False,
        users: dict[str, User] | None = None,
    ) -> ProcessingService:
        enterprise = EnterpriseConfig(quota=quota or QuotaConfig(), audit=AuditConfig(enabled=audit))
        config = ProcessingConfig(
            dblab=DBLabInstance(name="prod", client=dblab, params=DBLabParams(dbname="app")),
            app=AppConfig(version="v1.0.0"),
            enterprise=enterprise,
            project="demo",
        )
        return ProcessingService(
            messenger,
            SlackMessageValidator(),
            UserManager(FakeInformer(), enterprise.quota, users),
            clones,
            platform,
            config,
            get_pack(edition),
            psql_runner=psql,
        )

    return _make


@pytest.fixture
def service(make_service: Callable[..., ProcessingService]) -> ProcessingService:
    return make_service()
