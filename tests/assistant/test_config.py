"""Unit tests for the YAML config and the edition packs."""

from __future__ import annotations

from pathlib import Path

import pytest

from joebot.assistant.config import load_config
from joebot.assistant.errors import FatalConfigError
from joebot.assistant.features import get_pack
from joebot.assistant.models import CommunicationType, Edition

CONFIG = """
app:
  version: v1.2.3
  port: 2401
  minNotifyDuration: 3
platform:
  token: platform-token
  project: demo
  historyEnabled: true
enterprise:
  quota:
    limit: 5
    interval: 10
  audit:
    enabled: true
  dblab:
    instanceLimit: 3
channelMapping:
  dblabServers:
    prod:
      url: https://dblab.example.com
      token: dblab-token
  communicationTypes:
    slack:
      - name: Workspace
        credentials:
          accessToken: xoxb-1
          signingSecret: s3cret
        channels:
          - channelID: C1
            dblab: prod
            dblabParams:
              dbname: app
              sslmode: disable
    webui:
      - name: Platform
        credentials:
          signingSecret: web-secret
        channels:
          - channelID: "7"
            dblab: prod
"""


@pytest.fixture
def config_file(tmp_path: Path) -> Path:
    path = tmp_path / "config.yml"
    path.write_text(CONFIG)
    return path


def test_load_config_accepts_camel_case(config_file: Path) -> None:
    cfg = load_config(config_file)

    assert cfg.app.version == "v1.2.3"
    assert cfg.app.port == 2401
    assert cfg.app.min_notify_duration == 3
    assert cfg.platform.history_enabled
    assert cfg.enterprise.quota.limit == 5
    assert cfg.enterprise.dblab.instance_limit == 3

    mapping = cfg.channel_mapping
    assert mapping.dblab_servers["prod"].token == "dblab-token"

    (slack,) = mapping.communication_types[CommunicationType.SLACK]
    assert slack.credentials.signing_secret == "s3cret"
    (channel,) = slack.channels
    assert channel.channel_id == "C1"
    assert channel.dblab_id == "prod"
    assert channel.dblab_params.sslmode == "disable"

    (webui,) = mapping.communication_types[CommunicationType.WEBUI]
    assert webui.channels[0].channel_id == "7"


def test_load_config_defaults(tmp_path: Path) -> None:
    path = tmp_path / "empty.yml"
    path.write_text("")

    cfg = load_config(path)

    assert cfg.app.port == 2400
    assert cfg.enterprise.quota.limit == 10
    assert [tip.code for tip in cfg.explain.tips] == ["SEQSCAN_USED", "BUFFERS_READ_BIG", "BUFFERS_HIT_BIG"]


def test_load_config_missing_file(tmp_path: Path) -> None:
    with pytest.raises(FatalConfigError, match="Error loading"):
        load_config(tmp_path / "nope.yml")


@pytest.mark.parametrize(
    "content",
    [
        "app: [unclosed",
        "- just\n- a list\n",
        "channelMapping:\n  communicationTypes:\n    telegram: []\n",
    ],
)
def test_load_config_rejects_bad_documents(tmp_path: Path, content: str) -> None:
    path = tmp_path / "bad.yml"
    path.write_text(content)

    with pytest.raises(FatalConfigError):
        load_config(path)


def test_community_options_override_enterprise_settings(config_file: Path) -> None:
    cfg = get_pack(Edition.CE).options.apply(load_config(config_file))

    assert cfg.enterprise.quota.limit == 10
    assert cfg.enterprise.quota.interval == 60
    assert not cfg.enterprise.audit.enabled
    assert cfg.enterprise.dblab.instance_limit == 1
    # Everything else is untouched.
    assert cfg.app.version == "v1.2.3"


def test_enterprise_options_keep_settings(config_file: Path) -> None:
    cfg = get_pack(Edition.EE).options.apply(load_config(config_file))
    assert cfg.enterprise.quota.limit == 5
    assert cfg.enterprise.dblab.instance_limit == 3


def test_packs() -> None:
    ce, ee = get_pack("ce"), get_pack("ee")

    assert ce.entertainer.get_edition() == "Community Edition"
    assert "Not supported in CE version" in ce.entertainer.get_enterprise_help_message()
    assert not ce.estimator_enabled

    assert ee.entertainer.get_edition() == "Enterprise Edition"
    assert ee.entertainer.get_enterprise_help_message() == ""
    assert ee.estimator_enabled
