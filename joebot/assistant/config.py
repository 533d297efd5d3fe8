"""YAML application configuration.

The file layout mirrors what operators already write for Joe::

    app:
      version: v1.0.0
      port: 2400
      minNotifyDuration: 1
    platform:
      url: https://postgres.ai/api/general
      token: secret
      project: demo
      historyEnabled: true
    enterprise:
      quota: {limit: 10, interval: 60}
    channelMapping:
      dblabServers:
        prod: {url: https://dblab.example.com, token: secret}
      communicationTypes:
        slack:
          - name: Workspace
            credentials: {accessToken: xoxb-..., signingSecret: ...}
            channels:
              - channelID: CXXXXXXXX
                dblab: prod
                dblabParams: {dbname: app, sslmode: disable}

Keys are accepted in camelCase (as written above) or snake_case.
"""

from __future__ import annotations

from pathlib import Path

import yaml
from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError
from pydantic.alias_generators import to_camel

from joebot.assistant.errors import FatalConfigError
from joebot.assistant.models.command import Tip
from joebot.assistant.models.enums import CommunicationType


class _ConfigModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


# -- App ---------------------------------------------------------------------


class AppConfig(_ConfigModel):
    version: str = "v0.0.0"
    host: str = "0.0.0.0"  # noqa: S104
    port: int = 2400
    url: str = ""
    """Public URL of this instance, announced to the Platform."""
    debug: bool = False
    min_notify_duration: int = 1
    """Minutes after which a finished command mentions its author."""


class PlatformConfig(_ConfigModel):
    url: str = "https://postgres.ai/api/general"
    token: str = ""
    project: str = ""
    history_enabled: bool = False


# -- Explain -----------------------------------------------------------------

DEFAULT_TIPS = [
    Tip(
        code="SEQSCAN_USED",
        name="SeqScan is used",
        description="Consider adding an index",
        details_url="https://postgres.ai/docs/joe-bot/recommendations#seqscan-used",
    ),
    Tip(
        code="BUFFERS_READ_BIG",
        name="Query processes too much data to return a relatively small number of rows",
        description="Reduce data cardinality as early as possible during the execution, using one or several of "
        "the following techniques: new indexes, partitioning, query rewriting, denormalization",
        details_url="https://postgres.ai/docs/joe-bot/recommendations#buffers-read-big",
    ),
    Tip(
        code="BUFFERS_HIT_BIG",
        name="Add LIMIT",
        description="The number of buffers hit is very large. Consider reducing it by limiting the result set",
        details_url="https://postgres.ai/docs/joe-bot/recommendations#buffers-hit-big",
    ),
]


class ExplainParams(_ConfigModel):
    buffers_read_big_max: int = 100
    buffers_hit_big_max: int = 1000


class ExplainConfig(_ConfigModel):
    tips: list[Tip] = Field(default_factory=lambda: list(DEFAULT_TIPS))
    params: ExplainParams = Field(default_factory=ExplainParams)


# -- Enterprise --------------------------------------------------------------


class QuotaConfig(_ConfigModel):
    limit: int = 10
    interval: int = 60
    """Window length in seconds."""


class AuditConfig(_ConfigModel):
    enabled: bool = False


class DBLabLimitConfig(_ConfigModel):
    instance_limit: int = 1


class EstimatorConfig(_ConfigModel):
    read_ratio: float = 1.0
    write_ratio: float = 1.0
    profiling_interval: int = 10
    """Sampling period of the wait-event profiler, in milliseconds."""
    sample_threshold: int = 20


class EnterpriseConfig(_ConfigModel):
    quota: QuotaConfig = Field(default_factory=QuotaConfig)
    audit: AuditConfig = Field(default_factory=AuditConfig)
    dblab: DBLabLimitConfig = Field(default_factory=DBLabLimitConfig)
    estimator: EstimatorConfig = Field(default_factory=EstimatorConfig)


# -- Channel mapping ---------------------------------------------------------


class Credentials(_ConfigModel):
    access_token: str = ""
    signing_secret: str = ""
    app_level_token: str = ""


class DBLabParams(_ConfigModel):
    dbname: str = ""
    sslmode: str = ""


class Channel(_ConfigModel):
    channel_id: str = Field(alias="channelID")
    dblab_id: str = Field(alias="dblab")
    dblab_params: DBLabParams = Field(default_factory=DBLabParams)


class Workspace(_ConfigModel):
    name: str = ""
    credentials: Credentials = Field(default_factory=Credentials)
    channels: list[Channel] = Field(default_factory=list)


class DBLabServer(_ConfigModel):
    url: str = ""
    token: str = ""
    request_timeout: float = 0
    """Seconds; zero means the client default."""


class ChannelMapping(_ConfigModel):
    communication_types: dict[CommunicationType, list[Workspace]] = Field(default_factory=dict)
    dblab_servers: dict[str, DBLabServer] = Field(default_factory=dict)


# -- Root --------------------------------------------------------------------


class Config(_ConfigModel):
    app: AppConfig = Field(default_factory=AppConfig)
    platform: PlatformConfig = Field(default_factory=PlatformConfig)
    explain: ExplainConfig = Field(default_factory=ExplainConfig)
    enterprise: EnterpriseConfig = Field(default_factory=EnterpriseConfig)
    channel_mapping: ChannelMapping = Field(default_factory=ChannelMapping)


def load_config(path: str | Path) -> Config:
    """Read and validate the YAML config.  Raises ``FatalConfigError`` on any problem."""
    path = Path(path)
    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as e:
        msg = f"Error loading {path} config file: {e}"
        raise FatalConfigError(msg) from e

    try:
        data = yaml.safe_load(raw) or {}
    except yaml.YAMLError as e:
        msg = f"Error parsing {path} config: {e}"
        raise FatalConfigError(msg) from e

    if not isinstance(data, dict):
        msg = f"Error parsing {path} config: top-level mapping expected"
        raise FatalConfigError(msg)

    try:
        return Config.model_validate(data)
    except PydanticValidationError as e:
        msg = f"Invalid {path} config: {e}"
        raise FatalConfigError(msg) from e
