"""Database Lab clone models.

Field names follow the Database Lab REST API (camelCase on the wire).
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from joebot.assistant.models.enums import CloneStatus


class _DBLabModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# -- Clone -------------------------------------------------------------------


class CloneStatusInfo(_DBLabModel):
    code: str = ""
    message: str = ""


class CloneDB(_DBLabModel):
    conn_str: str = ""
    host: str = ""
    port: str = ""
    username: str = ""
    password: str = ""


class CloneMetadata(_DBLabModel):
    max_idle_minutes: int = 0
    cloning_time: float = 0.0


class Snapshot(_DBLabModel):
    id: str = ""
    data_state_at: str = ""


class Clone(_DBLabModel):
    id: str
    status: CloneStatusInfo = Field(default_factory=CloneStatusInfo)
    db: CloneDB = Field(default_factory=CloneDB)
    metadata: CloneMetadata = Field(default_factory=CloneMetadata)
    snapshot: Snapshot | None = None

    @property
    def is_ok(self) -> bool:
        return self.status.code == CloneStatus.OK

    @property
    def data_state_at(self) -> str:
        return self.snapshot.data_state_at if self.snapshot else ""


# -- Requests ----------------------------------------------------------------


class DatabaseRequest(_DBLabModel):
    username: str
    password: str
    restricted: bool = False


class CloneRequest(_DBLabModel):
    id: str
    protected: bool = False
    db: DatabaseRequest


# -- Connection --------------------------------------------------------------


class ConnectionParams(BaseModel):
    """Connection parameters of a clone as used by the SQL pool and psql."""

    name: str = ""
    host: str = ""
    port: str = ""
    username: str = ""
    password: str = ""
    ssl_mode: str = ""

    @property
    def is_empty(self) -> bool:
        return not self.host and not self.port

    def as_conninfo_kwargs(self) -> dict[str, str]:
        kwargs = {
            "host": self.host,
            "port": self.port,
            "user": self.username,
            "dbname": self.name,
            "password": self.password,
        }
        if self.ssl_mode:
            kwargs["sslmode"] = self.ssl_mode
        return kwargs
