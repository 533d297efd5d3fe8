"""Platform-persisted command record and plan analyzer tips."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class Command(BaseModel):
    """A processed command and its results, posted to the Platform for history."""

    session_id: str = ""
    command: str = ""
    query: str = ""
    response: str = ""

    # -- Explain ---------------------------------------------------------------
    plan_text: str = ""
    plan_json: str = ""
    plan_exec_text: str = Field("", serialization_alias="plan_execution_text")
    plan_exec_json: str = Field("", serialization_alias="plan_execution_json")
    recommendations: str = ""
    stats: str = ""

    error: str = ""
    timestamp: str = ""

    def fail(self, text: str) -> None:
        self.error = text


class Tip(BaseModel):
    """Advisory record emitted by the plan analyzer."""

    model_config = ConfigDict(populate_by_name=True)

    code: str
    name: str
    description: str = ""
    details_url: str = Field("", alias="detailsUrl")
