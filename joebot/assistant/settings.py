"""Process configuration loaded from JOE_* environment variables.

The YAML application config (channels, Database Lab servers, Platform) is
handled by ``joebot.assistant.config``; this module only covers where to find
it and how the process itself runs.
"""

from __future__ import annotations

from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict

from joebot.assistant.models.enums import Edition


class JoeSettings(BaseSettings):
    """Joe process settings.

    All fields are read from environment variables with the ``JOE_`` prefix.
    For example, ``JOE_CONFIG_PATH=/etc/joe/config.yml`` maps to ``config_path``.
    """

    model_config = SettingsConfigDict(
        env_prefix="JOE_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # -- Logging ---------------------------------------------------------------
    log_level: str = "INFO"

    # -- Configuration ---------------------------------------------------------
    config_path: str = "config/config.yml"
    """Path to the YAML application config."""

    edition: Edition = Edition.CE
    """Capability pack linked at startup."""

    # -- Data storage ----------------------------------------------------------
    sessions_path: str = "./data/sessions.json"
    """Where active user sessions are dumped on shutdown and restored on startup."""

    # -- Server ----------------------------------------------------------------
    host: str | None = None
    """Overrides ``app.host`` from the YAML config when set."""

    port: int | None = None
    """Overrides ``app.port`` from the YAML config when set."""


def get_settings() -> JoeSettings:
    """Return a cached settings instance.

    Call ``get_settings.cache_clear()`` (via ``_get_settings_cached``) in tests
    to force a re-read after overriding env vars.
    """
    return _get_settings_cached()


@lru_cache(maxsize=1)
def _get_settings_cached() -> JoeSettings:
    return JoeSettings()
