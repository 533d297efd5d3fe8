"""Error hierarchy.

The message text of every error is what the chat user sees after ``ERROR:``,
so keep messages short and human readable.
"""

from __future__ import annotations


class JoeError(Exception):
    """Base class for all assistant errors."""


class ValidationError(JoeError, ValueError):
    """Malformed or unsupported inbound message.  Dropped with a log line."""


class QuotaError(JoeError):
    """The user exceeded the request quota."""


class SessionError(JoeError):
    """Clone acquisition, connection opening or reset failed."""


class QueryError(JoeError):
    """SQL failure against a clone."""

    def __init__(self, message: str, *, sqlstate: str | None = None) -> None:
        super().__init__(message)
        self.sqlstate = sqlstate


class CloneConnectionError(QueryError):
    """The clone could not be reached (network failure, closed pool, timeout)."""


class IntegrationError(JoeError):
    """A collaborator (Database Lab, Platform, Slack) failed or rejected a call."""


class UserFacingError(JoeError):
    """Command usage problems reported back to the user verbatim."""


class FatalConfigError(JoeError):
    """Invalid configuration.  Raised at startup only."""
