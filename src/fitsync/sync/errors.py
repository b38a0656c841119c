"""Sync failure taxonomy.

Each error knows whether the engine may retry it and which status it maps to.
"""

from __future__ import annotations

from fitsync.sync.status import SyncStatus


class SyncError(Exception):
    """Base class for failures talking to the remote document store."""

    retriable: bool = False
    status: SyncStatus = SyncStatus.ERROR

    @property
    def kind(self) -> str:
        return type(self).__name__


class NetworkUnavailableError(SyncError):
    """The store could not be reached at all (DNS, refused, timeout)."""

    retriable = True
    status = SyncStatus.OFFLINE


class RemoteServerError(SyncError):
    """The store answered with a transient server-side failure."""

    retriable = True

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class AuthenticationError(SyncError):
    """The API key was rejected; the user has to fix it."""


class MalformedDataError(SyncError):
    """A request or a stored document did not match the expected shape."""
