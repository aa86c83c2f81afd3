"""Exception hierarchy shared by the synchronisation engine."""

from __future__ import annotations


class SyncError(Exception):
    """Base class for every engine failure."""


class TransientNetworkError(SyncError):
    """Timeout, reset or throttling response; worth retrying."""


class MalformedResponse(SyncError):
    """Lookup answered with something that is not a usable payload."""


class PersistenceError(SyncError):
    """Catalog or staging file could not be written."""


class ConfigurationError(SyncError):
    """Operation requested in a state where it cannot run."""


__all__ = [
    "ConfigurationError",
    "MalformedResponse",
    "PersistenceError",
    "SyncError",
    "TransientNetworkError",
]
