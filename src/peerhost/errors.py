"""Exception hierarchy for peerhost."""

from __future__ import annotations

from enum import StrEnum


class LoadFailure(StrEnum):
    """Why an addon load did not produce a loaded addon.

    Everything except INITIALIZE_THREW is decided by the host before the
    addon's own code runs and is reported as a ``None`` result.
    """

    INVALID_LOCATOR = "invalid_locator"
    MODULE_RESOLUTION_FAILED = "module_resolution_failed"
    NO_DEFINITION = "no_definition"
    MISSING_INITIALIZE = "missing_initialize"
    INVALID_MANIFEST = "invalid_manifest"
    LOAD_IN_PROGRESS = "load_in_progress"
    INITIALIZE_THREW = "initialize_threw"


class PeerHostError(Exception):
    """Base class for peerhost errors."""


class InvalidArgumentError(PeerHostError, ValueError):
    """An addon passed an invalid argument to a host API method."""


class NotInitializedError(PeerHostError):
    """A component was used before it was started or after it was closed."""


class AddonLoadError(PeerHostError):
    """Structural failure while resolving or validating an addon."""

    def __init__(self, reason: LoadFailure, message: str, locator: str | None = None):
        super().__init__(message)
        self.reason = reason
        self.locator = locator


class StorageError(PeerHostError):
    """Storage engine failure."""


class StoreNotFoundError(StorageError):
    """Store does not exist and creation was not allowed."""


class StoreTypeMismatchError(StorageError):
    """Store exists with a different type than requested."""


class StoreClosedError(StorageError):
    """Operation attempted on a closed store."""
