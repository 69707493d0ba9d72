"""
Error taxonomy for DBGuard.

Snapshotter and Restorer raise these to their callers. The Replicator never
lets RemoteUnavailableError escape; it is raised by remote stores and
absorbed one layer up.
"""

from __future__ import annotations


class BackupError(Exception):
    """Base exception for backup operations."""

    pass


class SourceMissingError(BackupError):
    """The primary database file does not exist."""

    pass


class SnapshotFailedError(BackupError):
    """Every snapshot strategy in the chain failed.

    Attributes:
        failures: (strategy name, exception) for each attempt, in order
    """

    def __init__(self, message: str, failures: list[tuple[str, BaseException]] | None = None):
        super().__init__(message)
        self.failures = list(failures or [])


class SnapshotIOError(BackupError, OSError):
    """Disk or permission fault while writing a snapshot."""

    pass


class VerificationFailedError(BackupError):
    """A file required to be a valid snapshot failed verification."""

    pass


class RemoteUnavailableError(BackupError):
    """Remote store could not be reached or refused the request."""

    pass


class RestoreRejectedError(BackupError):
    """The named backup cannot be restored (missing, invalid or corrupt)."""

    pass
