"""
Base protocol and types for remote snapshot stores.

This module defines the RemoteStore protocol that every offsite backend
implements, the RemoteEntry listing type, and the factory that builds a
store from configuration.

Invariants:
    - A store owns exactly one container (bucket plus folder prefix),
      located or created on first use and cached for the process lifetime
    - Stores raise RemoteUnavailableError; only the Replicator decides that
      remote failures are non-fatal
    - Remote entries have no required correspondence to local snapshots

How to change safely:
    - Protocol changes require updating all implementations
    - Keep RemoteEntry fields stable, collaborators render them directly
"""

from __future__ import annotations

from abc import abstractmethod
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

if TYPE_CHECKING:
    from ..config import RemoteConfig

SNAPSHOT_CONTENT_TYPE = "application/x-sqlite3"


@dataclass(frozen=True)
class RemoteEntry:
    """A snapshot held by the remote store.

    Attributes:
        id: Store-specific identifier (object key for S3)
        name: Snapshot filename as uploaded
        size: Size in bytes
        created_time: When the object was created
        modified_time: When the object was last written
    """

    id: str
    name: str
    size: int
    created_time: datetime | None
    modified_time: datetime | None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "size": self.size,
            "created_time": self.created_time.isoformat() if self.created_time else None,
            "modified_time": self.modified_time.isoformat() if self.modified_time else None,
        }


@runtime_checkable
class RemoteStore(Protocol):
    """Protocol for remote snapshot stores.

    Example:
        >>> store = S3RemoteStore(config.remote)
        >>> remote_id = await store.put(Path("backups/x.db"), "x.db")
        >>> [e.name for e in await store.list()]
        ['x.db']
    """

    @property
    @abstractmethod
    def is_configured(self) -> bool:
        """Whether authentication material is present.

        When False, callers must not attempt any I/O against the store.
        """
        ...

    @abstractmethod
    async def ensure_container(self) -> str:
        """Locate or create the snapshot container; return its prefix.

        Raises:
            RemoteUnavailableError: If the container cannot be reached or created
        """
        ...

    @abstractmethod
    async def put(self, path: Path, name: str) -> str:
        """Upload a local file under a name; return its remote id."""
        ...

    @abstractmethod
    async def list(self) -> list[RemoteEntry]:
        """List snapshots in the container, newest first."""
        ...

    @abstractmethod
    async def get(self, remote_id: str, dest_path: Path) -> None:
        """Download a snapshot to a local path."""
        ...

    @abstractmethod
    async def delete(self, remote_id: str) -> None:
        """Delete a snapshot from the container."""
        ...

    @abstractmethod
    async def close(self) -> None:
        """Release connections."""
        ...


def create_remote_store(config: RemoteConfig) -> RemoteStore | None:
    """Factory function to create a remote store from configuration.

    Args:
        config: Remote configuration

    Returns:
        RemoteStore implementation, or None when replication is off

    Raises:
        ValueError: If backend is not supported
    """
    from ..config import RemoteBackend
    from .memory import InMemoryRemoteStore
    from .s3 import S3RemoteStore

    if config.backend == RemoteBackend.S3:
        return S3RemoteStore(config)
    elif config.backend == RemoteBackend.MEMORY:
        return InMemoryRemoteStore(prefix=config.prefix)
    elif config.backend == RemoteBackend.NONE:
        return None
    else:
        raise ValueError(f"Unsupported remote backend: {config.backend}")
