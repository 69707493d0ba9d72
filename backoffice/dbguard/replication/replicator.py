"""
Best-effort snapshot replication.

The Replicator is the only caller of a RemoteStore. It guarantees that
nothing remote ever breaks a local operation: every failure - missing
credentials, unreachable endpoint, timeout, unexpected exception - is
logged and turned into None / False / [].

Invariants:
    - No method raises
    - Without a configured store, no I/O is attempted at all
    - Every call is bounded by timeout_seconds

How to change safely:
    - New operations must go through _call() so they inherit the
      never-raise and timeout behaviour
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from pathlib import Path
from typing import Any, TypeVar

from ..errors import RemoteUnavailableError
from .base import RemoteEntry, RemoteStore

logger = logging.getLogger(__name__)

T = TypeVar("T")


class Replicator:
    """Uploads, lists, downloads and deletes snapshots in a remote store.

    Attributes:
        store: Remote store, or None when replication is off
        timeout_seconds: Upper bound for any single call

    Example:
        >>> replicator = Replicator(S3RemoteStore(config.remote))
        >>> remote_id = await replicator.upload_remote(record.path, record.filename)
        >>> remote_id is None  # replication failed, local snapshot is still fine
        False
    """

    def __init__(self, store: RemoteStore | None, timeout_seconds: float = 300.0) -> None:
        self.store = store
        self.timeout_seconds = timeout_seconds

        self._upload_count = 0
        self._failure_count = 0

    @property
    def enabled(self) -> bool:
        """Whether a store with credentials is available."""
        return self.store is not None and self.store.is_configured

    async def _call(
        self,
        operation: str,
        factory: Callable[[RemoteStore], Awaitable[T]],
        failure: T,
    ) -> T:
        if not self.enabled:
            logger.debug(f"Remote {operation} skipped: remote store not configured")
            return failure

        try:
            return await asyncio.wait_for(factory(self.store), timeout=self.timeout_seconds)
        except asyncio.TimeoutError:
            logger.warning(f"Remote {operation} timed out after {self.timeout_seconds}s")
        except RemoteUnavailableError as e:
            logger.warning(f"Remote {operation} failed: {e}")
        except Exception as e:
            logger.error(f"Remote {operation} failed unexpectedly: {e}", exc_info=True)

        self._failure_count += 1
        return failure

    async def upload_remote(self, path: str | Path, name: str | None = None) -> str | None:
        """Upload a local snapshot.

        Returns:
            Remote id, or None if the upload failed or replication is off
        """
        path = Path(path)
        remote_id = await self._call(
            "upload", lambda store: store.put(path, name or path.name), None
        )
        if remote_id is not None:
            self._upload_count += 1
        return remote_id

    async def list_remote(self) -> list[RemoteEntry]:
        """List remote snapshots, newest first ([] on failure)."""
        return await self._call("list", lambda store: store.list(), [])

    async def download_remote(self, remote_id: str, dest_path: str | Path) -> bool:
        """Download a remote snapshot to dest_path."""

        async def _download(store: RemoteStore) -> bool:
            await store.get(remote_id, Path(dest_path))
            return True

        return await self._call("download", _download, False)

    async def delete_remote(self, remote_id: str) -> bool:
        """Delete a remote snapshot."""

        async def _delete(store: RemoteStore) -> bool:
            await store.delete(remote_id)
            return True

        return await self._call("delete", _delete, False)

    async def close(self) -> None:
        if self.store is None:
            return
        try:
            await self.store.close()
        except Exception as e:
            logger.warning(f"Error closing remote store: {e}")

    @property
    def stats(self) -> dict[str, Any]:
        """Get replicator statistics."""
        return {
            "enabled": self.enabled,
            "upload_count": self._upload_count,
            "failure_count": self._failure_count,
        }
