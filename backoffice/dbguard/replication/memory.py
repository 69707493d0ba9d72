"""
In-memory remote store for testing.

This module provides a process-local RemoteStore for:
- Unit tests
- Integration tests (including fault injection)
- Local development without an S3 endpoint

Invariants:
    - All data is lost on process exit
    - Same id/naming semantics as the S3 store (prefix/name keys,
      overwrite on same name)

How to change safely:
    - This is test-only code, changes don't affect production
    - Keep interface compatible with RemoteStore protocol
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path

from ..errors import RemoteUnavailableError
from .base import RemoteEntry

logger = logging.getLogger(__name__)


@dataclass
class _StoredObject:
    name: str
    data: bytes
    created_time: datetime
    modified_time: datetime


class InMemoryRemoteStore:
    """In-memory implementation of RemoteStore.

    Attributes:
        prefix: Folder prefix used to build ids
        configured: Simulates presence of credentials
        fail_all: When True, every operation raises RemoteUnavailableError
        calls: Number of operations that reached the store

    Example:
        >>> store = InMemoryRemoteStore()
        >>> remote_id = await store.put(Path("backups/x.db"), "x.db")
        >>> store.fail_all = True  # every later call now fails
    """

    def __init__(
        self,
        prefix: str = "database-backups",
        configured: bool = True,
        fail_all: bool = False,
        delay_seconds: float = 0.0,
    ) -> None:
        self.prefix = prefix.strip("/")
        self.configured = configured
        self.fail_all = fail_all
        self.delay_seconds = delay_seconds
        self.calls = 0
        self.container_created = False
        self._objects: dict[str, _StoredObject] = {}
        self._lock = asyncio.Lock()

    @property
    def is_configured(self) -> bool:
        return self.configured

    async def _enter(self, operation: str) -> None:
        self.calls += 1
        if self.delay_seconds:
            await asyncio.sleep(self.delay_seconds)
        if self.fail_all:
            raise RemoteUnavailableError(f"In-memory remote {operation} failed (injected)")

    async def ensure_container(self) -> str:
        await self._enter("ensure_container")
        self.container_created = True
        return f"{self.prefix}/" if self.prefix else ""

    async def put(self, path: Path, name: str) -> str:
        prefix = await self.ensure_container()
        data = Path(path).read_bytes()
        remote_id = f"{prefix}{name}"
        now = datetime.now(tz=timezone.utc)
        async with self._lock:
            existing = self._objects.get(remote_id)
            self._objects[remote_id] = _StoredObject(
                name=name,
                data=data,
                created_time=existing.created_time if existing else now,
                modified_time=now,
            )
        logger.debug(f"InMemoryRemoteStore stored {remote_id} ({len(data)} bytes)")
        return remote_id

    async def list(self) -> list[RemoteEntry]:
        await self.ensure_container()
        async with self._lock:
            entries = [
                RemoteEntry(
                    id=remote_id,
                    name=obj.name,
                    size=len(obj.data),
                    created_time=obj.created_time,
                    modified_time=obj.modified_time,
                )
                for remote_id, obj in self._objects.items()
            ]
        return sorted(entries, key=lambda e: (e.modified_time, e.name), reverse=True)

    async def get(self, remote_id: str, dest_path: Path) -> None:
        await self.ensure_container()
        async with self._lock:
            obj = self._objects.get(remote_id)
        if obj is None:
            raise RemoteUnavailableError(f"No such remote snapshot: {remote_id}")
        dest_path = Path(dest_path)
        dest_path.parent.mkdir(parents=True, exist_ok=True)
        dest_path.write_bytes(obj.data)

    async def delete(self, remote_id: str) -> None:
        await self.ensure_container()
        async with self._lock:
            if self._objects.pop(remote_id, None) is None:
                raise RemoteUnavailableError(f"No such remote snapshot: {remote_id}")

    async def close(self) -> None:
        logger.debug("InMemoryRemoteStore closed")

    # Testing helpers

    def object_ids(self) -> list[str]:
        return sorted(self._objects)

    def clear(self) -> None:
        self._objects.clear()
