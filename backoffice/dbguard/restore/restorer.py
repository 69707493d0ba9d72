"""
Restore the live database from a local snapshot.

The restore process:
1. Resolve and verify the chosen snapshot
2. Take a safety snapshot of the current live database
3. Build a self-contained staging copy of the chosen snapshot next to
   the primary and verify it
4. Rename the staging copy onto the primary
5. Remove the primary's -wal and -shm files

Invariants:
    - If the safety snapshot fails or does not verify, the primary is
      never touched
    - The primary is only ever replaced by a rename, never written in place
    - A safety snapshot is an ordinary snapshot: it shows up in listings
      and is pruned by retention like any other
    - Only one restore runs at a time per Restorer

How to change safely:
    - Never reorder steps 2 and 4
    - Keep the staging file in the primary's directory so the rename stays
      on one filesystem
    - Live connections held by the application are not reopened here;
      restart or reconnect after a restore
"""

from __future__ import annotations

import asyncio
import logging
import shutil
import sqlite3
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from ..errors import RestoreRejectedError, SnapshotFailedError, VerificationFailedError
from ..snapshot.catalog import BackupCatalog
from ..snapshot.records import BackupRecord, companion_paths, existing_companions
from ..snapshot.snapshotter import Snapshotter
from ..snapshot.verifier import Verifier, connect_readonly

logger = logging.getLogger(__name__)


@dataclass
class RestoreResult:
    """Result of a restore operation.

    Attributes:
        restored_from: Snapshot filename that replaced the live database
        safety_snapshot: Snapshot of the live database taken just before
        removed_companions: Primary -wal/-shm files that were deleted
        duration_ms: Total restore duration
    """

    restored_from: str
    safety_snapshot: BackupRecord
    removed_companions: list[str] = field(default_factory=list)
    duration_ms: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "restored_from": self.restored_from,
            "safety_snapshot": self.safety_snapshot.to_dict(),
            "removed_companions": list(self.removed_companions),
            "duration_ms": self.duration_ms,
        }


class Restorer:
    """Replaces the live database with a verified snapshot.

    Example:
        >>> restorer = Restorer("data/database.db", catalog, snapshotter)
        >>> result = await restorer.restore("database-backup-2026-10-19-02-00-00.db")
        >>> result.safety_snapshot.filename
        'database-backup-2026-10-19-14-31-07.db'
    """

    def __init__(
        self,
        database_path: str | Path,
        catalog: BackupCatalog,
        snapshotter: Snapshotter,
        verifier: Verifier | None = None,
    ) -> None:
        self.database_path = Path(database_path)
        self.catalog = catalog
        self.snapshotter = snapshotter
        self.verifier = verifier or catalog.verifier
        self._lock = asyncio.Lock()
        self._restore_count = 0

    @property
    def staging_path(self) -> Path:
        return self.database_path.with_name(f".{self.database_path.name}.restore")

    async def restore(self, filename: str) -> RestoreResult:
        """Restore the live database from a local snapshot.

        Args:
            filename: Snapshot filename inside the backup directory

        Returns:
            RestoreResult describing what happened

        Raises:
            RestoreRejectedError: Unknown, invalid or corrupt snapshot, or a
                restore already in progress
            SnapshotFailedError / SnapshotIOError / SourceMissingError: The
                safety snapshot could not be taken; the primary is untouched
            VerificationFailedError: The staging copy did not verify; the
                primary is untouched
        """
        if self._lock.locked():
            raise RestoreRejectedError("A restore is already in progress")

        async with self._lock:
            start = time.monotonic()
            loop = asyncio.get_running_loop()

            source = await loop.run_in_executor(None, self._check_source, filename)

            safety = await self.snapshotter.create_snapshot()
            if not safety.verified:
                raise SnapshotFailedError(
                    f"Safety snapshot {safety.filename} failed verification; restore aborted"
                )
            logger.info(
                "Safety snapshot taken before restore",
                extra={"snapshot": safety.filename, "restore_from": filename},
            )

            removed = await loop.run_in_executor(None, self._replace_primary, source)

            self._restore_count += 1
            duration_ms = int((time.monotonic() - start) * 1000)
            logger.info(
                "Database restored",
                extra={
                    "restore_from": filename,
                    "safety_snapshot": safety.filename,
                    "duration_ms": duration_ms,
                },
            )
            return RestoreResult(
                restored_from=filename,
                safety_snapshot=safety,
                removed_companions=removed,
                duration_ms=duration_ms,
            )

    def _check_source(self, filename: str) -> Path:
        try:
            path = self.catalog.resolve(filename)
        except ValueError as e:
            raise RestoreRejectedError(str(e)) from e

        if not path.is_file():
            raise RestoreRejectedError(f"Backup not found: {filename}")
        if not self.verifier.verify(path):
            raise RestoreRejectedError(f"Backup failed verification: {filename}")
        return path

    def _replace_primary(self, source: Path) -> list[str]:
        staging = self.staging_path
        self._discard(staging)
        try:
            self._stage(source, staging)
            if not self.verifier.verify(staging):
                raise VerificationFailedError(
                    f"Staged copy of {source.name} failed verification; primary untouched"
                )
        except BaseException:
            self._discard(staging)
            raise

        staging.replace(self.database_path)

        removed = []
        for companion in companion_paths(self.database_path):
            if companion.exists():
                companion.unlink()
                removed.append(companion.name)
        return removed

    def _stage(self, source: Path, staging: Path) -> None:
        if not existing_companions(source):
            shutil.copyfile(source, staging)
            return

        # Fold the snapshot's WAL into one self-contained file
        src = connect_readonly(source, timeout=self.verifier.timeout)
        try:
            dst = sqlite3.connect(str(staging))
            try:
                src.backup(dst)
            finally:
                dst.close()
        finally:
            src.close()

    @staticmethod
    def _discard(path: Path) -> None:
        for p in (path, *companion_paths(path)):
            p.unlink(missing_ok=True)

    @property
    def stats(self) -> dict[str, Any]:
        return {"restore_count": self._restore_count, "in_progress": self._lock.locked()}
