"""
Backup service facade.

BackupService wires the snapshot, verification, replication, retention and
restore components together and exposes the operations collaborators use
(the CLI, the daemon, and the back office itself). It holds no state of its
own beyond the components.

Invariants:
    - Remote operations never raise; local operations raise typed errors
      from errors.py
    - Filenames passed in are bare snapshot filenames, resolved inside the
      backup directory only

How to change safely:
    - Add operations here rather than reaching into components from callers
    - Keep blocking file work off the event loop in async operations
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Any

from .config import BackupConfig
from .errors import VerificationFailedError
from .replication import Replicator, RemoteEntry, create_remote_store
from .restore import RestoreResult, Restorer
from .retention import RetentionManager
from .scheduler import BackupScheduler
from .snapshot import (
    BackupCatalog,
    BackupRecord,
    BackupStats,
    Snapshotter,
    Verifier,
    build_strategies,
    is_backup_filename,
)

logger = logging.getLogger(__name__)


class BackupService:
    """Facade over the DBGuard components.

    Attributes:
        database_path: Live SQLite database
        catalog: Local snapshot directory
        snapshotter: Creates snapshots
        replicator: Best-effort remote replication
        retention: Age-based pruning
        restorer: Safety-snapshotted restore
        retention_days: Default window for prune_older_than()

    Example:
        >>> service = BackupService.from_config(BackupConfig.from_env())
        >>> record = await service.create_snapshot(upload=True)
        >>> record.remote_id
        'database-backups/database-backup-2026-10-19-02-00-00.db'
        >>> await service.close()
    """

    def __init__(
        self,
        database_path: str | Path,
        backup_dir: str | Path,
        snapshotter: Snapshotter | None = None,
        replicator: Replicator | None = None,
        verifier: Verifier | None = None,
        retention_days: int = 30,
    ) -> None:
        self.database_path = Path(database_path)
        self.verifier = verifier or Verifier()
        self.catalog = BackupCatalog(backup_dir, verifier=self.verifier)
        self.snapshotter = snapshotter or Snapshotter(
            self.database_path, self.catalog.backup_dir, verifier=self.verifier
        )
        self.replicator = replicator or Replicator(None)
        self.retention = RetentionManager(self.catalog)
        self.restorer = Restorer(self.database_path, self.catalog, self.snapshotter, self.verifier)
        self.retention_days = retention_days

    @classmethod
    def from_config(cls, config: BackupConfig) -> BackupService:
        """Build the service and its components from configuration."""
        verifier = Verifier(busy_timeout_ms=config.storage.busy_timeout_ms)
        snapshotter = Snapshotter(
            config.storage.database_path,
            config.storage.backup_dir,
            strategies=build_strategies(
                config.snapshot.strategies,
                busy_timeout_ms=config.storage.busy_timeout_ms,
                copy_retries=config.snapshot.copy_retries,
            ),
            verifier=verifier,
            compare_counts=config.snapshot.compare_counts,
        )
        replicator = Replicator(
            create_remote_store(config.remote),
            timeout_seconds=config.remote.timeout_seconds,
        )
        return cls(
            config.storage.database_path,
            config.storage.backup_dir,
            snapshotter=snapshotter,
            replicator=replicator,
            verifier=verifier,
            retention_days=config.retention.days,
        )

    def create_scheduler(
        self, hour: int = 2, minute: int = 0, run_on_start: bool = True
    ) -> BackupScheduler:
        """Build a daily scheduler over this service's components."""
        return BackupScheduler(
            self.snapshotter,
            self.replicator,
            self.retention,
            retention_days=self.retention_days,
            hour=hour,
            minute=minute,
            run_on_start=run_on_start,
        )

    # Local snapshots

    async def create_snapshot(self, upload: bool = False) -> BackupRecord:
        """Snapshot the live database, optionally replicating it.

        An upload failure never fails the call; remote_id stays None.
        """
        record = await self.snapshotter.create_snapshot()
        if upload:
            remote_id = await self.replicator.upload_remote(record.path, record.filename)
            record = record.with_remote_id(remote_id)
        return record

    def list_local(self, verify: bool = False) -> list[BackupRecord]:
        """List local snapshots, newest first."""
        return self.catalog.list_local(verify=verify)

    def verify(self, path: str | Path) -> bool:
        return self.verifier.verify(path)

    def require_verified(self, path: str | Path) -> Path:
        """Return path if it verifies.

        Raises:
            VerificationFailedError: If it does not
        """
        path = Path(path)
        if not self.verifier.verify(path):
            raise VerificationFailedError(f"Not a valid SQLite snapshot: {path}")
        return path

    def verify_backup(self, filename: str) -> dict[str, Any]:
        """Verify a snapshot and compare its row counts with the live database.

        Raises:
            ValueError: If filename is not a snapshot filename
        """
        path = self.catalog.resolve(filename)
        result: dict[str, Any] = {
            "filename": filename,
            "exists": path.is_file(),
            "valid": False,
            "comparison": None,
        }
        if not result["exists"]:
            return result

        result["valid"] = self.verifier.verify(path)
        if result["valid"] and self.database_path.exists():
            try:
                comparison = self.verifier.compare_row_counts(path, self.database_path)
                result["comparison"] = comparison.to_dict()
            except Exception as e:
                logger.warning(f"Row count comparison failed for {filename}: {e}")
        return result

    def delete_local(self, filename: str) -> bool:
        return self.catalog.delete_local(filename)

    async def restore(self, filename: str) -> RestoreResult:
        """Restore the live database from a local snapshot (see Restorer)."""
        return await self.restorer.restore(filename)

    def prune_older_than(self, days: float | None = None) -> int:
        """Prune local snapshots older than days (default: configured window)."""
        return self.retention.prune_older_than(self.retention_days if days is None else days)

    async def stats(self, include_remote: bool = False) -> BackupStats:
        loop = asyncio.get_running_loop()
        stats = await loop.run_in_executor(None, self.catalog.stats)
        if include_remote and self.replicator.enabled:
            entries = await self.replicator.list_remote()
            stats = BackupStats(
                count=stats.count,
                total_bytes=stats.total_bytes,
                oldest=stats.oldest,
                newest=stats.newest,
                remote_count=len(entries),
            )
        return stats

    # Remote snapshots

    async def list_remote(self) -> list[RemoteEntry]:
        return await self.replicator.list_remote()

    async def upload_remote(self, filename: str) -> str | None:
        """Upload an existing local snapshot; None on failure."""
        path = self.catalog.resolve(filename)
        if not path.is_file():
            logger.warning(f"Cannot upload missing snapshot {filename}")
            return None
        return await self.replicator.upload_remote(path, filename)

    async def download_remote(self, remote_id: str, dest_path: str | Path) -> bool:
        return await self.replicator.download_remote(remote_id, dest_path)

    async def delete_remote(self, remote_id: str) -> bool:
        return await self.replicator.delete_remote(remote_id)

    async def fetch_remote(self, remote_id: str) -> BackupRecord | None:
        """Download a remote snapshot into the backup directory.

        The local copy keeps the remote name so it can be restored by
        filename. A download that does not verify is removed again.

        Returns:
            Verified local record, or None if the fetch failed
        """
        name = remote_id.rsplit("/", 1)[-1]
        if not is_backup_filename(name):
            logger.warning(f"Remote object {remote_id} is not a snapshot")
            return None

        path = self.catalog.resolve(name)
        if path.exists():
            logger.info(f"Snapshot {name} already present locally")
            return self.catalog.get(name, verify=True)

        if not await self.replicator.download_remote(remote_id, path):
            return None

        record = self.catalog.get(name, verify=True)
        if record is None or not record.verified:
            logger.warning(
                "Downloaded snapshot failed verification, removing",
                extra={"remote_id": remote_id, "snapshot": name},
            )
            self.catalog.delete_local(name)
            return None

        logger.info("Fetched remote snapshot", extra={"remote_id": remote_id, "snapshot": name})
        return record.with_remote_id(remote_id)

    async def close(self) -> None:
        await self.replicator.close()
