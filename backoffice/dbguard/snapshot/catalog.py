"""
Local snapshot catalog.

Read and delete access to the snapshot directory: listing, name
resolution, explicit deletion and statistics. Only files matching the
snapshot naming pattern are ever considered. Snapshots being built
(.<name>.tmp), restore staging files and downloads in progress use hidden
non-matching names, so they are invisible here.
"""

from __future__ import annotations

import logging
from pathlib import Path

from .records import BackupRecord, BackupStats, companion_paths, is_backup_filename
from .verifier import Verifier

logger = logging.getLogger(__name__)


class BackupCatalog:
    """View over the local snapshot directory.

    Example:
        >>> catalog = BackupCatalog("backups")
        >>> [r.filename for r in catalog.list_local()]
        ['database-backup-2026-10-19-02-00-00.db', ...]
    """

    def __init__(self, backup_dir: str | Path, verifier: Verifier | None = None) -> None:
        self.backup_dir = Path(backup_dir)
        self.verifier = verifier or Verifier()

    def resolve(self, filename: str) -> Path:
        """Map a snapshot filename to its path inside the backup directory.

        Raises:
            ValueError: If the name is not a bare snapshot filename
        """
        if Path(filename).name != filename or not is_backup_filename(filename):
            raise ValueError(f"Not a backup filename: {filename!r}")
        return self.backup_dir / filename

    def snapshot_paths(self) -> list[Path]:
        """Paths of all snapshot files currently on disk (unordered)."""
        if not self.backup_dir.is_dir():
            return []
        return [
            p for p in self.backup_dir.iterdir() if p.is_file() and is_backup_filename(p.name)
        ]

    def list_local(self, verify: bool = False) -> list[BackupRecord]:
        """List local snapshots, newest first.

        Args:
            verify: Run the Verifier on each snapshot; otherwise verified=False
        """
        records = []
        for path in self.snapshot_paths():
            try:
                verified = self.verifier.verify(path) if verify else False
                records.append(BackupRecord.from_path(path, verified=verified))
            except FileNotFoundError:
                # Pruned between listing and stat
                continue
        records.sort(key=lambda r: r.sort_key, reverse=True)
        return records

    def get(self, filename: str, verify: bool = False) -> BackupRecord | None:
        """Return the record for one snapshot, or None if it does not exist."""
        path = self.resolve(filename)
        if not path.is_file():
            return None
        verified = self.verifier.verify(path) if verify else False
        return BackupRecord.from_path(path, verified=verified)

    def delete_local(self, filename: str) -> bool:
        """Delete a snapshot and its companion files.

        Returns:
            True if the snapshot file existed and was removed

        Raises:
            ValueError: If the name is not a snapshot filename
            OSError: If a file exists but cannot be removed
        """
        path = self.resolve(filename)
        existed = path.exists()
        path.unlink(missing_ok=True)
        for companion in companion_paths(path):
            companion.unlink(missing_ok=True)
        if existed:
            logger.info("Deleted snapshot", extra={"snapshot": filename})
        return existed

    def stats(self) -> BackupStats:
        """Summarise the local snapshot directory."""
        records = self.list_local()
        return BackupStats(
            count=len(records),
            total_bytes=sum(r.size for r in records),
            oldest=records[-1].created_at if records else None,
            newest=records[0].created_at if records else None,
        )
