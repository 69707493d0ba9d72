"""
SQLite snapshotter for DBGuard.

The Snapshotter produces a new, timestamp-named, self-contained copy of the
live back-office database in the local backup directory. It tries an
ordered chain of strategies (see strategies.py); the first success wins.

Snapshot naming:
    <backup_dir>/database-backup-YYYY-MM-DD-HH-MM-SS.db
    <backup_dir>/database-backup-YYYY-MM-DD-HH-MM-SS_NNN.db   (same-second collision)
    <backup_dir>/.database-backup-YYYY-MM-DD-HH-MM-SS.db.tmp  (while building)

Invariants:
    - The hidden work file is reserved with an exclusive create before any
      strategy runs, so concurrent snapshots never collide
    - A snapshot name only appears once its file is complete; companions
      are renamed into place before the main file
    - A failed strategy's partial output is cleared before the next one
    - A snapshot is returned even when verification fails; verified=False
      tells the caller
    - Failed snapshots leave nothing behind

How to change safely:
    - Keep the reservation step; VACUUM INTO accepts an empty target file
    - Run blocking SQLite/file work through the executor, never on the loop
"""

from __future__ import annotations

import asyncio
import errno
import logging
import os
import time
from collections.abc import Callable
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from ..errors import SnapshotFailedError, SnapshotIOError, SourceMissingError
from .records import (
    BackupRecord,
    backup_filename,
    companion_paths,
    existing_companions,
    work_path,
)
from .strategies import SnapshotStrategy, default_strategies
from .verifier import Verifier

logger = logging.getLogger(__name__)

# Faults that no other strategy will fix
_IO_ERRNOS = {errno.ENOSPC, errno.EACCES, errno.EPERM, errno.EROFS, getattr(errno, "EDQUOT", -1)}


def _utcnow() -> datetime:
    return datetime.now(tz=timezone.utc)


class Snapshotter:
    """Creates snapshots of the live database.

    Attributes:
        database_path: Live SQLite database
        backup_dir: Directory receiving snapshots
        strategies: Ordered strategy chain
        verifier: Verifier run once on every new snapshot

    Example:
        >>> snapshotter = Snapshotter("data/database.db", "backups")
        >>> record = await snapshotter.create_snapshot()
        >>> record.verified
        True
    """

    def __init__(
        self,
        database_path: str | Path,
        backup_dir: str | Path,
        strategies: list[SnapshotStrategy] | None = None,
        verifier: Verifier | None = None,
        compare_counts: bool = True,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        """Initialize the snapshotter.

        Args:
            database_path: Path to the live database
            backup_dir: Snapshot directory (created on demand)
            strategies: Strategy chain (defaults to VACUUM INTO then raw copy)
            verifier: Verifier instance
            compare_counts: Log a row-count comparison against the source
            clock: Source of the timestamp encoded in filenames
        """
        self.database_path = Path(database_path)
        self.backup_dir = Path(backup_dir)
        self.strategies = list(strategies) if strategies is not None else default_strategies()
        self.verifier = verifier or Verifier()
        self.compare_counts = compare_counts
        self._clock = clock

        self._snapshot_count = 0
        self._failure_count = 0

        if not self.strategies:
            raise ValueError("Snapshotter needs at least one strategy")

    async def create_snapshot(self) -> BackupRecord:
        """Create a snapshot of the live database.

        Returns:
            BackupRecord with verified populated

        Raises:
            SourceMissingError: If the live database does not exist
            SnapshotFailedError: If every strategy failed
            SnapshotIOError: On disk-full or permission faults
        """
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self._create_snapshot)

    def _create_snapshot(self) -> BackupRecord:
        source = self.database_path
        if not source.exists():
            raise SourceMissingError(f"Database file not found: {source}")

        start = time.monotonic()
        target, work, moment = self._reserve_target()
        failures: list[tuple[str, BaseException]] = []

        for strategy in self.strategies:
            try:
                strategy.run(source, work)
            except Exception as e:
                failures.append((strategy.name, e))
                logger.warning(
                    f"Snapshot strategy {strategy.name} failed: {e}",
                    extra={"strategy": strategy.name, "target": target.name},
                )
                self._clear_target(work)
                continue

            self._promote(work, target)
            record = self._finish(source, target, strategy.name, moment)
            logger.info(
                "Created snapshot",
                extra={
                    "snapshot": record.filename,
                    "strategy": strategy.name,
                    "size_bytes": record.size,
                    "verified": record.verified,
                    "duration_ms": int((time.monotonic() - start) * 1000),
                },
            )
            return record

        self._discard_target(work)
        self._failure_count += 1

        last_error = failures[-1][1] if failures else None
        if isinstance(last_error, OSError) and last_error.errno in _IO_ERRNOS:
            raise SnapshotIOError(
                last_error.errno, f"Snapshot failed: {last_error.strerror}", str(target)
            ) from last_error

        summary = "; ".join(f"{name}: {err}" for name, err in failures)
        raise SnapshotFailedError(f"All snapshot strategies failed ({summary})", failures)

    def _reserve_target(self) -> tuple[Path, Path, datetime]:
        """Create the backup directory and claim a unique snapshot filename.

        Returns:
            (final snapshot path, hidden work path, creation time)
        """
        try:
            self.backup_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise SnapshotIOError(
                e.errno, f"Cannot create backup directory: {e.strerror}", str(self.backup_dir)
            ) from e

        moment = self._clock()
        seq = 0
        while True:
            target = self.backup_dir / backup_filename(moment, seq)
            work = work_path(target)
            try:
                fd = os.open(work, os.O_CREAT | os.O_EXCL | os.O_WRONLY, 0o644)
            except FileExistsError:
                seq += 1
                continue
            except OSError as e:
                raise SnapshotIOError(
                    e.errno, f"Cannot create snapshot file: {e.strerror}", str(work)
                ) from e
            os.close(fd)
            # The work file is renamed away once the snapshot is complete
            if target.exists():
                work.unlink(missing_ok=True)
                seq += 1
                continue
            return target, work, moment

    def _promote(self, work: Path, target: Path) -> None:
        """Rename a finished work file (and its companions) to the snapshot name."""
        try:
            for src, dst in zip(companion_paths(work), companion_paths(target)):
                if src.exists():
                    os.replace(src, dst)
            os.replace(work, target)
        except OSError as e:
            self._discard_target(work)
            self._discard_target(target)
            self._failure_count += 1
            raise SnapshotIOError(
                e.errno, f"Cannot finalize snapshot: {e.strerror}", str(target)
            ) from e

    def _clear_target(self, target: Path) -> None:
        """Reset the reserved target to an empty file and drop companions."""
        try:
            for companion in companion_paths(target):
                companion.unlink(missing_ok=True)
            with open(target, "wb"):
                pass
        except OSError as e:
            logger.warning(f"Failed to reset snapshot target {target}: {e}")

    def _discard_target(self, target: Path) -> None:
        for path in (target, *companion_paths(target)):
            try:
                path.unlink(missing_ok=True)
            except OSError as e:
                logger.warning(f"Failed to clean up {path}: {e}")

    def _finish(
        self, source: Path, target: Path, strategy_name: str, moment: datetime
    ) -> BackupRecord:
        verified = self.verifier.verify(target)
        if not verified:
            logger.warning(
                "Snapshot failed verification",
                extra={"snapshot": target.name, "strategy": strategy_name},
            )

        if verified and self.compare_counts:
            self._log_comparison(source, target)

        self._snapshot_count += 1
        return BackupRecord(
            filename=target.name,
            path=target,
            size=target.stat().st_size,
            created_at=moment,
            verified=verified,
            strategy=strategy_name,
            companions=existing_companions(target),
        )

    def _log_comparison(self, source: Path, target: Path) -> None:
        try:
            comparison = self.verifier.compare_row_counts(target, source)
        except Exception as e:
            logger.warning(f"Could not compare row counts for {target.name}: {e}")
            return

        if comparison.matches:
            logger.info(
                "Snapshot row counts match source",
                extra={"snapshot": target.name, "tables": len(comparison.backup_counts)},
            )
        else:
            # The source may simply have moved on since the snapshot
            logger.warning(
                "Snapshot row counts differ from source",
                extra={"snapshot": target.name, **comparison.to_dict()},
            )

    @property
    def stats(self) -> dict[str, Any]:
        """Get snapshotter statistics."""
        return {
            "snapshot_count": self._snapshot_count,
            "failure_count": self._failure_count,
            "strategies": [s.name for s in self.strategies],
        }
