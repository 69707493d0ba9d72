"""
Age-based retention for local snapshots.

Invariants:
    - Only local snapshot files (and their companions) are ever deleted;
      remote entries are never touched
    - Age is judged by file modification time
    - Running twice with no new snapshots in between deletes nothing the
      second time
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from pathlib import Path

from ..snapshot.catalog import BackupCatalog

logger = logging.getLogger(__name__)

SECONDS_PER_DAY = 24 * 60 * 60


class RetentionManager:
    """Deletes local snapshots older than a retention window.

    Example:
        >>> retention = RetentionManager(BackupCatalog("backups"))
        >>> retention.prune_older_than(30)
        2
    """

    def __init__(self, catalog: BackupCatalog, clock: Callable[[], float] = time.time) -> None:
        self.catalog = catalog
        self._clock = clock
        self._pruned_total = 0

    def prune_older_than(self, days: float) -> int:
        """Delete every local snapshot last modified more than `days` ago.

        Args:
            days: Retention window in days

        Returns:
            Number of snapshots deleted

        Raises:
            ValueError: If days is negative
        """
        if days < 0:
            raise ValueError(f"Retention window must be >= 0 days, got {days}")

        cutoff = self._clock() - days * SECONDS_PER_DAY
        deleted = 0

        for path in self.catalog.snapshot_paths():
            if not self._is_expired(path, cutoff):
                continue
            try:
                if self.catalog.delete_local(path.name):
                    deleted += 1
                    logger.info(
                        "Pruned old snapshot",
                        extra={"snapshot": path.name, "retention_days": days},
                    )
            except OSError as e:
                logger.warning(f"Failed to prune {path.name}: {e}")

        self._pruned_total += deleted
        if deleted:
            logger.info(f"Pruned {deleted} snapshot(s) older than {days} days")
        return deleted

    @staticmethod
    def _is_expired(path: Path, cutoff: float) -> bool:
        try:
            return path.stat().st_mtime < cutoff
        except FileNotFoundError:
            return False

    @property
    def stats(self) -> dict[str, int]:
        return {"pruned_total": self._pruned_total}
