"""
Snapshot module for DBGuard.

This module produces and inspects local snapshots of the live database:
- Snapshotter: ordered strategy chain, timestamp-named output
- Verifier: structural validity check, never raises
- BackupCatalog: listing, deletion and statistics of local snapshots

Invariants:
    - Atomic strategies produce self-contained files
    - Raw-copy snapshots carry the -wal/-shm files that existed at copy time
    - verified is always re-derived from the bytes on disk
"""

from .catalog import BackupCatalog
from .records import (
    BackupRecord,
    BackupStats,
    backup_filename,
    is_backup_filename,
    parse_backup_filename,
)
from .snapshotter import Snapshotter
from .strategies import (
    OnlineBackupStrategy,
    RawCopyStrategy,
    SnapshotStrategy,
    VacuumIntoStrategy,
    build_strategies,
)
from .verifier import DataComparison, Verifier, verify_backup

__all__ = [
    "BackupCatalog",
    "BackupRecord",
    "BackupStats",
    "DataComparison",
    "OnlineBackupStrategy",
    "RawCopyStrategy",
    "SnapshotStrategy",
    "Snapshotter",
    "VacuumIntoStrategy",
    "Verifier",
    "backup_filename",
    "build_strategies",
    "is_backup_filename",
    "parse_backup_filename",
    "verify_backup",
]
