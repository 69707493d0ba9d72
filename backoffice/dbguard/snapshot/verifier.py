"""
Snapshot verification.

verify() answers one question: is this file a structurally valid SQLite
database that can be opened and queried? It never raises; every failure is
False.

Stages, each short-circuiting:
    1. File exists and is non-empty
    2. First 16 bytes are the SQLite header magic
    3. Read-only open plus a query against sqlite_master succeeds

Invariants:
    - Verification never writes: snapshots are opened with mode=ro and
      immutable=1 so no journal, -wal or -shm file is ever created
    - The result is derived from the bytes on disk at call time
"""

from __future__ import annotations

import logging
import sqlite3
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

SQLITE_MAGIC = b"SQLite format 3\x00"


def readonly_uri(path: str | Path, immutable: bool = False) -> str:
    """Build a read-only SQLite URI for a file path."""
    uri = f"{Path(path).resolve().as_uri()}?mode=ro"
    if immutable:
        uri += "&immutable=1"
    return uri


def connect_readonly(
    path: str | Path, immutable: bool = False, timeout: float = 5.0
) -> sqlite3.Connection:
    """Open a read-only connection (raises sqlite3.Error on failure)."""
    return sqlite3.connect(
        readonly_uri(path, immutable=immutable),
        uri=True,
        timeout=timeout,
        isolation_level=None,
    )


@dataclass
class DataComparison:
    """Row counts of a snapshot compared against its source.

    Attributes:
        backup_counts: Rows per table in the snapshot
        source_counts: Rows per table in the source database
    """

    backup_counts: dict[str, int] = field(default_factory=dict)
    source_counts: dict[str, int] = field(default_factory=dict)

    @property
    def mismatched_tables(self) -> list[str]:
        tables = sorted(set(self.backup_counts) | set(self.source_counts))
        return [t for t in tables if self.backup_counts.get(t) != self.source_counts.get(t)]

    @property
    def matches(self) -> bool:
        return not self.mismatched_tables

    def to_dict(self) -> dict[str, Any]:
        return {
            "matches": self.matches,
            "backup_counts": dict(self.backup_counts),
            "source_counts": dict(self.source_counts),
            "mismatched_tables": self.mismatched_tables,
        }


class Verifier:
    """Checks whether a file is a readable SQLite snapshot.

    Example:
        >>> verifier = Verifier()
        >>> verifier.verify("backups/database-backup-2026-10-19-02-00-00.db")
        True
    """

    def __init__(self, busy_timeout_ms: int = 5000) -> None:
        self.timeout = busy_timeout_ms / 1000.0

    def verify(self, path: str | Path) -> bool:
        """Return True only if the file passes every verification stage."""
        try:
            p = Path(path)
            if not p.is_file() or p.stat().st_size == 0:
                return False

            with open(p, "rb") as f:
                header = f.read(len(SQLITE_MAGIC))
            if header != SQLITE_MAGIC:
                return False

            conn = connect_readonly(p, immutable=True, timeout=self.timeout)
            try:
                row = conn.execute("SELECT COUNT(*) FROM sqlite_master").fetchone()
            finally:
                conn.close()
            return row is not None

        except Exception as e:
            logger.debug(f"Verification failed for {path}: {e}")
            return False

    def count_rows(self, path: str | Path, immutable: bool = True) -> dict[str, int]:
        """Count rows of every user table in a database.

        Args:
            path: Database file
            immutable: Open with immutable=1 (snapshots); use False for the live file

        Raises:
            sqlite3.Error: If the database cannot be read
        """
        conn = connect_readonly(path, immutable=immutable, timeout=self.timeout)
        try:
            tables = [
                row[0]
                for row in conn.execute(
                    "SELECT name FROM sqlite_master "
                    "WHERE type = 'table' AND name NOT LIKE 'sqlite_%' ORDER BY name"
                )
            ]
            counts = {}
            for table in tables:
                quoted = '"' + table.replace('"', '""') + '"'
                counts[table] = conn.execute(f"SELECT COUNT(*) FROM {quoted}").fetchone()[0]
            return counts
        finally:
            conn.close()

    def compare_row_counts(
        self, backup_path: str | Path, source_path: str | Path
    ) -> DataComparison:
        """Compare per-table row counts of a snapshot and its live source.

        Raises:
            sqlite3.Error: If either database cannot be read
        """
        return DataComparison(
            backup_counts=self.count_rows(backup_path, immutable=True),
            source_counts=self.count_rows(source_path, immutable=False),
        )


_default_verifier = Verifier()


def verify_backup(path: str | Path) -> bool:
    """Verify a snapshot with default settings."""
    return _default_verifier.verify(path)
