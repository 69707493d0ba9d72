"""
Snapshot records and on-disk naming.

A snapshot is one file named database-backup-<date>-<time>.db in the
backup directory, optionally accompanied by -wal/-shm companion files when
it was produced by the raw-copy fallback.

Invariants:
    - Filenames encode the UTC creation time to the second; a zero-padded
      _NNN suffix only appears when more than one snapshot is created in
      one second
    - Plain lexical order of filenames is creation order ("_" sorts after
      ".", so database-backup-...-00_001.db follows database-backup-...-00.db)
    - Names from older releases with a -N suffix still parse
    - BackupRecord is immutable; remote_id is attached by building a new record
    - verified is a property of one check, never written to disk
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

BACKUP_PREFIX = "database-backup-"
BACKUP_SUFFIX = ".db"
WAL_SUFFIX = "-wal"
SHM_SUFFIX = "-shm"
# Order matters: the raw copy takes the WAL before the shared-memory index
COMPANION_SUFFIXES = (WAL_SUFFIX, SHM_SUFFIX)

WORK_SUFFIX = ".tmp"

_TIMESTAMP_FORMAT = "%Y-%m-%d-%H-%M-%S"
_NAME_RE = re.compile(
    r"^database-backup-(\d{4}-\d{2}-\d{2}-\d{2}-\d{2}-\d{2})(?:_(\d{3,})|-(\d+))?\.db$"
)


def backup_filename(moment: datetime, seq: int = 0) -> str:
    """Build the snapshot filename for a creation time.

    Args:
        moment: Creation time (converted to UTC if timezone-aware)
        seq: Collision counter within the same second

    Returns:
        Filename such as database-backup-2026-10-19-02-00-00.db, or
        database-backup-2026-10-19-02-00-00_001.db for seq=1
    """
    if moment.tzinfo is not None:
        moment = moment.astimezone(timezone.utc)
    stamp = moment.strftime(_TIMESTAMP_FORMAT)
    if seq:
        return f"{BACKUP_PREFIX}{stamp}_{seq:03d}{BACKUP_SUFFIX}"
    return f"{BACKUP_PREFIX}{stamp}{BACKUP_SUFFIX}"


def parse_backup_filename(name: str) -> tuple[datetime, int] | None:
    """Parse a snapshot filename into (UTC creation time, sequence).

    Returns None for anything that is not a snapshot filename.
    """
    match = _NAME_RE.match(name)
    if not match:
        return None
    try:
        moment = datetime.strptime(match.group(1), _TIMESTAMP_FORMAT)
    except ValueError:
        return None
    return moment.replace(tzinfo=timezone.utc), int(match.group(2) or match.group(3) or 0)


def is_backup_filename(name: str) -> bool:
    """Whether a bare filename names a snapshot."""
    return parse_backup_filename(name) is not None


def work_path(target: Path) -> Path:
    """Hidden file a snapshot is built in before it takes its final name."""
    return target.with_name(f".{target.name}{WORK_SUFFIX}")


def companion_paths(path: Path) -> list[Path]:
    """Return the -wal and -shm paths belonging to a database file."""
    return [path.with_name(path.name + suffix) for suffix in COMPANION_SUFFIXES]


def existing_companions(path: Path) -> tuple[Path, ...]:
    """Return the companion files of a database file that exist right now."""
    return tuple(p for p in companion_paths(path) if p.exists())


@dataclass(frozen=True)
class BackupRecord:
    """Immutable description of one local snapshot.

    Attributes:
        filename: Unique snapshot filename
        path: Local filesystem location
        size: Size of the main snapshot file in bytes
        created_at: Creation timestamp (UTC)
        verified: Outcome of the verification run when this record was built
        remote_id: Identifier in the remote store, None if not replicated
        strategy: Strategy that produced the snapshot (None when read from disk)
        companions: Companion files present next to the snapshot
    """

    filename: str
    path: Path
    size: int
    created_at: datetime
    verified: bool = False
    remote_id: str | None = None
    strategy: str | None = None
    companions: tuple[Path, ...] = field(default_factory=tuple)

    @classmethod
    def from_path(cls, path: Path, verified: bool = False) -> BackupRecord:
        """Build a record from a snapshot file on disk.

        created_at follows the file's modification time, which is also what
        retention compares against.
        """
        stat = path.stat()
        return cls(
            filename=path.name,
            path=path,
            size=stat.st_size,
            created_at=datetime.fromtimestamp(stat.st_mtime, tz=timezone.utc),
            verified=verified,
            companions=existing_companions(path),
        )

    def with_remote_id(self, remote_id: str | None) -> BackupRecord:
        return replace(self, remote_id=remote_id)

    def with_verified(self, verified: bool) -> BackupRecord:
        return replace(self, verified=verified)

    @property
    def sort_key(self) -> tuple[datetime, datetime, int]:
        parsed = parse_backup_filename(self.filename)
        if parsed is None:
            return (self.created_at, self.created_at, 0)
        return (self.created_at, parsed[0], parsed[1])

    def to_dict(self) -> dict[str, Any]:
        """Convert to a JSON-friendly dictionary."""
        return {
            "filename": self.filename,
            "path": str(self.path),
            "size": self.size,
            "created_at": self.created_at.isoformat(),
            "verified": self.verified,
            "remote_id": self.remote_id,
            "strategy": self.strategy,
            "companions": [p.name for p in self.companions],
        }


@dataclass(frozen=True)
class BackupStats:
    """Aggregate view of the local snapshot directory.

    Attributes:
        count: Number of snapshots
        total_bytes: Sum of snapshot sizes
        oldest: Creation time of the oldest snapshot
        newest: Creation time of the newest snapshot
        remote_count: Number of remote snapshots, when requested
    """

    count: int
    total_bytes: int
    oldest: datetime | None
    newest: datetime | None
    remote_count: int | None = None

    @property
    def total_mb(self) -> float:
        return round(self.total_bytes / (1024 * 1024), 2)

    def to_dict(self) -> dict[str, Any]:
        return {
            "count": self.count,
            "total_bytes": self.total_bytes,
            "total_mb": self.total_mb,
            "oldest": self.oldest.isoformat() if self.oldest else None,
            "newest": self.newest.isoformat() if self.newest else None,
            "remote_count": self.remote_count,
        }
