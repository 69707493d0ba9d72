"""
Snapshot strategies.

Each strategy materialises a copy of the live database at a target path
that the Snapshotter has already reserved (an empty file). Strategies are
tried in order by the Snapshotter; the first one that returns without
raising wins.

    vacuum_into    VACUUM INTO from a read-only connection. Atomic and
                   self-contained; readers and the writer are only held
                   for the duration of the statement.
    online_backup  sqlite3 online backup API from a read-only connection.
                   Atomic and self-contained.
    raw_copy       Byte copy of the primary, then -wal, then -shm. Takes no
                   lock, so a writer committing mid-copy can produce an
                   inconsistent snapshot. The copy is retried when the
                   source changed underneath it.

Invariants:
    - A strategy either raises or leaves a complete file at the target
    - Only raw_copy ever writes companion files next to the target

How to change safely:
    - Register new strategies in STRATEGIES and keep names stable, they are
      referenced from SNAPSHOT_STRATEGIES
    - Keep raw_copy as the last resort
"""

from __future__ import annotations

import logging
import os
import shutil
import sqlite3
from pathlib import Path
from typing import Protocol, runtime_checkable

from .records import companion_paths
from .verifier import connect_readonly

logger = logging.getLogger(__name__)


@runtime_checkable
class SnapshotStrategy(Protocol):
    """One way of producing a snapshot file."""

    name: str

    def run(self, source: Path, target: Path) -> None:
        """Write a snapshot of source to target.

        Args:
            source: Live database file
            target: Reserved, empty snapshot file

        Raises:
            Exception: Any failure; the Snapshotter falls through to the next strategy
        """
        ...


class VacuumIntoStrategy:
    """Atomic engine snapshot via VACUUM INTO."""

    name = "vacuum_into"

    def __init__(self, busy_timeout_ms: int = 5000) -> None:
        self.busy_timeout_ms = busy_timeout_ms

    def run(self, source: Path, target: Path) -> None:
        conn = connect_readonly(source, timeout=self.busy_timeout_ms / 1000.0)
        try:
            conn.execute(f"PRAGMA busy_timeout = {self.busy_timeout_ms}")
            conn.execute("VACUUM INTO ?", (str(target),))
        finally:
            conn.close()


class OnlineBackupStrategy:
    """Atomic engine snapshot via the sqlite3 online backup API."""

    name = "online_backup"

    def __init__(self, busy_timeout_ms: int = 5000, pages: int = -1) -> None:
        self.busy_timeout_ms = busy_timeout_ms
        self.pages = pages

    def run(self, source: Path, target: Path) -> None:
        source_conn = connect_readonly(source, timeout=self.busy_timeout_ms / 1000.0)
        dest_conn = sqlite3.connect(str(target), isolation_level=None)
        try:
            source_conn.backup(dest_conn, pages=self.pages)
        finally:
            source_conn.close()
            dest_conn.close()


def _fingerprint(paths: list[Path]) -> tuple[tuple[int, int] | None, ...]:
    result = []
    for p in paths:
        try:
            st = p.stat()
            result.append((st.st_size, st.st_mtime_ns))
        except FileNotFoundError:
            result.append(None)
    return tuple(result)


class RawCopyStrategy:
    """Best-effort byte copy of the primary file and its companions.

    The copy does not quiesce writers. Instead it compares size and mtime
    of the primary and its WAL before and after copying and retries up to
    `retries` times if they moved. A copy that still raced is kept and
    reported with a warning.
    """

    name = "raw_copy"

    def __init__(self, retries: int = 2) -> None:
        self.retries = retries

    def run(self, source: Path, target: Path) -> None:
        watched = [source, companion_paths(source)[0]]

        for attempt in range(self.retries + 1):
            before = _fingerprint(watched)
            self._copy_once(source, target)
            after = _fingerprint(watched)

            if before == after:
                return

            if attempt < self.retries:
                logger.info(
                    "Source changed during raw copy, retrying",
                    extra={"source": str(source), "attempt": attempt + 1},
                )

        logger.warning(
            "Raw copy raced a concurrent writer; snapshot may be inconsistent",
            extra={"source": str(source), "target": str(target)},
        )

    def _copy_once(self, source: Path, target: Path) -> None:
        shutil.copyfile(source, target)
        for src_companion, dst_companion in zip(companion_paths(source), companion_paths(target)):
            if src_companion.exists():
                shutil.copyfile(src_companion, dst_companion)
            elif dst_companion.exists():
                # Left over from a previous attempt
                os.remove(dst_companion)


STRATEGIES = {
    VacuumIntoStrategy.name: VacuumIntoStrategy,
    OnlineBackupStrategy.name: OnlineBackupStrategy,
    RawCopyStrategy.name: RawCopyStrategy,
}

STRATEGY_NAMES = tuple(STRATEGIES)


def build_strategies(
    names: tuple[str, ...] | list[str],
    busy_timeout_ms: int = 5000,
    copy_retries: int = 2,
) -> list[SnapshotStrategy]:
    """Build the strategy chain from configured names.

    Raises:
        ValueError: If a name is unknown
    """
    chain: list[SnapshotStrategy] = []
    for name in names:
        if name == VacuumIntoStrategy.name:
            chain.append(VacuumIntoStrategy(busy_timeout_ms=busy_timeout_ms))
        elif name == OnlineBackupStrategy.name:
            chain.append(OnlineBackupStrategy(busy_timeout_ms=busy_timeout_ms))
        elif name == RawCopyStrategy.name:
            chain.append(RawCopyStrategy(retries=copy_retries))
        else:
            raise ValueError(f"Unsupported snapshot strategy: {name}")
    return chain


def default_strategies(busy_timeout_ms: int = 5000) -> list[SnapshotStrategy]:
    """VACUUM INTO first, raw copy as fallback."""
    return build_strategies(
        (VacuumIntoStrategy.name, RawCopyStrategy.name), busy_timeout_ms=busy_timeout_ms
    )
