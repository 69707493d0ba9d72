"""
Shared fixtures for DBGuard tests.

Every test works in its own temporary directory holding a small WAL-mode
back-office database (bills and parties tables) and an empty backup
directory.
"""

import os
import sqlite3
import tempfile
import time
from pathlib import Path

import pytest

DAY = 24 * 60 * 60


def create_database(path: Path, bills: int = 12, parties: int = 7) -> Path:
    """Create a WAL-mode database with the given row counts."""
    path.parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(str(path))
    try:
        conn.execute("PRAGMA journal_mode=WAL")
        conn.execute("CREATE TABLE parties (id INTEGER PRIMARY KEY, name TEXT NOT NULL)")
        conn.execute(
            "CREATE TABLE bills ("
            "id INTEGER PRIMARY KEY, party_id INTEGER REFERENCES parties(id), amount REAL)"
        )
        conn.executemany(
            "INSERT INTO parties (name) VALUES (?)", [(f"party-{i}",) for i in range(parties)]
        )
        conn.executemany(
            "INSERT INTO bills (party_id, amount) VALUES (?, ?)",
            [((i % max(parties, 1)) + 1, 100.0 + i) for i in range(bills)],
        )
        conn.commit()
    finally:
        conn.close()
    return path


def insert_bills(path: Path, count: int) -> None:
    conn = sqlite3.connect(str(path))
    try:
        rows = [(float(i),) for i in range(count)]
        conn.executemany("INSERT INTO bills (party_id, amount) VALUES (1, ?)", rows)
        conn.commit()
    finally:
        conn.close()


def table_counts(path: Path) -> dict:
    conn = sqlite3.connect(str(path))
    try:
        return {
            "bills": conn.execute("SELECT COUNT(*) FROM bills").fetchone()[0],
            "parties": conn.execute("SELECT COUNT(*) FROM parties").fetchone()[0],
        }
    finally:
        conn.close()


def set_age(path: Path, days: float, now: float | None = None) -> None:
    """Backdate a file's modification time by `days`."""
    now = time.time() if now is None else now
    ts = now - days * DAY
    os.utime(path, (ts, ts))


@pytest.fixture
def workdir():
    """Create temporary working directory."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def database_path(workdir):
    """Live database with {bills: 12, parties: 7}."""
    return create_database(workdir / "data" / "database.db")


@pytest.fixture
def backup_dir(workdir):
    """Empty backup directory."""
    path = workdir / "backups"
    path.mkdir()
    return path
